"""Agent gateway: policy, ToolBus, built-in tools and dialogue runners."""
