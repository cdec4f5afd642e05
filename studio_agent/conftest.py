"""Pytest configuration for the studio agent gateway tests.

Environment variables are set before any test module imports the app so the
cached settings are built for the test context.
"""

import os
import tempfile


def pytest_configure(config):
    """Configure test environment before any tests run.

    Key test settings:
    - ENVIRONMENT=test so tables are created on startup without alembic
    - PROVIDER_MODE=mock so no test can reach a real LLM endpoint
    - DEV_IDENTITY_FALLBACK=false so identity always comes from headers
    """
    config.addinivalue_line("markers", "security: Scope and confirmation enforcement tests")
    config.addinivalue_line("markers", "slow: Slow-running tests (excluded from fast)")

    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("PROVIDER_MODE", "mock")
    os.environ.setdefault("DEV_IDENTITY_FALLBACK", "false")
    os.environ.setdefault("LOG_LEVEL", "WARNING")

    # Never touch the packaged default database from tests
    if "DATABASE_URL" not in os.environ:
        db_path = os.path.join(tempfile.mkdtemp(prefix="studio_agent_"), "test.db")
        os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{db_path}"
