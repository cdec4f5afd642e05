"""HTTP surface: /agent/v2, /agent/shadow and /health through the full app."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from studio_agent.agents.legacy import LegacyReply
from studio_agent.agents.runner import CallerIdentity
from studio_agent.api.dependencies import get_caller
from studio_agent.config import get_settings
from studio_agent.main import create_app
from studio_agent.providers.base import CompletionResult
from studio_agent.providers.mock import ScriptedProvider, tool_call

PHOTOGRAPHER = {"X-User-Id": "user_1", "X-Studio-Id": "studio_1", "X-User-Role": "photographer"}
VIEWER = {"X-User-Id": "user_2", "X-Studio-Id": "studio_1", "X-User-Role": "viewer"}
OWNER = {"X-User-Id": "user_3", "X-Studio-Id": "studio_1", "X-User-Role": "owner"}
OUTSIDER = {"X-User-Id": "user_9", "X-Studio-Id": "studio_2", "X-User-Role": "owner"}


async def _legacy(turn):
    return LegacyReply(text=f"legacy: {turn.message}")


@pytest.fixture
def make_client(tmp_path, monkeypatch):
    """Build a TestClient over a fresh database with the given env overrides."""
    clients = []

    def _make(provider=None, **env):
        monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{(tmp_path / 'api.db').as_posix()}")
        monkeypatch.setenv("ENVIRONMENT", "test")
        monkeypatch.setenv("DEV_IDENTITY_FALLBACK", "false")
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        get_settings.cache_clear()

        app = create_app()
        app.state.provider = provider or ScriptedProvider()
        app.state.legacy_handler = _legacy
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
    get_settings.cache_clear()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def client(make_client, provider):
    return make_client(provider=provider)


def _chat(client, headers=PHOTOGRAPHER, **body):
    return client.post("/agent/v2/chat", json=body, headers=headers)


class TestChat:
    def test_plain_reply(self, client, provider):
        provider.enqueue(CompletionResult(content="Hello from the studio assistant"))

        res = _chat(client, message="hello")

        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "Hello from the studio assistant"
        assert body["sessionId"].startswith("sess_")
        assert body["mode"] == "auto_safe"
        assert body["toolCalls"] is None
        assert res.headers["X-Request-ID"]

    def test_tool_results_are_returned(self, client, provider):
        provider.enqueue(
            CompletionResult(tool_calls=[tool_call("list_invoices", {"status": "draft"})]),
            CompletionResult(content="You have no draft invoices."),
        )

        body = _chat(client, message="any drafts?").json()

        assert body["message"] == "You have no draft invoices."
        assert body["toolCalls"][0]["tool"] == "list_invoices"
        assert body["toolCalls"][0]["ok"] is True
        assert body["toolCalls"][0]["result"]["count"] == 0

    @pytest.mark.security
    def test_confirmation_round_trip(self, client, provider):
        args = {"to": "jane@example.com", "subject": "Your gallery", "body": "It's ready!"}
        provider.enqueue(CompletionResult(tool_calls=[tool_call("send_email", args)]))

        paused = _chat(client, message="email jane that her gallery is ready").json()

        assert paused["confirmRequired"] is True
        assert paused["tool"] == "send_email"
        assert paused["args"] == args
        assert paused["confirmationToken"].startswith("cnf_")

        provider.enqueue(CompletionResult(content="Sent."))
        done = _chat(
            client,
            message="yes",
            sessionId=paused["sessionId"],
            confirmationToken=paused["confirmationToken"],
        ).json()

        assert done["message"] == "Sent."
        assert done["toolCalls"][0]["outcome"] == "success"

        replay = _chat(
            client,
            message="yes again",
            sessionId=paused["sessionId"],
            confirmationToken=paused["confirmationToken"],
        )
        assert replay.status_code == 409
        assert replay.json()["error"]["code"] == "E4090"

    @pytest.mark.security
    def test_scope_denial_envelope(self, client, provider):
        provider.enqueue(CompletionResult(tool_calls=[tool_call("update_client", {"client_id": "c1", "notes": "x"})]))

        res = _chat(client, headers=VIEWER, message="add a note")

        assert res.status_code == 403
        body = res.json()
        assert body["error"]["code"] == "E2001"
        assert body["requiredScopes"] == ["CRM_WRITE"]
        assert "CRM_READ" in body["userScopes"]
        assert body["tool"] == "update_client"
        assert "request_id" in body["error"]

    def test_mode_block_is_not_a_scope_failure(self, client, provider):
        provider.enqueue(
            CompletionResult(
                tool_calls=[tool_call("create_calendar_event", {"title": "Consult", "starts_at": "2030-01-01T10:00:00Z"})]
            ),
            CompletionResult(content="Read-only mode is on, so nothing was booked."),
        )

        res = _chat(client, message="book a consult", mode="read_only")

        assert res.status_code == 200
        body = res.json()
        assert body["mode"] == "read_only"
        assert body["message"] == "Read-only mode is on, so nothing was booked."
        assert body["toolCalls"][0]["errorType"] == "ModeBlockedError"
        assert body["toolCalls"][0]["ok"] is False

    def test_unknown_session(self, client):
        res = _chat(client, message="hi", sessionId="sess_missing")
        assert res.status_code == 404
        assert res.json()["error"]["code"] == "E4040"

    def test_blank_message_rejected(self, client):
        res = _chat(client, message="   ")
        assert res.status_code == 422
        assert res.json()["error"]["code"] == "E4220"

    def test_missing_message_rejected(self, client):
        res = client.post("/agent/v2/chat", json={"sessionId": "sess_x"}, headers=PHOTOGRAPHER)
        assert res.status_code == 422

    @pytest.mark.security
    def test_identity_required(self, client):
        res = client.post("/agent/v2/chat", json={"message": "hi"})
        assert res.status_code == 401
        assert res.json()["error"]["code"] == "E2000"

    def test_llm_failure_maps_to_transport_error(self, client, provider):
        from studio_agent.core.exceptions import TransportError

        provider.enqueue(TransportError("LLM request failed with HTTP 503", component="llm"))

        res = _chat(client, message="hello")

        assert res.status_code == 500
        assert res.json()["error"]["code"] == "E3000"
        assert res.json()["component"] == "llm"

    def test_forced_dry_run(self, make_client):
        provider = ScriptedProvider()
        client = make_client(provider=provider, AGENT_V2_DRY_RUN="true")
        args = {"to": "jane@example.com", "subject": "Hi", "body": "Hello"}
        provider.enqueue(CompletionResult(tool_calls=[tool_call("send_email", args)]))

        body = _chat(client, message="email jane").json()

        assert body["confirmRequired"] is True
        assert body["confirmationToken"] is None

    def test_dependency_override_identity(self, client, provider):
        client.app.dependency_overrides[get_caller] = lambda: CallerIdentity(
            user_id="override", studio_id="studio_1", role="viewer"
        )
        provider.enqueue(CompletionResult(content="ok"))

        body = client.post("/agent/v2/chat", json={"message": "hi"}).json()

        assert body["mode"] == "read_only"
        client.app.dependency_overrides.clear()


class TestSessionAndStats:
    def test_session_transcript_and_audit(self, client, provider):
        provider.enqueue(
            CompletionResult(tool_calls=[tool_call("search_clients", {"query": "doe"}, call_id="call_9")]),
            CompletionResult(content="No clients matched."),
        )
        session_id = _chat(client, message="find doe").json()["sessionId"]

        res = client.get(f"/agent/v2/session/{session_id}", headers=PHOTOGRAPHER)

        assert res.status_code == 200
        body = res.json()
        assert body["session"]["id"] == session_id
        assert body["session"]["mode"] == "auto_safe"
        assert [m["role"] for m in body["messages"]] == ["user", "tool", "assistant"]
        assert body["messages"][1]["toolCallId"] == "call_9"
        assert len(body["auditLog"]) == 1
        assert body["auditLog"][0]["tool"] == "search_clients"

    def test_session_hidden_from_other_users(self, client, provider):
        provider.enqueue(CompletionResult(content="hi"))
        session_id = _chat(client, message="hello").json()["sessionId"]

        assert client.get(f"/agent/v2/session/{session_id}", headers=VIEWER).status_code == 404
        assert client.get(f"/agent/v2/session/{session_id}", headers=OUTSIDER).status_code == 404
        assert client.get(f"/agent/v2/session/{session_id}", headers=OWNER).status_code == 200

    def test_stats(self, client, provider):
        provider.enqueue(CompletionResult(tool_calls=[tool_call("nonexistent_tool", {})]), CompletionResult(content="hm"))
        _chat(client, message="do something odd")

        body = client.get("/agent/v2/stats", headers=PHOTOGRAPHER).json()

        assert body["totalTools"] == 11
        assert body["byRisk"]["high"] == 3
        assert body["invocations"]["total"] == 1
        assert body["invocations"]["failed"] == 1
        assert body["invocations"]["toolUsage"] == {"nonexistent_tool": 1}


class TestShadow:
    def test_shadow_chat_returns_legacy_answer(self, client):
        res = client.post("/agent/shadow/chat", json={"message": "hello"}, headers=PHOTOGRAPHER)

        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "legacy: hello"
        assert body["shadowMode"] is True
        assert body["sessionId"].startswith("sess_")
        assert isinstance(body["v1Duration"], int)
        assert isinstance(body["v2Duration"], int)

    @pytest.mark.security
    def test_stats_and_diffs_require_admin(self, client):
        client.post("/agent/shadow/chat", json={"message": "hello"}, headers=PHOTOGRAPHER)

        denied = client.get("/agent/shadow/stats", headers=PHOTOGRAPHER)
        assert denied.status_code == 403
        assert denied.json()["requiredScopes"] == ["ADMIN"]

        stats = client.get("/agent/shadow/stats", headers=OWNER).json()
        assert stats["totalComparisons"] == 1

        diffs = client.get("/agent/shadow/diffs?limit=10", headers=OWNER).json()
        assert diffs["limit"] == 10
        assert len(diffs["diffs"]) == 1
        assert diffs["diffs"][0]["v1Text"] == "legacy: hello"

    @pytest.mark.security
    def test_shadow_turn_leaves_live_transcript_untouched(self, client, provider):
        provider.enqueue(CompletionResult(content="hi"))
        session_id = _chat(client, message="hello").json()["sessionId"]
        provider.enqueue(
            CompletionResult(tool_calls=[tool_call("search_clients", {"query": "doe"})]),
            CompletionResult(content="I found the client."),
        )

        res = client.post(
            "/agent/shadow/chat", json={"message": "find doe", "sessionId": session_id}, headers=PHOTOGRAPHER
        )

        assert res.status_code == 200
        assert res.json()["sessionId"] == session_id
        body = client.get(f"/agent/v2/session/{session_id}", headers=PHOTOGRAPHER).json()
        assert [(m["role"], m["content"]) for m in body["messages"]] == [("user", "hello"), ("assistant", "hi")]
        assert body["auditLog"] == []

    @pytest.mark.security
    def test_shadow_analytics_are_confined_to_the_studio(self, client):
        client.post("/agent/shadow/chat", json={"message": "studio one secret"}, headers=PHOTOGRAPHER)

        stats = client.get("/agent/shadow/stats", headers=OUTSIDER).json()
        diffs = client.get("/agent/shadow/diffs", headers=OUTSIDER).json()

        assert stats["totalComparisons"] == 0
        assert diffs["diffs"] == []
        assert client.get("/agent/shadow/stats", headers=OWNER).json()["totalComparisons"] == 1

    def test_diffs_limit_is_bounded(self, client):
        assert client.get("/agent/shadow/diffs?limit=500", headers=OWNER).status_code == 422

    def test_shadow_router_can_be_disabled(self, make_client):
        client = make_client(SHADOW_ENABLED="false")
        assert client.post("/agent/shadow/chat", json={"message": "hi"}, headers=PHOTOGRAPHER).status_code == 404


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["db_ok"] is True
    assert body["tools"] == 11
