from __future__ import annotations

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from assistant_runtime.application.api.api_server import create_app
from assistant_runtime.application.stream.frame_parser import FrameParser
from assistant_runtime.infrastructure.clients.assistant_client import AssistantStreamClient
from assistant_runtime.infrastructure.clients.mail_service import MailServiceClient
from assistant_runtime.infrastructure.clients.memory_service import MemoryServiceClient
from assistant_runtime.infrastructure.clients.task_service import TaskServiceClient
from assistant_runtime.infrastructure.config.settings import Settings

USER = {"userId": "u1", "workspaceId": "w1", "email": "ada@example.com"}


def _settings() -> Settings:
    return Settings.model_validate({"logging": {"format": "console", "level": "WARNING"}})


def _mock(handler):
    return httpx.MockTransport(handler)


@pytest.fixture
def seen():
    return []


@pytest.fixture
def app(reply_graph, seen):
    def memory_handler(request):
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(200, json={"status": "healthy"})
        return httpx.Response(200, json={"results": {"facts": []}})

    def mail_handler(request):
        seen.append(request)
        if request.url.path.endswith("/signature"):
            return httpx.Response(200, json={"signature": "-- Ada"})
        return httpx.Response(200, json={"success": True})

    return create_app(
        settings=_settings(),
        graph=reply_graph,
        memory_client=MemoryServiceClient("http://memory", transport=_mock(memory_handler)),
        mail_client=MailServiceClient("http://mail", transport=_mock(mail_handler)),
    )


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def test_stream_endpoint_returns_event_frames(client):
    r = client.post("/api/assistant/stream", json={
        "messages": [{"role": "user", "content": [{"type": "text", "text": "Hi"}]}],
        "sessionId": "s1",
    })

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")

    parser = FrameParser()
    events = parser.feed(r.content)
    assert parser.dropped == 0
    assert [e.type for e in events] == ["text-delta", "message-end"]
    assert events[-1].status.type == "complete"

    session = client.get("/api/sessions/s1").json()
    assert session["session"]["message_count"] == 2


def test_stream_rejects_empty_conversation(client):
    r = client.post("/api/assistant/stream", json={"messages": []})

    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "messages must not be empty"}


def test_session_lifecycle(client):
    created = client.post("/api/sessions", json={"sessionId": "abc", "metadata": {"model": "m"}})
    assert created.status_code == 201
    assert created.json()["metadata"]["model"] == "m"

    assert client.get("/api/sessions/abc").status_code == 200
    assert client.delete("/api/sessions/abc").json() == {"success": True}
    assert client.get("/api/sessions/abc").status_code == 404
    assert client.delete("/api/sessions/abc").status_code == 404


def test_session_ids_are_generated_when_absent(client):
    r = client.post("/api/sessions", json={"channelId": "web"})

    assert r.status_code == 201
    assert len(r.json()["session"]["session_id"]) == 36


def test_memory_operations(client, seen):
    assert client.get("/api/memory", params={"action": "health"}).json() == {"status": "healthy"}
    assert "endpoints" in client.get("/api/memory").json()

    r = client.post("/api/memory", json={"operation": "search", "query": "tea", **USER})
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert json.loads(seen[-1].content)["operation"] == "search"


@pytest.mark.parametrize("body, error", [
    ({"operation": "delete", **USER}, "Invalid operation"),
    ({"operation": "search", "query": "tea", "userId": "u1"}, "workspaceId"),
    ({"operation": "search", **USER}, "Query is required"),
    ({"operation": "search", "query": "tea", "maxResults": "many", **USER}, "maxResults must be an integer"),
    ({"operation": "context", "sessionId": "s1", "limit": "ten", **USER}, "limit must be an integer"),
])
def test_memory_validation_errors(client, body, error):
    r = client.post("/api/memory", json=body)

    assert r.status_code == 400
    assert r.json()["success"] is False
    assert error in r.json()["error"]


def test_send_with_signature_requires_fields_unless_draft(client, seen):
    r = client.post("/api/gmail/send-with-signature", json={"to": "b@example.com", "body": "x"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Subject is required"}

    r = client.post("/api/gmail/send-with-signature", json={"isDraft": True})
    assert r.status_code == 200
    assert json.loads(seen[-1].content)["isDraft"] is True


def test_signature_forwards_bearer_token(client, seen):
    r = client.get("/api/gmail/signature", headers={"Authorization": "Bearer user-token"})

    assert r.json() == {"signature": "-- Ada"}
    assert seen[-1].headers["Authorization"] == "Bearer user-token"


def test_collaborator_failure_maps_to_json_error(reply_graph):
    failing = MailServiceClient("http://mail", transport=_mock(
        lambda request: httpx.Response(502, json={"error": "gmail quota exceeded"})
    ))
    client = TestClient(create_app(settings=_settings(), graph=reply_graph, mail_client=failing))

    r = client.get("/api/gmail/search", params={"q": "invoice"})

    assert r.status_code == 500
    assert r.json() == {"success": False, "error": "gmail quota exceeded"}


def test_unconfigured_collaborator_is_unavailable(reply_graph):
    client = TestClient(create_app(settings=_settings(), graph=reply_graph))

    r = client.get("/api/memory", params={"action": "status"})

    assert r.status_code == 503
    assert r.json()["error"] == "memory service is not configured"


def test_process_due_runs_tasks_through_the_assistant(reply_graph):
    calls = []

    def tasks_handler(request):
        calls.append((request.method, request.url.path, request.content))
        if request.method == "GET":
            return httpx.Response(200, json={"tasks": [
                {"id": "t1", "title": "Digest", "description": "Summarize", "scheduledDate": "2020-01-01T00:00:00Z"},
                {"id": "t2", "description": "Later", "scheduledDate": "2999-01-01T00:00:00Z"},
            ]})
        return httpx.Response(200, json={"success": True})

    def assistant_handler(request):
        return httpx.Response(200, content=(
            b'data: {"type": "text-delta", "text": "Summary"}\n\n'
            b'data: {"type": "message-end", "status": {"type": "complete"}}\n\n'
        ))

    client = TestClient(create_app(
        settings=_settings(),
        graph=reply_graph,
        task_client=TaskServiceClient("http://tasks", transport=_mock(tasks_handler)),
        assistant_client=AssistantStreamClient("http://assistant", transport=_mock(assistant_handler)),
    ))

    r = client.post("/api/taskstudio/process-due")

    assert r.json() == {"success": True, "count": 1, "processed": [{"id": "t1", "status": "completed"}]}
    update = next(c for c in calls if c[0] == "PUT")
    assert update[1] == "/tasks/taskstudio/t1/update/"
    assert json.loads(update[2]) == {"status": "completed", "result": "Summary"}
    assert any(path == "/conversations/save/" for _, path, _ in calls)


def test_process_due_reports_listing_failure(reply_graph):
    client = TestClient(create_app(
        settings=_settings(),
        graph=reply_graph,
        task_client=TaskServiceClient("http://tasks", transport=_mock(
            lambda request: httpx.Response(401, text="token expired")
        )),
        assistant_client=AssistantStreamClient("http://assistant", transport=_mock(
            lambda request: httpx.Response(200)
        )),
    ))

    r = client.post("/api/taskstudio/process-due")

    assert r.status_code == 502
    assert r.json() == {"success": False, "error": "Failed to fetch scheduled tasks: token expired"}


def test_health_and_tools(client):
    health = client.get("/health").json()
    assert health["status"] == "healthy"

    tools = {t["id"] for t in client.get("/api/tools").json()["tools"]}
    assert {"docx_ai", "tiptap_ai", "store_memory"} <= tools
