"""Tests for the REST and WebSocket surfaces."""

import asyncio
import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from agentos_workbench.application.api.api_server import create_app
from agentos_workbench.domain.models.session_state import SessionStatus, StreamRequest
from agentos_workbench.domain.session.session_reducer import SessionReducer, new_session
from agentos_workbench.domain.session.session_store import SessionStore
from agentos_workbench.infrastructure.config import WorkbenchSettings

from tests import frames


class FakeSource:
    """Replays the same frames for every request"""

    def __init__(self, items):
        self.items = items
        self.payloads = []

    async def stream(self, session, request):
        self.payloads.append((session.id, request.input, request.workflow_id))
        for item in self.items:
            yield item


class StalledSource:
    """Yields one frame, then never finishes"""

    async def stream(self, session, request):
        yield frames.text_delta("partial", stream_id="rt-1")
        await asyncio.Event().wait()


def wait_for(client, session_id, ready, attempts=50):
    for _ in range(attempts):
        session = client.get(f"/api/v1/sessions/{session_id}").json()
        if ready(session):
            return session
        time.sleep(0.02)
    return session


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def source():
    return FakeSource([
        frames.text_delta("Hello", stream_id="rt-1"),
        frames.text_delta(" world", stream_id="rt-1"),
        frames.final_response("Hello world!", stream_id="rt-1"),
    ])


@pytest.fixture
def client(store, source):
    app = create_app(WorkbenchSettings(log_format="console"), store=store, source=source)
    with TestClient(app) as test_client:
        yield test_client


class TestSessionRoutes:

    def test_create_and_fetch(self, client):
        response = client.post("/api/v1/sessions", json={
            "targetType": "agency", "targetId": "agency-1", "sessionId": "sess-1"
        })

        assert response.status_code == 201
        assert response.json()["target_type"] == "agency"

        fetched = client.get("/api/v1/sessions/sess-1").json()
        assert fetched["status"] == "idle"
        assert fetched["target_id"] == "agency-1"

    def test_list_sessions(self, client):
        client.post("/api/v1/sessions", json={"sessionId": "sess-1"})
        client.post("/api/v1/sessions", json={"sessionId": "sess-2"})

        summaries = client.get("/api/v1/sessions").json()

        assert {summary["session_id"] for summary in summaries} == {"sess-1", "sess-2"}

    def test_unknown_session_is_404(self, client):
        response = client.get("/api/v1/sessions/missing")

        assert response.status_code == 404
        assert "missing" in response.json()["detail"]

    def test_submit_runs_stream(self, client, source):
        client.post("/api/v1/sessions", json={"sessionId": "sess-1", "targetId": "persona-1"})

        response = client.post("/api/v1/sessions/sess-1/requests", json={"input": "hi", "workflowId": "wf-9"})

        assert response.status_code == 202
        assert response.json()["status"] == "streaming"

        session = wait_for(client, "sess-1", lambda s: s["status"] == "completed")
        assert session["status"] == "completed"
        assert source.payloads == [("sess-1", "hi", "wf-9")]
        assert session["transcript"][0]["text"] == "Hello world!"
        assert session["last_stream_id"] == "rt-1"

    def test_shutdown_terminates_running_stream(self, store):
        app = create_app(WorkbenchSettings(log_format="console"), store=store, source=StalledSource())

        with TestClient(app) as test_client:
            test_client.post("/api/v1/sessions", json={"sessionId": "sess-1"})
            test_client.post("/api/v1/sessions/sess-1/requests", json={"input": "hi"})
            session = wait_for(test_client, "sess-1", lambda s: s["text_buffer"] == "partial")
            assert session["status"] == "streaming"
            assert len(app.state.consumer.tasks) == 1

        session = store.sessions["sess-1"]
        assert session.status == SessionStatus.ERRORED
        assert session.diagnostics[-1].message == "Stream cancelled by client"
        assert app.state.consumer.tasks == set()

    def test_empty_input_is_rejected(self, client):
        client.post("/api/v1/sessions", json={"sessionId": "sess-1"})

        response = client.post("/api/v1/sessions/sess-1/requests", json={"input": ""})

        assert response.status_code == 422

    def test_submit_while_streaming_is_409(self, client, store):
        store.sessions["sess-1"] = SessionReducer().submit(
            new_session("sess-1"), StreamRequest(input="first"), stream_id="s1"
        )

        response = client.post("/api/v1/sessions/sess-1/requests", json={"input": "second"})

        assert response.status_code == 409
        assert response.json()["stream_id"] == "s1"

    def test_terminate_then_settle(self, client, store):
        store.sessions["sess-1"] = SessionReducer().submit(
            new_session("sess-1"), StreamRequest(input="first"), stream_id="s1"
        )

        terminated = client.post("/api/v1/sessions/sess-1/terminate", json={"reason": "user stop"}).json()

        assert terminated["status"] == "errored"
        assert terminated["diagnostics"][0]["kind"] == "IncompleteStream"
        assert terminated["diagnostics"][0]["fatal"] is True

        settled = client.post("/api/v1/sessions/sess-1/settle").json()
        assert settled["status"] == "idle"

    def test_activate_and_delete(self, client, store):
        client.post("/api/v1/sessions", json={"sessionId": "sess-1"})
        client.post("/api/v1/sessions", json={"sessionId": "sess-2"})

        assert client.post("/api/v1/sessions/sess-1/activate").status_code == 200
        assert store.active_session_id == "sess-1"

        assert client.delete("/api/v1/sessions/sess-1").status_code == 204
        assert client.get("/api/v1/sessions/sess-1").status_code == 404

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert "metrics" in body


class TestSessionWebSocket:

    def test_unknown_session_is_closed(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/sessions/missing") as websocket:
                websocket.receive_json()

        assert exc_info.value.code == 1008

    def test_initial_snapshot(self, client):
        client.post("/api/v1/sessions", json={"sessionId": "sess-1"})

        with client.websocket_connect("/ws/sessions/sess-1") as websocket:
            connection = websocket.receive_json()
            snapshot = websocket.receive_json()

        assert connection["type"] == "connection"
        assert connection["status"] == "connected"
        assert snapshot["type"] == "snapshot"
        assert snapshot["payload"]["id"] == "sess-1"

    def test_user_message_streams_snapshots(self, client):
        client.post("/api/v1/sessions", json={"sessionId": "sess-1"})

        with client.websocket_connect("/ws/sessions/sess-1") as websocket:
            websocket.receive_json()
            websocket.receive_json()

            websocket.send_json({"type": "user_message", "content": "hi"})

            statuses = []
            for _ in range(10):
                event = websocket.receive_json()
                statuses.append(event["payload"]["status"])
                if statuses[-1] == "completed":
                    break

        assert statuses[0] == "streaming"
        assert statuses[-1] == "completed"

    def test_unsupported_message(self, client):
        client.post("/api/v1/sessions", json={"sessionId": "sess-1"})

        with client.websocket_connect("/ws/sessions/sess-1") as websocket:
            websocket.receive_json()
            websocket.receive_json()

            websocket.send_json({"type": "dance"})
            event = websocket.receive_json()

        assert event["type"] == "error"
        assert event["error_code"] == "unsupported"
