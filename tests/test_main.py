import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from conftest import FakeDevice
from cruise_control.audio.pipeline import AudioPipeline
from cruise_control.bot.session_manager import StreamingSessionManager
from cruise_control.controller import CallController
from cruise_control.main import app


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def api(client_factory, device, tmp_path):
    """TestClient whose controller uses fake audio and agent connections."""
    manager = StreamingSessionManager(api_key="test-api-key", client_factory=client_factory)
    controller = CallController(
        session_manager=manager,
        pipeline_factory=lambda on_volume: AudioPipeline(on_volume=on_volume,
                                                         device_factory=lambda: device),
        recordings_dir=tmp_path,
    )
    with patch("cruise_control.main.controller", controller), \
            patch("cruise_control.main.RECORDINGS_DIR", tmp_path):
        with TestClient(app) as client:
            yield client
            if controller.state.value != "IDLE":
                client.post("/call/end")


def test_root_endpoint(api):
    """Test the root endpoint returns the correct API information"""
    response = api.get("/")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["name"] == "Cruise Control"
    assert response_json["version"] == "1.0.0"
    assert "/call/engage" in response_json["endpoints"]
    assert "/health" in response_json["endpoints"]


def test_health_check(api):
    """Test the health check endpoint returns correct response"""
    response = api.get("/health")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["status"] == "healthy"
    assert response_json["api_key_configured"] is True
    assert response_json["state"] == "IDLE"


def test_full_call_flow(api, client_factory):
    response = api.put("/call/config", json={"target": "Kevin", "mode": "NEGOTIATE",
                                             "goal": "waive late fee"})
    assert response.status_code == 200
    assert response.json()["mode"] == "NEGOTIATE"

    response = api.post("/call/start")
    assert response.status_code == 200
    assert response.json()["state"] == "ACTIVE"

    response = api.post("/call/engage")
    assert response.status_code == 200
    assert response.json()["state"] == "AGENT_ENGAGED"
    assert response.json()["agent_connected"] is True
    assert "waive late fee" in client_factory.clients[0].directive

    response = api.post("/call/disengage")
    assert response.json()["state"] == "ACTIVE"

    response = api.post("/call/end")
    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "IDLE"
    assert body["recording"]["filename"].startswith("cruise-control-Kevin-")
    assert body["recording"]["mime_type"] == "audio/wav"

    download = api.get(body["recording"]["url"])
    assert download.status_code == 200
    assert download.headers["content-type"] == "audio/wav"
    assert download.content.startswith(b"RIFF")
    assert len(download.content) == body["recording"]["size"]


def test_start_with_target_in_body(api):
    response = api.post("/call/start", json={"target": "Stuart"})

    assert response.status_code == 200
    assert response.json()["target"] == "Stuart"


def test_start_without_target_is_rejected(api):
    response = api.post("/call/start")

    assert response.status_code == 409
    assert response.json()["detail"] == "A call target is required"


def test_start_with_microphone_denied(api, device):
    device.fail_input = True

    response = api.post("/call/start", json={"target": "Kevin"})

    assert response.status_code == 503
    assert response.json() == {"detail": "Permission denied", "state": "IDLE"}


def test_engage_failure_reports_bad_gateway(api, client_factory):
    api.post("/call/start", json={"target": "Kevin"})
    client_factory.fail = True

    response = api.post("/call/engage", json={"mode": "CASUAL"})

    assert response.status_code == 502
    assert response.json()["state"] == "ACTIVE"


def test_target_cannot_change_during_call(api):
    api.post("/call/start", json={"target": "Kevin"})

    response = api.put("/call/config", json={"target": "Stuart"})

    assert response.status_code == 409


def test_intents_rejected_while_idle(api):
    assert api.post("/call/engage").status_code == 409
    assert api.post("/call/disengage").status_code == 409
    assert api.post("/call/end").status_code == 409


def test_invalid_mode_is_unprocessable(api):
    response = api.put("/call/config", json={"mode": "SHOUT"})

    assert response.status_code == 422


def test_missing_recording_returns_404(api):
    response = api.get("/recordings/cruise-control-nobody.wav")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_telemetry_pushes_snapshots_until_disconnect():
    """The telemetry websocket sends snapshots until the client goes away"""
    mock_websocket = AsyncMock()
    mock_websocket.send_json.side_effect = [None, WebSocketDisconnect()]

    with patch("cruise_control.main.TELEMETRY_INTERVAL", 0):
        websocket_route = next(route for route in app.routes if route.path == "/ws/telemetry")
        await websocket_route.endpoint(mock_websocket)

    mock_websocket.accept.assert_awaited_once()
    assert mock_websocket.send_json.await_count == 2
    assert mock_websocket.send_json.await_args_list[0].args[0]["state"] == "IDLE"
