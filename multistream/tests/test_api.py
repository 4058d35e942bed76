"""Tests for the HTTP and WebSocket API."""

import os
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from multistream.app import create_app
from multistream.exceptions import ExtractionError
from multistream.health import ProcessHealthReport, ProcessHealthStatus
from multistream.resolver import ExtractResult
from multistream.tests.conftest import FakeEncoderProcess


@pytest.fixture
def client(test_config, session_manager):
    """Test client whose lifespan uses the injected session manager."""
    app = create_app(test_config, session_manager=session_manager)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def start_body(sample_destinations):
    return {
        "sourceUrl": "http://src/live.m3u8",
        "destinations": sample_destinations,
        "settings": {"preset": "fast", "videoBitrate": 3000},
    }


def _start(client, body, fake=None):
    fake = fake or FakeEncoderProcess()
    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=fake)):
        return client.post("/api/stream/start", json=body)


class TestHealth:
    """Test the health endpoint."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "MultiStream Studio"
        assert data["activeStreams"] == 0
        assert "timestamp" in data


class TestStreamControl:
    """Test start, stop and listing."""

    def test_start_and_list(self, client, start_body):
        response = _start(client, start_body)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is True
        stream_id = data["streamId"]

        streams = client.get("/api/streams").json()
        assert [s["id"] for s in streams] == [stream_id]
        assert streams[0]["status"] == "active"
        assert client.get("/health").json()["activeStreams"] == 1

    def test_stream_detail(self, client, start_body):
        stream_id = _start(client, start_body, FakeEncoderProcess(pid=777)).json()["streamId"]
        report = ProcessHealthReport(status=ProcessHealthStatus.HEALTHY, pid=777)

        with patch("multistream.session_manager.check_process_health", return_value=report):
            response = client.get(f"/api/streams/{stream_id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["id"] == stream_id
        assert data["sourceUrl"] == "http://src/live.m3u8"
        assert data["pid"] == 777
        assert data["settings"]["preset"] == "fast"
        assert data["settings"]["videoBitrate"] == 3000
        assert data["health"]["status"] == "healthy"

    def test_stream_detail_unknown(self, client):
        response = client.get("/api/streams/unknown")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["success"] is False

    def test_start_without_destinations(self, client):
        response = _start(client, {"sourceUrl": "http://src/live", "destinations": []})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["success"] is False
        assert client.get("/api/streams").json() == []

    def test_start_empty_body(self, client):
        response = _start(client, {})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_start_invalid_settings(self, client, start_body):
        start_body["settings"] = {"resolution": "huge"}

        response = _start(client, start_body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_start_numeric_stream_key(self, client):
        body = {
            "sourceUrl": "rtsp://src",
            "destinations": [{"enabled": True, "rtmpUrl": "rtmp://a", "streamKey": 12345}],
            "settings": {"videoBitrate": 0, "recording": None},
        }

        response = _start(client, body)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is True

    def test_start_spawn_failure(self, client, start_body):
        with patch(
            "asyncio.create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError("ffmpeg")),
        ):
            response = client.post("/api/stream/start", json=start_body)

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["success"] is False
        assert client.get("/api/streams").json() == []

    def test_stop(self, client, start_body):
        fake = FakeEncoderProcess()
        stream_id = _start(client, start_body, fake).json()["streamId"]

        response = client.post("/api/stream/stop", json={"streamId": stream_id})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is True
        assert client.get("/api/streams").json() == []
        fake.terminate.assert_called_once()

    def test_stop_numeric_id(self, client, start_body):
        stream_id = _start(client, start_body).json()["streamId"]

        response = client.post("/api/stream/stop", json={"streamId": int(stream_id)})

        assert response.status_code == status.HTTP_200_OK

    def test_stop_unknown(self, client):
        response = client.post("/api/stream/stop", json={"streamId": "nope"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["message"] == "Stream not found: nope"

    def test_stop_missing_id(self, client):
        response = client.post("/api/stream/stop", json={})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestExtractStream:
    """Test source extraction endpoint."""

    def test_success(self, client, session_manager):
        session_manager.resolver.resolve = AsyncMock(
            return_value=ExtractResult(stream_url="https://cdn/x.m3u8", original_url="https://youtu.be/x")
        )

        response = client.post("/extract-stream", json={"url": "https://youtu.be/x"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "success": True,
            "stream_url": "https://cdn/x.m3u8",
            "original_url": "https://youtu.be/x",
        }

    def test_failure_is_200(self, client, session_manager):
        session_manager.resolver.resolve = AsyncMock(side_effect=ExtractionError("https://youtu.be/x"))

        response = client.post("/extract-stream", json={"url": "https://youtu.be/x"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "success": False,
            "message": "Invalid URL or stream not available",
        }

    def test_empty_url(self, client):
        with patch("asyncio.create_subprocess_exec", AsyncMock()) as mock_exec:
            response = client.post("/extract-stream", json={"url": ""})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is False
        mock_exec.assert_not_called()

    def test_null_url(self, client):
        with patch("asyncio.create_subprocess_exec", AsyncMock()) as mock_exec:
            response = client.post("/extract-stream", json={"url": None})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is False
        mock_exec.assert_not_called()

    def test_missing_url(self, client):
        response = client.post("/extract-stream", json={})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestRecordingsAndMetrics:
    """Test recordings listing and metrics exposition."""

    def test_recordings_without_directory(self, client):
        response = client.get("/api/recordings")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"recordings": []}

    def test_recordings(self, client, test_config):
        test_config.recordings_dir.mkdir(parents=True)
        (test_config.recordings_dir / "stream-1.flv").write_bytes(b"flv")
        (test_config.recordings_dir / "notes.txt").write_text("x")

        recordings = client.get("/api/recordings").json()["recordings"]

        assert [r["name"] for r in recordings] == ["stream-1.flv"]
        assert recordings[0]["size"] == 3
        assert recordings[0]["path"] == os.path.join(str(test_config.recordings_dir), "stream-1.flv")

    def test_metrics(self, client, start_body):
        _start(client, start_body)

        response = client.get("/metrics")

        assert response.status_code == status.HTTP_200_OK
        assert "multistream_active_sessions 1.0" in response.text
        assert "multistream_sessions_started_total 1.0" in response.text


class TestWebSocket:
    """Test the real-time event channel."""

    def test_connected_message(self, client):
        with client.websocket_connect("/ws") as websocket:
            message = websocket.receive_json()

        assert message["type"] == "connected"
        assert message["message"] == "Connected to MultiStream Studio"

    def test_root_path(self, client):
        with client.websocket_connect("/") as websocket:
            assert websocket.receive_json()["type"] == "connected"

    def test_ping_pong(self, client):
        with client.websocket_connect("/ws?client_id=abc") as websocket:
            assert websocket.receive_json()["clientId"] == "abc"
            websocket.send_text('{"type": "ping"}')

            assert websocket.receive_json()["type"] == "pong"

    def test_invalid_json_ignored(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()
            websocket.send_text("not json")
            websocket.send_text('{"type": "ping"}')

            assert websocket.receive_json()["type"] == "pong"

    def test_receives_stream_events(self, client, start_body):
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()

            stream_id = _start(client, start_body).json()["streamId"]
            started = websocket.receive_json()

            client.post("/api/stream/stop", json={"streamId": stream_id})
            stopped = websocket.receive_json()

        assert started["type"] == "stream_started"
        assert started["streamId"] == stream_id
        assert len(started["destinations"]) == 3
        assert stopped == {"type": "stream_stopped", "streamId": stream_id, "timestamp": stopped["timestamp"]}
