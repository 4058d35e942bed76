"""Stream control routes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST

from multistream.dependencies import get_session_manager
from multistream.exceptions import StreamManagerError, ValidationError
from multistream.models import ExtractStreamRequest, StartStreamRequest, StopStreamRequest
from multistream.recordings import list_recordings
from multistream.session_manager import SessionManager

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health_check(manager: SessionManager = Depends(get_session_manager)):
    """Health check endpoint.

    Returns:
        dict: Health status and number of active streams.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": manager.config.service_name,
        "activeStreams": len(manager.list_streams()),
    }


@router.get("/api/streams")
async def list_streams(manager: SessionManager = Depends(get_session_manager)):
    return manager.list_streams()


@router.get("/api/streams/{stream_id}")
async def get_stream(stream_id: str, manager: SessionManager = Depends(get_session_manager)):
    """Get one stream with its settings, telemetry and encoder health.

    Raises:
        NotFoundError: If the stream is not running (404).
    """
    session = manager.get_stream(stream_id)
    detail = session.to_detail()
    detail["health"] = manager.get_stream_health(stream_id).to_dict()
    return detail


@router.post("/extract-stream")
async def extract_stream(
    body: ExtractStreamRequest,
    manager: SessionManager = Depends(get_session_manager),
):
    """Resolve a page URL to a direct stream URL.

    Failures are reported in the body with HTTP 200 so the client can show
    the message next to the input field.
    """
    try:
        result = await manager.extract_source(body.url)
    except StreamManagerError as e:
        logger.info(f"Extraction failed for {body.url!r}: {e.message}")
        return {"success": False, "message": e.message}

    return {
        "success": True,
        "stream_url": result.stream_url,
        "original_url": result.original_url,
    }


@router.post("/api/stream/start")
async def start_stream(
    body: StartStreamRequest,
    manager: SessionManager = Depends(get_session_manager),
):
    """Start streaming a source to the enabled destinations.

    Returns:
        dict: Start result with the new stream id.

    Raises:
        ValidationError: Missing source or no usable destination (400).
        SpawnError: Encoder could not be started (500).
    """
    stream_id = await manager.start_stream(body.source_url, body.destinations, body.settings)
    return {"success": True, "streamId": stream_id, "message": "Stream started successfully"}


@router.post("/api/stream/stop")
async def stop_stream(
    body: StopStreamRequest,
    manager: SessionManager = Depends(get_session_manager),
):
    """Stop a running stream.

    Raises:
        ValidationError: streamId missing (400).
        NotFoundError: Unknown stream (404).
    """
    if body.stream_id is None or str(body.stream_id) == "":
        raise ValidationError("streamId is required", field="streamId")

    await manager.stop_stream(str(body.stream_id))
    return {"success": True, "message": "Stream stopped successfully"}


@router.get("/api/recordings")
def get_recordings(manager: SessionManager = Depends(get_session_manager)):
    return {"recordings": list_recordings(manager.config.recordings_dir)}


@router.get("/metrics")
async def metrics(manager: SessionManager = Depends(get_session_manager)):
    """Prometheus metrics endpoint."""
    return Response(content=manager.metrics.generate(), media_type=CONTENT_TYPE_LATEST)
