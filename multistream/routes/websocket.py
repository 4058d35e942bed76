"""WebSocket routes for real-time stream events."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from multistream.broadcaster import Observer
from multistream.dependencies import get_ws_session_manager

logger = logging.getLogger(__name__)
router = APIRouter()


async def _send_loop(websocket: WebSocket, observer: Observer) -> None:
    """Drain the observer queue into the socket; the only writer for this connection."""
    while True:
        message = await observer.next_message()
        await websocket.send_json(message)


@router.websocket("/ws")
@router.websocket("/")
async def websocket_endpoint(websocket: WebSocket, client_id: Optional[str] = Query(None)):
    """WebSocket endpoint for real-time updates.

    Clients receive a ``connected`` acknowledgement, then:
    - stream_started: Encoder launched for a new stream
    - stream_stats: Bitrate, fps and elapsed time
    - stream_error: Encoder exited abnormally
    - stream_stopped: Stream stopped or finished

    A ``{"type": "ping"}`` message is answered with ``pong``.

    Args:
        websocket: WebSocket connection.
        client_id: Optional client identifier.
    """
    manager = get_ws_session_manager(websocket)
    await websocket.accept()

    observer = manager.broadcaster.subscribe(client_id)
    sender = asyncio.create_task(_send_loop(websocket, observer), name=f"ws-{observer.id}")

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from client {observer.id}")
                continue

            if isinstance(message, dict) and message.get("type") == "ping":
                observer.deliver({"type": "pong", "timestamp": datetime.now(timezone.utc).isoformat()})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error for {observer.id}: {e}", exc_info=True)
    finally:
        manager.broadcaster.unsubscribe(observer)
        sender.cancel()
        results = await asyncio.gather(sender, return_exceptions=True)
        error = results[0]
        if isinstance(error, Exception):
            logger.debug(f"Sender for {observer.id} ended with {error!r}")
