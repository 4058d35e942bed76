"""
Event broadcaster for real-time session updates.

Each observer owns a bounded queue that is drained by its own sender task,
so publishing never waits on a slow or dead connection. Full queues drop the
message (logged) instead of blocking.
"""

import asyncio
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

CONNECTED = "connected"
STREAM_STARTED = "stream_started"
STREAM_STATS = "stream_stats"
STREAM_ERROR = "stream_error"
STREAM_STOPPED = "stream_stopped"


class Observer:
    """A subscribed listener and its pending event queue."""

    def __init__(self, observer_id: str, queue_size: int):
        self.id = observer_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.connected_at = datetime.now(timezone.utc)
        self.closed = False
        self.dropped = 0

    def deliver(self, message: Dict[str, Any]) -> bool:
        """Queue a message without waiting.

        Returns:
            True if queued, False if the observer is closed or its queue is full
        """
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Send queue full for observer {self.id}, dropping message type: "
                f"{message.get('type')}"
            )
            return False

    async def next_message(self) -> Dict[str, Any]:
        return await self.queue.get()

    def close(self) -> None:
        self.closed = True


class EventBroadcaster:
    """Registry of observers with subscribe, unsubscribe and publish."""

    def __init__(self, queue_size: int = 256, service_name: str = "MultiStream Studio"):
        """
        Initialize event broadcaster.

        Args:
            queue_size: Pending events kept per observer
            service_name: Name used in the connection acknowledgement
        """
        self.queue_size = queue_size
        self.service_name = service_name
        self._observers: Dict[str, Observer] = {}
        self._lock = threading.Lock()

    def subscribe(self, client_id: Optional[str] = None) -> Observer:
        """
        Register a new observer.

        The connection acknowledgement is queued before the observer becomes
        visible to publish, so it is always the first event it receives.

        Args:
            client_id: Optional client identifier

        Returns:
            Observer handle
        """
        observer = Observer(client_id or str(uuid.uuid4()), self.queue_size)
        observer.deliver(
            {
                "type": CONNECTED,
                "message": f"Connected to {self.service_name}",
                "clientId": observer.id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )
        with self._lock:
            self._observers[observer.id] = observer
            total = len(self._observers)
        logger.info(f"Observer connected: {observer.id}. Total observers: {total}")
        return observer

    def unsubscribe(self, observer: Observer) -> None:
        """Remove an observer; unknown or already removed observers are ignored."""
        observer.close()
        with self._lock:
            removed = self._observers.pop(observer.id, None)
            total = len(self._observers)
        if removed is not None:
            logger.info(f"Observer disconnected: {observer.id}. Total observers: {total}")

    def publish(self, event_type: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """
        Queue an event for every open observer.

        Args:
            event_type: Event type (stream_stats, stream_error, ...)
            payload: Event fields, merged into the top level of the message

        Returns:
            Number of observers the event was queued for
        """
        message = {"type": event_type, **(payload or {})}
        if "timestamp" not in message:
            message["timestamp"] = datetime.now(timezone.utc).isoformat()

        with self._lock:
            observers: List[Observer] = list(self._observers.values())

        delivered = 0
        for observer in observers:
            if observer.deliver(message):
                delivered += 1

        logger.debug(f"Queued {event_type} to {delivered}/{len(observers)} observers")
        return delivered

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def close_all(self) -> None:
        with self._lock:
            observers = list(self._observers.values())
            self._observers.clear()
        for observer in observers:
            observer.close()
