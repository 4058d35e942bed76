"""Thread-safe registry of stream sessions."""

import logging
import threading
from typing import Dict, List, Optional

from multistream.models import StreamSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps session ids to sessions; the single source of truth for what is running.

    Mutated from request handlers (start, stop) and from encoder exit
    callbacks, so every access goes through one lock. ``remove`` doubles as
    the claim operation for teardown: of a stop request and an exit
    callback racing on the same id, only the caller that receives the
    session back performs cleanup.
    """

    def __init__(self):
        self._sessions: Dict[str, StreamSession] = {}
        self._lock = threading.Lock()

    def put(self, session_id: str, session: StreamSession) -> None:
        with self._lock:
            if session_id in self._sessions:
                raise KeyError(f"Session already registered: {session_id}")
            self._sessions[session_id] = session
        logger.debug(f"Registered session {session_id}")

    def get(self, session_id: str) -> Optional[StreamSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[StreamSession]:
        """Remove a session.

        Args:
            session_id: Session identifier

        Returns:
            The removed session, or None if it was not registered
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.debug(f"Removed session {session_id}")
        return session

    def list(self) -> List[dict]:
        """Snapshot of all session summaries, oldest first."""
        with self._lock:
            sessions = list(self._sessions.values())
        return [session.to_summary() for session in sessions]

    def sessions(self) -> List[StreamSession]:
        with self._lock:
            return list(self._sessions.values())

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions.keys())

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
