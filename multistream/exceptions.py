"""
Exceptions raised by the stream session manager.

Callers of the control operations receive these synchronously; failures of an
already running encoder are never raised and travel as ``stream_error``
events instead.
"""

from typing import Optional


class StreamManagerError(Exception):
    """Base exception for all stream manager errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(StreamManagerError):
    """Raised when a required input is missing or malformed."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, details)


class SpawnError(StreamManagerError):
    """Raised when an external program cannot be started."""

    def __init__(self, executable: str, message: Optional[str] = None):
        msg = message or f"Failed to start {executable}"
        super().__init__(msg, {"executable": executable})


class EncoderRuntimeError(StreamManagerError):
    """Describes an encoder that exited abnormally after it was running."""

    def __init__(
        self,
        session_id: str,
        exit_code: Optional[int],
        message: Optional[str] = None,
        error_type: Optional[str] = None,
    ):
        msg = message or f"Encoder exited with code {exit_code}"
        details = {"session_id": session_id, "exit_code": exit_code}
        if error_type:
            details["error_type"] = error_type
        super().__init__(msg, details)
        self.session_id = session_id
        self.exit_code = exit_code
        self.error_type = error_type


class NotFoundError(StreamManagerError):
    """Raised when an operation references an unknown session id."""

    def __init__(self, session_id: str):
        super().__init__(f"Stream not found: {session_id}", {"session_id": session_id})
        self.session_id = session_id


class ExtractionError(StreamManagerError):
    """Raised when the source resolver ran but produced no stream URL."""

    def __init__(self, url: str, message: Optional[str] = None):
        msg = message or "Invalid URL or stream not available"
        super().__init__(msg, {"url": url})


class ExtractTimeoutError(ExtractionError):
    """Raised when the source resolver exceeds its wall-clock budget."""

    def __init__(self, url: str, timeout: float):
        super().__init__(url, f"Stream extraction timed out after {timeout:g}s")
        self.details["timeout"] = timeout
