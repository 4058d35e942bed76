"""MultiStream Studio backend.

Streams one video source to many RTMP destinations through FFmpeg and
reports progress to connected clients in real time.
"""

__version__ = "1.0.0"

from multistream.config import StreamManagerConfig, get_config  # noqa: E402
from multistream.exceptions import (  # noqa: E402
    EncoderRuntimeError,
    ExtractionError,
    ExtractTimeoutError,
    NotFoundError,
    SpawnError,
    StreamManagerError,
    ValidationError,
)
from multistream.session_manager import SessionManager  # noqa: E402

__all__ = [
    "SessionManager",
    "StreamManagerConfig",
    "get_config",
    "StreamManagerError",
    "ValidationError",
    "SpawnError",
    "EncoderRuntimeError",
    "NotFoundError",
    "ExtractionError",
    "ExtractTimeoutError",
]
