"""
Encoder output parser.

Extracts progress telemetry (bitrate, fps, elapsed time) from FFmpeg output
chunks and classifies error lines so abnormal exits can be described.
"""

import logging
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

BITRATE_PATTERN = re.compile(r"bitrate=\s*([\d.]+)kbits/s")
FPS_PATTERN = re.compile(r"fps=\s*(\d+)")
TIME_PATTERN = re.compile(r"time=(\d+:\d+:\d+)")

DEFAULT_TIME = "00:00:00"


@dataclass(frozen=True)
class TelemetryStats:
    """Most recent encoder progress values."""

    bitrate: float = 0.0  # kbps
    fps: int = 0
    time: str = DEFAULT_TIME

    def to_dict(self) -> Dict:
        return asdict(self)


def parse_stats(output: str) -> Optional[TelemetryStats]:
    """
    Parse one chunk of encoder output into telemetry stats.

    Each chunk is parsed on its own; a progress line split across two chunks
    yields whatever fields each half contains.

    Args:
        output: Raw text read from the encoder

    Returns:
        TelemetryStats if a bitrate or fps value is present, None otherwise
    """
    bitrate_match = BITRATE_PATTERN.search(output)
    fps_match = FPS_PATTERN.search(output)

    if not bitrate_match and not fps_match:
        return None

    time_match = TIME_PATTERN.search(output)

    try:
        bitrate = float(bitrate_match.group(1)) if bitrate_match else 0.0
    except ValueError:
        # e.g. "bitrate=1.2.3kbits/s" from a garbled chunk
        bitrate = 0.0

    return TelemetryStats(
        bitrate=bitrate,
        fps=int(fps_match.group(1)) if fps_match else 0,
        time=time_match.group(1) if time_match else DEFAULT_TIME,
    )


class ErrorType(str, Enum):
    """Types of encoder errors."""

    CONNECTION_FAILED = "connection_failed"
    INVALID_CODEC = "invalid_codec"
    FILE_NOT_FOUND = "file_not_found"
    RTMP_ERROR = "rtmp_error"
    IO_ERROR = "io_error"
    INVALID_INPUT = "invalid_input"
    MEMORY_ERROR = "memory_error"
    UNKNOWN = "unknown"


@dataclass
class EncoderError:
    """An error line found in encoder output."""

    error_type: ErrorType
    message: str
    raw_line: str


class EncoderLogParser:
    """
    Classifies error lines in encoder output.

    Uses regex patterns to identify the most likely cause of a failure. The
    parser remembers the last classified error so the supervisor can attach
    it to a crash report.
    """

    ERROR_PATTERNS = {
        ErrorType.CONNECTION_FAILED: [
            r"Connection (?:refused|timed out|reset)",
            r"Failed to connect",
            r"Unable to connect",
            r"Network is unreachable",
        ],
        ErrorType.RTMP_ERROR: [
            r"RTMP.*error",
            r"Failed to update RTMP",
            r"RTMP_Connect",
            r"Server error: ",
        ],
        ErrorType.FILE_NOT_FOUND: [
            r"No such file or directory",
            r"does not exist",
            r"404 Not Found",
        ],
        ErrorType.INVALID_CODEC: [
            r"Unknown (?:encoder|decoder|codec)",
            r"Unsupported codec",
            r"Error while opening encoder",
        ],
        ErrorType.INVALID_INPUT: [
            r"Invalid data found when processing input",
            r"Invalid argument",
            r"Protocol not found",
        ],
        ErrorType.IO_ERROR: [
            r"I/O error",
            r"Input/output error",
            r"Broken pipe",
        ],
        ErrorType.MEMORY_ERROR: [
            r"Cannot allocate memory",
            r"Out of memory",
        ],
    }

    COMPILED_PATTERNS: Dict[ErrorType, List[re.Pattern]] = {}

    @classmethod
    def _compile_patterns(cls) -> None:
        """Compile regex patterns for error detection."""
        if not cls.COMPILED_PATTERNS:
            for error_type, patterns in cls.ERROR_PATTERNS.items():
                cls.COMPILED_PATTERNS[error_type] = [
                    re.compile(pattern, re.IGNORECASE) for pattern in patterns
                ]

    def __init__(self):
        self._compile_patterns()
        self.last_error: Optional[EncoderError] = None
        self.error_count = 0

    def parse_line(self, line: str) -> Optional[EncoderError]:
        """
        Classify a single line of encoder output.

        Args:
            line: Line of FFmpeg output

        Returns:
            EncoderError if the line reports an error, None otherwise
        """
        line = line.strip()
        if not line:
            return None

        for error_type, patterns in self.COMPILED_PATTERNS.items():
            for pattern in patterns:
                if pattern.search(line):
                    return self._record(error_type, line)

        lowered = line.lower()
        if "[error]" in lowered or "[fatal]" in lowered or "error" in lowered:
            return self._record(ErrorType.UNKNOWN, line)

        return None

    def _record(self, error_type: ErrorType, line: str) -> EncoderError:
        error = EncoderError(
            error_type=error_type,
            message=self._extract_error_message(line),
            raw_line=line,
        )
        self.last_error = error
        self.error_count += 1
        logger.debug(f"Encoder {error_type.value}: {error.message}")
        return error

    def _extract_error_message(self, line: str) -> str:
        """Strip FFmpeg component prefixes and truncate long messages."""
        message = re.sub(r"^\[[^\]]+\]\s*", "", line)
        message = re.sub(r"^ffmpeg\s*:\s*", "", message, flags=re.IGNORECASE)

        if len(message) > 200:
            message = message[:197] + "..."

        return message.strip()

    def reset(self) -> None:
        self.last_error = None
        self.error_count = 0
