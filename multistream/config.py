"""
Stream manager configuration and encoding defaults.

Provides the service settings loaded from environment variables and the
fixed encoding defaults applied to every stream invocation.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


@dataclass(frozen=True)
class EncodingDefaults:
    """Encoding values used when a start request leaves a setting out."""

    preset: str = "veryfast"
    video_bitrate: int = 2500  # kbps
    resolution: str = "1280x720"
    framerate: int = 30
    audio_bitrate: int = 128  # kbps
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    audio_sample_rate: int = 44100
    audio_channels: int = 2


DEFAULT_SETTINGS = EncodingDefaults()

# x264 presets accepted from clients
VALID_PRESETS = (
    "ultrafast",
    "superfast",
    "veryfast",
    "faster",
    "fast",
    "medium",
    "slow",
    "slower",
    "veryslow",
)


class StreamManagerConfig(BaseSettings):
    """MultiStream backend configuration from environment variables."""

    # Service
    service_name: str = Field(
        default="MultiStream Studio",
        description="Service name reported by health and connection messages",
    )
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, description="HTTP port", ge=1, le=65535)
    debug: bool = Field(default=False, description="Expose internal error messages")
    cors_origins: List[str] = Field(
        default=["*"],
        description="Origins allowed to call the control API",
    )

    # Encoder
    ffmpeg_binary: str = Field(default="ffmpeg", description="Path to FFmpeg binary")
    ffmpeg_log_level: str = Field(
        default="verbose",
        description="FFmpeg log level passed to every encoder invocation",
    )
    read_chunk_size: int = Field(
        default=4096,
        description="Bytes read from encoder output per chunk",
        ge=256,
        le=65536,
    )
    kill_timeout: float = Field(
        default=5.0,
        description="Seconds between SIGTERM and SIGKILL for a stopping encoder",
        ge=0.1,
        le=60.0,
    )
    output_tail_lines: int = Field(
        default=20,
        description="Encoder output lines kept for crash diagnostics",
        ge=1,
        le=1000,
    )

    # Recordings
    recordings_dir: Path = Field(
        default=Path("/recordings"),
        description="Directory for local stream recordings",
    )

    # Source resolver
    ytdlp_binary: str = Field(default="yt-dlp", description="Path to yt-dlp binary")
    extract_timeout: float = Field(
        default=30.0,
        description="Wall-clock budget for resolving a source URL (seconds)",
        ge=1.0,
        le=300.0,
    )

    # Observers
    observer_queue_size: int = Field(
        default=256,
        description="Pending events kept per observer before dropping",
        ge=1,
        le=10000,
    )

    # Process health thresholds
    cpu_threshold_percent: float = Field(default=90.0, ge=1.0, le=1000.0)
    memory_threshold_mb: float = Field(default=2048.0, ge=1.0)

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Python log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(default="text", description="Console log format: text or json")
    log_file: str = Field(default="", description="Optional rotating log file path")
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    log_file_backup_count: int = Field(default=5, ge=1)

    model_config = ConfigDict(
        env_prefix="MULTISTREAM_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra fields from environment
    )

    def validate_logging(self) -> None:
        """Validate logging related values.

        Raises:
            ValueError: If the log level or format is unknown
        """
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            raise ValueError(
                f"Invalid log_level: {self.log_level}. Must be one of {valid_log_levels}"
            )
        if self.log_format not in ("text", "json"):
            raise ValueError(f"Invalid log_format: {self.log_format}. Must be text or json")


def get_config() -> StreamManagerConfig:
    """
    Get stream manager configuration from environment variables.

    Returns:
        StreamManagerConfig: Configuration instance
    """
    config = StreamManagerConfig()
    config.validate_logging()
    return config
