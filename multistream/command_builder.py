"""
Encoder command builder.

Constructs the FFmpeg argument list for a stream session: one source input,
a single x264/AAC encode, and one FLV output per destination plus an optional
local recording.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from multistream.config import DEFAULT_SETTINGS, StreamManagerConfig
from multistream.models import Destination, StreamSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncodingProfile:
    """Settings with defaults applied."""

    preset: str
    video_bitrate: int  # kbps
    resolution: str
    framerate: int
    audio_bitrate: int  # kbps
    recording: bool


def resolve_settings(settings: Optional[StreamSettings]) -> EncodingProfile:
    """Apply the fixed encoding defaults to client supplied settings."""
    settings = settings or StreamSettings()
    return EncodingProfile(
        preset=settings.preset or DEFAULT_SETTINGS.preset,
        video_bitrate=settings.video_bitrate or DEFAULT_SETTINGS.video_bitrate,
        resolution=settings.resolution or DEFAULT_SETTINGS.resolution,
        framerate=settings.framerate or DEFAULT_SETTINGS.framerate,
        audio_bitrate=settings.audio_bitrate or DEFAULT_SETTINGS.audio_bitrate,
        recording=settings.recording,
    )


def usable_destinations(destinations: Iterable[Destination]) -> List[Destination]:
    """Destinations that are enabled and have both an ingest URL and a key."""
    usable = []
    for dest in destinations:
        if dest.is_usable:
            usable.append(dest)
        else:
            logger.debug(f"Skipping destination {dest.name or dest.rtmp_url!r}: disabled or incomplete")
    return usable


class EncoderCommandBuilder:
    """
    Builds FFmpeg commands that fan one source out to many RTMP destinations.

    Commands are argument lists handed straight to the process launcher; no
    value supplied by a client ever passes through a shell.
    """

    def __init__(self, config: StreamManagerConfig):
        """
        Initialize command builder.

        Args:
            config: Stream manager configuration
        """
        self.config = config

    def build_command(
        self,
        source_url: str,
        destinations: Iterable[Destination],
        settings: Optional[StreamSettings] = None,
        recording_path: Optional[str] = None,
    ) -> List[str]:
        """
        Build the complete FFmpeg command for a session.

        Args:
            source_url: Input media URL
            destinations: Candidate destinations; unusable ones are skipped
            settings: Client settings (defaults are applied)
            recording_path: Local FLV path, appended as an extra output

        Returns:
            List of command arguments for the process launcher

        Raises:
            ValueError: If source_url is empty
        """
        if not source_url or not source_url.strip():
            raise ValueError("source_url cannot be empty")

        profile = resolve_settings(settings)

        cmd = [self.config.ffmpeg_binary]
        cmd.extend(self._build_global_options())
        cmd.extend(["-re", "-i", source_url])
        cmd.extend(self._build_video_encoding(profile))
        cmd.extend(self._build_audio_encoding(profile))

        for dest in usable_destinations(destinations):
            cmd.extend(self._build_output(dest.target_url))

        if recording_path:
            cmd.extend(self._build_output(recording_path))

        logger.debug(f"Built FFmpeg command with {cmd.count('-f')} outputs")
        return cmd

    def _build_global_options(self) -> List[str]:
        return [
            "-hide_banner",
            "-loglevel",
            self.config.ffmpeg_log_level,
        ]

    def _build_video_encoding(self, profile: EncodingProfile) -> List[str]:
        """Build x264 options; maxrate and bufsize follow the target bitrate."""
        return [
            "-c:v", DEFAULT_SETTINGS.video_codec,
            "-preset", profile.preset,
            "-b:v", f"{profile.video_bitrate}k",
            "-maxrate", f"{profile.video_bitrate}k",
            "-bufsize", f"{profile.video_bitrate * 2}k",
            "-s", profile.resolution,
            "-r", str(profile.framerate),
            "-g", str(profile.framerate * 2),  # Keyframe every 2 seconds
        ]

    def _build_audio_encoding(self, profile: EncodingProfile) -> List[str]:
        return [
            "-c:a", DEFAULT_SETTINGS.audio_codec,
            "-b:a", f"{profile.audio_bitrate}k",
            "-ar", str(DEFAULT_SETTINGS.audio_sample_rate),
            "-ac", str(DEFAULT_SETTINGS.audio_channels),
        ]

    def _build_output(self, target: str) -> List[str]:
        return ["-f", "flv", target]

    def recording_path_for(self, session_id: str, now: Optional[datetime] = None) -> str:
        """
        Build the recording file path for a session.

        The name carries a timestamp and the session id, so two sessions
        started within the same millisecond still get distinct files.

        Args:
            session_id: Session identifier
            now: Timestamp to embed (defaults to current UTC time)

        Returns:
            Absolute recording path as a string
        """
        now = now or datetime.now(timezone.utc)
        timestamp = now.strftime("%Y-%m-%dT%H-%M-%S-%f")[:-3] + "Z"
        return str(Path(self.config.recordings_dir) / f"stream-{timestamp}-{session_id}.flv")

    def get_command_string(self, cmd: List[str]) -> str:
        """
        Render a command for logging with stream keys masked.

        Args:
            cmd: Command arguments

        Returns:
            Space-separated command string
        """
        masked = []
        for arg in cmd:
            if arg.startswith(("rtmp://", "rtmps://")) and "/" in arg.split("://", 1)[1]:
                base, _, _key = arg.rpartition("/")
                masked.append(f"{base}/****")
            else:
                masked.append(arg)
        return " ".join(masked)
