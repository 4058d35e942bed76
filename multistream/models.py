"""
Data models for stream sessions.

Boundary models (destinations, settings and request bodies) are pydantic
models using the camelCase names clients send; the in-memory session record
is a plain dataclass owned by the session manager.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from multistream.config import VALID_PRESETS
from multistream.log_parser import TelemetryStats

RESOLUTION_PATTERN = re.compile(r"^\d{2,5}x\d{2,5}$")


class SessionStatus(str, Enum):
    """Stream session states."""

    ACTIVE = "active"
    STOPPED = "stopped"
    ERRORED = "errored"


class Destination(BaseModel):
    """An outbound RTMP ingest endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", coerce_numbers_to_str=True)

    enabled: bool = False
    rtmp_url: Optional[str] = Field(default=None, alias="rtmpUrl")
    stream_key: Optional[str] = Field(default=None, alias="streamKey")
    name: Optional[str] = None
    platform: Optional[str] = None

    @property
    def is_usable(self) -> bool:
        """True if this destination is enabled and fully populated."""
        return bool(self.enabled and self.rtmp_url and self.stream_key)

    @property
    def target_url(self) -> str:
        """Full publish URL (ingest base plus stream key)."""
        return f"{(self.rtmp_url or '').rstrip('/')}/{self.stream_key}"

    def to_summary(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class StreamSettings(BaseModel):
    """Encoding settings as sent by the client; every field is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    preset: Optional[str] = None
    video_bitrate: Optional[int] = Field(default=None, alias="videoBitrate", gt=0, le=100000)
    resolution: Optional[str] = None
    framerate: Optional[int] = Field(default=None, gt=0, le=240)
    audio_bitrate: Optional[int] = Field(default=None, alias="audioBitrate", gt=0, le=1024)
    recording: bool = False

    @field_validator("video_bitrate", "framerate", "audio_bitrate", mode="before")
    @classmethod
    def _blank_number_to_default(cls, value: Any) -> Any:
        if value is None or value == "" or value == 0:
            return None
        if isinstance(value, float):
            return round(value)
        return value

    @field_validator("recording", mode="before")
    @classmethod
    def _blank_recording_to_false(cls, value: Any) -> Any:
        if value is None or value == "":
            return False
        return value

    @field_validator("preset")
    @classmethod
    def _check_preset(cls, value: Optional[str]) -> Optional[str]:
        if value and value not in VALID_PRESETS:
            raise ValueError(f"preset must be one of {', '.join(VALID_PRESETS)}")
        return value or None

    @field_validator("resolution")
    @classmethod
    def _check_resolution(cls, value: Optional[str]) -> Optional[str]:
        if value and not RESOLUTION_PATTERN.match(value):
            raise ValueError("resolution must look like 1280x720")
        return value or None


class StartStreamRequest(BaseModel):
    """Body of a start request.

    Fields are loosely typed here so that missing or malformed values surface
    as a 400 from the session manager rather than a schema error.
    """

    model_config = ConfigDict(populate_by_name=True)

    source_url: Optional[str] = Field(default=None, alias="sourceUrl")
    destinations: Optional[List[Any]] = None
    settings: Optional[Dict[str, Any]] = None


class StopStreamRequest(BaseModel):
    """Body of a stop request."""

    model_config = ConfigDict(populate_by_name=True)

    stream_id: Optional[Union[str, int]] = Field(default=None, alias="streamId")


class ExtractStreamRequest(BaseModel):
    """Body of a source extraction request."""

    url: Optional[str] = Field(...)


@dataclass
class StreamSession:
    """In-memory state of one source-to-destinations encoding session."""

    id: str
    source_url: str
    destinations: List[Destination]
    settings: StreamSettings
    command: List[str]
    status: SessionStatus = SessionStatus.ACTIVE
    start_time: datetime = field(default_factory=datetime.now)
    process: Optional[Any] = None  # EncoderProcess while active
    recording_path: Optional[str] = None
    last_stats: Optional[TelemetryStats] = None

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def uptime_seconds(self) -> float:
        return (datetime.now() - self.start_time).total_seconds()

    def to_summary(self) -> Dict[str, Any]:
        """Summary used by the stream listing."""
        return {
            "id": self.id,
            "status": self.status.value,
            "startTime": self.start_time.isoformat(),
            "destinations": [dest.to_summary() for dest in self.destinations],
        }

    def to_detail(self) -> Dict[str, Any]:
        """Summary plus settings, process and telemetry information."""
        detail = self.to_summary()
        detail.update(
            {
                "sourceUrl": self.source_url,
                "settings": self.settings.model_dump(by_alias=True, exclude_none=True),
                "pid": self.pid,
                "uptimeSeconds": round(self.uptime_seconds, 2),
                "recordingPath": self.recording_path,
                "stats": self.last_stats.to_dict() if self.last_stats else None,
            }
        )
        return detail
