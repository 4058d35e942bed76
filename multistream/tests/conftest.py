"""
Pytest configuration and fixtures for MultiStream tests.

No real FFmpeg or yt-dlp process is ever started: subprocess creation is
patched to return FakeEncoderProcess instances.
"""

import asyncio
import tempfile
from pathlib import Path
from typing import Dict, Generator, List, Optional
from unittest.mock import MagicMock

import pytest

from multistream.broadcaster import EventBroadcaster, Observer
from multistream.command_builder import EncoderCommandBuilder
from multistream.config import StreamManagerConfig
from multistream.metrics import MetricsExporter
from multistream.registry import SessionRegistry
from multistream.session_manager import SessionManager


class _FakeStdout:
    """Chunked stdout; each fed chunk comes back from one read call."""

    def __init__(self):
        self._chunks: asyncio.Queue = asyncio.Queue()
        self._eof = False

    def feed_data(self, data: bytes) -> None:
        self._chunks.put_nowait(data)

    def feed_eof(self) -> None:
        self._chunks.put_nowait(b"")

    async def read(self, n: int = -1) -> bytes:
        if self._eof:
            return b""
        chunk = await self._chunks.get()
        if not chunk:
            self._eof = True
        return chunk


class FakeEncoderProcess:
    """Stands in for asyncio.subprocess.Process."""

    def __init__(
        self,
        pid: int = 12345,
        exit_on_terminate: bool = True,
        terminate_code: int = -15,
    ):
        self.pid = pid
        self.returncode: Optional[int] = None
        self.stdout = _FakeStdout()
        self._exited = asyncio.Event()
        self._exit_on_terminate = exit_on_terminate
        self._terminate_code = terminate_code
        self.terminate = MagicMock(side_effect=self._on_terminate)
        self.kill = MagicMock(side_effect=self._on_kill)

    def feed(self, data: bytes) -> None:
        self.stdout.feed_data(data)

    def exit(self, code: int) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def _on_terminate(self) -> None:
        if self.returncode is not None:
            raise ProcessLookupError()
        if self._exit_on_terminate:
            self.exit(self._terminate_code)

    def _on_kill(self) -> None:
        if self.returncode is not None:
            raise ProcessLookupError()
        self.exit(-9)


async def settle(delay: float = 0.01) -> None:
    """Let background reader tasks run."""
    for _ in range(3):
        await asyncio.sleep(delay)


def drain_events(observer: Observer) -> List[Dict]:
    """Pop every queued message from an observer."""
    events = []
    while not observer.queue.empty():
        events.append(observer.queue.get_nowait())
    return events


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config(temp_dir: Path) -> StreamManagerConfig:
    """Create a test configuration."""
    return StreamManagerConfig(
        ffmpeg_binary="ffmpeg",
        ytdlp_binary="yt-dlp",
        recordings_dir=temp_dir / "recordings",
        kill_timeout=0.5,
        extract_timeout=1.0,
        observer_queue_size=16,
        output_tail_lines=5,
    )


@pytest.fixture
def command_builder(test_config: StreamManagerConfig) -> EncoderCommandBuilder:
    """Create a command builder for testing."""
    return EncoderCommandBuilder(test_config)


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def broadcaster() -> EventBroadcaster:
    return EventBroadcaster(queue_size=16)


@pytest.fixture
def session_manager(test_config: StreamManagerConfig) -> SessionManager:
    """Create a session manager with its own metrics registry."""
    return SessionManager(config=test_config, metrics=MetricsExporter())


@pytest.fixture
def sample_destinations() -> List[Dict]:
    """Destinations as the client sends them."""
    return [
        {
            "name": "YouTube",
            "platform": "youtube",
            "enabled": True,
            "rtmpUrl": "rtmp://a.rtmp.youtube.com/live2",
            "streamKey": "yt-key-123",
        },
        {
            "name": "Twitch",
            "platform": "twitch",
            "enabled": True,
            "rtmpUrl": "rtmp://live.twitch.tv/app/",
            "streamKey": "tw-key-456",
        },
        {
            "name": "Facebook",
            "platform": "facebook",
            "enabled": False,
            "rtmpUrl": "rtmps://live-api-s.facebook.com:443/rtmp",
            "streamKey": "fb-key-789",
        },
    ]


@pytest.fixture
def sample_ffmpeg_output() -> str:
    """Sample FFmpeg progress output."""
    return (
        "frame=  100 fps= 30 q=28.0 size=     512kB time=00:00:03.33 bitrate=1258.3kbits/s speed=1.00x\r"
        "frame=  200 fps= 30 q=28.0 size=    1024kB time=00:00:06.66 bitrate=1258.3kbits/s speed=1.00x\r"
    )
