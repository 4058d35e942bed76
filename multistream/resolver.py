"""
Source URL resolver.

Runs yt-dlp to turn a page URL into a direct media URL, under a fixed
wall-clock budget.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from multistream.config import StreamManagerConfig
from multistream.exceptions import (
    ExtractionError,
    ExtractTimeoutError,
    SpawnError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractResult:
    """A resolved source."""

    stream_url: str
    original_url: str


class SourceResolver:
    """Supervises one yt-dlp process per extraction request."""

    def __init__(self, config: StreamManagerConfig):
        self.config = config

    def build_command(self, url: str) -> List[str]:
        return [self.config.ytdlp_binary, "-g", "-f", "best", "--no-playlist", url]

    async def resolve(self, url: Optional[str]) -> ExtractResult:
        """
        Resolve a URL to a direct stream URL.

        The result is produced on a single return path: either the process
        finishes within the budget and its output is used, or it is killed
        and a timeout is raised. Never both.

        Args:
            url: Page or media URL

        Returns:
            ExtractResult with the first URL yt-dlp printed

        Raises:
            ValidationError: If url is empty
            SpawnError: If yt-dlp cannot be started
            ExtractTimeoutError: If yt-dlp exceeds the timeout
            ExtractionError: If yt-dlp fails or prints nothing
        """
        if not url or not url.strip():
            raise ValidationError("URL required", field="url")
        url = url.strip()

        cmd = self.build_command(url)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start {cmd[0]}: {e}")
            raise SpawnError(cmd[0], f"Failed to start {cmd[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.config.extract_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Extraction of {url} exceeded {self.config.extract_timeout}s, killing PID {process.pid}"
            )
            await self._kill(process)
            raise ExtractTimeoutError(url, self.config.extract_timeout)
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        if process.returncode != 0:
            details = stderr.decode("utf-8", errors="replace").strip()
            logger.warning(f"yt-dlp exited with code {process.returncode} for {url}: {details[-300:]}")
            raise ExtractionError(url, details[-500:] or None)

        lines = [line.strip() for line in stdout.decode("utf-8", errors="replace").splitlines()]
        stream_url = next((line for line in lines if line), "")
        if not stream_url:
            raise ExtractionError(url)

        logger.info(f"Resolved source {url}")
        return ExtractResult(stream_url=stream_url, original_url=url)

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        try:
            await asyncio.wait_for(process.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.error(f"yt-dlp process {process.pid} did not exit after SIGKILL")
