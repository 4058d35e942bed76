"""
Encoder process supervisor.

Launches one FFmpeg process per stream session, consumes its output in a
background task, forwards progress telemetry and reports the exit.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional

from multistream.config import StreamManagerConfig
from multistream.exceptions import SpawnError
from multistream.log_parser import EncoderLogParser, TelemetryStats, parse_stats

logger = logging.getLogger(__name__)

StatsCallback = Callable[[str, TelemetryStats], None]
ExitCallback = Callable[["EncoderProcess", Optional[int]], None]


class EncoderProcess:
    """Handle to a single running encoder."""

    def __init__(
        self,
        session_id: str,
        process: asyncio.subprocess.Process,
        command: List[str],
        started_at: datetime,
        tail_lines: int = 20,
    ):
        """Initialize encoder process wrapper.

        Args:
            session_id: Owning session identifier.
            process: The asyncio subprocess.
            command: Arguments the process was started with.
            started_at: Timestamp when the process started.
            tail_lines: Output lines kept for crash diagnostics.
        """
        self.session_id = session_id
        self.process = process
        self.command = command
        self.started_at = started_at
        self.pid = process.pid
        self.log_parser = EncoderLogParser()
        self.output_tail: Deque[str] = deque(maxlen=tail_lines)
        self.terminate_requested = False
        self.reader_task: Optional[asyncio.Task] = None
        self._partial_line = ""
        self._kill_timer: Optional[asyncio.TimerHandle] = None

    @property
    def is_running(self) -> bool:
        """True until the exit status has been collected."""
        return self.process.returncode is None

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    @property
    def uptime_seconds(self) -> float:
        return (datetime.now() - self.started_at).total_seconds()

    def record_output(self, text: str) -> None:
        """Keep the output tail and classify complete lines.

        FFmpeg ends progress lines with carriage returns, so both CR and LF
        count as line breaks here.
        """
        data = self._partial_line + text.replace("\r", "\n")
        lines = data.split("\n")
        self._partial_line = lines.pop()[-1024:]
        for line in lines:
            if not line.strip():
                continue
            self.output_tail.append(line)
            self.log_parser.parse_line(line)

    def flush_output(self) -> None:
        if self._partial_line.strip():
            self.output_tail.append(self._partial_line)
            self.log_parser.parse_line(self._partial_line)
        self._partial_line = ""

    def error_summary(self) -> str:
        """Best description of why the encoder failed."""
        if self.log_parser.last_error:
            return self.log_parser.last_error.message
        if self.output_tail:
            return self.output_tail[-1][-300:]
        return f"Encoder exited with code {self.returncode}"


class ProcessSupervisor:
    """
    Owns exactly one encoder process per active session.

    Features:
    - Argument-list process spawning (no shell)
    - Chunk-wise output consumption without blocking the event loop
    - Graceful termination with SIGKILL escalation
    - Exit notification through a callback
    """

    def __init__(self, config: StreamManagerConfig):
        """
        Initialize process supervisor.

        Args:
            config: Stream manager configuration
        """
        self.config = config
        self._processes: Dict[str, EncoderProcess] = {}

    async def launch(
        self,
        session_id: str,
        command: List[str],
        on_stats: StatsCallback,
        on_exit: ExitCallback,
    ) -> EncoderProcess:
        """
        Start an encoder and begin supervising it.

        The reader task is created but cannot run before the caller's next
        await, so the caller may register the session first.

        Args:
            session_id: Owning session identifier
            command: Encoder arguments (first element is the executable)
            on_stats: Called with parsed telemetry for each output chunk
            on_exit: Called once with the handle and exit code

        Returns:
            EncoderProcess handle

        Raises:
            SpawnError: If the executable cannot be started
        """
        if session_id in self._processes:
            raise SpawnError(command[0], f"Session {session_id} already has an encoder")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,  # FFmpeg reports progress on stderr
            )
        except OSError as e:
            logger.error(f"Failed to spawn encoder for session {session_id}: {e}")
            raise SpawnError(command[0], f"Failed to start {command[0]}: {e}") from e

        handle = EncoderProcess(
            session_id=session_id,
            process=process,
            command=command,
            started_at=datetime.now(),
            tail_lines=self.config.output_tail_lines,
        )
        self._processes[session_id] = handle
        handle.reader_task = asyncio.create_task(
            self._supervise(handle, on_stats, on_exit),
            name=f"encoder-{session_id}",
        )

        logger.info(f"Encoder spawned for session {session_id} (PID: {handle.pid})")
        return handle

    def terminate(self, handle: EncoderProcess) -> bool:
        """
        Ask an encoder to stop without waiting for it.

        Idempotent: a handle that already exited or was already signalled
        is left alone.

        Args:
            handle: Encoder process handle

        Returns:
            True if a termination signal was sent
        """
        if handle.terminate_requested or not handle.is_running:
            return False

        handle.terminate_requested = True
        try:
            handle.process.terminate()  # SIGTERM
        except ProcessLookupError:
            logger.debug(f"Encoder {handle.pid} already gone")
            return False

        logger.info(f"Sent SIGTERM to encoder {handle.pid} (session {handle.session_id})")
        loop = asyncio.get_running_loop()
        handle._kill_timer = loop.call_later(self.config.kill_timeout, self._kill, handle)
        return True

    def _kill(self, handle: EncoderProcess) -> None:
        """Force kill an encoder that ignored SIGTERM."""
        if not handle.is_running:
            return
        logger.warning(
            f"Encoder {handle.pid} did not exit within {self.config.kill_timeout}s, killing"
        )
        try:
            handle.process.kill()  # SIGKILL
        except ProcessLookupError:
            pass

    async def _supervise(
        self,
        handle: EncoderProcess,
        on_stats: StatsCallback,
        on_exit: ExitCallback,
    ) -> None:
        """Consume encoder output until EOF, then reap and report the exit."""
        stream = handle.process.stdout
        try:
            while True:
                chunk = await stream.read(self.config.read_chunk_size)
                if not chunk:
                    break

                text = chunk.decode("utf-8", errors="replace")
                handle.record_output(text)

                stats = parse_stats(text)
                if stats is None:
                    continue
                try:
                    on_stats(handle.session_id, stats)
                except Exception as e:
                    logger.error(f"Stats callback failed for {handle.session_id}: {e}", exc_info=True)
        except Exception as e:
            logger.error(f"Error reading encoder output for {handle.session_id}: {e}", exc_info=True)

        handle.flush_output()
        returncode = await handle.process.wait()

        if handle._kill_timer is not None:
            handle._kill_timer.cancel()
        self._processes.pop(handle.session_id, None)

        if returncode == 0 or handle.terminate_requested:
            logger.info(f"Encoder {handle.pid} exited with code {returncode}")
        else:
            logger.error(
                f"Encoder {handle.pid} for session {handle.session_id} exited with code "
                f"{returncode}: {handle.error_summary()}"
            )

        try:
            on_exit(handle, returncode)
        except Exception as e:
            logger.error(f"Exit callback failed for {handle.session_id}: {e}", exc_info=True)

    async def wait_closed(self, handle: EncoderProcess, timeout: Optional[float] = None) -> bool:
        """
        Wait for a handle's supervision task to finish.

        Args:
            handle: Encoder process handle
            timeout: Maximum time to wait in seconds

        Returns:
            True if the task finished, False on timeout
        """
        if handle.reader_task is None:
            return True
        try:
            await asyncio.wait_for(asyncio.shield(handle.reader_task), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def get(self, session_id: str) -> Optional[EncoderProcess]:
        return self._processes.get(session_id)

    @property
    def running_count(self) -> int:
        return len(self._processes)
