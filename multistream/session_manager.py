"""
Stream session manager.

Coordinates the session registry, the encoder supervisor and the event
broadcaster behind the start, stop, list and extract operations.
"""

import logging
import threading
import time
from typing import Any, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from multistream.broadcaster import (
    STREAM_ERROR,
    STREAM_STARTED,
    STREAM_STATS,
    STREAM_STOPPED,
    EventBroadcaster,
)
from multistream.command_builder import EncoderCommandBuilder, usable_destinations
from multistream.config import StreamManagerConfig
from multistream.exceptions import (
    EncoderRuntimeError,
    ExtractTimeoutError,
    NotFoundError,
    SpawnError,
    StreamManagerError,
    ValidationError,
)
from multistream.health import ProcessHealthReport, check_process_health
from multistream.log_parser import TelemetryStats
from multistream.metrics import MetricsExporter
from multistream.models import Destination, SessionStatus, StreamSession, StreamSettings
from multistream.process_manager import EncoderProcess, ProcessSupervisor
from multistream.registry import SessionRegistry
from multistream.resolver import ExtractResult, SourceResolver

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Public face of the stream session manager.

    Guarantees:
    - At most one encoder per session
    - A session id returned by start_stream is registered before it is returned
    - Exactly one terminal event (stream_stopped or stream_error) per session,
      even when a stop request and an encoder exit race
    """

    def __init__(
        self,
        config: Optional[StreamManagerConfig] = None,
        registry: Optional[SessionRegistry] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        broadcaster: Optional[EventBroadcaster] = None,
        resolver: Optional[SourceResolver] = None,
        command_builder: Optional[EncoderCommandBuilder] = None,
        metrics: Optional[MetricsExporter] = None,
    ):
        """
        Initialize session manager.

        Args:
            config: Stream manager configuration (loaded from env if not provided)
            registry: Session registry
            supervisor: Encoder process supervisor
            broadcaster: Event broadcaster
            resolver: Source URL resolver
            command_builder: Encoder command builder
            metrics: Prometheus metrics exporter
        """
        if config is None:
            from multistream.config import get_config

            config = get_config()

        self.config = config
        self.registry = registry or SessionRegistry()
        self.supervisor = supervisor or ProcessSupervisor(config)
        self.broadcaster = broadcaster or EventBroadcaster(
            queue_size=config.observer_queue_size,
            service_name=config.service_name,
        )
        self.resolver = resolver or SourceResolver(config)
        self.command_builder = command_builder or EncoderCommandBuilder(config)
        self.metrics = metrics or MetricsExporter()

        self._id_lock = threading.Lock()
        self._last_id = 0

        logger.info("Stream session manager initialized")

    def _next_session_id(self) -> str:
        """Millisecond timestamp id, bumped so ids strictly increase."""
        with self._id_lock:
            candidate = int(time.time() * 1000)
            if candidate <= self._last_id:
                candidate = self._last_id + 1
            self._last_id = candidate
            return str(candidate)

    async def start_stream(
        self,
        source_url: Optional[str],
        destinations: Optional[Iterable[Union[Destination, dict]]],
        settings: Optional[Union[StreamSettings, dict]] = None,
    ) -> str:
        """
        Start encoding a source to its enabled destinations.

        Args:
            source_url: Input media URL
            destinations: Destination models or dicts in the client format
            settings: Encoding settings (defaults applied to missing values)

        Returns:
            New session id, already visible to list_streams and stop_stream

        Raises:
            ValidationError: If the source is missing or no destination is usable
            SpawnError: If the encoder cannot be started
        """
        if not source_url or not str(source_url).strip():
            raise ValidationError("sourceUrl is required", field="sourceUrl")
        source_url = str(source_url).strip()

        raw_destinations = list(destinations or [])
        if not raw_destinations:
            raise ValidationError("At least one destination is required", field="destinations")
        dests = _coerce_destinations(raw_destinations)
        if not usable_destinations(dests):
            raise ValidationError(
                "No enabled destination with both rtmpUrl and streamKey",
                field="destinations",
            )

        stream_settings = _coerce_settings(settings)
        session_id = self._next_session_id()

        recording_path = None
        if stream_settings.recording:
            recording_path = self.command_builder.recording_path_for(session_id)
            self._ensure_recordings_dir()

        cmd = self.command_builder.build_command(
            source_url=source_url,
            destinations=dests,
            settings=stream_settings,
            recording_path=recording_path,
        )
        logger.info(f"Starting stream {session_id}: {self.command_builder.get_command_string(cmd)}")

        try:
            handle = await self.supervisor.launch(
                session_id, cmd, on_stats=self._on_stats, on_exit=self._on_exit
            )
        except SpawnError:
            self.metrics.spawn_failures_total.inc()
            raise

        # No await between launch and registration: the exit callback runs
        # on this loop and cannot observe an unregistered session.
        session = StreamSession(
            id=session_id,
            source_url=source_url,
            destinations=dests,
            settings=stream_settings,
            command=cmd,
            process=handle,
            recording_path=recording_path,
        )
        self.registry.put(session_id, session)

        self.metrics.sessions_started_total.inc()
        self.metrics.active_sessions.set(len(self.registry))
        self.broadcaster.publish(
            STREAM_STARTED,
            {
                "streamId": session_id,
                "destinations": [dest.to_summary() for dest in dests],
                "recordingPath": recording_path,
            },
        )
        return session_id

    async def stop_stream(self, session_id: str) -> None:
        """
        Stop a running session.

        Signals the encoder and returns; the supervisor reaps the process in
        the background.

        Args:
            session_id: Session identifier

        Raises:
            NotFoundError: If the session is not registered
        """
        session = self.registry.remove(session_id)
        if session is None:
            raise NotFoundError(session_id)

        handle = session.process
        session.process = None
        session.status = SessionStatus.STOPPED
        if handle is not None:
            self.supervisor.terminate(handle)

        self.metrics.sessions_stopped_total.inc()
        self.metrics.active_sessions.set(len(self.registry))
        self.metrics.forget_stream(session_id)
        self.broadcaster.publish(STREAM_STOPPED, {"streamId": session_id})
        logger.info(f"Stream {session_id} stopped")

    def list_streams(self) -> List[dict]:
        """Snapshot of registered sessions."""
        return self.registry.list()

    def get_stream(self, session_id: str) -> StreamSession:
        """
        Look up a registered session.

        Raises:
            NotFoundError: If the session is not registered
        """
        session = self.registry.get(session_id)
        if session is None:
            raise NotFoundError(session_id)
        return session

    def get_stream_health(self, session_id: str) -> ProcessHealthReport:
        session = self.get_stream(session_id)
        return check_process_health(
            session.pid,
            cpu_threshold_percent=self.config.cpu_threshold_percent,
            memory_threshold_mb=self.config.memory_threshold_mb,
        )

    async def extract_source(self, url: Optional[str]) -> ExtractResult:
        """
        Resolve a page URL to a direct stream URL.

        Raises:
            ValidationError: If url is empty
            SpawnError: If the resolver cannot be started
            ExtractTimeoutError: If the resolver exceeds its budget
            ExtractionError: If the resolver fails
        """
        try:
            result = await self.resolver.resolve(url)
        except ExtractTimeoutError:
            self.metrics.extractions_total.labels(result="timeout").inc()
            raise
        except StreamManagerError:
            self.metrics.extractions_total.labels(result="failure").inc()
            raise

        self.metrics.extractions_total.labels(result="success").inc()
        return result

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop every session and wait for the encoders to be reaped."""
        timeout = timeout if timeout is not None else self.config.kill_timeout + 1.0
        handles: List[EncoderProcess] = []

        for session_id in self.registry.ids():
            session = self.registry.get(session_id)
            handle = session.process if session else None
            try:
                await self.stop_stream(session_id)
            except NotFoundError:
                continue  # exited on its own meanwhile
            if handle is not None:
                handles.append(handle)

        for handle in handles:
            if not await self.supervisor.wait_closed(handle, timeout=timeout):
                logger.warning(f"Encoder {handle.pid} still running after shutdown timeout")

        self.broadcaster.close_all()
        logger.info("Session manager shut down")

    def _on_stats(self, session_id: str, stats: TelemetryStats) -> None:
        session = self.registry.get(session_id)
        if session is None or session.status is not SessionStatus.ACTIVE:
            return  # terminal event already emitted

        session.last_stats = stats
        self.metrics.record_stats(session_id, stats.bitrate, stats.fps)
        self.broadcaster.publish(STREAM_STATS, {"streamId": session_id, "stats": stats.to_dict()})

    def _on_exit(self, handle: EncoderProcess, returncode: Optional[int]) -> None:
        session = self.registry.remove(handle.session_id)
        if session is None:
            logger.debug(f"Session {handle.session_id} already removed")
            return

        session.process = None
        self.metrics.active_sessions.set(len(self.registry))
        self.metrics.forget_stream(session.id)

        if returncode == 0 or handle.terminate_requested:
            session.status = SessionStatus.STOPPED
            self.metrics.sessions_stopped_total.inc()
            self.broadcaster.publish(STREAM_STOPPED, {"streamId": session.id, "exitCode": returncode})
            logger.info(f"Stream {session.id} ended (exit code {returncode})")
            return

        last_error = handle.log_parser.last_error
        error = EncoderRuntimeError(
            session.id,
            returncode,
            message=handle.error_summary(),
            error_type=last_error.error_type.value if last_error else None,
        )
        session.status = SessionStatus.ERRORED
        self.metrics.sessions_errored_total.inc()
        self.broadcaster.publish(
            STREAM_ERROR,
            {
                "streamId": session.id,
                "error": error.message,
                "exitCode": error.exit_code,
                "errorType": error.error_type,
            },
        )
        logger.error(f"Stream {session.id} failed: {error.message}")

    def _ensure_recordings_dir(self) -> None:
        try:
            self.config.recordings_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Failed to create recordings directory {self.config.recordings_dir}: {e}")


def _coerce_destinations(destinations: Optional[Iterable[Any]]) -> List[Destination]:
    """Convert client destinations to models, skipping malformed entries."""
    result = []
    for dest in destinations or []:
        if isinstance(dest, Destination):
            result.append(dest)
            continue
        if not isinstance(dest, dict):
            logger.debug(f"Skipping malformed destination: {dest!r}")
            continue
        try:
            result.append(Destination.model_validate(dest))
        except PydanticValidationError as e:
            logger.debug(f"Skipping malformed destination: {e}")
    return result


def _coerce_settings(settings: Optional[Union[StreamSettings, dict]]) -> StreamSettings:
    if settings is None:
        return StreamSettings()
    if isinstance(settings, StreamSettings):
        return settings
    try:
        return StreamSettings.model_validate(settings)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid settings: {e.errors()[0]['msg']}", field="settings") from e
