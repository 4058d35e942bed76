"""Encoder process health checks."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

import psutil

logger = logging.getLogger(__name__)


class ProcessHealthStatus(str, Enum):
    """Encoder health status."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class ProcessHealthReport:
    """Encoder process health report."""

    status: ProcessHealthStatus
    pid: Optional[int]
    cpu_percent: float = 0.0
    memory_mb: float = 0.0
    warnings: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        return {
            "status": self.status.value,
            "pid": self.pid,
            "cpu_percent": round(self.cpu_percent, 2),
            "memory_mb": round(self.memory_mb, 2),
            "warnings": self.warnings,
            "timestamp": self.timestamp.isoformat(),
        }


def check_process_health(
    pid: Optional[int],
    cpu_threshold_percent: float = 90.0,
    memory_threshold_mb: float = 2048.0,
) -> ProcessHealthReport:
    """
    Check resource usage of an encoder process.

    CPU usage is sampled without blocking, so the first reading for a
    process may be 0.0.

    Args:
        pid: Process ID (None if no process)
        cpu_threshold_percent: CPU usage above which a warning is raised
        memory_threshold_mb: RSS above which a warning is raised

    Returns:
        ProcessHealthReport with health status
    """
    if pid is None:
        return ProcessHealthReport(
            status=ProcessHealthStatus.CRITICAL,
            pid=None,
            warnings=["Encoder process not running"],
        )

    warnings = []
    cpu_percent = 0.0
    memory_mb = 0.0

    try:
        process = psutil.Process(pid)

        cpu_percent = process.cpu_percent(interval=None)
        if cpu_percent > cpu_threshold_percent:
            warnings.append(
                f"CPU usage high: {cpu_percent:.1f}% (threshold: {cpu_threshold_percent}%)"
            )

        memory_mb = process.memory_info().rss / 1024 / 1024
        if memory_mb > memory_threshold_mb:
            warnings.append(
                f"Memory usage high: {memory_mb:.1f}MB (threshold: {memory_threshold_mb}MB)"
            )

        if process.status() == psutil.STATUS_ZOMBIE:
            return ProcessHealthReport(
                status=ProcessHealthStatus.CRITICAL,
                pid=pid,
                warnings=warnings + ["Process is zombie"],
            )

    except psutil.NoSuchProcess:
        return ProcessHealthReport(
            status=ProcessHealthStatus.CRITICAL,
            pid=pid,
            warnings=["Process not found"],
        )
    except psutil.AccessDenied:
        warnings.append("Access denied to process metrics")

    return ProcessHealthReport(
        status=ProcessHealthStatus.WARNING if warnings else ProcessHealthStatus.HEALTHY,
        pid=pid,
        cpu_percent=cpu_percent,
        memory_mb=memory_mb,
        warnings=warnings,
    )
