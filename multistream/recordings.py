"""Listing of local stream recordings."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Union

logger = logging.getLogger(__name__)

RECORDING_SUFFIX = ".flv"


def list_recordings(recordings_dir: Union[str, Path]) -> List[Dict]:
    """
    List recorded streams, newest first.

    Args:
        recordings_dir: Directory the encoder writes recordings to

    Returns:
        List of {name, path, size, created}; empty if the directory is absent
    """
    directory = Path(recordings_dir)
    if not directory.is_dir():
        return []

    recordings = []
    for entry in directory.glob(f"*{RECORDING_SUFFIX}"):
        if not entry.is_file():
            continue
        try:
            stat = entry.stat()
        except OSError as e:
            logger.warning(f"Could not stat recording {entry}: {e}")
            continue
        recordings.append(
            {
                "name": entry.name,
                "path": str(entry),
                "size": stat.st_size,
                "created": datetime.fromtimestamp(getattr(stat, "st_birthtime", stat.st_ctime)).isoformat(),
                "_mtime": stat.st_mtime,
            }
        )

    recordings.sort(key=lambda item: item["_mtime"], reverse=True)
    for item in recordings:
        del item["_mtime"]
    return recordings
