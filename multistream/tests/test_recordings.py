"""Tests for the recordings listing."""

import os
from datetime import datetime
from pathlib import Path

from multistream.recordings import list_recordings


class TestListRecordings:
    """Test listing of recorded streams."""

    def test_missing_directory(self, temp_dir: Path):
        assert list_recordings(temp_dir / "absent") == []

    def test_only_flv_files_newest_first(self, temp_dir: Path):
        older = temp_dir / "stream-a.flv"
        newer = temp_dir / "stream-b.flv"
        older.write_bytes(b"x" * 10)
        newer.write_bytes(b"x" * 20)
        (temp_dir / "notes.txt").write_text("ignore me")
        (temp_dir / "dir.flv").mkdir()
        os.utime(older, (1_700_000_000, 1_700_000_000))
        os.utime(newer, (1_700_000_100, 1_700_000_100))

        recordings = list_recordings(temp_dir)

        assert [r["name"] for r in recordings] == ["stream-b.flv", "stream-a.flv"]
        assert recordings[0]["path"] == str(newer)
        assert recordings[0]["size"] == 20
        assert set(recordings[0]) == {"name", "path", "size", "created"}

    def test_accepts_string_path(self, temp_dir: Path):
        (temp_dir / "stream.flv").touch()

        assert len(list_recordings(str(temp_dir))) == 1

    def test_created_uses_creation_time(self, temp_dir: Path):
        recording = temp_dir / "stream.flv"
        recording.touch()
        stat = recording.stat()
        os.utime(recording, (1_600_000_000, 1_600_000_000))

        created = list_recordings(temp_dir)[0]["created"]

        expected = getattr(stat, "st_birthtime", stat.st_ctime)
        assert created != datetime.fromtimestamp(1_600_000_000).isoformat()
        assert abs(datetime.fromisoformat(created).timestamp() - expected) < 5
