"""
Tests for the session registry.
"""

import threading

import pytest

from multistream.models import Destination, SessionStatus, StreamSession, StreamSettings
from multistream.registry import SessionRegistry


def make_session(session_id: str) -> StreamSession:
    return StreamSession(
        id=session_id,
        source_url="http://src/live",
        destinations=[Destination(enabled=True, rtmpUrl="rtmp://x/live", streamKey="k")],
        settings=StreamSettings(),
        command=["ffmpeg"],
    )


class TestSessionRegistry:
    """Test session registry."""

    def test_put_and_get(self, registry: SessionRegistry):
        session = make_session("1")
        registry.put("1", session)

        assert registry.get("1") is session
        assert "1" in registry
        assert len(registry) == 1

    def test_get_unknown(self, registry: SessionRegistry):
        assert registry.get("missing") is None

    def test_duplicate_put_rejected(self, registry: SessionRegistry):
        registry.put("1", make_session("1"))

        with pytest.raises(KeyError):
            registry.put("1", make_session("1"))

    def test_remove_claims_once(self, registry: SessionRegistry):
        """Test that only the first remove gets the session back."""
        session = make_session("1")
        registry.put("1", session)

        assert registry.remove("1") is session
        assert registry.remove("1") is None
        assert "1" not in registry

    def test_list_summaries(self, registry: SessionRegistry):
        registry.put("1", make_session("1"))
        registry.put("2", make_session("2"))

        summaries = registry.list()

        assert [s["id"] for s in summaries] == ["1", "2"]
        assert summaries[0]["status"] == SessionStatus.ACTIVE.value
        assert summaries[0]["destinations"] == [
            {"enabled": True, "rtmpUrl": "rtmp://x/live", "streamKey": "k"}
        ]
        assert "startTime" in summaries[0]

    def test_list_is_snapshot(self, registry: SessionRegistry):
        registry.put("1", make_session("1"))
        summaries = registry.list()

        registry.remove("1")

        assert len(summaries) == 1
        assert registry.list() == []

    def test_concurrent_remove(self, registry: SessionRegistry):
        """Test that exactly one of many racing removers wins."""
        registry.put("1", make_session("1"))
        winners = []
        barrier = threading.Barrier(8)

        def remover():
            barrier.wait()
            if registry.remove("1") is not None:
                winners.append(threading.current_thread().name)

        threads = [threading.Thread(target=remover) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
