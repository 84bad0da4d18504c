"""Request/response correlation."""

from ocpp_loadsim.correlation import CorrelationTracker


def test_resolve_returns_and_removes_pending():
    tracker = CorrelationTracker(clock=lambda: 12.5)
    tracker.track("r1", "BootNotification")
    pending = tracker.resolve("r1")
    assert pending is not None
    assert pending.action == "BootNotification"
    assert pending.sent_at == 12.5
    assert tracker.resolve("r1") is None
    assert len(tracker) == 0


def test_untracked_id_is_orphan_and_harmless():
    tracker = CorrelationTracker()
    tracker.track("r1", "Heartbeat")
    assert tracker.resolve("never-sent") is None
    assert "r1" in tracker
    assert tracker.resolve("r1").action == "Heartbeat"


def test_clear_discards_everything():
    tracker = CorrelationTracker()
    tracker.track("r1", "BootNotification")
    tracker.track("r2", "Heartbeat")
    assert tracker.clear() == 2
    assert tracker.resolve("r1") is None
    assert tracker.clear() == 0
