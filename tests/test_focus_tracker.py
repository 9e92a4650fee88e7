from datetime import timedelta

import pytest

from focus_friend.database import FOCUS_SESSIONS_KEY
from focus_friend.errors import InvalidStateError, ValidationError
from focus_friend.logic.focus_tracker import FocusSessionTracker, focus_points_for

from tests.conftest import NOW


def test_focus_points_rule():
    assert focus_points_for(10, 0) == 20
    assert focus_points_for(10, 1) == 10
    assert focus_points_for(10, 4) == 10
    assert focus_points_for(0, 0) == 0


def test_uninterrupted_session_earns_double(tracker, ledger):
    tracker.start_session(NOW)
    summary = tracker.stop_session(NOW + timedelta(minutes=10))

    assert summary.focus_minutes == 10
    assert summary.focus_points == 20
    assert ledger.stats.focus_points == 20
    assert ledger.stats.total_points == 20


def test_tab_switch_scenario(tracker, ledger):
    tracker.start_session(NOW)
    tracker.record_activity("tab_switch", NOW + timedelta(seconds=5))
    tracker.record_activity("return", NOW + timedelta(seconds=6))
    summary = tracker.stop_session(NOW + timedelta(seconds=600))

    session = summary.session
    assert session.interruption_count == 1
    assert session.duration_seconds == 600
    assert [a.kind for a in session.activities] == ["tab_switch", "return"]
    assert summary.focus_points == 10
    assert ledger.stats.focus_points == 10


def test_only_leave_and_tab_switch_count(tracker):
    tracker.start_session(NOW)
    for kind in ("leave", "return", "window_focus", "tab_switch", "leave"):
        tracker.record_activity(kind, NOW)
    assert tracker.active_session.interruption_count == 3


def test_partial_minutes_are_floored(tracker):
    tracker.start_session(NOW)
    summary = tracker.stop_session(NOW + timedelta(seconds=179))
    assert summary.focus_minutes == 2
    assert summary.focus_points == 4


def test_double_start_rejected(tracker):
    tracker.start_session(NOW)
    with pytest.raises(InvalidStateError):
        tracker.start_session(NOW + timedelta(seconds=1))


def test_stop_while_idle_rejected(tracker):
    with pytest.raises(InvalidStateError):
        tracker.stop_session(NOW)


def test_record_activity_when_idle_is_noop(tracker):
    assert tracker.record_activity("leave", NOW) is None


def test_unknown_activity_kind(tracker):
    tracker.start_session(NOW)
    with pytest.raises(ValidationError):
        tracker.record_activity("nap", NOW)


def test_tick_updates_duration(tracker):
    assert tracker.tick(NOW) == 0
    tracker.start_session(NOW)
    assert tracker.tick(NOW + timedelta(seconds=42)) == 42
    assert tracker.active_session.duration_seconds == 42


def test_history_is_archived_and_persisted(db, tracker, ledger):
    tracker.start_session(NOW)
    tracker.stop_session(NOW + timedelta(minutes=5))
    tracker.start_session(NOW + timedelta(minutes=10))
    tracker.stop_session(NOW + timedelta(minutes=12))

    assert not tracker.is_active
    assert len(tracker.history) == 2
    assert len(db.get(FOCUS_SESSIONS_KEY)) == 2

    reloaded = FocusSessionTracker.load(db, ledger)
    assert [s.duration_seconds for s in reloaded.history] == [300, 120]
    assert reloaded.history[0].end == NOW + timedelta(minutes=5)
