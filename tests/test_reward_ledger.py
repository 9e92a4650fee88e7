from datetime import date, datetime, timedelta

import pytest

from focus_friend.database import GAME_HIGH_SCORE_KEY, REWARD_STATS_KEY
from focus_friend.errors import DuplicateEntryError, NotFoundError, ValidationError
from focus_friend.logic.reward_ledger import RewardLedger

from tests.conftest import TODAY


def assert_totals_consistent(stats):
    assert stats.total_points == stats.game_points + stats.focus_points + stats.mood_points


def test_submit_mood_credits_one_point(ledger, lesson):
    entry = ledger.submit_mood(lesson.id, "happy", "focused", "good lesson", today=TODAY)

    assert entry.date_key == "2024-05-15"
    assert entry.lesson_title == "Maths"
    assert ledger.stats.mood_points == 1
    assert ledger.stats.total_points == 1
    assert ledger.stats.points_this_week == 1
    assert ledger.stats.completed_lesson_ids == [lesson.id]


def test_duplicate_mood_entry_rejected(ledger, lesson):
    ledger.submit_mood(lesson.id, "happy", "focused", today=TODAY)

    with pytest.raises(DuplicateEntryError):
        ledger.submit_mood(lesson.id, "tired", "bored", today=TODAY)

    assert ledger.stats.mood_points == 1
    assert len(ledger.entries) == 1

    # 翌日なら記録できる
    ledger.submit_mood(lesson.id, "tired", "bored", today=TODAY + timedelta(days=1))
    assert ledger.stats.mood_points == 2


def test_mood_for_unknown_lesson(ledger):
    with pytest.raises(NotFoundError):
        ledger.submit_mood("nope", "happy", "focused", today=TODAY)
    assert ledger.stats.total_points == 0


def test_mood_with_unknown_state(ledger, lesson):
    with pytest.raises(ValidationError):
        ledger.submit_mood(lesson.id, "happy", "ecstatic", today=TODAY)


def test_mood_stats_per_lesson(ledger, schedule, lesson):
    other = schedule.add_lesson("Art", "13:00", on_date=TODAY)
    ledger.submit_mood(lesson.id, "", "focused", today=TODAY)
    ledger.submit_mood(lesson.id, "", "stressed", today=TODAY + timedelta(days=1))
    ledger.submit_mood(other.id, "", "bored", today=TODAY)

    counts = ledger.mood_stats(lesson.id)
    assert (counts.focused, counts.bored, counts.stressed, counts.neutral, counts.total) == (1, 0, 1, 0, 2)
    assert ledger.mood_stats("unknown").total == 0


def test_weekly_mood_stats(ledger, schedule, lesson):
    art = schedule.add_lesson("Art", "13:00", on_date=TODAY)
    ledger.submit_mood(lesson.id, "", "focused", today=date(2024, 5, 12))
    ledger.submit_mood(lesson.id, "", "bored", today=date(2024, 5, 18))
    ledger.submit_mood(art.id, "", "neutral", today=TODAY)
    # 前の週
    ledger.submit_mood(art.id, "", "stressed", today=date(2024, 5, 11))

    report = ledger.weekly_mood_stats(0, TODAY)
    assert report.week_start == date(2024, 5, 12)
    assert report.overall.total == 3
    assert report.overall.focused == 1 and report.overall.bored == 1 and report.overall.neutral == 1
    assert set(report.by_lesson) == {"Maths", "Art"}
    assert report.by_lesson["Maths"].total == 2

    last_week = ledger.weekly_mood_stats(-1, TODAY)
    assert last_week.overall.stressed == 1
    assert last_week.to_dict()["byLesson"]["Art"]["total"] == 1


def test_credit_game_score(ledger):
    assert ledger.credit_game_score(250) == 2
    assert ledger.credit_game_score(99) == 0
    assert ledger.stats.game_points == 2
    assert ledger.high_score == 250


def test_high_score_independent_of_points(ledger, db):
    ledger.credit_game_score(120)
    ledger.credit_game_score(80)

    assert ledger.high_score == 120
    assert db.get(GAME_HIGH_SCORE_KEY) == 120
    assert ledger.stats.game_points == 1


def test_negative_game_score_rejected(ledger):
    with pytest.raises(ValidationError):
        ledger.credit_game_score(-5)


def test_totals_stay_consistent(ledger, lesson):
    ledger.submit_mood(lesson.id, "", "focused", today=TODAY)
    ledger.credit_game_score(340)
    ledger.credit("focus", 20, datetime(2024, 5, 15, 12, 0))

    stats = ledger.stats
    assert (stats.mood_points, stats.game_points, stats.focus_points) == (1, 3, 20)
    assert stats.points_this_week == 24
    assert stats.last_updated == datetime(2024, 5, 15, 12, 0)
    assert_totals_consistent(stats)


def test_unknown_bucket(ledger):
    with pytest.raises(ValueError):
        ledger.credit("bonus", 5)


def test_ledger_reloads_from_store(db, schedule, ledger, lesson):
    ledger.submit_mood(lesson.id, "happy", "focused", today=TODAY)
    ledger.credit_game_score(500)

    reloaded = RewardLedger.load(db, schedule)
    assert reloaded.stats.total_points == 6
    assert reloaded.high_score == 500
    assert len(reloaded.entries) == 1
    assert reloaded.has_entry(lesson.id, TODAY)
    assert db.get(REWARD_STATS_KEY)["moodPoints"] == 1


def test_level_info(ledger):
    ledger.credit("focus", 60)
    info = ledger.level_info()
    assert info["level"] == 2
    assert info["nextLevelPoints"] == 100
    assert info["levelProgress"] == pytest.approx(20.0)
    assert info["weeklyProgress"] == pytest.approx(30.0)

    ledger.credit("focus", 500)
    assert ledger.level_info()["weeklyProgress"] == 100.0
