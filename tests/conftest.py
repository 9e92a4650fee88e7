import random
from datetime import date, datetime

import pytest

from focus_friend.database import Database
from focus_friend.logic.focus_tracker import FocusSessionTracker
from focus_friend.logic.minigame import MinigameScorer
from focus_friend.logic.reward_ledger import RewardLedger
from focus_friend.logic.schedule import ScheduleAggregator

# 2024-05-15 は水曜日（その週は 5/12 日曜 〜 5/18 土曜）
TODAY = date(2024, 5, 15)
NOW = datetime(2024, 5, 15, 10, 30)


@pytest.fixture
def db(tmp_path):
    return Database(str(tmp_path / "test.db"), user_id="student-1")


@pytest.fixture
def schedule(db):
    return ScheduleAggregator(db)


@pytest.fixture
def ledger(db, schedule):
    return RewardLedger(db, schedule)


@pytest.fixture
def tracker(db, ledger):
    return FocusSessionTracker(db, ledger)


@pytest.fixture
def game(ledger):
    return MinigameScorer(ledger, rng=random.Random(42))


@pytest.fixture
def lesson(schedule):
    return schedule.add_lesson("Maths", "10:00", "Algebra", on_date=TODAY)
