"""
気分記録・ごほうびポイント集計ロジック
"""
import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from ..database import Database, GAME_HIGH_SCORE_KEY, MOOD_ENTRIES_KEY, REWARD_STATS_KEY
from ..errors import DuplicateEntryError, NotFoundError, ValidationError
from ..models import MOOD_STATES, MoodCounts, MoodEntry, RewardStats, WeeklyMoodReport, new_id
from .schedule import ScheduleAggregator, week_bounds

logger = logging.getLogger(__name__)

MOOD_POINTS = 1
GAME_POINTS_DIVISOR = 100
POINTS_PER_LEVEL = 50
WEEKLY_GOAL = 200

# ポイントの内訳
BUCKETS = ("game", "focus", "mood")


class RewardLedger:
    """気分記録とポイント（気分・集中・ゲーム）の台帳"""

    def __init__(self, db: Database, schedule: ScheduleAggregator,
                 stats: RewardStats = None, entries: List[MoodEntry] = None,
                 high_score: int = 0):
        self.db = db
        self.schedule = schedule
        self.stats = stats or RewardStats()
        self.entries: List[MoodEntry] = entries or []
        self.high_score = high_score

    @classmethod
    def load(cls, db: Database, schedule: ScheduleAggregator) -> "RewardLedger":
        """ストアから復元"""
        raw_stats = db.get(REWARD_STATS_KEY)
        stats = RewardStats.from_dict(raw_stats) if raw_stats else RewardStats()

        entries = []
        for item in db.get(MOOD_ENTRIES_KEY) or []:
            try:
                entries.append(MoodEntry.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("skipping unreadable mood entry %r: %s", item, e)

        try:
            high_score = int(db.get(GAME_HIGH_SCORE_KEY) or 0)
        except (TypeError, ValueError):
            high_score = 0

        return cls(db, schedule, stats=stats, entries=entries, high_score=high_score)

    def _save_stats(self):
        self.db.set(REWARD_STATS_KEY, self.stats.to_dict())

    def _save_entries(self):
        self.db.set(MOOD_ENTRIES_KEY, [e.to_dict() for e in self.entries])

    def credit(self, bucket: str, points: int, now: datetime = None) -> int:
        """内訳・合計・今週分を同時に加算して保存"""
        if bucket not in BUCKETS:
            raise ValueError(f"unknown point bucket: {bucket}")
        attr = f"{bucket}_points"
        setattr(self.stats, attr, getattr(self.stats, attr) + points)
        self.stats.total_points += points
        self.stats.points_this_week += points
        self.stats.last_updated = now or datetime.now()
        self._save_stats()
        logger.debug("credited %d %s points (total %d)", points, bucket, self.stats.total_points)
        return points

    # ===== 気分記録 =====

    def has_entry(self, lesson_id: str, day: date) -> bool:
        key = day.isoformat()
        return any(e.lesson_id == lesson_id and e.date_key == key for e in self.entries)

    def submit_mood(self, lesson_id: str, mood: str, state: str, note: str = "",
                    today: date = None, now: datetime = None) -> MoodEntry:
        """気分を記録して1ポイント付与"""
        if state not in MOOD_STATES:
            raise ValidationError(f"Unknown state '{state}'.")
        lesson = self.schedule.get_lesson(lesson_id)
        if lesson is None:
            raise NotFoundError(f"Lesson {lesson_id} not found.")

        now = now or datetime.now()
        today = today or now.date()
        if self.has_entry(lesson_id, today):
            raise DuplicateEntryError("You already checked in for this lesson today.")

        entry = MoodEntry(
            id=new_id(),
            date_key=today.isoformat(),
            mood=mood or "",
            state=state,
            lesson_id=lesson_id,
            lesson_title=lesson.title,
            note=note or "",
            created_at=now,
        )
        self.entries.append(entry)
        self._save_entries()

        self.stats.completed_lesson_ids.append(lesson_id)
        self.credit("mood", MOOD_POINTS, now)
        return entry

    def entries_for_day(self, day: date) -> List[MoodEntry]:
        key = day.isoformat()
        return [e for e in self.entries if e.date_key == key]

    def mood_stats(self, lesson_id: str) -> MoodCounts:
        """レッスン単位の状態別件数"""
        counts = MoodCounts()
        for entry in self.entries:
            if entry.lesson_id == lesson_id:
                counts.add(entry.state)
        return counts

    def weekly_mood_stats(self, week_offset: int = 0, today: date = None) -> WeeklyMoodReport:
        """週間の状態別件数（全体＋レッスン名ごと）"""
        start, end = week_bounds(week_offset, today)
        report = WeeklyMoodReport(week_start=start, week_end=end)

        for entry in self.entries:
            try:
                day = date.fromisoformat(entry.date_key)
            except ValueError:
                continue
            if not (start <= day <= end):
                continue

            report.overall.add(entry.state)
            lesson = self.schedule.get_lesson(entry.lesson_id)
            title = lesson.title if lesson else (entry.lesson_title or "Unknown lesson")
            report.by_lesson.setdefault(title, MoodCounts()).add(entry.state)

        return report

    # ===== ゲーム =====

    def credit_game_score(self, raw_score: int, now: datetime = None) -> int:
        """ゲームのスコアを100点につき1ポイントに換算して付与"""
        if raw_score < 0:
            raise ValidationError("Score cannot be negative.")

        points = raw_score // GAME_POINTS_DIVISOR
        self.credit("game", points, now)

        # ハイスコアはポイント付与とは別に判定
        if raw_score > self.high_score:
            self.high_score = raw_score
            self.db.set(GAME_HIGH_SCORE_KEY, raw_score)
            logger.info("new game high score: %d", raw_score)
        return points

    # ===== レベル =====

    def level_info(self) -> Dict[str, Optional[float]]:
        """レベルと週間目標の進捗"""
        total = self.stats.total_points
        level = total // POINTS_PER_LEVEL + 1
        level_floor = (level - 1) * POINTS_PER_LEVEL
        next_level_points = level * POINTS_PER_LEVEL
        progress = (total - level_floor) / (next_level_points - level_floor) * 100
        weekly = min(100.0, self.stats.points_this_week / WEEKLY_GOAL * 100)
        return {
            "level": level,
            "nextLevelPoints": next_level_points,
            "levelProgress": progress,
            "weeklyGoal": WEEKLY_GOAL,
            "weeklyProgress": weekly,
        }
