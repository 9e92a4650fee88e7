"""
時間割（スケジュール）集計ロジック
"""
import logging
from collections import OrderedDict
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from ..database import Database, SCHEDULE_KEY
from ..errors import NotFoundError, ValidationError
from ..models import CalendarEvent, Lesson, new_id

logger = logging.getLogger(__name__)

SINGLE_LESSON = timedelta(hours=1)
DOUBLE_LESSON = timedelta(hours=2)


def sunday_index(day: date) -> int:
    """日曜=0 の曜日番号"""
    return (day.weekday() + 1) % 7


def week_bounds(week_offset: int = 0, today: date = None) -> Tuple[date, date]:
    """週の開始日（日曜）と終了日（土曜）"""
    if today is None:
        today = date.today()
    start = today - timedelta(days=sunday_index(today)) + timedelta(weeks=week_offset)
    return start, start + timedelta(days=6)


def parse_time(value: str) -> Tuple[int, int]:
    """HH:MM を (時, 分) に変換"""
    try:
        hours, minutes = (int(part) for part in value.strip().split(":"))
    except ValueError:
        raise ValidationError(f"Invalid time '{value}', expected HH:MM.")
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValidationError(f"Invalid time '{value}', expected HH:MM.")
    return hours, minutes


class ScheduleAggregator:
    """レッスン一覧を保持し、日・週ごとの問い合わせに答える"""

    def __init__(self, db: Database, lessons: Iterable[Lesson] = ()):
        self.db = db
        self._lessons: Dict[str, Lesson] = OrderedDict((l.id, l) for l in lessons)

    @classmethod
    def load(cls, db: Database) -> "ScheduleAggregator":
        """ストアから復元"""
        raw = db.get(SCHEDULE_KEY) or []
        lessons = []
        for item in raw:
            try:
                lessons.append(Lesson.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("skipping unreadable lesson %r: %s", item, e)
        return cls(db, lessons)

    @property
    def lessons(self) -> List[Lesson]:
        return self._sorted(self._lessons.values())

    def _save(self):
        self.db.set(SCHEDULE_KEY, [l.to_dict() for l in self._lessons.values()])

    @staticmethod
    def _sorted(lessons: Iterable[Lesson]) -> List[Lesson]:
        return sorted(lessons, key=lambda l: l.start)

    # ===== 変更操作 =====

    def add_lesson(self, title: str, time: str, description: str = "",
                   is_double_lesson: bool = False, on_date: date = None) -> Lesson:
        """
        レッスンを追加

        Args:
            title: 科目名
            time: 開始時刻（HH:MM）
            description: メモ
            is_double_lesson: 2コマ続き（2時間）かどうか
            on_date: 日付（省略時は今日）
        """
        if not title or not title.strip():
            raise ValidationError("Lesson title is required.")
        if not time or not time.strip():
            raise ValidationError("Lesson time is required.")

        hours, minutes = parse_time(time)
        day = on_date or date.today()
        start = datetime(day.year, day.month, day.day, hours, minutes)
        end = start + (DOUBLE_LESSON if is_double_lesson else SINGLE_LESSON)

        lesson = Lesson(
            id=new_id(),
            title=title.strip(),
            description=description or "",
            start=start,
            end=end,
            is_double_lesson=is_double_lesson,
        )
        self._lessons[lesson.id] = lesson
        self._save()
        logger.info("lesson added: %s at %s", lesson.title, lesson.start)
        return lesson

    def edit_lesson(self, lesson_id: str, **changes) -> Lesson:
        """レッスンを編集（title, description, start, end など）"""
        lesson = self._lessons.get(lesson_id)
        if lesson is None:
            raise NotFoundError(f"Lesson {lesson_id} not found.")
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValidationError("Lesson title is required.")

        updated = replace(lesson, **changes)
        if updated.end < updated.start:
            raise ValidationError("Lesson cannot end before it starts.")
        self._lessons[lesson_id] = updated
        self._save()
        return updated

    def delete_lesson(self, lesson_id: str):
        """レッスンを削除（存在しなければ何もしない）"""
        if self._lessons.pop(lesson_id, None) is not None:
            self._save()

    def import_from_calendar_source(self, events: Iterable[CalendarEvent]) -> List[Lesson]:
        """カレンダーの予定を取り込み、新しく追加したレッスンを返す"""
        added = []
        for event in events:
            if not event.external_id or event.external_id in self._lessons:
                continue
            lesson = Lesson(
                id=event.external_id,
                title=event.subject or "(no title)",
                description=event.body_preview or "",
                start=event.start,
                end=event.end,
                is_recurring=event.is_recurring,
                series_id=event.series_id,
            )
            self._lessons[lesson.id] = lesson
            added.append(lesson)

        if added:
            self._save()
        logger.info("calendar import: %d new lessons", len(added))
        return self._sorted(added)

    # ===== 問い合わせ =====

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        return self._lessons.get(lesson_id)

    def lessons_for_day(self, day: date) -> List[Lesson]:
        """指定日のレッスン（開始時刻順）"""
        return self._sorted(l for l in self._lessons.values() if l.start.date() == day)

    def lessons_for_week(self, week_offset: int = 0, today: date = None) -> "OrderedDict[date, List[Lesson]]":
        """週の7日分（空の日も含む）"""
        start, _ = week_bounds(week_offset, today)
        week = OrderedDict()
        for i in range(7):
            day = start + timedelta(days=i)
            week[day] = self.lessons_for_day(day)
        return week

    def current_lesson(self, now: datetime = None) -> Optional[Lesson]:
        """現在のレッスン（境界の時刻は両方含む）"""
        if now is None:
            now = datetime.now()
        for lesson in self._sorted(self._lessons.values()):
            if lesson.contains(now):
                return lesson
        return None

    def current_period(self, now: datetime = None) -> Optional[int]:
        """現在のレッスンがその日の何時間目か（1始まり）"""
        if now is None:
            now = datetime.now()
        lesson = self.current_lesson(now)
        if lesson is None:
            return None
        return self.lessons_for_day(lesson.start.date()).index(lesson) + 1

    def upcoming_lessons(self, now: datetime = None) -> List[Lesson]:
        """これからのレッスン"""
        if now is None:
            now = datetime.now()
        return self._sorted(l for l in self._lessons.values() if l.start > now)
