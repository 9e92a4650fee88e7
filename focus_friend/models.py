"""
データモデル定義
"""
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from typing import Optional, List, Dict, Any

MOOD_STATES = ("focused", "bored", "stressed", "neutral")
ACTIVITY_KINDS = ("leave", "return", "tab_switch", "window_focus")
# 中断としてカウントするアクティビティ
INTERRUPTING_KINDS = ("leave", "tab_switch")
ROLES = ("student", "teacher")


def new_id() -> str:
    return uuid.uuid4().hex


def _dt(value) -> Optional[datetime]:
    """ISO文字列をdatetimeに変換"""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class Lesson:
    """レッスン（時間割の1コマ）"""
    id: str = ""
    title: str = ""
    description: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    is_recurring: bool = False
    series_id: Optional[str] = None
    is_double_lesson: bool = False

    @property
    def time(self) -> str:
        """開始時刻（HH:MM）"""
        return self.start.strftime("%H:%M") if self.start else ""

    def contains(self, moment: datetime) -> bool:
        # 開始・終了とも境界を含む
        return self.start <= moment <= self.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "time": self.time,
            "description": self.description,
            "startTime": _iso(self.start),
            "endTime": _iso(self.end),
            "isRecurring": self.is_recurring,
            "seriesMasterId": self.series_id,
            "isDoubleLesson": self.is_double_lesson,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lesson":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            start=_dt(data.get("startTime")),
            end=_dt(data.get("endTime")),
            is_recurring=bool(data.get("isRecurring", False)),
            series_id=data.get("seriesMasterId"),
            is_double_lesson=bool(data.get("isDoubleLesson", False)),
        )


@dataclass
class MoodEntry:
    """気分記録（レッスンごと・1日1件）"""
    id: str = ""
    date_key: str = ""  # YYYY-MM-DD
    mood: str = ""
    state: str = "neutral"  # focused, bored, stressed, neutral
    lesson_id: str = ""
    lesson_title: str = ""
    note: str = ""
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date_key,
            "mood": self.mood,
            "state": self.state,
            "lessonId": self.lesson_id,
            "lessonTitle": self.lesson_title,
            "note": self.note,
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MoodEntry":
        # 旧データは date にISO日時が入っている
        date_key = (data.get("date") or "")[:10]
        return cls(
            id=data["id"],
            date_key=date_key,
            mood=data.get("mood", ""),
            state=data.get("state", "neutral"),
            lesson_id=data.get("lessonId") or "",
            lesson_title=data.get("lessonTitle") or "",
            note=data.get("note", ""),
            created_at=_dt(data.get("createdAt")),
        )


@dataclass
class Activity:
    """集中セッション中の行動ログ"""
    id: str = ""
    timestamp: Optional[datetime] = None
    kind: str = "leave"  # leave, return, tab_switch, window_focus
    details: str = ""

    @property
    def is_interruption(self) -> bool:
        return self.kind in INTERRUPTING_KINDS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _iso(self.timestamp),
            "type": self.kind,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        return cls(
            id=data["id"],
            timestamp=_dt(data.get("timestamp")),
            kind=data.get("type", "leave"),
            details=data.get("details", ""),
        )


@dataclass
class FocusSession:
    """集中セッション"""
    id: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    duration_seconds: int = 0
    interruption_count: int = 0
    activities: List[Activity] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.end is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "startTime": _iso(self.start),
            "endTime": _iso(self.end),
            "duration": self.duration_seconds,
            "interruptions": self.interruption_count,
            "activities": [a.to_dict() for a in self.activities],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FocusSession":
        return cls(
            id=data["id"],
            start=_dt(data.get("startTime")),
            end=_dt(data.get("endTime")),
            duration_seconds=int(data.get("duration", 0)),
            interruption_count=int(data.get("interruptions", 0)),
            activities=[Activity.from_dict(a) for a in data.get("activities", [])],
        )


@dataclass
class CompletedSessionSummary:
    """セッション終了時のまとめ（画面表示用）"""
    session: FocusSession
    focus_minutes: int = 0
    focus_points: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "focusMinutes": self.focus_minutes,
            "focusPoints": self.focus_points,
        }


@dataclass
class RewardStats:
    """ポイント集計（ユーザーごとに1件）"""
    total_points: int = 0
    points_this_week: int = 0
    completed_lesson_ids: List[str] = field(default_factory=list)
    game_points: int = 0
    focus_points: int = 0
    mood_points: int = 0
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPoints": self.total_points,
            "pointsThisWeek": self.points_this_week,
            "completedLessons": list(self.completed_lesson_ids),
            "gamePoints": self.game_points,
            "focusPoints": self.focus_points,
            "moodPoints": self.mood_points,
            "lastUpdated": _iso(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RewardStats":
        stats = cls(
            points_this_week=int(data.get("pointsThisWeek", 0)),
            completed_lesson_ids=list(data.get("completedLessons", [])),
            game_points=int(data.get("gamePoints", 0)),
            focus_points=int(data.get("focusPoints", 0)),
            mood_points=int(data.get("moodPoints", 0)),
            last_updated=_dt(data.get("lastUpdated")),
        )
        # 合計は内訳から再計算する
        stats.total_points = stats.game_points + stats.focus_points + stats.mood_points
        return stats


@dataclass
class MoodCounts:
    """状態ごとの件数"""
    focused: int = 0
    bored: int = 0
    stressed: int = 0
    neutral: int = 0
    total: int = 0

    def add(self, state: str):
        setattr(self, state, getattr(self, state) + 1)
        self.total += 1

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class WeeklyMoodReport:
    """週間の気分レポート"""
    week_start: date
    week_end: date
    overall: MoodCounts = field(default_factory=MoodCounts)
    by_lesson: Dict[str, MoodCounts] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weekStart": self.week_start.isoformat(),
            "weekEnd": self.week_end.isoformat(),
            "overall": self.overall.to_dict(),
            "byLesson": {title: c.to_dict() for title, c in self.by_lesson.items()},
        }


@dataclass
class UserIdentity:
    """認証済みユーザー"""
    id: str = ""
    email: str = ""
    display_name: str = ""
    role: str = "student"  # student, teacher
    id_token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "displayName": self.display_name,
            "role": self.role,
        }


@dataclass
class CalendarEvent:
    """カレンダーの予定（外部サービス由来）"""
    external_id: str = ""
    subject: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    body_preview: str = ""
    location: Optional[str] = None
    importance: Optional[str] = None
    busy_status: Optional[str] = None
    is_recurring: bool = False
    series_id: Optional[str] = None


@dataclass
class StudentSummary:
    """先生画面用の生徒サマリー（%）"""
    id: str = ""
    name: str = ""
    focus_score: int = 0
    mood_score: int = 0
    attendance: int = 0

    @property
    def initials(self) -> str:
        return "".join(part[0] for part in self.name.split() if part).upper()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "initials": self.initials,
            "focusScore": self.focus_score,
            "moodScore": self.mood_score,
            "attendance": self.attendance,
        }
