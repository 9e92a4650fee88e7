"""
先生画面用のクラス集計
"""
from datetime import datetime
from typing import Dict, Iterable, List

from ..models import FocusSession, Lesson, MoodEntry, StudentSummary

# 良い状態として数える気分
POSITIVE_STATES = ("focused", "neutral")


def _percent(part: int, whole: int) -> int:
    if whole == 0:
        return 0
    return round(part / whole * 100)


def summarize_student(student_id: str, name: str, lessons: Iterable[Lesson],
                      entries: Iterable[MoodEntry], sessions: Iterable[FocusSession],
                      now: datetime = None) -> StudentSummary:
    """
    生徒1人分のサマリーを作成

    - focus_score: 中断なしで終えたセッションの割合
    - mood_score: focused / neutral の気分記録の割合
    - attendance: 終わったレッスンのうち気分チェックインがあった割合
    """
    now = now or datetime.now()
    entries = list(entries)
    sessions = [s for s in sessions if s.end is not None]
    past = [l for l in lessons if l.end <= now]

    checked_in = {(e.lesson_id, e.date_key) for e in entries}
    attended = sum(1 for l in past if (l.id, l.start.date().isoformat()) in checked_in)

    return StudentSummary(
        id=student_id,
        name=name,
        focus_score=_percent(sum(1 for s in sessions if s.interruption_count == 0), len(sessions)),
        mood_score=_percent(sum(1 for e in entries if e.state in POSITIVE_STATES), len(entries)),
        attendance=_percent(attended, len(past)),
    )


def class_averages(students: List[StudentSummary]) -> Dict[str, int]:
    """クラス平均（%）"""
    count = len(students)
    if count == 0:
        return {"focusScore": 0, "moodScore": 0, "attendance": 0, "students": 0}
    return {
        "focusScore": round(sum(s.focus_score for s in students) / count),
        "moodScore": round(sum(s.mood_score for s in students) / count),
        "attendance": round(sum(s.attendance for s in students) / count),
        "students": count,
    }
