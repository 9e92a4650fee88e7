"""
集中セッションの記録ロジック
"""
import logging
from datetime import datetime
from typing import List, Optional

from ..database import Database, FOCUS_SESSIONS_KEY
from ..errors import InvalidStateError, ValidationError
from ..models import ACTIVITY_KINDS, Activity, CompletedSessionSummary, FocusSession, new_id
from .reward_ledger import RewardLedger

logger = logging.getLogger(__name__)


def focus_points_for(focus_minutes: int, interruption_count: int) -> int:
    """中断なしなら2倍"""
    return focus_minutes + (focus_minutes if interruption_count == 0 else 0)


class FocusSessionTracker:
    """集中セッションの状態管理（Idle -> Active -> Idle）"""

    def __init__(self, db: Database, ledger: RewardLedger, history: List[FocusSession] = None):
        self.db = db
        self.ledger = ledger
        self.history: List[FocusSession] = history or []
        self.active_session: Optional[FocusSession] = None

    @classmethod
    def load(cls, db: Database, ledger: RewardLedger) -> "FocusSessionTracker":
        history = []
        for item in db.get(FOCUS_SESSIONS_KEY) or []:
            try:
                history.append(FocusSession.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("skipping unreadable session %r: %s", item, e)
        return cls(db, ledger, history)

    @property
    def is_active(self) -> bool:
        return self.active_session is not None

    def start_session(self, now: datetime = None) -> FocusSession:
        """セッション開始"""
        if self.active_session is not None:
            raise InvalidStateError("A focus session is already running.")

        self.active_session = FocusSession(id=new_id(), start=now or datetime.now())
        logger.info("focus session started at %s", self.active_session.start)
        return self.active_session

    def record_activity(self, kind: str, now: datetime = None, details: str = "") -> Optional[Activity]:
        """行動を記録（セッション中でなければ何もしない）"""
        if kind not in ACTIVITY_KINDS:
            raise ValidationError(f"Unknown activity kind '{kind}'.")
        session = self.active_session
        if session is None:
            return None

        activity = Activity(id=new_id(), timestamp=now or datetime.now(), kind=kind, details=details)
        session.activities.append(activity)
        if activity.is_interruption:
            session.interruption_count += 1
        return activity

    def tick(self, now: datetime = None) -> int:
        """表示用の経過秒数を更新"""
        session = self.active_session
        if session is None:
            return 0
        session.duration_seconds = self._elapsed(session, now or datetime.now())
        return session.duration_seconds

    def stop_session(self, now: datetime = None) -> CompletedSessionSummary:
        """セッション終了・履歴へ保存・集中ポイント付与"""
        session = self.active_session
        if session is None:
            raise InvalidStateError("No focus session is running.")

        now = now or datetime.now()
        session.end = now
        session.duration_seconds = self._elapsed(session, now)

        focus_minutes = session.duration_seconds // 60
        points = focus_points_for(focus_minutes, session.interruption_count)

        self.history.append(session)
        self.active_session = None
        self.db.set(FOCUS_SESSIONS_KEY, [s.to_dict() for s in self.history])
        self.ledger.credit("focus", points, now)

        logger.info(
            "focus session finished: %d min, %d interruptions, %d points",
            focus_minutes, session.interruption_count, points,
        )
        return CompletedSessionSummary(session=session, focus_minutes=focus_minutes, focus_points=points)

    @staticmethod
    def _elapsed(session: FocusSession, now: datetime) -> int:
        return max(0, int((now - session.start).total_seconds()))
