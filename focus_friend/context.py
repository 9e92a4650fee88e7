"""
ログイン中ユーザーのセッションコンテキスト
サインイン時に作成・ストアから復元し、サインアウト時に破棄する
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from . import config
from .database import Database, PROFILE_KEY
from .errors import ExternalCollaboratorError, InvalidStateError
from .logic.focus_tracker import FocusSessionTracker
from .logic.minigame import MinigameScorer
from .logic.reward_ledger import RewardLedger
from .logic.schedule import ScheduleAggregator, week_bounds
from .logic.timer_logic import FOCUS_MODE, TimerController
from .models import CompletedSessionSummary, UserIdentity

logger = logging.getLogger(__name__)


class SessionContext:
    """1ユーザー分の状態（時間割・集中・気分・ポイント・ゲーム）をまとめる"""

    def __init__(self, user: UserIdentity, db: Database):
        self.user = user
        self.db = db
        self.schedule = ScheduleAggregator.load(db)
        self.ledger = RewardLedger.load(db, self.schedule)
        self.tracker = FocusSessionTracker.load(db, self.ledger)
        self.game = MinigameScorer(self.ledger)
        self.timer = TimerController()
        # タイマーの一時停止は集中セッションの中断として記録
        self.timer.on_interruption = self._on_timer_paused
        # 集中タイマーが終わったら集中セッションも終える
        self.timer.on_complete = self._on_timer_complete
        self.last_timer_summary: Optional[CompletedSessionSummary] = None
        self._timer_now: Optional[datetime] = None
        self.db.set(PROFILE_KEY, user.to_dict())
        self.is_open = True
        logger.info("session context opened for %s", user.id)

    @classmethod
    def open(cls, user: UserIdentity, db: Database = None) -> "SessionContext":
        """ユーザーのストアを開いてコンテキストを作成"""
        base = db or Database()
        return cls(user, base.for_user(user.id))

    def _on_timer_paused(self):
        self.tracker.record_activity("leave", details="Timer paused")

    def _on_timer_complete(self, finished_mode: str):
        if finished_mode != FOCUS_MODE or not self.tracker.is_active:
            return
        self.last_timer_summary = self.tracker.stop_session(self._timer_now)

    def tick_timer(self, now: datetime = None) -> Optional[CompletedSessionSummary]:
        """タイマーを1秒進め、集中セッションが終わった場合はそのまとめを返す"""
        self.last_timer_summary = None
        self._timer_now = now
        try:
            self.timer.tick()
        finally:
            self._timer_now = None
        return self.last_timer_summary

    async def sync_calendar(self, calendar, week_offset: int = 0, today: date = None,
                            timezone: str = None):
        """
        カレンダーの予定を時間割に取り込む

        取得に失敗した場合は時間割を変更しない。
        取得中にサインアウトされた場合は結果を捨てる。
        """
        start, end = week_bounds(week_offset, today)
        range_start = datetime(start.year, start.month, start.day)
        range_end = datetime(end.year, end.month, end.day) + timedelta(days=1)

        try:
            events = await calendar.fetch_events(range_start, range_end, timezone or config.CALENDAR_TIMEZONE)
        except ExternalCollaboratorError as e:
            logger.warning("calendar sync failed for %s: %s (%s)", self.user.id, e.message, e.reason)
            raise

        if not self.is_open:
            logger.info("discarding calendar result for closed session %s", self.user.id)
            return []
        return self.schedule.import_from_calendar_source(events)

    def ensure_open(self):
        if not self.is_open:
            raise InvalidStateError("This session has been signed out.")

    def close(self):
        """サインアウト時の後始末（タイマー停止）"""
        self.timer.stop()
        self.game.stop()
        self.is_open = False
        logger.info("session context closed for %s", self.user.id)

    def snapshot(self, now: Optional[datetime] = None) -> dict:
        """画面表示用の現在状態"""
        now = now or datetime.now()
        current = self.schedule.current_lesson(now)
        active = self.tracker.active_session
        return {
            "user": self.user.to_dict(),
            "currentLesson": current.to_dict() if current else None,
            "currentPeriod": self.schedule.current_period(now),
            "activeSession": active.to_dict() if active else None,
            "rewards": self.ledger.stats.to_dict(),
            "level": self.ledger.level_info(),
            "highScore": self.ledger.high_score,
        }
