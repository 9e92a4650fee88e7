"""
タイマー制御ロジック
"""
import asyncio
from typing import Awaitable, Callable, Optional, Union

FOCUS_MODE = "focus"
BREAK_MODE = "break"


class Ticker:
    """一定間隔でコールバックを呼ぶ協調タイマー（stopで以降のtickを止める）"""

    def __init__(self, on_tick: Callable[[], Union[bool, None, Awaitable]], interval: float = 1.0):
        self.on_tick = on_tick
        self.interval = interval
        self.is_running = False

    async def run(self):
        """on_tickがFalseを返すかstopされるまでtickし続ける"""
        self.is_running = True
        while self.is_running:
            await asyncio.sleep(self.interval)
            if not self.is_running:
                break
            result = self.on_tick()
            if asyncio.iscoroutine(result):
                result = await result
            if result is False:
                self.is_running = False

    def stop(self):
        self.is_running = False


class TimerController:
    """ポモドーロタイマー（集中 / 休憩の切り替え）"""

    def __init__(self, focus_minutes: int = 25, break_minutes: int = 5, interval: float = 1.0):
        self.focus_minutes = focus_minutes
        self.break_minutes = break_minutes
        self.mode = FOCUS_MODE
        self.remaining_seconds = focus_minutes * 60
        self.is_running = False
        self._ticker = Ticker(self.tick, interval)

        # コールバック
        self.on_tick: Optional[Callable[[int, str], None]] = None
        self.on_complete: Optional[Callable[[str], None]] = None  # 終了したモードを渡す
        self.on_interruption: Optional[Callable[[], None]] = None

    def _minutes_for(self, mode: str) -> int:
        return self.focus_minutes if mode == FOCUS_MODE else self.break_minutes

    def resume(self) -> bool:
        """カウントダウン中にする（tickは呼び出し側が進める）"""
        if self.remaining_seconds <= 0:
            return False
        self.is_running = True
        return True

    async def start(self):
        """カウントダウン開始（停止・完了まで戻らない）"""
        if self.is_running or not self.resume():
            return
        await self._ticker.run()

    def tick(self) -> bool:
        """1秒進める（続行ならTrue）"""
        if not self.is_running:
            return False
        self.remaining_seconds -= 1
        if self.on_tick:
            self.on_tick(self.remaining_seconds, self.mode)
        if self.remaining_seconds > 0:
            return True

        finished = self.mode
        self.is_running = False
        # 終了したら自動で次のモードへ
        self.mode = BREAK_MODE if finished == FOCUS_MODE else FOCUS_MODE
        self.remaining_seconds = self._minutes_for(self.mode) * 60
        if self.on_complete:
            self.on_complete(finished)
        return False

    def pause(self):
        """一時停止（中断として通知）"""
        if not self.is_running:
            return
        self.stop()
        if self.on_interruption:
            self.on_interruption()

    def stop(self):
        """停止（通知なし）"""
        self.is_running = False
        self._ticker.stop()

    def reset(self):
        """現在のモードの最初に戻す"""
        self.stop()
        self.remaining_seconds = self._minutes_for(self.mode) * 60

    def toggle_mode(self):
        """集中 / 休憩を切り替え"""
        self.stop()
        self.mode = BREAK_MODE if self.mode == FOCUS_MODE else FOCUS_MODE
        self.remaining_seconds = self._minutes_for(self.mode) * 60

    def set_focus_minutes(self, minutes: int):
        if minutes <= 0:
            return
        self.focus_minutes = minutes
        if self.mode == FOCUS_MODE:
            self.remaining_seconds = minutes * 60

    def set_break_minutes(self, minutes: int):
        if minutes <= 0:
            return
        self.break_minutes = minutes
        if self.mode == BREAK_MODE:
            self.remaining_seconds = minutes * 60

    def get_formatted_time(self) -> str:
        """残り時間を整形（MM:SS）"""
        minutes = self.remaining_seconds // 60
        seconds = self.remaining_seconds % 60
        return f"{minutes:02d}:{seconds:02d}"

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "remainingSeconds": self.remaining_seconds,
            "display": self.get_formatted_time(),
            "isRunning": self.is_running,
            "focusMinutes": self.focus_minutes,
            "breakMinutes": self.break_minutes,
        }
