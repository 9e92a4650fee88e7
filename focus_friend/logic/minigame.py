"""
クリックゲーム（反応速度ミニゲーム）
"""
import logging
import math
import random
from typing import Optional, Tuple

from ..errors import InvalidStateError
from .reward_ledger import RewardLedger
from .timer_logic import Ticker

logger = logging.getLogger(__name__)

NOT_STARTED = "not_started"
RUNNING = "running"
ENDED = "ended"

ROUND_SECONDS = 30
HIT_RADIUS = 50
BASE_POINTS = 10
MAX_MULTIPLIER = 5.0
COMBO_STEP = 0.1


class MinigameScorer:
    """30秒間ターゲットをクリックしてスコアを稼ぐゲーム"""

    def __init__(self, ledger: RewardLedger, width: int = 800, height: int = 600,
                 rng: random.Random = None, interval: float = 1.0):
        self.ledger = ledger
        self.width = width
        self.height = height
        self.rng = rng or random.Random()

        self.state = NOT_STARTED
        self.score = 0
        self.combo = 0
        self.time_left = ROUND_SECONDS
        self.target: Optional[Tuple[float, float]] = None
        self.points_earned: Optional[int] = None
        self._ticker = Ticker(self.tick, interval)

    @property
    def multiplier(self) -> float:
        return min(MAX_MULTIPLIER, 1 + COMBO_STEP * self.combo)

    def start(self):
        """ラウンド開始"""
        self._ticker.stop()
        self.state = RUNNING
        self.score = 0
        self.combo = 0
        self.time_left = ROUND_SECONDS
        self.points_earned = None
        self._place_target()

    def _place_target(self):
        # ターゲットが盤面からはみ出さない位置に置く
        x = self.rng.uniform(HIT_RADIUS, self.width - HIT_RADIUS)
        y = self.rng.uniform(HIT_RADIUS, self.height - HIT_RADIUS)
        self.target = (x, y)

    def register_click(self, point: Tuple[float, float]) -> bool:
        """クリック判定（外れは何もしない）"""
        if self.state != RUNNING:
            return False

        distance = math.hypot(point[0] - self.target[0], point[1] - self.target[1])
        if distance > HIT_RADIUS:
            return False

        # 倍率は直前までの連続ヒット数で決まる
        self.score += math.floor(round(BASE_POINTS * self.multiplier, 6))
        self.combo += 1
        self._place_target()
        return True

    def tick(self) -> bool:
        """1秒ごとのカウントダウン（続行ならTrue）"""
        if self.state != RUNNING:
            return False
        self.time_left -= 1
        if self.time_left > 0:
            return True
        self._end()
        return False

    def _end(self):
        self.state = ENDED
        self.time_left = 0
        self.target = None
        self.points_earned = self.ledger.credit_game_score(self.score)
        logger.info("minigame ended: score %d, %d points", self.score, self.points_earned)

    async def run(self):
        """カウントダウンをラウンド終了まで回す"""
        if self.state != RUNNING:
            raise InvalidStateError("Start the game before running the countdown.")
        await self._ticker.run()

    def stop(self):
        """カウントダウンを止める（ポイントは付与しない）"""
        self._ticker.stop()

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "score": self.score,
            "combo": self.combo,
            "multiplier": self.multiplier,
            "timeLeft": self.time_left,
            "target": list(self.target) if self.target else None,
            "pointsEarned": self.points_earned,
            "highScore": self.ledger.high_score,
        }
