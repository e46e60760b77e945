from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from redis.asyncio import Redis
from picfight.services.time_windows import as_utc


@dataclass(frozen=True)
class ThrottleDecision:
    allowed: bool
    retry_after_seconds: int = 0


class SubmitThrottle:
    """
    Minimum interval between two submit attempts by the same owner on the same board.

    A last-attempt timestamp check, not a queueing rate limiter. With Redis the
    stamp is a `SET NX EX` key shared across API workers; without it the stamp
    lives in this process only.
    """

    def __init__(self, cooldown_seconds: int, redis: Redis | None = None):
        self.cooldown_seconds = max(0, int(cooldown_seconds))
        self.redis = redis
        self._last_attempt: dict[str, datetime] = {}

    @staticmethod
    def _key(board_id, owner: str) -> str:
        return f"submit-cooldown:{board_id}:{owner}"

    async def attempt(self, board_id, owner: str, now: datetime) -> ThrottleDecision:
        """Record an attempt if allowed; otherwise report how long to wait."""
        if self.cooldown_seconds == 0:
            return ThrottleDecision(allowed=True)
        key = self._key(board_id, owner)

        if self.redis is not None:
            stored = await self.redis.set(key, as_utc(now).isoformat(), nx=True, ex=self.cooldown_seconds)
            if stored:
                return ThrottleDecision(allowed=True)
            ttl = await self.redis.ttl(key)
            return ThrottleDecision(allowed=False, retry_after_seconds=max(1, int(ttl or 1)))

        now = as_utc(now)
        last = self._last_attempt.get(key)
        if last is not None:
            elapsed = (now - last).total_seconds()
            if elapsed < self.cooldown_seconds:
                remaining = self.cooldown_seconds - elapsed
                return ThrottleDecision(allowed=False, retry_after_seconds=max(1, int(remaining + 0.999)))
        self._last_attempt = {
            k: t for k, t in self._last_attempt.items()
            if (now - t).total_seconds() < self.cooldown_seconds
        }
        self._last_attempt[key] = now
        return ThrottleDecision(allowed=True)
