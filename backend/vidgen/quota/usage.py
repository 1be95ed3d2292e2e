"""Per-user quota counters: daily videos and rolling voice characters."""

from datetime import UTC, datetime, timedelta

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


class QuotaTracker:
    """Track daily video usage (midnight UTC reset) and voice character usage.

    All mutations are single Redis commands (INCRBY/DECRBY), so concurrent
    requests for the same user never lose updates.
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    # ------------------------------------------------------------------
    # Daily videos
    # ------------------------------------------------------------------

    @staticmethod
    def _daily_key(user_id: str, now: datetime) -> str:
        return f"usage:{user_id}:videos:{now.date().isoformat()}"

    async def _expire_at_midnight(self, key: str, now: datetime) -> None:
        ttl = await self.redis.ttl(key)
        if ttl == -1:  # No expiry set
            await self.redis.expireat(key, int(self.next_reset(now).timestamp()))

    async def increment_daily_videos(self, user_id: str, count: int = 1, now: datetime | None = None) -> int:
        """Add ``count`` videos to today's counter.

        Args:
            user_id: User identifier
            count: Number of videos generated
            now: Current time (for deterministic testing)

        Returns:
            New usage count for today
        """
        now = now or datetime.now(UTC)
        key = self._daily_key(user_id, now)

        total = await self.redis.incrby(key, count)
        await self._expire_at_midnight(key, now)
        return total

    async def get_daily_videos(self, user_id: str, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        count = await self.redis.get(self._daily_key(user_id, now))
        return int(count) if count else 0

    async def reserve_daily_videos(
        self,
        user_id: str,
        count: int,
        limit: int,
        now: datetime | None = None,
    ) -> bool:
        """Atomically take ``count`` videos from today's quota.

        Increments first and rolls back if the result passes ``limit``, so two
        concurrent requests can never both take the last slot.

        Returns:
            True if the reservation stands, False if the quota was insufficient
        """
        now = now or datetime.now(UTC)
        key = self._daily_key(user_id, now)

        total = await self.redis.incrby(key, count)
        await self._expire_at_midnight(key, now)

        if total > limit:
            await self.redis.decrby(key, count)
            logger.info("daily_quota_reservation_rejected", user_id=user_id, requested=count, limit=limit)
            return False
        return True

    async def release_daily_videos(self, user_id: str, count: int = 1, now: datetime | None = None) -> int:
        """Give back reserved videos after a failed generation. Never goes below zero."""
        now = now or datetime.now(UTC)
        key = self._daily_key(user_id, now)

        total = await self.redis.decrby(key, count)
        if total < 0:
            await self.redis.incrby(key, -total)
            total = 0
        return total

    async def reset_daily_videos(self, user_id: str, now: datetime | None = None) -> None:
        now = now or datetime.now(UTC)
        await self.redis.delete(self._daily_key(user_id, now))

    # ------------------------------------------------------------------
    # Voice characters
    # ------------------------------------------------------------------

    @staticmethod
    def _voice_key(user_id: str) -> str:
        return f"usage:{user_id}:voice_chars"

    async def increment_voice_characters(
        self,
        user_id: str,
        characters: int,
        reset_days: int = 10,
    ) -> int:
        """Add characters to the rolling voice counter.

        The window starts on first use and the counter disappears after
        ``reset_days``.
        """
        key = self._voice_key(user_id)
        total = await self.redis.incrby(key, characters)

        ttl = await self.redis.ttl(key)
        if ttl == -1:
            await self.redis.expire(key, int(timedelta(days=reset_days).total_seconds()))
        return total

    async def get_voice_characters(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> tuple[int, datetime | None]:
        """Return (characters used, window reset time or None when no window is open)."""
        now = now or datetime.now(UTC)
        key = self._voice_key(user_id)

        used = await self.redis.get(key)
        if not used:
            return 0, None

        ttl = await self.redis.ttl(key)
        reset_at = now + timedelta(seconds=ttl) if ttl > 0 else None
        return int(used), reset_at

    @staticmethod
    def next_reset(now: datetime | None = None) -> datetime:
        """Next midnight UTC."""
        now = now or datetime.now(UTC)
        tomorrow = now.date() + timedelta(days=1)
        return datetime.combine(tomorrow, datetime.min.time(), tzinfo=UTC)
