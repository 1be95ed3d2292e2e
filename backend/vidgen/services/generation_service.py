"""BulkGenerationService — batch a user's prompts through the bearer key pool.

Events yielded by stream() are plain dicts, ready to be JSON-encoded onto an
SSE stream:

    {"type": "progress", "total", "completed", "failed", "batch", "batches"}
    {"type": "result", "index", "prompt", "status", "video_url", "error", "key_id"}
    {"type": "complete", "total", "completed", "failed"}
    {"type": "error", "code", "message"}

generate_video() runs one prompt down the same per-item path and raises
instead of yielding an error event.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from vidgen.core.exceptions import DailyLimitReachedError, PoolExhaustedError, ProviderCallError
from vidgen.entitlements.evaluator import (
    can_bulk_generate,
    can_generate_video,
    effective_daily_limit,
    ensure_allowed,
    get_batch_config,
)
from vidgen.entitlements.schemas import UserSnapshot
from vidgen.keypool.pool import KeyPool
from vidgen.keypool.recorder import UsageRecorder
from vidgen.quota.usage import QuotaTracker
from vidgen.services.rotation_settings_service import RotationSettingsService

logger = structlog.get_logger(__name__)

POOL_UNAVAILABLE_MESSAGE = "Video service temporarily unavailable. Please try again later."
DAILY_LIMIT_MESSAGE = "Daily video limit reached"
ITEM_ERROR_MESSAGE = "Generation failed. Please try again."

# (token, prompt) -> object with a ``video_url`` attribute
VideoGenerator = Callable[[str, str], Awaitable[Any]]


@dataclass
class _ItemResult:
    index: int
    prompt: str
    status: str
    video_url: str | None = None
    error: str | None = None
    key_id: str | None = None
    pool_exhausted: bool = False
    quota_exceeded: bool = False

    def to_event(self) -> dict:
        return {
            "type": "result",
            "index": self.index,
            "prompt": self.prompt,
            "status": self.status,
            "video_url": self.video_url,
            "error": self.error,
            "key_id": self.key_id,
        }


def plan_batches(prompts: list[str], batch_size: int) -> list[list[tuple[int, str]]]:
    """Split prompts into consecutive batches of (index, prompt)."""
    indexed = list(enumerate(prompts))
    return [indexed[i : i + batch_size] for i in range(0, len(indexed), batch_size)]


class BulkGenerationService:
    """Runs bulk and single video generation for one user.

    Args:
        pool: Bearer token pool
        tracker: Redis quota counters
        rotation_settings: Batch size and delay source
        generate: Provider call taking (token, prompt)
        recorder: UsageRecorder over ``pool`` (built if omitted)
        sleep: Awaitable sleep between batches
    """

    def __init__(
        self,
        pool: KeyPool,
        tracker: QuotaTracker,
        rotation_settings: RotationSettingsService,
        generate: VideoGenerator,
        recorder: UsageRecorder | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.pool = pool
        self.tracker = tracker
        self.rotation_settings = rotation_settings
        self.generate = generate
        self.recorder = recorder or UsageRecorder(pool)
        self.sleep = sleep

    async def batch_plan(self, user: UserSnapshot) -> tuple[int, int]:
        """Return (batch size, delay seconds) for ``user``."""
        settings = await self.rotation_settings.get()
        limits = get_batch_config(user)

        batch_size = settings.videos_per_batch
        if limits.max_batch > 0:
            batch_size = min(batch_size, limits.max_batch)
        delay = limits.delay_seconds if limits.delay_seconds > 0 else settings.batch_delay_seconds
        return max(1, batch_size), delay

    async def stream(
        self,
        user: UserSnapshot,
        prompts: list[str],
        now: datetime | None = None,
    ) -> AsyncIterator[dict]:
        prompts = [p.strip() for p in prompts if p and p.strip()]
        if not prompts:
            yield {"type": "error", "code": "no_prompts", "message": "No prompts provided"}
            return

        decision = can_bulk_generate(user, len(prompts), now)
        if not decision.allowed:
            logger.info("bulk_generation_denied", user_id=user.id, code=decision.code, count=len(prompts))
            yield {"type": "error", "code": decision.code.value, "message": decision.reason}
            return

        batch_size, delay = await self.batch_plan(user)
        batches = plan_batches(prompts, batch_size)
        limit = effective_daily_limit(user)
        completed = failed = 0

        logger.info(
            "bulk_generation_started",
            user_id=user.id,
            total=len(prompts),
            batch_size=batch_size,
            batches=len(batches),
            delay_seconds=delay,
        )

        yield self._progress(len(prompts), completed, failed, 0, len(batches))

        for number, batch in enumerate(batches, start=1):
            outcomes = await asyncio.gather(
                *(self._generate_one(user, index, prompt, limit, now) for index, prompt in batch),
                return_exceptions=True,
            )

            exhausted = False
            for (index, prompt), result in zip(batch, outcomes):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    logger.error(
                        "bulk_generation_item_error",
                        user_id=user.id,
                        index=index,
                        error=str(result),
                        error_type=type(result).__name__,
                        exc_info=result,
                    )
                    result = _ItemResult(index, prompt, "failed", error=ITEM_ERROR_MESSAGE)

                if result.status == "completed":
                    completed += 1
                else:
                    failed += 1
                exhausted = exhausted or result.pool_exhausted
                yield result.to_event()

            yield self._progress(len(prompts), completed, failed, number, len(batches))

            if exhausted:
                logger.warning("bulk_generation_pool_exhausted", user_id=user.id, batch=number)
                yield {"type": "error", "code": "pool_exhausted", "message": POOL_UNAVAILABLE_MESSAGE}
                return

            if number < len(batches) and delay > 0:
                await self.sleep(delay)

        logger.info("bulk_generation_complete", user_id=user.id, completed=completed, failed=failed)
        yield {"type": "complete", "total": len(prompts), "completed": completed, "failed": failed}

    async def generate_video(self, user: UserSnapshot, prompt: str, now: datetime | None = None) -> dict:
        """Generate one video outside any batch and return its ``result`` event.

        Raises:
            ValueError: blank prompt
            EntitlementError: expired or invalid plan, or daily limit reached
            PoolExhaustedError: no usable bearer token
            ProviderCallError: every token tried failed
        """
        prompt = prompt.strip()
        if not prompt:
            raise ValueError("Prompt must not be empty")

        ensure_allowed(can_generate_video(user, now))

        limit = effective_daily_limit(user)
        result = await self._generate_one(user, 0, prompt, limit, now)
        if result.quota_exceeded:
            raise DailyLimitReachedError(
                f"You have reached your daily limit of {limit} videos. Limit resets at midnight."
            )
        if result.pool_exhausted:
            raise PoolExhaustedError(self.pool.provider.value)
        if result.status != "completed":
            raise ProviderCallError(result.error or ITEM_ERROR_MESSAGE)

        logger.info("video_generated", user_id=user.id, key_id=result.key_id)
        return result.to_event()

    async def _generate_one(
        self,
        user: UserSnapshot,
        index: int,
        prompt: str,
        limit: int | None,
        now: datetime | None,
    ) -> _ItemResult:
        # Admins are counted but never limited
        if user.is_admin:
            await self.tracker.increment_daily_videos(user.id, 1, now=now)
        elif limit is None or not await self.tracker.reserve_daily_videos(user.id, 1, limit, now=now):
            return _ItemResult(index, prompt, "failed", error=DAILY_LIMIT_MESSAGE, quota_exceeded=True)

        try:
            outcome = await self.recorder.execute(lambda lease: self.generate(lease.secret, prompt))
        except PoolExhaustedError:
            await self.tracker.release_daily_videos(user.id, 1, now=now)
            return _ItemResult(index, prompt, "failed", error=POOL_UNAVAILABLE_MESSAGE, pool_exhausted=True)
        except Exception:
            await self.tracker.release_daily_videos(user.id, 1, now=now)
            raise

        if outcome.ok:
            return _ItemResult(
                index,
                prompt,
                "completed",
                video_url=getattr(outcome.result, "video_url", None),
                key_id=outcome.key_id,
            )

        await self.tracker.release_daily_videos(user.id, 1, now=now)
        return _ItemResult(index, prompt, "failed", error=outcome.error, key_id=outcome.key_id)

    @staticmethod
    def _progress(total: int, completed: int, failed: int, batch: int, batches: int) -> dict:
        return {
            "type": "progress",
            "total": total,
            "completed": completed,
            "failed": failed,
            "batch": batch,
            "batches": batches,
        }
