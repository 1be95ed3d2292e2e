"""UsageRecorder: run a provider call against a reserved key with failover.

The reservation is taken before the call. A failed or timed-out call gives
the units back, counts an error against the key and moves on to another key
that has not been tried yet for this request.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from vidgen.core.config import get_settings
from vidgen.core.exceptions import PoolExhaustedError
from vidgen.keypool.pool import KeyLease, KeyPool

logger = structlog.get_logger(__name__)


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ProviderOutcome:
    """Terminal result of one provider request."""

    status: OutcomeStatus
    result: Any = None
    error: str | None = None
    key_id: str | None = None
    attempts: int = 0
    keys_tried: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED


class UsageRecorder:
    """Couples key reservation, the provider call and usage accounting.

    Args:
        pool: Pool to draw keys from
        max_attempts: Distinct keys tried per request
        timeout: Seconds allowed per provider call
    """

    def __init__(
        self,
        pool: KeyPool,
        max_attempts: int | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self.pool = pool
        self.max_attempts = max_attempts or settings.key_failover_attempts
        self.timeout = timeout or settings.provider_call_timeout_seconds

    async def execute(
        self,
        call: Callable[[KeyLease], Awaitable[Any]],
        units: int = 1,
        timeout: float | None = None,
    ) -> ProviderOutcome:
        """Run ``call`` with a reserved key until it succeeds or attempts run out.

        Raises:
            PoolExhaustedError: only when not even the first key can be reserved
        """
        timeout = timeout or self.timeout
        tried: list[str] = []
        last_error: str | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                lease = await self.pool.reserve(units, exclude=tried)
            except PoolExhaustedError:
                if attempt == 1:
                    raise
                last_error = last_error or f"No usable {self.pool.provider.value} key available"
                break
            tried.append(lease.key_id)

            try:
                result = await asyncio.wait_for(call(lease), timeout=timeout)
            except TimeoutError:
                last_error = f"Provider call timed out after {timeout:g}s"
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
            else:
                await self.pool.record_success(lease.key_id)
                return ProviderOutcome(
                    status=OutcomeStatus.COMPLETED,
                    result=result,
                    key_id=lease.key_id,
                    attempts=attempt,
                    keys_tried=tuple(tried),
                )

            await self.pool.release(lease.key_id, lease.units)
            await self.pool.record_failure(lease.key_id, last_error)
            logger.warning(
                "provider_call_failed",
                provider=self.pool.provider.value,
                key_id=lease.key_id,
                attempt=attempt,
                error=last_error,
            )

        return ProviderOutcome(
            status=OutcomeStatus.FAILED,
            error=last_error,
            key_id=tried[-1] if tried else None,
            attempts=len(tried),
            keys_tried=tuple(tried),
        )
