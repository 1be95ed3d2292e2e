"""Rotation selector — pure key eligibility and ranking over pool state.

Nothing here touches storage or keeps a cursor: the pool reads current rows,
asks select_key() for the best candidate and commits with a conditional
update. Concurrent callers that pick the same key race on that update and the
losers simply select again.

Ranking among usable keys:
    1. lowest relative usage (units_used / units_limit)
    2. least recently used (never-used keys first)
    3. id, for determinism
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

from vidgen.core.exceptions import PoolExhaustedError
from vidgen.keypool.policy import PoolPolicy

_NEVER = datetime.min.replace(tzinfo=UTC)


class KeyRecord(Protocol):
    id: str
    is_active: bool
    units_used: int
    units_limit: int
    error_count: int
    last_used_at: datetime | None


class KeyState(str, Enum):
    """Admin-facing key state. Only USABLE keys are ever selected."""

    USABLE = "active_usable"
    EXHAUSTED = "active_exhausted"  # automatic: usage limit or error threshold
    DISABLED = "disabled"  # manual: admin cleared is_active


def is_exhausted(key: KeyRecord, policy: PoolPolicy) -> bool:
    if not policy.auto_disable:
        return False
    return key.units_used >= key.units_limit or key.error_count >= policy.error_threshold


def is_usable(key: KeyRecord, policy: PoolPolicy) -> bool:
    return bool(key.is_active) and not is_exhausted(key, policy)


def key_state(key: KeyRecord, policy: PoolPolicy) -> KeyState:
    if not key.is_active:
        return KeyState.DISABLED
    if is_exhausted(key, policy):
        return KeyState.EXHAUSTED
    return KeyState.USABLE


def has_capacity(key: KeyRecord, policy: PoolPolicy, units: int) -> bool:
    """True if ``units`` more would keep the key within its limit."""
    if not policy.auto_disable:
        return True
    return key.units_used + units <= key.units_limit


def relative_usage(key: KeyRecord) -> float:
    if key.units_limit > 0:
        return key.units_used / key.units_limit
    return float(key.units_used)


def _last_used(key: KeyRecord) -> datetime:
    if key.last_used_at is None:
        return _NEVER
    if key.last_used_at.tzinfo is None:
        return key.last_used_at.replace(tzinfo=UTC)
    return key.last_used_at


def rank_key(key: KeyRecord) -> tuple[float, datetime, str]:
    return (relative_usage(key), _last_used(key), str(key.id))


def select_key(
    keys: Iterable[KeyRecord],
    policy: PoolPolicy,
    units: int = 1,
    exclude: Iterable[str] = (),
) -> KeyRecord:
    """Pick the best usable key that can absorb ``units``.

    Raises:
        PoolExhaustedError: no key is usable with enough remaining capacity
    """
    excluded = set(exclude)
    candidates = [
        key
        for key in keys
        if key.id not in excluded and is_usable(key, policy) and has_capacity(key, policy, units)
    ]
    if not candidates:
        raise PoolExhaustedError(policy.provider.value)
    return min(candidates, key=rank_key)
