"""KeyPool — one provider's credential pool backed by the provider_keys table.

Reservation is a single-row compare-and-set:

    UPDATE provider_keys
       SET units_used = units_used + :n, last_used_at = :now
     WHERE id = :id AND is_active
       AND units_used + :n <= units_limit      -- auto-disable pools only
       AND error_count < :threshold            -- auto-disable pools only

A rowcount of 1 means the reservation stands. A rowcount of 0 means another
caller got there first (or an admin flipped the key); the pool re-reads state
and selects again. A lost race leaves the chosen key unable to take the same
units, so a caller may lose once per active key; the attempt budget is the
active key count plus ``max_retries``.
"""

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vidgen.core.config import get_settings
from vidgen.core.exceptions import DuplicateKeyError, KeyNotFoundError, PoolExhaustedError
from vidgen.db.base import get_session_factory
from vidgen.db.models.provider_key import LABEL_MAX_LENGTH, ProviderKey
from vidgen.keypool.policy import PoolPolicy, Provider, get_pool_policy
from vidgen.keypool.selector import KeyState, key_state, select_key

logger = structlog.get_logger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 1000


@dataclass(frozen=True)
class KeyLease:
    """A reserved key. ``units`` are already counted against the key."""

    key_id: str
    provider: str
    label: str
    secret: str
    units: int


@dataclass
class BulkAddReport:
    added: int = 0
    duplicates: int = 0
    invalid: int = 0
    added_ids: list[str] = field(default_factory=list)
    duplicate_labels: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PoolStats:
    total: int
    usable: int
    exhausted: int
    disabled: int
    units_used: int
    units_limit: int
    total_errors: int


def mask_secret(secret: str) -> str:
    """Short, non-reversible rendering of a secret for logs and the admin UI."""
    if len(secret) <= 12:
        return "****"
    return f"{secret[:4]}...{secret[-4:]}"


def parse_bulk_entry(line: str) -> tuple[str | None, str]:
    """Split one bulk-add line into (label, secret).

    ``label|[cookie-json]`` lines carry their own label; anything else is a
    bare secret.

    Raises:
        ValueError: the cookie part is not a JSON array, or the label is too long
    """
    line = line.strip()
    if "|[" in line:
        label, _, secret = line.partition("|")
        secret = secret.strip()
        try:
            cookies = json.loads(secret)
        except json.JSONDecodeError as exc:
            raise ValueError("Cookie entry is not valid JSON") from exc
        if not isinstance(cookies, list):
            raise ValueError("Cookie entry must be a JSON array")
        label = label.strip() or None
        if label is not None and len(label) > LABEL_MAX_LENGTH:
            raise ValueError(f"Label longer than {LABEL_MAX_LENGTH} characters")
        return label, secret
    return None, line


def _utcnow() -> datetime:
    return datetime.now(UTC)


class KeyPool:
    """Credential pool for one provider.

    Args:
        provider: Provider whose keys this pool manages
        session_factory: Async session factory (defaults to the shared one)
        policy: Pool policy (defaults to get_pool_policy(provider))
        max_retries: Conditional-update attempts per reservation on top of
            one per active key
    """

    def __init__(
        self,
        provider: Provider | str,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        policy: PoolPolicy | None = None,
        max_retries: int | None = None,
    ) -> None:
        self.provider = Provider(provider)
        self.policy = policy or get_pool_policy(self.provider)
        self.max_retries = max_retries or get_settings().key_reservation_max_retries
        self._session_factory = session_factory or get_session_factory()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_keys(self) -> list[ProviderKey]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderKey)
                .where(ProviderKey.provider == self.provider.value)
                .order_by(ProviderKey.created_at, ProviderKey.id)
            )
            return list(result.scalars().all())

    async def get(self, key_id: str) -> ProviderKey:
        async with self._session_factory() as session:
            return await self._get(session, key_id)

    async def _get(self, session: AsyncSession, key_id: str) -> ProviderKey:
        result = await session.execute(
            select(ProviderKey).where(
                ProviderKey.id == key_id,
                ProviderKey.provider == self.provider.value,
            )
        )
        key = result.scalar_one_or_none()
        if key is None:
            raise KeyNotFoundError(self.provider.value, key_id)
        return key

    def state_of(self, key: ProviderKey) -> KeyState:
        return key_state(key, self.policy)

    async def stats(self) -> PoolStats:
        keys = await self.list_keys()
        states = [self.state_of(k) for k in keys]
        return PoolStats(
            total=len(keys),
            usable=states.count(KeyState.USABLE),
            exhausted=states.count(KeyState.EXHAUSTED),
            disabled=states.count(KeyState.DISABLED),
            units_used=sum(k.units_used for k in keys),
            units_limit=sum(k.units_limit for k in keys),
            total_errors=sum(k.error_count for k in keys),
        )

    # ------------------------------------------------------------------
    # Admin mutations
    # ------------------------------------------------------------------

    async def add(self, secret: str, label: str | None = None, units_limit: int | None = None) -> ProviderKey:
        """Add one key.

        Without a label the key is named after the pool's prefix, numbered one
        past the highest number in use.

        Raises:
            ValueError: empty secret, or label longer than the column allows
            DuplicateKeyError: secret already in this pool
        """
        secret = secret.strip()
        if not secret:
            raise ValueError("Key secret must not be empty")
        if label is not None and len(label) > LABEL_MAX_LENGTH:
            raise ValueError(f"Label longer than {LABEL_MAX_LENGTH} characters")

        async with self._session_factory() as session:
            existing = await session.execute(
                select(ProviderKey.id).where(
                    ProviderKey.provider == self.provider.value,
                    ProviderKey.secret == secret,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise DuplicateKeyError(self.provider.value, label or mask_secret(secret))

            if label is None:
                label = f"{self.policy.label_prefix} {await self._next_label_number(session)}"

            key = ProviderKey(
                provider=self.provider.value,
                label=label,
                secret=secret,
                is_active=True,
                units_used=0,
                units_limit=units_limit if units_limit is not None else self.policy.default_units_limit,
                error_count=0,
                success_count=0,
            )
            session.add(key)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateKeyError(self.provider.value, label) from exc

        logger.info("key_added", provider=self.provider.value, key_id=key.id, label=label)
        return key

    async def _next_label_number(self, session: AsyncSession) -> int:
        prefix = f"{self.policy.label_prefix} "
        labels = await session.scalars(
            select(ProviderKey.label).where(
                ProviderKey.provider == self.provider.value,
                ProviderKey.label.startswith(prefix, autoescape=True),
            )
        )
        numbers = [int(tail) for tail in (label[len(prefix):] for label in labels) if tail.isdigit()]
        return max(numbers, default=0) + 1

    async def bulk_add(self, entries: str | Iterable[str], units_limit: int | None = None) -> BulkAddReport:
        """Add many keys, one per entry. Bad entries are counted, never fatal."""
        if isinstance(entries, str):
            entries = entries.splitlines()

        report = BulkAddReport()
        for line in entries:
            if not line.strip():
                continue
            try:
                label, secret = parse_bulk_entry(line)
                key = await self.add(secret, label=label, units_limit=units_limit)
            except DuplicateKeyError as exc:
                report.duplicates += 1
                report.duplicate_labels.append(exc.label)
            except ValueError:
                report.invalid += 1
            except DataError as exc:
                # Rejected by a column type, e.g. an over-long value on Postgres
                report.invalid += 1
                logger.warning(
                    "bulk_key_rejected",
                    provider=self.provider.value,
                    error=str(exc.orig),
                    error_type=type(exc.orig).__name__,
                )
            else:
                report.added += 1
                report.added_ids.append(key.id)

        logger.info(
            "keys_bulk_added",
            provider=self.provider.value,
            added=report.added,
            duplicates=report.duplicates,
            invalid=report.invalid,
        )
        return report

    async def replace_all(self, secrets: Iterable[str], units_limit: int | None = None) -> list[ProviderKey]:
        """Swap the whole pool for ``secrets`` in one transaction.

        Raises:
            ValueError: no secrets given
            DuplicateKeyError: the input repeats a secret
        """
        cleaned = [s.strip() for s in secrets if s.strip()]
        if not cleaned:
            raise ValueError("Cannot replace keys with an empty list")
        if len(set(cleaned)) != len(cleaned):
            raise DuplicateKeyError(self.provider.value, "duplicate entries in input")

        limit = units_limit if units_limit is not None else self.policy.default_units_limit
        keys = [
            ProviderKey(
                provider=self.provider.value,
                label=f"{self.policy.label_prefix} {i}",
                secret=secret,
                is_active=True,
                units_used=0,
                units_limit=limit,
                error_count=0,
                success_count=0,
            )
            for i, secret in enumerate(cleaned, start=1)
        ]

        async with self._session_factory() as session:
            await session.execute(delete(ProviderKey).where(ProviderKey.provider == self.provider.value))
            session.add_all(keys)
            await session.commit()

        logger.info("keys_replaced", provider=self.provider.value, count=len(keys))
        return keys

    async def toggle_active(self, key_id: str, is_active: bool) -> ProviderKey:
        async with self._session_factory() as session:
            key = await self._get(session, key_id)
            key.is_active = is_active
            await session.commit()

        logger.info("key_toggled", provider=self.provider.value, key_id=key_id, is_active=is_active)
        return key

    async def reset(self, key_id: str) -> ProviderKey:
        """Zero usage and error counters. ``is_active`` is left as the admin set it."""
        async with self._session_factory() as session:
            key = await self._get(session, key_id)
            key.units_used = 0
            key.error_count = 0
            key.last_error = None
            await session.commit()

        logger.info("key_reset", provider=self.provider.value, key_id=key_id)
        return key

    async def reset_all(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                update(ProviderKey)
                .where(ProviderKey.provider == self.provider.value)
                .values(units_used=0, error_count=0, last_error=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        logger.info("keys_reset", provider=self.provider.value, count=result.rowcount)
        return result.rowcount

    async def remove(self, key_id: str) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ProviderKey).where(
                    ProviderKey.id == key_id,
                    ProviderKey.provider == self.provider.value,
                )
            )
            if result.rowcount == 0:
                raise KeyNotFoundError(self.provider.value, key_id)
            await session.commit()

        logger.info("key_removed", provider=self.provider.value, key_id=key_id)

    async def remove_all(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ProviderKey).where(ProviderKey.provider == self.provider.value)
            )
            await session.commit()

        logger.info("keys_removed", provider=self.provider.value, count=result.rowcount)
        return result.rowcount

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    async def reserve(self, units: int = 1, exclude: Iterable[str] = ()) -> KeyLease:
        """Select a usable key and count ``units`` against it in one step.

        Raises:
            PoolExhaustedError: no usable key, or every attempt lost its race
        """
        if units < 0:
            raise ValueError("units must be >= 0")
        exclude = frozenset(exclude)
        attempt = 0
        budget = self.max_retries

        while attempt < budget:
            attempt += 1
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ProviderKey).where(
                        ProviderKey.provider == self.provider.value,
                        ProviderKey.is_active.is_(True),
                    )
                )
                keys = result.scalars().all()
                budget = max(budget, len(keys) + self.max_retries)

                try:
                    key = select_key(keys, self.policy, units=units, exclude=exclude)
                except PoolExhaustedError:
                    logger.warning(
                        "pool_exhausted",
                        provider=self.provider.value,
                        active_keys=len(keys),
                        excluded=len(exclude),
                        units=units,
                    )
                    raise

                lease = KeyLease(
                    key_id=key.id,
                    provider=self.provider.value,
                    label=key.label,
                    secret=key.secret,
                    units=units,
                )
                projected = key.units_used + units
                limit = key.units_limit

                if await self._conditional_increment(session, key.id, units):
                    await session.commit()
                    logger.info(
                        "key_reserved",
                        provider=self.provider.value,
                        key_id=lease.key_id,
                        label=lease.label,
                        units=units,
                        attempt=attempt,
                    )
                    if self.policy.auto_disable and projected >= limit:
                        logger.warning(
                            "key_auto_disabled",
                            provider=self.provider.value,
                            key_id=lease.key_id,
                            reason="usage_limit",
                            units_used=projected,
                            units_limit=limit,
                        )
                    return lease

                await session.rollback()
                logger.info(
                    "key_reservation_conflict",
                    provider=self.provider.value,
                    key_id=lease.key_id,
                    attempt=attempt,
                )

        logger.warning("key_reservation_retries_exhausted", provider=self.provider.value, attempts=attempt)
        raise PoolExhaustedError(
            self.provider.value,
            f"Could not reserve a {self.provider.value} key after {attempt} attempts",
        )

    async def _conditional_increment(self, session: AsyncSession, key_id: str, units: int) -> bool:
        stmt = (
            update(ProviderKey)
            .where(ProviderKey.id == key_id, ProviderKey.is_active.is_(True))
            .values(units_used=ProviderKey.units_used + units, last_used_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if self.policy.auto_disable:
            stmt = stmt.where(
                ProviderKey.units_used + units <= ProviderKey.units_limit,
                ProviderKey.error_count < self.policy.error_threshold,
            )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def release(self, key_id: str, units: int) -> None:
        """Refund a reservation whose provider call did not go through."""
        if units <= 0:
            return
        async with self._session_factory() as session:
            await session.execute(
                update(ProviderKey)
                .where(ProviderKey.id == key_id, ProviderKey.provider == self.provider.value)
                .values(
                    units_used=case(
                        (ProviderKey.units_used >= units, ProviderKey.units_used - units),
                        else_=0,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def record_success(self, key_id: str, units_consumed: int = 0) -> bool:
        """Record a successful call. ``units_consumed`` is usage beyond any reservation.

        Returns False if the key no longer exists.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(ProviderKey)
                .where(ProviderKey.id == key_id, ProviderKey.provider == self.provider.value)
                .values(
                    units_used=ProviderKey.units_used + units_consumed,
                    success_count=ProviderKey.success_count + 1,
                    last_used_at=_utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount == 0:
            logger.warning("key_success_for_missing_key", provider=self.provider.value, key_id=key_id)
            return False
        return True

    async def record_failure(self, key_id: str, error_message: str) -> ProviderKey | None:
        """Count a failed call against the key.

        Crossing the error threshold makes the key unusable for auto-disable
        pools; ``is_active`` is untouched. Returns None if the key is gone.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(ProviderKey)
                .where(ProviderKey.id == key_id, ProviderKey.provider == self.provider.value)
                .values(
                    error_count=ProviderKey.error_count + 1,
                    last_error=error_message[:MAX_ERROR_MESSAGE_LENGTH],
                    last_used_at=_utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

            if result.rowcount == 0:
                logger.warning("key_failure_for_missing_key", provider=self.provider.value, key_id=key_id)
                return None

            key = await self._get(session, key_id)

        if self.policy.auto_disable and key.error_count == self.policy.error_threshold:
            logger.warning(
                "key_auto_disabled",
                provider=self.provider.value,
                key_id=key_id,
                reason="error_threshold",
                error_count=key.error_count,
            )
        else:
            logger.info(
                "key_failure_recorded",
                provider=self.provider.value,
                key_id=key_id,
                error_count=key.error_count,
            )
        return key
