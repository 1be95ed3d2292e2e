"""UserService — plan assignment and the entitlement snapshot for a user."""

from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vidgen.core.config import get_settings
from vidgen.core.exceptions import UserNotFoundError
from vidgen.db.models.user import User
from vidgen.entitlements.plans import PlanStatus, PlanType, get_plan_config
from vidgen.entitlements.schemas import UserSnapshot
from vidgen.quota.usage import QuotaTracker

logger = structlog.get_logger(__name__)

ENTERPRISE_DEFAULT_EXPIRY_DAYS = 30
_OVERRIDE_FIELDS = ("daily_video_limit", "bulk_max_prompts", "bulk_max_batch", "bulk_delay_seconds")


def snapshot_from_user(
    user: User,
    daily_video_count: int = 0,
    voice_characters_used: int = 0,
    voice_characters_reset_at: datetime | None = None,
) -> UserSnapshot:
    return UserSnapshot(
        id=user.id,
        username=user.username,
        is_admin=bool(user.is_admin),
        plan_type=user.plan_type,
        plan_status=user.plan_status,
        plan_expiry=user.plan_expiry,
        daily_video_count=daily_video_count,
        daily_video_limit=user.daily_video_limit,
        bulk_max_prompts=user.bulk_max_prompts,
        bulk_max_batch=user.bulk_max_batch,
        bulk_delay_seconds=user.bulk_delay_seconds,
        voice_characters_used=voice_characters_used,
        voice_characters_reset_at=voice_characters_reset_at,
    )


class UserService:
    """Service layer for users and their plans.

    Args:
        session_factory: SQLAlchemy async session factory
        tracker: Redis quota counters
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], tracker: QuotaTracker):
        self.session_factory = session_factory
        self.tracker = tracker

    async def _get(self, session: AsyncSession, user_id: str) -> User:
        result = await session.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def get_user(self, user_id: str) -> User:
        async with self.session_factory() as session:
            return await self._get(session, user_id)

    async def load_snapshot(self, user_id: str, now: datetime | None = None) -> UserSnapshot:
        """Read the users row and the Redis counters into one snapshot."""
        now = now or datetime.now(UTC)
        user = await self.get_user(user_id)
        daily = await self.tracker.get_daily_videos(user_id, now=now)
        voice_used, voice_reset_at = await self.tracker.get_voice_characters(user_id, now=now)
        return snapshot_from_user(user, daily, voice_used, voice_reset_at)

    async def create_user(
        self,
        username: str,
        is_admin: bool = False,
        plan_type: str = PlanType.FREE.value,
        expiry_days: int | None = None,
        now: datetime | None = None,
        **overrides: int | None,
    ) -> User:
        """Create a user. Paid plans start now and run for the renewal period."""
        if get_plan_config(plan_type) is None:
            raise ValueError(f"Unknown plan type: {plan_type}")

        now = now or datetime.now(UTC)
        user = User(
            username=username,
            is_admin=is_admin,
            plan_type=plan_type,
            plan_status=PlanStatus.ACTIVE.value,
            plan_expiry=self._default_expiry(plan_type, expiry_days, now),
        )
        if plan_type == PlanType.ENTERPRISE.value:
            for name in _OVERRIDE_FIELDS:
                setattr(user, name, overrides.get(name))

        async with self.session_factory() as session:
            session.add(user)
            await session.commit()

        logger.info("user_created", user_id=user.id, plan_type=plan_type, is_admin=is_admin)
        return user

    async def update_plan(
        self,
        user_id: str,
        plan_type: str,
        plan_status: str | None = None,
        plan_expiry: datetime | None = None,
        expiry_days: int | None = None,
        now: datetime | None = None,
        **overrides: int | None,
    ) -> User:
        """Assign a plan.

        An explicit ``plan_expiry`` wins. Enterprise with ``expiry_days`` restarts
        the period from now. A move from free to a paid plan with no expiry on
        record gets the default period. Otherwise the current expiry is kept.
        Override fields only survive on enterprise plans.
        """
        if get_plan_config(plan_type) is None:
            raise ValueError(f"Unknown plan type: {plan_type}")

        now = now or datetime.now(UTC)
        async with self.session_factory() as session:
            user = await self._get(session, user_id)

            expiry = plan_expiry or user.plan_expiry
            if plan_type == PlanType.ENTERPRISE.value and expiry_days:
                expiry = now + timedelta(days=expiry_days)
            elif (
                plan_type != PlanType.FREE.value
                and user.plan_type == PlanType.FREE.value
                and expiry is None
            ):
                expiry = self._default_expiry(plan_type, None, now)

            user.plan_type = plan_type
            user.plan_status = plan_status or PlanStatus.ACTIVE.value
            user.plan_expiry = expiry
            for name in _OVERRIDE_FIELDS:
                if plan_type == PlanType.ENTERPRISE.value:
                    value = overrides.get(name)
                    setattr(user, name, value if value is not None else getattr(user, name))
                else:
                    setattr(user, name, None)

            await session.commit()

        logger.info("user_plan_updated", user_id=user_id, plan_type=plan_type, plan_expiry=str(expiry))
        return user

    async def renew_plan(self, user_id: str, days: int | None = None, now: datetime | None = None) -> User:
        """Restart the user's current paid plan period from now."""
        now = now or datetime.now(UTC)
        days = days or get_settings().plan_renewal_days

        async with self.session_factory() as session:
            user = await self._get(session, user_id)
            if user.plan_type == PlanType.FREE.value:
                raise ValueError("Free plans cannot be renewed")
            user.plan_expiry = now + timedelta(days=days)
            user.plan_status = PlanStatus.ACTIVE.value
            await session.commit()

        logger.info("user_plan_renewed", user_id=user_id, days=days)
        return user

    async def remove_plan(self, user_id: str, now: datetime | None = None) -> User:
        """Drop the user to the free plan and clear today's usage."""
        async with self.session_factory() as session:
            user = await self._get(session, user_id)
            user.plan_type = PlanType.FREE.value
            user.plan_status = PlanStatus.ACTIVE.value
            user.plan_expiry = None
            for name in _OVERRIDE_FIELDS:
                setattr(user, name, None)
            await session.commit()

        await self.tracker.reset_daily_videos(user_id, now=now)
        logger.info("user_plan_removed", user_id=user_id)
        return user

    async def reset_usage(self, user_id: str, now: datetime | None = None) -> None:
        await self.get_user(user_id)
        await self.tracker.reset_daily_videos(user_id, now=now)
        logger.info("user_usage_reset", user_id=user_id)

    @staticmethod
    def _default_expiry(plan_type: str, expiry_days: int | None, now: datetime) -> datetime | None:
        if plan_type == PlanType.FREE.value:
            return None
        if expiry_days is None:
            expiry_days = (
                ENTERPRISE_DEFAULT_EXPIRY_DAYS
                if plan_type == PlanType.ENTERPRISE.value
                else get_settings().plan_renewal_days
            )
        return now + timedelta(days=expiry_days)
