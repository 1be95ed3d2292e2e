"""RotationSettingsService — read and patch the rotation settings singleton."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vidgen.db.models.rotation_settings import SINGLETON_ID, RotationSettings
from vidgen.db.seed import DEFAULT_ROTATION_SETTINGS

logger = structlog.get_logger(__name__)

_POSITIVE_FIELDS = (
    "rotation_interval_minutes",
    "max_requests_per_token",
    "videos_per_batch",
)


class RotationSettingsService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _load(self, session: AsyncSession) -> RotationSettings:
        result = await session.execute(
            select(RotationSettings).where(RotationSettings.id == SINGLETON_ID)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = RotationSettings(id=SINGLETON_ID, **DEFAULT_ROTATION_SETTINGS)
            session.add(row)
            await session.flush()
        return row

    async def get(self) -> RotationSettings:
        """Return the settings row, creating it with defaults if missing."""
        async with self.session_factory() as session:
            row = await self._load(session)
            await session.commit()
            return row

    async def update(self, patch: dict) -> RotationSettings:
        """Apply a partial update.

        Raises:
            ValueError: unknown field, or a count/interval that is not positive
        """
        unknown = set(patch) - set(DEFAULT_ROTATION_SETTINGS)
        if unknown:
            raise ValueError(f"Unknown rotation settings: {sorted(unknown)}")
        for name in _POSITIVE_FIELDS:
            if name in patch and patch[name] < 1:
                raise ValueError(f"{name} must be at least 1")
        if patch.get("batch_delay_seconds", 0) < 0:
            raise ValueError("batch_delay_seconds must be >= 0")

        async with self.session_factory() as session:
            row = await self._load(session)
            for name, value in patch.items():
                setattr(row, name, value)
            await session.commit()

        logger.info("rotation_settings_updated", fields=sorted(patch))
        return row
