"""Idempotent seed data for the rotation settings singleton."""

from sqlalchemy import select

from vidgen.db.base import get_session_factory
from vidgen.db.models.rotation_settings import SINGLETON_ID, RotationSettings

DEFAULT_ROTATION_SETTINGS = {
    "rotation_enabled": False,
    "rotation_interval_minutes": 60,
    "max_requests_per_token": 1000,
    "videos_per_batch": 10,
    "batch_delay_seconds": 20,
}


async def seed_rotation_settings() -> None:
    """Insert the rotation settings row if it doesn't already exist."""
    factory = get_session_factory()

    async with factory() as session:
        result = await session.execute(
            select(RotationSettings).where(RotationSettings.id == SINGLETON_ID)
        )
        if result.scalar_one_or_none() is None:
            session.add(RotationSettings(id=SINGLETON_ID, **DEFAULT_ROTATION_SETTINGS))
            await session.commit()
