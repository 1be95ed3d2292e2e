"""RotationSettings model — process-wide bearer token rotation and batching settings."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer

from vidgen.db.base import Base

SINGLETON_ID = 1


class RotationSettings(Base):
    __tablename__ = "rotation_settings"

    id = Column(Integer, primary_key=True, default=SINGLETON_ID)
    rotation_enabled = Column(Boolean, nullable=False, default=False)
    rotation_interval_minutes = Column(Integer, nullable=False, default=60)
    max_requests_per_token = Column(Integer, nullable=False, default=1000)
    videos_per_batch = Column(Integer, nullable=False, default=10)
    batch_delay_seconds = Column(Integer, nullable=False, default=20)

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
