"""User model — plan assignment and enterprise overrides."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from vidgen.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(255), unique=True, nullable=False, index=True)
    is_admin = Column(Boolean, nullable=False, default=False)

    # Plan
    plan_type = Column(String(32), nullable=False, default="free")
    plan_status = Column(String(32), nullable=False, default="active")
    plan_expiry = Column(DateTime(timezone=True), nullable=True)

    # Enterprise overrides (nullable = use plan default)
    daily_video_limit = Column(Integer, nullable=True)
    bulk_max_prompts = Column(Integer, nullable=True)
    bulk_max_batch = Column(Integer, nullable=True)
    bulk_delay_seconds = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
