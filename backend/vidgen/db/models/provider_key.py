"""ProviderKey model — one credential in a provider's rotation pool."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from vidgen.db.base import Base

LABEL_MAX_LENGTH = 255


class ProviderKey(Base):
    __tablename__ = "provider_keys"
    __table_args__ = (UniqueConstraint("provider", "secret", name="uq_provider_keys_provider_secret"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider = Column(String(32), nullable=False, index=True)  # zyphra, cartesia, inworld, bearer, flow_cookie
    label = Column(String(LABEL_MAX_LENGTH), nullable=False)
    secret = Column(Text, nullable=False)  # api key, bearer token or cookie blob
    is_active = Column(Boolean, nullable=False, default=True)

    # Usage in the pool's unit (characters, minutes or requests)
    units_used = Column(Integer, nullable=False, default=0)
    units_limit = Column(Integer, nullable=False, default=0)

    # Health
    error_count = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
