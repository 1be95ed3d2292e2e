"""Entitlement input snapshots and decision results."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DenialCode(str, Enum):
    """Why an entitlement check said no."""

    PLAN_EXPIRED = "plan_expired"
    INVALID_PLAN = "invalid_plan"
    TOOL_NOT_ALLOWED = "tool_not_allowed"
    DAILY_LIMIT = "daily_limit"
    BULK_LIMIT = "bulk_limit"
    VOICE_LIMIT = "voice_limit"


class UserSnapshot(BaseModel):
    """Point-in-time view of a user as seen by the entitlement evaluator.

    Built from the users row plus the Redis counters. ``plan_type`` is kept as a
    raw string so malformed values reach the evaluator instead of failing
    validation.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    username: str = ""
    is_admin: bool = False
    plan_type: str = "free"
    plan_status: str = "active"
    plan_expiry: datetime | None = None
    daily_video_count: int = Field(default=0, ge=0)

    # Enterprise overrides
    daily_video_limit: int | None = None
    bulk_max_prompts: int | None = None
    bulk_max_batch: int | None = None
    bulk_delay_seconds: int | None = None

    # Voice characters
    voice_characters_used: int = Field(default=0, ge=0)
    voice_characters_reset_at: datetime | None = None


class AccessDecision(BaseModel):
    """Result of an entitlement check. ``remaining_videos`` may be math.inf."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str | None = None
    code: DenialCode | None = None
    remaining_videos: int | float | None = None

    @classmethod
    def allow(cls, remaining_videos: int | float | None = None) -> "AccessDecision":
        return cls(allowed=True, remaining_videos=remaining_videos)

    @classmethod
    def deny(cls, code: DenialCode, reason: str) -> "AccessDecision":
        return cls(allowed=False, code=code, reason=reason)


class VoiceCharacterUsage(BaseModel):
    """Voice character usage for display. -1 in limit/remaining means unlimited."""

    used: int
    limit: int
    remaining: int
    reset_at: datetime | None
    reset_days: int
