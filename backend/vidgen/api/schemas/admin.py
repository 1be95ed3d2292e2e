"""Admin API Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from vidgen.db.models.provider_key import LABEL_MAX_LENGTH

# ---------- Provider keys ----------


class ProviderKeyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    provider: str
    label: str
    masked_secret: str
    is_active: bool
    state: str
    units_used: int
    units_limit: int
    error_count: int
    success_count: int
    last_error: str | None
    last_used_at: datetime | None
    created_at: datetime


class ProviderKeyCreate(BaseModel):
    secret: str = Field(..., min_length=1)
    label: str | None = Field(default=None, max_length=LABEL_MAX_LENGTH)
    units_limit: int | None = Field(default=None, ge=1)


class ProviderKeyBulkCreate(BaseModel):
    """One key per line; ``label|[cookie-json]`` lines carry their own label."""

    entries: str = Field(..., min_length=1)
    units_limit: int | None = Field(default=None, ge=1)


class ProviderKeyReplace(BaseModel):
    secrets: list[str]


class ProviderKeyToggle(BaseModel):
    is_active: bool


class BulkAddResponse(BaseModel):
    added: int
    duplicates: int
    invalid: int
    added_ids: list[str]
    duplicate_labels: list[str]


class PoolStatsResponse(BaseModel):
    provider: str
    total: int
    usable: int
    exhausted: int
    disabled: int
    units_used: int
    units_limit: int
    total_errors: int


class CountResponse(BaseModel):
    count: int


# ---------- Rotation settings ----------


class RotationSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rotation_enabled: bool
    rotation_interval_minutes: int
    max_requests_per_token: int
    videos_per_batch: int
    batch_delay_seconds: int
    updated_at: datetime


class RotationSettingsUpdate(BaseModel):
    rotation_enabled: bool | None = None
    rotation_interval_minutes: int | None = Field(default=None, ge=1)
    max_requests_per_token: int | None = Field(default=None, ge=1)
    videos_per_batch: int | None = Field(default=None, ge=1)
    batch_delay_seconds: int | None = Field(default=None, ge=0)


# ---------- Users ----------


class UserDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    is_admin: bool
    plan_type: str
    plan_status: str
    plan_expiry: datetime | None
    daily_video_limit: int | None
    bulk_max_prompts: int | None
    bulk_max_batch: int | None
    bulk_delay_seconds: int | None
    daily_video_count: int = 0


class UserPlanUpdate(BaseModel):
    plan_type: str
    plan_status: str | None = None
    plan_expiry: datetime | None = None
    expiry_days: int | None = Field(default=None, ge=1)
    daily_video_limit: int | None = Field(default=None, ge=0)
    bulk_max_prompts: int | None = Field(default=None, ge=0)
    bulk_max_batch: int | None = Field(default=None, ge=0)
    bulk_delay_seconds: int | None = Field(default=None, ge=0)


class UserPlanRenew(BaseModel):
    days: int | None = Field(default=None, ge=1)
