"""Current user's plan summary."""

import math

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vidgen.core.auth import CurrentUser, require_auth
from vidgen.db.base import get_session_factory
from vidgen.db.redis import get_redis
from vidgen.entitlements.evaluator import (
    effective_daily_limit,
    format_plan_expiry,
    get_batch_config,
    get_remaining_videos,
    get_voice_character_usage,
    is_plan_expired,
    plan_config_for_user,
)
from vidgen.entitlements.schemas import VoiceCharacterUsage
from vidgen.quota.usage import QuotaTracker
from vidgen.services.user_service import UserService

router = APIRouter()


class BatchConfigResponse(BaseModel):
    max_batch: int
    delay_seconds: int
    max_prompts: int


class PlanSummaryResponse(BaseModel):
    """Plan view for the dashboard. -1 means unlimited."""

    plan_type: str
    plan_name: str
    plan_status: str
    plan_expiry: str | None
    expiry_label: str
    is_expired: bool
    daily_limit: int
    daily_video_count: int
    remaining_videos: int
    allowed_tools: list[str]
    batch_config: BatchConfigResponse
    voice: VoiceCharacterUsage


def _finite(value: int | float) -> int:
    return -1 if math.isinf(value) else int(value)


@router.get("/plan", response_model=PlanSummaryResponse)
async def get_my_plan(
    user: CurrentUser = Depends(require_auth),
    redis=Depends(get_redis),
):
    service = UserService(get_session_factory(), QuotaTracker(redis))
    snapshot = await service.load_snapshot(user.user_id)

    config = plan_config_for_user(snapshot)
    batch = get_batch_config(snapshot)
    daily_limit = config.daily_limit if snapshot.is_admin else (effective_daily_limit(snapshot) or 0)

    return PlanSummaryResponse(
        plan_type=snapshot.plan_type,
        plan_name=config.name,
        plan_status=snapshot.plan_status,
        plan_expiry=snapshot.plan_expiry.isoformat() if snapshot.plan_expiry else None,
        expiry_label=format_plan_expiry(snapshot.plan_expiry),
        is_expired=is_plan_expired(snapshot),
        daily_limit=_finite(daily_limit),
        daily_video_count=snapshot.daily_video_count,
        remaining_videos=_finite(get_remaining_videos(snapshot)),
        allowed_tools=sorted(config.allowed_tools),
        batch_config=BatchConfigResponse(
            max_batch=batch.max_batch,
            delay_seconds=batch.delay_seconds,
            max_prompts=batch.max_prompts,
        ),
        voice=get_voice_character_usage(snapshot),
    )
