"""Admin API routes — provider key pools, rotation settings, user plans."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from vidgen.api.schemas.admin import (
    BulkAddResponse,
    CountResponse,
    PoolStatsResponse,
    ProviderKeyBulkCreate,
    ProviderKeyCreate,
    ProviderKeyReplace,
    ProviderKeyResponse,
    ProviderKeyToggle,
    RotationSettingsResponse,
    RotationSettingsUpdate,
    UserDetail,
    UserPlanRenew,
    UserPlanUpdate,
)
from vidgen.core.auth import CurrentUser, require_admin
from vidgen.db.base import get_session_factory
from vidgen.db.models.provider_key import ProviderKey
from vidgen.db.redis import get_redis
from vidgen.keypool.policy import Provider
from vidgen.keypool.pool import KeyPool, mask_secret
from vidgen.quota.usage import QuotaTracker
from vidgen.services.rotation_settings_service import RotationSettingsService
from vidgen.services.user_service import UserService

router = APIRouter(prefix="/admin", tags=["admin"])


def _pool(provider: Provider) -> KeyPool:
    return KeyPool(provider, get_session_factory())


def _key_to_response(pool: KeyPool, key: ProviderKey) -> ProviderKeyResponse:
    return ProviderKeyResponse(
        id=key.id,
        provider=key.provider,
        label=key.label,
        masked_secret=mask_secret(key.secret),
        is_active=key.is_active,
        state=pool.state_of(key).value,
        units_used=key.units_used,
        units_limit=key.units_limit,
        error_count=key.error_count,
        success_count=key.success_count,
        last_error=key.last_error,
        last_used_at=key.last_used_at,
        created_at=key.created_at,
    )


async def _default_units_limit(provider: Provider) -> int | None:
    # New bearer tokens take their request budget from rotation settings
    if provider is not Provider.BEARER:
        return None
    settings = await RotationSettingsService(get_session_factory()).get()
    return settings.max_requests_per_token


# ---------- Provider keys ----------


@router.get("/keys/{provider}", response_model=list[ProviderKeyResponse])
async def list_keys(provider: Provider, _: CurrentUser = Depends(require_admin)):
    pool = _pool(provider)
    return [_key_to_response(pool, k) for k in await pool.list_keys()]


@router.get("/keys/{provider}/stats", response_model=PoolStatsResponse)
async def pool_stats(provider: Provider, _: CurrentUser = Depends(require_admin)):
    stats = await _pool(provider).stats()
    return PoolStatsResponse(provider=provider.value, **asdict(stats))


@router.post("/keys/{provider}", response_model=ProviderKeyResponse, status_code=201)
async def add_key(
    provider: Provider,
    body: ProviderKeyCreate,
    _: CurrentUser = Depends(require_admin),
):
    """Add one key. 409 if the secret is already pooled."""
    pool = _pool(provider)
    units_limit = body.units_limit or await _default_units_limit(provider)
    try:
        key = await pool.add(body.secret, label=body.label, units_limit=units_limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _key_to_response(pool, key)


@router.post("/keys/{provider}/bulk", response_model=BulkAddResponse)
async def bulk_add_keys(
    provider: Provider,
    body: ProviderKeyBulkCreate,
    _: CurrentUser = Depends(require_admin),
):
    units_limit = body.units_limit or await _default_units_limit(provider)
    report = await _pool(provider).bulk_add(body.entries, units_limit=units_limit)
    return BulkAddResponse(**asdict(report))


@router.put("/keys/{provider}", response_model=list[ProviderKeyResponse])
async def replace_keys(
    provider: Provider,
    body: ProviderKeyReplace,
    _: CurrentUser = Depends(require_admin),
):
    """Swap the whole bearer token pool in one transaction."""
    if provider is not Provider.BEARER:
        raise HTTPException(status_code=400, detail="Only the bearer pool supports replace")
    pool = _pool(provider)
    try:
        keys = await pool.replace_all(body.secrets, units_limit=await _default_units_limit(provider))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [_key_to_response(pool, k) for k in keys]


@router.patch("/keys/{provider}/{key_id}", response_model=ProviderKeyResponse)
async def toggle_key(
    provider: Provider,
    key_id: str,
    body: ProviderKeyToggle,
    _: CurrentUser = Depends(require_admin),
):
    pool = _pool(provider)
    return _key_to_response(pool, await pool.toggle_active(key_id, body.is_active))


@router.post("/keys/{provider}/{key_id}/reset", response_model=ProviderKeyResponse)
async def reset_key(provider: Provider, key_id: str, _: CurrentUser = Depends(require_admin)):
    pool = _pool(provider)
    return _key_to_response(pool, await pool.reset(key_id))


@router.post("/keys/{provider}/reset-all", response_model=CountResponse)
async def reset_all_keys(provider: Provider, _: CurrentUser = Depends(require_admin)):
    return CountResponse(count=await _pool(provider).reset_all())


@router.delete("/keys/{provider}/{key_id}", status_code=204)
async def delete_key(provider: Provider, key_id: str, _: CurrentUser = Depends(require_admin)):
    await _pool(provider).remove(key_id)


@router.delete("/keys/{provider}", response_model=CountResponse)
async def delete_all_keys(provider: Provider, _: CurrentUser = Depends(require_admin)):
    return CountResponse(count=await _pool(provider).remove_all())


# ---------- Rotation settings ----------


@router.get("/rotation-settings", response_model=RotationSettingsResponse)
async def get_rotation_settings(_: CurrentUser = Depends(require_admin)):
    return await RotationSettingsService(get_session_factory()).get()


@router.put("/rotation-settings", response_model=RotationSettingsResponse)
async def update_rotation_settings(
    body: RotationSettingsUpdate,
    _: CurrentUser = Depends(require_admin),
):
    try:
        return await RotationSettingsService(get_session_factory()).update(body.model_dump(exclude_none=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# ---------- Users ----------


async def _user_detail(service: UserService, user_id: str) -> UserDetail:
    user = await service.get_user(user_id)
    detail = UserDetail.model_validate(user)
    detail.daily_video_count = await service.tracker.get_daily_videos(user_id)
    return detail


@router.get("/users/{user_id}", response_model=UserDetail)
async def get_user(user_id: str, _: CurrentUser = Depends(require_admin), redis=Depends(get_redis)):
    return await _user_detail(UserService(get_session_factory(), QuotaTracker(redis)), user_id)


@router.put("/users/{user_id}/plan", response_model=UserDetail)
async def update_user_plan(
    user_id: str,
    body: UserPlanUpdate,
    _: CurrentUser = Depends(require_admin),
    redis=Depends(get_redis),
):
    service = UserService(get_session_factory(), QuotaTracker(redis))
    fields = body.model_dump()
    try:
        await service.update_plan(user_id, **fields)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return await _user_detail(service, user_id)


@router.post("/users/{user_id}/renew", response_model=UserDetail)
async def renew_user_plan(
    user_id: str,
    body: UserPlanRenew,
    _: CurrentUser = Depends(require_admin),
    redis=Depends(get_redis),
):
    service = UserService(get_session_factory(), QuotaTracker(redis))
    try:
        await service.renew_plan(user_id, days=body.days)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return await _user_detail(service, user_id)


@router.delete("/users/{user_id}/plan", response_model=UserDetail)
async def remove_user_plan(user_id: str, _: CurrentUser = Depends(require_admin), redis=Depends(get_redis)):
    service = UserService(get_session_factory(), QuotaTracker(redis))
    await service.remove_plan(user_id)
    return await _user_detail(service, user_id)


@router.post("/users/{user_id}/reset-usage", response_model=UserDetail)
async def reset_user_usage(user_id: str, _: CurrentUser = Depends(require_admin), redis=Depends(get_redis)):
    service = UserService(get_session_factory(), QuotaTracker(redis))
    await service.reset_usage(user_id)
    return await _user_detail(service, user_id)
