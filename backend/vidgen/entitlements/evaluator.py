"""Entitlement evaluator — plan expiry, daily quota and tool access decisions.

Every function here is pure and total: it reads a UserSnapshot and returns a
bool, a number or an AccessDecision, never raises. Service code that wants an
exception calls ensure_allowed() on the decision.

Check order for access decisions is fixed:
    admin bypass -> plan expiry -> plan resolution -> tool membership -> quota

Empire is displayed as unlimited (get_remaining_videos returns inf) but the
authorization path (has_reached_daily_limit, can_bulk_generate) always uses
the numeric daily limit.
"""

import math
from dataclasses import replace
from datetime import UTC, datetime, timedelta

from vidgen.core.exceptions import (
    BulkLimitExceededError,
    DailyLimitReachedError,
    EntitlementError,
    InvalidPlanError,
    PlanExpiredError,
    ToolNotAllowedError,
    VoiceLimitExceededError,
)
from vidgen.entitlements.plans import (
    ADMIN_PLAN_NAME,
    PER_REQUEST_CHAR_LIMITS,
    PLAN_CONFIGS,
    UNLIMITED,
    VOICE_CHARACTER_LIMITS,
    BulkGenerationLimits,
    PlanConfig,
    PlanType,
    Tool,
    get_plan_config,
    tool_value,
)
from vidgen.entitlements.schemas import AccessDecision, DenialCode, UserSnapshot, VoiceCharacterUsage

EXPIRED_REASON = "Your plan has expired. Please contact admin to renew."
INVALID_PLAN_REASON = "Invalid plan type. Please contact admin."

_DENIAL_ERRORS: dict[DenialCode, type[EntitlementError]] = {
    DenialCode.PLAN_EXPIRED: PlanExpiredError,
    DenialCode.INVALID_PLAN: InvalidPlanError,
    DenialCode.TOOL_NOT_ALLOWED: ToolNotAllowedError,
    DenialCode.DAILY_LIMIT: DailyLimitReachedError,
    DenialCode.BULK_LIMIT: BulkLimitExceededError,
    DenialCode.VOICE_LIMIT: VoiceLimitExceededError,
}


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps (SQLite, date-only strings) are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _now(now: datetime | None) -> datetime:
    return _as_utc(now) if now is not None else datetime.now(UTC)


# ---------------------------------------------------------------------------
# Expiry and quota
# ---------------------------------------------------------------------------


def is_plan_expired(user: UserSnapshot, now: datetime | None = None) -> bool:
    """Return True if a paid plan is strictly past its expiry.

    Admins and free plans never expire. A paid plan without an expiry never
    expires either.
    """
    if user.is_admin or user.plan_type == PlanType.FREE.value:
        return False

    if user.plan_expiry is None:
        return False

    return _now(now) > _as_utc(user.plan_expiry)


def effective_daily_limit(user: UserSnapshot) -> int | None:
    """Daily video limit enforced for the user, or None if the plan is unknown.

    Enterprise users may carry a per-user override.
    """
    config = get_plan_config(user.plan_type)
    if config is None:
        return None

    if user.plan_type == PlanType.ENTERPRISE.value and user.daily_video_limit:
        return user.daily_video_limit

    return config.daily_limit


def has_reached_daily_limit(user: UserSnapshot) -> bool:
    """Authorization check for the daily quota. Unknown plans fail closed."""
    if user.is_admin:
        return False

    limit = effective_daily_limit(user)
    if limit is None:
        return True

    return user.daily_video_count >= limit


def _enforced_remaining(user: UserSnapshot) -> int | float:
    if user.is_admin:
        return UNLIMITED

    limit = effective_daily_limit(user)
    if limit is None:
        return 0

    return max(0, limit - user.daily_video_count)


def get_remaining_videos(user: UserSnapshot) -> int | float:
    """Remaining videos for display.

    Empire shows as unlimited here; enforcement still uses the numeric limit.
    """
    if user.is_admin:
        return UNLIMITED

    if get_plan_config(user.plan_type) is None:
        return 0

    if user.plan_type == PlanType.EMPIRE.value:
        return UNLIMITED

    return _enforced_remaining(user)


# ---------------------------------------------------------------------------
# Access decisions
# ---------------------------------------------------------------------------


def can_access_tool(user: UserSnapshot, tool: Tool | str, now: datetime | None = None) -> AccessDecision:
    if user.is_admin:
        return AccessDecision.allow()

    if is_plan_expired(user, now):
        return AccessDecision.deny(DenialCode.PLAN_EXPIRED, EXPIRED_REASON)

    config = get_plan_config(user.plan_type)
    if config is None:
        return AccessDecision.deny(DenialCode.INVALID_PLAN, INVALID_PLAN_REASON)

    if tool_value(tool) not in config.allowed_tools:
        return AccessDecision.deny(
            DenialCode.TOOL_NOT_ALLOWED,
            f"This tool is not available on your {config.name} plan. "
            "Please upgrade to access this feature.",
        )

    return AccessDecision.allow()


def can_generate_video(user: UserSnapshot, now: datetime | None = None) -> AccessDecision:
    """Check a single video generation against expiry, plan and daily quota."""
    if user.is_admin:
        return AccessDecision.allow(remaining_videos=UNLIMITED)

    if is_plan_expired(user, now):
        return AccessDecision.deny(DenialCode.PLAN_EXPIRED, EXPIRED_REASON)

    if get_plan_config(user.plan_type) is None:
        return AccessDecision.deny(DenialCode.INVALID_PLAN, INVALID_PLAN_REASON)

    if has_reached_daily_limit(user):
        return AccessDecision.deny(
            DenialCode.DAILY_LIMIT,
            f"You have reached your daily limit of {effective_daily_limit(user)} videos. "
            "Limit resets at midnight.",
        )

    return AccessDecision.allow(remaining_videos=get_remaining_videos(user))


def can_bulk_generate(user: UserSnapshot, video_count: int, now: datetime | None = None) -> AccessDecision:
    """Check a bulk request of ``video_count`` prompts.

    Requires bulk tool access, stays within the plan's total prompt cap and
    within the enforced (not displayed) remaining daily quota.
    """
    if user.is_admin:
        return AccessDecision.allow(remaining_videos=UNLIMITED)

    decision = can_access_tool(user, Tool.BULK, now)
    if not decision.allowed:
        return decision

    config = get_plan_config(user.plan_type)
    max_prompts = config.bulk_generation.max_prompts
    if user.plan_type == PlanType.ENTERPRISE.value and user.bulk_max_prompts:
        max_prompts = user.bulk_max_prompts

    if video_count > max_prompts:
        return AccessDecision.deny(
            DenialCode.BULK_LIMIT,
            f"Your {config.name} plan allows a maximum of {max_prompts} prompts in total. "
            "Please reduce the number of prompts.",
        )

    remaining = _enforced_remaining(user)
    if video_count > remaining:
        return AccessDecision.deny(
            DenialCode.DAILY_LIMIT,
            f"You have {remaining} videos remaining today. Cannot generate {video_count} videos.",
        )

    return AccessDecision.allow(remaining_videos=get_remaining_videos(user))


def ensure_allowed(decision: AccessDecision) -> None:
    """Raise the EntitlementError matching a denied decision."""
    if decision.allowed:
        return
    error_cls = _DENIAL_ERRORS.get(decision.code, EntitlementError)
    raise error_cls(decision.reason or "Access denied")


# ---------------------------------------------------------------------------
# Plan views
# ---------------------------------------------------------------------------


def get_batch_config(user: UserSnapshot) -> BulkGenerationLimits:
    if user.is_admin:
        return PLAN_CONFIGS[PlanType.EMPIRE.value].bulk_generation

    config = get_plan_config(user.plan_type)
    if config is None:
        return BulkGenerationLimits(max_batch=0, delay_seconds=0, max_prompts=0)

    if user.plan_type == PlanType.ENTERPRISE.value:
        defaults = config.bulk_generation
        return BulkGenerationLimits(
            max_batch=user.bulk_max_batch if user.bulk_max_batch is not None else defaults.max_batch,
            delay_seconds=(
                user.bulk_delay_seconds if user.bulk_delay_seconds is not None else defaults.delay_seconds
            ),
            max_prompts=user.bulk_max_prompts or defaults.max_prompts,
        )

    return config.bulk_generation


def plan_config_for_user(user: UserSnapshot) -> PlanConfig:
    """Plan config for display. Unknown plan types show the Free config."""
    if user.is_admin:
        return replace(
            PLAN_CONFIGS[PlanType.EMPIRE.value],
            name=ADMIN_PLAN_NAME,
            daily_limit=UNLIMITED,
        )

    return get_plan_config(user.plan_type) or PLAN_CONFIGS[PlanType.FREE.value]


def format_plan_expiry(expiry: datetime | None, now: datetime | None = None) -> str:
    if expiry is None:
        return "Never"

    now = _now(now)
    expiry = _as_utc(expiry)
    if expiry < now:
        return "Expired"

    days = math.ceil((expiry - now).total_seconds() / 86400)
    if days == 0:
        return "Expires today"
    if days == 1:
        return "Expires tomorrow"
    return f"{days} days remaining"


# ---------------------------------------------------------------------------
# Voice characters
# ---------------------------------------------------------------------------


def _voice_allowance(user: UserSnapshot):
    return VOICE_CHARACTER_LIMITS.get(user.plan_type, VOICE_CHARACTER_LIMITS[PlanType.FREE.value])


def get_voice_character_limit(user: UserSnapshot) -> int | float:
    if user.is_admin:
        return UNLIMITED
    return _voice_allowance(user).limit


def get_voice_character_usage(user: UserSnapshot) -> VoiceCharacterUsage:
    limit = get_voice_character_limit(user)
    used = user.voice_characters_used
    unlimited = limit == UNLIMITED

    return VoiceCharacterUsage(
        used=used,
        limit=-1 if unlimited else limit,
        remaining=-1 if unlimited else max(0, limit - used),
        reset_at=user.voice_characters_reset_at,
        reset_days=_voice_allowance(user).reset_days,
    )


def should_reset_voice_characters(user: UserSnapshot, now: datetime | None = None) -> bool:
    if user.voice_characters_reset_at is None:
        return True
    return _now(now) >= _as_utc(user.voice_characters_reset_at)


def can_use_voice_characters(
    user: UserSnapshot,
    character_count: int,
    now: datetime | None = None,
) -> AccessDecision:
    if user.is_admin:
        return AccessDecision.allow()

    decision = can_access_tool(user, Tool.VOICE_TOOLS, now)
    if not decision.allowed:
        return decision

    limit = get_voice_character_limit(user)
    if limit == UNLIMITED:
        return AccessDecision.allow()

    remaining = limit - user.voice_characters_used
    if character_count > remaining:
        return AccessDecision.deny(
            DenialCode.VOICE_LIMIT,
            f"Character limit exceeded. You have {max(0, remaining):,} characters remaining "
            f"out of {limit:,}. Limit resets every {_voice_allowance(user).reset_days} days.",
        )

    return AccessDecision.allow()


def get_per_request_char_limit(user: UserSnapshot) -> int:
    if user.is_admin:
        return PER_REQUEST_CHAR_LIMITS["admin"]
    return PER_REQUEST_CHAR_LIMITS.get(user.plan_type, PER_REQUEST_CHAR_LIMITS[PlanType.FREE.value])


def next_voice_reset_at(now: datetime | None = None, reset_days: int = 10) -> datetime:
    return _now(now) + timedelta(days=reset_days)
