"""Plan registry and entitlement evaluator."""

from vidgen.entitlements.evaluator import (
    can_access_tool,
    can_bulk_generate,
    can_generate_video,
    can_use_voice_characters,
    ensure_allowed,
    get_batch_config,
    get_remaining_videos,
    has_reached_daily_limit,
    is_plan_expired,
    plan_config_for_user,
)
from vidgen.entitlements.plans import PLAN_CONFIGS, PlanConfig, Tool, get_plan_config
from vidgen.entitlements.schemas import AccessDecision, DenialCode, UserSnapshot

__all__ = [
    "AccessDecision",
    "DenialCode",
    "PLAN_CONFIGS",
    "PlanConfig",
    "Tool",
    "UserSnapshot",
    "can_access_tool",
    "can_bulk_generate",
    "can_generate_video",
    "can_use_voice_characters",
    "ensure_allowed",
    "get_batch_config",
    "get_plan_config",
    "get_remaining_videos",
    "has_reached_daily_limit",
    "is_plan_expired",
    "plan_config_for_user",
]
