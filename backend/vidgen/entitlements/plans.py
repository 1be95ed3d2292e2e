"""Plan registry — static plan tiers, tool identifiers and voice allowances."""

import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

UNLIMITED = math.inf
ADMIN_PLAN_NAME = "Admin (Unlimited)"


class Tool(str, Enum):
    """Generation tools gated by plan."""

    VEO = "veo"
    BULK = "bulk"
    SCRIPT = "script"
    TEXT_TO_IMAGE = "textToImage"
    IMAGE_TO_VIDEO = "imageToVideo"
    VOICE_TOOLS = "voiceTools"
    CHARACTER_CONSISTENCY = "characterConsistency"


class PlanType(str, Enum):
    FREE = "free"
    SCALE = "scale"
    EMPIRE = "empire"
    ENTERPRISE = "enterprise"


class PlanStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BulkGenerationLimits:
    max_batch: int
    delay_seconds: int
    max_prompts: int


@dataclass(frozen=True)
class PlanConfig:
    name: str
    daily_limit: int | float  # float only for the admin view (math.inf)
    allowed_tools: frozenset[str]
    bulk_generation: BulkGenerationLimits


@dataclass(frozen=True)
class VoiceCharacterAllowance:
    limit: int
    reset_days: int


_ALL_TOOLS = frozenset(tool.value for tool in Tool)

PLAN_CONFIGS: Mapping[str, PlanConfig] = MappingProxyType({
    PlanType.FREE.value: PlanConfig(
        name="Free",
        daily_limit=0,
        allowed_tools=frozenset({Tool.VEO.value, Tool.VOICE_TOOLS.value, Tool.IMAGE_TO_VIDEO.value}),
        bulk_generation=BulkGenerationLimits(max_batch=0, delay_seconds=0, max_prompts=0),
    ),
    PlanType.SCALE.value: PlanConfig(
        name="Scale",
        daily_limit=1000,
        allowed_tools=frozenset({
            Tool.VEO.value,
            Tool.BULK.value,
            Tool.VOICE_TOOLS.value,
            Tool.IMAGE_TO_VIDEO.value,
        }),
        bulk_generation=BulkGenerationLimits(max_batch=7, delay_seconds=30, max_prompts=50),
    ),
    PlanType.EMPIRE.value: PlanConfig(
        name="Empire",
        daily_limit=2000,  # shown as unlimited, enforced at 2000
        allowed_tools=_ALL_TOOLS,
        bulk_generation=BulkGenerationLimits(max_batch=100, delay_seconds=15, max_prompts=100),
    ),
    PlanType.ENTERPRISE.value: PlanConfig(
        name="Enterprise",
        daily_limit=20000,  # default; per-user override on the user row
        allowed_tools=_ALL_TOOLS,
        bulk_generation=BulkGenerationLimits(max_batch=100, delay_seconds=10, max_prompts=500),
    ),
})

# Rolling voice character allowance per plan
VOICE_CHARACTER_LIMITS: Mapping[str, VoiceCharacterAllowance] = MappingProxyType({
    PlanType.FREE.value: VoiceCharacterAllowance(limit=10_000, reset_days=10),
    PlanType.SCALE.value: VoiceCharacterAllowance(limit=50_000, reset_days=10),
    PlanType.EMPIRE.value: VoiceCharacterAllowance(limit=1_000_000, reset_days=10),
    PlanType.ENTERPRISE.value: VoiceCharacterAllowance(limit=5_000_000, reset_days=10),
})

# Max characters in a single TTS request
PER_REQUEST_CHAR_LIMITS: Mapping[str, int] = MappingProxyType({
    PlanType.FREE.value: 5_000,
    PlanType.SCALE.value: 10_000,
    PlanType.EMPIRE.value: 10_000,
    PlanType.ENTERPRISE.value: 100_000,
    "admin": 200_000,
})


def get_plan_config(plan_type: str | None) -> PlanConfig | None:
    """Look up the plan config for a plan type.

    Unknown or missing plan types return None; callers treat that as
    "no entitlement".
    """
    if plan_type is None:
        return None
    if isinstance(plan_type, PlanType):
        plan_type = plan_type.value
    return PLAN_CONFIGS.get(plan_type)


def tool_value(tool: "Tool | str") -> str:
    """Normalize a Tool member or raw string to the registry's string form."""
    return tool.value if isinstance(tool, Tool) else tool
