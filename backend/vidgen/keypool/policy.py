"""Per-provider pool policies: usage unit, default limit and auto-disable rule."""

from dataclasses import dataclass
from enum import Enum

from vidgen.core.config import Settings, get_settings


class Provider(str, Enum):
    ZYPHRA = "zyphra"
    CARTESIA = "cartesia"
    INWORLD = "inworld"
    BEARER = "bearer"
    FLOW_COOKIE = "flow_cookie"


class UsageUnit(str, Enum):
    CHARACTERS = "characters"
    MINUTES = "minutes"
    REQUESTS = "requests"


@dataclass(frozen=True)
class PoolPolicy:
    """How a provider pool counts usage and when it stops handing out a key.

    With ``auto_disable`` off (bearer tokens, Flow cookies) only the admin's
    ``is_active`` flag gates a key; usage and error counters are kept for
    observability.
    """

    provider: Provider
    unit: UsageUnit
    default_units_limit: int
    error_threshold: int
    auto_disable: bool
    label_prefix: str


def get_pool_policy(provider: Provider | str, settings: Settings | None = None) -> PoolPolicy:
    """Build the policy for ``provider`` from settings.

    Raises ValueError for an unknown provider name.
    """
    provider = Provider(provider)
    settings = settings or get_settings()
    threshold = settings.provider_error_threshold

    if provider is Provider.ZYPHRA:
        return PoolPolicy(provider, UsageUnit.CHARACTERS, settings.zyphra_characters_limit, threshold, True, "Zyphra Key")
    if provider is Provider.CARTESIA:
        return PoolPolicy(
            provider, UsageUnit.CHARACTERS, settings.cartesia_characters_limit, threshold, True, "Cartesia Key"
        )
    if provider is Provider.INWORLD:
        return PoolPolicy(
            provider, UsageUnit.CHARACTERS, settings.inworld_characters_limit, threshold, True, "Inworld Key"
        )
    if provider is Provider.BEARER:
        # units_limit for bearer tokens comes from rotation settings at insert time
        return PoolPolicy(provider, UsageUnit.REQUESTS, 1000, threshold, False, "Token")
    return PoolPolicy(provider, UsageUnit.REQUESTS, 1000, threshold, False, "Account")
