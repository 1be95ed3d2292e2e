"""VoiceGenerationService — text-to-speech on the character-metered key pools."""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import structlog

from vidgen.core.exceptions import ProviderCallError, VoiceLimitExceededError
from vidgen.entitlements.evaluator import (
    can_use_voice_characters,
    ensure_allowed,
    get_per_request_char_limit,
    get_voice_character_usage,
    next_voice_reset_at,
    should_reset_voice_characters,
)
from vidgen.entitlements.schemas import UserSnapshot
from vidgen.keypool.pool import KeyPool
from vidgen.keypool.recorder import ProviderOutcome, UsageRecorder
from vidgen.providers.zyphra import timeout_for_text
from vidgen.quota.usage import QuotaTracker

logger = structlog.get_logger(__name__)

VOICE_FAILED_MESSAGE = "Voice generation failed. Please try again."

# (api key, text) -> provider result
Synthesizer = Callable[[str, str], Awaitable[Any]]


class VoiceGenerationService:
    """Synthesizes speech for one user and charges the characters.

    Args:
        pool: Character-metered pool (zyphra, cartesia or inworld)
        tracker: Redis quota counters
        synthesize: Provider call taking (api key, text)
        recorder: UsageRecorder over ``pool`` (built if omitted)
    """

    def __init__(
        self,
        pool: KeyPool,
        tracker: QuotaTracker,
        synthesize: Synthesizer,
        recorder: UsageRecorder | None = None,
    ) -> None:
        self.pool = pool
        self.tracker = tracker
        self.synthesize = synthesize
        self.recorder = recorder or UsageRecorder(pool)

    async def generate(self, user: UserSnapshot, text: str, now: datetime | None = None) -> ProviderOutcome:
        """Synthesize ``text``; the key is charged one unit per character.

        The user's rolling character counter only moves on success.

        Raises:
            ValueError: blank text
            EntitlementError: expired or invalid plan, no voice tool access,
                allowance used up, or text over the per-request ceiling
            PoolExhaustedError: no key with room for the text
            ProviderCallError: every key tried failed
        """
        text = text.strip()
        if not text:
            raise ValueError("Text must not be empty")
        characters = len(text)

        ensure_allowed(can_use_voice_characters(user, characters, now))

        per_request = get_per_request_char_limit(user)
        if characters > per_request:
            raise VoiceLimitExceededError(
                f"Text is {characters:,} characters long. The limit per request is {per_request:,}."
            )

        outcome = await self.recorder.execute(
            lambda lease: self.synthesize(lease.secret, text),
            units=characters,
            timeout=timeout_for_text(characters),
        )
        if not outcome.ok:
            logger.warning(
                "voice_generation_failed",
                user_id=user.id,
                provider=self.pool.provider.value,
                attempts=outcome.attempts,
                error=outcome.error,
            )
            raise ProviderCallError(outcome.error or VOICE_FAILED_MESSAGE)

        reset_days = get_voice_character_usage(user).reset_days
        used = await self.tracker.increment_voice_characters(user.id, characters, reset_days=reset_days)
        if should_reset_voice_characters(user, now):
            logger.info(
                "voice_window_opened",
                user_id=user.id,
                reset_at=next_voice_reset_at(now, reset_days).isoformat(),
            )
        logger.info(
            "voice_generated",
            user_id=user.id,
            provider=self.pool.provider.value,
            key_id=outcome.key_id,
            characters=characters,
            voice_characters_used=used,
        )
        return outcome
