"""Zyphra client: text-to-speech on one pooled API key."""

from dataclasses import dataclass

import httpx
import structlog

from vidgen.core.config import get_settings
from vidgen.core.exceptions import ProviderCallError

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "zonos-v0.1-transformer"
DEFAULT_SPEAKING_RATE = 15

# (text length up to, seconds allowed)
_TIMEOUT_STEPS = (
    (99, 10.0),
    (300, 15.0),
    (1_000, 25.0),
    (3_000, 50.0),
    (5_000, 100.0),
)
MAX_TIMEOUT_SECONDS = 150.0


def timeout_for_text(length: int) -> float:
    """Seconds to allow a synthesis call, growing with the text length."""
    for ceiling, seconds in _TIMEOUT_STEPS:
        if length <= ceiling:
            return seconds
    return MAX_TIMEOUT_SECONDS


@dataclass(frozen=True)
class SynthesizedSpeech:
    audio: bytes
    mime_type: str
    characters: int


class ZyphraClient:
    """Client for the Zyphra text-to-speech API.

    Args:
        api_url: Endpoint (defaults to settings.zyphra_api_url)
        transport: Optional httpx transport, used by tests
    """

    def __init__(self, api_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.api_url = api_url or get_settings().zyphra_api_url
        self._transport = transport

    async def synthesize(
        self,
        api_key: str,
        text: str,
        speaking_rate: int = DEFAULT_SPEAKING_RATE,
        mime_type: str = "audio/mp3",
        language_iso_code: str | None = None,
    ) -> SynthesizedSpeech:
        """Render ``text`` to audio.

        Raises:
            ProviderCallError: transport failure or a non-2xx answer
        """
        body = {
            "text": text,
            "speaking_rate": speaking_rate,
            "model": DEFAULT_MODEL,
            "mime_type": mime_type,
        }
        if language_iso_code:
            body["language_iso_code"] = language_iso_code

        async with httpx.AsyncClient(transport=self._transport, timeout=timeout_for_text(len(text))) as client:
            try:
                response = await client.post(
                    self.api_url,
                    headers={"X-API-Key": api_key, "Content-Type": "application/json"},
                    json=body,
                )
            except httpx.HTTPError as exc:
                raise ProviderCallError(f"Zyphra request failed: {exc}") from exc

        if response.status_code >= 300:
            raise ProviderCallError(
                f"Zyphra API error: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )
        if not response.content:
            raise ProviderCallError("Zyphra API returned no audio")

        logger.info("zyphra_speech_generated", characters=len(text), bytes=len(response.content))
        return SynthesizedSpeech(audio=response.content, mime_type=mime_type, characters=len(text))
