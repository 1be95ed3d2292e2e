"""Veo client: submit a text-to-video job and poll it to completion."""

import asyncio
import random
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
import structlog

from vidgen.core.config import get_settings
from vidgen.core.exceptions import ProviderCallError

logger = structlog.get_logger(__name__)

STATUS_PENDING = "MEDIA_GENERATION_STATUS_PENDING"
STATUS_SUCCESSFUL = "MEDIA_GENERATION_STATUS_SUCCESSFUL"
STATUS_FAILED = "MEDIA_GENERATION_STATUS_FAILED"


@dataclass(frozen=True)
class VeoOperation:
    name: str
    scene_id: str


@dataclass(frozen=True)
class GeneratedVideo:
    prompt: str
    scene_id: str
    video_url: str


def _strip_bearer(token: str) -> str:
    token = token.strip()
    if token.startswith("Bearer "):
        token = token[len("Bearer "):]
    return token


class VeoClient:
    """Client for the Veo video generation API.

    Args:
        base_url: API base (defaults to settings.veo_api_url)
        transport: Optional httpx transport, used by tests
        sleep: Awaitable sleep between status polls
    """

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = get_settings()
        self.base_url = (base_url or self.settings.veo_api_url).rstrip("/")
        self._transport = transport
        self._sleep = sleep

    async def _post(self, action: str, token: str, body: dict) -> dict:
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            try:
                response = await client.post(
                    f"{self.base_url}:{action}",
                    headers={
                        "Authorization": f"Bearer {_strip_bearer(token)}",
                        "Content-Type": "application/json",
                    },
                    json=body,
                )
            except httpx.HTTPError as exc:
                raise ProviderCallError(f"Veo request failed: {exc}") from exc

        if response.status_code >= 300:
            raise ProviderCallError(
                f"Veo API error: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderCallError("Veo API returned a non-JSON response") from exc

    async def start_generation(self, token: str, prompt: str, aspect_ratio: str = "landscape") -> VeoOperation:
        scene_id = str(uuid.uuid4())
        ratio = "VIDEO_ASPECT_RATIO_PORTRAIT" if aspect_ratio == "portrait" else "VIDEO_ASPECT_RATIO_LANDSCAPE"
        data = await self._post(
            "batchAsyncGenerateVideoText",
            token,
            {
                "clientContext": {"tool": "PINHOLE", "userPaygateTier": "PAYGATE_TIER_TWO"},
                "requests": [
                    {
                        "aspectRatio": ratio,
                        "seed": random.randint(0, 99_999),
                        "textInput": {"prompt": prompt},
                        "videoModelKey": "veo_3_1_t2v_fast_ultra",
                        "metadata": {"sceneId": scene_id},
                    }
                ],
            },
        )
        operations = data.get("operations") or []
        if not operations:
            raise ProviderCallError("Veo API returned no operation")
        return VeoOperation(name=operations[0]["operation"]["name"], scene_id=scene_id)

    async def check_status(self, token: str, operation: VeoOperation) -> tuple[str, str | None]:
        """Return (status, video url or None)."""
        data = await self._post(
            "batchCheckAsyncVideoGenerationStatus",
            token,
            {
                "operations": [
                    {
                        "operation": {"name": operation.name},
                        "sceneId": operation.scene_id,
                        "status": STATUS_PENDING,
                    }
                ]
            },
        )
        operations = data.get("operations") or []
        if not operations:
            return STATUS_PENDING, None

        entry = operations[0]
        op = entry.get("operation") or {}
        error = op.get("error")
        if error:
            raise ProviderCallError(f"Veo generation failed: {error.get('message', 'unknown error')}")

        video_url = (
            op.get("videoUrl")
            or op.get("fileUrl")
            or op.get("downloadUrl")
            or ((op.get("metadata") or {}).get("video") or {}).get("fifeUrl")
        )
        return entry.get("status", STATUS_PENDING), video_url

    async def generate(self, token: str, prompt: str, aspect_ratio: str = "landscape") -> GeneratedVideo:
        """Submit ``prompt`` and wait for the finished video.

        Raises:
            ProviderCallError: HTTP failure, generation failure, or polling gave up
        """
        operation = await self.start_generation(token, prompt, aspect_ratio)
        logger.info("veo_generation_started", scene_id=operation.scene_id)

        for _ in range(self.settings.veo_max_polls):
            status, video_url = await self.check_status(token, operation)
            if status == STATUS_SUCCESSFUL and video_url:
                return GeneratedVideo(prompt=prompt, scene_id=operation.scene_id, video_url=video_url)
            if status == STATUS_FAILED:
                raise ProviderCallError("Veo generation failed")
            await self._sleep(self.settings.veo_poll_interval_seconds)

        raise ProviderCallError("Veo generation did not finish in time")
