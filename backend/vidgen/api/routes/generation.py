"""Video and voice generation API — bulk video streams progress over SSE."""

import json
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, Field

from vidgen.core.auth import CurrentUser, require_auth
from vidgen.db.base import get_session_factory
from vidgen.db.redis import get_redis
from vidgen.keypool.policy import Provider
from vidgen.keypool.pool import KeyPool
from vidgen.providers.veo import VeoClient
from vidgen.providers.zyphra import DEFAULT_SPEAKING_RATE, ZyphraClient
from vidgen.quota.usage import QuotaTracker
from vidgen.services.generation_service import BulkGenerationService
from vidgen.services.rotation_settings_service import RotationSettingsService
from vidgen.services.user_service import UserService
from vidgen.services.voice_service import VoiceGenerationService

router = APIRouter()


class BulkGenerationRequest(BaseModel):
    prompts: list[str] = Field(..., min_length=1)
    aspect_ratio: str = "landscape"


class VideoGenerationRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    aspect_ratio: str = "landscape"


class VideoGenerationResponse(BaseModel):
    prompt: str
    video_url: str | None
    key_id: str | None


class VoiceGenerationRequest(BaseModel):
    text: str = Field(..., min_length=1)
    speaking_rate: int = Field(default=DEFAULT_SPEAKING_RATE, ge=5, le=35)
    mime_type: Literal["audio/mp3", "audio/webm", "audio/wav", "audio/ogg"] = "audio/mp3"
    language_iso_code: str | None = None


def get_video_generator():
    """Provider call taking (token, prompt, aspect_ratio)."""
    return VeoClient().generate


def get_voice_synthesizer():
    """Provider call taking (api key, text, speaking_rate, mime_type, language_iso_code)."""
    return ZyphraClient().synthesize


def _video_service(tracker: QuotaTracker, generate, aspect_ratio: str) -> BulkGenerationService:
    factory = get_session_factory()

    async def call(token: str, prompt: str):
        return await generate(token, prompt, aspect_ratio)

    return BulkGenerationService(
        pool=KeyPool(Provider.BEARER, factory),
        tracker=tracker,
        rotation_settings=RotationSettingsService(factory),
        generate=call,
    )


@router.post("/video", response_model=VideoGenerationResponse)
async def generate_video(
    request: VideoGenerationRequest,
    user: CurrentUser = Depends(require_auth),
    redis=Depends(get_redis),
    generate=Depends(get_video_generator),
):
    """Generate one video and wait for it.

    Raises:
        HTTPException(400): blank prompt
        HTTPException(403/429): via EntitlementError
        HTTPException(502): via ProviderCallError, every token failed
        HTTPException(503): via PoolExhaustedError
    """
    tracker = QuotaTracker(redis)
    snapshot = await UserService(get_session_factory(), tracker).load_snapshot(user.user_id)
    service = _video_service(tracker, generate, request.aspect_ratio)

    try:
        result = await service.generate_video(snapshot, request.prompt)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return VideoGenerationResponse(prompt=result["prompt"], video_url=result["video_url"], key_id=result["key_id"])


@router.post("/bulk")
async def stream_bulk_generation(
    request: BulkGenerationRequest,
    user: CurrentUser = Depends(require_auth),
    redis=Depends(get_redis),
    generate=Depends(get_video_generator),
):
    """Generate videos for each prompt and stream events as they happen.

    Events are ``progress``, ``result``, ``complete`` and ``error``; see
    BulkGenerationService for their fields.

    Raises:
        HTTPException(404): via UserNotFoundError, unknown user
    """
    tracker = QuotaTracker(redis)
    snapshot = await UserService(get_session_factory(), tracker).load_snapshot(user.user_id)
    service = _video_service(tracker, generate, request.aspect_ratio)

    async def event_generator():
        async for event in service.stream(snapshot, request.prompts):
            yield f"data: {json.dumps(event)}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/voice")
async def generate_voice(
    request: VoiceGenerationRequest,
    user: CurrentUser = Depends(require_auth),
    redis=Depends(get_redis),
    synthesize=Depends(get_voice_synthesizer),
):
    """Text-to-speech on the Zyphra pool. Returns the audio bytes.

    Raises:
        HTTPException(400): blank text
        HTTPException(403): via EntitlementError, including the character allowance
        HTTPException(502): via ProviderCallError, every key failed
        HTTPException(503): via PoolExhaustedError
    """
    tracker = QuotaTracker(redis)
    snapshot = await UserService(get_session_factory(), tracker).load_snapshot(user.user_id)

    async def call(api_key: str, text: str):
        return await synthesize(api_key, text, request.speaking_rate, request.mime_type, request.language_iso_code)

    service = VoiceGenerationService(KeyPool(Provider.ZYPHRA, get_session_factory()), tracker, call)
    try:
        outcome = await service.generate(snapshot, request.text)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    speech = outcome.result
    return Response(
        content=speech.audio,
        media_type=speech.mime_type,
        headers={"X-Characters-Used": str(speech.characters)},
    )
