"""Tests for BulkGenerationService batching, quota accounting and failure paths."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from vidgen.core.exceptions import DailyLimitReachedError, PoolExhaustedError, ProviderCallError
from vidgen.keypool.policy import Provider
from vidgen.keypool.pool import KeyPool
from vidgen.quota.usage import QuotaTracker
from vidgen.services.generation_service import ITEM_ERROR_MESSAGE, BulkGenerationService, plan_batches
from vidgen.services.rotation_settings_service import RotationSettingsService

pytestmark = pytest.mark.unit

NOW = datetime(2030, 6, 15, 10, 30, 0, tzinfo=UTC)


class FakeVeo:
    """Records calls; prompts listed in ``failing`` raise on every token."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, token: str, prompt: str):
        self.calls.append((token, prompt))
        if prompt in self.failing:
            raise RuntimeError(f"generation rejected: {prompt}")
        return SimpleNamespace(video_url=f"https://cdn.example.com/{prompt}.mp4")


@pytest.fixture
async def pool(session_factory):
    pool = KeyPool(Provider.BEARER, session_factory)
    await pool.add("bearer-token-aaaaaaaaaa")
    await pool.add("bearer-token-bbbbbbbbbb")
    return pool


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_service(pool, tracker, session_factory, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    def _make(generate, key_pool=None):
        return BulkGenerationService(
            key_pool or pool,
            tracker,
            RotationSettingsService(session_factory),
            generate,
            sleep=fake_sleep,
        )

    return _make


async def _collect(service, user, prompts):
    return [event async for event in service.stream(user, prompts, now=NOW)]


def _scale_user(make_user, **fields):
    return make_user(plan_type="scale", plan_expiry=NOW + timedelta(days=5), **fields)


def test_plan_batches_keeps_indices():
    batches = plan_batches(["a", "b", "c", "d", "e"], 2)
    assert batches == [[(0, "a"), (1, "b")], [(2, "c"), (3, "d")], [(4, "e")]]


async def test_scale_user_batches_by_plan_cap(make_service, make_user, tracker, sleeps):
    veo = FakeVeo()
    service = make_service(veo)
    prompts = [f"scene-{i}" for i in range(9)]

    events = await _collect(service, _scale_user(make_user), prompts)

    types = [e["type"] for e in events]
    assert types == ["progress"] + ["result"] * 7 + ["progress"] + ["result"] * 2 + ["progress", "complete"]
    assert events[-1] == {"type": "complete", "total": 9, "completed": 9, "failed": 0}

    results = [e for e in events if e["type"] == "result"]
    assert sorted(r["index"] for r in results) == list(range(9))
    assert all(r["video_url"].endswith(".mp4") for r in results)

    # Scale waits 30s between its 7-prompt batches, not after the last one
    assert sleeps == [30]
    assert await tracker.get_daily_videos("user-1", now=NOW) == 9


async def test_enterprise_zero_delay_falls_back_to_rotation_delay(make_service, make_user, sleeps):
    service = make_service(FakeVeo())
    user = make_user(
        plan_type="enterprise",
        plan_expiry=NOW + timedelta(days=30),
        bulk_max_batch=3,
        bulk_delay_seconds=0,
    )

    assert await service.batch_plan(user) == (3, 20)

    events = await _collect(service, user, [f"p{i}" for i in range(7)])
    assert events[-1]["completed"] == 7
    assert sleeps == [20, 20]


async def test_rotation_batch_size_caps_plan_batch(make_service, make_user, session_factory):
    await RotationSettingsService(session_factory).update({"videos_per_batch": 4})
    service = make_service(FakeVeo())

    assert await service.batch_plan(make_user(plan_type="empire")) == (4, 15)


async def test_failed_prompt_is_refunded(make_service, make_user, tracker, pool):
    veo = FakeVeo(failing={"broken"})
    service = make_service(veo)

    events = await _collect(service, _scale_user(make_user), ["fine", "broken"])

    results = {e["prompt"]: e for e in events if e["type"] == "result"}
    assert results["fine"]["status"] == "completed"
    assert results["broken"]["status"] == "failed"
    assert "generation rejected" in results["broken"]["error"]
    assert events[-1] == {"type": "complete", "total": 2, "completed": 1, "failed": 1}

    # Failed prompt tried both tokens before giving up
    assert len([c for c in veo.calls if c[1] == "broken"]) == 2
    assert await tracker.get_daily_videos("user-1", now=NOW) == 1
    assert sum(k.error_count for k in await pool.list_keys()) == 2


async def test_empty_pool_stops_with_error(make_service, make_user, tracker, session_factory):
    empty = KeyPool(Provider.BEARER, session_factory)
    service = make_service(FakeVeo(), key_pool=empty)

    events = await _collect(service, _scale_user(make_user), ["a", "b"])

    assert events[-1]["type"] == "error"
    assert events[-1]["code"] == "pool_exhausted"
    assert all(e["type"] != "complete" for e in events)
    assert await tracker.get_daily_videos("user-1", now=NOW) == 0


async def test_prompt_cap_rejects_before_any_work(make_service, make_user):
    veo = FakeVeo()
    service = make_service(veo)

    events = await _collect(service, _scale_user(make_user), [f"p{i}" for i in range(51)])

    assert events == [
        {
            "type": "error",
            "code": "bulk_limit",
            "message": "Your Scale plan allows a maximum of 50 prompts in total. "
            "Please reduce the number of prompts.",
        }
    ]
    assert veo.calls == []


async def test_free_plan_cannot_bulk_generate(make_service, make_user):
    events = await _collect(make_service(FakeVeo()), make_user(plan_type="free"), ["a"])
    assert events[0]["code"] == "tool_not_allowed"


async def test_blank_prompts_rejected(make_service, make_user):
    events = await _collect(make_service(FakeVeo()), _scale_user(make_user), ["", "   "])
    assert events == [{"type": "error", "code": "no_prompts", "message": "No prompts provided"}]


async def test_daily_quota_is_enforced_per_item(make_service, make_user, tracker):
    await tracker.increment_daily_videos("user-1", 999, now=NOW)
    service = make_service(FakeVeo())
    # Stale snapshot lets the request through; the Redis reservation still holds the line
    user = _scale_user(make_user, daily_video_count=990)

    events = await _collect(service, user, ["a", "b", "c"])

    assert events[-1] == {"type": "complete", "total": 3, "completed": 1, "failed": 2}
    assert await tracker.get_daily_videos("user-1", now=NOW) == 1000


async def test_admin_is_counted_but_not_limited(make_service, make_user, tracker):
    await tracker.increment_daily_videos("admin-1", 5000, now=NOW)
    service = make_service(FakeVeo())
    admin = make_user(id="admin-1", is_admin=True, plan_type="free")

    events = await _collect(service, admin, ["a", "b"])

    assert events[-1]["completed"] == 2
    assert await tracker.get_daily_videos("admin-1", now=NOW) == 5002


class FlakyTracker(QuotaTracker):
    """Redis drops the connection on the first quota reservation only."""

    def __init__(self, redis):
        super().__init__(redis)
        self.reservations = 0

    async def reserve_daily_videos(self, user_id, count, limit, now=None):
        self.reservations += 1
        if self.reservations == 1:
            raise RedisConnectionError("connection reset")
        return await super().reserve_daily_videos(user_id, count, limit, now=now)


async def test_item_error_becomes_failed_result(pool, redis, session_factory, make_user):
    veo = FakeVeo()
    tracker = FlakyTracker(redis)
    service = BulkGenerationService(pool, tracker, RotationSettingsService(session_factory), veo)

    events = await _collect(service, _scale_user(make_user), ["p1", "p2", "p3"])

    results = [e for e in events if e["type"] == "result"]
    assert len(results) == 3
    failed = [r for r in results if r["status"] == "failed"]
    assert len(failed) == 1
    assert failed[0]["error"] == ITEM_ERROR_MESSAGE
    assert events[-1] == {"type": "complete", "total": 3, "completed": 2, "failed": 1}

    # The item whose reservation blew up never reached the provider
    assert len(veo.calls) == 2
    assert await tracker.get_daily_videos("user-1", now=NOW) == 2


class BrokenRecorder:
    async def execute(self, call, units=1, timeout=None):
        raise RedisConnectionError("connection reset")


async def test_reserved_quota_is_refunded_when_item_raises(pool, tracker, session_factory, make_user):
    service = BulkGenerationService(
        pool,
        tracker,
        RotationSettingsService(session_factory),
        FakeVeo(),
        recorder=BrokenRecorder(),
    )

    events = await _collect(service, _scale_user(make_user), ["a", "b"])

    assert events[-1] == {"type": "complete", "total": 2, "completed": 0, "failed": 2}
    assert await tracker.get_daily_videos("user-1", now=NOW) == 0


async def test_single_video_counts_one(make_service, make_user, tracker):
    veo = FakeVeo()

    result = await make_service(veo).generate_video(_scale_user(make_user), "  a red fox ", now=NOW)

    assert result["status"] == "completed"
    assert result["prompt"] == "a red fox"
    assert result["video_url"] == "https://cdn.example.com/a red fox.mp4"
    assert await tracker.get_daily_videos("user-1", now=NOW) == 1


async def test_single_video_denied_on_free_plan(make_service, make_user, tracker):
    veo = FakeVeo()

    with pytest.raises(DailyLimitReachedError, match="daily limit of 0 videos"):
        await make_service(veo).generate_video(make_user(plan_type="free"), "a fox", now=NOW)
    assert veo.calls == []


async def test_single_video_quota_race_is_daily_limit(make_service, make_user, tracker):
    await tracker.increment_daily_videos("user-1", 1000, now=NOW)

    with pytest.raises(DailyLimitReachedError):
        await make_service(FakeVeo()).generate_video(_scale_user(make_user, daily_video_count=10), "a", now=NOW)
    assert await tracker.get_daily_videos("user-1", now=NOW) == 1000


async def test_single_video_failure_is_refunded(make_service, make_user, tracker):
    with pytest.raises(ProviderCallError, match="generation rejected"):
        await make_service(FakeVeo(failing={"bad"})).generate_video(_scale_user(make_user), "bad", now=NOW)
    assert await tracker.get_daily_videos("user-1", now=NOW) == 0


async def test_single_video_empty_pool(make_service, make_user, tracker, session_factory):
    service = make_service(FakeVeo(), key_pool=KeyPool(Provider.BEARER, session_factory))

    with pytest.raises(PoolExhaustedError):
        await service.generate_video(_scale_user(make_user), "a", now=NOW)
    assert await tracker.get_daily_videos("user-1", now=NOW) == 0
