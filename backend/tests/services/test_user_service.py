"""Tests for UserService plan assignment and snapshot loading."""

from datetime import UTC, datetime, timedelta

import pytest

from vidgen.core.exceptions import UserNotFoundError
from vidgen.entitlements.evaluator import can_generate_video
from vidgen.services.user_service import UserService

pytestmark = pytest.mark.unit

NOW = datetime(2030, 6, 15, 10, 30, 0, tzinfo=UTC)


@pytest.fixture
def service(session_factory, tracker):
    return UserService(session_factory, tracker)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=UTC)


async def test_create_free_user_has_no_expiry(service):
    user = await service.create_user("alice", now=NOW)
    assert user.plan_type == "free"
    assert user.plan_expiry is None


async def test_create_paid_user_runs_for_renewal_period(service):
    user = await service.create_user("bob", plan_type="scale", now=NOW)
    assert _aware(user.plan_expiry) == NOW + timedelta(days=10)


async def test_create_enterprise_user_keeps_overrides(service):
    user = await service.create_user(
        "corp",
        plan_type="enterprise",
        now=NOW,
        daily_video_limit=50_000,
        bulk_max_batch=25,
    )
    assert _aware(user.plan_expiry) == NOW + timedelta(days=30)
    assert user.daily_video_limit == 50_000
    assert user.bulk_max_batch == 25
    assert user.bulk_max_prompts is None


async def test_create_rejects_unknown_plan(service):
    with pytest.raises(ValueError):
        await service.create_user("eve", plan_type="platinum")


async def test_upgrade_from_free_sets_default_expiry(service):
    user = await service.create_user("alice", now=NOW)
    user = await service.update_plan(user.id, "empire", now=NOW)

    assert user.plan_type == "empire"
    assert _aware(user.plan_expiry) == NOW + timedelta(days=10)


async def test_explicit_expiry_wins(service):
    user = await service.create_user("alice", now=NOW)
    expiry = NOW + timedelta(days=90)
    user = await service.update_plan(user.id, "scale", plan_expiry=expiry, now=NOW)
    assert _aware(user.plan_expiry) == expiry


async def test_enterprise_expiry_days_restarts_period(service):
    user = await service.create_user("corp", plan_type="scale", now=NOW)
    later = NOW + timedelta(days=3)

    user = await service.update_plan(user.id, "enterprise", expiry_days=60, now=later, bulk_max_prompts=800)

    assert _aware(user.plan_expiry) == later + timedelta(days=60)
    assert user.bulk_max_prompts == 800


async def test_moving_off_enterprise_clears_overrides(service):
    user = await service.create_user("corp", plan_type="enterprise", now=NOW, daily_video_limit=9000)
    user = await service.update_plan(user.id, "scale", now=NOW)

    assert user.daily_video_limit is None
    # Paid-to-paid keeps the existing expiry
    assert _aware(user.plan_expiry) == NOW + timedelta(days=30)


async def test_renew_plan(service):
    user = await service.create_user("bob", plan_type="scale", now=NOW)
    later = NOW + timedelta(days=20)

    user = await service.renew_plan(user.id, now=later)
    assert _aware(user.plan_expiry) == later + timedelta(days=10)
    assert user.plan_status == "active"


async def test_free_plan_cannot_be_renewed(service):
    user = await service.create_user("alice", now=NOW)
    with pytest.raises(ValueError):
        await service.renew_plan(user.id, now=NOW)


async def test_remove_plan_drops_to_free_and_clears_usage(service, tracker):
    user = await service.create_user("corp", plan_type="enterprise", now=NOW, bulk_max_batch=40)
    await tracker.increment_daily_videos(user.id, 12, now=NOW)

    user = await service.remove_plan(user.id, now=NOW)

    assert user.plan_type == "free"
    assert user.plan_expiry is None
    assert user.bulk_max_batch is None
    assert await tracker.get_daily_videos(user.id, now=NOW) == 0


async def test_reset_usage(service, tracker):
    user = await service.create_user("bob", plan_type="scale", now=NOW)
    await tracker.increment_daily_videos(user.id, 7, now=NOW)

    await service.reset_usage(user.id, now=NOW)
    assert await tracker.get_daily_videos(user.id, now=NOW) == 0


async def test_unknown_user_raises(service):
    with pytest.raises(UserNotFoundError):
        await service.get_user("missing")
    with pytest.raises(UserNotFoundError):
        await service.reset_usage("missing")


async def test_snapshot_combines_row_and_counters(service, tracker):
    user = await service.create_user("bob", plan_type="scale", now=NOW)
    await tracker.increment_daily_videos(user.id, 1000, now=NOW)
    await tracker.increment_voice_characters(user.id, 4200)

    snapshot = await service.load_snapshot(user.id, now=NOW)

    assert snapshot.daily_video_count == 1000
    assert snapshot.voice_characters_used == 4200
    assert snapshot.plan_type == "scale"

    decision = can_generate_video(snapshot, now=NOW)
    assert decision.allowed is False
    assert decision.code.value == "daily_limit"
