import asyncio
from datetime import timedelta

import pytest

from haroo.models.domain.trace_domain import GridCell, Trace, TraceStatus, WritePermission
from haroo.repositories.base import StaleWrite
from haroo.services.errors import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from haroo.services.trace_service import TRACE_MAX_LENGTH, TraceService
from tests.fakes import MODERATOR_ID

# Two points inside the same grid cell, one in a neighbouring area
CITY_HALL = (37.5665, 126.9785)
CITY_HALL_STEPS = (37.5668, 126.9783)
GWANGHWAMUN = (37.5705, 126.9765)


@pytest.fixture
def service(container):
    return container.trace_service


async def write(service, user_id="alice", content="벚꽃이 피기 시작했어요", where=CITY_HALL, tone="happy"):
    return await service.write(user_id, content, tone, *where)


# ----------------------------------------------------------------------
# Writing and the free quota
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_free_write_updates_counters(service, users, clock):
    trace = await write(service)

    assert trace.author_id == "alice"
    assert trace.grid == GridCell.from_location(*CITY_HALL)
    assert trace.expires_at == clock.now() + timedelta(hours=72)
    assert users.users["alice"].trace_daily_count == 1
    assert users.users["alice"].last_trace_at == clock.now()


@pytest.mark.asyncio
async def test_second_free_write_same_day_is_denied(service):
    await write(service)

    with pytest.raises(ForbiddenError) as exc:
        await write(service, content="again")

    assert exc.value.reason == "free_used"
    assert exc.value.details["permission"] == WritePermission.FREE_USED.value


@pytest.mark.asyncio
async def test_free_quota_returns_next_local_day(service, users, clock):
    await write(service)
    clock.advance_day()

    await write(service, content="new day")

    assert users.users["alice"].trace_daily_count == 1


@pytest.mark.asyncio
async def test_first_write_creates_unknown_user(service, users):
    await write(service, user_id="newcomer")

    assert users.users["newcomer"].trace_daily_count == 1
    assert users.users["newcomer"].hash_id


@pytest.mark.asyncio
async def test_concurrent_free_writes_store_one_trace(service, traces):
    results = await asyncio.gather(
        write(service, content="one"),
        write(service, content="two"),
        return_exceptions=True,
    )

    assert len([r for r in results if isinstance(r, Trace)]) == 1
    assert len(traces.traces) == 1


@pytest.mark.asyncio
async def test_stale_counter_write_maps_to_conflict(service, traces, monkeypatch):
    async def stale(*args, **kwargs):
        raise StaleWrite("changed", operation="record_write")

    monkeypatch.setattr(traces, "record_write", stale)

    with pytest.raises(ConflictError) as exc:
        await write(service)
    assert exc.value.reason == "concurrent_write"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content,tone,where,reason",
    [
        ("", "happy", CITY_HALL, "content_required"),
        ("x" * (TRACE_MAX_LENGTH + 1), "happy", CITY_HALL, "content_too_long"),
        ("hello", "sleepy", CITY_HALL, "invalid_tone_tag"),
        ("hello", "happy", (91.0, 0.0), "invalid_location"),
        ("hello", "happy", (0.0, -181.0), "invalid_location"),
    ],
)
async def test_write_validation(service, users, content, tone, where, reason):
    with pytest.raises(InvalidArgumentError) as exc:
        await write(service, content=content, tone=tone, where=where)

    assert exc.value.reason == reason
    assert users.users["alice"].trace_daily_count == 0


@pytest.mark.asyncio
async def test_max_length_content_is_accepted(service):
    trace = await write(service, content="가" * TRACE_MAX_LENGTH)
    assert len(trace.content) == TRACE_MAX_LENGTH


# ----------------------------------------------------------------------
# Passes
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_single_pass_allows_immediate_write(service, clock):
    await write(service)

    user = await service.mock_payment("alice", "single")

    assert user.trace_pass_expires_at == clock.now() + timedelta(hours=24)
    assert user.last_trace_at == clock.now() - timedelta(hours=3)
    assert (await service.resolve_permission("alice")).state == WritePermission.PAID_AVAILABLE
    await write(service, content="paid")


@pytest.mark.asyncio
async def test_three_day_pass_lasts_48_hours(service, clock):
    user = await service.mock_payment("alice", "threeDay")
    assert user.trace_pass_expires_at == clock.now() + timedelta(hours=48)


@pytest.mark.asyncio
async def test_pass_cooldown_between_writes(service, clock):
    await service.mock_payment("alice", "single")
    await write(service)

    with pytest.raises(ForbiddenError) as exc:
        await write(service, content="too soon")

    assert exc.value.reason == "cooldown"
    assert exc.value.details["next_available_at"] == (clock.now() + timedelta(hours=2)).isoformat()

    clock.advance_hours(2)
    await write(service, content="after cooldown")


@pytest.mark.asyncio
async def test_pass_expiry_falls_back_to_used_free_quota(service, clock):
    await service.mock_payment("alice", "single")

    # 11:00 in Seoul on the next day, pass still valid
    clock.advance_hours(23)
    await write(service)

    # The pass ran out at 12:00 and today's free write is already spent
    clock.advance_hours(2)
    assert (await service.resolve_permission("alice")).state == WritePermission.FREE_USED


@pytest.mark.asyncio
async def test_mock_payment_rejects_unknown_tier(service):
    with pytest.raises(InvalidArgumentError) as exc:
        await service.mock_payment("alice", "forever")
    assert exc.value.reason == "invalid_tier"


@pytest.mark.asyncio
async def test_mock_payment_can_be_disabled(traces, users, clock):
    service = TraceService(traces, users, clock, mock_payments_enabled=False)

    with pytest.raises(ForbiddenError) as exc:
        await service.mock_payment("alice", "single")
    assert exc.value.reason == "mock_payments_disabled"


@pytest.mark.asyncio
async def test_reset_quota_clears_pass_and_counters(service, users):
    await service.mock_payment("alice", "single")
    await write(service)

    user = await service.reset_quota("alice")

    assert user.trace_pass_expires_at is None
    assert user.last_trace_at is None
    assert user.trace_daily_count == 0
    assert (await service.resolve_permission("alice")).state == WritePermission.FREE_AVAILABLE


@pytest.mark.asyncio
async def test_permission_for_unknown_user_is_free(service):
    assert (await service.resolve_permission("stranger")).state == WritePermission.FREE_AVAILABLE


# ----------------------------------------------------------------------
# Reads
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_nearby_returns_cell_newest_first(service, clock):
    first = await write(service, user_id="alice")
    clock.advance_hours(1)
    second = await write(service, user_id="bob", where=CITY_HALL_STEPS)
    await write(service, user_id="carol", where=GWANGHWAMUN)

    page = await service.list_nearby("alice", *CITY_HALL)

    assert [t.id for t in page.traces] == [second.id, first.id]
    assert [t.is_mine for t in page.traces] == [False, True]
    assert page.grid_status == "HAS_MESSAGES"
    assert page.count == 2


@pytest.mark.asyncio
async def test_list_nearby_pages(service, clock):
    first = await write(service, user_id="alice")
    clock.advance_hours(1)
    await write(service, user_id="bob")

    page = await service.list_nearby("carol", *CITY_HALL, page=2, page_size=1)

    assert [t.id for t in page.traces] == [first.id]


@pytest.mark.asyncio
async def test_list_nearby_empty_cell(service):
    page = await service.list_nearby("alice", *GWANGHWAMUN)

    assert page.traces == []
    assert page.grid_status == "EMPTY"


@pytest.mark.asyncio
@pytest.mark.parametrize("page,page_size,reason", [(0, 20, "invalid_page"), (1, 0, "invalid_page_size"), (1, 51, "invalid_page_size")])
async def test_list_nearby_paging_validation(service, page, page_size, reason):
    with pytest.raises(InvalidArgumentError) as exc:
        await service.list_nearby("alice", *CITY_HALL, page=page, page_size=page_size)
    assert exc.value.reason == reason


@pytest.mark.asyncio
async def test_expired_traces_disappear_and_purge(service, clock):
    trace = await write(service)
    clock.advance_hours(72)

    assert (await service.list_nearby("alice", *CITY_HALL)).traces == []
    with pytest.raises(NotFoundError):
        await service.get(trace.id, "alice")

    clock.advance_hours(1)
    assert await service.purge_expired() == 1


# ----------------------------------------------------------------------
# Likes, reports and removal
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_like_and_unlike_are_idempotent(service):
    trace = await write(service)

    assert await service.like(trace.id, "bob") == 1
    assert await service.like(trace.id, "bob") == 1
    assert await service.like(trace.id, "carol") == 2
    assert (await service.get(trace.id, "bob")).is_liked is True

    assert await service.unlike(trace.id, "bob") == 1
    assert await service.unlike(trace.id, "bob") == 1
    assert (await service.get(trace.id, "bob")).is_liked is False


@pytest.mark.asyncio
async def test_first_time_caller_can_like_and_report(service, users):
    trace = await write(service)

    assert await service.like(trace.id, "newcomer") == 1
    assert await service.unlike(trace.id, "newcomer") == 0
    reported = await service.report(trace.id, "newcomer", "spam")

    assert reported.report_score == 1.0
    assert users.users["newcomer"].hash_id


@pytest.mark.asyncio
async def test_like_missing_trace(service):
    with pytest.raises(NotFoundError):
        await service.like("00000000-0000-0000-0000-000000000000", "bob")


@pytest.mark.asyncio
async def test_reports_hide_at_threshold(service):
    trace = await write(service)

    await service.report(trace.id, "bob", "spam")
    after_two = await service.report(trace.id, "carol", "spam")
    assert after_two.status == TraceStatus.ACTIVE

    after_three = await service.report(trace.id, "dave", "spam")

    assert after_three.status == TraceStatus.HIDDEN
    assert after_three.report_score == 3.0
    assert (await service.list_nearby("bob", *CITY_HALL)).traces == []


@pytest.mark.asyncio
async def test_report_weighted_by_influence(service, users):
    users.add("trusted", report_influence=3.0)
    trace = await write(service)

    reported = await service.report(trace.id, "trusted", "abuse")

    assert reported.status == TraceStatus.HIDDEN


@pytest.mark.asyncio
async def test_duplicate_report_is_rejected(service):
    trace = await write(service)
    await service.report(trace.id, "bob", "spam")

    with pytest.raises(ConflictError) as exc:
        await service.report(trace.id, "bob", "spam again")
    assert exc.value.reason == "already_reported"


@pytest.mark.asyncio
async def test_report_requires_reason(service):
    trace = await write(service)

    with pytest.raises(InvalidArgumentError) as exc:
        await service.report(trace.id, "bob", "  ")
    assert exc.value.reason == "reason_required"


@pytest.mark.asyncio
async def test_author_delete(service):
    trace = await write(service)

    with pytest.raises(ForbiddenError) as exc:
        await service.delete(trace.id, "bob")
    assert exc.value.reason == "not_author"

    removed = await service.delete(trace.id, "alice")
    again = await service.delete(trace.id, "alice")

    assert removed.status == TraceStatus.REMOVED
    assert again.status == TraceStatus.REMOVED
    with pytest.raises(NotFoundError):
        await service.like(trace.id, "bob")


@pytest.mark.asyncio
async def test_moderator_remove(service):
    trace = await write(service)

    with pytest.raises(ForbiddenError) as exc:
        await service.moderator_remove(trace.id, "bob")
    assert exc.value.reason == "not_moderator"

    removed = await service.moderator_remove(trace.id, MODERATOR_ID, reason="harassment")
    assert removed.status == TraceStatus.REMOVED
