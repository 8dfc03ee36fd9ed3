import asyncio
import uuid
from datetime import timedelta

import pytest

from haroo.models.domain.connection_domain import Connection, ConnectionStatus
from haroo.services.connection_service import ConnectionService
from haroo.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    PaymentRejectedError,
)
from haroo.services.notifications import TemplateKind
from tests.fakes import RecordingNotifier, ScriptedVerifier


@pytest.fixture
def service(container):
    return container.connection_service


def seed_live(connections, clock, initiator, recipient, status, claim_slots=False):
    now = clock.now()
    return connections.seed(
        Connection(
            id=str(uuid.uuid4()),
            initiator_id=initiator,
            recipient_id=recipient,
            status=status,
            duration_days=1,
            requested_at=now,
            expires_at=now + timedelta(hours=24),
            start_date=now if status == ConnectionStatus.ACTIVE_PERIOD else None,
            end_date=now + timedelta(days=1) if status == ConnectionStatus.ACTIVE_PERIOD else None,
        ),
        claim_slots=claim_slots,
    )


# ----------------------------------------------------------------------
# Requests
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_request_creates_pending_and_notifies_recipient(service, notifier, clock):
    connection = await service.request("alice", "bob", 1)

    assert connection.status == ConnectionStatus.PENDING
    assert connection.initiator_id == "alice"
    assert connection.expires_at == clock.now() + timedelta(hours=24)
    assert notifier.kinds_for("bob") == [TemplateKind.MODE_REQUESTED]
    assert notifier.kinds_for("alice") == []


@pytest.mark.asyncio
async def test_request_from_first_time_caller_creates_their_row(service, users):
    connection = await service.request("newcomer", "bob", 1)

    assert connection.status == ConnectionStatus.PENDING
    assert "newcomer" in users.users
    assert users.users["newcomer"].hash_id


@pytest.mark.asyncio
async def test_purchase_from_first_time_caller(service, users, verifier):
    connection = await service.purchase("newcomer", "bob", "message_mode_3day", "play-token-1")

    assert connection.duration_days == 3
    assert "newcomer" in users.users
    assert verifier.calls == [("message_mode_3day", "play-token-1", "newcomer")]


@pytest.mark.asyncio
@pytest.mark.parametrize("duration", [0, 2, 7])
async def test_request_rejects_unsupported_duration(service, duration):
    with pytest.raises(InvalidArgumentError) as exc:
        await service.request("alice", "bob", duration)
    assert exc.value.reason == "invalid_duration"


@pytest.mark.asyncio
async def test_request_to_self_is_rejected(service):
    with pytest.raises(InvalidArgumentError) as exc:
        await service.request("alice", "alice", 1)
    assert exc.value.reason == "self_target"


@pytest.mark.asyncio
async def test_request_to_unknown_user(service):
    with pytest.raises(NotFoundError) as exc:
        await service.request("alice", "nobody", 1)
    assert exc.value.reason == "recipient_not_found"


@pytest.mark.asyncio
@pytest.mark.parametrize("blocker,blocked", [("bob", "alice"), ("alice", "bob")])
async def test_request_blocked_in_either_direction(service, users, blocker, blocked):
    await users.add_block(blocker, blocked)

    with pytest.raises(ForbiddenError) as exc:
        await service.request("alice", "bob", 1)
    assert exc.value.reason == "blocked"


@pytest.mark.asyncio
async def test_request_while_initiator_busy(service):
    await service.request("alice", "bob", 1)

    with pytest.raises(ConflictError) as exc:
        await service.request("alice", "carol", 1)
    assert exc.value.reason == "self_busy"


@pytest.mark.asyncio
async def test_request_to_busy_recipient(service):
    await service.request("alice", "bob", 1)

    with pytest.raises(ConflictError) as exc:
        await service.request("carol", "bob", 1)
    assert exc.value.reason == "peer_busy"


@pytest.mark.asyncio
async def test_concurrent_requests_to_same_recipient_create_one_mode(service, connections):
    results = await asyncio.gather(
        service.request("alice", "bob", 1),
        service.request("carol", "bob", 1),
        return_exceptions=True,
    )

    created = [r for r in results if isinstance(r, Connection)]
    failed = [r for r in results if isinstance(r, ConflictError)]
    assert len(created) == 1
    assert len(failed) == 1
    assert failed[0].reason == "peer_busy"
    assert len([c for c in connections.connections.values() if c.is_live]) == 1


@pytest.mark.asyncio
async def test_concurrent_requests_from_same_initiator_create_one_mode(service):
    results = await asyncio.gather(
        service.request("alice", "bob", 1),
        service.request("alice", "carol", 3),
        return_exceptions=True,
    )

    assert len([r for r in results if isinstance(r, Connection)]) == 1
    assert [r.reason for r in results if isinstance(r, ConflictError)] == ["self_busy"]


# ----------------------------------------------------------------------
# Responses
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_accept_starts_active_period(service, notifier, clock):
    pending = await service.request("alice", "bob", 3)

    active = await service.accept(pending.id, "bob")

    assert active.status == ConnectionStatus.ACTIVE_PERIOD
    assert active.start_date == clock.now()
    assert active.end_date == clock.now() + timedelta(days=3)
    assert TemplateKind.MODE_ACCEPTED in notifier.kinds_for("alice")


@pytest.mark.asyncio
async def test_only_recipient_can_accept(service):
    pending = await service.request("alice", "bob", 1)

    for user_id in ("alice", "carol"):
        with pytest.raises(ForbiddenError) as exc:
            await service.accept(pending.id, user_id)
        assert exc.value.reason == "not_recipient"


@pytest.mark.asyncio
async def test_accept_unknown_mode(service):
    with pytest.raises(NotFoundError) as exc:
        await service.accept(str(uuid.uuid4()), "bob")
    assert exc.value.reason == "mode_not_found"


@pytest.mark.asyncio
async def test_accept_after_request_window_expires(service, connections, notifier, clock):
    pending = await service.request("alice", "bob", 1)
    clock.advance_hours(25)

    with pytest.raises(ConflictError) as exc:
        await service.accept(pending.id, "bob")

    assert exc.value.reason == "expired"
    assert connections.connections[pending.id].status == ConnectionStatus.EXPIRED
    assert TemplateKind.PENDING_EXPIRED in notifier.kinds_for("alice")
    assert TemplateKind.PENDING_EXPIRED not in notifier.kinds_for("bob")


@pytest.mark.asyncio
async def test_accept_rechecks_acceptor_live_modes(service, connections, clock):
    pending = await service.request("alice", "bob", 1)
    # A live mode that slipped past the slot claim
    seed_live(connections, clock, "carol", "bob", ConnectionStatus.ACTIVE_PERIOD)

    with pytest.raises(ConflictError) as exc:
        await service.accept(pending.id, "bob")

    assert exc.value.reason == "self_busy"
    assert connections.connections[pending.id].status == ConnectionStatus.PENDING


@pytest.mark.asyncio
async def test_accept_rechecks_initiator_live_modes(service, connections, clock):
    pending = await service.request("alice", "bob", 1)
    seed_live(connections, clock, "alice", "dave", ConnectionStatus.ACTIVE_PERIOD)

    with pytest.raises(ConflictError) as exc:
        await service.accept(pending.id, "bob")
    assert exc.value.reason == "peer_busy"


@pytest.mark.asyncio
async def test_concurrent_accepts_activate_once(service):
    pending = await service.request("alice", "bob", 1)

    results = await asyncio.gather(
        service.accept(pending.id, "bob"),
        service.accept(pending.id, "bob"),
        return_exceptions=True,
    )

    assert len([r for r in results if isinstance(r, Connection)]) == 1
    assert [r.reason for r in results if isinstance(r, ConflictError)] == ["not_pending"]


@pytest.mark.asyncio
async def test_reject_frees_both_parties(service, notifier):
    pending = await service.request("alice", "bob", 1)

    rejected = await service.reject(pending.id, "bob")

    assert rejected.status == ConnectionStatus.REJECTED
    assert TemplateKind.MODE_REJECTED in notifier.kinds_for("alice")
    assert (await service.request("alice", "carol", 1)).status == ConnectionStatus.PENDING
    assert (await service.request("dave", "bob", 1)).status == ConnectionStatus.PENDING


@pytest.mark.asyncio
async def test_block_records_block_and_prevents_new_requests(service, users):
    pending = await service.request("alice", "bob", 1)

    blocked = await service.block(pending.id, "bob")

    assert blocked.status == ConnectionStatus.BLOCKED
    assert "alice" in (await users.get("bob")).blocked_user_ids
    with pytest.raises(ForbiddenError) as exc:
        await service.request("alice", "bob", 1)
    assert exc.value.reason == "blocked"


@pytest.mark.asyncio
async def test_respond_to_already_answered_request(service):
    pending = await service.request("alice", "bob", 1)
    await service.reject(pending.id, "bob")

    with pytest.raises(ConflictError) as exc:
        await service.accept(pending.id, "bob")
    assert exc.value.reason == "not_pending"


@pytest.mark.asyncio
async def test_cancel_by_initiator_only(service):
    pending = await service.request("alice", "bob", 1)

    with pytest.raises(ForbiddenError) as exc:
        await service.cancel(pending.id, "bob")
    assert exc.value.reason == "not_initiator"

    canceled = await service.cancel(pending.id, "alice")
    assert canceled.status == ConnectionStatus.CANCELED


@pytest.mark.asyncio
async def test_cannot_cancel_active_mode(service):
    pending = await service.request("alice", "bob", 1)
    await service.accept(pending.id, "bob")

    with pytest.raises(ConflictError) as exc:
        await service.cancel(pending.id, "alice")
    assert exc.value.reason == "not_pending"


# ----------------------------------------------------------------------
# Reads and expiry
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_current_for_each_party(service):
    pending = await service.request("alice", "bob", 1)
    await service.accept(pending.id, "bob")

    alice_view = await service.get_current("alice")
    bob_view = await service.get_current("bob")

    assert alice_view.id == pending.id
    assert alice_view.is_initiator is True
    assert bob_view.is_initiator is False
    assert alice_view.status == ConnectionStatus.ACTIVE_PERIOD
    assert alice_view.can_send_today is True
    assert alice_view.recipient.user_id == "bob"
    assert await service.get_current("carol") is None


@pytest.mark.asyncio
async def test_pending_view_has_no_send_flag(service):
    await service.request("alice", "bob", 1)

    view = await service.get_current("bob")

    assert view.status == ConnectionStatus.PENDING
    assert view.can_send_today is None


@pytest.mark.asyncio
async def test_three_day_mode_expires_lazily_and_frees_both(service, connections, notifier, clock):
    pending = await service.request("alice", "bob", 3)
    await service.accept(pending.id, "bob")

    clock.advance_day(2)
    assert (await service.get_current("alice")).status == ConnectionStatus.ACTIVE_PERIOD

    clock.advance_day(1)
    clock.advance_hours(1)
    assert await service.get_current("alice") is None

    assert connections.connections[pending.id].status == ConnectionStatus.EXPIRED
    assert TemplateKind.MODE_EXPIRED in notifier.kinds_for("alice")
    assert TemplateKind.MODE_EXPIRED in notifier.kinds_for("bob")

    again = await service.request("bob", "alice", 1)
    assert again.status == ConnectionStatus.PENDING


@pytest.mark.asyncio
async def test_expire_overdue_sweeps_both_kinds(service, clock):
    active = await service.request("alice", "bob", 1)
    await service.accept(active.id, "bob")
    await service.request("carol", "dave", 1)

    assert await service.expire_overdue() == 0

    clock.advance_hours(25)
    assert await service.expire_overdue() == 2
    assert await service.expire_overdue() == 0


@pytest.mark.asyncio
async def test_pending_reminder_sent_once(service, notifier, clock):
    await service.request("alice", "bob", 1)

    assert await service.send_pending_reminders() == 0

    clock.advance_hours(13)
    assert await service.send_pending_reminders() == 1
    assert await service.send_pending_reminders() == 0
    assert notifier.kinds_for("bob").count(TemplateKind.PENDING_REMINDER) == 1


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_request(
    connections, messages, users, verifier, clock
):
    service = ConnectionService(
        connections, messages, users, RecordingNotifier(fail=True), verifier, clock
    )

    connection = await service.request("alice", "bob", 1)

    assert connections.connections[connection.id].status == ConnectionStatus.PENDING


# ----------------------------------------------------------------------
# Purchases
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_purchase_creates_pending_with_product_duration(service, verifier):
    connection = await service.purchase("alice", "bob", "message_mode_3day", "tok-1")

    assert connection.status == ConnectionStatus.PENDING
    assert connection.duration_days == 3
    assert verifier.calls == [("message_mode_3day", "tok-1", "alice")]


@pytest.mark.asyncio
async def test_purchase_unknown_product(service, verifier):
    with pytest.raises(InvalidArgumentError) as exc:
        await service.purchase("alice", "bob", "gold_coins", "tok-1")

    assert exc.value.reason == "unknown_product"
    assert verifier.calls == []


@pytest.mark.asyncio
async def test_purchase_duration_mismatch(service):
    with pytest.raises(InvalidArgumentError) as exc:
        await service.purchase("alice", "bob", "message_mode_1day", "tok-1", duration_days=3)
    assert exc.value.reason == "duration_mismatch"


@pytest.mark.asyncio
async def test_purchase_checks_run_before_verification(service, verifier):
    await service.request("carol", "bob", 1)

    with pytest.raises(ConflictError) as exc:
        await service.purchase("alice", "bob", "message_mode_1day", "tok-1")

    assert exc.value.reason == "peer_busy"
    assert verifier.calls == []


@pytest.mark.asyncio
async def test_rejected_purchase_creates_nothing(connections, messages, users, notifier, clock):
    service = ConnectionService(
        connections,
        messages,
        users,
        notifier,
        ScriptedVerifier(valid=False, detail="not_purchased"),
        clock,
    )

    with pytest.raises(PaymentRejectedError) as exc:
        await service.purchase("alice", "bob", "message_mode_1day", "tok-1")

    assert exc.value.reason == "payment_rejected"
    assert exc.value.details == {"detail": "not_purchased"}
    assert connections.connections == {}
