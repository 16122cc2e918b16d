"""Tests for the contract state machine."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app.core.results import ErrorKind
from app.domain.services.contract_service import CONTRACT_CHANGED_EVENT, ContractService
from app.infrastructure.realtime import PENDING_CONTRACTS_CHANNEL, customer_contracts_channel
from app.persistence.models.contract import Contract, ContractStatus
from app.persistence.repositories.contract_repository import ContractRepository


async def _contract_count(db_session, customer_id: int) -> int:
    result = await db_session.execute(
        select(func.count(Contract.id)).where(Contract.customer_id == customer_id)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_request_approve_then_expire_on_next_fetch(db_session, customer, advisor, make_plan):
    """A request is pending, approval opens a 10 minute window, the next fetch expires it."""
    plan = await make_plan(advisor, name="5GB-Basic", price=10.00)
    service = ContractService(db_session, duration_minutes=10)

    requested = await service.request_contract(customer, plan.id)
    assert requested.success
    assert requested.value.status == ContractStatus.PENDING.value

    before = datetime.utcnow()
    approved = await service.approve_contract(requested.value.id, advisor)
    assert approved.success
    contract = approved.value
    assert contract.status == ContractStatus.APPROVED.value
    assert contract.advisor_id == advisor.id
    assert contract.advisor_notes is None
    assert contract.expires_at - contract.decided_at == timedelta(minutes=10)
    assert contract.decided_at >= before

    # Move the window into the past
    await ContractRepository(db_session).transition(
        contract.id,
        ContractStatus.APPROVED,
        expires_at=datetime.utcnow() - timedelta(seconds=1),
    )

    contracts = await service.list_customer_contracts(customer.id)
    assert [c.status for c in contracts] == [ContractStatus.EXPIRED.value]


@pytest.mark.asyncio
async def test_second_request_refused_while_pending(db_session, customer, advisor, make_plan):
    first_plan = await make_plan(advisor, name="First")
    second_plan = await make_plan(advisor, name="Second")
    service = ContractService(db_session)

    assert (await service.request_contract(customer, first_plan.id)).success

    second = await service.request_contract(customer, second_plan.id)
    assert not second.success
    assert second.error_kind == ErrorKind.INVALID_STATE
    assert await _contract_count(db_session, customer.id) == 1


@pytest.mark.asyncio
async def test_second_request_refused_while_approved(db_session, customer, advisor, plan):
    service = ContractService(db_session)
    first = await service.request_contract(customer, plan.id)
    await service.approve_contract(first.value.id, advisor)

    second = await service.request_contract(customer, plan.id)
    assert second.error_kind == ErrorKind.INVALID_STATE
    assert await _contract_count(db_session, customer.id) == 1


@pytest.mark.asyncio
async def test_request_allowed_after_expiry(db_session, customer, advisor, plan):
    service = ContractService(db_session)
    first = await service.request_contract(customer, plan.id)
    await service.approve_contract(first.value.id, advisor)
    await ContractRepository(db_session).transition(
        first.value.id,
        ContractStatus.APPROVED,
        expires_at=datetime.utcnow() - timedelta(minutes=1),
    )

    second = await service.request_contract(customer, plan.id)
    assert second.success
    refreshed = await service.get_contract(first.value.id)
    assert refreshed.status == ContractStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_request_allowed_after_rejection_and_cancellation(db_session, customer, advisor, plan):
    service = ContractService(db_session)
    first = await service.request_contract(customer, plan.id)
    await service.reject_contract(first.value.id, advisor, "not eligible")

    second = await service.request_contract(customer, plan.id)
    assert second.success
    assert (await service.cancel_contract(second.value.id, customer)).success

    third = await service.request_contract(customer, plan.id)
    assert third.success
    assert await _contract_count(db_session, customer.id) == 3


@pytest.mark.asyncio
async def test_one_open_contract_enforced_by_database(db_session, customer, plan):
    """The partial unique index refuses a second open row even without the service check."""
    repo = ContractRepository(db_session)
    await repo.create(customer_id=customer.id, plan_id=plan.id, status=ContractStatus.PENDING.value)

    with pytest.raises(IntegrityError):
        await repo.create(customer_id=customer.id, plan_id=plan.id, status=ContractStatus.APPROVED.value)
    await db_session.rollback()

    # Closed contracts are unrestricted
    await repo.create(customer_id=customer.id, plan_id=plan.id, status=ContractStatus.REJECTED.value)
    await repo.create(customer_id=customer.id, plan_id=plan.id, status=ContractStatus.EXPIRED.value)


@pytest.mark.asyncio
async def test_request_requires_active_plan_and_customer(db_session, customer, advisor, make_plan):
    inactive = await make_plan(advisor, is_active=False)
    service = ContractService(db_session)

    missing = await service.request_contract(customer, 9999)
    assert missing.error_kind == ErrorKind.NOT_FOUND

    deactivated = await service.request_contract(customer, inactive.id)
    assert deactivated.error_kind == ErrorKind.NOT_FOUND

    by_advisor = await service.request_contract(advisor, inactive.id)
    assert by_advisor.error_kind == ErrorKind.FORBIDDEN


@pytest.mark.asyncio
async def test_reject_requires_reason(db_session, customer, advisor, plan):
    service = ContractService(db_session)
    contract = (await service.request_contract(customer, plan.id)).value

    for reason in (None, "", "   "):
        result = await service.reject_contract(contract.id, advisor, reason)
        assert result.error_kind == ErrorKind.VALIDATION

    assert (await service.get_contract(contract.id)).status == ContractStatus.PENDING.value


@pytest.mark.asyncio
async def test_reject_then_approve_is_state_conflict(db_session, customer, advisor, plan):
    service = ContractService(db_session)
    contract = (await service.request_contract(customer, plan.id)).value

    rejected = await service.reject_contract(contract.id, advisor, "not eligible")
    assert rejected.success
    assert rejected.value.status == ContractStatus.REJECTED.value
    assert rejected.value.advisor_notes == "not eligible"

    approve = await service.approve_contract(contract.id, advisor)
    assert not approve.success
    assert approve.error_kind == ErrorKind.INVALID_STATE
    assert (await service.get_contract(contract.id)).status == ContractStatus.REJECTED.value


@pytest.mark.asyncio
@pytest.mark.parametrize("first", ["approve", "reject", "cancel"])
async def test_transitions_only_from_pending(db_session, customer, advisor, plan, first):
    service = ContractService(db_session)
    contract = (await service.request_contract(customer, plan.id)).value

    if first == "approve":
        assert (await service.approve_contract(contract.id, advisor)).success
    elif first == "reject":
        assert (await service.reject_contract(contract.id, advisor, "no")).success
    else:
        assert (await service.cancel_contract(contract.id, customer)).success

    attempts = [
        await service.approve_contract(contract.id, advisor),
        await service.reject_contract(contract.id, advisor, "late"),
        await service.cancel_contract(contract.id, customer),
    ]
    assert all(result.error_kind == ErrorKind.INVALID_STATE for result in attempts)


@pytest.mark.asyncio
async def test_concurrent_approvals_only_one_wins(db_session, session_factory, customer, advisor, make_user, plan):
    other_advisor = await make_user("advisor")
    contract = (await ContractService(db_session).request_contract(customer, plan.id)).value

    async with session_factory() as first_session, session_factory() as second_session:
        first = await ContractService(first_session).approve_contract(contract.id, advisor)
        second = await ContractService(second_session).approve_contract(contract.id, other_advisor)

    assert first.success
    assert second.error_kind == ErrorKind.INVALID_STATE
    stored = await ContractService(db_session).get_contract(contract.id)
    assert stored.advisor_id == advisor.id


@pytest.mark.asyncio
async def test_unknown_contract_is_not_found(db_session, customer, advisor):
    service = ContractService(db_session)
    assert (await service.approve_contract(404, advisor)).error_kind == ErrorKind.NOT_FOUND
    assert (await service.cancel_contract(404, customer)).error_kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_role_guards(db_session, customer, advisor, make_user, plan):
    service = ContractService(db_session)
    contract = (await service.request_contract(customer, plan.id)).value
    stranger = await make_user("customer")

    assert (await service.approve_contract(contract.id, customer)).error_kind == ErrorKind.FORBIDDEN
    assert (await service.reject_contract(contract.id, customer, "x")).error_kind == ErrorKind.FORBIDDEN
    assert (await service.cancel_contract(contract.id, stranger)).error_kind == ErrorKind.FORBIDDEN


@pytest.mark.asyncio
async def test_expiry_sweep_is_idempotent(db_session, customer, advisor, plan):
    service = ContractService(db_session)
    contract = (await service.request_contract(customer, plan.id)).value
    await service.approve_contract(contract.id, advisor)

    later = datetime.utcnow() + timedelta(minutes=service.duration_minutes + 1)
    assert await service.expire_overdue(now=later) == 1
    assert await service.expire_overdue(now=later) == 0

    stored = await service.get_contract(contract.id)
    assert stored.status == ContractStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_expiry_sweep_leaves_open_window_alone(db_session, customer, advisor, plan):
    service = ContractService(db_session)
    contract = (await service.request_contract(customer, plan.id)).value
    await service.approve_contract(contract.id, advisor)

    assert await service.expire_overdue() == 0
    assert (await service.get_contract(contract.id)).status == ContractStatus.APPROVED.value


@pytest.mark.asyncio
async def test_pending_queue_oldest_first(db_session, make_user, advisor, plan):
    service = ContractService(db_session)
    ids = []
    for _ in range(3):
        customer = await make_user("customer")
        ids.append((await service.request_contract(customer, plan.id)).value.id)

    pending = await service.list_pending_contracts()
    assert [c.id for c in pending] == ids
    assert pending[0].plan.name == plan.name
    assert pending[0].customer is not None


@pytest.mark.asyncio
async def test_advisor_stats(db_session, make_user, advisor, plan):
    service = ContractService(db_session)
    outcomes = []
    for action in ("approve", "reject", "approve", None):
        customer = await make_user("customer")
        contract = (await service.request_contract(customer, plan.id)).value
        if action == "approve":
            outcomes.append(await service.approve_contract(contract.id, advisor))
        elif action == "reject":
            outcomes.append(await service.reject_contract(contract.id, advisor, "no"))
    assert all(result.success for result in outcomes)

    stats = await service.get_advisor_stats(advisor.id)
    assert stats.value == {"total": 3, "approved": 2, "rejected": 1, "expired": 0, "pending": 1}

    decided = await service.list_advisor_contracts(advisor.id)
    assert len(decided) == 3


@pytest.mark.asyncio
async def test_changes_are_published(db_session, broker, customer, advisor, plan):
    customer_events = []
    queue_events = []
    await broker.subscribe(
        customer_contracts_channel(customer.id),
        lambda event, payload: customer_events.append((event, payload)),
    )
    await broker.subscribe(
        PENDING_CONTRACTS_CHANNEL,
        lambda event, payload: queue_events.append(payload["status"]),
    )
    service = ContractService(db_session, broker)

    contract = (await service.request_contract(customer, plan.id)).value
    await service.approve_contract(contract.id, advisor)
    await service.expire_overdue(now=datetime.utcnow() + timedelta(days=1))

    assert [payload["status"] for _, payload in customer_events] == ["pending", "approved", "expired"]
    assert all(event == CONTRACT_CHANGED_EVENT for event, _ in customer_events)
    assert customer_events[0][1]["contract_id"] == contract.id
    assert queue_events == ["pending", "approved"]


@pytest.mark.asyncio
async def test_get_contract_expires_overdue_window(db_session, customer, advisor, plan):
    service = ContractService(db_session)
    contract = (await service.request_contract(customer, plan.id)).value
    await service.approve_contract(contract.id, advisor)
    await ContractRepository(db_session).transition(
        contract.id,
        ContractStatus.APPROVED,
        expires_at=datetime.utcnow() - timedelta(minutes=1),
    )

    stored = await service.get_contract(contract.id)

    assert stored.status == ContractStatus.EXPIRED.value
    assert stored.plan.id == plan.id


@pytest.mark.asyncio
async def test_advisor_views_expire_overdue_windows(db_session, customer, advisor, plan):
    service = ContractService(db_session)
    contract = (await service.request_contract(customer, plan.id)).value
    await service.approve_contract(contract.id, advisor)
    await ContractRepository(db_session).transition(
        contract.id,
        ContractStatus.APPROVED,
        expires_at=datetime.utcnow() - timedelta(minutes=1),
    )

    stats = await service.get_advisor_stats(advisor.id)
    decided = await service.list_advisor_contracts(advisor.id)

    assert stats.value["approved"] == 0
    assert stats.value["expired"] == 1
    assert [c.status for c in decided] == [ContractStatus.EXPIRED.value]
