"""Tests for the contract expiry worker."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from app.domain.services.contract_service import ContractService
from app.persistence.models.contract import ContractStatus
from app.workers.expiry_worker import ContractExpiryWorker


@pytest.mark.asyncio
async def test_run_once_expires_overdue_contracts(db_session, session_factory, broker, customer, advisor, plan):
    service = ContractService(db_session)
    contract = (await service.request_contract(customer, plan.id)).value
    await service.approve_contract(contract.id, advisor)
    worker = ContractExpiryWorker(session_factory, broker, interval_seconds=60)

    assert await worker.run_once() == 0
    later = datetime.utcnow() + timedelta(minutes=service.duration_minutes + 1)
    assert await worker.run_once(now=later) == 1
    assert await worker.run_once(now=later) == 0

    stored = await service.get_contract(contract.id)
    assert stored.status == ContractStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_loop_survives_failing_sweep(session_factory):
    worker = ContractExpiryWorker(session_factory, interval_seconds=0.01)
    calls = []

    async def flaky_run_once(now=None):
        calls.append(now)
        if len(calls) == 1:
            raise RuntimeError("database restarting")
        return 0

    with patch.object(worker, "run_once", side_effect=flaky_run_once):
        worker.start()
        assert worker.running
        for _ in range(50):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.01)
        await worker.stop()

    assert len(calls) >= 2
    assert not worker.running


@pytest.mark.asyncio
async def test_stop_without_start_is_noop(session_factory):
    worker = ContractExpiryWorker(session_factory)
    await worker.stop()
    assert not worker.running
