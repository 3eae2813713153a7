"""
Failure Injection Tests.

Validates rollback, retry and circuit-breaker behaviour against storage and
collaborator failures.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from poultry_backend.app.core.exceptions import ConcurrencyConflictError, StorageUnavailableError
from poultry_backend.app.core.reliability import CircuitBreaker, CircuitOpenError, retry_read
from poultry_backend.app.models.audit_log import AuditLog
from poultry_backend.app.models.invoice import Invoice
from poultry_backend.app.services.ledger_queries import LedgerQueries
from poultry_backend.app.services.transaction_coordinator import TransactionCoordinator
from poultry_backend.tests.support import TestingSessionLocal


def storage_down():
    return OperationalError("SELECT 1", {}, ConnectionError("connection refused"))


@pytest.mark.asyncio
async def test_audit_failure_rolls_back_whole_invoice(coordinator, queries, customer, truck_load, mocker):
    mocker.patch(
        "poultry_backend.app.services.transaction_coordinator.log_event",
        side_effect=RuntimeError("audit store down"),
    )

    with pytest.raises(RuntimeError):
        await coordinator.create_invoice_and_settle(customer.id, truck_load.id, Decimal("100"), Decimal("5"))

    assert await queries.get_balance(customer.id) == Decimal("0")
    view = await queries.get_truck_load(truck_load.id)
    assert view.truck_load.sold_weight == Decimal("0")
    record = await queries.get_reconciliation(truck_load.truck_id, truck_load.load_date)
    assert record.sold_weight == Decimal("0")
    async with TestingSessionLocal() as db:
        assert (await db.execute(select(Invoice))).scalars().all() == []


@pytest.mark.asyncio
async def test_observers_notified_only_after_commit(coordinator, customer, truck_load, mocker):
    events = []

    async def observer(event):
        events.append(event)

    coordinator.subscribe(observer)
    mocker.patch(
        "poultry_backend.app.services.transaction_coordinator.ReconciliationEngine.record_sale",
        side_effect=RuntimeError("scale offline"),
    )

    with pytest.raises(RuntimeError):
        await coordinator.create_invoice_and_settle(customer.id, truck_load.id, Decimal("1"), Decimal("1"))
    assert events == []

    mocker.stopall()
    await coordinator.create_invoice_and_settle(customer.id, truck_load.id, Decimal("1"), Decimal("1"))
    assert [e.action for e in events] == ["INVOICE_POSTED"]
    assert events[0].customer_id == customer.id


@pytest.mark.asyncio
async def test_failing_observer_does_not_undo_commit(coordinator, queries, customer, truck_load):
    async def broken_observer(event):
        raise ValueError("subscriber bug")

    coordinator.subscribe(broken_observer)
    await coordinator.create_invoice_and_settle(customer.id, truck_load.id, Decimal("2"), Decimal("5"))

    assert await queries.get_balance(customer.id) == Decimal("10.00")


@pytest.mark.asyncio
async def test_read_retried_then_surfaces_storage_unavailable(mocker):
    read = mocker.AsyncMock(side_effect=storage_down())

    with pytest.raises(StorageUnavailableError):
        await retry_read("get_balance", read, attempts=3, delay=0)

    assert read.await_count == 3


@pytest.mark.asyncio
async def test_read_recovers_after_transient_failure(mocker):
    read = mocker.AsyncMock(side_effect=[storage_down(), Decimal("42")])

    assert await retry_read("get_balance", read, attempts=3, delay=0) == Decimal("42")
    assert read.await_count == 2


@pytest.mark.asyncio
async def test_mutation_storage_failure_is_not_retried(clock, test_settings, mocker):
    factory = mocker.MagicMock(side_effect=storage_down())
    coordinator = TransactionCoordinator(factory, config=test_settings, clock=clock)

    with pytest.raises(StorageUnavailableError) as exc_info:
        await coordinator.record_payment_and_settle(1, Decimal("10"))

    assert factory.call_count == 1
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_version_conflict_retried_then_surfaces(coordinator, test_settings):
    calls = []

    async def work(unit):
        calls.append(1)
        raise StaleDataError("row version changed")

    with pytest.raises(ConcurrencyConflictError) as exc_info:
        await coordinator._execute("test_unit", ["customer:1"], work)

    assert len(calls) == test_settings.conflict_retry_attempts
    assert exc_info.value.details["attempts"] == test_settings.conflict_retry_attempts


@pytest.mark.asyncio
async def test_unique_race_retried_with_fresh_reads(coordinator):
    calls = []

    async def work(unit):
        calls.append(1)
        if len(calls) == 1:
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        return "done"

    assert await coordinator._execute("test_unit", [], work) == "done"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_conflict_retry_leaves_no_partial_audit(coordinator, customer):
    calls = []

    async def work(unit):
        calls.append(1)
        await unit.record("TEST_ACTION", "customer", customer.id, customer.id)
        if len(calls) == 1:
            raise StaleDataError("row version changed")
        return "ok"

    await coordinator._execute("test_unit", [], work)

    async with TestingSessionLocal() as db:
        rows = (await db.execute(select(AuditLog).where(AuditLog.action == "TEST_ACTION"))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_circuit_breaker_opens_after_threshold(mocker):
    breaker = CircuitBreaker(failure_threshold=2, reset_timeout=60)
    read = mocker.AsyncMock(side_effect=storage_down())

    for _ in range(2):
        with pytest.raises(StorageUnavailableError):
            await retry_read("get_customer", read, attempts=1, delay=0, breaker=breaker)

    with pytest.raises(CircuitOpenError):
        await retry_read("get_customer", read, attempts=1, delay=0, breaker=breaker)

    assert read.await_count == 2
    assert breaker.state == "OPEN"


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_success_closes(mocker):
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=60)
    read = mocker.AsyncMock(side_effect=[storage_down(), "ok"])

    with pytest.raises(StorageUnavailableError):
        await retry_read("get_customer", read, attempts=1, delay=0, breaker=breaker)
    assert breaker.state == "OPEN"
    breaker.last_failure_time -= 61

    assert await retry_read("get_customer", read, attempts=1, delay=0, breaker=breaker) == "ok"
    assert breaker.state == "CLOSED"


@pytest.mark.asyncio
async def test_queries_surface_storage_unavailable(clock, test_settings, mocker):
    factory = mocker.MagicMock(side_effect=storage_down())
    queries = LedgerQueries(factory, config=test_settings, clock=clock)

    with pytest.raises(StorageUnavailableError):
        await queries.get_balance(1)

    assert factory.call_count == test_settings.read_retry_attempts
