"""
Ledger Tests.

Balance movements, overpayment policy and the balance invariant.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from poultry_backend.app.core.config import OverpaymentPolicy
from poultry_backend.app.core.exceptions import (
    ImmutableRecordError,
    InactiveEntityError,
    InvalidAmountError,
    OverpaymentRejectedError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from poultry_backend.app.domain.ledger.ledger_engine import LedgerEngine
from poultry_backend.app.models.audit_log import AuditLog
from poultry_backend.app.models.customer import Customer
from poultry_backend.app.models.invoice import Invoice
from poultry_backend.app.services.audit import AuditAction
from poultry_backend.app.services.transaction_coordinator import TransactionCoordinator
from poultry_backend.tests.support import TestingSessionLocal


async def sell(coordinator, customer, truck_load, weight="50", price="10"):
    return await coordinator.create_invoice_and_settle(
        customer.id, truck_load.id, Decimal(weight), Decimal(price), actor="tester"
    )


@pytest.mark.asyncio
async def test_invoice_then_payment_moves_balance(coordinator, queries, customer, truck_load):
    """Debt 0 -> invoice 500 -> 500 -> payment 200 -> 300."""
    settlement = await sell(coordinator, customer, truck_load, "50", "10")
    assert settlement.invoice.net_amount == Decimal("500.00")
    assert settlement.balance_change.balance_before == Decimal("0")
    assert await queries.get_balance(customer.id) == Decimal("500.00")

    payment = await coordinator.record_payment_and_settle(customer.id, Decimal("200.00"), actor="tester")
    assert payment.balance_change.balance_after == Decimal("300.00")
    assert await queries.get_balance(customer.id) == Decimal("300.00")


@pytest.mark.asyncio
async def test_write_off_adjustment_is_audited_with_reason(coordinator, queries, customer, truck_load):
    await sell(coordinator, customer, truck_load, "5", "10")

    result = await coordinator.adjust_debt(customer.id, Decimal("-50"), "write-off", actor="tester")

    assert result.balance_change.balance_after == Decimal("0.00")
    assert await queries.get_balance(customer.id) == Decimal("0.00")
    entries = await queries.audit_trail(customer_id=customer.id, action=AuditAction.DEBT_ADJUSTED)
    assert len(entries) == 1
    assert entries[0].reason == "write-off"
    assert entries[0].actor == "tester"


@pytest.mark.asyncio
async def test_adjustment_requires_reason_and_non_zero_delta(coordinator, customer):
    with pytest.raises(ValidationFailedError):
        await coordinator.adjust_debt(customer.id, Decimal("10"), "   ")
    with pytest.raises(InvalidAmountError):
        await coordinator.adjust_debt(customer.id, Decimal("0"), "typo")


@pytest.mark.asyncio
async def test_invalid_payment_amounts(coordinator, customer):
    with pytest.raises(InvalidAmountError):
        await coordinator.record_payment_and_settle(customer.id, Decimal("0"))
    with pytest.raises(InvalidAmountError):
        await coordinator.record_payment_and_settle(customer.id, Decimal("1000000.01"))


@pytest.mark.asyncio
async def test_overpayment_rejected_by_default(coordinator, queries, customer, truck_load):
    await sell(coordinator, customer, truck_load, "10", "10")

    with pytest.raises(OverpaymentRejectedError) as exc_info:
        await coordinator.record_payment_and_settle(customer.id, Decimal("150"))

    assert exc_info.value.details["override_allowed"] is False
    assert await queries.get_balance(customer.id) == Decimal("100.00")


@pytest.mark.asyncio
async def test_overpayment_requires_explicit_override(clock, test_settings, queries, customer, truck_load):
    config = test_settings.model_copy(update={"overpayment_policy": OverpaymentPolicy.REQUIRE_OVERRIDE})
    coordinator = TransactionCoordinator(TestingSessionLocal, config=config, clock=clock)
    await sell(coordinator, customer, truck_load, "10", "10")

    with pytest.raises(OverpaymentRejectedError) as exc_info:
        await coordinator.record_payment_and_settle(customer.id, Decimal("150"))
    assert exc_info.value.details["override_allowed"] is True

    result = await coordinator.record_payment_and_settle(customer.id, Decimal("150"), allow_overpayment=True)
    assert result.balance_change.balance_after == Decimal("-50.00")


@pytest.mark.asyncio
async def test_overpayment_allowed_as_credit(clock, test_settings, queries, customer, truck_load):
    config = test_settings.model_copy(update={"overpayment_policy": OverpaymentPolicy.ALLOW_CREDIT})
    coordinator = TransactionCoordinator(TestingSessionLocal, config=config, clock=clock)
    await sell(coordinator, customer, truck_load, "10", "10")

    await coordinator.record_payment_and_settle(customer.id, Decimal("130"))

    assert await queries.get_balance(customer.id) == Decimal("-30.00")
    aging = await queries.get_aging(customer.id)
    assert aging.total_outstanding == Decimal("0")
    assert aging.unapplied_credit == Decimal("30.00")


@pytest.mark.asyncio
async def test_payment_linked_to_other_customers_invoice_is_rejected(coordinator, customer, truck_load):
    other = await coordinator.create_customer("Dar Al Khair")
    settlement = await sell(coordinator, other, truck_load, "10", "10")

    with pytest.raises(ValidationFailedError):
        await coordinator.record_payment_and_settle(customer.id, Decimal("10"), invoice_id=settlement.invoice.id)
    with pytest.raises(ResourceNotFoundError):
        await coordinator.record_payment_and_settle(other.id, Decimal("10"), invoice_id=9999)


@pytest.mark.asyncio
async def test_inactive_customer_cannot_be_invoiced(coordinator, customer, truck_load):
    async with TestingSessionLocal() as db:
        async with db.begin():
            row = await db.get(Customer, customer.id)
            row.is_active = False

    with pytest.raises(InactiveEntityError):
        await sell(coordinator, customer, truck_load)


@pytest.mark.asyncio
async def test_balance_matches_history_after_mixed_operations(coordinator, queries, customer, truck_load):
    await sell(coordinator, customer, truck_load, "12.5", "8.40")
    await sell(coordinator, customer, truck_load, "30", "9.99")
    await coordinator.record_payment_and_settle(customer.id, Decimal("50.25"))
    await coordinator.adjust_debt(customer.id, Decimal("12.10"), "delivery fee")
    await coordinator.record_payment_and_settle(customer.id, Decimal("100"))

    async with TestingSessionLocal() as db:
        derived = await LedgerEngine().derive_balance(db, customer.id)

    assert await queries.get_balance(customer.id) == derived
    # 105.00 + 299.70 - 50.25 + 12.10 - 100
    assert derived == Decimal("266.55")


@pytest.mark.asyncio
async def test_posted_invoice_cannot_be_modified(coordinator, customer, truck_load):
    settlement = await sell(coordinator, customer, truck_load)

    async with TestingSessionLocal() as db:
        invoice = await db.get(Invoice, settlement.invoice.id)
        invoice.net_amount = Decimal("1.00")
        with pytest.raises(ImmutableRecordError):
            await db.flush()
        await db.rollback()


@pytest.mark.asyncio
async def test_every_balance_change_is_audited(coordinator, customer, truck_load):
    await sell(coordinator, customer, truck_load)
    await coordinator.record_payment_and_settle(customer.id, Decimal("100"), actor="cashier-1")

    async with TestingSessionLocal() as db:
        result = await db.execute(
            select(AuditLog).where(AuditLog.customer_id == customer.id).order_by(AuditLog.id)
        )
        actions = [(e.action, e.actor) for e in result.scalars().all()]

    assert actions == [
        (AuditAction.CUSTOMER_CREATED, "tester"),
        (AuditAction.INVOICE_POSTED, "tester"),
        (AuditAction.PAYMENT_POSTED, "cashier-1"),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["100.005", "100.015", "10.0049"])
async def test_sub_cent_payment_rejected_and_balance_still_derivable(coordinator, queries, customer, truck_load, amount):
    await sell(coordinator, customer, truck_load, "50", "10")

    with pytest.raises(InvalidAmountError):
        await coordinator.record_payment_and_settle(customer.id, Decimal(amount))

    async with TestingSessionLocal() as db:
        derived = await LedgerEngine().derive_balance(db, customer.id)
    assert derived == Decimal("500.00")
    assert await queries.get_balance(customer.id) == derived
    assert await queries.list_payments(customer.id) == []


@pytest.mark.asyncio
async def test_sub_cent_adjustment_rejected(coordinator, queries, customer):
    with pytest.raises(InvalidAmountError):
        await coordinator.adjust_debt(customer.id, Decimal("12.345"), "rounding")
    with pytest.raises(InvalidAmountError):
        await coordinator.adjust_debt(customer.id, Decimal("-0.001"), "rounding")

    assert await queries.get_balance(customer.id) == Decimal("0")


@pytest.mark.asyncio
async def test_sub_cent_unit_price_rejected(coordinator, queries, customer, truck_load):
    with pytest.raises(InvalidAmountError):
        await sell(coordinator, customer, truck_load, "10", "5.555")

    assert await queries.list_invoices(customer.id) == []


@pytest.mark.asyncio
async def test_whole_cent_amounts_with_trailing_zeros_accepted(coordinator, queries, customer, truck_load):
    await sell(coordinator, customer, truck_load, "10", "5.550")

    payment = await coordinator.record_payment_and_settle(customer.id, Decimal("20.500"))

    assert payment.balance_change.balance_after == Decimal("35.00")
    assert await queries.get_balance(customer.id) == Decimal("35.00")
