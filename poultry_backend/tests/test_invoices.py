"""
Invoice Tests.

Multi-line invoices built from several weighings, and per-date numbering.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from poultry_backend.app.core.exceptions import (
    InvalidWeightError,
    OverAllocationError,
    ValidationFailedError,
)
from poultry_backend.app.domain.billing.invoice_calculator import InvoiceLine
from poultry_backend.app.models.invoice import Invoice
from poultry_backend.app.models.invoice_item import InvoiceItem
from poultry_backend.app.models.invoice_sequence import InvoiceSequence
from poultry_backend.app.services.audit import AuditAction
from poultry_backend.tests.support import TODAY, TestingSessionLocal

# 110 kg on the scale with 4 cages of 2.5 kg -> 100 kg net at 7.50 = 750.00
FIRST_WEIGHING = InvoiceLine(
    gross_weight=Decimal("110"), cages_count=4, cage_weight=Decimal("2.5"), unit_price=Decimal("7.50")
)
# 52.5 kg with 2 cages of 1.25 kg -> 50 kg net at 8.00 = 400.00, 10% off -> 360.00
SECOND_WEIGHING = InvoiceLine(
    gross_weight=Decimal("52.5"),
    cages_count=2,
    cage_weight=Decimal("1.25"),
    unit_price=Decimal("8.00"),
    discount_percentage=Decimal("10"),
)


@pytest.mark.asyncio
async def test_multi_line_invoice_posts_once(coordinator, queries, customer, truck_load):
    settlement = await coordinator.create_invoice_from_lines(
        customer.id, truck_load.id, [FIRST_WEIGHING, SECOND_WEIGHING], actor="tester"
    )

    invoice = settlement.invoice
    assert invoice.sold_weight == Decimal("150")
    assert invoice.total_amount == Decimal("1150.00")
    assert invoice.discount_amount == Decimal("40.00")
    assert invoice.net_amount == Decimal("1110.00")
    # Weight-averaged: 1150 / 150 = 7.666.. and 40 / 1150 = 3.478..%
    assert invoice.unit_price == Decimal("7.67")
    assert invoice.discount_percentage == Decimal("3.48")

    assert [item.line_number for item in settlement.items] == [1, 2]
    assert [item.net_weight for item in settlement.items] == [Decimal("100"), Decimal("50")]
    assert [item.net_amount for item in settlement.items] == [Decimal("750.00"), Decimal("360.00")]

    assert await queries.get_balance(customer.id) == Decimal("1110.00")
    assert settlement.truck_load.sold_weight == Decimal("150")
    assert settlement.reconciliation.sold_weight == Decimal("150")

    entries = await queries.audit_trail(customer_id=customer.id, action=AuditAction.INVOICE_POSTED)
    assert len(entries) == 1
    assert entries[0].meta_data["lines"] == 2


@pytest.mark.asyncio
async def test_stored_lines_match_invoice(coordinator, queries, customer, truck_load):
    settlement = await coordinator.create_invoice_from_lines(
        customer.id, truck_load.id, [FIRST_WEIGHING, SECOND_WEIGHING]
    )

    items = await queries.list_invoice_items(settlement.invoice.id)

    assert len(items) == 2
    assert sum(item.net_amount for item in items) == settlement.invoice.net_amount
    assert sum(item.net_weight for item in items) == settlement.invoice.sold_weight
    assert items[0].gross_weight == Decimal("110")
    assert items[0].cages_count == 4


@pytest.mark.asyncio
async def test_invalid_line_rejects_whole_invoice(coordinator, queries, customer, truck_load):
    # 10 cages of 6 kg weigh as much as the scale reading
    bad_line = InvoiceLine(gross_weight=Decimal("60"), cages_count=10, cage_weight=Decimal("6"), unit_price=Decimal("5"))

    with pytest.raises(InvalidWeightError) as exc_info:
        await coordinator.create_invoice_from_lines(customer.id, truck_load.id, [FIRST_WEIGHING, bad_line])

    assert exc_info.value.details["line"] == 2
    assert await queries.get_balance(customer.id) == Decimal("0")
    assert await queries.list_invoices(customer.id) == []
    view = await queries.get_truck_load(truck_load.id)
    assert view.truck_load.sold_weight == Decimal("0")


@pytest.mark.asyncio
async def test_lines_together_cannot_over_allocate(coordinator, queries, customer, truck_load):
    # 1000 kg load: 600 + 450 net fit individually but not together
    lines = [
        InvoiceLine(gross_weight=Decimal("600"), unit_price=Decimal("5")),
        InvoiceLine(gross_weight=Decimal("450"), unit_price=Decimal("5")),
    ]

    with pytest.raises(OverAllocationError):
        await coordinator.create_invoice_from_lines(customer.id, truck_load.id, lines)

    assert await queries.get_balance(customer.id) == Decimal("0")
    async with TestingSessionLocal() as db:
        assert (await db.execute(select(InvoiceItem))).scalars().all() == []


@pytest.mark.asyncio
async def test_invoice_needs_a_line(coordinator, customer, truck_load):
    with pytest.raises(ValidationFailedError):
        await coordinator.create_invoice_from_lines(customer.id, truck_load.id, [])


@pytest.mark.asyncio
async def test_single_sale_stores_one_line(coordinator, queries, customer, truck_load):
    settlement = await coordinator.create_invoice_and_settle(customer.id, truck_load.id, Decimal("20"), Decimal("6"))

    items = await queries.list_invoice_items(settlement.invoice.id)

    assert len(items) == 1
    assert items[0].gross_weight == items[0].net_weight == Decimal("20")
    assert items[0].cages_count == 0
    assert items[0].net_amount == settlement.invoice.net_amount == Decimal("120.00")


@pytest.mark.asyncio
async def test_invoice_number_comes_from_date_counter(coordinator, customer, truck_load):
    async with TestingSessionLocal() as db:
        async with db.begin():
            db.add(InvoiceSequence(invoice_date=TODAY, last_number=41))

    settlement = await coordinator.create_invoice_and_settle(customer.id, truck_load.id, Decimal("1"), Decimal("1"))

    assert settlement.invoice.invoice_number == "20240315-0042"
    async with TestingSessionLocal() as db:
        counter = await db.get(InvoiceSequence, TODAY)
        assert counter.last_number == 42
        assert len((await db.execute(select(Invoice))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_rejected_sale_does_not_consume_a_number(coordinator, customer, truck_load):
    with pytest.raises(OverAllocationError):
        await coordinator.create_invoice_and_settle(customer.id, truck_load.id, Decimal("5000"), Decimal("1"))

    settlement = await coordinator.create_invoice_and_settle(customer.id, truck_load.id, Decimal("1"), Decimal("1"))

    assert settlement.invoice.invoice_number == "20240315-0001"
