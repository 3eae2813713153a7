"""
Invoice calculations and numbering.

Sale amount = net weight * unit price, less a percentage discount. An
invoice is made of one or more weighing lines; each line is rounded to
cents once and the invoice totals are the sums of its lines.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from poultry_backend.app.core.exceptions import (
    AppException,
    InvalidAmountError,
    InvalidWeightError,
    ValidationFailedError,
)
from poultry_backend.app.domain.ledger.money import ZERO, is_whole_cents, quantize_money, quantize_weight, to_decimal
from poultry_backend.app.models.invoice_sequence import InvoiceSequence

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class InvoiceTotals:
    total_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal


@dataclass(frozen=True)
class InvoiceLine:
    """One weighing at the scale. A net-only sale is a line with no cages."""
    gross_weight: Decimal
    unit_price: Decimal
    cages_count: int = 0
    cage_weight: Decimal = ZERO
    discount_percentage: Decimal = ZERO


@dataclass(frozen=True)
class PricedLine:
    line_number: int
    line: InvoiceLine
    net_weight: Decimal
    totals: InvoiceTotals


def net_weight_from_gross(gross_weight, cages_count: int, cage_weight) -> Decimal:
    """Gross scale weight minus cage tare, never below zero."""
    gross = to_decimal(gross_weight)
    if gross <= ZERO:
        raise InvalidWeightError("Gross weight must be greater than zero", gross)
    if cages_count < 0 or to_decimal(cage_weight) < ZERO:
        raise InvalidWeightError("Cage count and cage weight cannot be negative")
    tare = to_decimal(cage_weight) * cages_count
    if tare >= gross:
        raise InvalidWeightError("Cage tare weight must be less than the gross weight", gross)
    return quantize_weight(max(ZERO, gross - tare))


def compute_invoice_totals(sold_weight, unit_price, discount_percentage=ZERO) -> InvoiceTotals:
    weight = to_decimal(sold_weight)
    price = to_decimal(unit_price)
    discount_pct = to_decimal(discount_percentage)

    if weight <= ZERO:
        raise InvalidWeightError("Sold weight must be greater than zero", weight)
    if price <= ZERO:
        raise InvalidAmountError("Unit price must be greater than zero", price)
    if not is_whole_cents(price):
        raise InvalidAmountError("Unit price must be a whole number of cents", price)
    if discount_pct < ZERO or discount_pct > HUNDRED:
        raise ValidationFailedError(
            "Discount percentage must be between 0 and 100",
            details={"discount_percentage": str(discount_pct)},
        )

    gross_amount = weight * price
    discount = gross_amount * discount_pct / HUNDRED

    return InvoiceTotals(
        total_amount=quantize_money(gross_amount),
        discount_amount=quantize_money(discount),
        net_amount=quantize_money(gross_amount - discount),
    )


def price_lines(lines: Sequence[InvoiceLine]) -> List[PricedLine]:
    """
    Validate and price every weighing line.

    Raises:
        ValidationFailedError: no lines
        InvalidWeightError / InvalidAmountError: a line is invalid; details carry its line number
    """
    if not lines:
        raise ValidationFailedError("An invoice needs at least one line")

    priced = []
    for number, line in enumerate(lines, start=1):
        try:
            net = net_weight_from_gross(line.gross_weight, line.cages_count, line.cage_weight)
            totals = compute_invoice_totals(net, line.unit_price, line.discount_percentage)
        except AppException as exc:
            exc.details = {**exc.details, "line": number}
            raise
        priced.append(PricedLine(line_number=number, line=line, net_weight=net, totals=totals))
    return priced


def sum_lines(priced: Sequence[PricedLine]) -> InvoiceTotals:
    return InvoiceTotals(
        total_amount=sum((p.totals.total_amount for p in priced), ZERO),
        discount_amount=sum((p.totals.discount_amount for p in priced), ZERO),
        net_amount=sum((p.totals.net_amount for p in priced), ZERO),
    )


async def next_invoice_number(db: AsyncSession, invoice_date: date) -> str:
    """
    YYYYMMDD-NNNN, sequential per invoice date.

    The per-date counter row is incremented in place, so the row lock taken
    by the UPDATE serializes numbering across concurrent units. Two units
    creating the first counter of a day race on its primary key; the loser
    gets an IntegrityError and is retried by the coordinator.
    """
    result = await db.execute(
        update(InvoiceSequence)
        .where(InvoiceSequence.invoice_date == invoice_date)
        .values(last_number=InvoiceSequence.last_number + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        number = (await db.execute(
            select(InvoiceSequence.last_number).where(InvoiceSequence.invoice_date == invoice_date)
        )).scalar_one()
    else:
        number = 1
        db.add(InvoiceSequence(invoice_date=invoice_date, last_number=number))
        await db.flush()
    return f"{invoice_date.strftime('%Y%m%d')}-{number:04d}"
