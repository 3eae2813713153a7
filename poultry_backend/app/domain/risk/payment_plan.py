"""
Payment plan suggestion.

Splits a balance into n monthly installments of floor(balance / n) to the
cent; the final installment absorbs the remainder so the plan sums to the
balance exactly.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_DOWN
from typing import List

from poultry_backend.app.core.exceptions import ValidationFailedError
from poultry_backend.app.domain.ledger.money import CENT, ZERO, to_decimal


@dataclass
class Installment:
    """Single payment in a repayment plan"""

    sequence: int
    due_date: date
    amount: Decimal


@dataclass
class PaymentPlan:
    balance: Decimal
    months: int
    installments: List[Installment] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((i.amount for i in self.installments), ZERO)


def add_months(start: date, months: int) -> date:
    """Same day-of-month, clamped to the last day of shorter months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def suggest_payment_plan(balance, months: int, start_date: date) -> PaymentPlan:
    """
    Build a plan of `months` installments, first due one month after start_date.

    Raises:
        ValidationFailedError: months < 1
    """
    if months < 1:
        raise ValidationFailedError("Payment plan needs at least one month", details={"months": months})

    balance = to_decimal(balance)
    plan = PaymentPlan(balance=balance, months=months)
    if balance <= ZERO:
        return plan

    regular = (balance / months).quantize(CENT, rounding=ROUND_DOWN)
    last = balance - regular * (months - 1)

    for sequence in range(1, months + 1):
        plan.installments.append(
            Installment(
                sequence=sequence,
                due_date=add_months(start_date, sequence),
                amount=last if sequence == months else regular,
            )
        )
    return plan
