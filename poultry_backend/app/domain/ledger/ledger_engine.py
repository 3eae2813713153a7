"""
Ledger Engine (Domain Logic).

Maintains the customer balance invariant:

    total_debt == sum(invoice.net_amount) - sum(payment.amount) + sum(adjustment.amount)

The engine only moves Customer.total_debt; invoice, payment and adjustment
rows are persisted by the transaction coordinator in the same unit, and the
coordinator writes the audit entry from the returned BalanceChange.
Must run inside a transaction owned by the caller.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from poultry_backend.app.core.clock import system_clock
from poultry_backend.app.core.config import OverpaymentPolicy, Settings, settings
from poultry_backend.app.core.exceptions import (
    InactiveEntityError,
    InvalidAmountError,
    OverpaymentRejectedError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from poultry_backend.app.domain.ledger.aging import AgingItem, AgingSnapshot, compute_aging
from poultry_backend.app.domain.ledger.money import ZERO, is_whole_cents, to_decimal
from poultry_backend.app.models.customer import Customer
from poultry_backend.app.models.debt_adjustment import DebtAdjustment
from poultry_backend.app.models.invoice import Invoice
from poultry_backend.app.models.payment import Payment

logger = logging.getLogger("poultry_pos.ledger")


@dataclass(frozen=True)
class BalanceChange:
    customer_id: int
    balance_before: Decimal
    balance_after: Decimal

    @property
    def delta(self) -> Decimal:
        return self.balance_after - self.balance_before


class LedgerEngine:

    def __init__(self, config: Settings = settings, clock=system_clock):
        self.config = config
        self.clock = clock

    async def get_customer(self, db: AsyncSession, customer_id: int, for_update: bool = False) -> Customer:
        stmt = select(Customer).where(Customer.id == customer_id)
        if for_update:
            stmt = stmt.with_for_update()
        customer = (await db.execute(stmt)).scalar_one_or_none()
        if customer is None:
            raise ResourceNotFoundError("Customer", customer_id)
        return customer

    def _apply(self, customer: Customer, delta: Decimal) -> BalanceChange:
        before = to_decimal(customer.total_debt)
        after = before + delta
        customer.total_debt = after
        customer.updated_at = self.clock.now()
        logger.debug(
            "Balance moved",
            extra={"customer_id": customer.id, "before": str(before), "after": str(after)},
        )
        return BalanceChange(customer_id=customer.id, balance_before=before, balance_after=after)

    async def post_invoice(self, db: AsyncSession, customer_id: int, net_amount) -> BalanceChange:
        """
        Increase the customer's balance by an invoice's net amount.

        Raises:
            InvalidAmountError: net amount <= 0
            InactiveEntityError: customer deactivated
        """
        amount = to_decimal(net_amount)
        if amount <= ZERO:
            raise InvalidAmountError("Invoice net amount must be greater than zero", amount)

        customer = await self.get_customer(db, customer_id, for_update=True)
        if not customer.is_active:
            raise InactiveEntityError("Customer", customer_id)

        return self._apply(customer, amount)

    async def post_payment(
        self,
        db: AsyncSession,
        customer_id: int,
        amount,
        invoice_id: Optional[int] = None,
        allow_overpayment: bool = False,
    ) -> BalanceChange:
        """
        Decrease the customer's balance by a payment.

        Overpayment handling follows config.overpayment_policy:
        REJECT always refuses, REQUIRE_OVERRIDE refuses unless allow_overpayment,
        ALLOW_CREDIT lets the balance go negative.
        """
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmountError("Payment amount must be greater than zero", amount)
        if not is_whole_cents(amount):
            raise InvalidAmountError("Payment amount must be a whole number of cents", amount)
        if amount > self.config.max_payment_amount:
            raise InvalidAmountError(
                f"Payment amount exceeds the maximum allowed ({self.config.max_payment_amount})", amount
            )

        customer = await self.get_customer(db, customer_id, for_update=True)

        if invoice_id is not None:
            invoice = await db.get(Invoice, invoice_id)
            if invoice is None:
                raise ResourceNotFoundError("Invoice", invoice_id)
            if invoice.customer_id != customer_id:
                raise ValidationFailedError(
                    f"Invoice {invoice_id} does not belong to customer {customer_id}",
                    details={"invoice_id": invoice_id, "customer_id": customer_id},
                )

        balance = to_decimal(customer.total_debt)
        if amount > balance:
            policy = self.config.overpayment_policy
            if policy == OverpaymentPolicy.REJECT:
                raise OverpaymentRejectedError(amount, balance)
            if policy == OverpaymentPolicy.REQUIRE_OVERRIDE and not allow_overpayment:
                raise OverpaymentRejectedError(amount, balance, override_allowed=True)
            logger.info(
                "Overpayment accepted as credit",
                extra={"customer_id": customer_id, "amount": str(amount), "balance": str(balance)},
            )

        return self._apply(customer, -amount)

    async def adjust_debt(self, db: AsyncSession, customer_id: int, delta, reason: str) -> BalanceChange:
        """Administrative correction; delta may be positive or negative, reason is mandatory."""
        delta = to_decimal(delta)
        if delta == ZERO:
            raise InvalidAmountError("Adjustment must be non-zero", delta)
        if not is_whole_cents(delta):
            raise InvalidAmountError("Adjustment must be a whole number of cents", delta)
        if not reason or not reason.strip():
            raise ValidationFailedError("A reason is required for debt adjustments")

        customer = await self.get_customer(db, customer_id, for_update=True)
        return self._apply(customer, delta)

    async def load_history(self, db: AsyncSession, customer_id: int) -> Tuple[List[AgingItem], List[AgingItem]]:
        """Debit and credit items for aging, straight from posted records."""
        invoices = await db.execute(
            select(Invoice.id, Invoice.invoice_date, Invoice.net_amount).where(Invoice.customer_id == customer_id)
        )
        payments = await db.execute(
            select(Payment.id, Payment.payment_date, Payment.amount).where(Payment.customer_id == customer_id)
        )
        adjustments = await db.execute(
            select(DebtAdjustment.id, DebtAdjustment.adjustment_date, DebtAdjustment.amount)
            .where(DebtAdjustment.customer_id == customer_id)
        )

        debits = [AgingItem("invoice", row.id, row.invoice_date, to_decimal(row.net_amount)) for row in invoices]
        credits = [AgingItem("payment", row.id, row.payment_date, to_decimal(row.amount)) for row in payments]
        for row in adjustments:
            amount = to_decimal(row.amount)
            if amount > ZERO:
                debits.append(AgingItem("adjustment", row.id, row.adjustment_date, amount))
            else:
                credits.append(AgingItem("adjustment", row.id, row.adjustment_date, -amount))
        return debits, credits

    async def compute_aging(self, db: AsyncSession, customer_id: int, as_of: date) -> AgingSnapshot:
        """Aging buckets from history alone (FIFO settlement)."""
        await self.get_customer(db, customer_id)
        debits, credits = await self.load_history(db, customer_id)
        return compute_aging(customer_id, as_of, debits, credits, self.config.aging_bucket_boundaries)

    async def derive_balance(self, db: AsyncSession, customer_id: int) -> Decimal:
        """Balance re-derived from posted invoices, payments and adjustments."""
        invoiced = (await db.execute(
            select(func.sum(Invoice.net_amount)).where(Invoice.customer_id == customer_id)
        )).scalar()
        paid = (await db.execute(
            select(func.sum(Payment.amount)).where(Payment.customer_id == customer_id)
        )).scalar()
        adjusted = (await db.execute(
            select(func.sum(DebtAdjustment.amount)).where(DebtAdjustment.customer_id == customer_id)
        )).scalar()
        return to_decimal(invoiced) - to_decimal(paid) + to_decimal(adjusted)

    async def repair_balance(self, db: AsyncSession, customer_id: int) -> Optional[BalanceChange]:
        """Reset total_debt to the derived balance; None when it already matches."""
        customer = await self.get_customer(db, customer_id, for_update=True)
        derived = await self.derive_balance(db, customer_id)
        current = to_decimal(customer.total_debt)
        if derived == current:
            return None
        logger.warning(
            "Balance drift repaired",
            extra={"customer_id": customer_id, "stored": str(current), "derived": str(derived)},
        )
        return self._apply(customer, derived - current)
