"""
Read side of the ledger.

Every query runs in its own short session and is wrapped in bounded
retry-with-backoff plus a shared circuit breaker. Queries never write.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_

from poultry_backend.app.core.clock import system_clock
from poultry_backend.app.core.config import Settings, settings
from poultry_backend.app.core.exceptions import ResourceNotFoundError
from poultry_backend.app.core.reliability import CircuitBreaker, retry_read
from poultry_backend.app.domain.ledger.aging import AgingSnapshot
from poultry_backend.app.domain.ledger.ledger_engine import LedgerEngine
from poultry_backend.app.domain.ledger.money import ZERO, quantize_money, to_decimal
from poultry_backend.app.domain.reconciliation.load_metrics import load_efficiency
from poultry_backend.app.domain.reconciliation.reconciliation_engine import ReconciliationEngine
from poultry_backend.app.domain.risk.payment_plan import PaymentPlan, suggest_payment_plan
from poultry_backend.app.domain.risk.risk_classifier import RiskAssessment, classify
from poultry_backend.app.models.customer import Customer
from poultry_backend.app.models.daily_reconciliation import DailyReconciliation
from poultry_backend.app.models.invoice import Invoice
from poultry_backend.app.models.invoice_item import InvoiceItem
from poultry_backend.app.models.payment import Payment
from poultry_backend.app.models.truck import Truck
from poultry_backend.app.models.truck_load import TruckLoad
from poultry_backend.app.services.audit import get_audit_trail

logger = logging.getLogger("poultry_pos.queries")


@dataclass
class DebtSummary:
    total_debt: Decimal
    customers_with_debt: int
    average_debt: Decimal


@dataclass
class TruckLoadView:
    truck_load: TruckLoad
    remaining_weight: Decimal
    efficiency: Decimal


@dataclass
class LoadSummary:
    load_date: date
    loads_count: int
    total_gross_weight: Decimal
    total_sold_weight: Decimal
    total_remaining_weight: Decimal
    total_cages: int


class LedgerQueries:

    def __init__(self, session_factory, config: Settings = settings, clock=system_clock, breaker: CircuitBreaker = None):
        self.session_factory = session_factory
        self.config = config
        self.clock = clock
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=config.storage_failure_threshold,
            reset_timeout=config.storage_reset_timeout_seconds,
        )
        self.ledger = LedgerEngine(config, clock)
        self.reconciliation = ReconciliationEngine(config, clock)

    async def _read(self, operation: str, query):
        async def attempt():
            async with self.session_factory() as db:
                return await query(db)

        return await retry_read(
            operation,
            attempt,
            attempts=self.config.read_retry_attempts,
            delay=self.config.read_retry_delay_seconds,
            backoff=self.config.read_retry_backoff,
            breaker=self.breaker,
        )

    # Customers

    async def get_customer(self, customer_id: int) -> Customer:
        return await self._read("get_customer", lambda db: self.ledger.get_customer(db, customer_id))

    async def get_balance(self, customer_id: int) -> Decimal:
        customer = await self.get_customer(customer_id)
        return to_decimal(customer.total_debt)

    async def list_customers(
        self,
        active_only: bool = False,
        with_debt_only: bool = False,
        min_debt=None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[Customer], int]:
        """
        One page of the customer list with the account-screen filters.

        `search` matches name or phone number, case-insensitive. Returns the
        page and the number of customers matching the filters.
        """
        conditions = []
        if active_only:
            conditions.append(Customer.is_active.is_(True))
        if with_debt_only:
            conditions.append(Customer.total_debt > 0)
        if min_debt is not None:
            conditions.append(Customer.total_debt >= to_decimal(min_debt))
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            conditions.append(or_(Customer.customer_name.ilike(pattern), Customer.phone_number.ilike(pattern)))

        stmt = select(Customer).where(*conditions).order_by(Customer.customer_name, Customer.id).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        count_stmt = select(func.count(Customer.id)).where(*conditions)

        async def query(db):
            customers = (await db.execute(stmt)).scalars().all()
            total = (await db.execute(count_stmt)).scalar() or 0
            return customers, total

        return await self._read("list_customers", query)

    async def debt_summary(self) -> DebtSummary:

        async def query(db):
            row = (await db.execute(
                select(func.sum(Customer.total_debt), func.count(Customer.id)).where(Customer.total_debt > 0)
            )).one()
            total = to_decimal(row[0])
            count = row[1] or 0
            average = quantize_money(total / count) if count else ZERO
            return DebtSummary(total_debt=total, customers_with_debt=count, average_debt=average)

        return await self._read("debt_summary", query)

    async def get_aging(self, customer_id: int, as_of: Optional[date] = None) -> AgingSnapshot:
        as_of = as_of or self.clock.today()
        return await self._read("get_aging", lambda db: self.ledger.compute_aging(db, customer_id, as_of))

    async def classify_customer(self, customer_id: int) -> RiskAssessment:
        """Risk tier as of the clock's today."""
        today = self.clock.today()

        async def query(db):
            customer = await self.ledger.get_customer(db, customer_id)
            aging = await self.ledger.compute_aging(db, customer_id, today)
            return classify(aging, customer.credit_limit, self.config)

        return await self._read("classify_customer", query)

    async def suggest_payment_plan(self, customer_id: int, months: int) -> PaymentPlan:
        balance = await self.get_balance(customer_id)
        return suggest_payment_plan(balance, months, self.clock.today())

    async def list_invoices(self, customer_id: int) -> List[Invoice]:

        async def query(db):
            await self.ledger.get_customer(db, customer_id)
            result = await db.execute(
                select(Invoice).where(Invoice.customer_id == customer_id).order_by(Invoice.invoice_date, Invoice.id)
            )
            return result.scalars().all()

        return await self._read("list_invoices", query)

    async def list_payments(self, customer_id: int) -> List[Payment]:

        async def query(db):
            await self.ledger.get_customer(db, customer_id)
            result = await db.execute(
                select(Payment).where(Payment.customer_id == customer_id).order_by(Payment.payment_date, Payment.id)
            )
            return result.scalars().all()

        return await self._read("list_payments", query)

    async def get_invoice(self, invoice_id: int) -> Invoice:

        async def query(db):
            invoice = await db.get(Invoice, invoice_id)
            if invoice is None:
                raise ResourceNotFoundError("Invoice", invoice_id)
            return invoice

        return await self._read("get_invoice", query)

    async def list_invoice_items(self, invoice_id: int) -> List[InvoiceItem]:

        async def query(db):
            if await db.get(Invoice, invoice_id) is None:
                raise ResourceNotFoundError("Invoice", invoice_id)
            result = await db.execute(
                select(InvoiceItem).where(InvoiceItem.invoice_id == invoice_id).order_by(InvoiceItem.line_number)
            )
            return result.scalars().all()

        return await self._read("list_invoice_items", query)

    # Trucks and loads

    async def list_trucks(self, active_only: bool = False) -> List[Truck]:
        stmt = select(Truck).order_by(Truck.truck_number)
        if active_only:
            stmt = stmt.where(Truck.is_active.is_(True))

        async def query(db):
            return (await db.execute(stmt)).scalars().all()

        return await self._read("list_trucks", query)

    def _load_view(self, load: TruckLoad) -> TruckLoadView:
        return TruckLoadView(
            truck_load=load,
            remaining_weight=to_decimal(load.gross_weight) - to_decimal(load.sold_weight),
            efficiency=load_efficiency(load.weight_per_cage, self.config.optimal_weight_per_cage_kg),
        )

    async def get_truck_load(self, truck_load_id: int) -> TruckLoadView:

        async def query(db):
            load = await db.get(TruckLoad, truck_load_id)
            if load is None:
                raise ResourceNotFoundError("Truck load", truck_load_id)
            return self._load_view(load)

        return await self._read("get_truck_load", query)

    async def loads_for_date(self, load_date: date) -> List[TruckLoadView]:

        async def query(db):
            result = await db.execute(
                select(TruckLoad).where(TruckLoad.load_date == load_date).order_by(TruckLoad.truck_id, TruckLoad.id)
            )
            return [self._load_view(load) for load in result.scalars().all()]

        return await self._read("loads_for_date", query)

    async def load_summary(self, load_date: date) -> LoadSummary:
        views = await self.loads_for_date(load_date)
        gross = sum((to_decimal(v.truck_load.gross_weight) for v in views), ZERO)
        sold = sum((to_decimal(v.truck_load.sold_weight) for v in views), ZERO)
        return LoadSummary(
            load_date=load_date,
            loads_count=len(views),
            total_gross_weight=gross,
            total_sold_weight=sold,
            total_remaining_weight=gross - sold,
            total_cages=sum(v.truck_load.cages_count for v in views),
        )

    # Reconciliation and audit

    async def get_reconciliation(self, truck_id: int, day: date) -> DailyReconciliation:
        return await self._read("get_reconciliation", lambda db: self.reconciliation.get(db, truck_id, day))

    async def audit_trail(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ):
        return await self._read(
            "audit_trail",
            lambda db: get_audit_trail(
                db, entity_type=entity_type, entity_id=entity_id, customer_id=customer_id, action=action, limit=limit
            ),
        )
