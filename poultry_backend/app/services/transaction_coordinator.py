"""
Transaction Coordinator.

Every command runs as one atomic unit:

1. Acquire per-key locks in sorted order (customer:<id>, truck-day:<truck>:<date>)
2. Open a session and a single database transaction
3. Run the domain engines and write the audit entries in that transaction
4. Commit, release locks, then notify observers

Any failure before commit rolls back every effect of the unit. Optimistic
version conflicts and unique-key races are retried with fresh reads;
storage failures are surfaced immediately and never retried.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from poultry_backend.app.core.clock import system_clock
from poultry_backend.app.core.config import Settings, settings
from poultry_backend.app.core.exceptions import (
    ConcurrencyConflictError,
    InactiveEntityError,
    InvalidAmountError,
    InvalidStateTransitionError,
    OverAllocationError,
    ResourceNotFoundError,
    StorageUnavailableError,
    ValidationFailedError,
)
from poultry_backend.app.core.locking import KeyedLockManager, customer_key, truck_day_key
from poultry_backend.app.core.reliability import STORAGE_ERRORS
from poultry_backend.app.domain.billing.invoice_calculator import (
    InvoiceLine,
    next_invoice_number,
    price_lines,
    sum_lines,
)
from poultry_backend.app.domain.ledger.ledger_engine import BalanceChange, LedgerEngine
from poultry_backend.app.domain.ledger.money import ZERO, is_whole_cents, quantize_money, quantize_weight, to_decimal
from poultry_backend.app.domain.reconciliation.load_metrics import (
    derived_load_status,
    is_within_band,
    load_efficiency,
    weight_per_cage,
)
from poultry_backend.app.domain.reconciliation.reconciliation_engine import ReconciliationEngine
from poultry_backend.app.domain.risk.risk_classifier import RiskAssessment, classify
from poultry_backend.app.models.aging_snapshot import AgingSnapshot as AgingSnapshotRecord
from poultry_backend.app.models.customer import Customer
from poultry_backend.app.models.daily_reconciliation import DailyReconciliation
from poultry_backend.app.models.debt_adjustment import DebtAdjustment
from poultry_backend.app.models.invoice import Invoice
from poultry_backend.app.models.invoice_item import InvoiceItem
from poultry_backend.app.models.payment import Payment
from poultry_backend.app.models.pos_enums import PaymentMethod, TruckLoadStatus
from poultry_backend.app.models.truck import Truck
from poultry_backend.app.models.truck_load import TruckLoad
from poultry_backend.app.services.audit import AuditAction, log_event, state_of, to_json_value

logger = logging.getLogger("poultry_pos.coordinator")

SYSTEM_ACTOR = "system"
RECONCILIATION_FIELDS = (
    "status", "loaded_weight", "sold_weight", "waste_weight", "variance", "requires_review", "reopen_count",
)


@dataclass
class LedgerEvent:
    """Notification delivered to observers after a unit commits."""
    action: str
    actor: str
    entity_type: str
    entity_id: Optional[int]
    customer_id: Optional[int]
    audit_id: int
    timestamp: datetime
    after: Optional[Dict[str, Any]] = None


@dataclass
class InvoiceSettlement:
    invoice: Invoice
    balance_change: BalanceChange
    reconciliation: DailyReconciliation
    truck_load: TruckLoad
    items: List[InvoiceItem] = field(default_factory=list)


@dataclass
class PaymentSettlement:
    payment: Payment
    balance_change: BalanceChange


@dataclass
class AdjustmentSettlement:
    adjustment: DebtAdjustment
    balance_change: BalanceChange


@dataclass
class TruckLoadRegistration:
    truck_load: TruckLoad
    reconciliation: DailyReconciliation
    efficiency: Decimal


@dataclass
class AgingRecomputeOutcome:
    snapshot: AgingSnapshotRecord
    assessment: RiskAssessment
    drift: Optional[Decimal] = None
    repaired: Optional[BalanceChange] = None


Observer = Callable[[LedgerEvent], Awaitable[None]]


class _Unit:
    """State of one running unit of work: its session, actor and pending events."""

    def __init__(self, db, actor: str, clock):
        self.db = db
        self.actor = actor
        self.clock = clock
        self.events: List[LedgerEvent] = []

    async def record(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        entry = await log_event(
            self.db,
            action=action,
            actor=self.actor,
            entity_type=entity_type,
            entity_id=entity_id,
            customer_id=customer_id,
            before=before,
            after=after,
            reason=reason,
            metadata=metadata,
            timestamp=self.clock.now(),
        )
        self.events.append(LedgerEvent(
            action=action,
            actor=self.actor,
            entity_type=entity_type,
            entity_id=entity_id,
            customer_id=customer_id,
            audit_id=entry.id,
            timestamp=entry.timestamp,
            after=to_json_value(after) if after is not None else None,
        ))
        return entry


class TransactionCoordinator:

    def __init__(
        self,
        session_factory,
        config: Settings = settings,
        clock=system_clock,
        locks=None,
        observers: Optional[Iterable[Observer]] = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.clock = clock
        self.locks = locks or KeyedLockManager(timeout=config.lock_timeout_seconds)
        self.ledger = LedgerEngine(config, clock)
        self.reconciliation = ReconciliationEngine(config, clock)
        self._observers: List[Observer] = list(observers or [])

    def subscribe(self, callback: Observer) -> None:
        """Register an async callback receiving a LedgerEvent per committed audit entry."""
        self._observers.append(callback)

    async def _execute(self, operation: str, lock_keys: Iterable[str], work, actor: str = SYSTEM_ACTOR):
        keys = sorted(set(lock_keys))
        attempts = max(1, self.config.conflict_retry_attempts)

        for attempt in range(1, attempts + 1):
            try:
                async with self.locks.hold(keys):
                    async with self.session_factory() as db:
                        async with db.begin():
                            unit = _Unit(db, actor, self.clock)
                            result = await work(unit)
            except (StaleDataError, IntegrityError) as exc:
                logger.warning(
                    "Unit conflicted, retrying with fresh reads",
                    extra={"operation": operation, "attempt": attempt, "error": type(exc).__name__},
                )
                if attempt == attempts:
                    raise ConcurrencyConflictError(operation, attempts, key=",".join(keys) or None) from exc
                continue
            except STORAGE_ERRORS as exc:
                logger.error("Storage failure during mutation", extra={"operation": operation, "error": str(exc)})
                raise StorageUnavailableError(operation, reason=str(exc)) from exc

            logger.info("Unit committed", extra={"operation": operation, "actor": actor, "events": len(unit.events)})
            await self._notify(unit.events)
            return result

    async def _notify(self, events: List[LedgerEvent]) -> None:
        for event in events:
            for callback in self._observers:
                try:
                    await callback(event)
                except Exception:
                    # The unit is already committed; an observer cannot undo it.
                    logger.exception("Observer failed", extra={"action": event.action, "audit_id": event.audit_id})

    async def _read_outside_lock(self, operation: str, model, entity_id: int, label: str):
        try:
            async with self.session_factory() as db:
                entity = await db.get(model, entity_id)
        except STORAGE_ERRORS as exc:
            raise StorageUnavailableError(operation, reason=str(exc)) from exc
        if entity is None:
            raise ResourceNotFoundError(label, entity_id)
        return entity

    # Master data

    async def create_customer(
        self,
        customer_name: str,
        phone_number: Optional[str] = None,
        address: Optional[str] = None,
        credit_limit=None,
        actor: str = SYSTEM_ACTOR,
    ) -> Customer:
        name = (customer_name or "").strip()
        if not name:
            raise ValidationFailedError("Customer name is required")
        if credit_limit is not None and to_decimal(credit_limit) < ZERO:
            raise ValidationFailedError("Credit limit cannot be negative", details={"credit_limit": str(credit_limit)})
        if credit_limit is not None and not is_whole_cents(credit_limit):
            raise InvalidAmountError("Credit limit must be a whole number of cents", credit_limit)

        async def work(unit: _Unit) -> Customer:
            existing = await unit.db.execute(select(Customer.id).where(Customer.customer_name == name))
            if existing.scalar_one_or_none() is not None:
                raise ValidationFailedError(f"Customer '{name}' already exists", details={"customer_name": name})

            now = self.clock.now()
            customer = Customer(
                customer_name=name,
                phone_number=phone_number,
                address=address,
                total_debt=ZERO,
                credit_limit=to_decimal(credit_limit) if credit_limit is not None else None,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            unit.db.add(customer)
            await unit.db.flush()

            await unit.record(
                AuditAction.CUSTOMER_CREATED, "customer", customer.id, customer.id,
                after={"customer_name": name, "total_debt": ZERO},
            )
            return customer

        return await self._execute("create_customer", [], work, actor)

    async def register_truck(
        self,
        truck_number: str,
        driver_name: str,
        driver_phone: Optional[str] = None,
        actor: str = SYSTEM_ACTOR,
    ) -> Truck:
        number = (truck_number or "").strip()
        if not number or not (driver_name or "").strip():
            raise ValidationFailedError("Truck number and driver name are required")

        async def work(unit: _Unit) -> Truck:
            existing = await unit.db.execute(select(Truck.id).where(Truck.truck_number == number))
            if existing.scalar_one_or_none() is not None:
                raise ValidationFailedError(f"Truck '{number}' already registered", details={"truck_number": number})

            now = self.clock.now()
            truck = Truck(
                truck_number=number,
                driver_name=driver_name.strip(),
                driver_phone=driver_phone,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            unit.db.add(truck)
            await unit.db.flush()

            await unit.record(
                AuditAction.TRUCK_REGISTERED, "truck", truck.id,
                after={"truck_number": number, "driver_name": truck.driver_name},
            )
            return truck

        return await self._execute("register_truck", [], work, actor)

    async def deactivate_truck(self, truck_id: int, actor: str = SYSTEM_ACTOR) -> Truck:

        async def work(unit: _Unit) -> Truck:
            truck = await unit.db.get(Truck, truck_id)
            if truck is None:
                raise ResourceNotFoundError("Truck", truck_id)
            if not truck.is_active:
                raise InvalidStateTransitionError("truck", "inactive", "deactivate")

            truck.is_active = False
            truck.updated_at = self.clock.now()
            await unit.record(
                AuditAction.TRUCK_DEACTIVATED, "truck", truck.id,
                before={"is_active": True}, after={"is_active": False},
            )
            return truck

        return await self._execute("deactivate_truck", [], work, actor)

    async def register_truck_load(
        self,
        truck_id: int,
        load_date: date,
        gross_weight,
        cages_count: int,
        notes: Optional[str] = None,
        actor: str = SYSTEM_ACTOR,
    ) -> TruckLoadRegistration:
        """Create a load and add its gross weight to the truck-day reconciliation."""
        gross = to_decimal(gross_weight)
        per_cage = weight_per_cage(gross, cages_count)
        is_valid = is_within_band(
            per_cage, to_decimal(self.config.weight_per_cage_min_kg), to_decimal(self.config.weight_per_cage_max_kg)
        )
        efficiency = load_efficiency(per_cage, self.config.optimal_weight_per_cage_kg)

        async def work(unit: _Unit) -> TruckLoadRegistration:
            truck = await unit.db.get(Truck, truck_id)
            if truck is None:
                raise ResourceNotFoundError("Truck", truck_id)
            if not truck.is_active:
                raise InactiveEntityError("Truck", truck_id)

            now = self.clock.now()
            load = TruckLoad(
                truck_id=truck_id,
                load_date=load_date,
                gross_weight=gross,
                cages_count=cages_count,
                sold_weight=ZERO,
                weight_per_cage=per_cage,
                is_weight_valid=is_valid,
                status=TruckLoadStatus.LOADED,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            unit.db.add(load)
            await unit.db.flush()

            opened = await self.reconciliation.find(unit.db, truck_id, load_date) is None
            record = await self.reconciliation.add_loaded_weight(unit.db, truck_id, load_date, gross)
            if opened:
                await unit.record(
                    AuditAction.RECONCILIATION_OPENED, "reconciliation", record.id,
                    after=state_of(record, RECONCILIATION_FIELDS),
                )

            if not is_valid:
                logger.warning(
                    "Weight per cage outside expected band",
                    extra={"truck_id": truck_id, "weight_per_cage": str(per_cage)},
                )
            await unit.record(
                AuditAction.TRUCK_LOAD_REGISTERED, "truck_load", load.id,
                after={"gross_weight": gross, "cages_count": cages_count, "loaded_weight": record.loaded_weight},
                metadata={"weight_per_cage": per_cage, "is_weight_valid": is_valid, "efficiency": efficiency},
            )
            return TruckLoadRegistration(truck_load=load, reconciliation=record, efficiency=efficiency)

        return await self._execute(
            "register_truck_load", [truck_day_key(truck_id, load_date)], work, actor
        )

    # Ledger

    async def create_invoice_and_settle(
        self,
        customer_id: int,
        truck_load_id: int,
        sold_weight,
        unit_price,
        discount_percentage=ZERO,
        invoice_date: Optional[date] = None,
        actor: str = SYSTEM_ACTOR,
    ) -> InvoiceSettlement:
        """
        Post a single-line sale for a net weight.

        Raises:
            OverAllocationError: sold weight exceeds the load's remaining capacity
            ReconciliationClosedError: the load's truck-day is closed
        """
        line = InvoiceLine(
            gross_weight=quantize_weight(sold_weight),
            unit_price=to_decimal(unit_price),
            discount_percentage=to_decimal(discount_percentage),
        )
        return await self.create_invoice_from_lines(customer_id, truck_load_id, [line], invoice_date, actor)

    async def create_invoice_from_lines(
        self,
        customer_id: int,
        truck_load_id: int,
        lines: Sequence[InvoiceLine],
        invoice_date: Optional[date] = None,
        actor: str = SYSTEM_ACTOR,
    ) -> InvoiceSettlement:
        """
        Post a sale made of one or more weighings: invoice and lines, one
        balance increase, load draw-down and truck-day sold weight, all or
        nothing.

        Every line is validated (tare below gross, price, discount) before
        anything is written; the load capacity check covers the summed net
        weight of all lines.
        """
        invoice_date = invoice_date or self.clock.today()
        if invoice_date > self.clock.today():
            raise ValidationFailedError(
                "Invoice date cannot be in the future", details={"invoice_date": invoice_date.isoformat()}
            )
        priced = price_lines(lines)
        totals = sum_lines(priced)
        weight = sum((p.net_weight for p in priced), ZERO)
        if len(priced) == 1:
            unit_price = to_decimal(priced[0].line.unit_price)
            discount_percentage = to_decimal(priced[0].line.discount_percentage)
        else:
            unit_price = quantize_money(sum(p.net_weight * to_decimal(p.line.unit_price) for p in priced) / weight)
            discount_percentage = (
                quantize_money(totals.discount_amount * 100 / totals.total_amount) if totals.total_amount else ZERO
            )

        # Truck and date never change, so the lock keys can be read before locking.
        load_ref = await self._read_outside_lock("create_invoice", TruckLoad, truck_load_id, "Truck load")
        keys = [customer_key(customer_id), truck_day_key(load_ref.truck_id, load_ref.load_date)]

        async def work(unit: _Unit) -> InvoiceSettlement:
            db = unit.db
            load = (await db.execute(
                select(TruckLoad).where(TruckLoad.id == truck_load_id).with_for_update()
            )).scalar_one()

            remaining = to_decimal(load.gross_weight) - to_decimal(load.sold_weight)
            if weight > remaining:
                raise OverAllocationError(weight, remaining, scope="truck load")

            # Customer is validated and locked before any row referencing it is written.
            change = await self.ledger.post_invoice(db, customer_id, totals.net_amount)

            invoice = Invoice(
                invoice_number=await next_invoice_number(db, invoice_date),
                customer_id=customer_id,
                truck_load_id=truck_load_id,
                invoice_date=invoice_date,
                sold_weight=weight,
                unit_price=unit_price,
                discount_percentage=discount_percentage,
                total_amount=totals.total_amount,
                discount_amount=totals.discount_amount,
                net_amount=totals.net_amount,
                created_by=unit.actor,
                created_at=self.clock.now(),
            )
            db.add(invoice)
            await db.flush()

            items = [
                InvoiceItem(
                    invoice_id=invoice.id,
                    line_number=p.line_number,
                    gross_weight=to_decimal(p.line.gross_weight),
                    cages_count=p.line.cages_count,
                    cage_weight=to_decimal(p.line.cage_weight),
                    net_weight=p.net_weight,
                    unit_price=to_decimal(p.line.unit_price),
                    discount_percentage=to_decimal(p.line.discount_percentage),
                    total_amount=p.totals.total_amount,
                    discount_amount=p.totals.discount_amount,
                    net_amount=p.totals.net_amount,
                )
                for p in priced
            ]
            db.add_all(items)
            await db.flush()

            load.sold_weight = to_decimal(load.sold_weight) + weight
            load.status = derived_load_status(load.sold_weight, load.gross_weight)
            load.updated_at = self.clock.now()

            record = await self.reconciliation.record_sale(db, load.truck_id, load.load_date, weight)

            await unit.record(
                AuditAction.INVOICE_POSTED, "invoice", invoice.id, customer_id,
                before={"total_debt": change.balance_before},
                after={"total_debt": change.balance_after},
                metadata={
                    "invoice_number": invoice.invoice_number,
                    "net_amount": totals.net_amount,
                    "sold_weight": weight,
                    "lines": len(items),
                    "truck_load_id": truck_load_id,
                    "truck_day_sold_weight": record.sold_weight,
                },
            )
            return InvoiceSettlement(
                invoice=invoice, balance_change=change, reconciliation=record, truck_load=load, items=items
            )

        return await self._execute("create_invoice_and_settle", keys, work, actor)

    async def record_payment_and_settle(
        self,
        customer_id: int,
        amount,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        invoice_id: Optional[int] = None,
        allow_overpayment: bool = False,
        notes: Optional[str] = None,
        payment_date: Optional[date] = None,
        actor: str = SYSTEM_ACTOR,
    ) -> PaymentSettlement:
        payment_date = payment_date or self.clock.today()
        if payment_date > self.clock.today():
            raise ValidationFailedError(
                "Payment date cannot be in the future", details={"payment_date": payment_date.isoformat()}
            )

        async def work(unit: _Unit) -> PaymentSettlement:
            change = await self.ledger.post_payment(
                unit.db, customer_id, amount, invoice_id=invoice_id, allow_overpayment=allow_overpayment
            )
            payment = Payment(
                customer_id=customer_id,
                invoice_id=invoice_id,
                amount=to_decimal(amount),
                payment_method=payment_method,
                payment_date=payment_date,
                notes=notes,
                created_by=unit.actor,
                created_at=self.clock.now(),
            )
            unit.db.add(payment)
            await unit.db.flush()

            await unit.record(
                AuditAction.PAYMENT_POSTED, "payment", payment.id, customer_id,
                before={"total_debt": change.balance_before},
                after={"total_debt": change.balance_after},
                metadata={
                    "amount": payment.amount,
                    "payment_method": payment_method,
                    "invoice_id": invoice_id,
                    "overpayment": change.balance_after < ZERO,
                },
            )
            return PaymentSettlement(payment=payment, balance_change=change)

        return await self._execute("record_payment_and_settle", [customer_key(customer_id)], work, actor)

    async def adjust_debt(
        self,
        customer_id: int,
        delta,
        reason: str,
        adjustment_date: Optional[date] = None,
        actor: str = SYSTEM_ACTOR,
    ) -> AdjustmentSettlement:
        adjustment_date = adjustment_date or self.clock.today()

        async def work(unit: _Unit) -> AdjustmentSettlement:
            change = await self.ledger.adjust_debt(unit.db, customer_id, delta, reason)
            adjustment = DebtAdjustment(
                customer_id=customer_id,
                amount=change.delta,
                reason=reason.strip(),
                adjustment_date=adjustment_date,
                created_by=unit.actor,
                created_at=self.clock.now(),
            )
            unit.db.add(adjustment)
            await unit.db.flush()

            await unit.record(
                AuditAction.DEBT_ADJUSTED, "debt_adjustment", adjustment.id, customer_id,
                before={"total_debt": change.balance_before},
                after={"total_debt": change.balance_after},
                reason=adjustment.reason,
                metadata={"delta": change.delta},
            )
            return AdjustmentSettlement(adjustment=adjustment, balance_change=change)

        return await self._execute("adjust_debt", [customer_key(customer_id)], work, actor)

    # Reconciliation

    async def open_day(self, truck_id: int, day: date, loaded_weight, actor: str = SYSTEM_ACTOR) -> DailyReconciliation:

        async def work(unit: _Unit) -> DailyReconciliation:
            if await unit.db.get(Truck, truck_id) is None:
                raise ResourceNotFoundError("Truck", truck_id)
            record = await self.reconciliation.open_day(unit.db, truck_id, day, loaded_weight)
            await unit.record(
                AuditAction.RECONCILIATION_OPENED, "reconciliation", record.id,
                after=state_of(record, RECONCILIATION_FIELDS),
                metadata={"truck_id": truck_id, "date": day},
            )
            return record

        return await self._execute("open_day", [truck_day_key(truck_id, day)], work, actor)

    async def record_sale(self, truck_id: int, day: date, sold_weight, actor: str = SYSTEM_ACTOR) -> DailyReconciliation:

        async def work(unit: _Unit) -> DailyReconciliation:
            record = await self.reconciliation.record_sale(unit.db, truck_id, day, sold_weight)
            await unit.record(
                AuditAction.SALE_RECORDED, "reconciliation", record.id,
                after=state_of(record, RECONCILIATION_FIELDS),
                metadata={"truck_id": truck_id, "date": day, "sold_weight": to_decimal(sold_weight)},
            )
            return record

        return await self._execute("record_sale", [truck_day_key(truck_id, day)], work, actor)

    async def close_day(self, truck_id: int, day: date, declared_waste, actor: str = SYSTEM_ACTOR) -> DailyReconciliation:

        async def work(unit: _Unit) -> DailyReconciliation:
            before = state_of(await self.reconciliation.get(unit.db, truck_id, day), RECONCILIATION_FIELDS)
            record = await self.reconciliation.close_day(unit.db, truck_id, day, declared_waste)
            await unit.record(
                AuditAction.RECONCILIATION_CLOSED, "reconciliation", record.id,
                before=before,
                after=state_of(record, RECONCILIATION_FIELDS + ("tolerance",)),
                metadata={"truck_id": truck_id, "date": day},
            )
            return record

        return await self._execute("close_day", [truck_day_key(truck_id, day)], work, actor)

    async def acknowledge_variance(
        self, truck_id: int, day: date, note: Optional[str] = None, actor: str = SYSTEM_ACTOR
    ) -> DailyReconciliation:

        async def work(unit: _Unit) -> DailyReconciliation:
            record = await self.reconciliation.acknowledge_variance(unit.db, truck_id, day, unit.actor, note)
            await unit.record(
                AuditAction.VARIANCE_ACKNOWLEDGED, "reconciliation", record.id,
                before={"requires_review": True},
                after={"requires_review": False, "variance": record.variance},
                reason=note,
                metadata={"truck_id": truck_id, "date": day},
            )
            return record

        return await self._execute("acknowledge_variance", [truck_day_key(truck_id, day)], work, actor)

    async def reopen_day(self, truck_id: int, day: date, reason: str, actor: str = SYSTEM_ACTOR) -> DailyReconciliation:

        async def work(unit: _Unit) -> DailyReconciliation:
            before = state_of(await self.reconciliation.get(unit.db, truck_id, day), RECONCILIATION_FIELDS)
            record = await self.reconciliation.reopen(unit.db, truck_id, day, reason)
            await unit.record(
                AuditAction.RECONCILIATION_REOPENED, "reconciliation", record.id,
                before=before,
                after=state_of(record, RECONCILIATION_FIELDS),
                reason=reason.strip(),
                metadata={"truck_id": truck_id, "date": day},
            )
            return record

        return await self._execute("reopen_day", [truck_day_key(truck_id, day)], work, actor)

    # Batch

    async def recompute_customer_aging(
        self,
        customer_id: int,
        as_of: Optional[date] = None,
        repair: bool = False,
        actor: str = SYSTEM_ACTOR,
    ) -> AgingRecomputeOutcome:
        """Refresh the stored aging/risk snapshot of one customer; optionally repair balance drift."""
        as_of = as_of or self.clock.today()

        async def work(unit: _Unit) -> AgingRecomputeOutcome:
            db = unit.db
            customer = await self.ledger.get_customer(db, customer_id, for_update=True)

            derived = await self.ledger.derive_balance(db, customer_id)
            drift = to_decimal(customer.total_debt) - derived
            repaired = None
            if drift != ZERO and repair:
                repaired = await self.ledger.repair_balance(db, customer_id)
                if repaired is not None:
                    await unit.record(
                        AuditAction.BALANCE_REPAIRED, "customer", customer_id, customer_id,
                        before={"total_debt": repaired.balance_before},
                        after={"total_debt": repaired.balance_after},
                        reason="Balance re-derived from posted history",
                    )

            aging = await self.ledger.compute_aging(db, customer_id, as_of)
            assessment = classify(aging, customer.credit_limit, self.config)

            row = (await db.execute(
                select(AgingSnapshotRecord).where(AgingSnapshotRecord.customer_id == customer_id)
            )).scalar_one_or_none()
            if row is None:
                row = AgingSnapshotRecord(customer_id=customer_id)
                db.add(row)

            row.as_of_date = as_of
            row.bucket_1, row.bucket_2, row.bucket_3, row.bucket_4 = (b.amount for b in aging.buckets)
            row.total_outstanding = aging.total_outstanding
            row.unapplied_credit = aging.unapplied_credit
            row.risk_score = assessment.score
            row.risk_tier = assessment.tier
            row.computed_at = self.clock.now()
            await db.flush()

            await unit.record(
                AuditAction.AGING_RECOMPUTED, "aging_snapshot", row.id, customer_id,
                after={
                    "total_outstanding": aging.total_outstanding,
                    "risk_score": assessment.score,
                    "risk_tier": assessment.tier,
                },
                metadata={"as_of": as_of, "drift": drift},
            )
            return AgingRecomputeOutcome(
                snapshot=row,
                assessment=assessment,
                drift=drift if drift != ZERO else None,
                repaired=repaired,
            )

        return await self._execute("recompute_customer_aging", [customer_key(customer_id)], work, actor)
