"""
Reconciliation Engine (Domain Logic).

For each (truck, date), verifies that loaded weight is accounted for by
sales and declared waste:

    variance = loaded - sold - declared_waste

State machine:
    OPEN -> BALANCED | VARIANCE          (close)
    BALANCED | VARIANCE -> UNDER_REVIEW  (reopen, with reason)
    UNDER_REVIEW -> BALANCED | VARIANCE  (close again)

Sales and loads may only be recorded while the day is OPEN or UNDER_REVIEW.
Must run inside a transaction owned by the caller.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from poultry_backend.app.core.clock import system_clock
from poultry_backend.app.core.config import Settings, settings
from poultry_backend.app.core.exceptions import (
    DuplicateReconciliationError,
    InvalidStateTransitionError,
    InvalidWeightError,
    OverAllocationError,
    ReconciliationClosedError,
    ReconciliationNotFoundError,
    ValidationFailedError,
)
from poultry_backend.app.domain.ledger.money import ZERO, to_decimal
from poultry_backend.app.domain.reconciliation.load_metrics import derived_load_status
from poultry_backend.app.models.daily_reconciliation import DailyReconciliation
from poultry_backend.app.models.pos_enums import ReconciliationStatus, TruckLoadStatus
from poultry_backend.app.models.truck_load import TruckLoad

logger = logging.getLogger("poultry_pos.reconciliation")

EDITABLE_STATES = (ReconciliationStatus.OPEN, ReconciliationStatus.UNDER_REVIEW)
CLOSED_STATES = (ReconciliationStatus.BALANCED, ReconciliationStatus.VARIANCE)


def evaluate_variance(loaded, sold, waste, tolerance) -> Tuple[Decimal, ReconciliationStatus]:
    variance = to_decimal(loaded) - to_decimal(sold) - to_decimal(waste)
    if abs(variance) <= to_decimal(tolerance):
        return variance, ReconciliationStatus.BALANCED
    return variance, ReconciliationStatus.VARIANCE


class ReconciliationEngine:

    def __init__(self, config: Settings = settings, clock=system_clock):
        self.config = config
        self.clock = clock

    async def find(self, db: AsyncSession, truck_id: int, day: date, for_update: bool = False) -> Optional[DailyReconciliation]:
        stmt = select(DailyReconciliation).where(
            DailyReconciliation.truck_id == truck_id,
            DailyReconciliation.reconciliation_date == day,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return (await db.execute(stmt)).scalar_one_or_none()

    async def get(self, db: AsyncSession, truck_id: int, day: date, for_update: bool = False) -> DailyReconciliation:
        record = await self.find(db, truck_id, day, for_update=for_update)
        if record is None:
            raise ReconciliationNotFoundError(truck_id, day)
        return record

    async def open_day(self, db: AsyncSession, truck_id: int, day: date, loaded_weight) -> DailyReconciliation:
        """
        Create the truck-day record in OPEN state.

        Raises:
            DuplicateReconciliationError: a record already exists for (truck, day)
        """
        loaded = to_decimal(loaded_weight)
        if loaded <= ZERO:
            raise InvalidWeightError("Loaded weight must be greater than zero", loaded)

        if await self.find(db, truck_id, day) is not None:
            raise DuplicateReconciliationError(truck_id, day)

        now = self.clock.now()
        record = DailyReconciliation(
            truck_id=truck_id,
            reconciliation_date=day,
            loaded_weight=loaded,
            sold_weight=ZERO,
            status=ReconciliationStatus.OPEN,
            requires_review=False,
            reopen_count=0,
            created_at=now,
            updated_at=now,
        )
        db.add(record)
        await db.flush()  # Unique (truck, date) race surfaces here as IntegrityError

        logger.info("Reconciliation opened", extra={"truck_id": truck_id, "date": day.isoformat()})
        return record

    async def add_loaded_weight(self, db: AsyncSession, truck_id: int, day: date, weight) -> DailyReconciliation:
        """Add a new load to the day's loaded weight, opening the day if needed."""
        record = await self.find(db, truck_id, day, for_update=True)
        if record is None:
            return await self.open_day(db, truck_id, day, weight)

        weight = to_decimal(weight)
        if weight <= ZERO:
            raise InvalidWeightError("Loaded weight must be greater than zero", weight)
        if record.status not in EDITABLE_STATES:
            raise ReconciliationClosedError(truck_id, day, record.status.value)

        record.loaded_weight = to_decimal(record.loaded_weight) + weight
        record.updated_at = self.clock.now()
        return record

    async def record_sale(self, db: AsyncSession, truck_id: int, day: date, sold_weight) -> DailyReconciliation:
        """
        Accumulate sold weight for the day.

        Raises:
            OverAllocationError: cumulative sold weight would exceed loaded weight
            ReconciliationNotFoundError: day never opened
            ReconciliationClosedError: day is closed
        """
        weight = to_decimal(sold_weight)
        if weight <= ZERO:
            raise InvalidWeightError("Sold weight must be greater than zero", weight)

        record = await self.get(db, truck_id, day, for_update=True)
        if record.status not in EDITABLE_STATES:
            raise ReconciliationClosedError(truck_id, day, record.status.value)

        loaded = to_decimal(record.loaded_weight)
        sold = to_decimal(record.sold_weight)
        if sold + weight > loaded:
            raise OverAllocationError(weight, loaded - sold, scope="truck-day")

        record.sold_weight = sold + weight
        record.updated_at = self.clock.now()
        return record

    async def close_day(self, db: AsyncSession, truck_id: int, day: date, declared_waste) -> DailyReconciliation:
        """Compute variance and close the day as BALANCED or VARIANCE."""
        waste = to_decimal(declared_waste)
        if waste < ZERO:
            raise InvalidWeightError("Declared waste cannot be negative", waste)

        record = await self.get(db, truck_id, day, for_update=True)
        if record.status not in EDITABLE_STATES:
            raise InvalidStateTransitionError("reconciliation", record.status.value, "close")

        tolerance = to_decimal(self.config.reconciliation_tolerance_kg)
        variance, status = evaluate_variance(record.loaded_weight, record.sold_weight, waste, tolerance)

        now = self.clock.now()
        record.waste_weight = waste
        record.variance = variance
        record.tolerance = tolerance
        record.status = status
        record.requires_review = status == ReconciliationStatus.VARIANCE
        record.reviewed_by = None
        record.reviewed_at = None
        record.review_note = None
        record.closed_at = now
        record.updated_at = now

        for load in await self._loads_for_day(db, truck_id, day):
            load.status = TruckLoadStatus.RECONCILED
            load.updated_at = now

        log = logger.warning if record.requires_review else logger.info
        log(
            "Reconciliation closed",
            extra={"truck_id": truck_id, "date": day.isoformat(), "variance": str(variance), "status": status.value},
        )
        return record

    async def acknowledge_variance(
        self, db: AsyncSession, truck_id: int, day: date, reviewer: str, note: Optional[str] = None
    ) -> DailyReconciliation:
        """Operator sign-off on an out-of-tolerance day."""
        record = await self.get(db, truck_id, day, for_update=True)
        if record.status != ReconciliationStatus.VARIANCE or not record.requires_review:
            raise InvalidStateTransitionError("reconciliation", record.status.value, "acknowledge")

        now = self.clock.now()
        record.requires_review = False
        record.reviewed_by = reviewer
        record.reviewed_at = now
        record.review_note = note
        record.updated_at = now
        return record

    async def reopen(self, db: AsyncSession, truck_id: int, day: date, reason: str) -> DailyReconciliation:
        """Move a closed day back to an editable state. Always audited by the caller."""
        if not reason or not reason.strip():
            raise ValidationFailedError("A reason is required to reopen a reconciliation")

        record = await self.get(db, truck_id, day, for_update=True)
        if record.status not in CLOSED_STATES:
            raise InvalidStateTransitionError("reconciliation", record.status.value, "reopen")

        now = self.clock.now()
        record.status = ReconciliationStatus.UNDER_REVIEW
        record.requires_review = False
        record.reopen_count = (record.reopen_count or 0) + 1
        record.closed_at = None
        record.updated_at = now

        for load in await self._loads_for_day(db, truck_id, day):
            load.status = derived_load_status(load.sold_weight, load.gross_weight)
            load.updated_at = now

        logger.info("Reconciliation reopened", extra={"truck_id": truck_id, "date": day.isoformat(), "reason": reason})
        return record

    async def _loads_for_day(self, db: AsyncSession, truck_id: int, day: date):
        result = await db.execute(
            select(TruckLoad).where(TruckLoad.truck_id == truck_id, TruckLoad.load_date == day)
        )
        return result.scalars().all()
