"""
Batch aging recompute.

Walks every customer in id order, refreshing the stored aging/risk snapshot
and optionally repairing balance drift. Each customer is its own unit of
work, so cancellation between customers leaves every finished customer
committed and the in-flight one rolled back.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy import select

from poultry_backend.app.core.reliability import retry_read
from poultry_backend.app.models.customer import Customer
from poultry_backend.app.services.transaction_coordinator import SYSTEM_ACTOR, TransactionCoordinator

logger = logging.getLogger("poultry_pos.batch")


@dataclass
class AgingRecomputeResult:
    processed: int = 0
    drifted: List[int] = field(default_factory=list)
    repaired: List[int] = field(default_factory=list)
    cancelled: bool = False


class AgingRecomputeJob:

    def __init__(self, coordinator: TransactionCoordinator, session_factory=None):
        self.coordinator = coordinator
        self.session_factory = session_factory or coordinator.session_factory

    async def _customer_ids(self) -> List[int]:
        config = self.coordinator.config

        async def query():
            async with self.session_factory() as db:
                result = await db.execute(select(Customer.id).order_by(Customer.id))
                return list(result.scalars().all())

        return await retry_read(
            "aging_recompute.customers",
            query,
            attempts=config.read_retry_attempts,
            delay=config.read_retry_delay_seconds,
            backoff=config.read_retry_backoff,
        )

    async def run(
        self,
        as_of: Optional[date] = None,
        cancel_event: Optional[asyncio.Event] = None,
        repair_balances: bool = False,
        actor: str = SYSTEM_ACTOR,
    ) -> AgingRecomputeResult:
        as_of = as_of or self.coordinator.clock.today()
        result = AgingRecomputeResult()
        customer_ids = await self._customer_ids()

        logger.info(
            "Aging recompute started",
            extra={"customers": len(customer_ids), "as_of": as_of.isoformat(), "repair": repair_balances},
        )

        for customer_id in customer_ids:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break

            outcome = await self.coordinator.recompute_customer_aging(
                customer_id, as_of=as_of, repair=repair_balances, actor=actor
            )
            result.processed += 1
            if outcome.drift is not None:
                result.drifted.append(customer_id)
            if outcome.repaired is not None:
                result.repaired.append(customer_id)

        log = logger.warning if result.drifted else logger.info
        log(
            "Aging recompute finished",
            extra={
                "processed": result.processed,
                "drifted": result.drifted,
                "repaired": result.repaired,
                "cancelled": result.cancelled,
            },
        )
        return result
