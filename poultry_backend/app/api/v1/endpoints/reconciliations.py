"""
Daily Reconciliation API Endpoints.

Truck-day lifecycle: open, record sales, close, acknowledge variance, reopen.
"""

from datetime import date

from fastapi import APIRouter, Depends, Path, status

from poultry_backend.app.core.dependencies import get_coordinator, get_operator, get_queries
from poultry_backend.app.schemas.reconciliation import (
    ReconciliationClose,
    ReconciliationOpen,
    ReconciliationReopen,
    ReconciliationResponse,
    SaleRecord,
    VarianceAcknowledge,
)
from poultry_backend.app.services.ledger_queries import LedgerQueries
from poultry_backend.app.services.transaction_coordinator import TransactionCoordinator

router = APIRouter(prefix="/reconciliations", tags=["Reconciliations"])


@router.post("", response_model=ReconciliationResponse, status_code=status.HTTP_201_CREATED)
async def open_day(
    open_data: ReconciliationOpen,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    record = await coordinator.open_day(
        open_data.truck_id, open_data.reconciliation_date, open_data.loaded_weight, actor=operator
    )
    return ReconciliationResponse.model_validate(record)


@router.get("/{truck_id}/{day}", response_model=ReconciliationResponse)
async def get_reconciliation(
    truck_id: int = Path(..., description="Truck ID"),
    day: date = Path(..., description="Reconciliation date (YYYY-MM-DD)"),
    queries: LedgerQueries = Depends(get_queries),
):
    return ReconciliationResponse.model_validate(await queries.get_reconciliation(truck_id, day))


@router.post("/{truck_id}/{day}/sales", response_model=ReconciliationResponse)
async def record_sale(
    truck_id: int,
    day: date,
    sale: SaleRecord,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    return ReconciliationResponse.model_validate(
        await coordinator.record_sale(truck_id, day, sale.sold_weight, actor=operator)
    )


@router.post("/{truck_id}/{day}/close", response_model=ReconciliationResponse)
async def close_day(
    truck_id: int,
    day: date,
    close_data: ReconciliationClose,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Close the day; variance outside tolerance flags it for review."""
    return ReconciliationResponse.model_validate(
        await coordinator.close_day(truck_id, day, close_data.declared_waste, actor=operator)
    )


@router.post("/{truck_id}/{day}/acknowledge", response_model=ReconciliationResponse)
async def acknowledge_variance(
    truck_id: int,
    day: date,
    ack: VarianceAcknowledge,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    return ReconciliationResponse.model_validate(
        await coordinator.acknowledge_variance(truck_id, day, note=ack.note, actor=operator)
    )


@router.post("/{truck_id}/{day}/reopen", response_model=ReconciliationResponse)
async def reopen_day(
    truck_id: int,
    day: date,
    reopen_data: ReconciliationReopen,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Reopen a closed day for correction. The reason is kept in the audit trail."""
    return ReconciliationResponse.model_validate(
        await coordinator.reopen_day(truck_id, day, reopen_data.reason, actor=operator)
    )
