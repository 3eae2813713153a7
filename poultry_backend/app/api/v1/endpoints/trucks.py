"""
Truck and Truck Load API Endpoints.
"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query, status

from poultry_backend.app.core.dependencies import get_coordinator, get_operator, get_queries
from poultry_backend.app.schemas.truck import (
    LoadSummaryResponse,
    TruckCreate,
    TruckLoadCreate,
    TruckLoadListResponse,
    TruckLoadResponse,
    TruckResponse,
)
from poultry_backend.app.services.ledger_queries import LedgerQueries, TruckLoadView
from poultry_backend.app.services.transaction_coordinator import TransactionCoordinator

router = APIRouter(prefix="/trucks", tags=["Trucks"])
loads_router = APIRouter(prefix="/truck-loads", tags=["Truck Loads"])


def to_load_response(view: TruckLoadView) -> TruckLoadResponse:
    load = view.truck_load
    return TruckLoadResponse(
        id=load.id,
        truck_id=load.truck_id,
        load_date=load.load_date,
        gross_weight=load.gross_weight,
        cages_count=load.cages_count,
        sold_weight=load.sold_weight,
        remaining_weight=view.remaining_weight,
        weight_per_cage=load.weight_per_cage,
        is_weight_valid=load.is_weight_valid,
        efficiency=view.efficiency,
        status=load.status,
        notes=load.notes,
    )


@router.post("", response_model=TruckResponse, status_code=status.HTTP_201_CREATED)
async def register_truck(
    truck_data: TruckCreate,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    truck = await coordinator.register_truck(
        truck_data.truck_number, truck_data.driver_name, truck_data.driver_phone, actor=operator
    )
    return TruckResponse.model_validate(truck)


@router.get("", response_model=List[TruckResponse])
async def list_trucks(
    active_only: bool = Query(False),
    queries: LedgerQueries = Depends(get_queries),
):
    return [TruckResponse.model_validate(t) for t in await queries.list_trucks(active_only=active_only)]


@router.post("/{truck_id}/deactivate", response_model=TruckResponse)
async def deactivate_truck(
    truck_id: int,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Soft-deactivate a truck; existing loads and reconciliations are kept."""
    return TruckResponse.model_validate(await coordinator.deactivate_truck(truck_id, actor=operator))


@loads_router.post("", response_model=TruckLoadResponse, status_code=status.HTTP_201_CREATED)
async def register_truck_load(
    load_data: TruckLoadCreate,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """
    Register a truck load.

    Opens the truck-day reconciliation if needed and adds the gross weight
    to its loaded weight. Loads outside the weight-per-cage band are
    accepted and flagged with is_weight_valid = false.
    """
    registration = await coordinator.register_truck_load(
        load_data.truck_id,
        load_data.load_date,
        load_data.gross_weight,
        load_data.cages_count,
        notes=load_data.notes,
        actor=operator,
    )
    load = registration.truck_load
    return to_load_response(TruckLoadView(
        truck_load=load,
        remaining_weight=load.gross_weight - load.sold_weight,
        efficiency=registration.efficiency,
    ))


@loads_router.get("", response_model=TruckLoadListResponse)
async def list_loads_for_date(
    load_date: date = Query(..., description="Loading date"),
    queries: LedgerQueries = Depends(get_queries),
):
    views = await queries.loads_for_date(load_date)
    return TruckLoadListResponse(loads=[to_load_response(v) for v in views], total=len(views))


@loads_router.get("/summary", response_model=LoadSummaryResponse)
async def load_summary(
    load_date: date = Query(..., description="Loading date"),
    queries: LedgerQueries = Depends(get_queries),
):
    return LoadSummaryResponse.model_validate(await queries.load_summary(load_date))


@loads_router.get("/{truck_load_id}", response_model=TruckLoadResponse)
async def get_truck_load(truck_load_id: int, queries: LedgerQueries = Depends(get_queries)):
    return to_load_response(await queries.get_truck_load(truck_load_id))
