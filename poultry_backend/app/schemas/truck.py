"""
Truck and Truck Load Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from poultry_backend.app.models.pos_enums import TruckLoadStatus


class TruckCreate(BaseModel):
    """Schema for registering a truck."""
    truck_number: str = Field(..., min_length=1, max_length=50, description="Registration number")
    driver_name: str = Field(..., min_length=1, max_length=100)
    driver_phone: Optional[str] = Field(None, max_length=30)


class TruckResponse(BaseModel):
    id: int
    truck_number: str
    driver_name: str
    driver_phone: Optional[str]
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TruckLoadCreate(BaseModel):
    """Schema for registering a truck load."""
    truck_id: int
    load_date: date
    gross_weight: Decimal = Field(..., gt=0, description="Gross weight in kg")
    cages_count: int = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=500)


class TruckLoadResponse(BaseModel):
    """Truck load with remaining capacity and loading efficiency."""
    id: int
    truck_id: int
    load_date: date
    gross_weight: Decimal
    cages_count: int
    sold_weight: Decimal
    remaining_weight: Decimal
    weight_per_cage: Decimal
    is_weight_valid: bool
    efficiency: Decimal
    status: TruckLoadStatus
    notes: Optional[str]


class TruckLoadListResponse(BaseModel):
    loads: List[TruckLoadResponse]
    total: int


class LoadSummaryResponse(BaseModel):
    load_date: date
    loads_count: int
    total_gross_weight: Decimal
    total_sold_weight: Decimal
    total_remaining_weight: Decimal
    total_cages: int

    class Config:
        from_attributes = True
