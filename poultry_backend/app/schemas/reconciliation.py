"""
Daily Reconciliation Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from poultry_backend.app.models.pos_enums import ReconciliationStatus


class ReconciliationOpen(BaseModel):
    """Schema for opening a truck-day."""
    truck_id: int
    reconciliation_date: date
    loaded_weight: Decimal = Field(..., gt=0)


class SaleRecord(BaseModel):
    sold_weight: Decimal = Field(..., gt=0)


class ReconciliationClose(BaseModel):
    declared_waste: Decimal = Field(Decimal("0"), ge=0, description="Waste declared by the operator, kg")


class VarianceAcknowledge(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


class ReconciliationReopen(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class ReconciliationResponse(BaseModel):
    id: int
    truck_id: int
    reconciliation_date: date
    loaded_weight: Decimal
    sold_weight: Decimal
    waste_weight: Optional[Decimal]
    variance: Optional[Decimal]
    tolerance: Optional[Decimal]
    status: ReconciliationStatus
    requires_review: bool
    reviewed_by: Optional[str]
    reviewed_at: Optional[datetime]
    review_note: Optional[str]
    closed_at: Optional[datetime]
    reopen_count: int

    class Config:
        from_attributes = True
