"""
Invoice Pydantic schemas.

A sale may give the net sold weight directly, or the scale reading with the
cage count and unit cage weight so the tare is removed server-side. A bulk
invoice carries several such weighings.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from poultry_backend.app.domain.billing.invoice_calculator import InvoiceLine


class InvoiceCreate(BaseModel):
    """Schema for posting a sale invoice."""
    customer_id: int
    truck_load_id: int
    sold_weight: Optional[Decimal] = Field(None, gt=0, description="Net weight in kg")
    gross_weight: Optional[Decimal] = Field(None, gt=0, description="Scale reading in kg, cages included")
    cages_count: Optional[int] = Field(None, ge=0)
    cage_weight: Optional[Decimal] = Field(None, ge=0, description="Empty cage weight in kg")
    unit_price: Decimal = Field(..., gt=0, decimal_places=2)
    discount_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)
    invoice_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_weight_source(self):
        if self.sold_weight is None and None in (self.gross_weight, self.cages_count, self.cage_weight):
            raise ValueError("Provide sold_weight, or gross_weight with cages_count and cage_weight")
        return self

    def to_line(self) -> InvoiceLine:
        if self.sold_weight is not None:
            return InvoiceLine(
                gross_weight=self.sold_weight,
                unit_price=self.unit_price,
                discount_percentage=self.discount_percentage,
            )
        return InvoiceLine(
            gross_weight=self.gross_weight,
            unit_price=self.unit_price,
            cages_count=self.cages_count,
            cage_weight=self.cage_weight,
            discount_percentage=self.discount_percentage,
        )


class InvoiceLineCreate(BaseModel):
    """One weighing on a bulk invoice."""
    gross_weight: Decimal = Field(..., gt=0, description="Scale reading in kg, cages included")
    cages_count: int = Field(0, ge=0)
    cage_weight: Decimal = Field(Decimal("0"), ge=0, description="Empty cage weight in kg")
    unit_price: Decimal = Field(..., gt=0, decimal_places=2)
    discount_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)

    def to_line(self) -> InvoiceLine:
        return InvoiceLine(
            gross_weight=self.gross_weight,
            unit_price=self.unit_price,
            cages_count=self.cages_count,
            cage_weight=self.cage_weight,
            discount_percentage=self.discount_percentage,
        )


class BulkInvoiceCreate(BaseModel):
    """Schema for posting one invoice from several weighings."""
    customer_id: int
    truck_load_id: int
    lines: List[InvoiceLineCreate] = Field(..., min_length=1)
    invoice_date: Optional[date] = None


class InvoiceItemResponse(BaseModel):
    line_number: int
    gross_weight: Decimal
    cages_count: int
    cage_weight: Decimal
    net_weight: Decimal
    unit_price: Decimal
    discount_percentage: Decimal
    total_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    customer_id: int
    truck_load_id: int
    invoice_date: date
    sold_weight: Decimal
    unit_price: Decimal
    discount_percentage: Decimal
    total_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceSettlementResponse(BaseModel):
    """Result of an atomic sale posting."""
    invoice: InvoiceResponse
    items: List[InvoiceItemResponse]
    balance_before: Decimal
    balance_after: Decimal
    truck_load_remaining_weight: Decimal
    truck_day_sold_weight: Decimal
