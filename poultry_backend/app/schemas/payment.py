"""
Payment Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from poultry_backend.app.models.pos_enums import PaymentMethod


class PaymentCreate(BaseModel):
    """Schema for recording a customer payment."""
    customer_id: int
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: PaymentMethod = PaymentMethod.CASH
    invoice_id: Optional[int] = None
    allow_overpayment: bool = Field(False, description="Explicit override when policy is REQUIRE_OVERRIDE")
    notes: Optional[str] = Field(None, max_length=500)
    payment_date: Optional[date] = None


class PaymentResponse(BaseModel):
    id: int
    customer_id: int
    invoice_id: Optional[int]
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: date
    notes: Optional[str]
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentSettlementResponse(BaseModel):
    payment: PaymentResponse
    balance_before: Decimal
    balance_after: Decimal
