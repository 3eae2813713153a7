"""
Customer Pydantic schemas.

Defines request and response models for customer accounts and balances.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List


class CustomerCreate(BaseModel):
    """Schema for creating a new customer."""
    customer_name: str = Field(..., min_length=1, max_length=200, description="Unique customer name")
    phone_number: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = Field(None, max_length=500)
    credit_limit: Optional[Decimal] = Field(
        None, ge=0, decimal_places=2, description="Defaults to the configured credit limit"
    )


class CustomerResponse(BaseModel):
    """Schema for customer response."""
    id: int
    customer_name: str
    phone_number: Optional[str]
    address: Optional[str]
    total_debt: Decimal
    credit_limit: Optional[Decimal]
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class CustomerListResponse(BaseModel):
    customers: List[CustomerResponse]
    total: int
    page: int
    page_size: int


class BalanceResponse(BaseModel):
    customer_id: int
    balance: Decimal


class DebtSummaryResponse(BaseModel):
    """Totals across all indebted customers."""
    total_debt: Decimal
    customers_with_debt: int
    average_debt: Decimal

    class Config:
        from_attributes = True


class DebtAdjustmentCreate(BaseModel):
    """Schema for an administrative balance correction."""
    amount: Decimal = Field(..., decimal_places=2, description="Positive increases debt, negative reduces it")
    reason: str = Field(..., min_length=1, max_length=500)
    adjustment_date: Optional[date] = None


class DebtAdjustmentResponse(BaseModel):
    id: int
    customer_id: int
    amount: Decimal
    reason: str
    adjustment_date: date
    created_by: str
    balance_before: Decimal
    balance_after: Decimal
