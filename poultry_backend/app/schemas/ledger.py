"""
Aging, risk and payment plan schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from poultry_backend.app.models.pos_enums import RiskTier


class AgingBucketResponse(BaseModel):
    label: str
    min_days: int
    max_days: Optional[int]
    amount: Decimal

    class Config:
        from_attributes = True


class AgingResponse(BaseModel):
    """FIFO aging of a customer's outstanding debt."""
    customer_id: int
    as_of: date
    buckets: List[AgingBucketResponse]
    total_outstanding: Decimal
    unapplied_credit: Decimal
    overdue_amount: Decimal
    last_payment_date: Optional[date]

    class Config:
        from_attributes = True


class RiskFactorsResponse(BaseModel):
    overdue: Decimal
    exposure: Decimal
    recency: Decimal
    days_since_last_payment: Optional[int]
    credit_limit: Decimal

    class Config:
        from_attributes = True


class RiskResponse(BaseModel):
    customer_id: int
    as_of: date
    score: Decimal
    tier: RiskTier
    factors: RiskFactorsResponse
    suggested_action: str

    class Config:
        from_attributes = True


class InstallmentResponse(BaseModel):
    sequence: int
    due_date: date
    amount: Decimal

    class Config:
        from_attributes = True


class PaymentPlanResponse(BaseModel):
    balance: Decimal
    months: int
    total: Decimal
    installments: List[InstallmentResponse]

    class Config:
        from_attributes = True


class AgingRecomputeRequest(BaseModel):
    as_of: Optional[date] = None
    repair_balances: bool = Field(False, description="Reset drifted balances to the value derived from history")


class AgingRecomputeResponse(BaseModel):
    processed: int
    drifted: List[int]
    repaired: List[int]
    cancelled: bool

    class Config:
        from_attributes = True


class AuditLogResponse(BaseModel):
    id: int
    actor: str
    action: str
    entity_type: str
    entity_id: Optional[int]
    customer_id: Optional[int]
    before_state: Optional[dict]
    after_state: Optional[dict]
    reason: Optional[str]
    meta_data: Optional[dict]
    timestamp: datetime

    class Config:
        from_attributes = True
