"""
Debt Adjustment database model.

Administrative, signed corrections to a customer's balance (write-offs,
credits, compensating entries for posted invoices).
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey
from sqlalchemy.sql import func
from poultry_backend.app.db.session import Base
from poultry_backend.app.models.immutable import append_only


@append_only
class DebtAdjustment(Base):
    __tablename__ = "debt_adjustments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False, index=True)

    # Positive increases debt, negative reduces it
    amount = Column(Numeric(18, 2), nullable=False)
    reason = Column(String(500), nullable=False)
    adjustment_date = Column(Date, nullable=False, index=True)

    created_by = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<DebtAdjustment(id={self.id}, customer_id={self.customer_id}, amount={self.amount})>"
