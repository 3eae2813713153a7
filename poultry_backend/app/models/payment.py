"""
Payment database model.

Immutable once posted.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.sql import func
from poultry_backend.app.db.session import Base
from poultry_backend.app.models.immutable import append_only
from poultry_backend.app.models.pos_enums import PaymentMethod


@append_only
class Payment(Base):
    """Payment received from a customer, optionally linked to one invoice."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id'), nullable=True, index=True)

    amount = Column(Numeric(18, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod), default=PaymentMethod.CASH, nullable=False)
    payment_date = Column(Date, nullable=False, index=True)
    notes = Column(String(500), nullable=True)

    created_by = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Payment(id={self.id}, customer_id={self.customer_id}, amount={self.amount})>"
