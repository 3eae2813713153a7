"""
Invoice database model.

Immutable once posted; corrections are compensating debt adjustments.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey
from sqlalchemy.sql import func
from poultry_backend.app.db.session import Base
from poultry_backend.app.models.immutable import append_only


@append_only
class Invoice(Base):
    """
    Invoice model.

    net_amount is the sum of the line net amounts. For a multi-line invoice
    unit_price and discount_percentage are weight-averaged; the lines hold
    the exact figures.
    """
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_number = Column(String(30), unique=True, nullable=False, index=True)

    # Linkage
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False, index=True)
    truck_load_id = Column(Integer, ForeignKey('truck_loads.id'), nullable=False, index=True)

    invoice_date = Column(Date, nullable=False, index=True)

    # Sale
    sold_weight = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)

    # Financials
    total_amount = Column(Numeric(18, 2), nullable=False)
    discount_amount = Column(Numeric(18, 2), nullable=False)
    net_amount = Column(Numeric(18, 2), nullable=False)

    created_by = Column(String(100), nullable=False)
    # Immutable - no updated_at
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', net={self.net_amount})>"
