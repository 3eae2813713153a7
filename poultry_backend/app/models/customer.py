"""
Customer database model.

total_debt is the authoritative running balance and is written only by the
ledger engine.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric
from sqlalchemy.sql import func
from poultry_backend.app.db.session import Base


class Customer(Base):
    """
    Customer model.

    Invariant: total_debt == sum(invoice.net_amount) - sum(payment.amount)
    + sum(adjustment.amount) for the customer.
    """
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Contact
    customer_name = Column(String(200), unique=True, nullable=False, index=True)
    phone_number = Column(String(30), nullable=True)
    address = Column(String(500), nullable=True)

    # Financials
    total_debt = Column(Numeric(18, 2), nullable=False, default=0)
    credit_limit = Column(Numeric(18, 2), nullable=True)  # None -> configured default

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Optimistic concurrency
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.customer_name}', debt={self.total_debt})>"
