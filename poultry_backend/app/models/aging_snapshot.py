"""
Aging Snapshot database model.

Last batch-recomputed aging and risk view per customer. Derived data only;
it can always be rebuilt from invoice/payment history.
"""

from sqlalchemy import Column, Integer, Date, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.sql import func
from poultry_backend.app.db.session import Base
from poultry_backend.app.models.pos_enums import RiskTier


class AgingSnapshot(Base):
    __tablename__ = "aging_snapshots"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey('customers.id'), unique=True, nullable=False, index=True)

    as_of_date = Column(Date, nullable=False)

    # Buckets (defaults 0-30 / 31-60 / 61-90 / 91+)
    bucket_1 = Column(Numeric(18, 2), nullable=False)
    bucket_2 = Column(Numeric(18, 2), nullable=False)
    bucket_3 = Column(Numeric(18, 2), nullable=False)
    bucket_4 = Column(Numeric(18, 2), nullable=False)
    total_outstanding = Column(Numeric(18, 2), nullable=False)
    unapplied_credit = Column(Numeric(18, 2), nullable=False)

    risk_score = Column(Numeric(6, 2), nullable=False)
    risk_tier = Column(Enum(RiskTier), nullable=False, index=True)

    computed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<AgingSnapshot(customer_id={self.customer_id}, as_of={self.as_of_date}, tier='{self.risk_tier.value}')>"
