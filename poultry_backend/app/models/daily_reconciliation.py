"""
Daily Reconciliation database model.

One record per (truck, date): loaded weight against sold weight and
declared waste.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric, ForeignKey, Enum, UniqueConstraint
)
from sqlalchemy.sql import func
from poultry_backend.app.db.session import Base
from poultry_backend.app.models.pos_enums import ReconciliationStatus


class DailyReconciliation(Base):
    """
    Daily Reconciliation model.

    Follows OPEN -> BALANCED | VARIANCE -> UNDER_REVIEW (reopened) -> closed again.
    variance = loaded_weight - sold_weight - waste_weight, set when closed.
    """
    __tablename__ = "daily_reconciliations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    truck_id = Column(Integer, ForeignKey('trucks.id'), nullable=False, index=True)
    reconciliation_date = Column(Date, nullable=False, index=True)

    # Weights (kg)
    loaded_weight = Column(Numeric(12, 3), nullable=False)
    sold_weight = Column(Numeric(12, 3), nullable=False, default=0)
    waste_weight = Column(Numeric(12, 3), nullable=True)
    variance = Column(Numeric(12, 3), nullable=True)
    tolerance = Column(Numeric(12, 3), nullable=True)  # Tolerance applied at close

    status = Column(Enum(ReconciliationStatus), default=ReconciliationStatus.OPEN, nullable=False, index=True)

    # Review flow
    requires_review = Column(Boolean, default=False, nullable=False)
    reviewed_by = Column(String(100), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_note = Column(String(500), nullable=True)

    closed_at = Column(DateTime(timezone=True), nullable=True)
    reopen_count = Column(Integer, default=0, nullable=False)

    # Optimistic concurrency
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("truck_id", "reconciliation_date", name="uq_daily_reconciliations_truck_date"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return (
            f"<DailyReconciliation(truck_id={self.truck_id}, date={self.reconciliation_date}, "
            f"status='{self.status.value}')>"
        )
