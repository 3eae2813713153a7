"""
Truck Load database model.

One batch of slaughtered product loaded onto a truck for distribution.
Invoices draw down its remaining weight.
"""

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Numeric, ForeignKey, Enum, CheckConstraint
from sqlalchemy.sql import func
from poultry_backend.app.db.session import Base
from poultry_backend.app.models.pos_enums import TruckLoadStatus


class TruckLoad(Base):
    """
    Truck Load model.

    Invariant: sold_weight <= gross_weight (checked in the coordinator and
    enforced again by a table constraint).
    """
    __tablename__ = "truck_loads"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    truck_id = Column(Integer, ForeignKey('trucks.id'), nullable=False, index=True)
    load_date = Column(Date, nullable=False, index=True)

    # Weights (kg)
    gross_weight = Column(Numeric(12, 3), nullable=False)
    cages_count = Column(Integer, nullable=False)
    sold_weight = Column(Numeric(12, 3), nullable=False, default=0)
    weight_per_cage = Column(Numeric(12, 3), nullable=False)
    is_weight_valid = Column(Boolean, nullable=False, default=True)

    status = Column(Enum(TruckLoadStatus), default=TruckLoadStatus.LOADED, nullable=False, index=True)
    notes = Column(String(500), nullable=True)

    # Optimistic concurrency
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("sold_weight <= gross_weight", name="ck_truck_loads_sold_le_gross"),
        CheckConstraint("gross_weight > 0", name="ck_truck_loads_gross_positive"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def remaining_weight(self):
        return self.gross_weight - self.sold_weight

    def __repr__(self):
        return f"<TruckLoad(id={self.id}, truck_id={self.truck_id}, date={self.load_date}, status='{self.status.value}')>"
