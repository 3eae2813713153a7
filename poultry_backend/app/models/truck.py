"""
Truck database model.

Trucks are registered once and referenced by many loads.
They are never deleted while loads reference them; only deactivated.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from poultry_backend.app.db.session import Base


class Truck(Base):
    """
    Truck model.

    Identified by its registration number; carries the driver's contact
    details for the day's distribution run.
    """
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification
    truck_number = Column(String(50), unique=True, nullable=False, index=True)

    # Driver
    driver_name = Column(String(100), nullable=False)
    driver_phone = Column(String(30), nullable=True)

    # Status (soft-deactivate only)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Truck(id={self.id}, number='{self.truck_number}', active={self.is_active})>"
