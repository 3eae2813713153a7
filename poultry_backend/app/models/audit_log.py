"""
Audit Log Database Model.

Append-only trail of every balance- or weight-affecting mutation.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from poultry_backend.app.db.session import Base
from poultry_backend.app.models.immutable import append_only


@append_only
class AuditLog(Base):
    """
    Audit log model.

    Events logged include:
    - INVOICE_POSTED / PAYMENT_POSTED / DEBT_ADJUSTED
    - RECONCILIATION_OPENED / SALE_RECORDED / RECONCILIATION_CLOSED / RECONCILIATION_REOPENED
    - BALANCE_REPAIRED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action ("system" for batch jobs)
    actor = Column(String(100), nullable=False, index=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(Integer, nullable=True, index=True)
    customer_id = Column(Integer, nullable=True, index=True)

    # State before/after (JSON for flexibility)
    before_state = Column(JSON, nullable=True)
    after_state = Column(JSON, nullable=True)
    reason = Column(String(500), nullable=True)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor}, entity={self.entity_type}:{self.entity_id})>"
