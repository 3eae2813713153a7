"""
Audit logging service for balance- and weight-affecting mutations.

Entries are written inside the caller's unit of work (flush only, never
commit) so an audit row exists exactly when the mutation it describes does.
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from poultry_backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Master data
    CUSTOMER_CREATED = "CUSTOMER_CREATED"
    TRUCK_REGISTERED = "TRUCK_REGISTERED"
    TRUCK_DEACTIVATED = "TRUCK_DEACTIVATED"
    TRUCK_LOAD_REGISTERED = "TRUCK_LOAD_REGISTERED"

    # Ledger
    INVOICE_POSTED = "INVOICE_POSTED"
    PAYMENT_POSTED = "PAYMENT_POSTED"
    DEBT_ADJUSTED = "DEBT_ADJUSTED"
    BALANCE_REPAIRED = "BALANCE_REPAIRED"

    # Reconciliation
    RECONCILIATION_OPENED = "RECONCILIATION_OPENED"
    SALE_RECORDED = "SALE_RECORDED"
    RECONCILIATION_CLOSED = "RECONCILIATION_CLOSED"
    VARIANCE_ACKNOWLEDGED = "VARIANCE_ACKNOWLEDGED"
    RECONCILIATION_REOPENED = "RECONCILIATION_REOPENED"

    # Batch
    AGING_RECOMPUTED = "AGING_RECOMPUTED"


def to_json_value(value: Any) -> Any:
    """Make Decimals, dates and enums storable in a JSON column."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    return value


def state_of(obj: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """Capture selected attributes of an entity for before/after state."""
    return {name: to_json_value(getattr(obj, name)) for name in fields}


async def log_event(
    db: AsyncSession,
    action: str,
    actor: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> AuditLog:
    """
    Log a mutation to the audit trail.

    Args:
        db: Database session of the current unit of work
        action: Action being performed (use AuditAction constants)
        actor: Operator name, or "system" for batch jobs
        entity_type: Affected entity ("customer", "invoice", "reconciliation", ...)
        entity_id: Affected entity id
        customer_id: Customer whose balance the action touched, if any
        before: State before the action
        after: State after the action
        reason: Free-text justification (mandatory for adjustments and reopen)
        metadata: Additional context as JSON
        timestamp: Event time from the injected clock

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        customer_id=customer_id,
        before_state=to_json_value(before) if before is not None else None,
        after_state=to_json_value(after) if after is not None else None,
        reason=reason,
        meta_data=to_json_value(metadata) if metadata is not None else None,
    )
    if timestamp is not None:
        audit_log.timestamp = timestamp

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)

    if customer_id is not None:
        query = query.where(AuditLog.customer_id == customer_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
