"""
Admin Operations API Endpoints.

Maintenance jobs and the audit trail.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from poultry_backend.app.core.dependencies import get_coordinator, get_operator, get_queries
from poultry_backend.app.schemas.ledger import AgingRecomputeRequest, AgingRecomputeResponse, AuditLogResponse
from poultry_backend.app.services.aging_recompute import AgingRecomputeJob
from poultry_backend.app.services.ledger_queries import LedgerQueries
from poultry_backend.app.services.transaction_coordinator import TransactionCoordinator

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.post("/aging-recompute", response_model=AgingRecomputeResponse)
async def trigger_aging_recompute(
    request: AgingRecomputeRequest,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """
    Recompute the stored aging and risk snapshot of every customer.
    Optionally resets drifted balances to the value derived from history.
    """
    job = AgingRecomputeJob(coordinator)
    result = await job.run(as_of=request.as_of, repair_balances=request.repair_balances, actor=operator)
    return AgingRecomputeResponse.model_validate(result)


@router.get("/audit-logs", response_model=List[AuditLogResponse])
async def list_audit_logs(
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    queries: LedgerQueries = Depends(get_queries),
):
    """Audit trail, most recent first."""
    entries = await queries.audit_trail(
        entity_type=entity_type, entity_id=entity_id, customer_id=customer_id, action=action, limit=limit
    )
    return [AuditLogResponse.model_validate(e) for e in entries]
