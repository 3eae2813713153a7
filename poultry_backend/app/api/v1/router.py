"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from poultry_backend.app.api.v1.endpoints import admin_ops, customers, reconciliations, sales, trucks

router = APIRouter()

# Master data
router.include_router(customers.router)
router.include_router(trucks.router)
router.include_router(trucks.loads_router)

# Sales and ledger
router.include_router(sales.invoices_router)
router.include_router(sales.payments_router)

# Daily reconciliation
router.include_router(reconciliations.router)

# Ops
router.include_router(admin_ops.router)
