"""
Customer API Endpoints.

Customer accounts, balances, aging, risk and debt adjustments.
"""

from decimal import Decimal
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from poultry_backend.app.core.dependencies import get_coordinator, get_operator, get_queries
from poultry_backend.app.schemas.customer import (
    BalanceResponse,
    CustomerCreate,
    CustomerListResponse,
    CustomerResponse,
    DebtAdjustmentCreate,
    DebtAdjustmentResponse,
    DebtSummaryResponse,
)
from poultry_backend.app.schemas.invoice import InvoiceResponse
from poultry_backend.app.schemas.ledger import AgingResponse, PaymentPlanResponse, RiskResponse
from poultry_backend.app.schemas.payment import PaymentResponse
from poultry_backend.app.services.ledger_queries import LedgerQueries
from poultry_backend.app.services.transaction_coordinator import TransactionCoordinator

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    customer_data: CustomerCreate,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Create a customer account with a zero balance."""
    customer = await coordinator.create_customer(
        customer_name=customer_data.customer_name,
        phone_number=customer_data.phone_number,
        address=customer_data.address,
        credit_limit=customer_data.credit_limit,
        actor=operator,
    )
    return CustomerResponse.model_validate(customer)


@router.get("", response_model=CustomerListResponse)
async def list_customers(
    search: Optional[str] = Query(None, max_length=100, description="Matches name or phone number"),
    active_only: bool = Query(False, description="Only active customers"),
    with_debt_only: bool = Query(False, description="Only customers owing money"),
    min_debt: Optional[Decimal] = Query(None, ge=0, description="Minimum outstanding debt"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=500, description="Customers per page"),
    queries: LedgerQueries = Depends(get_queries),
):
    """Paginated customer accounts; total counts every customer matching the filters."""
    offset = (page - 1) * page_size
    customers, total = await queries.list_customers(
        active_only=active_only,
        with_debt_only=with_debt_only,
        min_debt=min_debt,
        search=search,
        limit=page_size,
        offset=offset,
    )
    return CustomerListResponse(
        customers=[CustomerResponse.model_validate(c) for c in customers],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/debt-summary", response_model=DebtSummaryResponse)
async def debt_summary(queries: LedgerQueries = Depends(get_queries)):
    """Total debt, number of indebted customers and average debt."""
    return DebtSummaryResponse.model_validate(await queries.debt_summary())


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: int = Path(..., description="Customer ID"),
    queries: LedgerQueries = Depends(get_queries),
):
    return CustomerResponse.model_validate(await queries.get_customer(customer_id))


@router.get("/{customer_id}/balance", response_model=BalanceResponse)
async def get_balance(customer_id: int, queries: LedgerQueries = Depends(get_queries)):
    return BalanceResponse(customer_id=customer_id, balance=await queries.get_balance(customer_id))


@router.get("/{customer_id}/aging", response_model=AgingResponse)
async def get_aging(
    customer_id: int,
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    queries: LedgerQueries = Depends(get_queries),
):
    """Outstanding debt bucketed by age after FIFO settlement."""
    return AgingResponse.model_validate(await queries.get_aging(customer_id, as_of))


@router.get("/{customer_id}/risk", response_model=RiskResponse)
async def get_risk(customer_id: int, queries: LedgerQueries = Depends(get_queries)):
    return RiskResponse.model_validate(await queries.classify_customer(customer_id))


@router.get("/{customer_id}/payment-plan", response_model=PaymentPlanResponse)
async def get_payment_plan(
    customer_id: int,
    months: int = Query(3, ge=1, le=60, description="Number of monthly installments"),
    queries: LedgerQueries = Depends(get_queries),
):
    return PaymentPlanResponse.model_validate(await queries.suggest_payment_plan(customer_id, months))


@router.get("/{customer_id}/invoices", response_model=List[InvoiceResponse])
async def list_customer_invoices(customer_id: int, queries: LedgerQueries = Depends(get_queries)):
    return [InvoiceResponse.model_validate(i) for i in await queries.list_invoices(customer_id)]


@router.get("/{customer_id}/payments", response_model=List[PaymentResponse])
async def list_customer_payments(customer_id: int, queries: LedgerQueries = Depends(get_queries)):
    return [PaymentResponse.model_validate(p) for p in await queries.list_payments(customer_id)]


@router.post(
    "/{customer_id}/adjustments",
    response_model=DebtAdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def adjust_debt(
    customer_id: int,
    adjustment_data: DebtAdjustmentCreate,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Administrative correction (write-off, credit); the reason is mandatory and audited."""
    result = await coordinator.adjust_debt(
        customer_id,
        adjustment_data.amount,
        adjustment_data.reason,
        adjustment_date=adjustment_data.adjustment_date,
        actor=operator,
    )
    adjustment = result.adjustment
    return DebtAdjustmentResponse(
        id=adjustment.id,
        customer_id=adjustment.customer_id,
        amount=adjustment.amount,
        reason=adjustment.reason,
        adjustment_date=adjustment.adjustment_date,
        created_by=adjustment.created_by,
        balance_before=result.balance_change.balance_before,
        balance_after=result.balance_change.balance_after,
    )
