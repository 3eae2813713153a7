"""
Sales API Endpoints: invoices and payments.

Each POST is one atomic unit in the transaction coordinator; a failure at
any step leaves no invoice, payment, balance or weight change behind.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from poultry_backend.app.core.dependencies import get_coordinator, get_operator, get_queries
from poultry_backend.app.schemas.invoice import (
    BulkInvoiceCreate,
    InvoiceCreate,
    InvoiceItemResponse,
    InvoiceResponse,
    InvoiceSettlementResponse,
)
from poultry_backend.app.schemas.payment import PaymentCreate, PaymentResponse, PaymentSettlementResponse
from poultry_backend.app.services.ledger_queries import LedgerQueries
from poultry_backend.app.services.transaction_coordinator import InvoiceSettlement, TransactionCoordinator

invoices_router = APIRouter(prefix="/invoices", tags=["Invoices"])
payments_router = APIRouter(prefix="/payments", tags=["Payments"])


def settlement_response(settlement: InvoiceSettlement) -> InvoiceSettlementResponse:
    load = settlement.truck_load
    return InvoiceSettlementResponse(
        invoice=InvoiceResponse.model_validate(settlement.invoice),
        items=[InvoiceItemResponse.model_validate(item) for item in settlement.items],
        balance_before=settlement.balance_change.balance_before,
        balance_after=settlement.balance_change.balance_after,
        truck_load_remaining_weight=load.gross_weight - load.sold_weight,
        truck_day_sold_weight=settlement.reconciliation.sold_weight,
    )


@invoices_router.post("", response_model=InvoiceSettlementResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice_data: InvoiceCreate,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """
    Post a sale invoice.

    Validates the weight against the load's remaining capacity, posts the
    net amount to the customer's balance and records the sale on the
    truck-day reconciliation.
    """
    settlement = await coordinator.create_invoice_from_lines(
        customer_id=invoice_data.customer_id,
        truck_load_id=invoice_data.truck_load_id,
        lines=[invoice_data.to_line()],
        invoice_date=invoice_data.invoice_date,
        actor=operator,
    )
    return settlement_response(settlement)


@invoices_router.post("/bulk", response_model=InvoiceSettlementResponse, status_code=status.HTTP_201_CREATED)
async def create_bulk_invoice(
    invoice_data: BulkInvoiceCreate,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Post one invoice built from several weighings at the scale."""
    settlement = await coordinator.create_invoice_from_lines(
        customer_id=invoice_data.customer_id,
        truck_load_id=invoice_data.truck_load_id,
        lines=[line.to_line() for line in invoice_data.lines],
        invoice_date=invoice_data.invoice_date,
        actor=operator,
    )
    return settlement_response(settlement)


@invoices_router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(invoice_id: int, queries: LedgerQueries = Depends(get_queries)):
    return InvoiceResponse.model_validate(await queries.get_invoice(invoice_id))


@invoices_router.get("/{invoice_id}/items", response_model=List[InvoiceItemResponse])
async def get_invoice_items(invoice_id: int, queries: LedgerQueries = Depends(get_queries)):
    return [InvoiceItemResponse.model_validate(item) for item in await queries.list_invoice_items(invoice_id)]


@payments_router.post("", response_model=PaymentSettlementResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payment_data: PaymentCreate,
    operator: str = Depends(get_operator),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Record a payment; overpayments follow the configured policy."""
    settlement = await coordinator.record_payment_and_settle(
        customer_id=payment_data.customer_id,
        amount=payment_data.amount,
        payment_method=payment_data.payment_method,
        invoice_id=payment_data.invoice_id,
        allow_overpayment=payment_data.allow_overpayment,
        notes=payment_data.notes,
        payment_date=payment_data.payment_date,
        actor=operator,
    )
    return PaymentSettlementResponse(
        payment=PaymentResponse.model_validate(settlement.payment),
        balance_before=settlement.balance_change.balance_before,
        balance_after=settlement.balance_change.balance_after,
    )
