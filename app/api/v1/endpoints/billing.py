from typing import List
from fastapi import APIRouter, Depends, Query
from app.core.auth import get_current_operator
from app.db.session import get_billing_service
from app.schemas.auth import Operator
from app.schemas.billing import (
    BalanceResponse,
    InvoiceListResponse,
    PartialPaymentMap,
    PaymentResponse,
    ReconciliationResult,
)
from app.services.billing_service import BillingService

router = APIRouter()

@router.get("/{customer_id}/balance", response_model=BalanceResponse)
async def get_balance(
    customer_id: str,
    current_operator: Operator = Depends(get_current_operator),
    billing: BillingService = Depends(get_billing_service)
):
    """Current balance, available credit and next due date"""
    return await billing.get_account_summary(customer_id)

@router.get("/{customer_id}/invoices", response_model=InvoiceListResponse)
async def list_invoices(
    customer_id: str,
    current_operator: Operator = Depends(get_current_operator),
    billing: BillingService = Depends(get_billing_service)
):
    """Invoices newest first, with the amount still owed on each"""
    return await billing.list_invoices(customer_id)

@router.get("/{customer_id}/invoices/partial-payments", response_model=PartialPaymentMap)
async def get_partial_payments(
    customer_id: str,
    current_operator: Operator = Depends(get_current_operator),
    billing: BillingService = Depends(get_billing_service)
):
    return await billing.get_partial_payment_map(customer_id)

@router.get("/{customer_id}/payments", response_model=List[PaymentResponse])
async def list_payments(
    customer_id: str,
    limit: int = Query(50, ge=1, le=200),
    current_operator: Operator = Depends(get_current_operator),
    billing: BillingService = Depends(get_billing_service)
):
    payments = await billing.list_payments(customer_id, limit)
    return [PaymentResponse.from_payment(p) for p in payments]

@router.post("/{customer_id}/reconcile", response_model=ReconciliationResult)
async def reconcile_customer(
    customer_id: str,
    current_operator: Operator = Depends(get_current_operator),
    billing: BillingService = Depends(get_billing_service)
):
    """Recompute invoice statuses from the ledger (safe to repeat)"""
    return await billing.reconcile(customer_id)
