from typing import List
from fastapi import APIRouter, Depends, Query
from app.core.auth import get_current_operator
from app.db.session import get_autopay_service
from app.schemas.auth import Operator
from app.schemas.autopay import (
    AutoPayAttemptResponse,
    AutoPayBatchResult,
    AutoPayEnableRequest,
    AutoPayStatusResponse,
)
from app.services.autopay_service import AutoPayService

router = APIRouter()

@router.get("/customers/{customer_id}", response_model=AutoPayStatusResponse)
async def get_autopay_status(
    customer_id: str,
    current_operator: Operator = Depends(get_current_operator),
    autopay: AutoPayService = Depends(get_autopay_service)
):
    return await autopay.get_status(customer_id)

@router.get("/customers/{customer_id}/history", response_model=List[AutoPayAttemptResponse])
async def get_autopay_history(
    customer_id: str,
    limit: int = Query(10, ge=1, le=100),
    current_operator: Operator = Depends(get_current_operator),
    autopay: AutoPayService = Depends(get_autopay_service)
):
    return await autopay.get_history(customer_id, limit)

@router.post("/customers/{customer_id}/enable", response_model=AutoPayStatusResponse)
async def enable_autopay(
    customer_id: str,
    payload: AutoPayEnableRequest,
    current_operator: Operator = Depends(get_current_operator),
    autopay: AutoPayService = Depends(get_autopay_service)
):
    await autopay.enable(customer_id, payload.card_id)
    return await autopay.get_status(customer_id)

@router.post("/customers/{customer_id}/disable", response_model=AutoPayStatusResponse)
async def disable_autopay(
    customer_id: str,
    current_operator: Operator = Depends(get_current_operator),
    autopay: AutoPayService = Depends(get_autopay_service)
):
    await autopay.disable(customer_id)
    return await autopay.get_status(customer_id)

@router.post("/process", response_model=AutoPayBatchResult)
async def process_autopayments(
    current_operator: Operator = Depends(get_current_operator),
    autopay: AutoPayService = Depends(get_autopay_service)
):
    """Charge every customer with auto-pay enabled (cron or admin trigger)"""
    return await autopay.process_all()
