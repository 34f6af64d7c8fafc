from fastapi import APIRouter, Depends, HTTPException, status
from app.core.auth import get_current_operator, verify_gateway_secret
from app.db.session import get_payment_service
from app.models.payment import PaymentSource
from app.schemas.auth import Operator
from app.schemas.billing import (
    GatewayPaymentCallback,
    PaymentApplicationResponse,
    PaymentCreate,
    PaymentMetadata,
)
from app.services.payment_service import PaymentService

router = APIRouter()

@router.post(
    "/customers/{customer_id}",
    response_model=PaymentApplicationResponse,
    status_code=status.HTTP_201_CREATED
)
async def register_payment(
    customer_id: str,
    payment_in: PaymentCreate,
    current_operator: Operator = Depends(get_current_operator),
    payments: PaymentService = Depends(get_payment_service)
):
    """Register a payment received at the office"""
    application = await payments.apply_payment(
        customer_id,
        payment_in.amount,
        PaymentSource.MANUAL,
        PaymentMetadata(
            transaction_reference=payment_in.transaction_reference,
            notes=payment_in.notes,
            operator=current_operator.id
        )
    )
    return PaymentApplicationResponse(
        payment=application.payment_response(),
        reconciliation=application.reconciliation
    )

@router.post(
    "/gateway-callback",
    response_model=PaymentApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_gateway_secret)]
)
async def gateway_callback(
    callback: GatewayPaymentCallback,
    payments: PaymentService = Depends(get_payment_service)
):
    """Apply an online payment once the gateway has authorized it"""
    if not callback.authorized:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=f"Payment {callback.transaction_reference} was not authorized"
        )

    application = await payments.apply_payment(
        callback.customer_id,
        callback.amount,
        PaymentSource.ONLINE_GATEWAY,
        PaymentMetadata(
            transaction_reference=callback.transaction_reference,
            notes=f"Pago en línea - Transacción #{callback.transaction_reference}"
        )
    )
    return PaymentApplicationResponse(
        payment=application.payment_response(),
        reconciliation=application.reconciliation
    )
