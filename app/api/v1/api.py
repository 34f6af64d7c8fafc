from fastapi import APIRouter
from app.api.v1.endpoints import autopay, billing, payments

api_router = APIRouter()

api_router.include_router(billing.router, prefix="/customers", tags=["billing"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(autopay.router, prefix="/autopay", tags=["autopay"])
