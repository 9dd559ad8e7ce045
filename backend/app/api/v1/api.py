from fastapi import APIRouter

from backend.app.api.v1.endpoints import (
    auth,
    cash,
    clients,
    orders,
    payments,
    sales,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(clients.router, prefix="/clients", tags=["clients"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(sales.router, prefix="/sales", tags=["sales"])
api_router.include_router(cash.router, prefix="/cash", tags=["cash"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
