from fastapi import APIRouter
from billing_ledger.api.v1.endpoints import bills, credit, payments, penalties, tenants, transactions

api_router = APIRouter()

api_router.include_router(tenants.router, prefix="/tenants", tags=["tenants"])
api_router.include_router(bills.router, prefix="/tenants", tags=["bills"])
api_router.include_router(payments.router, prefix="/tenants", tags=["payments"])
api_router.include_router(transactions.router, prefix="/tenants", tags=["transactions"])
api_router.include_router(credit.router, prefix="/tenants", tags=["credit"])
api_router.include_router(penalties.router, tags=["penalties"])
