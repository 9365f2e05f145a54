from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.api.v1.errors import raise_http_error
from billing_ledger.core.exceptions import BillingLedgerError
from billing_ledger.db.mongo import get_db
from billing_ledger.schemas.payment import PaymentCreate, PaymentResponse
from billing_ledger.services.payment_service import PaymentService

router = APIRouter()

@router.post("/{tenant_id}/payments", response_model=PaymentResponse, status_code=201)
async def record_payment(
    tenant_id: str,
    payment_in: PaymentCreate,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Record a payment and distribute it over the account's bills and credit"""
    try:
        return await PaymentService(db).record_payment(
            tenant_id,
            payment_in.account_id,
            payment_in.amount,
            payment_in.payment_date,
            payment_in.note
        )
    except (BillingLedgerError, ValueError) as exc:
        raise_http_error(exc)
