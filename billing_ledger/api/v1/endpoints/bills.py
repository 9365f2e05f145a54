from typing import List, Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.api.v1.errors import raise_http_error
from billing_ledger.core.exceptions import BillingLedgerError
from billing_ledger.db.mongo import get_db
from billing_ledger.repositories.bill_repo import BillRepository
from billing_ledger.schemas.bill import BillResponse, PeriodCreate, PeriodResponse
from billing_ledger.services.payment_service import PaymentService

router = APIRouter()

@router.post("/{tenant_id}/bills/periods", response_model=PeriodResponse, status_code=201)
async def generate_period(
    tenant_id: str,
    period_in: PeriodCreate,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Generate one unpaid bill per account for a billing period"""
    try:
        bills = await PaymentService(db).generate_period(tenant_id, period_in.period_key, period_in.charges)
    except (BillingLedgerError, ValueError) as exc:
        raise_http_error(exc)
    return PeriodResponse(
        tenant_id=tenant_id,
        period_key=period_in.period_key,
        bills=[BillResponse.model_validate(bill) for bill in bills]
    )

@router.get("/{tenant_id}/bills", response_model=List[BillResponse])
async def list_bills(
    tenant_id: str,
    start_period: Optional[str] = None,
    end_period: Optional[str] = None,
    account_id: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Bills in a period range, oldest first"""
    bills = await BillRepository(db).list(tenant_id, start_period, end_period, account_id)
    return [BillResponse.model_validate(bill) for bill in bills]

@router.get("/{tenant_id}/bills/{account_id}/{period_key}", response_model=BillResponse)
async def get_bill(
    tenant_id: str,
    account_id: str,
    period_key: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        bill = await BillRepository(db).get(tenant_id, account_id, period_key)
    except BillingLedgerError as exc:
        raise_http_error(exc)
    return BillResponse.model_validate(bill)
