from typing import List

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.api.v1.errors import raise_http_error
from billing_ledger.core.exceptions import BillingLedgerError
from billing_ledger.db.mongo import get_db
from billing_ledger.schemas.transaction import (
    LegacyMigrationRequest,
    LegacyMigrationResponse,
    ReversalResponse,
    TransactionResponse,
)
from billing_ledger.services.payment_service import PaymentService
from billing_ledger.services.reversal_service import ReversalService

router = APIRouter()

@router.post("/{tenant_id}/transactions/migrate-legacy", response_model=LegacyMigrationResponse)
async def migrate_legacy_transactions(
    tenant_id: str,
    request: LegacyMigrationRequest = LegacyMigrationRequest(),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Convert legacy dues distributions to allocations (or roll the conversion back)"""
    return await PaymentService(db).migrate_legacy(tenant_id, rollback=request.rollback)

@router.get("/{tenant_id}/transactions/pending", response_model=List[TransactionResponse])
async def list_pending_transactions(
    tenant_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Payments interrupted before commit"""
    return await PaymentService(db).list_pending(tenant_id)

@router.get("/{tenant_id}/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    tenant_id: str,
    transaction_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await PaymentService(db).get_transaction(tenant_id, transaction_id)
    except BillingLedgerError as exc:
        raise_http_error(exc)

@router.delete("/{tenant_id}/transactions/{transaction_id}", response_model=ReversalResponse)
async def delete_transaction(
    tenant_id: str,
    transaction_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Reverse a payment's credit and bill effects, then delete it"""
    try:
        outcome = await ReversalService(db).reverse(tenant_id, transaction_id)
    except BillingLedgerError as exc:
        raise_http_error(exc)
    return outcome.model_dump()
