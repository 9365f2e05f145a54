from typing import Optional

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.api.v1.errors import raise_http_error
from billing_ledger.core.exceptions import BillingLedgerError
from billing_ledger.db.mongo import get_db
from billing_ledger.models.credit import CreditHistoryEntry
from billing_ledger.schemas.credit import (
    CreditBalanceResponse,
    CreditBalancesResponse,
    CreditEntryCreate,
    CreditEntryUpdate,
    CreditHistoryResponse,
)
from billing_ledger.services.credit_service import CreditLedgerService

router = APIRouter()

@router.get("/{tenant_id}/credit", response_model=CreditBalancesResponse)
async def get_all_balances(
    tenant_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Credit balance of every account of the tenant"""
    balances = await CreditLedgerService(db).get_all_balances(tenant_id)
    return CreditBalancesResponse(tenant_id=tenant_id, balances=balances)

@router.get("/{tenant_id}/credit/{account_id}", response_model=CreditHistoryResponse)
async def get_credit_history(
    tenant_id: str,
    account_id: str,
    limit: Optional[int] = Query(default=None, ge=1),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Balance and most recent ledger entries, newest first"""
    result = await CreditLedgerService(db).get_history(tenant_id, account_id, limit)
    return CreditHistoryResponse(account_id=account_id, **result)

@router.post("/{tenant_id}/credit/{account_id}/history", response_model=CreditHistoryEntry, status_code=201)
async def add_credit_entry(
    tenant_id: str,
    account_id: str,
    entry_in: CreditEntryCreate,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await CreditLedgerService(db).add_history_entry(
            tenant_id,
            account_id,
            entry_in.amount,
            timestamp=entry_in.timestamp,
            note=entry_in.note,
            source=entry_in.source,
            transaction_id=entry_in.transaction_id
        )
    except (BillingLedgerError, ValueError) as exc:
        raise_http_error(exc)

@router.patch("/{tenant_id}/credit/{account_id}/history/{entry_id}", response_model=CreditHistoryEntry)
async def update_credit_entry(
    tenant_id: str,
    account_id: str,
    entry_id: str,
    entry_in: CreditEntryUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await CreditLedgerService(db).update_history_entry(
            tenant_id,
            account_id,
            entry_id,
            **entry_in.model_dump(exclude_unset=True)
        )
    except (BillingLedgerError, ValueError) as exc:
        raise_http_error(exc)

@router.delete("/{tenant_id}/credit/{account_id}/history/{entry_id}", response_model=CreditBalanceResponse)
async def delete_credit_entry(
    tenant_id: str,
    account_id: str,
    entry_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        balance = await CreditLedgerService(db).delete_history_entry(tenant_id, account_id, entry_id)
    except BillingLedgerError as exc:
        raise_http_error(exc)
    return CreditBalanceResponse(account_id=account_id, balance=balance)
