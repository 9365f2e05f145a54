"""
CreditBalanceRepository - single document per tenant, one sub-document per account.

Reading every balance of a tenant is one read. Writes touch only
``accounts.<account_id>`` and are guarded by that account's ``version``, so
concurrent writers on different accounts never block each other and a stale
writer on the same account is detected instead of losing an update.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.models.base import validate_key_segment
from billing_ledger.models.credit import AccountCredit
from billing_ledger.utils.currency_validation import normalize_document


class CreditBalanceRepository:
    """Repository for per-account credit ledgers."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["credit_balances"]

    async def get_account(self, tenant_id: str, account_id: str) -> Optional[AccountCredit]:
        """Account ledger, or None if the account never had a credit entry."""
        doc = await self.collection.find_one(
            {"_id": tenant_id},
            {f"accounts.{account_id}": 1}
        )
        account = (doc or {}).get("accounts", {}).get(account_id)
        if account is None:
            return None
        return AccountCredit(**account)

    async def get_all_accounts(self, tenant_id: str) -> Dict[str, AccountCredit]:
        doc = await self.collection.find_one({"_id": tenant_id})
        accounts = (doc or {}).get("accounts", {})
        return {account_id: AccountCredit(**data) for account_id, data in accounts.items()}

    async def save_account(
        self,
        tenant_id: str,
        account_id: str,
        account: AccountCredit,
        expected_version: int,
        tolerance: Optional[float] = None
    ) -> bool:
        """
        Compare-and-set write of one account ledger.

        ``expected_version`` is the version that was read (0 for an account
        without a ledger yet). Returns False when another writer got there
        first; the caller re-reads and retries. Amounts pass the centavos
        validation on the way in.
        """
        validate_key_segment(account_id, "account_id")
        await self.collection.update_one(
            {"_id": tenant_id},
            {"$setOnInsert": {"tenant_id": tenant_id}},
            upsert=True
        )

        key = f"accounts.{account_id}"
        if expected_version == 0:
            version_filter = {f"{key}": {"$exists": False}}
        else:
            version_filter = {f"{key}.version": expected_version}

        account.version = expected_version + 1
        result = await self.collection.update_one(
            {"_id": tenant_id, **version_filter},
            {
                "$set": {
                    key: normalize_document(account.model_dump(mode="json"), tolerance),
                    "updated_at": datetime.now(timezone.utc)
                }
            }
        )
        return result.matched_count == 1
