from datetime import datetime, timezone
from typing import Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.models.transaction import Transaction, TransactionStatus
from billing_ledger.utils.currency_validation import normalize_document


class TransactionRepository:
    """Transaction records and their allocations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["transactions"]

    @staticmethod
    def _oid(transaction_id: str) -> Optional[ObjectId]:
        if isinstance(transaction_id, ObjectId):
            return transaction_id
        if not ObjectId.is_valid(transaction_id):
            return None
        return ObjectId(transaction_id)

    async def insert(self, transaction: Transaction, tolerance: Optional[float] = None) -> Transaction:
        await self.collection.insert_one(normalize_document(transaction.to_document(), tolerance))
        return transaction

    async def get_document(self, tenant_id: str, transaction_id: str) -> Optional[dict]:
        """Raw document; legacy records may not validate as Transaction."""
        oid = self._oid(transaction_id)
        if oid is None:
            return None
        return await self.collection.find_one({"_id": oid, "tenant_id": tenant_id})

    async def mark_committed(self, transaction_id: ObjectId, credit_balance_after: int) -> None:
        await self.collection.update_one(
            {"_id": transaction_id},
            {
                "$set": {
                    "status": TransactionStatus.COMMITTED.value,
                    "credit_balance_after": credit_balance_after,
                    "updated_at": datetime.now(timezone.utc)
                }
            }
        )

    async def mark_applied(self, transaction_id: ObjectId, allocation_id: str) -> None:
        """Record that one period allocation has been written to its bill."""
        await self.collection.update_one(
            {"_id": transaction_id},
            {
                "$addToSet": {"applied_allocations": allocation_id},
                "$set": {"updated_at": datetime.now(timezone.utc)}
            }
        )

    async def delete(self, tenant_id: str, transaction_id: str) -> bool:
        oid = self._oid(transaction_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid, "tenant_id": tenant_id})
        return result.deleted_count == 1

    async def list_pending(self, tenant_id: str) -> List[dict]:
        """Payments interrupted before commit; candidates for reversal."""
        cursor = self.collection.find({
            "tenant_id": tenant_id,
            "status": TransactionStatus.PENDING.value
        })
        return await cursor.to_list(None)

    async def list_legacy(self, tenant_id: str) -> List[dict]:
        cursor = self.collection.find({
            "tenant_id": tenant_id,
            "dues_distribution.0": {"$exists": True}
        })
        return await cursor.to_list(None)

    async def set_fields(self, transaction_id: ObjectId, fields: Dict, unset: Optional[List[str]] = None) -> None:
        update: dict = {"$set": {**fields, "updated_at": datetime.now(timezone.utc)}}
        if unset:
            update["$unset"] = {name: "" for name in unset}
        await self.collection.update_one({"_id": transaction_id}, update)


class ReversalRecordRepository:
    """
    Resumable step records for transaction deletion, keyed by transaction id.

    States: located -> credit_reversed -> bills_reversed -> done
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["reversals"]

    async def get(self, transaction_id: str) -> Optional[dict]:
        return await self.collection.find_one({"_id": str(transaction_id)})

    async def set_state(self, tenant_id: str, transaction_id: str, state: str, **fields) -> None:
        await self.collection.update_one(
            {"_id": str(transaction_id)},
            {
                "$set": {
                    "tenant_id": tenant_id,
                    "state": state,
                    "updated_at": datetime.now(timezone.utc),
                    **fields
                }
            },
            upsert=True
        )
