"""
BillRepository - keyed store of bills per tenant / account / period.

Layout: one ``bill_periods`` document per tenant per period holding every
account's bill under ``units.<account_id>``. Reading a whole period is one
read; a single bill is updated in place with dotted ``$set`` paths.
"""

from datetime import date, datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from billing_ledger.core.exceptions import BillNotFoundError, PeriodAlreadyExistsError
from billing_ledger.models.base import validate_key_segment
from billing_ledger.models.bill import Bill, BillStatus
from billing_ledger.utils.currency_validation import normalize_centavos, normalize_document
from billing_ledger.utils.periods import parse_period_key

MUTABLE_BILL_FIELDS = {
    "penalty_amount", "total_amount", "base_paid", "penalty_paid",
    "status", "last_penalty_update",
}


def period_doc_id(tenant_id: str, period_key: str) -> str:
    return f"{tenant_id}:{period_key}"


class BillRepository:
    """Repository for billing period documents."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["bill_periods"]

    async def create_period(
        self,
        tenant_id: str,
        period_key: str,
        charges: Dict[str, int],
        due_date: date,
        tolerance: Optional[float] = None
    ) -> List[Bill]:
        """
        Generate a billing period with one unpaid bill per account.

        Raises PeriodAlreadyExistsError if the period was generated before;
        bills are never overwritten.
        """
        parse_period_key(period_key)
        units = {}
        bills = []
        for account_id, charge in charges.items():
            validate_key_segment(account_id, "account_id")
            base_charge = normalize_centavos(charge, f"{account_id}.base_charge", tolerance)
            bill = Bill(account_id=account_id, period_key=period_key, base_charge=base_charge)
            units[account_id] = bill.to_document()
            bills.append(bill)

        now = datetime.now(timezone.utc)
        try:
            await self.collection.insert_one({
                "_id": period_doc_id(tenant_id, period_key),
                "tenant_id": tenant_id,
                "period_key": period_key,
                "due_date": due_date.isoformat(),
                "units": units,
                "created_at": now,
                "updated_at": now
            })
        except DuplicateKeyError:
            raise PeriodAlreadyExistsError(
                f"Period {period_key} already exists",
                tenant_id=tenant_id,
                period_key=period_key
            )
        return bills

    async def get(self, tenant_id: str, account_id: str, period_key: str) -> Bill:
        """Get one bill; raises BillNotFoundError."""
        doc = await self.collection.find_one(
            {"_id": period_doc_id(tenant_id, period_key)},
            {f"units.{account_id}": 1}
        )
        unit = (doc or {}).get("units", {}).get(account_id)
        if unit is None:
            raise BillNotFoundError(
                "Bill not found",
                tenant_id=tenant_id,
                account_id=account_id,
                period_key=period_key
            )
        return Bill.from_document(account_id, period_key, unit)

    async def list(
        self,
        tenant_id: str,
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
        account_id: Optional[str] = None
    ) -> List[Bill]:
        """List bills in a period range (inclusive), oldest first."""
        query: dict = {"tenant_id": tenant_id}
        period_filter = {}
        if start_period:
            period_filter["$gte"] = start_period
        if end_period:
            period_filter["$lte"] = end_period
        if period_filter:
            query["period_key"] = period_filter

        bills = []
        cursor = self.collection.find(query).sort("period_key", 1)
        async for doc in cursor:
            for unit_id, unit in doc.get("units", {}).items():
                if account_id is not None and unit_id != account_id:
                    continue
                bills.append(Bill.from_document(unit_id, doc["period_key"], unit))
        return bills

    async def list_outstanding(self, tenant_id: str, account_id: str) -> List[Bill]:
        """Bills of one account that are not fully paid, oldest first."""
        bills = await self.list(tenant_id, account_id=account_id)
        return [bill for bill in bills if bill.status != BillStatus.PAID]

    async def update(
        self,
        tenant_id: str,
        account_id: str,
        period_key: str,
        fields: dict,
        tolerance: Optional[float] = None
    ) -> None:
        """
        Update mutable fields of one bill.

        Monetary fields pass the centavos validation before they are written.
        """
        unknown = set(fields) - MUTABLE_BILL_FIELDS
        if unknown:
            raise ValueError(f"Bill fields are not updatable: {sorted(unknown)}")

        clean = normalize_document(fields, tolerance)
        if isinstance(clean.get("status"), BillStatus):
            clean["status"] = clean["status"].value

        updates = {f"units.{account_id}.{key}": value for key, value in clean.items()}
        updates["updated_at"] = datetime.now(timezone.utc)

        result = await self.collection.update_one(
            {
                "_id": period_doc_id(tenant_id, period_key),
                f"units.{account_id}": {"$exists": True}
            },
            {"$set": updates}
        )
        if result.matched_count == 0:
            raise BillNotFoundError(
                "Bill not found",
                tenant_id=tenant_id,
                account_id=account_id,
                period_key=period_key
            )

    async def save_bill(self, tenant_id: str, bill: Bill, tolerance: Optional[float] = None) -> None:
        """Persist the mutable state of a bill model."""
        await self.update(
            tenant_id,
            bill.account_id,
            bill.period_key,
            {
                "penalty_amount": bill.penalty_amount,
                "total_amount": bill.total_amount,
                "base_paid": bill.base_paid,
                "penalty_paid": bill.penalty_paid,
                "status": bill.status,
                "last_penalty_update": bill.last_penalty_update
            },
            tolerance
        )

    # ===== PERIOD DOCUMENT ACCESS (penalty sweeps) =====

    async def iter_period_documents(self, tenant_id: str) -> AsyncIterator[dict]:
        cursor = self.collection.find({"tenant_id": tenant_id}).sort("period_key", 1)
        async for doc in cursor:
            yield doc

    async def save_period_units(self, tenant_id: str, period_key: str, units: Dict[str, dict]) -> None:
        """Write back the changed account entries of one period document."""
        if not units:
            return
        updates = {
            f"units.{account_id}": normalize_document(unit)
            for account_id, unit in units.items()
        }
        updates["updated_at"] = datetime.now(timezone.utc)
        await self.collection.update_one(
            {"_id": period_doc_id(tenant_id, period_key)},
            {"$set": updates}
        )
