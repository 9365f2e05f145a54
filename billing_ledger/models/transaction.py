"""
Transaction model - a recorded payment and its allocations.

Written as ``pending`` before any bill or credit mutation and flipped to
``committed`` once every step has been applied, so an interrupted payment
can be found and resumed or reversed by id.
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_serializer

from billing_ledger.models.allocation import Allocation, AllocationSummary
from billing_ledger.models.base import MongoModel


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"


class Transaction(MongoModel):
    tenant_id: str
    account_id: str
    amount: int
    payment_date: date
    note: str = ""

    allocations: List[Allocation] = Field(default_factory=list)
    allocation_summary: Optional[AllocationSummary] = None

    # Legacy period-only split list, kept for audit after migration
    dues_distribution: Optional[List[Dict[str, Any]]] = None

    status: TransactionStatus = TransactionStatus.PENDING
    credit_balance_after: Optional[int] = None
    # Period allocations whose bill write has landed; read while pending
    applied_allocations: List[str] = Field(default_factory=list)

    @field_serializer("payment_date")
    def _serialize_payment_date(self, value: date) -> str:
        return value.isoformat()

    def to_document(self) -> dict:
        doc = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        doc["_id"] = self.id
        doc["created_at"] = self.created_at
        doc["updated_at"] = self.updated_at
        return doc
