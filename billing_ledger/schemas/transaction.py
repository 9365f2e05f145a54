from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from billing_ledger.models.allocation import Allocation, AllocationSummary


class TransactionResponse(BaseModel):
    id: str
    tenant_id: str
    account_id: Optional[str] = None
    amount: int
    payment_date: Optional[str] = None
    note: str = ""
    status: str
    allocations: List[Allocation] = Field(default_factory=list)
    allocation_summary: Optional[AllocationSummary] = None
    credit_balance_after: Optional[int] = None


class ReversalResponse(BaseModel):
    reversed: bool
    credit_restored: bool
    bills_restored: int = 0
    affected_accounts: List[str] = Field(default_factory=list)


class LegacyMigrationRequest(BaseModel):
    rollback: bool = False


class LegacyMigrationResponse(BaseModel):
    migrated: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failed: Dict[str, dict] = Field(default_factory=dict)
