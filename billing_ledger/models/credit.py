"""
Credit ledger model - per-account running balance with replayable history.

Stored once per tenant (``credit_balances`` collection, ``_id`` = tenant id)
with one sub-document per account under ``accounts.<account_id>``.
Positive balance = prepaid surplus, negative = credit repair state.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CreditEntryType(str, Enum):
    CREDIT_ADDED = "credit_added"
    CREDIT_USED = "credit_used"


class CreditHistoryEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    timestamp: str              # ISO-8601, chronological sort key
    amount: int                 # signed centavos: + added, - used
    balance_after: int
    transaction_id: Optional[str] = None
    note: str = ""
    source: str = "admin"
    type: CreditEntryType


class LastChange(BaseModel):
    timestamp: str
    history_index: int
    fiscal_year: Optional[int] = None


class AccountCredit(BaseModel):
    credit_balance: int = 0
    version: int = 0
    last_change: Optional[LastChange] = None
    history: List[CreditHistoryEntry] = Field(default_factory=list)

    def find_by_transaction(self, transaction_id: str) -> List[CreditHistoryEntry]:
        return [entry for entry in self.history if entry.transaction_id == transaction_id]
