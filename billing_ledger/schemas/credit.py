from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from billing_ledger.models.credit import CreditHistoryEntry


class CreditHistoryResponse(BaseModel):
    account_id: str
    balance: int
    history: List[CreditHistoryEntry] = Field(default_factory=list)


class CreditBalancesResponse(BaseModel):
    tenant_id: str
    balances: Dict[str, int] = Field(default_factory=dict)


class CreditEntryCreate(BaseModel):
    """Admin entry; a past ``timestamp`` inserts it in chronological position."""
    amount: Union[int, float]
    timestamp: Optional[datetime] = None
    note: str = ""
    source: str = "admin"
    transaction_id: Optional[str] = None


class CreditEntryUpdate(BaseModel):
    amount: Optional[Union[int, float]] = None
    timestamp: Optional[datetime] = None
    note: Optional[str] = None
    source: Optional[str] = None


class CreditBalanceResponse(BaseModel):
    account_id: str
    balance: int
