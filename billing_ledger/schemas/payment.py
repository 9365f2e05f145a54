from datetime import date
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from billing_ledger.models.allocation import Allocation, AllocationSummary
from billing_ledger.services.distribution_service import BillUpdate


class PaymentCreate(BaseModel):
    account_id: str
    amount: Union[int, float]   # centavos; floats must be within tolerance of an integer
    payment_date: date
    note: str = ""


class PaymentResponse(BaseModel):
    transaction_id: str
    allocations: List[Allocation] = Field(default_factory=list)
    allocation_summary: Optional[AllocationSummary] = None
    credit_balance_after: int
    bill_updates: List[BillUpdate] = Field(default_factory=list)
