"""
Bill model - one account's obligation for one billing period.

Design principles:
- Bills are created when a period is generated and never deleted
- Base charge is senior to penalty: payments cover base first
- Status: unpaid -> partial -> paid
- All amounts in integer centavos
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class BillStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class Bill(BaseModel):
    """
    Invariants:
    - base_paid <= base_charge, penalty_paid <= penalty_amount
    - total_amount == base_charge + penalty_amount
    - status = paid iff base and penalty are both fully paid
    """
    model_config = ConfigDict(populate_by_name=True)

    account_id: str
    period_key: str

    base_charge: int
    penalty_amount: int = 0
    total_amount: int = 0
    base_paid: int = 0
    penalty_paid: int = 0

    status: BillStatus = BillStatus.UNPAID
    last_penalty_update: Optional[str] = None

    @model_validator(mode="after")
    def _check_amounts(self) -> "Bill":
        for name in ("base_charge", "penalty_amount", "base_paid", "penalty_paid"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.base_paid > self.base_charge:
            raise ValueError(f"base_paid {self.base_paid} exceeds base_charge {self.base_charge}")
        if self.penalty_paid > self.penalty_amount:
            raise ValueError(f"penalty_paid {self.penalty_paid} exceeds penalty_amount {self.penalty_amount}")
        self.total_amount = self.base_charge + self.penalty_amount
        return self

    @property
    def base_due(self) -> int:
        return self.base_charge - self.base_paid

    @property
    def penalty_due(self) -> int:
        return self.penalty_amount - self.penalty_paid

    @property
    def remaining_due(self) -> int:
        """How much remains unpaid, base and penalty together."""
        return self.base_due + self.penalty_due

    def derive_status(self) -> BillStatus:
        if self.base_due == 0 and self.penalty_due == 0:
            return BillStatus.PAID
        if self.base_paid == 0 and self.penalty_paid == 0:
            return BillStatus.UNPAID
        return BillStatus.PARTIAL

    def with_paid(self, base_paid: int, penalty_paid: int) -> "Bill":
        """Copy with new paid amounts and a recomputed status."""
        bill = self.model_copy(update={"base_paid": base_paid, "penalty_paid": penalty_paid})
        bill.status = bill.derive_status()
        return bill

    def with_penalty(self, penalty_amount: int, updated_at: Optional[str] = None) -> "Bill":
        """Copy with a new penalty amount, total and status."""
        bill = self.model_copy(update={
            "penalty_amount": penalty_amount,
            "total_amount": self.base_charge + penalty_amount,
            "last_penalty_update": updated_at or self.last_penalty_update,
        })
        bill.status = bill.derive_status()
        return bill

    def to_document(self) -> dict:
        """Stored shape inside a period document (keyed by account id)."""
        doc = self.model_dump(mode="json", exclude={"account_id", "period_key"})
        return doc

    @classmethod
    def from_document(cls, account_id: str, period_key: str, doc: dict) -> "Bill":
        return cls(account_id=account_id, period_key=period_key, **{
            k: v for k, v in doc.items() if k in cls.model_fields
            and k not in ("account_id", "period_key")
        })
