from typing import Dict, Union

from pydantic import BaseModel, Field

from billing_ledger.models.bill import BillStatus


class PeriodCreate(BaseModel):
    period_key: str                             # YYYY-MM
    charges: Dict[str, Union[int, float]]       # account id -> base charge in centavos


class BillResponse(BaseModel):
    account_id: str
    period_key: str
    base_charge: int
    penalty_amount: int
    total_amount: int
    base_paid: int
    penalty_paid: int
    remaining_due: int
    status: BillStatus
    last_penalty_update: Union[str, None] = None

    model_config = {"from_attributes": True}


class PeriodResponse(BaseModel):
    tenant_id: str
    period_key: str
    bills: list[BillResponse] = Field(default_factory=list)
