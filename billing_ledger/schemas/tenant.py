from typing import Optional

from pydantic import BaseModel, Field

from billing_ledger.models.tenant import PenaltyPolicy


class TenantConfigUpdate(BaseModel):
    fiscal_year_start_month: int = Field(default=1, ge=1, le=12)
    due_day_of_month: int = Field(default=1, ge=1, le=31)
    penalty_policy: Optional[PenaltyPolicy] = None
    currency_tolerance: Optional[float] = Field(default=None, ge=0)
