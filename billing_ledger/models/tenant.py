from typing import Optional

from pydantic import BaseModel, Field


class PenaltyPolicy(BaseModel):
    """Late-payment penalty rule, e.g. 5% per month after a 10 day grace period."""
    rate: float = Field(gt=0)           # monthly rate, 0.05 = 5%
    compounding: bool = True
    grace_days: int = Field(ge=0)


class TenantConfig(BaseModel):
    tenant_id: str
    fiscal_year_start_month: int = Field(default=1, ge=1, le=12)
    due_day_of_month: int = Field(default=1, ge=1, le=31)
    penalty_policy: Optional[PenaltyPolicy] = None
    currency_tolerance: Optional[float] = Field(default=None, ge=0)
