from typing import List, Optional

from pydantic import BaseModel


class PenaltyRecalculationResult(BaseModel):
    """Timing and counters of one recalculation call; not persisted."""
    tenant_id: str
    processing_time_ms: float = 0.0
    bills_processed: int = 0
    bills_updated: int = 0
    bills_skipped_paid: int = 0
    bills_skipped_out_of_scope: int = 0
    total_penalties_updated: int = 0
    scope: Optional[List[str]] = None   # None = full tenant sweep

    @property
    def surgical(self) -> bool:
        return self.scope is not None


class PenaltySummary(BaseModel):
    tenant_id: str
    total_penalties: int
    unpaid_bills: int
