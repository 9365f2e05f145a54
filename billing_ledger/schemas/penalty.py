from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PenaltyRecalculateRequest(BaseModel):
    """Omit ``unit_ids`` to sweep every account of the tenant."""
    as_of: Optional[date] = None
    unit_ids: Optional[List[str]] = None


class AllTenantsRecalculateRequest(BaseModel):
    as_of: Optional[date] = None


class PenaltyRecalculateResponse(BaseModel):
    tenant_id: str
    surgical: bool
    processing_time_ms: float
    bills_processed: int
    bills_updated: int
    bills_skipped_paid: int
    bills_skipped_out_of_scope: int
    total_penalties_updated: int
    scope: Optional[List[str]] = None


class AllTenantsRecalculateResponse(BaseModel):
    results: Dict[str, PenaltyRecalculateResponse] = Field(default_factory=dict)
    errors: Dict[str, dict] = Field(default_factory=dict)
