"""
Allocation model - one line of a transaction's breakdown.

A transaction amount is split across N targets (a billing period, the
account's credit balance, a category). The ``type`` field is the
discriminator; ``metadata.processing_strategy`` tells the reversal workflow
how to undo the line.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AllocationType(str, Enum):
    PERIOD = "period"
    CREDIT = "credit"
    CATEGORY = "category"


class ProcessingStrategy(str, Enum):
    PERIOD_BILLS = "period_bills"
    ACCOUNT_CREDIT = "account_credit"
    CATEGORY_SPLIT = "category_split"


class AllocationMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    processing_strategy: ProcessingStrategy
    cleanup_required: bool = True
    migrated_from: Optional[str] = None
    migration_date: Optional[str] = None


class Allocation(BaseModel):
    """Immutable once built; correcting a split means delete + recreate."""
    model_config = ConfigDict(frozen=True)

    id: str
    type: AllocationType
    target_id: str
    target_label: str
    amount: int
    data: Dict[str, Any] = Field(default_factory=dict)
    metadata: AllocationMetadata


class AllocationSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_allocated: int
    allocation_count: int
    allocation_type: Optional[AllocationType] = None
    has_multiple_types: bool = False


class DistributionItem(BaseModel):
    """Input line for build_allocations; amount is validated there."""
    type: AllocationType
    target_id: str
    target_label: str
    amount: Any
    data: Dict[str, Any] = Field(default_factory=dict)
    processing_strategy: ProcessingStrategy
    cleanup_required: bool = True
