"""
Allocation building and legacy migration.

Core rules:
1. Every allocation amount passes the centavos validation
2. Allocation ids are sequential and stable: alloc_001, alloc_002, ...
3. The allocations must add up exactly to the transaction amount
4. Legacy ``dues_distribution`` records are read through the same shape
"""

from collections import Counter
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from billing_ledger.core.exceptions import AllocationSumMismatchError
from billing_ledger.models.allocation import (
    Allocation,
    AllocationMetadata,
    AllocationSummary,
    AllocationType,
    DistributionItem,
    ProcessingStrategy,
)
from billing_ledger.utils.currency_validation import normalize_centavos
from billing_ledger.utils.periods import make_period_key, period_label


LEGACY_SOURCE = "dues_distribution"


def allocation_id(index: int) -> str:
    return f"alloc_{index + 1:03d}"


def summarize(allocations: Sequence[Allocation]) -> AllocationSummary:
    """Cached summary; the dominant type is the most frequent one (first seen wins ties)."""
    counts = Counter(alloc.type for alloc in allocations)
    dominant = None
    if allocations:
        top = max(counts.values())
        dominant = next(alloc.type for alloc in allocations if counts[alloc.type] == top)
    return AllocationSummary(
        total_allocated=sum(alloc.amount for alloc in allocations),
        allocation_count=len(allocations),
        allocation_type=dominant,
        has_multiple_types=len(counts) > 1
    )


def build_allocations(
    items: Sequence[DistributionItem],
    transaction_amount: int,
    tolerance: Optional[float] = None,
    transaction_id: Optional[str] = None
) -> Tuple[List[Allocation], AllocationSummary]:
    """
    Build immutable allocations for a transaction.

    Raises AllocationSumMismatchError when the integer sum differs from the
    transaction amount; there is no tolerance for this check.
    """
    amount = normalize_centavos(transaction_amount, "transaction.amount", tolerance)

    allocations = []
    for index, item in enumerate(items):
        allocations.append(Allocation(
            id=allocation_id(index),
            type=item.type,
            target_id=item.target_id,
            target_label=item.target_label,
            amount=normalize_centavos(item.amount, f"allocations[{index}].amount", tolerance),
            data=dict(item.data),
            metadata=AllocationMetadata(
                processing_strategy=item.processing_strategy,
                cleanup_required=item.cleanup_required
            )
        ))

    summary = summarize(allocations)
    if summary.total_allocated != amount:
        raise AllocationSumMismatchError(amount, summary.total_allocated, transaction_id)
    return allocations, summary


# ===== LEGACY RECORDS =====

def _legacy_period_key(entry: dict) -> str:
    if entry.get("period_key"):
        return entry["period_key"]
    return make_period_key(int(entry["year"]), int(entry["month"]))


def legacy_allocations(doc: dict, migration_date: Optional[str] = None) -> List[Allocation]:
    """
    Convert a legacy period-only split list to allocations.

    The legacy list only records base payments per period. Any part of the
    transaction amount it does not cover went to the account's credit
    balance and becomes a credit allocation.
    """
    entries = doc.get("dues_distribution") or []
    account_default = doc.get("account_id")
    allocations = []

    for index, entry in enumerate(entries):
        account_id = entry.get("account_id") or entry.get("unit_id") or account_default
        period_key = _legacy_period_key(entry)
        amount = normalize_centavos(entry.get("amount"), f"dues_distribution[{index}].amount")
        allocations.append(Allocation(
            id=allocation_id(index),
            type=AllocationType.PERIOD,
            target_id=f"{account_id}:{period_key}",
            target_label=period_label(period_key),
            amount=amount,
            data={
                "account_id": account_id,
                "period_key": period_key,
                "base_applied": amount,
                "penalty_applied": 0
            },
            metadata=AllocationMetadata(
                processing_strategy=ProcessingStrategy.PERIOD_BILLS,
                cleanup_required=True,
                migrated_from=LEGACY_SOURCE,
                migration_date=migration_date
            )
        ))

    remainder = normalize_centavos(doc.get("amount"), "transaction.amount") - sum(a.amount for a in allocations)
    if remainder < 0:
        raise AllocationSumMismatchError(
            doc.get("amount"),
            sum(a.amount for a in allocations),
            str(doc.get("_id"))
        )
    if remainder > 0:
        allocations.append(Allocation(
            id=allocation_id(len(allocations)),
            type=AllocationType.CREDIT,
            target_id=f"credit:{account_default}",
            target_label="Account Credit",
            amount=remainder,
            data={"account_id": account_default},
            metadata=AllocationMetadata(
                processing_strategy=ProcessingStrategy.ACCOUNT_CREDIT,
                cleanup_required=False,
                migrated_from=LEGACY_SOURCE,
                migration_date=migration_date
            )
        ))
    return allocations


def allocations_for_transaction(doc: dict) -> List[Allocation]:
    """Allocations of a stored transaction, whichever shape it was written in."""
    if doc.get("allocations"):
        return [Allocation(**alloc) for alloc in doc["allocations"]]
    if doc.get("dues_distribution"):
        return legacy_allocations(doc)
    return []


def migrate_legacy_distribution(doc: dict) -> Optional[dict]:
    """
    Fields to $set on a legacy transaction, or None if nothing to migrate.

    The original ``dues_distribution`` list is left in place for audit.
    """
    if not doc.get("dues_distribution") or doc.get("allocations"):
        return None

    migration_date = datetime.now(timezone.utc).isoformat()
    allocations = legacy_allocations(doc, migration_date)
    summary = summarize(allocations)
    return {
        "allocations": [alloc.model_dump(mode="json") for alloc in allocations],
        "allocation_summary": summary.model_dump(mode="json"),
        "migration_metadata": {
            "migrated_at": migration_date,
            "migration_version": "1.0",
            "original_count": len(doc["dues_distribution"])
        }
    }


def rollback_legacy_migration(doc: dict) -> Optional[List[str]]:
    """Fields to $unset to undo migrate_legacy_distribution, or None."""
    allocations = doc.get("allocations") or []
    if not allocations or not doc.get("dues_distribution"):
        return None
    if not all(a.get("metadata", {}).get("migrated_from") == LEGACY_SOURCE for a in allocations):
        return None
    return ["allocations", "allocation_summary", "migration_metadata"]
