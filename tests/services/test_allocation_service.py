"""Tests for allocation building and legacy migration."""
import pytest
from bson import ObjectId
from pydantic import ValidationError

from billing_ledger.core.exceptions import AllocationSumMismatchError, CurrencyPrecisionError
from billing_ledger.models.allocation import AllocationType, DistributionItem, ProcessingStrategy
from billing_ledger.services.allocation_service import (
    allocations_for_transaction,
    build_allocations,
    migrate_legacy_distribution,
    rollback_legacy_migration,
    summarize,
)


def period_item(amount, period_key="2026-01"):
    return DistributionItem(
        type=AllocationType.PERIOD,
        target_id=f"101:{period_key}",
        target_label=period_key,
        amount=amount,
        data={"account_id": "101", "period_key": period_key, "base_applied": amount},
        processing_strategy=ProcessingStrategy.PERIOD_BILLS
    )


def credit_item(amount):
    return DistributionItem(
        type=AllocationType.CREDIT,
        target_id="credit:101",
        target_label="Account Credit",
        amount=amount,
        data={"account_id": "101"},
        processing_strategy=ProcessingStrategy.ACCOUNT_CREDIT
    )


class TestBuildAllocations:

    def test_ids_and_summary(self):
        allocations, summary = build_allocations(
            [period_item(10000), period_item(10000, "2026-02"), credit_item(5000)],
            25000
        )

        assert [a.id for a in allocations] == ["alloc_001", "alloc_002", "alloc_003"]
        assert summary.total_allocated == 25000
        assert summary.allocation_count == 3
        assert summary.allocation_type == AllocationType.PERIOD
        assert summary.has_multiple_types is True

    def test_sum_mismatch_raises(self):
        with pytest.raises(AllocationSumMismatchError) as exc_info:
            build_allocations([period_item(10000)], 10001)

        assert exc_info.value.total_allocated == 10000
        assert exc_info.value.transaction_amount == 10001

    def test_float_noise_in_items_is_absorbed(self):
        allocations, summary = build_allocations([period_item(4999.9999999), credit_item(5000)], 10000)

        assert allocations[0].amount == 5000
        assert summary.total_allocated == 10000

    def test_amount_beyond_tolerance_rejected(self):
        with pytest.raises(CurrencyPrecisionError):
            build_allocations([period_item(4999.5), credit_item(5000.5)], 10000)

    def test_allocations_are_immutable(self):
        allocations, _ = build_allocations([period_item(100)], 100)

        with pytest.raises(ValidationError):
            allocations[0].amount = 200

    def test_dominant_type_first_seen_wins_ties(self):
        allocations, _ = build_allocations([credit_item(50), period_item(50)], 100)

        assert summarize(allocations).allocation_type == AllocationType.CREDIT


class TestLegacyMigration:

    def legacy_doc(self, amount=25000):
        return {
            "_id": ObjectId(),
            "tenant_id": "plain",
            "account_id": "101",
            "amount": amount,
            "dues_distribution": [
                {"unit_id": "101", "year": 2026, "month": 1, "amount": 10000},
                {"unit_id": "101", "year": 2026, "month": 2, "amount": 10000},
            ]
        }

    def test_legacy_records_read_as_allocations(self):
        allocations = allocations_for_transaction(self.legacy_doc())

        assert [a.type for a in allocations] == [AllocationType.PERIOD, AllocationType.PERIOD, AllocationType.CREDIT]
        assert allocations[0].data["period_key"] == "2026-01"
        assert allocations[2].amount == 5000
        assert allocations[2].metadata.cleanup_required is False
        assert sum(a.amount for a in allocations) == 25000

    def test_migration_sets_allocations_and_keeps_original(self):
        doc = self.legacy_doc()
        fields = migrate_legacy_distribution(doc)

        assert len(fields["allocations"]) == 3
        assert fields["allocation_summary"]["total_allocated"] == 25000
        assert fields["migration_metadata"]["original_count"] == 2
        assert "dues_distribution" not in fields

    def test_migration_is_reversible(self):
        doc = self.legacy_doc()
        doc.update(migrate_legacy_distribution(doc))

        assert migrate_legacy_distribution(doc) is None
        assert rollback_legacy_migration(doc) == ["allocations", "allocation_summary", "migration_metadata"]

    def test_overallocated_legacy_record_rejected(self):
        with pytest.raises(AllocationSumMismatchError):
            migrate_legacy_distribution(self.legacy_doc(amount=15000))
