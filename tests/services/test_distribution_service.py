"""Tests for payment distribution."""
import pytest

from billing_ledger.core.exceptions import InvalidPaymentError
from billing_ledger.models.allocation import AllocationType
from billing_ledger.models.bill import Bill, BillStatus
from billing_ledger.services.distribution_service import distribute


def bill(period_key, base_charge, penalty_amount=0, base_paid=0, penalty_paid=0, account_id="101"):
    return Bill(
        account_id=account_id,
        period_key=period_key,
        base_charge=base_charge,
        penalty_amount=penalty_amount,
        base_paid=base_paid,
        penalty_paid=penalty_paid
    ).with_paid(base_paid, penalty_paid)


class TestDistribute:

    def test_oldest_period_first(self):
        bills = [bill("2026-03", 100), bill("2026-01", 100), bill("2026-02", 100)]

        result = distribute("101", 150, bills)

        assert [u.period_key for u in result.bill_updates] == ["2026-01", "2026-02"]
        assert [u.base_applied for u in result.bill_updates] == [100, 50]
        assert result.bill_updates[0].bill.status == BillStatus.PAID
        assert result.bill_updates[1].bill.status == BillStatus.PARTIAL
        assert result.bill_updates[1].remaining_due == 50
        assert result.credit_delta == 0

    def test_base_paid_before_penalty(self):
        result = distribute("101", 120, [bill("2026-01", 100, penalty_amount=50)])

        update = result.bill_updates[0]
        assert update.base_applied == 100
        assert update.penalty_applied == 20
        assert update.bill.status == BillStatus.PARTIAL
        assert update.remaining_due == 30

    def test_negative_credit_repaid_first(self):
        result = distribute("101", 50, [bill("2026-01", 100)], credit_balance=-50)

        assert result.bill_updates == []
        assert result.credit_repaid == 50
        assert result.credit_balance_after == 0
        assert [a.type for a in result.allocations] == [AllocationType.CREDIT]

    def test_overpayment_becomes_credit(self):
        bills = [bill("2026-01", 10000), bill("2026-02", 10000)]

        result = distribute("101", 25000, bills)

        assert all(u.bill.status == BillStatus.PAID for u in result.bill_updates)
        assert result.overpayment == 5000
        assert result.credit_delta == 5000
        assert [a.amount for a in result.allocations] == [10000, 10000, 5000]
        assert result.allocation_summary.total_allocated == 25000

    def test_existing_credit_spent_after_cash(self):
        bills = [bill("2026-01", 100), bill("2026-02", 100)]

        result = distribute("101", 120, bills, credit_balance=100)

        assert [u.cash_applied for u in result.bill_updates] == [100, 20]
        assert [u.credit_applied for u in result.bill_updates] == [0, 80]
        assert result.credit_used == 80
        assert result.credit_balance_after == 20
        assert sum(a.amount for a in result.allocations) == 120

    def test_paid_bills_are_ignored(self):
        bills = [bill("2026-01", 100, base_paid=100), bill("2026-02", 100)]

        result = distribute("101", 100, bills)

        assert [u.period_key for u in result.bill_updates] == ["2026-02"]

    def test_input_bills_not_modified(self):
        original = bill("2026-01", 100)

        distribute("101", 100, [original])

        assert original.base_paid == 0
        assert original.status == BillStatus.UNPAID

    def test_negative_payment_rejected(self):
        with pytest.raises(InvalidPaymentError):
            distribute("101", -1, [])

    def test_bill_of_other_account_rejected(self):
        with pytest.raises(InvalidPaymentError):
            distribute("101", 100, [bill("2026-01", 100, account_id="102")])
