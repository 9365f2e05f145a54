"""Tests for transaction reversal."""
import asyncio
from datetime import date
from unittest.mock import patch

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

from billing_ledger.core.exceptions import PartialReversalError
from billing_ledger.models.bill import BillStatus
from billing_ledger.repositories.bill_repo import BillRepository
from billing_ledger.services.credit_service import CreditLedgerService
from billing_ledger.services.payment_service import PaymentService
from billing_ledger.services.reversal_service import ReversalService

PAYMENT_DATE = date(2026, 1, 5)


async def bill_state(db, tenant_id, account_id="101"):
    bills = await BillRepository(db).list(tenant_id, account_id=account_id)
    return [(b.period_key, b.base_paid, b.penalty_paid, b.status) for b in bills]


@pytest.mark.asyncio
class TestReversalService:

    async def test_payment_and_reversal_round_trip(self, test_db, plain_tenant):
        payments = PaymentService(test_db)
        await payments.generate_period(plain_tenant, "2026-01", {"101": 10000})
        await payments.generate_period(plain_tenant, "2026-02", {"101": 10000})
        before = await bill_state(test_db, plain_tenant)

        result = await payments.record_payment(plain_tenant, "101", 25000, PAYMENT_DATE)
        outcome = await ReversalService(test_db).reverse(plain_tenant, result["transaction_id"])

        assert outcome.reversed is True
        assert outcome.credit_restored is True
        assert outcome.bills_restored == 2
        assert outcome.affected_accounts == ["101"]
        assert await bill_state(test_db, plain_tenant) == before
        assert await CreditLedgerService(test_db).get_balance(plain_tenant, "101") == 0
        assert await test_db["transactions"].count_documents({}) == 0
        record = await test_db["reversals"].find_one({"_id": result["transaction_id"]})
        assert record["state"] == "done"

    async def test_reversal_is_idempotent(self, test_db, plain_tenant):
        payments = PaymentService(test_db)
        await payments.generate_period(plain_tenant, "2026-01", {"101": 10000})
        result = await payments.record_payment(plain_tenant, "101", 10000, PAYMENT_DATE)
        service = ReversalService(test_db)

        first = await service.reverse(plain_tenant, result["transaction_id"])
        second = await service.reverse(plain_tenant, result["transaction_id"])

        assert first.reversed is True
        assert first.credit_restored is False
        assert second.reversed is False
        assert await bill_state(test_db, plain_tenant) == [("2026-01", 0, 0, BillStatus.UNPAID)]

    async def test_unknown_transaction(self, test_db, plain_tenant):
        outcome = await ReversalService(test_db).reverse(plain_tenant, str(ObjectId()))

        assert outcome.reversed is False
        assert outcome.credit_restored is False

    async def test_credit_spent_by_payment_is_given_back(self, test_db, plain_tenant):
        payments = PaymentService(test_db)
        credit = CreditLedgerService(test_db)
        await payments.generate_period(plain_tenant, "2026-01", {"101": 10000})
        await payments.generate_period(plain_tenant, "2026-02", {"101": 10000})
        await credit.add_history_entry(plain_tenant, "101", 10000, timestamp="2025-12-15T00:00:00Z")

        result = await payments.record_payment(plain_tenant, "101", 5000, PAYMENT_DATE)
        assert result["credit_balance_after"] == 0
        assert [a.amount for a in result["allocations"]] == [5000, 0]

        await ReversalService(test_db).reverse(plain_tenant, result["transaction_id"])

        assert await credit.get_balance(plain_tenant, "101") == 10000
        assert [s[1] for s in await bill_state(test_db, plain_tenant)] == [0, 0]

    async def test_later_payment_reversed_first(self, test_db, plain_tenant):
        payments = PaymentService(test_db)
        await payments.generate_period(plain_tenant, "2026-01", {"101": 10000})
        first = await payments.record_payment(plain_tenant, "101", 4000, PAYMENT_DATE)
        second = await payments.record_payment(plain_tenant, "101", 3000, PAYMENT_DATE)

        await ReversalService(test_db).reverse(plain_tenant, second["transaction_id"])

        assert await bill_state(test_db, plain_tenant) == [("2026-01", 4000, 0, BillStatus.PARTIAL)]
        assert await test_db["transactions"].count_documents({"_id": ObjectId(first["transaction_id"])}) == 1

    async def test_partial_reversal_then_resume(self, test_db, plain_tenant):
        payments = PaymentService(test_db)
        await payments.generate_period(plain_tenant, "2026-01", {"101": 10000})
        await payments.generate_period(plain_tenant, "2026-02", {"101": 10000})
        await payments.record_payment(plain_tenant, "101", 4000, PAYMENT_DATE)
        result = await payments.record_payment(plain_tenant, "101", 18000, PAYMENT_DATE)
        transaction_id = result["transaction_id"]

        service = ReversalService(test_db)
        real_save = service.bills.save_bill

        async def flaky_save(tenant_id, bill, tolerance=None):
            if bill.period_key == "2026-02":
                raise PyMongoError("connection lost")
            await real_save(tenant_id, bill, tolerance)

        with patch.object(service.bills, "save_bill", side_effect=flaky_save):
            with pytest.raises(PartialReversalError) as exc_info:
                await service.reverse(plain_tenant, transaction_id)

        assert exc_info.value.credit_restored is True
        assert exc_info.value.failed_bill == "101:2026-02"
        assert await CreditLedgerService(test_db).get_balance(plain_tenant, "101") == 0
        assert await test_db["audit_log"].count_documents({"action": "partial_reversal"}) == 1
        record = await test_db["reversals"].find_one({"_id": transaction_id})
        assert record["state"] == "credit_reversed"

        outcome = await ReversalService(test_db).reverse(plain_tenant, transaction_id)

        assert outcome.reversed is True
        assert await bill_state(test_db, plain_tenant) == [
            ("2026-01", 4000, 0, BillStatus.PARTIAL),
            ("2026-02", 0, 0, BillStatus.UNPAID),
        ]

    async def test_interrupted_payment_restores_only_written_bills(self, test_db, plain_tenant):
        payments = PaymentService(test_db)
        await payments.generate_period(plain_tenant, "2026-01", {"101": 10000})
        await payments.generate_period(plain_tenant, "2026-02", {"101": 10000})
        await payments.record_payment(plain_tenant, "101", 4000, PAYMENT_DATE)
        real_save = payments.bills.save_bill

        async def flaky_save(tenant_id, bill, tolerance=None):
            if bill.period_key == "2026-02":
                raise PyMongoError("connection lost")
            await real_save(tenant_id, bill, tolerance)

        with patch.object(payments.bills, "save_bill", side_effect=flaky_save):
            with pytest.raises(PyMongoError):
                await payments.record_payment(plain_tenant, "101", 12000, PAYMENT_DATE)

        pending = await payments.list_pending(plain_tenant)
        assert len(pending) == 1
        assert await bill_state(test_db, plain_tenant) == [
            ("2026-01", 10000, 0, BillStatus.PAID),
            ("2026-02", 0, 0, BillStatus.UNPAID),
        ]

        outcome = await ReversalService(test_db).reverse(plain_tenant, pending[0]["id"])

        assert outcome.reversed is True
        assert outcome.bills_restored == 1
        assert await bill_state(test_db, plain_tenant) == [
            ("2026-01", 4000, 0, BillStatus.PARTIAL),
            ("2026-02", 0, 0, BillStatus.UNPAID),
        ]

    async def test_payment_interrupted_before_any_bill_leaves_bills_alone(self, test_db, plain_tenant):
        payments = PaymentService(test_db)
        await payments.generate_period(plain_tenant, "2026-01", {"101": 10000})
        await payments.record_payment(plain_tenant, "101", 4000, PAYMENT_DATE)

        with patch.object(payments.bills, "save_bill", side_effect=PyMongoError("connection lost")):
            with pytest.raises(PyMongoError):
                await payments.record_payment(plain_tenant, "101", 3000, PAYMENT_DATE)

        pending = await payments.list_pending(plain_tenant)
        outcome = await ReversalService(test_db).reverse(plain_tenant, pending[0]["id"])

        assert outcome.reversed is True
        assert outcome.bills_restored == 0
        assert await bill_state(test_db, plain_tenant) == [("2026-01", 4000, 0, BillStatus.PARTIAL)]

    async def test_concurrent_reversals_restore_bills_once(self, test_db, plain_tenant):
        payments = PaymentService(test_db)
        await payments.generate_period(plain_tenant, "2026-01", {"101": 10000})
        await payments.record_payment(plain_tenant, "101", 4000, PAYMENT_DATE)
        second = await payments.record_payment(plain_tenant, "101", 3000, PAYMENT_DATE)

        service = ReversalService(test_db)
        real_get = service.records.get

        async def yielding_get(transaction_id):
            record = await real_get(transaction_id)
            await asyncio.sleep(0)
            return record

        with patch.object(service.records, "get", side_effect=yielding_get):
            outcomes = await asyncio.gather(
                service.reverse(plain_tenant, second["transaction_id"]),
                service.reverse(plain_tenant, second["transaction_id"])
            )

        assert sorted(o.reversed for o in outcomes) == [False, True]
        assert await bill_state(test_db, plain_tenant) == [("2026-01", 4000, 0, BillStatus.PARTIAL)]
