"""
Payment recording - distribution, persistence and follow-up penalty refresh.

Write order (each step can be found again by transaction id):
1. Transaction inserted as ``pending`` with its allocations
2. Bill updates, each recorded on the transaction as applied
3. One credit ledger entry for the net credit change (skipped when zero)
4. Transaction marked ``committed``
5. Surgical penalty recalculation for the account

An interrupted payment stays ``pending`` and is undone with the reversal
workflow.
"""

import logging
from datetime import date
from typing import Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.core.exceptions import (
    AllocationSumMismatchError,
    InvalidPaymentError,
    TransactionNotFoundError,
)
from billing_ledger.core.locks import account_lock
from billing_ledger.models.allocation import AllocationType
from billing_ledger.models.base import validate_key_segment
from billing_ledger.models.bill import Bill
from billing_ledger.models.transaction import Transaction
from billing_ledger.repositories.audit_repo import AuditLogRepository
from billing_ledger.repositories.bill_repo import BillRepository
from billing_ledger.repositories.tenant_repo import TenantConfigRepository
from billing_ledger.repositories.transaction_repo import TransactionRepository
from billing_ledger.services.allocation_service import (
    allocations_for_transaction,
    migrate_legacy_distribution,
    rollback_legacy_migration,
    summarize,
)
from billing_ledger.services.credit_service import CreditLedgerService
from billing_ledger.services.distribution_service import distribute
from billing_ledger.services.penalty_service import PenaltyRecalculationService
from billing_ledger.utils.currency_validation import normalize_centavos
from billing_ledger.utils.periods import due_date_for_period

logger = logging.getLogger(__name__)


class PaymentService:
    """Records payments and generates the bills they pay."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.bills = BillRepository(db)
        self.tenants = TenantConfigRepository(db)
        self.transactions = TransactionRepository(db)
        self.audit = AuditLogRepository(db)
        self.credit = CreditLedgerService(db)
        self.penalties = PenaltyRecalculationService(db)

    async def record_payment(
        self,
        tenant_id: str,
        account_id: str,
        amount,
        payment_date: date,
        note: str = ""
    ) -> dict:
        """Distribute a payment over the account's bills and credit balance."""
        validate_key_segment(account_id, "account_id")
        config = await self.tenants.get_or_default(tenant_id)
        tolerance = await self.tenants.currency_tolerance(tenant_id)
        amount = normalize_centavos(amount, "amount", tolerance)
        if amount <= 0:
            raise InvalidPaymentError(
                "Payment amount must be positive",
                tenant_id=tenant_id,
                account_id=account_id,
                amount=amount
            )

        async with account_lock(tenant_id, account_id):
            balance = await self.credit.get_balance(tenant_id, account_id)
            outstanding = await self.bills.list_outstanding(tenant_id, account_id)
            result = distribute(account_id, amount, outstanding, balance, tolerance)

            transaction = Transaction(
                tenant_id=tenant_id,
                account_id=account_id,
                amount=amount,
                payment_date=payment_date,
                note=note,
                allocations=result.allocations,
                allocation_summary=result.allocation_summary
            )
            await self.transactions.insert(transaction, tolerance)
            transaction_id = str(transaction.id)

            period_allocations = {
                a.data.get("period_key"): a.id
                for a in result.allocations
                if a.type == AllocationType.PERIOD
            }
            for update in result.bill_updates:
                await self.bills.save_bill(tenant_id, update.bill, tolerance)
                await self.transactions.mark_applied(transaction.id, period_allocations[update.period_key])

            balance_after = balance
            if result.credit_delta != 0:
                balance_after, _ = await self.credit.apply_in_lock(
                    tenant_id,
                    account_id,
                    result.credit_delta,
                    note=note or f"Payment {transaction_id}",
                    transaction_id=transaction_id,
                    source="payment"
                )

            await self.transactions.mark_committed(transaction.id, balance_after)

        logger.info(
            "Payment recorded",
            extra={
                "tenant_id": tenant_id,
                "account_id": account_id,
                "transaction_id": transaction_id,
                "amount": amount,
                "bills_touched": len(result.bill_updates),
                "credit_delta": result.credit_delta,
                "credit_balance_after": balance_after
            }
        )

        if config.penalty_policy is not None:
            await self.penalties.recalculate_units(tenant_id, [account_id])

        return {
            "transaction_id": transaction_id,
            "allocations": result.allocations,
            "allocation_summary": result.allocation_summary,
            "credit_balance_after": balance_after,
            "bill_updates": result.bill_updates
        }

    async def get_transaction(self, tenant_id: str, transaction_id: str) -> dict:
        """Stored transaction with allocations, reading legacy records too."""
        doc = await self.transactions.get_document(tenant_id, transaction_id)
        if not doc:
            raise TransactionNotFoundError(
                "Transaction not found",
                tenant_id=tenant_id,
                transaction_id=transaction_id
            )
        return self._transaction_view(doc)

    async def list_pending(self, tenant_id: str) -> List[dict]:
        """Payments interrupted before commit; reverse them to clean up."""
        docs = await self.transactions.list_pending(tenant_id)
        return [self._transaction_view(doc) for doc in docs]

    @staticmethod
    def _transaction_view(doc: dict) -> dict:
        allocations = allocations_for_transaction(doc)
        return {
            "id": str(doc["_id"]),
            "tenant_id": doc["tenant_id"],
            "account_id": doc.get("account_id"),
            "amount": doc.get("amount"),
            "payment_date": doc.get("payment_date"),
            "note": doc.get("note", ""),
            "status": doc.get("status", "committed"),
            "allocations": allocations,
            "allocation_summary": summarize(allocations),
            "credit_balance_after": doc.get("credit_balance_after")
        }

    async def generate_period(self, tenant_id: str, period_key: str, charges: Dict[str, int]) -> List[Bill]:
        """Create the unpaid bills of a billing period, due on the tenant's due day."""
        config = await self.tenants.get_or_default(tenant_id)
        tolerance = await self.tenants.currency_tolerance(tenant_id)
        due = due_date_for_period(period_key, config.due_day_of_month)
        bills = await self.bills.create_period(tenant_id, period_key, charges, due, tolerance)

        await self.audit.write(
            tenant_id, "bill_periods", "generate_period", period_key,
            f"Generated {len(bills)} bills due {due.isoformat()}"
        )
        logger.info(
            "Billing period generated",
            extra={"tenant_id": tenant_id, "period_key": period_key, "bills": len(bills)}
        )
        return bills

    async def migrate_legacy(self, tenant_id: str, rollback: bool = False) -> dict:
        """
        Convert legacy ``dues_distribution`` records to allocations, or undo it.

        Records whose legacy split does not add up are reported, not migrated.
        """
        migrated = []
        skipped = []
        failed = {}

        for doc in await self.transactions.list_legacy(tenant_id):
            transaction_id = str(doc["_id"])
            if rollback:
                fields = rollback_legacy_migration(doc)
                if fields is None:
                    skipped.append(transaction_id)
                    continue
                await self.transactions.set_fields(doc["_id"], {}, unset=fields)
                migrated.append(transaction_id)
                continue

            try:
                fields = migrate_legacy_distribution(doc)
            except AllocationSumMismatchError as exc:
                logger.warning(
                    "Legacy transaction not migrated",
                    extra={"tenant_id": tenant_id, "transaction_id": transaction_id, "error": str(exc)}
                )
                failed[transaction_id] = exc.to_dict()
                continue
            if fields is None:
                skipped.append(transaction_id)
                continue
            await self.transactions.set_fields(doc["_id"], fields)
            migrated.append(transaction_id)

        action = "rollback_legacy_migration" if rollback else "migrate_legacy"
        await self.audit.write(
            tenant_id, "transactions", action, tenant_id,
            f"{len(migrated)} migrated, {len(skipped)} skipped, {len(failed)} failed"
        )
        logger.info(
            "Legacy allocation migration finished",
            extra={
                "tenant_id": tenant_id,
                "rollback": rollback,
                "migrated": len(migrated),
                "skipped": len(skipped),
                "failed": len(failed)
            }
        )
        return {"migrated": migrated, "skipped": skipped, "failed": failed}
