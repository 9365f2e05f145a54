"""
Transaction reversal - undoes a payment's credit and bill effects, then deletes it.

Steps, each recorded in the ``reversals`` collection before the next starts:
    located -> credit_reversed -> bills_reversed -> done

A call that finds a step record resumes after the last finished step, and
bills already restored are remembered individually, so retrying after a
failure never restores a bill twice. A payment interrupted while still
``pending`` only gives back the bills it recorded as applied. Reversing a
transaction that no longer exists is a successful no-op.
"""

import logging
from typing import List, Set

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from billing_ledger.core.exceptions import (
    AccountNotFoundError,
    BillingLedgerError,
    EntryNotFoundError,
    PartialReversalError,
)
from billing_ledger.core.locks import account_lock
from billing_ledger.models.allocation import Allocation, AllocationType, ProcessingStrategy
from billing_ledger.models.transaction import TransactionStatus
from billing_ledger.repositories.audit_repo import AuditLogRepository
from billing_ledger.repositories.bill_repo import BillRepository
from billing_ledger.repositories.tenant_repo import TenantConfigRepository
from billing_ledger.repositories.transaction_repo import (
    ReversalRecordRepository,
    TransactionRepository,
)
from billing_ledger.services.allocation_service import allocations_for_transaction
from billing_ledger.services.credit_service import CreditLedgerService
from billing_ledger.services.penalty_service import PenaltyRecalculationService

logger = logging.getLogger(__name__)

LOCATED = "located"
CREDIT_REVERSED = "credit_reversed"
BILLS_REVERSED = "bills_reversed"
DONE = "done"


class ReversalOutcome(BaseModel):
    reversed: bool
    credit_restored: bool = False
    bills_restored: int = 0
    affected_accounts: List[str] = Field(default_factory=list)


def _restores_bill(allocation: Allocation) -> bool:
    return (
        allocation.type == AllocationType.PERIOD
        and allocation.metadata.processing_strategy == ProcessingStrategy.PERIOD_BILLS
        and allocation.metadata.cleanup_required
    )


class ReversalService:
    """Deletes transactions and restores what they paid."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.transactions = TransactionRepository(db)
        self.records = ReversalRecordRepository(db)
        self.bills = BillRepository(db)
        self.tenants = TenantConfigRepository(db)
        self.audit = AuditLogRepository(db)
        self.credit = CreditLedgerService(db)
        self.penalties = PenaltyRecalculationService(db)

    async def reverse(self, tenant_id: str, transaction_id: str) -> ReversalOutcome:
        doc = await self.transactions.get_document(tenant_id, transaction_id)
        if doc is None:
            return self._not_found(tenant_id, transaction_id)

        transaction_id = str(doc["_id"])
        account_id = doc["account_id"]

        async with account_lock(tenant_id, account_id):
            # A concurrent call may have finished the reversal while we waited
            doc = await self.transactions.get_document(tenant_id, transaction_id)
            record = await self.records.get(transaction_id) or {}
            if doc is None or record.get("state") == DONE:
                return self._not_found(tenant_id, transaction_id)

            allocations = allocations_for_transaction(doc)
            if doc.get("status") == TransactionStatus.PENDING.value:
                applied = set(doc.get("applied_allocations", []))
                allocations = [
                    a for a in allocations
                    if a.id in applied or not _restores_bill(a)
                ]

            affected = {account_id}
            for allocation in allocations:
                if allocation.data.get("account_id"):
                    affected.add(allocation.data["account_id"])

            state = record.get("state")
            credit_restored = record.get("credit_restored", False)
            restored_ids: Set[str] = set(record.get("restored_allocations", []))

            if state is None:
                await self.records.set_state(
                    tenant_id, transaction_id, LOCATED,
                    account_id=account_id,
                    allocation_count=len(allocations)
                )
                state = LOCATED

            if state == LOCATED:
                credit_restored = await self._reverse_credit(tenant_id, account_id, transaction_id)
                await self.records.set_state(
                    tenant_id, transaction_id, CREDIT_REVERSED,
                    credit_restored=credit_restored
                )
                state = CREDIT_REVERSED

            if state == CREDIT_REVERSED:
                await self._restore_bills(tenant_id, transaction_id, allocations, restored_ids, credit_restored)
                await self.records.set_state(tenant_id, transaction_id, BILLS_REVERSED)

            config = await self.tenants.get_or_default(tenant_id)
            if config.penalty_policy is not None:
                await self.penalties.recalculate_units(tenant_id, sorted(affected))

            await self.transactions.delete(tenant_id, transaction_id)
            await self.records.set_state(tenant_id, transaction_id, DONE)

        await self.audit.write(
            tenant_id, "transactions", "delete", transaction_id,
            f"Reversed payment of {doc.get('amount')} for {account_id}"
        )

        bills_restored = sum(1 for a in allocations if _restores_bill(a))
        logger.info(
            "Transaction reversed",
            extra={
                "tenant_id": tenant_id,
                "transaction_id": transaction_id,
                "account_id": account_id,
                "credit_restored": credit_restored,
                "bills_restored": bills_restored
            }
        )
        return ReversalOutcome(
            reversed=True,
            credit_restored=credit_restored,
            bills_restored=bills_restored,
            affected_accounts=sorted(affected)
        )

    @staticmethod
    def _not_found(tenant_id: str, transaction_id: str) -> ReversalOutcome:
        logger.info(
            "Transaction not found, nothing to reverse",
            extra={"tenant_id": tenant_id, "transaction_id": transaction_id}
        )
        return ReversalOutcome(reversed=False)

    async def _reverse_credit(self, tenant_id: str, account_id: str, transaction_id: str) -> bool:
        """Remove the transaction's ledger entries; False if it never touched credit."""
        try:
            await self.credit.reverse_in_lock(tenant_id, account_id, transaction_id)
        except (EntryNotFoundError, AccountNotFoundError):
            logger.info(
                "No credit entries to reverse",
                extra={"tenant_id": tenant_id, "account_id": account_id, "transaction_id": transaction_id}
            )
            return False
        return True

    async def _restore_bills(
        self,
        tenant_id: str,
        transaction_id: str,
        allocations: List[Allocation],
        restored_ids: Set[str],
        credit_restored: bool
    ) -> None:
        tolerance = await self.tenants.currency_tolerance(tenant_id)

        for allocation in allocations:
            if not _restores_bill(allocation) or allocation.id in restored_ids:
                continue

            account_id = allocation.data.get("account_id")
            period_key = allocation.data.get("period_key")
            base_applied = allocation.data.get("base_applied", allocation.amount)
            penalty_applied = allocation.data.get("penalty_applied", 0)
            try:
                bill = await self.bills.get(tenant_id, account_id, period_key)
                restored = bill.with_paid(
                    max(0, bill.base_paid - base_applied),
                    max(0, bill.penalty_paid - penalty_applied)
                )
                await self.bills.save_bill(tenant_id, restored, tolerance)
            except (BillingLedgerError, PyMongoError, ValueError) as exc:
                failed_bill = f"{account_id}:{period_key}"
                logger.error(
                    "Bill restoration failed after credit reversal",
                    extra={
                        "tenant_id": tenant_id,
                        "transaction_id": transaction_id,
                        "failed_bill": failed_bill,
                        "credit_restored": credit_restored,
                        "error": str(exc)
                    }
                )
                await self.audit.write(
                    tenant_id, "transactions", "partial_reversal", transaction_id,
                    f"Bill {failed_bill} not restored: {exc}"
                )
                raise PartialReversalError(
                    f"Transaction {transaction_id} partially reversed: bill {failed_bill} not restored",
                    credit_restored=True,
                    failed_bill=failed_bill,
                    tenant_id=tenant_id,
                    transaction_id=transaction_id
                ) from exc

            restored_ids.add(allocation.id)
            await self.records.set_state(
                tenant_id, transaction_id, CREDIT_REVERSED,
                restored_allocations=sorted(restored_ids)
            )
