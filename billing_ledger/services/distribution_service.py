"""
Payment distribution - turns one payment into bill payments and a credit change.

Algorithm (pure integer arithmetic, deterministic):
1. A negative credit balance is repaid first, before any bill
2. Bills are paid oldest period first; within a bill base before penalty
3. Funds = payment cash + positive credit balance; cash is spent first
4. Whatever cash is left after every bill becomes credit (overpayment)
5. One period allocation per touched bill carries the cash share only, so
   the allocations always add up to the payment amount
6. The net credit change is returned as a single delta for the ledger
"""

from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from billing_ledger.core.exceptions import InvalidPaymentError
from billing_ledger.models.allocation import (
    Allocation,
    AllocationSummary,
    AllocationType,
    DistributionItem,
    ProcessingStrategy,
)
from billing_ledger.models.bill import Bill
from billing_ledger.services.allocation_service import build_allocations
from billing_ledger.utils.currency_validation import normalize_centavos
from billing_ledger.utils.periods import period_label


class BillUpdate(BaseModel):
    """What one payment did to one bill."""

    account_id: str
    period_key: str
    base_applied: int
    penalty_applied: int
    cash_applied: int
    credit_applied: int
    bill: Bill

    @property
    def remaining_due(self) -> int:
        return self.bill.remaining_due


class DistributionResult(BaseModel):
    account_id: str
    payment_amount: int
    allocations: List[Allocation] = Field(default_factory=list)
    allocation_summary: AllocationSummary
    bill_updates: List[BillUpdate] = Field(default_factory=list)

    credit_balance_before: int
    credit_repaid: int = 0      # cash used to bring a negative balance toward zero
    credit_used: int = 0        # positive balance spent on bills
    overpayment: int = 0        # cash left after every bill

    @property
    def credit_delta(self) -> int:
        return self.credit_repaid + self.overpayment - self.credit_used

    @property
    def credit_balance_after(self) -> int:
        return self.credit_balance_before + self.credit_delta


def distribute(
    account_id: str,
    payment_amount: int,
    outstanding_bills: Sequence[Bill],
    credit_balance: int = 0,
    tolerance: Optional[float] = None
) -> DistributionResult:
    """
    Distribute a payment across an account's outstanding bills.

    The input bills are not modified; updated copies are returned in
    ``bill_updates``.
    """
    payment = normalize_centavos(payment_amount, "payment_amount", tolerance)
    balance = normalize_centavos(credit_balance, "credit_balance", tolerance)
    if payment < 0:
        raise InvalidPaymentError("Payment amount cannot be negative", account_id=account_id, amount=payment)

    for bill in outstanding_bills:
        if bill.account_id != account_id:
            raise InvalidPaymentError(
                "Bill belongs to another account",
                account_id=account_id,
                bill_account_id=bill.account_id,
                period_key=bill.period_key
            )

    cash = payment
    credit_repaid = 0
    if balance < 0:
        credit_repaid = min(cash, -balance)
        cash -= credit_repaid
    credit_available = max(0, balance)
    credit_used = 0

    items: List[DistributionItem] = []
    updates: List[BillUpdate] = []

    for bill in sorted(outstanding_bills, key=lambda b: b.period_key):
        funds = cash + credit_available
        if funds <= 0:
            break
        if bill.remaining_due == 0:
            continue

        base_applied = min(bill.base_due, funds)
        funds -= base_applied
        penalty_applied = min(bill.penalty_due, funds)
        applied = base_applied + penalty_applied

        cash_applied = min(cash, applied)
        credit_applied = applied - cash_applied
        cash -= cash_applied
        credit_available -= credit_applied
        credit_used += credit_applied

        updated = bill.with_paid(bill.base_paid + base_applied, bill.penalty_paid + penalty_applied)
        updates.append(BillUpdate(
            account_id=account_id,
            period_key=bill.period_key,
            base_applied=base_applied,
            penalty_applied=penalty_applied,
            cash_applied=cash_applied,
            credit_applied=credit_applied,
            bill=updated
        ))
        items.append(DistributionItem(
            type=AllocationType.PERIOD,
            target_id=f"{account_id}:{bill.period_key}",
            target_label=period_label(bill.period_key),
            amount=cash_applied,
            data={
                "account_id": account_id,
                "period_key": bill.period_key,
                "base_applied": base_applied,
                "penalty_applied": penalty_applied,
                "credit_applied": credit_applied
            },
            processing_strategy=ProcessingStrategy.PERIOD_BILLS
        ))

    overpayment = cash
    credit_cash = credit_repaid + overpayment
    if credit_cash > 0:
        items.append(DistributionItem(
            type=AllocationType.CREDIT,
            target_id=f"credit:{account_id}",
            target_label="Account Credit",
            amount=credit_cash,
            data={
                "account_id": account_id,
                "credit_repaid": credit_repaid,
                "overpayment": overpayment
            },
            processing_strategy=ProcessingStrategy.ACCOUNT_CREDIT
        ))

    allocations, summary = build_allocations(items, payment, tolerance)

    return DistributionResult(
        account_id=account_id,
        payment_amount=payment,
        allocations=allocations,
        allocation_summary=summary,
        bill_updates=updates,
        credit_balance_before=balance,
        credit_repaid=credit_repaid,
        credit_used=credit_used,
        overpayment=overpayment
    )
