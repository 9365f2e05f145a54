"""Billing ledger exceptions.

Every error carries a ``context`` dict (tenant, account, transaction id,
field name...) so callers can log or report the failure with enough detail
to reproduce it.
"""

from typing import Any, Optional


class BillingLedgerError(Exception):
    """Base exception for the billing ledger."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.context}


class CurrencyPrecisionError(BillingLedgerError):
    """A monetary value is too far from an integer number of centavos."""

    def __init__(self, field: str, value: Any, diff: Optional[float] = None, reason: str = ""):
        detail = reason or f"diff {diff} exceeds tolerance"
        super().__init__(
            f"Field '{field}' is not a valid centavos amount: {value!r} ({detail})",
            field=field,
            value=repr(value),
            diff=diff,
        )
        self.field = field
        self.value = value
        self.diff = diff


class AllocationSumMismatchError(BillingLedgerError):
    """Allocations do not add up to the transaction amount."""

    def __init__(self, transaction_amount: int, total_allocated: int, transaction_id: Optional[str] = None):
        super().__init__(
            f"Allocations total {total_allocated} does not match transaction amount {transaction_amount}",
            transaction_amount=transaction_amount,
            total_allocated=total_allocated,
            transaction_id=transaction_id,
        )
        self.transaction_amount = transaction_amount
        self.total_allocated = total_allocated


class InvalidPaymentError(BillingLedgerError):
    """Payment request is malformed (negative amount, bad account id...)."""
    pass


class AccountNotFoundError(BillingLedgerError):
    """No credit ledger exists for the account."""
    pass


class TransactionNotFoundError(BillingLedgerError):
    """Transaction record does not exist."""
    pass


class EntryNotFoundError(BillingLedgerError):
    """No credit history entry matches the transaction or entry id."""
    pass


class BillNotFoundError(BillingLedgerError):
    """No bill for the (tenant, account, period) key."""
    pass


class PeriodAlreadyExistsError(BillingLedgerError):
    """Billing period was already generated for the tenant."""
    pass


class PenaltyPolicyConfigError(BillingLedgerError):
    """Tenant penalty policy is missing or invalid."""
    pass


class ConcurrentModificationError(BillingLedgerError):
    """Optimistic concurrency retries were exhausted."""
    pass


class PartialReversalError(BillingLedgerError):
    """Credit was reversed but one or more bill restorations failed.

    This is a reconciliation alert: the transaction is left in a
    well-defined intermediate state and must be looked at by an operator.
    """

    def __init__(self, message: str, credit_restored: bool, failed_bill: Optional[str] = None, **context: Any):
        super().__init__(message, credit_restored=credit_restored, failed_bill=failed_bill, **context)
        self.credit_restored = credit_restored
        self.failed_bill = failed_bill
