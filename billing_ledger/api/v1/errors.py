"""Translation of ledger exceptions to HTTP errors."""

import logging
from typing import NoReturn

from fastapi import HTTPException

from billing_ledger.core.exceptions import (
    AccountNotFoundError,
    AllocationSumMismatchError,
    BillNotFoundError,
    BillingLedgerError,
    ConcurrentModificationError,
    CurrencyPrecisionError,
    EntryNotFoundError,
    InvalidPaymentError,
    PartialReversalError,
    PenaltyPolicyConfigError,
    PeriodAlreadyExistsError,
    TransactionNotFoundError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = (
    ((AccountNotFoundError, TransactionNotFoundError, EntryNotFoundError, BillNotFoundError), 404),
    ((CurrencyPrecisionError, AllocationSumMismatchError, InvalidPaymentError), 400),
    ((PeriodAlreadyExistsError, ConcurrentModificationError), 409),
    ((PenaltyPolicyConfigError,), 422),
    ((PartialReversalError,), 500),
)


def raise_http_error(exc: Exception) -> NoReturn:
    """Re-raise a service error as an HTTPException with its context as detail."""
    if isinstance(exc, BillingLedgerError):
        for types, status_code in STATUS_CODES:
            if isinstance(exc, types):
                break
        else:
            status_code = 500
        if status_code >= 500:
            logger.error("Request failed", extra={"error": str(exc), "error_type": type(exc).__name__})
        raise HTTPException(status_code=status_code, detail=exc.to_dict()) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    raise exc
