"""Centavos validation utilities.

Every monetary value is stored as an integer number of centavos. Values
produced by upstream float arithmetic are snapped to the nearest integer when
they are within the rounding tolerance; anything further away is a data
integrity bug and is rejected.
"""
import logging
import math
import re
from decimal import Decimal
from typing import Any

from billing_ledger.core.config import settings
from billing_ledger.core.exceptions import CurrencyPrecisionError

logger = logging.getLogger(__name__)

CURRENCY_SUFFIXES = (
    "amount", "balance", "due", "paid", "total", "credit",
    "debit", "price", "fee", "charge", "cents",
    "balanceafter", "allocated", "applied", "delta",
)
NON_CURRENCY_MARKERS = ("rate", "percent", "ratio")


def normalize_centavos(value: Any, field_name: str, tolerance: float | None = None) -> int:
    """
    Validate a monetary value and return it as integer centavos.

    Rules:
    - None becomes 0
    - integers pass through unchanged
    - other numbers are rounded; a distance <= tolerance is float noise
      (logged as a warning), a larger distance raises CurrencyPrecisionError
    """
    if tolerance is None:
        tolerance = settings.CURRENCY_TOLERANCE

    if value is None:
        return 0

    if isinstance(value, bool):
        raise CurrencyPrecisionError(field_name, value, reason="boolean is not an amount")

    if isinstance(value, int):
        return value

    if not isinstance(value, (float, Decimal)):
        raise CurrencyPrecisionError(field_name, value, reason="not a number")

    if isinstance(value, float) and not math.isfinite(value):
        raise CurrencyPrecisionError(field_name, value, reason="not finite")
    if isinstance(value, Decimal) and not value.is_finite():
        raise CurrencyPrecisionError(field_name, value, reason="not finite")

    rounded = int(round(value))
    diff = float(abs(value - rounded))

    if diff > tolerance:
        raise CurrencyPrecisionError(field_name, value, diff=diff)

    if diff > 0:
        logger.warning(
            "Rounded non-integer centavos value",
            extra={"field": field_name, "value": float(value), "rounded": rounded, "diff": diff},
        )
    return rounded


def is_currency_field(name: str) -> bool:
    """Heuristic used by normalize_document to pick monetary fields."""
    key = re.sub(r"[_\-\s]", "", name).lower()
    if any(marker in key for marker in NON_CURRENCY_MARKERS):
        return False
    return key.endswith(CURRENCY_SUFFIXES)


def normalize_document(doc: Any, tolerance: float | None = None, path: str = "") -> Any:
    """
    Recursively normalize every currency-named field of a document.

    Returns a new structure; nested dicts and lists are walked, and the dotted
    path of a failing field is reported in the error.
    """
    if isinstance(doc, dict):
        result = {}
        for key, value in doc.items():
            field_path = f"{path}.{key}" if path else str(key)
            if isinstance(value, (dict, list)):
                result[key] = normalize_document(value, tolerance, field_path)
            elif isinstance(key, str) and is_currency_field(key) and not isinstance(value, (str, bool)):
                result[key] = normalize_centavos(value, field_path, tolerance)
            else:
                result[key] = value
        return result

    if isinstance(doc, list):
        return [
            normalize_document(item, tolerance, f"{path}[{index}]")
            for index, item in enumerate(doc)
        ]

    return doc
