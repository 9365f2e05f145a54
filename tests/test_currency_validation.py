"""Tests for centavos validation."""
import logging
from decimal import Decimal

import pytest

from billing_ledger.core.exceptions import CurrencyPrecisionError
from billing_ledger.utils.currency_validation import (
    is_currency_field,
    normalize_centavos,
    normalize_document,
)


class TestNormalizeCentavos:
    """Integer enforcement for single values."""

    def test_integer_passes_through(self):
        assert normalize_centavos(15000, "amount") == 15000

    def test_none_becomes_zero(self):
        assert normalize_centavos(None, "amount") == 0

    def test_float_noise_is_rounded(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert normalize_centavos(489.99999999999994, "amount") == 490
        assert "Rounded non-integer centavos value" in caplog.text

    def test_value_within_tolerance_is_rounded(self):
        assert normalize_centavos(100.15, "amount") == 100
        assert normalize_centavos(Decimal("99.85"), "amount") == 100

    def test_value_beyond_tolerance_raises(self):
        with pytest.raises(CurrencyPrecisionError) as exc_info:
            normalize_centavos(100.5, "base_charge")

        assert exc_info.value.field == "base_charge"
        assert exc_info.value.diff == pytest.approx(0.5)

    def test_custom_tolerance(self):
        assert normalize_centavos(100.4, "amount", tolerance=0.5) == 100
        with pytest.raises(CurrencyPrecisionError):
            normalize_centavos(100.1, "amount", tolerance=0.05)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), "100", True])
    def test_non_numeric_values_raise(self, value):
        with pytest.raises(CurrencyPrecisionError):
            normalize_centavos(value, "amount")


class TestNormalizeDocument:
    """Recursive normalization of documents."""

    def test_currency_fields_detected_by_name(self):
        assert is_currency_field("base_charge")
        assert is_currency_field("penaltyAmount")
        assert is_currency_field("balance_after")
        assert not is_currency_field("penalty_rate")
        assert not is_currency_field("period_key")

    def test_nested_fields_are_normalized(self):
        doc = {
            "units": {"101": {"base_paid": 5000.0000001, "status": "partial"}},
            "history": [{"amount": -2500.0, "note": "used"}],
            "penalty_rate": 0.05
        }

        result = normalize_document(doc)

        assert result["units"]["101"]["base_paid"] == 5000
        assert isinstance(result["units"]["101"]["base_paid"], int)
        assert result["history"][0]["amount"] == -2500
        assert result["penalty_rate"] == 0.05

    def test_error_reports_dotted_path(self):
        with pytest.raises(CurrencyPrecisionError) as exc_info:
            normalize_document({"units": {"101": {"penalty_amount": 10.5}}})

        assert exc_info.value.field == "units.101.penalty_amount"
