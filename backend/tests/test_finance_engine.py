"""
test_finance_engine.py — Reverse-markup cascade and sequential tax chain.

Margin and tax are shares of the resulting price:
    price = cost / (1 - pct / 100)
"""

import math
import pytest

from app.services.engine_errors import InvalidRateError
from app.services.finance_engine import (
    apply_tax_chain,
    cascade_quote,
    reverse_markup,
    validate_rate,
)


class TestReverseMarkup:

    def test_margin_42_on_58000(self):
        total, added = reverse_markup(58_000.0, 42.0)
        assert total == pytest.approx(100_000.0)
        assert added == pytest.approx(42_000.0)

    def test_tax_18_on_100000(self):
        total, _ = reverse_markup(100_000.0, 18.0)
        assert round(total, 2) == 121_951.22

    def test_zero_rate_passes_through(self):
        assert reverse_markup(500.0, 0) == (500.0, 0.0)
        assert reverse_markup(500.0, None) == (500.0, 0.0)

    def test_negative_rate_applies_no_markup(self):
        assert reverse_markup(500.0, -10.0) == (500.0, 0.0)

    @pytest.mark.parametrize("pct", [100.0, 150.0, math.inf, math.nan])
    def test_invalid_rates_raise(self, pct):
        with pytest.raises(InvalidRateError):
            reverse_markup(1000.0, pct)

    def test_invalid_rate_is_fatal_and_a_value_error(self):
        with pytest.raises(ValueError) as exc_info:
            validate_rate(100, "margin")
        assert exc_info.value.fatal is True
        assert exc_info.value.context["label"] == "margin"


class TestCascadeQuote:

    def test_full_cascade_exposes_intermediates(self):
        """58 000 subtotal → 42 % margin → 100 000 → 18 % tax → 121 951.22."""
        q = cascade_quote(30_000.0, 15_000.0, 10_000.0, 3_000.0, margin_pct=42, tax_pct=18)
        assert q.subtotal == pytest.approx(58_000.0)
        assert q.margin_value == pytest.approx(42_000.0)
        assert q.total_with_margin == pytest.approx(100_000.0)
        assert q.tax_value == pytest.approx(21_951.2195, rel=1e-6)
        assert q.to_dict()["final_total"] == 121_951.22

    def test_freight_only_when_flagged(self):
        without = cascade_quote(100, 0, 0, 0, has_freight=False, freight_amount=50)
        with_freight = cascade_quote(100, 0, 0, 0, has_freight=True, freight_amount=50)
        assert without.freight == 0.0
        assert without.subtotal == pytest.approx(100.0)
        assert with_freight.freight == 50.0
        assert with_freight.subtotal == pytest.approx(150.0)

    def test_empty_order_is_zero(self):
        q = cascade_quote(0, 0, 0, 0, margin_pct=30, tax_pct=10)
        assert q.final_total == 0.0
        assert q.margin_value == 0.0

    def test_margin_100_raises(self):
        with pytest.raises(InvalidRateError):
            cascade_quote(1000, 0, 0, 0, margin_pct=100)

    def test_bad_tax_raises_before_any_result(self):
        with pytest.raises(InvalidRateError):
            cascade_quote(1000, 0, 0, 0, margin_pct=20, tax_pct=100)

    def test_to_dict_rounds_money(self):
        payload = cascade_quote(10, 0, 0, 0, margin_pct=33).to_dict()
        assert payload["total_with_margin"] == 14.93
        assert payload["margin_pct"] == 33.0


class TestTaxChain:

    def test_taxes_compound_in_order(self):
        result = apply_tax_chain(1000.0, [("ISS", 5.0), ("ICMS", 18.0)])
        first = 1000.0 / 0.95
        second = first / 0.82
        assert [s.name for s in result.steps] == ["ISS", "ICMS"]
        assert result.steps[0].total == pytest.approx(first)
        assert result.steps[1].base == pytest.approx(first)
        assert result.final_total == pytest.approx(second)
        assert result.total_tax == pytest.approx(second - 1000.0)

    def test_no_taxes_returns_amount(self):
        result = apply_tax_chain(250.0, [])
        assert result.final_total == 250.0
        assert result.total_tax == 0.0

    def test_any_invalid_rate_rejects_whole_chain(self):
        with pytest.raises(InvalidRateError):
            apply_tax_chain(100.0, [("ok", 10.0), ("broken", 120.0)])
