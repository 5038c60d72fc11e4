"""Tests for the derived-field helpers: compact/price formatting, impact buckets, de-duplication."""

import pytest

from market_feed.api.schemas import Derivative, ImpactLevel
from market_feed.core.formatting import (
    base_symbol,
    dedupe_derivatives,
    format_compact,
    format_price,
    impact_from_score,
    normalize_event_date,
    normalize_event_time,
    normalize_impact,
    optional_text,
    to_float,
)


class TestFormatCompact:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (1_500_000_000, "$1.50B"),
            (999, "$999"),
            (2_500_000_000_000, "$2.50T"),
            (12_340_000, "$12.3M"),
            (1_000_000, "$1.0M"),
            (12_345, "$12,345"),
            (0, "$0"),
            (None, "$0"),
        ],
    )
    def test_buckets(self, value, expected):
        assert format_compact(value) == expected

    def test_fraction_below_million_is_grouped(self):
        assert format_compact(1234.5) == "$1,234.5"


class TestFormatPrice:
    def test_sub_dollar_keeps_six_decimals(self):
        assert format_price(0.0000456) == "$0.000046"

    def test_large_price_grouped_with_cents(self):
        assert format_price(42000) == "$42,000.00"

    def test_one_dollar_boundary(self):
        assert format_price(1) == "$1.00"
        assert format_price(0.999999) == "$0.999999"


class TestImpactFromScore:
    @pytest.mark.parametrize(
        "score, expected",
        [
            (85, ImpactLevel.HIGH),
            (70, ImpactLevel.HIGH),
            (69.9, ImpactLevel.MEDIUM),
            (55, ImpactLevel.MEDIUM),
            (40, ImpactLevel.MEDIUM),
            (39, ImpactLevel.LOW),
            (10, ImpactLevel.LOW),
            ("72", ImpactLevel.HIGH),
        ],
    )
    def test_inclusive_lower_bounds(self, score, expected):
        assert impact_from_score(score) == expected

    @pytest.mark.parametrize("score", [None, "n/a", True])
    def test_missing_or_invalid_score_has_no_impact(self, score):
        assert impact_from_score(score) is None


class TestDedupeDerivatives:
    def test_first_occurrence_wins(self):
        first = Derivative(symbol="BTC", fundingRate=0.0001, openInterest=1.0)
        second = Derivative(symbol="BTC", fundingRate=0.0009, openInterest=2.0)
        eth = Derivative(symbol="ETH", fundingRate=0.0002)

        result = dedupe_derivatives([first, second, eth])

        assert [d.symbol for d in result] == ["BTC", "ETH"]
        assert result[0].fundingRate == 0.0001
        assert result[0].openInterest == 1.0

    def test_untracked_symbols_dropped(self):
        result = dedupe_derivatives(
            [Derivative(symbol="PEPE"), Derivative(symbol="SOL")],
            tracked=["sol"],
        )
        assert [d.symbol for d in result] == ["SOL"]

    def test_base_symbol(self):
        assert base_symbol("btc/usdt") == "BTC"
        assert base_symbol("ethusdt") == "ETHUSDT"
        assert base_symbol(None) == ""


class TestNormalizers:
    def test_to_float_defaults(self):
        assert to_float("1.5") == 1.5
        assert to_float(None) == 0.0
        assert to_float("abc", default=-1.0) == -1.0
        assert to_float(float("nan")) == 0.0

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-01-02", "2024-01-02"),
            ("2024-01-02T10:00:00Z", "2024-01-02"),
            ("2024-1-2", "2024-01-02"),
            ("Jan 05, 2024", "2024-01-05"),
            ("2024-02-30", None),
            ("", None),
            (None, None),
        ],
    )
    def test_event_date(self, value, expected):
        assert normalize_event_date(value) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [("8:30", "08:30"), ("14:05 UTC", "14:05"), ("All Day", None), ("25:00", None), (None, None)],
    )
    def test_event_time(self, value, expected):
        assert normalize_event_time(value) == expected

    def test_impact_labels(self):
        assert normalize_impact("High") == ImpactLevel.HIGH
        assert normalize_impact("moderate") == ImpactLevel.MEDIUM
        assert normalize_impact("low volatility") == ImpactLevel.LOW
        assert normalize_impact("unknown") is None
        assert normalize_impact(None) is None

    def test_optional_text(self):
        assert optional_text("  ") is None
        assert optional_text(3.5) == "3.5"
        assert optional_text("x" * 300) == "x" * 200
