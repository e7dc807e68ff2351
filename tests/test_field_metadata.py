"""
tests/test_field_metadata.py
============================
Field registry lookups, display formatting and typed-input parsing,
plus the currency / statement formatting helpers they build on.

Run:  pytest tests/ -v
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from franchise_platform.field_metadata import (
    CATEGORY_ORDER,
    FIELD_METADATA,
    edit_buffer_text,
    field_names,
    format_field_value,
    get_field_meta,
    get_input_placeholder,
    parse_field_input,
)
from franchise_platform.formatting import (
    format_cents,
    format_financial_delta,
    format_financial_value,
    format_percent,
    get_completeness_color,
    month_count_label,
    parse_dollars_to_cents,
    round_half_up,
)


class TestRegistry:
    def test_known_field(self):
        meta = get_field_meta("revenue", "monthlyAuv")
        assert meta.label == "Monthly AUV"
        assert meta.format == "currency"

    def test_unknown_field(self):
        assert get_field_meta("revenue", "nope") is None

    def test_unknown_category(self):
        assert get_field_meta("marketing", "monthlyAuv") is None
        assert field_names("marketing") == []

    def test_every_category_is_ordered(self):
        assert set(CATEGORY_ORDER) == set(FIELD_METADATA)

    def test_field_count(self):
        assert sum(len(fields) for fields in FIELD_METADATA.values()) == 32

    def test_placeholders(self):
        assert get_input_placeholder("currency") == "$0"
        assert get_input_placeholder("percentage") == "0.0%"
        assert get_input_placeholder("integer") == "0"
        assert get_input_placeholder("decimal") == "0.00"


class TestFormatFieldValue:
    def test_currency_whole_dollars(self):
        assert format_field_value(1500000, "currency") == "$15,000"

    def test_currency_with_decimals(self):
        assert format_field_value(1500050, "currency", show_decimals=True) == "$15,000.50"

    def test_percentage(self):
        assert format_field_value(0.065, "percentage") == "6.5%"

    def test_integer(self):
        assert format_field_value(30, "integer") == "30"

    def test_decimal(self):
        assert format_field_value(3.5, "decimal") == "3.50"


class TestEditBufferText:
    def test_currency_in_dollars(self):
        assert edit_buffer_text(5000000, "currency") == "50000"

    def test_currency_fractional_dollars(self):
        assert edit_buffer_text(1500050, "currency") == "15000.5"

    def test_percentage_points(self):
        assert edit_buffer_text(0.3, "percentage") == "30.0"

    def test_integer(self):
        assert edit_buffer_text(60, "integer") == "60"


class TestParseFieldInput:
    def test_currency_symbols_and_commas(self):
        assert parse_field_input("$1,500.00", "currency") == 150000

    def test_currency_fractional_dollars(self):
        assert parse_field_input("10.50", "currency") == 1050

    def test_currency_negative_rejected(self):
        assert parse_field_input("-5", "currency") is None

    def test_currency_parenthesised_rejected(self):
        assert parse_field_input("(15)", "currency") is None

    def test_currency_garbage(self):
        assert parse_field_input("abc", "currency") is None

    def test_currency_empty(self):
        assert parse_field_input("", "currency") is None

    def test_percentage_with_symbol(self):
        assert parse_field_input("6.5%", "percentage") == pytest.approx(0.065)

    def test_percentage_plain(self):
        assert parse_field_input("32.5", "percentage") == pytest.approx(0.325)

    def test_percentage_garbage(self):
        assert parse_field_input("abc", "percentage") is None

    def test_percentage_infinite(self):
        assert parse_field_input("inf", "percentage") is None

    def test_integer_rounds_half_up(self):
        assert parse_field_input("12.5", "integer") == 13

    def test_integer_strips_separators(self):
        assert parse_field_input("1,200", "integer") == 1200

    def test_integer_negative_rejected(self):
        assert parse_field_input("-3", "integer") is None

    def test_decimal_strips_suffix(self):
        assert parse_field_input("4.25x", "decimal") == pytest.approx(4.25)

    def test_decimal_garbage(self):
        assert parse_field_input("x", "decimal") is None

    def test_leading_number_wins(self):
        assert parse_field_input("12-3", "integer") == 12
        assert parse_field_input("12-3", "decimal") == pytest.approx(12.0)
        assert parse_field_input("6.5 pct", "percentage") == pytest.approx(0.065)

    def test_overflow_rejected(self):
        assert parse_field_input("1e400", "percentage") is None


class TestCurrencyHelpers:
    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(22.5) == 23
        assert round_half_up(-2.5) == -2

    def test_format_cents_negative(self):
        assert format_cents(-250) == "-$3"
        assert format_cents(-250, show_cents=True) == "-$2.50"

    def test_format_cents_negative_rounding_to_zero(self):
        assert format_cents(-40) == "$0"

    def test_parse_dollars(self):
        assert parse_dollars_to_cents(" $2,000 ") == 200000
        assert parse_dollars_to_cents("0") == 0
        assert parse_dollars_to_cents("1e3") == 100000


class TestFinancialValue:
    def test_negative_currency_in_parentheses(self):
        assert format_financial_value(-150000, "currency") == "($1,500)"

    def test_null_display(self):
        assert format_financial_value(None, "currency") == "—"
        assert format_financial_value(None, "pct", null_display="n/a") == "n/a"

    def test_pct(self):
        assert format_financial_value(0.125, "pct") == "12.5%"

    def test_ratio_negative(self):
        assert format_financial_value(-1.234, "ratio") == "(1.23x)"

    def test_months(self):
        assert format_financial_value(14.0, "months") == "14.0 mo"

    def test_delta(self):
        assert format_financial_delta(120000, "currency") == "+$1,200"
        assert format_financial_delta(-0.04, "pct") == "-4.0%"


class TestLabels:
    def test_percent_label(self):
        assert format_percent(0.125) == "12.5%"
        assert format_percent(None) == "—"

    def test_month_count_label(self):
        assert month_count_label(1) == "1 month"
        assert month_count_label(3) == "3 months"

    def test_completeness_colors(self):
        assert get_completeness_color(20) == "#f59e0b"
        assert get_completeness_color(50) == "#3b82f6"
        assert get_completeness_color(95) == "#10b981"
