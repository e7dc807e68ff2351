"""
franchise_platform/formatting.py
================================
US-dollar formatting from stored cents, accounting-style negatives,
percent / ratio / month labels, and colour helpers for plan display.
"""
from __future__ import annotations
import math
import re
from typing import Optional

FinancialFormat = str  # currency | pct | ratio | multiplier | number | months


def round_half_up(value: float) -> int:
    """Round .5 away from the floor, the way the web client rounds (Math.round)."""
    return int(math.floor(value + 0.5))


def js_number_str(value: float) -> str:
    """Render a number without a trailing `.0` for whole values."""
    if isinstance(value, float) and not value.is_integer():
        return repr(value)
    return str(int(value))


# ─── Currency ─────────────────────────────────────────────────────────────────

def format_cents(cents: float, show_cents: bool = False) -> str:
    """
    Format cents as a display currency string.
    e.g. 1500000 → "$15,000", -250 → "-$3" (or "-$2.50" with show_cents)
    """
    dollars = cents / 100
    sign = "-" if dollars < 0 else ""
    decimals = 2 if show_cents else 0
    amount = abs(dollars)
    if not show_cents:
        amount = round_half_up(amount)
    if amount == 0:
        sign = ""
    return f"{sign}${amount:,.{decimals}f}"


_CURRENCY_STRIP = re.compile(r"[$,\s]")


def parse_dollars_to_cents(text: str) -> Optional[int]:
    """
    Parse a user-entered dollar string to integer cents.
    Accounting parentheses mark a negative; negative amounts are rejected,
    so "(15)" and "-5" both return None, as does unparsable text.
    """
    s = _CURRENCY_STRIP.sub("", str(text))
    negative = False
    if s.startswith("(") and s.endswith(")"):
        s = s[1:-1]
        negative = True
    try:
        dollars = float(s)
    except ValueError:
        return None
    if not math.isfinite(dollars) or dollars < 0 or negative:
        return None
    return round_half_up(dollars * 100)


# ─── Statement Values ─────────────────────────────────────────────────────────

def format_financial_value(
    value: Optional[float],
    fmt: FinancialFormat,
    show_cents: bool = False,
    null_display: str = "—",
) -> str:
    """Computed values: negatives render in accounting parentheses."""
    if value is None:
        return null_display
    negative = value < 0
    a = abs(value)
    if fmt == "currency":
        s = format_cents(a, show_cents)
    elif fmt == "pct":
        s = f"{a * 100:.1f}%"
    elif fmt == "ratio":
        s = f"{a:.2f}x"
    elif fmt == "multiplier":
        s = f"{a:.1f}x"
    elif fmt == "number":
        s = f"{round_half_up(a):,}"
    elif fmt == "months":
        s = f"{a:.1f} mo"
    else:
        return str(value)
    return f"({s})" if negative else s


def format_financial_delta(delta: float, fmt: FinancialFormat, show_cents: bool = False) -> str:
    """Signed change between two computed values, e.g. "+$1,200" / "-4.0%"."""
    sign = "-" if delta < 0 else "+"
    a = abs(delta)
    if fmt == "currency":
        return f"{sign}{format_cents(a, show_cents)}"
    if fmt == "pct":
        return f"{sign}{a * 100:.1f}%"
    if fmt == "ratio":
        return f"{sign}{a:.2f}x"
    if fmt == "multiplier":
        return f"{sign}{a:.1f}x"
    if fmt == "months":
        return f"{sign}{a:.1f} mo"
    return f"{sign}{round_half_up(a):,}"


def format_percent(value: Optional[float], decimals: int = 1) -> str:
    """Decimal fraction → percent label (0.125 → "12.5%")."""
    if value is None:
        return "—"
    return f"{value * 100:.{decimals}f}%"


def month_count_label(count: int, noun: str = "month") -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


# ─── Colours ──────────────────────────────────────────────────────────────────

def get_level_color(level: str) -> str:
    """Return colour string for Guardian levels."""
    return {"healthy": "#10b981", "attention": "#f59e0b", "concerning": "#ef4444"}.get(level, "#6b7280")


def get_completeness_color(pct: int) -> str:
    if pct > 90:
        return "#10b981"
    elif pct >= 50:
        return "#3b82f6"
    return "#f59e0b"
