"""
franchise_platform/field_metadata.py
====================================
Static registry of editable plan fields: display label and format per
category + field name, with the display/parse rules each format uses.

Leaf module, no state.
"""
from __future__ import annotations
import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from .types import FormatType
from .formatting import format_cents, parse_dollars_to_cents, round_half_up, js_number_str


@dataclass(frozen=True)
class FieldMeta:
    label: str
    format: FormatType


FIELD_METADATA: Dict[str, Dict[str, FieldMeta]] = {
    "revenue": {
        "monthlyAuv": FieldMeta("Monthly AUV", "currency"),
        "growthRates": FieldMeta("Growth Rate", "percentage"),
        "startingMonthAuvPct": FieldMeta("Starting Month AUV %", "percentage"),
    },
    "operatingCosts": {
        "royaltyPct": FieldMeta("Royalty %", "percentage"),
        "adFundPct": FieldMeta("Ad Fund %", "percentage"),
        "cogsPct": FieldMeta("COGS %", "percentage"),
        "laborPct": FieldMeta("Labor %", "percentage"),
        "facilitiesAnnual": FieldMeta("Facilities (Annual)", "currency"),
        "marketingPct": FieldMeta("Marketing %", "percentage"),
        "managementSalariesAnnual": FieldMeta("Management Salaries (Annual)", "currency"),
        "payrollTaxPct": FieldMeta("Payroll Tax %", "percentage"),
        "otherOpexPct": FieldMeta("Other OpEx %", "percentage"),
    },
    "facilitiesDecomposition": {
        "rent": FieldMeta("Rent (Annual)", "currency"),
        "utilities": FieldMeta("Utilities (Annual)", "currency"),
        "telecomIt": FieldMeta("Telecom / IT (Annual)", "currency"),
        "vehicleFleet": FieldMeta("Vehicle / Fleet (Annual)", "currency"),
        "insurance": FieldMeta("Insurance (Annual)", "currency"),
    },
    "profitabilityAndDistributions": {
        "targetPreTaxProfitPct": FieldMeta("Target Pre-Tax Profit %", "percentage"),
        "shareholderSalaryAdj": FieldMeta("Shareholder Salary Adj.", "currency"),
        "distributions": FieldMeta("Distributions", "currency"),
        "nonCapexInvestment": FieldMeta("Non-CapEx Investment", "currency"),
    },
    "workingCapitalAndValuation": {
        "arDays": FieldMeta("A/R Days", "integer"),
        "apDays": FieldMeta("A/P Days", "integer"),
        "inventoryDays": FieldMeta("Inventory Days", "integer"),
        "taxPaymentDelayMonths": FieldMeta("Tax Payment Delay (Months)", "integer"),
        "ebitdaMultiple": FieldMeta("EBITDA Multiple", "decimal"),
    },
    "financing": {
        "loanAmount": FieldMeta("Loan Amount", "currency"),
        "interestRate": FieldMeta("Interest Rate", "percentage"),
        "loanTermMonths": FieldMeta("Loan Term (Months)", "integer"),
        "downPaymentPct": FieldMeta("Down Payment %", "percentage"),
    },
    "startupCapital": {
        "workingCapitalMonths": FieldMeta("Working Capital (Months)", "integer"),
        "depreciationYears": FieldMeta("Depreciation (Years)", "integer"),
    },
}

CATEGORY_LABELS: Dict[str, str] = {
    "revenue": "Revenue",
    "operatingCosts": "Operating Costs",
    "facilitiesDecomposition": "Facilities Breakdown",
    "profitabilityAndDistributions": "Profitability & Distributions",
    "workingCapitalAndValuation": "Working Capital & Valuation",
    "financing": "Financing",
    "startupCapital": "Startup Capital",
}

CATEGORY_ORDER: List[str] = [
    "revenue",
    "operatingCosts",
    "facilitiesDecomposition",
    "profitabilityAndDistributions",
    "workingCapitalAndValuation",
    "financing",
    "startupCapital",
]


def get_field_meta(category: str, field_name: str) -> Optional[FieldMeta]:
    return FIELD_METADATA.get(category, {}).get(field_name)


def field_names(category: str) -> List[str]:
    return list(FIELD_METADATA.get(category, {}).keys())


# ─── Display ──────────────────────────────────────────────────────────────────

def format_field_value(value: float, fmt: FormatType, show_decimals: bool = False) -> str:
    if fmt == "currency":
        return format_cents(value, show_decimals)
    if fmt == "percentage":
        return f"{value * 100:.1f}%"
    if fmt == "integer":
        return js_number_str(value)
    return f"{value:.2f}"


def edit_buffer_text(value: float, fmt: FormatType) -> str:
    """Plain text an inline editor starts from (no symbols, dollars not cents)."""
    if fmt == "currency":
        return js_number_str(value / 100)
    if fmt == "percentage":
        return f"{value * 100:.1f}"
    if fmt == "decimal":
        return f"{value:.2f}"
    return js_number_str(value)


def get_input_placeholder(fmt: FormatType) -> str:
    return {"currency": "$0", "percentage": "0.0%", "integer": "0", "decimal": "0.00"}[fmt]


# ─── Parsing ──────────────────────────────────────────────────────────────────

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


def _to_float(s: str) -> Optional[float]:
    """Leading number of `s`, the rest ignored: "12-3" → 12.0, "4.25x" → 4.25."""
    match = _LEADING_NUMBER.match(s)
    if match is None:
        return None
    num = float(match.group())
    return num if math.isfinite(num) else None


def parse_field_input(text: str, fmt: FormatType) -> Optional[float]:
    """
    Inverse of `format_field_value` for typed input.
    Returns None for anything that is not a valid value in `fmt`; never raises.
    """
    if fmt == "currency":
        return parse_dollars_to_cents(text)
    if fmt == "percentage":
        num = _to_float(str(text).replace("%", "").strip())
        return None if num is None else num / 100
    cleaned = _NON_NUMERIC.sub("", str(text))
    num = _to_float(cleaned)
    if num is None:
        return None
    if fmt == "integer":
        if num < 0:
            return None
        return round_half_up(num)
    return num
