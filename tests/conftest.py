"""
tests/conftest.py
=================
Shared pytest fixtures for the Franchise Planner test suite.
"""
import sys
import os

# Ensure the project root is on the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from typing import List, Optional

import pytest

from franchise_platform.provenance import build_plan_financial_inputs, build_plan_startup_costs
from franchise_platform.types import (
    AnnualSummary, EngineOutput, MonthlyProjection, ROIMetrics,
)

FIXED_NOW = "2026-01-01T00:00:00+00:00"


# ─── Plan Data ────────────────────────────────────────────────────────────────

@pytest.fixture
def brand_params():
    """Brand parameter set in dollars, as the brand admin enters it."""
    return {
        "revenue": {
            "monthly_auv": 50000,
            "year1_growth_rate": 0.05,
            "year2_growth_rate": 0.03,
            "starting_month_auv_pct": 0.08,
        },
        "operating_costs": {
            "royalty_pct": 0.06,
            "ad_fund_pct": 0.02,
            "cogs_pct": 0.30,
            "labor_pct": 0.25,
            "rent_monthly": 4000,
            "utilities_monthly": 800,
            "insurance_monthly": 300,
            "marketing_pct": 0.02,
            "other_monthly": 1000,
        },
        "financing": {
            "loan_amount": 250000,
            "interest_rate": 0.105,
            "loan_term_months": 120,
            "down_payment_pct": 0.20,
        },
        "startup_capital": {
            "working_capital_months": 3,
            "depreciation_years": 7,
        },
    }


@pytest.fixture
def inputs(brand_params):
    return build_plan_financial_inputs(brand_params)


@pytest.fixture
def startup_template():
    return [
        {"name": "Equipment", "default_amount": 120000, "capex_classification": "capex"},
        {"name": "Grand Opening Marketing", "default_amount": 15000, "capex_classification": "non_capex"},
        {"name": "Working Capital Reserve", "default_amount": 30000, "capex_classification": "working_capital"},
    ]


@pytest.fixture
def startup_costs(startup_template):
    return build_plan_startup_costs(startup_template)


# ─── Single-Value Layout (older plans) ────────────────────────────────────────

def _wire_field(value, source="brand_default"):
    custom = source != "brand_default"
    return {"currentValue": value, "brandDefault": value, "source": source,
            "isCustom": custom, "lastModifiedAt": FIXED_NOW if custom else None}


@pytest.fixture
def legacy_inputs_payload():
    """Financial inputs as older plans stored them: one value per field, monthly facilities."""
    return {
        "revenue": {
            "monthlyAuv": _wire_field(5_000_000),
            "year1GrowthRate": _wire_field(0.05),
            "year2GrowthRate": _wire_field(0.03),
            "startingMonthAuvPct": _wire_field(0.08),
        },
        "operatingCosts": {
            "cogsPct": _wire_field(0.30),
            "laborPct": _wire_field(0.28, "user_entry"),
            "rentMonthly": _wire_field(400_000),
            "utilitiesMonthly": _wire_field(80_000),
            "insuranceMonthly": _wire_field(30_000),
            "marketingPct": _wire_field(0.02),
            "royaltyPct": _wire_field(0.06),
            "adFundPct": _wire_field(0.02),
            "otherMonthly": _wire_field(100_000, "user_entry"),
        },
        "financing": {
            "loanAmount": _wire_field(25_000_000),
            "interestRate": _wire_field(0.105),
            "loanTermMonths": _wire_field(120),
            "downPaymentPct": _wire_field(0.20),
        },
        "startupCapital": {
            "workingCapitalMonths": _wire_field(3),
            "depreciationYears": _wire_field(7),
        },
    }


# ─── Engine Output ────────────────────────────────────────────────────────────

def make_output(
    break_even_month: Optional[int] = 14,
    roi_pct: float = 1.2,
    ending_cash: Optional[List[float]] = None,
    year1_pre_tax: float = 5_000_000,
) -> EngineOutput:
    cash = ending_cash if ending_cash is not None else [100_000] * 60
    return EngineOutput(
        monthly_projections=[MonthlyProjection(month=i + 1, ending_cash=c) for i, c in enumerate(cash)],
        annual_summaries=[AnnualSummary(year=y, pre_tax_income=year1_pre_tax) for y in range(1, 6)],
        roi_metrics=ROIMetrics(break_even_month=break_even_month, five_year_roi_pct=roi_pct),
    )


@pytest.fixture
def output_factory():
    return make_output


# ─── Timers ───────────────────────────────────────────────────────────────────

class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Collects scheduled callbacks; tests fire them explicitly."""

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def fire_next(self):
        timer = self.live[0]
        self.timers.remove(timer)
        timer.callback()
        return timer


@pytest.fixture
def scheduler():
    return FakeScheduler()
