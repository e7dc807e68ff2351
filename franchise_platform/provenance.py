"""
franchise_platform/provenance.py
================================
Per-field provenance rules (brand default vs. user override), field lookup
and replacement inside a PlanFinancialInputs document, brand-default plan
construction and startup cost line-item operations.

Currency convention:
  - Brand parameters store currency as dollars
  - Plans and the projection engine store currency as cents
"""
from __future__ import annotations
import uuid
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .types import (
    FinancialFieldValue, FieldEntry, PlanFinancialInputs, StartupCostLineItem,
    CapexClassification, CATEGORY_ATTRS,
)
from .formatting import round_half_up

PROJECTION_YEARS = 5

# System defaults for fields brands do not parameterise
DEFAULT_PAYROLL_TAX_PCT = 0.20
DEFAULT_OTHER_OPEX_PCT = 0.03
DEFAULT_AR_DAYS = 30
DEFAULT_AP_DAYS = 60
DEFAULT_INVENTORY_DAYS = 60
RENT_ESCALATION_RATE = 0.03


# ─── Field Updates ────────────────────────────────────────────────────────────

def update_field_value(field: FinancialFieldValue, new_value: float, timestamp: str) -> FinancialFieldValue:
    """Explicit user edit: always an override, even when new_value == default."""
    return replace(field, current_value=new_value, source="user_override", last_modified_at=timestamp)


def reset_field_to_default(field: FinancialFieldValue, timestamp: str) -> FinancialFieldValue:
    return replace(field, current_value=field.default_value, source="brand_default", last_modified_at=timestamp)


# ─── Document Access ──────────────────────────────────────────────────────────

def get_field(
    inputs: PlanFinancialInputs, category: str, field_name: str, index: Optional[int] = None
) -> Optional[FinancialFieldValue]:
    """
    Resolve one editable value. For per-year fields `index` selects the year
    (defaults to Year 1).
    """
    fields = inputs.category(category)
    if fields is None:
        return None
    entry = fields.get(field_name)
    if isinstance(entry, list):
        i = index or 0
        return entry[i] if 0 <= i < len(entry) else None
    return entry


def with_field(
    inputs: PlanFinancialInputs,
    category: str,
    field_name: str,
    updated: FinancialFieldValue,
    index: Optional[int] = None,
) -> PlanFinancialInputs:
    """Return a new document with one value replaced; `inputs` is left untouched."""
    attr = CATEGORY_ATTRS[category]
    fields = dict(getattr(inputs, attr))
    entry = fields.get(field_name)
    new_entry: FieldEntry
    if isinstance(entry, list):
        new_entry = list(entry)
        new_entry[index or 0] = updated
    else:
        new_entry = updated
    fields[field_name] = new_entry
    return replace(inputs, **{attr: fields})


def iter_field_values(inputs: PlanFinancialInputs):
    """Yield (category, field_name, value) for every value, list elements included."""
    for category, fields in inputs.categories():
        if not isinstance(fields, dict):
            continue
        for name, entry in fields.items():
            items = entry if isinstance(entry, list) else [entry]
            for item in items:
                if isinstance(item, FinancialFieldValue):
                    yield category, name, item


# ─── Brand Defaults ───────────────────────────────────────────────────────────

def dollars_to_cents(dollars: float) -> int:
    return round_half_up(dollars * 100)


def _param(params: Dict[str, Any], section: str, key: str, fallback: float = 0.0) -> float:
    value = (params.get(section) or {}).get(key)
    if isinstance(value, dict):
        value = value.get("value")
    return fallback if value is None else float(value)


def make_field(value: float) -> FinancialFieldValue:
    return FinancialFieldValue(current_value=value, default_value=value)


def make_year_fields(value: float) -> List[FinancialFieldValue]:
    return [make_field(value) for _ in range(PROJECTION_YEARS)]


def make_escalated_fields(base_value: float, rate: float) -> List[FinancialFieldValue]:
    return [make_field(round_half_up(base_value * (1 + rate) ** i)) for i in range(PROJECTION_YEARS)]


def build_plan_financial_inputs(brand_params: Dict[str, Any]) -> PlanFinancialInputs:
    """
    Brand parameters (dollars, snake_case sections) → a fully defaulted
    PlanFinancialInputs (cents). Every value starts as `brand_default`.
    """
    p = brand_params or {}
    monthly_auv = dollars_to_cents(_param(p, "revenue", "monthly_auv"))
    year1_growth = _param(p, "revenue", "year1_growth_rate")
    year2_growth = _param(p, "revenue", "year2_growth_rate")

    rent = dollars_to_cents(_param(p, "operating_costs", "rent_monthly")) * 12
    utilities = dollars_to_cents(_param(p, "operating_costs", "utilities_monthly")) * 12
    insurance = dollars_to_cents(_param(p, "operating_costs", "insurance_monthly")) * 12
    other_monthly = dollars_to_cents(_param(p, "operating_costs", "other_monthly"))
    annual_sales = monthly_auv * 12
    if other_monthly > 0 and annual_sales > 0:
        other_opex_pct = other_monthly * 12 / annual_sales
    else:
        other_opex_pct = DEFAULT_OTHER_OPEX_PCT if other_monthly > 0 else 0.0

    decomposition = {
        "rent": make_escalated_fields(rent, RENT_ESCALATION_RATE),
        "utilities": make_escalated_fields(utilities, RENT_ESCALATION_RATE),
        "telecomIt": make_year_fields(0),
        "vehicleFleet": make_year_fields(0),
        "insurance": make_escalated_fields(insurance, RENT_ESCALATION_RATE),
    }
    facilities_annual = [
        make_field(sum(values[i].current_value for values in decomposition.values()))
        for i in range(PROJECTION_YEARS)
    ]

    return PlanFinancialInputs(
        revenue={
            "monthlyAuv": make_field(monthly_auv),
            "growthRates": [make_field(year1_growth)] + [make_field(year2_growth) for _ in range(PROJECTION_YEARS - 1)],
            "startingMonthAuvPct": make_field(_param(p, "revenue", "starting_month_auv_pct", 0.08)),
        },
        operating_costs={
            "royaltyPct": make_year_fields(_param(p, "operating_costs", "royalty_pct")),
            "adFundPct": make_year_fields(_param(p, "operating_costs", "ad_fund_pct")),
            "cogsPct": make_year_fields(_param(p, "operating_costs", "cogs_pct")),
            "laborPct": make_year_fields(_param(p, "operating_costs", "labor_pct")),
            "facilitiesAnnual": facilities_annual,
            "marketingPct": make_year_fields(_param(p, "operating_costs", "marketing_pct")),
            "managementSalariesAnnual": make_year_fields(0),
            "payrollTaxPct": make_year_fields(DEFAULT_PAYROLL_TAX_PCT),
            "otherOpexPct": make_year_fields(other_opex_pct),
        },
        facilities_decomposition=decomposition,
        profitability_and_distributions={
            "targetPreTaxProfitPct": make_year_fields(0),
            "shareholderSalaryAdj": make_year_fields(0),
            "distributions": make_year_fields(0),
            "nonCapexInvestment": make_year_fields(0),
        },
        working_capital_and_valuation={
            "arDays": make_field(DEFAULT_AR_DAYS),
            "apDays": make_field(DEFAULT_AP_DAYS),
            "inventoryDays": make_field(DEFAULT_INVENTORY_DAYS),
            "taxPaymentDelayMonths": make_field(0),
            "ebitdaMultiple": make_field(0),
        },
        financing={
            "loanAmount": make_field(dollars_to_cents(_param(p, "financing", "loan_amount"))),
            "interestRate": make_field(_param(p, "financing", "interest_rate")),
            "loanTermMonths": make_field(_param(p, "financing", "loan_term_months")),
            "downPaymentPct": make_field(_param(p, "financing", "down_payment_pct")),
        },
        startup_capital={
            "workingCapitalMonths": make_field(_param(p, "startup_capital", "working_capital_months")),
            "depreciationYears": make_field(_param(p, "startup_capital", "depreciation_years")),
        },
    )


# ─── Startup Costs ────────────────────────────────────────────────────────────

def build_plan_startup_costs(template: List[Dict[str, Any]]) -> List[StartupCostLineItem]:
    items = []
    for index, row in enumerate(template):
        amount = dollars_to_cents(row.get("default_amount", 0))
        items.append(StartupCostLineItem(
            id=str(uuid.uuid4()),
            name=row["name"],
            amount=amount,
            is_custom=False,
            capex_classification=row.get("capex_classification", "capex"),
            source="brand_default",
            brand_default_amount=amount,
            sort_order=index if row.get("sort_order") is None else row["sort_order"],
        ))
    return items


def _normalize_order(costs: List[StartupCostLineItem]) -> List[StartupCostLineItem]:
    ordered = sorted(costs, key=lambda c: c.sort_order)
    return [c if c.sort_order == i else replace(c, sort_order=i) for i, c in enumerate(ordered)]


def add_custom_startup_cost(
    costs: List[StartupCostLineItem], name: str, amount: float,
    classification: CapexClassification = "capex",
) -> List[StartupCostLineItem]:
    next_order = max((c.sort_order for c in costs), default=-1) + 1
    item = StartupCostLineItem(
        id=str(uuid.uuid4()), name=name, amount=amount, is_custom=True,
        capex_classification=classification, source="user_entry",
        brand_default_amount=None, sort_order=next_order,
    )
    return costs + [item]


def remove_startup_cost(costs: List[StartupCostLineItem], item_id: str) -> List[StartupCostLineItem]:
    """Only user-added items can be removed; brand template items stay."""
    target = next((c for c in costs if c.id == item_id), None)
    if target is None or not target.is_custom:
        return costs
    return _normalize_order([c for c in costs if c.id != item_id])


def update_startup_cost_amount(costs: List[StartupCostLineItem], item_id: str, amount: float) -> List[StartupCostLineItem]:
    return [replace(c, amount=amount, source="user_entry") if c.id == item_id else c for c in costs]


def reset_startup_cost_to_default(costs: List[StartupCostLineItem], item_id: str) -> List[StartupCostLineItem]:
    out = []
    for c in costs:
        if c.id == item_id and not c.is_custom and c.brand_default_amount is not None:
            c = replace(c, amount=c.brand_default_amount, source="brand_default")
        out.append(c)
    return out


def reorder_startup_costs(costs: List[StartupCostLineItem], ordered_ids: List[str]) -> List[StartupCostLineItem]:
    position = {item_id: i for i, item_id in enumerate(ordered_ids)}
    ordered = sorted(costs, key=lambda c: position.get(c.id, c.sort_order))
    return [replace(c, sort_order=i) for i, c in enumerate(ordered)]


def get_startup_cost_totals(costs: List[StartupCostLineItem]) -> Dict[str, float]:
    totals = {"capex_total": 0.0, "non_capex_total": 0.0, "working_capital_total": 0.0}
    for c in costs:
        if c.capex_classification == "capex":
            totals["capex_total"] += c.amount
        elif c.capex_classification == "non_capex":
            totals["non_capex_total"] += c.amount
        else:
            totals["working_capital_total"] += c.amount
    totals["grand_total"] = sum(totals.values())
    return totals


def migrate_startup_costs(raw: List[Dict[str, Any]]) -> List[StartupCostLineItem]:
    """
    Backfill fields older plans stored without: id, source, sort order and
    the brand default amount (the item's own amount when the key is absent;
    an explicit null stays null).
    """
    items = []
    for index, row in enumerate(raw):
        row = dict(row)
        if row.get("id") is None:
            row["id"] = str(uuid.uuid4())
        row.setdefault("isCustom", False)
        if row.get("source") is None:
            row["source"] = "brand_default"
        if "brandDefaultAmount" not in row:
            row["brandDefaultAmount"] = row.get("amount", 0)
        if row.get("sortOrder") is None:
            row["sortOrder"] = index
        items.append(StartupCostLineItem.from_dict(row))
    return items


# ─── Migration: Single-Value → Per-Year Layout ────────────────────────────────

def is_legacy_layout(inputs: PlanFinancialInputs) -> bool:
    return "year1GrowthRate" in inputs.revenue


def _copies(field: FinancialFieldValue) -> List[FinancialFieldValue]:
    return [replace(field) for _ in range(PROJECTION_YEARS)]


def _escalated_copies(monthly: FinancialFieldValue) -> List[FinancialFieldValue]:
    """Monthly amount → five escalated annual amounts, provenance kept."""
    return [
        replace(
            monthly,
            current_value=round_half_up(monthly.current_value * 12 * (1 + RENT_ESCALATION_RATE) ** i),
            default_value=round_half_up(monthly.default_value * 12 * (1 + RENT_ESCALATION_RATE) ** i),
        )
        for i in range(PROJECTION_YEARS)
    ]


def migrate_plan_financial_inputs(inputs: PlanFinancialInputs) -> PlanFinancialInputs:
    """
    Convert the older single-value layout (year1/year2 growth, monthly rent,
    utilities, insurance and other costs) into the per-year layout with a
    facilities decomposition. Documents already in the per-year layout are
    returned unchanged. Every user override survives the conversion.
    """
    if not is_legacy_layout(inputs):
        return inputs

    rev = inputs.revenue
    op = inputs.operating_costs
    rent, utilities, insurance = op["rentMonthly"], op["utilitiesMonthly"], op["insuranceMonthly"]

    monthly_fixed = rent.current_value + utilities.current_value + insurance.current_value
    facilities_annual = [
        make_field(round_half_up(monthly_fixed * 12 * (1 + RENT_ESCALATION_RATE) ** i))
        for i in range(PROJECTION_YEARS)
    ]

    other = op["otherMonthly"]
    annual_sales = rev["monthlyAuv"].current_value * 12
    if other.current_value > 0 and annual_sales > 0:
        other_pct = other.current_value * 12 / annual_sales
    else:
        other_pct = DEFAULT_OTHER_OPEX_PCT if other.current_value > 0 else 0.0
    other_field = make_field(other_pct)
    if other.is_custom:
        other_field = replace(other_field, source=other.source, last_modified_at=other.last_modified_at)

    year2 = rev["year2GrowthRate"]
    return PlanFinancialInputs(
        revenue={
            "monthlyAuv": replace(rev["monthlyAuv"]),
            "growthRates": [replace(rev["year1GrowthRate"])] + [replace(year2) for _ in range(PROJECTION_YEARS - 1)],
            "startingMonthAuvPct": replace(rev["startingMonthAuvPct"]),
        },
        operating_costs={
            "royaltyPct": _copies(op["royaltyPct"]),
            "adFundPct": _copies(op["adFundPct"]),
            "cogsPct": _copies(op["cogsPct"]),
            "laborPct": _copies(op["laborPct"]),
            "facilitiesAnnual": facilities_annual,
            "marketingPct": _copies(op["marketingPct"]),
            "managementSalariesAnnual": make_year_fields(0),
            "payrollTaxPct": make_year_fields(DEFAULT_PAYROLL_TAX_PCT),
            "otherOpexPct": [replace(other_field) for _ in range(PROJECTION_YEARS)],
        },
        facilities_decomposition={
            "rent": _escalated_copies(rent),
            "utilities": _escalated_copies(utilities),
            "telecomIt": make_year_fields(0),
            "vehicleFleet": make_year_fields(0),
            "insurance": _escalated_copies(insurance),
        },
        profitability_and_distributions={
            "targetPreTaxProfitPct": make_year_fields(0),
            "shareholderSalaryAdj": make_year_fields(0),
            "distributions": make_year_fields(0),
            "nonCapexInvestment": make_year_fields(0),
        },
        working_capital_and_valuation={
            "arDays": make_field(DEFAULT_AR_DAYS),
            "apDays": make_field(DEFAULT_AP_DAYS),
            "inventoryDays": make_field(DEFAULT_INVENTORY_DAYS),
            "taxPaymentDelayMonths": make_field(0),
            "ebitdaMultiple": make_field(0),
        },
        financing=dict(inputs.financing),
        startup_capital=dict(inputs.startup_capital),
    )
