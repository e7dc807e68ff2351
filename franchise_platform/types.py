"""
franchise_platform/types.py
===========================
Python dataclasses mirroring the plan API payloads.
All plan, field-provenance and projection structures used across the platform.

Currency convention: cents (integers stored as numbers).
Percentage convention: decimal form (0.065 = 6.5%).
"""
from __future__ import annotations
import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Literal, Any, Union, Iterator, Tuple

# ─── Core Aliases ─────────────────────────────────────────────────────────────

FieldSource = Literal["brand_default", "user_override"]
FormatType = Literal["currency", "percentage", "integer", "decimal"]
GuardianLevel = Literal["healthy", "attention", "concerning"]
GuardianId = Literal["break-even", "roi", "cash"]
ScenarioId = Literal["base", "conservative", "optimistic"]
CapexClassification = Literal["capex", "non_capex", "working_capital"]

# Older plans carry the source name the server used before "user_override".
_LEGACY_SOURCES = {"user_entry": "user_override"}


# ─── Field Provenance ─────────────────────────────────────────────────────────

@dataclass
class FinancialFieldValue:
    current_value: float
    default_value: float
    source: FieldSource = "brand_default"
    last_modified_at: Optional[str] = None
    item7_range: Optional[Tuple[float, float]] = None

    @property
    def is_custom(self) -> bool:
        return self.source != "brand_default"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FinancialFieldValue":
        source = data.get("source", "brand_default")
        source = _LEGACY_SOURCES.get(source, source)
        default = data.get("defaultValue", data.get("brandDefault"))
        rng = data.get("item7Range")
        return cls(
            current_value=data["currentValue"],
            default_value=data["currentValue"] if default is None else default,
            source=source,
            last_modified_at=data.get("lastModifiedAt"),
            item7_range=(rng["min"], rng["max"]) if rng else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentValue": self.current_value,
            "defaultValue": self.default_value,
            "source": self.source,
            "lastModifiedAt": self.last_modified_at,
            "isCustom": self.is_custom,
            "item7Range": (
                {"min": self.item7_range[0], "max": self.item7_range[1]}
                if self.item7_range else None
            ),
        }


# A field is either one value or a per-year list (Year 1 .. Year 5).
FieldEntry = Union[FinancialFieldValue, List[FinancialFieldValue]]
CategoryFields = Dict[str, FieldEntry]


def _entry_from_dict(raw: Any) -> FieldEntry:
    if isinstance(raw, list):
        return [FinancialFieldValue.from_dict(item) for item in raw]
    return FinancialFieldValue.from_dict(raw)


def _entry_to_dict(entry: FieldEntry) -> Any:
    if isinstance(entry, list):
        return [item.to_dict() for item in entry]
    return entry.to_dict()


def _category_from_dict(raw: Optional[Dict[str, Any]], skip: Tuple[str, ...] = ()) -> CategoryFields:
    out: CategoryFields = {}
    for name, value in (raw or {}).items():
        if name in skip:
            continue
        if isinstance(value, (dict, list)):
            out[name] = _entry_from_dict(value)
    return out


# Python attribute ↔ wire/registry category id
CATEGORY_ATTRS: Dict[str, str] = {
    "revenue": "revenue",
    "operatingCosts": "operating_costs",
    "facilitiesDecomposition": "facilities_decomposition",
    "profitabilityAndDistributions": "profitability_and_distributions",
    "workingCapitalAndValuation": "working_capital_and_valuation",
    "financing": "financing",
    "startupCapital": "startup_capital",
}


@dataclass
class PlanFinancialInputs:
    """
    Wrapped financial inputs for one plan.
    `facilities_decomposition` travels nested under `operatingCosts` on the wire.
    """
    revenue: CategoryFields = field(default_factory=dict)
    operating_costs: CategoryFields = field(default_factory=dict)
    facilities_decomposition: CategoryFields = field(default_factory=dict)
    profitability_and_distributions: CategoryFields = field(default_factory=dict)
    working_capital_and_valuation: CategoryFields = field(default_factory=dict)
    financing: CategoryFields = field(default_factory=dict)
    startup_capital: CategoryFields = field(default_factory=dict)

    def category(self, category_id: str) -> Optional[CategoryFields]:
        attr = CATEGORY_ATTRS.get(category_id)
        return getattr(self, attr) if attr else None

    def categories(self) -> Iterator[Tuple[str, CategoryFields]]:
        for category_id, attr in CATEGORY_ATTRS.items():
            yield category_id, getattr(self, attr)

    def copy(self) -> "PlanFinancialInputs":
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanFinancialInputs":
        op = data.get("operatingCosts") or {}
        return cls(
            revenue=_category_from_dict(data.get("revenue")),
            operating_costs=_category_from_dict(op, skip=("facilitiesDecomposition",)),
            facilities_decomposition=_category_from_dict(op.get("facilitiesDecomposition")),
            profitability_and_distributions=_category_from_dict(data.get("profitabilityAndDistributions")),
            working_capital_and_valuation=_category_from_dict(data.get("workingCapitalAndValuation")),
            financing=_category_from_dict(data.get("financing")),
            startup_capital=_category_from_dict(data.get("startupCapital")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for category_id, fields in self.categories():
            if category_id == "facilitiesDecomposition":
                continue
            out[category_id] = {name: _entry_to_dict(e) for name, e in fields.items()}
        out["operatingCosts"]["facilitiesDecomposition"] = {
            name: _entry_to_dict(e) for name, e in self.facilities_decomposition.items()
        }
        return out


# ─── Startup Costs ────────────────────────────────────────────────────────────

@dataclass
class StartupCostLineItem:
    id: str
    name: str
    amount: float  # cents
    is_custom: bool = False
    capex_classification: CapexClassification = "capex"
    source: str = "brand_default"
    brand_default_amount: Optional[float] = None
    sort_order: int = 0

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StartupCostLineItem":
        return cls(
            id=str(data["id"]),
            name=data.get("name", data.get("label", "")),
            amount=data.get("amount", 0),
            is_custom=bool(data.get("isCustom", False)),
            capex_classification=data.get("capexClassification", "capex"),
            source=data.get("source", "brand_default"),
            brand_default_amount=data.get("brandDefaultAmount"),
            sort_order=data.get("sortOrder", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "amount": self.amount,
            "isCustom": self.is_custom,
            "capexClassification": self.capex_classification,
            "source": self.source,
            "brandDefaultAmount": self.brand_default_amount,
            "sortOrder": self.sort_order,
        }


# ─── Engine Output (opaque, server computed) ──────────────────────────────────

@dataclass
class MonthlyProjection:
    month: int
    ending_cash: float
    revenue: float = 0.0
    pre_tax_income: float = 0.0
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonthlyProjection":
        known = {"month", "endingCash", "revenue", "preTaxIncome"}
        return cls(
            month=data.get("month", 0),
            ending_cash=data["endingCash"],
            revenue=data.get("revenue", 0.0),
            pre_tax_income=data.get("preTaxIncome", 0.0),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {**self.extra, "month": self.month, "endingCash": self.ending_cash,
                "revenue": self.revenue, "preTaxIncome": self.pre_tax_income}


@dataclass
class AnnualSummary:
    year: int
    pre_tax_income: float
    revenue: float = 0.0
    ending_cash: float = 0.0
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnnualSummary":
        known = {"year", "preTaxIncome", "revenue", "endingCash"}
        return cls(
            year=data.get("year", 0),
            pre_tax_income=data["preTaxIncome"],
            revenue=data.get("revenue", 0.0),
            ending_cash=data.get("endingCash", 0.0),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {**self.extra, "year": self.year, "preTaxIncome": self.pre_tax_income,
                "revenue": self.revenue, "endingCash": self.ending_cash}


@dataclass
class ROIMetrics:
    break_even_month: Optional[int]
    five_year_roi_pct: float
    total_startup_investment: float = 0.0
    five_year_cumulative_cash_flow: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ROIMetrics":
        return cls(
            break_even_month=data.get("breakEvenMonth"),
            five_year_roi_pct=data.get("fiveYearROIPct", 0.0),
            total_startup_investment=data.get("totalStartupInvestment", 0.0),
            five_year_cumulative_cash_flow=data.get("fiveYearCumulativeCashFlow", 0.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "breakEvenMonth": self.break_even_month,
            "fiveYearROIPct": self.five_year_roi_pct,
            "totalStartupInvestment": self.total_startup_investment,
            "fiveYearCumulativeCashFlow": self.five_year_cumulative_cash_flow,
        }


@dataclass
class IdentityCheckResult:
    name: str
    passed: bool
    expected: float = 0.0
    actual: float = 0.0
    tolerance: float = 0.0


@dataclass
class EngineOutput:
    monthly_projections: List[MonthlyProjection]
    annual_summaries: List[AnnualSummary]
    roi_metrics: ROIMetrics
    identity_checks: List[IdentityCheckResult] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineOutput":
        return cls(
            monthly_projections=[MonthlyProjection.from_dict(m) for m in data.get("monthlyProjections", [])],
            annual_summaries=[AnnualSummary.from_dict(a) for a in data.get("annualSummaries", [])],
            roi_metrics=ROIMetrics.from_dict(data.get("roiMetrics", {})),
            identity_checks=[
                IdentityCheckResult(
                    name=c.get("name", ""), passed=bool(c.get("passed")),
                    expected=c.get("expected", 0.0), actual=c.get("actual", 0.0),
                    tolerance=c.get("tolerance", 0.0),
                )
                for c in data.get("identityChecks", [])
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthlyProjections": [m.to_dict() for m in self.monthly_projections],
            "annualSummaries": [a.to_dict() for a in self.annual_summaries],
            "roiMetrics": self.roi_metrics.to_dict(),
            "identityChecks": [
                {"name": c.name, "passed": c.passed, "expected": c.expected,
                 "actual": c.actual, "tolerance": c.tolerance}
                for c in self.identity_checks
            ],
        }


# ─── Plan ─────────────────────────────────────────────────────────────────────

@dataclass
class Plan:
    id: str
    name: str = ""
    brand_id: Optional[str] = None
    financial_inputs: Optional[PlanFinancialInputs] = None
    start_date: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        known = {"id", "name", "brandId", "financialInputs", "startDate", "updatedAt"}
        fi = data.get("financialInputs")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            brand_id=data.get("brandId"),
            financial_inputs=PlanFinancialInputs.from_dict(fi) if fi else None,
            start_date=data.get("startDate"),
            updated_at=data.get("updatedAt"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "name": self.name,
            "brandId": self.brand_id,
            "financialInputs": self.financial_inputs.to_dict() if self.financial_inputs else None,
            "startDate": self.start_date,
            "updatedAt": self.updated_at,
        }

    def merged(self, partial: Dict[str, Any]) -> "Plan":
        """Shallow merge of a partial wire payload, the shape PATCH accepts."""
        return Plan.from_dict({**self.to_dict(), **partial})


# ─── Derived State ────────────────────────────────────────────────────────────

@dataclass
class NavigationTarget:
    tab: str
    scroll_to: Optional[str] = None


@dataclass
class GuardianIndicator:
    id: GuardianId
    label: str
    value: str
    level: GuardianLevel
    navigate_to: NavigationTarget
    subtitle: Optional[str] = None


@dataclass
class GuardianState:
    indicators: List[GuardianIndicator]
    all_defaults: bool

    def levels(self) -> Dict[str, GuardianLevel]:
        return {ind.id: ind.level for ind in self.indicators}


@dataclass
class SectionProgress:
    category: str
    label: str
    edited: int
    total: int


@dataclass
class ScenarioOutputs:
    base: EngineOutput
    conservative: EngineOutput
    optimistic: EngineOutput

    def get(self, scenario_id: ScenarioId) -> EngineOutput:
        return getattr(self, scenario_id)

    def items(self) -> List[Tuple[ScenarioId, EngineOutput]]:
        return [("base", self.base), ("conservative", self.conservative),
                ("optimistic", self.optimistic)]


__all__ = [
    "FieldSource", "FormatType", "GuardianLevel", "GuardianId", "ScenarioId",
    "CapexClassification", "FinancialFieldValue", "FieldEntry", "CategoryFields",
    "CATEGORY_ATTRS", "PlanFinancialInputs", "StartupCostLineItem",
    "MonthlyProjection", "AnnualSummary", "ROIMetrics", "IdentityCheckResult",
    "EngineOutput", "Plan", "NavigationTarget", "GuardianIndicator",
    "GuardianState", "SectionProgress", "ScenarioOutputs",
]
