"""
franchise_platform/scenarios.py
===============================
Base / Conservative / Optimistic scenario derivation and the presentation
identity (label, colour) every view uses for them.

The projection engine itself is external: callers pass `project`, a
function (PlanFinancialInputs, startup costs) → EngineOutput. The three
variants are always computed together as one unit.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Tuple

from .types import (
    EngineOutput, PlanFinancialInputs, ScenarioId, ScenarioOutputs, StartupCostLineItem,
    FinancialFieldValue, FieldEntry,
)
from .formatting import format_cents, round_half_up

ProjectionFn = Callable[[PlanFinancialInputs, List[StartupCostLineItem]], EngineOutput]

SCENARIO_ORDER: Tuple[ScenarioId, ...] = ("base", "conservative", "optimistic")

SCENARIO_LABELS: Dict[ScenarioId, str] = {
    "base": "Base Case",
    "conservative": "Conservative",
    "optimistic": "Optimistic",
}

# dot / bg are the web class names; hex is used by charts
SCENARIO_COLORS: Dict[ScenarioId, Dict[str, str]] = {
    "base": {"bg": "", "dot": "bg-foreground/60", "hex": "#64748b"},
    "conservative": {"bg": "bg-orange-50/50", "dot": "bg-orange-500", "hex": "#f97316"},
    "optimistic": {"bg": "bg-blue-50/50", "dot": "bg-blue-500", "hex": "#3b82f6"},
}


@dataclass(frozen=True)
class ScenarioIdentity:
    id: ScenarioId
    label: str
    dot: str
    bg: str
    hex: str


def scenario_identity(scenario_id: ScenarioId) -> ScenarioIdentity:
    colors = SCENARIO_COLORS[scenario_id]
    return ScenarioIdentity(
        id=scenario_id, label=SCENARIO_LABELS[scenario_id],
        dot=colors["dot"], bg=colors["bg"], hex=colors["hex"],
    )


# ─── Parameter Adjustments ────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScenarioAdjustment:
    revenue_factor: float   # relative change to AUV
    cogs_pp: float          # percentage-point change to COGS %
    opex_factor: float      # relative change to labor, marketing, other opex, facilities


SCENARIO_ADJUSTMENTS: Dict[ScenarioId, ScenarioAdjustment] = {
    "base": ScenarioAdjustment(0.0, 0.0, 0.0),
    "conservative": ScenarioAdjustment(-0.15, 0.02, 0.10),
    "optimistic": ScenarioAdjustment(0.15, -0.01, -0.05),
}

_OPEX_PCT_FIELDS = ("laborPct", "marketingPct", "otherOpexPct")


def _clamp01(v: float) -> float:
    return max(0.0, min(1.0, v))


def _map_entry(entry: FieldEntry, fn: Callable[[float], float]) -> FieldEntry:
    if isinstance(entry, list):
        return [replace(f, current_value=fn(f.current_value)) for f in entry]
    return replace(entry, current_value=fn(entry.current_value))


def apply_scenario_factors(inputs: PlanFinancialInputs, adj: ScenarioAdjustment) -> PlanFinancialInputs:
    """Adjusted copy of `inputs`; provenance is left as it was."""
    inputs = inputs.copy()
    revenue = dict(inputs.revenue)
    if isinstance(revenue.get("monthlyAuv"), (FinancialFieldValue, list)):
        revenue["monthlyAuv"] = _map_entry(
            revenue["monthlyAuv"], lambda v: round_half_up(v * (1 + adj.revenue_factor))
        )

    opex_mult = 1 + adj.opex_factor
    costs = dict(inputs.operating_costs)
    if "cogsPct" in costs:
        costs["cogsPct"] = _map_entry(costs["cogsPct"], lambda v: _clamp01(v + adj.cogs_pp))
    for name in _OPEX_PCT_FIELDS:
        if name in costs:
            costs[name] = _map_entry(costs[name], lambda v: _clamp01(v * opex_mult))
    if "facilitiesAnnual" in costs:
        costs["facilitiesAnnual"] = _map_entry(costs["facilitiesAnnual"], lambda v: round_half_up(v * opex_mult))

    return replace(inputs, revenue=revenue, operating_costs=costs)


def compute_scenario_outputs(
    inputs: PlanFinancialInputs,
    startup_costs: List[StartupCostLineItem],
    project: ProjectionFn,
) -> ScenarioOutputs:
    outputs = {
        scenario_id: project(
            inputs if scenario_id == "base" else apply_scenario_factors(inputs, SCENARIO_ADJUSTMENTS[scenario_id]),
            startup_costs,
        )
        for scenario_id in SCENARIO_ORDER
    }
    return ScenarioOutputs(**outputs)


# ─── Comparison Mode ──────────────────────────────────────────────────────────

class ScenarioComparison:
    """
    Binary view state. Off shows only the base case, on shows all three.
    Holds already-computed outputs; toggling never recomputes them.
    """

    def __init__(self, outputs: Optional[ScenarioOutputs] = None):
        self.outputs = outputs
        self.comparison_active = False

    def activate(self) -> None:
        self.comparison_active = True

    def deactivate(self) -> None:
        self.comparison_active = False

    def visible_scenarios(self) -> List[ScenarioId]:
        return list(SCENARIO_ORDER) if self.comparison_active else ["base"]

    def visible_outputs(self) -> List[Tuple[ScenarioIdentity, EngineOutput]]:
        if self.outputs is None:
            return []
        return [(scenario_identity(s), self.outputs.get(s)) for s in self.visible_scenarios()]


# ─── Narrative ────────────────────────────────────────────────────────────────

def _year1_pre_tax(output: EngineOutput) -> float:
    return output.annual_summaries[0].pre_tax_income if output.annual_summaries else 0.0


def _break_even_text(month: Optional[int]) -> str:
    if month is None or month < 0:
        return "has not reached break-even within the 5-year projection period"
    return f"reaches break-even by Month {month}"


def _projects_text(pre_tax: float) -> str:
    return f"{format_cents(pre_tax)}{' (loss)' if pre_tax < 0 else ''}"


def describe_scenarios(outputs: ScenarioOutputs) -> str:
    cons = outputs.conservative
    cons_pre_tax = _year1_pre_tax(cons)
    if cons_pre_tax < 0:
        cons_income = f"generates a ({format_cents(abs(cons_pre_tax))}) loss in Year 1"
    else:
        cons_income = f"generates {format_cents(cons_pre_tax)} in Year 1 pre-tax income"
    return (
        "In the conservative scenario (15% lower revenue, higher costs), your business "
        f"{_break_even_text(cons.roi_metrics.break_even_month)} and {cons_income}. "
        f"Your base case projects {_projects_text(_year1_pre_tax(outputs.base))}, "
        f"and the optimistic case projects {_projects_text(_year1_pre_tax(outputs.optimistic))}."
    )
