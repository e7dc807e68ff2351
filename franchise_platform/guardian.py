"""
franchise_platform/guardian.py
==============================
Guardian plan-health indicators derived from engine outputs.

  - Break-even month   ≤18 healthy · ≤30 attention · later / never concerning
  - 5-year ROI         ≥100% healthy · ≥50% attention · below concerning
  - Cash position      0 negative months healthy · ≤3 attention · more concerning

`GuardianPulseTracker` is the stateful change-signal wrapper: level
transitions are debounced (300 ms) and the changed indicators pulse for
650 ms. Its timers are owned by the tracker and cancelled by `dispose()`.
"""
from __future__ import annotations
import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Protocol, Set, Union

import pandas as pd

from .types import (
    EngineOutput, GuardianIndicator, GuardianLevel, GuardianState, MonthlyProjection,
    NavigationTarget, PlanFinancialInputs, StartupCostLineItem, FinancialFieldValue,
)
from .formatting import month_count_label
from .config import PlannerConfig

logger = logging.getLogger(__name__)

BREAKEVEN_THRESHOLDS = {"green": 18, "amber": 30}
ROI_THRESHOLDS = {"green": 1.0, "amber": 0.5}
CASH_NEGATIVE_THRESHOLDS = {"green": 0, "amber": 3}

DEBOUNCE_MS = 300
PULSE_MS = 650


# ─── Level Classification ─────────────────────────────────────────────────────

def get_break_even_level(month: Optional[int]) -> GuardianLevel:
    if month is None:
        return "concerning"
    if month <= BREAKEVEN_THRESHOLDS["green"]:
        return "healthy"
    if month <= BREAKEVEN_THRESHOLDS["amber"]:
        return "attention"
    return "concerning"


def get_roi_level(five_year_roi_pct: float) -> GuardianLevel:
    if five_year_roi_pct >= ROI_THRESHOLDS["green"]:
        return "healthy"
    if five_year_roi_pct >= ROI_THRESHOLDS["amber"]:
        return "attention"
    return "concerning"


def count_negative_cash_months(monthly: List[MonthlyProjection]) -> int:
    return sum(1 for m in monthly if m.ending_cash < 0)


def get_cash_level(negative_months: int) -> GuardianLevel:
    if negative_months <= CASH_NEGATIVE_THRESHOLDS["green"]:
        return "healthy"
    if negative_months <= CASH_NEGATIVE_THRESHOLDS["amber"]:
        return "attention"
    return "concerning"


# ─── Display Values ───────────────────────────────────────────────────────────

def format_break_even_value(month: Optional[int]) -> str:
    return "Not reached" if month is None else f"Month {month}"


def break_even_calendar_date(
    month: Optional[int], plan_start_date: Union[str, date, datetime, None] = None
) -> Optional[str]:
    """
    Start date (today when absent) + N months, e.g. "Mar 2027".
    An unreadable start date gives no subtitle rather than an error.
    """
    if month is None:
        return None
    try:
        start = pd.Timestamp(plan_start_date) if plan_start_date else pd.Timestamp.now()
        return (start + pd.DateOffset(months=month)).strftime("%b %Y")
    except (ValueError, TypeError):
        logger.debug("Unreadable plan start date %r", plan_start_date)
        return None


def format_roi_value(pct: float) -> str:
    display = pct * 100
    if float(display).is_integer():
        return f"{int(display)}%"
    return f"{display:.1f}%"


def format_cash_status(negative_months: int) -> str:
    if negative_months == 0:
        return "OK"
    return f"{month_count_label(negative_months)} negative"


# ─── State ────────────────────────────────────────────────────────────────────

def is_all_defaults(
    inputs: Optional[PlanFinancialInputs],
    startup_costs: Optional[List[StartupCostLineItem]],
) -> bool:
    """True when no field and no startup cost item is custom."""
    if inputs is None:
        return True
    for _, fields in inputs.categories():
        if not isinstance(fields, dict):
            continue
        for entry in fields.values():
            values = entry if isinstance(entry, list) else [entry]
            for value in values:
                if isinstance(value, FinancialFieldValue) and value.is_custom:
                    return False
    return not any(cost.is_custom for cost in startup_costs or [])


def compute_guardian_state(
    output: EngineOutput,
    plan_start_date: Union[str, date, datetime, None] = None,
    inputs: Optional[PlanFinancialInputs] = None,
    startup_costs: Optional[List[StartupCostLineItem]] = None,
) -> GuardianState:
    roi = output.roi_metrics
    negative_months = count_negative_cash_months(output.monthly_projections)

    indicators = [
        GuardianIndicator(
            id="break-even",
            label="Break-even",
            value=format_break_even_value(roi.break_even_month),
            subtitle=break_even_calendar_date(roi.break_even_month, plan_start_date),
            level=get_break_even_level(roi.break_even_month),
            navigate_to=NavigationTarget(tab="summary", scroll_to="section-break-even-analysis"),
        ),
        GuardianIndicator(
            id="roi",
            label="5yr ROI",
            value=format_roi_value(roi.five_year_roi_pct),
            level=get_roi_level(roi.five_year_roi_pct),
            navigate_to=NavigationTarget(tab="roic"),
        ),
        GuardianIndicator(
            id="cash",
            label="Cash Position",
            value=format_cash_status(negative_months),
            level=get_cash_level(negative_months),
            navigate_to=NavigationTarget(tab="cash-flow"),
        ),
    ]
    return GuardianState(indicators=indicators, all_defaults=is_all_defaults(inputs, startup_costs))


def detect_level_changes(previous: Dict[str, GuardianLevel], state: GuardianState) -> Set[str]:
    """Indicator ids whose level differs from a known previous level."""
    return {
        ind.id for ind in state.indicators
        if ind.id in previous and previous[ind.id] != ind.level
    }


# ─── Change Signal ────────────────────────────────────────────────────────────

class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def event_loop_scheduler(delay_s: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay_s, callback)


class GuardianPulseTracker:
    """
    Watches successive GuardianStates and flags indicators whose level moved.

    Rapid transitions inside the debounce window coalesce into one pulse.
    `on_change(pulsing_ids)` fires when a pulse starts and again when it clears.
    """

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        debounce_ms: int = DEBOUNCE_MS,
        pulse_ms: int = PULSE_MS,
        on_change: Optional[Callable[[FrozenSet[str]], None]] = None,
    ):
        self._schedule = scheduler or event_loop_scheduler
        self.debounce_ms = debounce_ms
        self.pulse_ms = pulse_ms
        self.on_change = on_change
        self._levels: Dict[str, GuardianLevel] = {}
        self._pending: Set[str] = set()
        self._pulsing: FrozenSet[str] = frozenset()
        self._debounce: Optional[TimerHandle] = None
        self._pulse: Optional[TimerHandle] = None
        self._disposed = False

    @classmethod
    def from_config(
        cls,
        config: PlannerConfig,
        scheduler: Optional[Scheduler] = None,
        on_change: Optional[Callable[[FrozenSet[str]], None]] = None,
    ) -> "GuardianPulseTracker":
        return cls(scheduler, config.guardian_debounce_ms, config.guardian_pulse_ms, on_change)

    @property
    def pulsing(self) -> FrozenSet[str]:
        return self._pulsing

    @property
    def disposed(self) -> bool:
        return self._disposed

    def observe(self, state: GuardianState) -> Set[str]:
        if self._disposed:
            return set()
        changed = detect_level_changes(self._levels, state)
        self._levels = state.levels()
        if changed:
            logger.debug("Guardian level change: %s", sorted(changed))
            self._pending |= changed
            if self._debounce is not None:
                self._debounce.cancel()
            self._debounce = self._schedule(self.debounce_ms / 1000, self._start_pulse)
        return changed

    def _start_pulse(self) -> None:
        self._debounce = None
        if self._disposed:
            return
        self._pulsing = frozenset(self._pending)
        self._pending = set()
        if self._pulse is not None:
            self._pulse.cancel()
        self._pulse = self._schedule(self.pulse_ms / 1000, self._clear_pulse)
        self._notify()

    def _clear_pulse(self) -> None:
        self._pulse = None
        if self._disposed:
            return
        self._pulsing = frozenset()
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self._pulsing)

    def dispose(self) -> None:
        for handle in (self._debounce, self._pulse):
            if handle is not None:
                handle.cancel()
        self._debounce = self._pulse = None
        self._pending = set()
        self._pulsing = frozenset()
        self._disposed = True
