"""
app.py
======
Franchise Planner — Plan Workspace (Streamlit)

Sections:
  1. Completeness bar + generate button label
  2. Guardian bar (break-even, ROI, cash position)
  3. Inputs (inline field editors per category)
  4. Startup Costs
  5. Scenarios (base / conservative / optimistic comparison)

Every rule lives in `franchise_platform`; this file is presentation glue.
"""

import asyncio
import importlib
import json
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from franchise_platform.api import ApiError, PlanApiClient
from franchise_platform.cache import QueryCache, plan_key
from franchise_platform.completeness import get_generate_button_label
from franchise_platform.config import PlannerConfig, configure_logging
from franchise_platform.field_editing import FieldEditSession
from franchise_platform.field_metadata import (
    CATEGORY_LABELS, CATEGORY_ORDER, FIELD_METADATA,
    edit_buffer_text, format_field_value, get_input_placeholder,
)
from franchise_platform.formatting import (
    format_cents, format_percent, get_completeness_color, get_level_color, parse_dollars_to_cents,
)
from franchise_platform.guardian import detect_level_changes, format_break_even_value
from franchise_platform.provenance import (
    add_custom_startup_cost, get_field, get_startup_cost_totals, remove_startup_cost,
    reset_startup_cost_to_default, update_startup_cost_amount,
)
from franchise_platform.scenarios import (
    ProjectionFn, ScenarioComparison, compute_scenario_outputs, describe_scenarios, scenario_identity,
)
from franchise_platform.stores import PlanWorkspace
from franchise_platform.sync import ConflictError, SyncError
from franchise_platform.types import EngineOutput, Plan, PlanFinancialInputs, StartupCostLineItem

T = TypeVar("T")

CONFIG = PlannerConfig.from_env()
configure_logging(CONFIG.log_level)

# ─── Page Configuration ───────────────────────────────────────────────────────

st.set_page_config(
    page_title="Franchise Planner",
    page_icon="🏪",
    layout="wide",
    initial_sidebar_state="expanded",
    menu_items={"About": "Franchise Planner plan workspace"},
)

# ─── Custom CSS ───────────────────────────────────────────────────────────────

st.markdown("""
<style>
    .main-header {
        background: linear-gradient(135deg, #1e40af 0%, #3730a3 100%);
        border-radius: 12px;
        padding: 1.2rem 1.5rem;
        color: white;
        margin-bottom: 1.5rem;
        box-shadow: 0 4px 20px rgba(30,64,175,0.3);
    }
    .main-header h1 { margin: 0; font-size: 1.6rem; font-weight: 700; letter-spacing: -0.02em; }
    .main-header p  { margin: 0.25rem 0 0; font-size: 0.85rem; opacity: 0.85; }

    .guardian-card {
        background: white;
        border: 1px solid #e2e8f0;
        border-left-width: 4px;
        border-radius: 10px;
        padding: 0.8rem 1rem;
        box-shadow: 0 1px 4px rgba(0,0,0,0.06);
    }
    .guardian-label { font-size: 0.72rem; color: #64748b; text-transform: uppercase; letter-spacing: 0.05em; }
    .guardian-value { font-size: 1.35rem; font-weight: 700; color: #1e293b; }
    .guardian-sub   { font-size: 0.75rem; color: #94a3b8; }
    .guardian-pulse { font-size: 0.7rem; font-weight: 600; margin-left: 0.4rem; }

    .progress-track { background:#f1f5f9; border-radius:6px; height:10px; overflow:hidden; }
    .progress-fill  { height:10px; border-radius:6px; }

    .src-default { background:#f1f5f9; color:#475569; padding:0.1rem 0.45rem; border-radius:4px; font-size:0.7rem; }
    .src-custom  { background:#dbeafe; color:#1e40af; padding:0.1rem 0.45rem; border-radius:4px; font-size:0.7rem; }
</style>
""", unsafe_allow_html=True)


# ─── Helpers ─────────────────────────────────────────────────────────────────

def _run(action: Callable[[PlanWorkspace], Awaitable[T]]) -> T:
    """Run one async store action against a fresh API client and the shared cache."""
    async def runner() -> T:
        async with PlanApiClient.from_config(CONFIG, cookies=_cookies()) as api:
            workspace = PlanWorkspace(api, st.session_state["plan_id"], cache=st.session_state["cache"])
            return await action(workspace)
    return asyncio.run(runner())


def _cookies() -> Optional[Dict[str, str]]:
    sid = st.session_state.get("session_cookie")
    return {"connect.sid": sid} if sid else None


@st.cache_resource
def _load_engine(path: Optional[str]) -> Optional[ProjectionFn]:
    if not path:
        return None
    module_name, _, attr = path.partition(":")
    return getattr(importlib.import_module(module_name), attr)


def _cached_plan() -> Optional[Plan]:
    return st.session_state["cache"].get(plan_key(st.session_state["plan_id"]))


def _edit_session() -> FieldEditSession:
    plan = _cached_plan()
    return FieldEditSession(
        plan.financial_inputs if plan else None,
        on_save=lambda doc: st.session_state.__setitem__("pending_inputs", doc),
    )


def _field_widget_key(category: str, field_name: str) -> str:
    return f"fld_{category}_{field_name}_{st.session_state['fields_version']}"


def _scenario_comparison(
    engine: Optional[ProjectionFn],
    plan: Plan,
    inputs: Optional[PlanFinancialInputs],
    costs: List[StartupCostLineItem],
) -> ScenarioComparison:
    """
    One ScenarioComparison per plan version, kept across reruns. Flipping the
    toggle reruns the script but reuses the held outputs; only a changed plan
    or startup cost list runs the engine again.
    """
    fingerprint = (
        plan.id, plan.updated_at, engine is not None,
        json.dumps(inputs.to_dict() if inputs else None, sort_keys=True),
        json.dumps([c.to_dict() for c in costs], sort_keys=True),
    )
    held: Optional[ScenarioComparison] = st.session_state["scenario_comparison"]
    if held is not None and st.session_state["scenario_fingerprint"] == fingerprint:
        return held

    comparison = ScenarioComparison()
    if engine is not None and inputs is not None:
        comparison.outputs = compute_scenario_outputs(inputs, costs, engine)
    if held is not None and held.comparison_active and comparison.outputs is not None:
        comparison.activate()
    st.session_state["scenario_comparison"] = comparison
    st.session_state["scenario_fingerprint"] = fingerprint
    return comparison


def _build_cash_chart(visible: List, height: int = 320) -> go.Figure:
    fig = go.Figure()
    for identity, output in visible:
        fig.add_trace(go.Scatter(
            x=[m.month for m in output.monthly_projections],
            y=[m.ending_cash / 100 for m in output.monthly_projections],
            name=identity.label, mode="lines",
            line=dict(color=identity.hex, width=2.5),
        ))
    fig.add_hline(y=0, line=dict(color="#ef4444", width=1, dash="dot"))
    fig.update_layout(
        title=dict(text="Ending Cash by Month", font=dict(size=14, color="#1e293b")),
        yaxis_title="$", xaxis_title="Month",
        paper_bgcolor="white", plot_bgcolor="#f8fafc",
        margin=dict(l=40, r=20, t=40, b=30),
        height=height, legend=dict(orientation="h", y=-0.2),
        font=dict(family="sans-serif", size=11, color="#64748b"),
        xaxis=dict(gridcolor="#e2e8f0"), yaxis=dict(gridcolor="#e2e8f0"),
    )
    return fig


def _scenario_table(visible: List) -> pd.DataFrame:
    rows = []
    for identity, output in visible:
        roi = output.roi_metrics
        year1 = output.annual_summaries[0].pre_tax_income if output.annual_summaries else 0.0
        rows.append({
            "Scenario": identity.label,
            "Break-even": format_break_even_value(roi.break_even_month),
            "5yr ROI": format_percent(roi.five_year_roi_pct),
            "Year 1 Pre-tax": format_cents(year1),
        })
    return pd.DataFrame(rows)


def _startup_cost_frame(costs: List[StartupCostLineItem]) -> pd.DataFrame:
    rows = [{
        "Item": c.name,
        "Classification": c.capex_classification.replace("_", " ").title(),
        "Amount": format_cents(c.amount),
        "Brand Default": format_cents(c.brand_default_amount) if c.brand_default_amount is not None else "—",
        "Source": "Custom" if c.is_custom else ("Brand default" if c.source == "brand_default" else "Edited"),
    } for c in sorted(costs, key=lambda c: c.sort_order)]
    return pd.DataFrame(rows)


# ─── Session State ────────────────────────────────────────────────────────────

def _init_state() -> None:
    defaults = {
        "plan_id": "",
        "session_cookie": "",
        "cache": QueryCache(),
        "loaded": False,
        "guardian_levels": {},
        "scenario_comparison": None,
        "scenario_fingerprint": None,
        "conflict": False,
        "fields_version": 0,
        "pending_inputs": None,
        "notice": None,
    }
    for k, v in defaults.items():
        if k not in st.session_state:
            st.session_state[k] = v


_init_state()


# ─── Callbacks ────────────────────────────────────────────────────────────────

def _commit_field(category: str, field_name: str) -> None:
    session = _edit_session()
    if session.start_edit(category, field_name):
        session.set_buffer(st.session_state.get(_field_widget_key(category, field_name), ""))
        if session.commit_edit() is None:
            # unparsable or unchanged: re-seed the editor from the stored value
            st.session_state["fields_version"] += 1


def _reset_field(category: str, field_name: str) -> None:
    _edit_session().reset_field(category, field_name)


# ─── Sidebar ──────────────────────────────────────────────────────────────────

with st.sidebar:
    st.markdown("""
    <div style='text-align:center; padding:0.5rem 0 1rem;'>
        <span style='font-size:2rem;'>🏪</span><br>
        <strong style='font-size:1rem; color:#1e40af;'>Franchise Planner</strong><br>
        <span style='font-size:0.72rem; color:#64748b;'>Plan Workspace</span>
    </div>
    """, unsafe_allow_html=True)
    st.markdown("---")

    plan_id = st.text_input("Plan ID", st.session_state["plan_id"])
    st.session_state["session_cookie"] = st.text_input(
        "Session cookie", st.session_state["session_cookie"], type="password",
        help="Value of the server's connect.sid cookie",
    )
    if st.button("📂 Load Plan", width='stretch', disabled=not plan_id):
        st.session_state["plan_id"] = plan_id.strip()
        st.session_state["cache"] = QueryCache()
        st.session_state["guardian_levels"] = {}
        st.session_state["conflict"] = False
        st.session_state["loaded"] = True
        st.rerun()

    if CONFIG.read_only:
        st.info("Read-only session: edits are disabled.", icon="🔒")
    st.markdown("---")
    st.caption(f"API: {CONFIG.api_base_url}")


# ─── Main Header ─────────────────────────────────────────────────────────────

st.markdown("""
<div class='main-header'>
    <h1>🏪 Franchise Planner</h1>
    <p>Build, stress-test and complete your franchise business plan</p>
</div>
""", unsafe_allow_html=True)

if not st.session_state["loaded"]:
    st.info("Enter a plan ID in the sidebar to open its workspace.", icon="📁")
    st.stop()


# ─── Load / Save ──────────────────────────────────────────────────────────────

pending: Optional[PlanFinancialInputs] = st.session_state["pending_inputs"]
st.session_state["pending_inputs"] = None
# edits made against a plan that changed elsewhere are dropped, not saved
if pending is not None and not st.session_state["conflict"]:
    try:
        _run(lambda ws: ws.plan.save_financial_inputs(pending))
        st.session_state["notice"] = ("success", "Saved")
    except ConflictError:
        st.session_state["conflict"] = True
    except SyncError as exc:
        st.session_state["notice"] = ("error", f"Could not save your change: {exc.cause}. Please try again.")
    st.session_state["fields_version"] += 1


async def _load_all(ws: PlanWorkspace) -> PlanWorkspace:
    await ws.load()
    return ws


try:
    workspace = _run(_load_all)
except ApiError as exc:
    st.error(f"Could not load plan {st.session_state['plan_id']}: {exc.message}")
    st.stop()

plan = workspace.plan.plan
inputs = workspace.financial_inputs
costs = workspace.startup_costs.costs
base_output: Optional[EngineOutput] = workspace.outputs.output
fields_locked = CONFIG.read_only or st.session_state["conflict"]

notice = st.session_state["notice"]
if notice:
    kind, text = notice
    (st.success if kind == "success" else st.error)(text)
    st.session_state["notice"] = None

if st.session_state["conflict"]:
    n1, n2 = st.columns([4, 1])
    with n1:
        st.error("This plan was updated elsewhere. Reload to see the latest version.", icon="⚠️")
    with n2:
        if st.button("🔄 Reload plan", width='stretch'):
            st.session_state["cache"] = QueryCache()
            st.session_state["conflict"] = False
            st.session_state["fields_version"] += 1
            st.rerun()

st.markdown(f"### {plan.name or 'Untitled plan'}")


# ─── Completeness ─────────────────────────────────────────────────────────────

pct = workspace.completeness()
c1, c2 = st.columns([4, 1])
with c1:
    st.markdown(
        f"<div style='font-size:0.8rem;color:#64748b;'>Plan completeness: <b>{pct}%</b></div>"
        f"<div class='progress-track'><div class='progress-fill' "
        f"style='width:{pct}%;background:{get_completeness_color(pct)};'></div></div>",
        unsafe_allow_html=True,
    )
with c2:
    st.button(get_generate_button_label(pct), width='stretch', disabled=True,
              help="Document generation runs on the server")


# ─── Guardian Bar ─────────────────────────────────────────────────────────────

guardian = workspace.guardian_state()
if guardian is not None:
    changed = detect_level_changes(st.session_state["guardian_levels"], guardian)
    st.session_state["guardian_levels"] = guardian.levels()
    cols = st.columns(len(guardian.indicators))
    for col, ind in zip(cols, guardian.indicators):
        color = get_level_color(ind.level)
        pulse = (f"<span class='guardian-pulse' style='color:{color};'>● changed</span>"
                 if ind.id in changed else "")
        with col:
            st.markdown(f"""
            <div class='guardian-card' style='border-left-color:{color};'>
                <div class='guardian-label'>{ind.label}{pulse}</div>
                <div class='guardian-value' style='color:{color};'>{ind.value}</div>
                <div class='guardian-sub'>{ind.subtitle or ind.level.title()}</div>
            </div>
            """, unsafe_allow_html=True)
    if guardian.all_defaults:
        st.caption("Based on brand defaults. Edit your inputs to personalize these results.")


tabs = st.tabs(["✏️ Inputs", "🧾 Startup Costs", "📈 Scenarios"])


# ─── Inputs ───────────────────────────────────────────────────────────────────

with tabs[0]:
    if inputs is None:
        st.warning("This plan has no financial inputs yet.")
    else:
        progress = {s.category: s for s in workspace.section_progress()}
        for category in CATEGORY_ORDER:
            section = progress[category]
            with st.expander(f"{CATEGORY_LABELS[category]}  ·  {section.edited}/{section.total} edited"):
                for field_name, meta in FIELD_METADATA[category].items():
                    field = get_field(inputs, category, field_name)
                    if field is None:
                        continue
                    fc1, fc2, fc3, fc4 = st.columns([3, 3, 2, 1])
                    fc1.markdown(f"**{meta.label}**")
                    fc2.text_input(
                        meta.label, edit_buffer_text(field.current_value, meta.format),
                        key=_field_widget_key(category, field_name),
                        placeholder=get_input_placeholder(meta.format),
                        label_visibility="collapsed",
                        disabled=fields_locked,
                        on_change=_commit_field, args=(category, field_name),
                    )
                    badge = "src-custom" if field.is_custom else "src-default"
                    fc3.markdown(
                        f"<span class='{badge}'>{'Your value' if field.is_custom else 'Brand default'}</span> "
                        f"<span style='font-size:0.7rem;color:#94a3b8;'>"
                        f"default {format_field_value(field.default_value, meta.format)}</span>",
                        unsafe_allow_html=True,
                    )
                    if field.is_custom:
                        fc4.button("↺", key=f"reset_{category}_{field_name}",
                                   help="Reset to brand default", disabled=fields_locked,
                                   on_click=_reset_field, args=(category, field_name))


# ─── Startup Costs ────────────────────────────────────────────────────────────

def _save_costs(action: Callable[[PlanWorkspace], Awaitable[List[StartupCostLineItem]]]) -> None:
    try:
        _run(action)
        st.session_state["notice"] = ("success", "Startup costs saved")
    except SyncError as exc:
        st.session_state["notice"] = ("error", f"Could not save startup costs: {exc.cause}")
    st.rerun()


with tabs[1]:
    if costs:
        st.dataframe(_startup_cost_frame(costs), width='stretch', hide_index=True)
        totals = get_startup_cost_totals(costs)
        t1, t2, t3, t4 = st.columns(4)
        t1.metric("CapEx", format_cents(totals["capex_total"]))
        t2.metric("Non-CapEx", format_cents(totals["non_capex_total"]))
        t3.metric("Working Capital", format_cents(totals["working_capital_total"]))
        t4.metric("Total Investment", format_cents(totals["grand_total"]))
    else:
        st.info("No startup cost items.")

    if not CONFIG.read_only:
        st.markdown("**Edit an item**")
        by_label = {c.name: c for c in costs}
        if by_label:
            e1, e2 = st.columns([3, 2])
            chosen = by_label[e1.selectbox("Item", list(by_label))]
            amount_text = e2.text_input("Amount ($)", edit_buffer_text(chosen.amount, "currency"),
                                        key=f"cost_amount_{chosen.id}")
            b1, b2, b3 = st.columns(3)
            if b1.button("Save amount", width='stretch'):
                cents = parse_dollars_to_cents(amount_text)
                if cents is None:
                    st.warning("Enter a non-negative dollar amount.")
                elif cents != chosen.amount:
                    updated = update_startup_cost_amount(costs, chosen.id, cents)
                    _save_costs(lambda ws: ws.startup_costs.update_costs(updated))
            if b2.button("Reset to default", width='stretch',
                         disabled=chosen.is_custom or chosen.source == "brand_default"):
                updated = reset_startup_cost_to_default(costs, chosen.id)
                _save_costs(lambda ws: ws.startup_costs.update_costs(updated))
            if b3.button("Remove", width='stretch', disabled=not chosen.is_custom):
                updated = remove_startup_cost(costs, chosen.id)
                _save_costs(lambda ws: ws.startup_costs.update_costs(updated))

        with st.form("add_cost", clear_on_submit=True):
            st.markdown("**Add a custom item**")
            a1, a2, a3 = st.columns([3, 2, 2])
            new_name = a1.text_input("Name")
            new_amount = a2.text_input("Amount ($)", placeholder="$0")
            new_class = a3.selectbox("Classification", ["capex", "non_capex", "working_capital"])
            if st.form_submit_button("Add item"):
                cents = parse_dollars_to_cents(new_amount)
                if not new_name.strip() or cents is None:
                    st.warning("Enter a name and a non-negative dollar amount.")
                else:
                    updated = add_custom_startup_cost(costs, new_name.strip(), cents, new_class)
                    _save_costs(lambda ws: ws.startup_costs.update_costs(updated))

        if st.button("↺ Reset all to brand defaults"):
            _save_costs(lambda ws: ws.startup_costs.reset_to_defaults())


# ─── Scenarios ────────────────────────────────────────────────────────────────

with tabs[2]:
    engine = _load_engine(CONFIG.projection_engine)
    comparison = _scenario_comparison(engine, plan, inputs, costs)

    active = st.toggle("Compare scenarios", value=comparison.comparison_active,
                       disabled=comparison.outputs is None,
                       help=None if engine else "Set FRANCHISE_PROJECTION_ENGINE to enable")
    if active:
        comparison.activate()
    else:
        comparison.deactivate()

    if comparison.outputs is not None:
        visible = comparison.visible_outputs()
    elif base_output is not None:
        visible = [(scenario_identity("base"), base_output)]
    else:
        visible = []

    if visible:
        st.plotly_chart(_build_cash_chart(visible), width='stretch')
        st.dataframe(_scenario_table(visible), width='stretch', hide_index=True)
        if comparison.comparison_active:
            st.info(describe_scenarios(comparison.outputs))
    else:
        st.info("Projections are not available yet.")
