"""Franchise Planner — derived state for franchise business plans (Python/Streamlit)."""
from .types import *
from .formatting import format_cents, parse_dollars_to_cents, format_financial_value
from .field_metadata import FIELD_METADATA, get_field_meta, parse_field_input, format_field_value
from .completeness import compute_completeness, compute_section_progress, get_generate_button_label
from .scenarios import SCENARIO_ORDER, compute_scenario_outputs, ScenarioComparison
from .guardian import compute_guardian_state, GuardianPulseTracker
from .field_editing import FieldEditSession
from .cache import QueryCache, plan_key, plan_outputs_key, startup_costs_key
from .sync import ConflictError, OptimisticSyncClient, SyncError
from .api import PlanApiClient, ApiError
from .stores import PlanStore, StartupCostStore, PlanOutputsStore, PlanWorkspace
from .config import PlannerConfig, configure_logging
