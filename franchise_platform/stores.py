"""
franchise_platform/stores.py
============================
Per-plan stores binding the optimistic sync protocol to the API resources.

  PlanStore         plan document, PATCH with optimistic merge and a conflict guard
  StartupCostStore  startup cost line items, PUT / reset
  PlanOutputsStore  server-computed engine output, read only

Any accepted write to the plan or its startup costs makes the cached engine
output stale; the next `PlanOutputsStore.get()` refetches it.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from .api import ApiError, PlanApiClient
from .cache import QueryCache, plan_key, plan_outputs_key, startup_costs_key
from .completeness import compute_completeness, compute_section_progress
from .guardian import compute_guardian_state
from .sync import ConflictError, OptimisticSyncClient, SyncError
from .types import (
    EngineOutput, GuardianState, Plan, PlanFinancialInputs, SectionProgress,
    StartupCostLineItem,
)

logger = logging.getLogger(__name__)


class PlanStore:
    """
    Saves carry the `updatedAt` of the copy they were made against. A 409
    means the plan changed elsewhere: the store enters the conflict state and
    refuses further saves until `reload()`.
    """

    def __init__(self, api: PlanApiClient, cache: QueryCache, sync: OptimisticSyncClient, plan_id: str):
        self.api = api
        self.cache = cache
        self.sync = sync
        self.plan_id = plan_id
        self.key = plan_key(plan_id)
        self.conflict = False

    async def load(self) -> Plan:
        return await self.cache.fetch(self.key, lambda: self.api.get_plan(self.plan_id))

    async def reload(self) -> Plan:
        """Drop local state, refetch the server copy and leave the conflict state."""
        self.cache.invalidate(self.key)
        plan = await self.load()
        self.conflict = False
        return plan

    @property
    def plan(self) -> Optional[Plan]:
        return self.cache.get(self.key)

    @property
    def is_saving(self) -> bool:
        return self.sync.is_pending(self.key)

    @property
    def save_error(self) -> Optional[BaseException]:
        return self.sync.last_error(self.key)

    async def update_plan(self, partial: Dict[str, Any]) -> Plan:
        if self.conflict:
            raise ConflictError(self.key, RuntimeError("plan changed elsewhere; reload before saving"))
        # a save over an unconfirmed one supersedes it and carries no guard
        expected = None
        if not self.is_saving and self.plan is not None:
            expected = self.plan.updated_at
        try:
            return await self.sync.mutate(
                self.key,
                optimistic=lambda prev: prev.merged(partial) if prev is not None else None,
                request=lambda: self.api.update_plan(self.plan_id, partial, expected_updated_at=expected),
                invalidates=[plan_outputs_key(self.plan_id)],
            )
        except SyncError as exc:
            if isinstance(exc.cause, ApiError) and exc.cause.status == 409:
                self.conflict = True
                logger.warning("Plan %s changed elsewhere; saves paused until reload", self.plan_id)
                raise ConflictError(self.key, exc.cause) from exc.cause
            raise

    async def save_financial_inputs(self, inputs: PlanFinancialInputs) -> Plan:
        return await self.update_plan({"financialInputs": inputs.to_dict()})


class StartupCostStore:
    def __init__(self, api: PlanApiClient, cache: QueryCache, sync: OptimisticSyncClient, plan_id: str):
        self.api = api
        self.cache = cache
        self.sync = sync
        self.plan_id = plan_id
        self.key = startup_costs_key(plan_id)

    async def load(self) -> List[StartupCostLineItem]:
        return await self.cache.fetch(self.key, lambda: self.api.get_startup_costs(self.plan_id))

    @property
    def costs(self) -> List[StartupCostLineItem]:
        return self.cache.get(self.key) or []

    @property
    def is_saving(self) -> bool:
        return self.sync.is_pending(self.key)

    async def update_costs(self, costs: List[StartupCostLineItem]) -> List[StartupCostLineItem]:
        return await self.sync.mutate(
            self.key,
            optimistic=list(costs),
            request=lambda: self.api.update_startup_costs(self.plan_id, costs),
            invalidates=[plan_outputs_key(self.plan_id)],
        )

    async def reset_to_defaults(self) -> List[StartupCostLineItem]:
        # the server owns the brand template, so there is nothing to show early
        return await self.sync.mutate(
            self.key,
            optimistic=None,
            request=lambda: self.api.reset_startup_costs(self.plan_id),
            invalidates=[plan_outputs_key(self.plan_id)],
        )


class PlanOutputsStore:
    def __init__(self, api: PlanApiClient, cache: QueryCache, plan_id: str):
        self.api = api
        self.cache = cache
        self.plan_id = plan_id
        self.key = plan_outputs_key(plan_id)

    async def get(self) -> EngineOutput:
        return await self.cache.fetch(self.key, lambda: self.api.get_outputs(self.plan_id))

    @property
    def output(self) -> Optional[EngineOutput]:
        return self.cache.get(self.key)

    @property
    def is_stale(self) -> bool:
        return self.cache.is_stale(self.key)

    def invalidate(self) -> None:
        self.cache.invalidate(self.key)


class PlanWorkspace:
    """The three stores of one plan, plus the state derived from their cached values."""

    def __init__(self, api: PlanApiClient, plan_id: str, cache: Optional[QueryCache] = None):
        self.cache = cache if cache is not None else QueryCache()
        self.sync = OptimisticSyncClient(self.cache)
        self.plan = PlanStore(api, self.cache, self.sync, plan_id)
        self.startup_costs = StartupCostStore(api, self.cache, self.sync, plan_id)
        self.outputs = PlanOutputsStore(api, self.cache, plan_id)

    async def load(self) -> None:
        await self.plan.load()
        await self.startup_costs.load()
        await self.outputs.get()

    @property
    def financial_inputs(self) -> Optional[PlanFinancialInputs]:
        plan = self.plan.plan
        return plan.financial_inputs if plan is not None else None

    def guardian_state(self) -> Optional[GuardianState]:
        output = self.outputs.output
        if output is None:
            return None
        plan = self.plan.plan
        return compute_guardian_state(
            output,
            plan_start_date=plan.start_date if plan is not None else None,
            inputs=self.financial_inputs,
            startup_costs=self.startup_costs.costs,
        )

    def section_progress(self) -> List[SectionProgress]:
        inputs = self.financial_inputs
        return compute_section_progress(inputs) if inputs is not None else []

    def completeness(self) -> int:
        inputs = self.financial_inputs
        if inputs is None:
            return 0
        return compute_completeness(inputs, len(self.startup_costs.costs))
