"""
tests/test_api.py
=================
Plan API client over httpx.MockTransport, and the per-plan stores wired to
it through the cache and optimistic sync client.

Run:  pytest tests/ -v
"""

import asyncio
import json
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import pytest

from franchise_platform.api import ApiError, PlanApiClient
from franchise_platform.cache import plan_key, plan_outputs_key, startup_costs_key
from franchise_platform.config import PlannerConfig
from franchise_platform.provenance import get_field, update_field_value, with_field
from franchise_platform.stores import PlanWorkspace
from franchise_platform.sync import ConflictError, SyncError

BASE_URL = "http://planner.test/api"
CREATED = "2025-12-01T00:00:00+00:00"
NOW = "2026-01-01T00:00:00+00:00"


class FakePlanServer:
    """In-memory stand-in for the plan routes."""

    def __init__(self, inputs, startup_costs, output):
        self.plan = {
            "id": "p1", "name": "Downtown", "brandId": "b1",
            "financialInputs": inputs.to_dict(), "startDate": "2026-01-01", "updatedAt": CREATED,
        }
        self.costs = [c.to_dict() for c in startup_costs]
        self.template = [dict(c) for c in self.costs]
        self.output = output.to_dict()
        self.requests = []
        self.fail_next = None
        self.expectations = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if self.fail_next is not None:
            status, self.fail_next = self.fail_next, None
            return httpx.Response(status, json={"message": "Could not save plan"})
        route = (request.method, request.url.path)
        if route == ("GET", "/api/plans/p1"):
            return httpx.Response(200, json={"data": self.plan})
        if route == ("PATCH", "/api/plans/p1"):
            body = json.loads(request.content)
            expected = body.pop("_expectedUpdatedAt", None)
            self.expectations.append(expected)
            if expected is not None and expected != self.plan.get("updatedAt"):
                return httpx.Response(409, json={"message": "Plan was updated elsewhere"})
            self.plan = {**self.plan, **body, "updatedAt": NOW}
            return httpx.Response(200, json={"data": self.plan})
        if route == ("GET", "/api/plans/p1/outputs"):
            return httpx.Response(200, json={"data": self.output})
        if route == ("GET", "/api/plans/p1/startup-costs"):
            return httpx.Response(200, json=self.costs)
        if route == ("PUT", "/api/plans/p1/startup-costs"):
            self.costs = json.loads(request.content)
            return httpx.Response(200, json=self.costs)
        if route == ("POST", "/api/plans/p1/startup-costs/reset"):
            self.costs = [dict(c) for c in self.template]
            return httpx.Response(200, json=self.costs)
        return httpx.Response(404, json={"error": {"message": "Plan not found"}})

    def client(self) -> PlanApiClient:
        return PlanApiClient(BASE_URL, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def server(inputs, startup_costs, output_factory):
    return FakePlanServer(inputs, startup_costs, output_factory(break_even_month=14, roi_pct=1.2))


class TestPlanApiClient:
    def test_get_plan(self, server, inputs):
        async def scenario():
            async with server.client() as api:
                return await api.get_plan("p1")

        plan = asyncio.run(scenario())
        assert plan.id == "p1"
        assert plan.name == "Downtown"
        assert plan.financial_inputs == inputs
        assert server.requests == [("GET", "/api/plans/p1")]

    def test_update_plan_sends_partial(self, server):
        async def scenario():
            async with server.client() as api:
                return await api.update_plan("p1", {"name": "Uptown"})

        plan = asyncio.run(scenario())
        assert plan.name == "Uptown"
        assert plan.updated_at == NOW

    def test_get_outputs(self, server):
        async def scenario():
            async with server.client() as api:
                return await api.get_outputs("p1")

        output = asyncio.run(scenario())
        assert output.roi_metrics.break_even_month == 14
        assert len(output.monthly_projections) == 60

    def test_startup_cost_routes(self, server, startup_costs):
        async def scenario():
            async with server.client() as api:
                listed = await api.get_startup_costs("p1")
                updated = await api.update_startup_costs("p1", listed[:1])
                reset = await api.reset_startup_costs("p1")
                return listed, updated, reset

        listed, updated, reset = asyncio.run(scenario())
        assert [c.name for c in listed] == [c.name for c in startup_costs]
        assert len(updated) == 1
        assert len(reset) == 3

    def test_update_plan_sends_expected_timestamp(self, server):
        async def scenario():
            async with server.client() as api:
                await api.update_plan("p1", {"name": "Uptown"}, expected_updated_at=CREATED)
                await api.update_plan("p1", {"name": "Midtown"})

        asyncio.run(scenario())
        assert server.expectations == [CREATED, None]
        assert "_expectedUpdatedAt" not in server.plan

    def test_legacy_plan_migrated_on_load(self, server, legacy_inputs_payload):
        server.plan["financialInputs"] = legacy_inputs_payload

        async def scenario():
            async with server.client() as api:
                return await api.get_plan("p1")

        inputs = asyncio.run(scenario()).financial_inputs
        assert len(inputs.revenue["growthRates"]) == 5
        assert "rentMonthly" not in inputs.operating_costs
        assert inputs.facilities_decomposition["rent"][0].current_value == 4_800_000

    def test_legacy_startup_costs_backfilled(self, server):
        server.costs = [{"id": "eq", "name": "Equipment", "amount": 9_000, "capexClassification": "capex"}]

        async def scenario():
            async with server.client() as api:
                return await api.get_startup_costs("p1")

        (item,) = asyncio.run(scenario())
        assert item.brand_default_amount == 9_000
        assert item.source == "brand_default"
        assert item.sort_order == 0

    def test_error_status(self, server):
        async def scenario():
            async with server.client() as api:
                return await api.get_plan("missing")

        with pytest.raises(ApiError) as info:
            asyncio.run(scenario())
        assert info.value.status == 404
        assert info.value.message == "Plan not found"

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def scenario():
            async with PlanApiClient(BASE_URL, transport=httpx.MockTransport(handler)) as api:
                return await api.get_plan("p1")

        with pytest.raises(ApiError) as info:
            asyncio.run(scenario())
        assert info.value.status is None
        assert "connection refused" in info.value.message

    def test_from_config(self):
        async def scenario():
            api = PlanApiClient.from_config(PlannerConfig(api_base_url="http://example.test/api", api_timeout=2.5))
            base, timeout = str(api._client.base_url), api._client.timeout.read
            await api.aclose()
            return base, timeout

        base, timeout = asyncio.run(scenario())
        assert base.startswith("http://example.test/api")
        assert timeout == 2.5


class TestPlanWorkspace:
    def test_load_populates_cache(self, server):
        async def scenario():
            async with server.client() as api:
                ws = PlanWorkspace(api, "p1")
                await ws.load()
                await ws.load()
                return ws

        ws = asyncio.run(scenario())
        assert ws.plan.plan.name == "Downtown"
        assert len(ws.startup_costs.costs) == 3
        assert ws.outputs.output.roi_metrics.five_year_roi_pct == 1.2
        assert set(ws.cache.keys()) == {plan_key("p1"), startup_costs_key("p1"), plan_outputs_key("p1")}
        assert len(server.requests) == 3

    def test_derived_state(self, server):
        async def scenario():
            async with server.client() as api:
                ws = PlanWorkspace(api, "p1")
                await ws.load()
                return ws

        ws = asyncio.run(scenario())
        state = ws.guardian_state()
        assert state.all_defaults
        assert state.indicators[0].subtitle == "Mar 2027"
        assert ws.completeness() == 9
        assert len(ws.section_progress()) == 7

    def test_save_invalidates_outputs(self, server):
        async def scenario():
            async with server.client() as api:
                ws = PlanWorkspace(api, "p1")
                await ws.load()
                inputs = ws.financial_inputs
                field = get_field(inputs, "revenue", "monthlyAuv")
                edited = with_field(inputs, "revenue", "monthlyAuv", update_field_value(field, 6_000_000, NOW))
                plan = await ws.plan.save_financial_inputs(edited)
                stale = ws.outputs.is_stale
                await ws.outputs.get()
                return ws, plan, stale

        ws, plan, stale = asyncio.run(scenario())
        assert stale
        assert not ws.outputs.is_stale
        assert get_field(plan.financial_inputs, "revenue", "monthlyAuv").current_value == 6_000_000
        assert ws.plan.plan.updated_at == NOW
        assert not ws.guardian_state().all_defaults
        assert server.requests[-1] == ("GET", "/api/plans/p1/outputs")

    def test_failed_save_rolls_back(self, server):
        async def scenario():
            async with server.client() as api:
                ws = PlanWorkspace(api, "p1")
                await ws.load()
                server.fail_next = 500
                with pytest.raises(SyncError) as info:
                    await ws.plan.update_plan({"name": "Uptown"})
                return ws, info.value

        ws, error = asyncio.run(scenario())
        assert ws.plan.plan.name == "Downtown"
        assert isinstance(error.cause, ApiError)
        assert error.cause.status == 500
        assert ws.plan.save_error is error.cause
        assert not ws.plan.is_saving
        assert not ws.outputs.is_stale

    def test_save_carries_loaded_timestamp(self, server):
        async def scenario():
            async with server.client() as api:
                ws = PlanWorkspace(api, "p1")
                await ws.load()
                await ws.plan.update_plan({"name": "Uptown"})
                await ws.plan.update_plan({"name": "Midtown"})

        asyncio.run(scenario())
        assert server.expectations == [CREATED, NOW]

    def test_conflict_pauses_saves_until_reload(self, server):
        elsewhere = "2026-02-01T00:00:00+00:00"

        async def scenario():
            async with server.client() as api:
                ws = PlanWorkspace(api, "p1")
                await ws.load()
                server.plan = {**server.plan, "name": "Renamed elsewhere", "updatedAt": elsewhere}

                with pytest.raises(ConflictError) as first:
                    await ws.plan.update_plan({"name": "Uptown"})
                after_conflict = ws.plan.plan.name
                patches = len(server.expectations)
                with pytest.raises(ConflictError):
                    await ws.plan.update_plan({"name": "Again"})
                blocked = len(server.expectations) == patches

                reloaded = await ws.plan.reload()
                saved = await ws.plan.update_plan({"name": "Uptown"})
                return ws, first.value, after_conflict, blocked, reloaded, saved

        ws, error, after_conflict, blocked, reloaded, saved = asyncio.run(scenario())
        assert not error.retryable
        assert error.cause.status == 409
        assert after_conflict == "Downtown"
        assert blocked
        assert reloaded.name == "Renamed elsewhere"
        assert reloaded.updated_at == elsewhere
        assert not ws.plan.conflict
        assert saved.name == "Uptown"
        assert server.expectations[-1] == elsewhere

    def test_startup_cost_update_and_reset(self, server):
        async def scenario():
            async with server.client() as api:
                ws = PlanWorkspace(api, "p1")
                await ws.load()
                costs = ws.startup_costs.costs
                await ws.startup_costs.update_costs(costs[:2])
                after_update = len(ws.startup_costs.costs)
                stale = ws.outputs.is_stale
                await ws.startup_costs.reset_to_defaults()
                return ws, after_update, stale

        ws, after_update, stale = asyncio.run(scenario())
        assert after_update == 2
        assert stale
        assert len(ws.startup_costs.costs) == 3

    def test_outputs_invalidate(self, server):
        async def scenario():
            async with server.client() as api:
                ws = PlanWorkspace(api, "p1")
                await ws.outputs.get()
                ws.outputs.invalidate()
                await ws.outputs.get()

        asyncio.run(scenario())
        assert server.requests.count(("GET", "/api/plans/p1/outputs")) == 2
