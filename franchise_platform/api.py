"""
franchise_platform/api.py
=========================
Async client for the plan REST API.

  GET   /plans/{id}                      → {"data": Plan}
  PATCH /plans/{id}                      → {"data": Plan}, 409 on a stale _expectedUpdatedAt
  GET   /plans/{id}/outputs              → {"data": EngineOutput}
  GET   /plans/{id}/startup-costs        → [StartupCostLineItem]
  PUT   /plans/{id}/startup-costs        → [StartupCostLineItem]
  POST  /plans/{id}/startup-costs/reset  → [StartupCostLineItem]

Authentication is the server's session cookie; the client forwards whatever
cookies it is constructed with and nothing else.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import PlannerConfig
from .provenance import migrate_plan_financial_inputs, migrate_startup_costs
from .types import EngineOutput, Plan, StartupCostLineItem

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status: Optional[int], message: str, payload: Any = None):
        super().__init__(f"{status}: {message}" if status else message)
        self.status = status
        self.message = message
        self.payload = payload


def _error_message(response: httpx.Response) -> tuple:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and err.get("message"):
            return err["message"], payload
        if payload.get("message"):
            return payload["message"], payload
    return response.reason_phrase, payload


def _plan_from_body(body: Dict[str, Any]) -> Plan:
    plan = Plan.from_dict(body["data"])
    if plan.financial_inputs is not None:
        plan.financial_inputs = migrate_plan_financial_inputs(plan.financial_inputs)
    return plan


class PlanApiClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        cookies: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            cookies=cookies,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_config(
        cls, config: PlannerConfig, cookies: Optional[Dict[str, str]] = None
    ) -> "PlanApiClient":
        return cls(config.api_base_url, timeout=config.api_timeout, cookies=cookies)

    async def __aenter__(self) -> "PlanApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise ApiError(None, str(exc) or type(exc).__name__) from exc
        if response.is_error:
            message, payload = _error_message(response)
            logger.error("%s %s returned %s: %s", method, path, response.status_code, message)
            raise ApiError(response.status_code, message, payload)
        return response.json()

    # ── plan ──────────────────────────────────────────────────────────────────

    async def get_plan(self, plan_id: str) -> Plan:
        body = await self._request("GET", f"/plans/{plan_id}")
        return _plan_from_body(body)

    async def update_plan(
        self, plan_id: str, partial: Dict[str, Any], expected_updated_at: Optional[str] = None
    ) -> Plan:
        """With `expected_updated_at` the server answers 409 if the plan changed since then."""
        payload = dict(partial)
        if expected_updated_at:
            payload["_expectedUpdatedAt"] = expected_updated_at
        body = await self._request("PATCH", f"/plans/{plan_id}", json=payload)
        return _plan_from_body(body)

    async def get_outputs(self, plan_id: str) -> EngineOutput:
        body = await self._request("GET", f"/plans/{plan_id}/outputs")
        return EngineOutput.from_dict(body["data"])

    # ── startup costs ─────────────────────────────────────────────────────────

    async def get_startup_costs(self, plan_id: str) -> List[StartupCostLineItem]:
        body = await self._request("GET", f"/plans/{plan_id}/startup-costs")
        return migrate_startup_costs(body)

    async def update_startup_costs(
        self, plan_id: str, costs: List[StartupCostLineItem]
    ) -> List[StartupCostLineItem]:
        body = await self._request(
            "PUT", f"/plans/{plan_id}/startup-costs", json=[c.to_dict() for c in costs]
        )
        return migrate_startup_costs(body)

    async def reset_startup_costs(self, plan_id: str) -> List[StartupCostLineItem]:
        body = await self._request("POST", f"/plans/{plan_id}/startup-costs/reset")
        return migrate_startup_costs(body)
