"""
franchise_platform/config.py
============================
Runtime settings. Passed explicitly to the components that need them;
nothing in the package reads these ambiently.
"""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass
class PlannerConfig:
    api_base_url: str = "http://localhost:5000/api"
    api_timeout: float = 10.0
    guardian_debounce_ms: int = 300
    guardian_pulse_ms: int = 650
    log_level: str = "INFO"
    read_only: bool = False  # demo / impersonation sessions
    projection_engine: Optional[str] = None  # "package.module:function"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PlannerConfig":
        e = os.environ if env is None else env
        base = cls()
        return cls(
            api_base_url=e.get("FRANCHISE_API_BASE_URL", base.api_base_url).rstrip("/"),
            api_timeout=float(e.get("FRANCHISE_API_TIMEOUT", base.api_timeout)),
            guardian_debounce_ms=int(e.get("FRANCHISE_GUARDIAN_DEBOUNCE_MS", base.guardian_debounce_ms)),
            guardian_pulse_ms=int(e.get("FRANCHISE_GUARDIAN_PULSE_MS", base.guardian_pulse_ms)),
            log_level=e.get("FRANCHISE_LOG_LEVEL", base.log_level).upper(),
            read_only=e.get("FRANCHISE_READ_ONLY", "").lower() in ("1", "true", "yes"),
            projection_engine=e.get("FRANCHISE_PROJECTION_ENGINE") or None,
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
