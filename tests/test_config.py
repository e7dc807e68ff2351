"""
tests/test_config.py
====================
Runtime settings from the environment.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from franchise_platform.config import PlannerConfig


class TestPlannerConfig:
    def test_defaults(self):
        config = PlannerConfig.from_env({})
        assert config == PlannerConfig()
        assert config.api_base_url == "http://localhost:5000/api"
        assert config.guardian_debounce_ms == 300
        assert config.guardian_pulse_ms == 650
        assert not config.read_only
        assert config.projection_engine is None

    def test_overrides(self):
        config = PlannerConfig.from_env({
            "FRANCHISE_API_BASE_URL": "https://plans.example.com/api/",
            "FRANCHISE_API_TIMEOUT": "4.5",
            "FRANCHISE_GUARDIAN_DEBOUNCE_MS": "150",
            "FRANCHISE_GUARDIAN_PULSE_MS": "400",
            "FRANCHISE_LOG_LEVEL": "debug",
            "FRANCHISE_READ_ONLY": "true",
            "FRANCHISE_PROJECTION_ENGINE": "engine.core:project",
        })
        assert config.api_base_url == "https://plans.example.com/api"
        assert config.api_timeout == 4.5
        assert config.guardian_debounce_ms == 150
        assert config.guardian_pulse_ms == 400
        assert config.log_level == "DEBUG"
        assert config.read_only
        assert config.projection_engine == "engine.core:project"

    def test_read_only_flag_values(self):
        assert PlannerConfig.from_env({"FRANCHISE_READ_ONLY": "1"}).read_only
        assert not PlannerConfig.from_env({"FRANCHISE_READ_ONLY": "no"}).read_only
