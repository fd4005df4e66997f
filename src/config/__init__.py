"""
Configuration loaders.

App config:     reads config.yaml (state store, journal, alerting).
Engine config:  reads sim.default.json (or override), validates against JSON Schema.
"""

from config.loader import (
    AlertingConfig,
    AppConfig,
    JournalConfig,
    StateConfig,
    load_config,
)
from config.sim_config import (
    AccountConfig,
    FeesConfig,
    MarketConfig,
    SimConfig,
    SimConfigError,
    load_sim_config,
)

__all__ = [
    # App config (YAML)
    "AlertingConfig",
    "AppConfig",
    "JournalConfig",
    "StateConfig",
    "load_config",
    # Engine config (JSON + schema)
    "AccountConfig",
    "FeesConfig",
    "MarketConfig",
    "SimConfig",
    "SimConfigError",
    "load_sim_config",
]
