"""
Config loader: YAML file -> frozen dataclass tree.

The alert webhook URL may be supplied through TRADESIM_WEBHOOK_URL so it
stays out of the config file.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True)
class StateConfig:
    path: str = "data/tradesim_state.db"
    autosave: bool = True


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/journal.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    log_ticks: bool = False
    webhook_url: str = ""


@dataclass(frozen=True)
class AppConfig:
    symbol: str
    state: StateConfig
    journal: JournalConfig
    alerting: AlertingConfig = AlertingConfig()
    engine_config: str | None = None


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load application configuration from a YAML file.

    ``engine_config`` optionally points at a JSON engine config; when absent
    the default docs/config/sim.default.json is used.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    s_raw = raw.get("state", {})
    s_cfg = StateConfig(
        path=s_raw.get("path", "data/tradesim_state.db"),
        autosave=bool(s_raw.get("autosave", True)),
    )

    j_raw = raw.get("journal", {})
    j_cfg = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {})
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        log_ticks=bool(a_raw.get("log_ticks", False)),
        webhook_url=os.environ.get("TRADESIM_WEBHOOK_URL", str(a_raw.get("webhook_url", ""))),
    )

    engine_config = raw.get("engine_config")

    return AppConfig(
        symbol=str(raw.get("symbol", "CSK")),
        state=s_cfg,
        journal=j_cfg,
        alerting=a_cfg,
        engine_config=str(engine_config) if engine_config else None,
    )
