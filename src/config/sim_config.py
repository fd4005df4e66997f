"""
Engine config loader: JSON file -> frozen dataclass tree, validated against JSON Schema.

Default values:      docs/config/sim.default.json
Schema:              docs/config/sim_config.schema.json

Per-symbol overrides: place a partial JSON file named ``sim.{SYMBOL}.json``
next to the default config (e.g. ``docs/config/sim.CSK.json``). Only the
keys you want to override need to be present; they are deep-merged on top
of the base config before schema validation.

Usage:
    from config.sim_config import load_sim_config
    cfg = load_sim_config()                        # loads default
    cfg = load_sim_config(symbol="CSK")            # merges sim.CSK.json if present
    cfg.fees.fee_rate  # -> 0.01
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema

logger = logging.getLogger("tradesim.config")

# ---------------------------------------------------------------------------
# Project root detection (walk up from this file to find pyproject.toml)
# ---------------------------------------------------------------------------


def _find_project_root() -> Path:
    """Walk up from this file looking for pyproject.toml.

    Falls back to CWD when installed without the source tree.
    """
    candidate = Path(__file__).resolve().parent
    for _ in range(10):
        if (candidate / "pyproject.toml").exists():
            return candidate
        parent = candidate.parent
        if parent == candidate:
            break
        candidate = parent
    return Path.cwd()


_PROJECT_ROOT = _find_project_root()

DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "docs" / "config" / "sim.default.json"
DEFAULT_SCHEMA_PATH = _PROJECT_ROOT / "docs" / "config" / "sim_config.schema.json"


# ---------------------------------------------------------------------------
# Frozen dataclass tree (mirrors sim.default.json)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MarketConfig:
    initial_price: int = 3400        # cents
    tick_interval_ms: int = 2000
    volatility: float = 0.02         # symmetric fractional range per tick
    history_size: int = 100
    min_price: int = 1               # cents
    seed: int | None = None


@dataclass(frozen=True)
class FeesConfig:
    fee_rate: float = 0.01


@dataclass(frozen=True)
class AccountConfig:
    initial_cash: int = 100_000      # cents


@dataclass(frozen=True)
class SimConfig:
    """Top-level engine configuration."""
    version: str = "1.0"
    symbol: str = "CSK"
    market: MarketConfig = MarketConfig()
    fees: FeesConfig = FeesConfig()
    account: AccountConfig = AccountConfig()


# ---------------------------------------------------------------------------
# Deep merge for per-symbol overrides
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base* (override keys win)."""
    merged = dict(base)
    for key, val in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(val, dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class SimConfigError(Exception):
    """Raised when engine config loading or validation fails."""


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    if not schema_path.exists():
        raise SimConfigError(f"Schema file not found: {schema_path}")
    with open(schema_path) as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        raise SimConfigError(f"Engine config validation failed: {exc.message}") from exc


def _build_config(data: dict[str, Any]) -> SimConfig:
    """Convert a raw dict (already validated) into the frozen dataclass tree."""
    market_raw = data["market"]
    return SimConfig(
        version=data["version"],
        symbol=data.get("symbol", "CSK"),
        market=MarketConfig(
            initial_price=market_raw["initial_price_cents"],
            tick_interval_ms=market_raw["tick_interval_ms"],
            volatility=float(market_raw["volatility"]),
            history_size=market_raw.get("history_size", 100),
            min_price=market_raw.get("min_price_cents", 1),
            seed=market_raw.get("seed"),
        ),
        fees=FeesConfig(fee_rate=float(data["fees"]["fee_rate"])),
        account=AccountConfig(initial_cash=data["account"]["initial_cash_cents"]),
    )


def load_sim_config(
    config_path: str | Path | None = None,
    schema_path: str | Path | None = None,
    symbol: str | None = None,
) -> SimConfig:
    """Load and validate engine configuration.

    Parameters
    ----------
    config_path:
        Path to an engine JSON config file. Defaults to ``docs/config/sim.default.json``.
    schema_path:
        Path to the JSON Schema file. Defaults to ``docs/config/sim_config.schema.json``.
    symbol:
        Optional instrument symbol. When provided, ``sim.{SYMBOL}.json`` in
        the config directory is deep-merged on top of the base config, and
        the symbol becomes the engine's instrument.

    Raises
    ------
    SimConfigError
        If the file is missing, unparseable, or fails schema validation.
    """
    cfg_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    sch_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH

    if not cfg_path.exists():
        raise SimConfigError(f"Engine config file not found: {cfg_path}")

    try:
        with open(cfg_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise SimConfigError(f"Engine config is not valid JSON: {exc}") from exc

    if symbol:
        override_path = cfg_path.parent / f"sim.{symbol.upper()}.json"
        if override_path.exists():
            try:
                with open(override_path) as f:
                    overrides = json.load(f)
            except json.JSONDecodeError as exc:
                raise SimConfigError(
                    f"Per-symbol config {override_path.name} is not valid JSON: {exc}"
                ) from exc
            data = _deep_merge(data, overrides)
            logger.info("Loaded per-symbol config: %s", override_path.name)
        else:
            logger.debug("No per-symbol config found at %s, using defaults", override_path)
        data = _deep_merge(data, {"symbol": symbol})

    _validate_schema(data, sch_path)

    return _build_config(data)
