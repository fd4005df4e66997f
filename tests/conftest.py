"""Pytest fixtures: deterministic clock, ids and engine for sim tests."""

import itertools
import random
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from config.sim_config import SimConfig
from execution.engine import TradingEngine


class FakeClock:
    """Returns a fixed start time, advancing by *step* on every call."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start or datetime(2024, 1, 2, 9, 30, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


def id_sequence(prefix: str) -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sim_config() -> SimConfig:
    return SimConfig()


@pytest.fixture
def engine(clock: FakeClock, sim_config: SimConfig) -> TradingEngine:
    """Engine at 3400 cents with $1,000 cash, 1% fee and predictable ids."""
    return TradingEngine(
        sim_config,
        clock=clock,
        rng=random.Random(7),
        order_ids=id_sequence("ord"),
        position_ids=id_sequence("pos"),
        trade_ids=id_sequence("trd"),
    )


@pytest.fixture
def events(engine: TradingEngine) -> list:
    """Every event the engine publishes, in order."""
    seen: list = []
    engine.subscribe(seen.append)
    return seen
