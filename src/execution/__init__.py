"""
Execution: the trading engine (single state owner), its price ticker,
and snapshot serialization for persistence collaborators.
"""

from execution.engine import RestoreReport, TradingEngine
from execution.simulation import PriceSimulation

__all__ = ["PriceSimulation", "RestoreReport", "TradingEngine"]
