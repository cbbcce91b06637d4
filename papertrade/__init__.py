"""
This __init__.py file exposes the public API of papertrade.
"""

from .config import Config, StrategyConfig
from .io import load_config, load_prices
from .backtester.engine import BarBacktester, run_backtest
from .backtester.results import BacktestResult, ClosedTrade, ExitReason
from .indicators.factory import calculate_all_indicators
from .metrics import register_objective
from .strategy import Side, Strategy, get_strategy, register_strategy
from .batch import BatchRunner

__all__ = [
    "Config",
    "StrategyConfig",
    "load_config",
    "load_prices",
    "BarBacktester",
    "run_backtest",
    "BacktestResult",
    "ClosedTrade",
    "ExitReason",
    "calculate_all_indicators",
    "register_objective",
    "Side",
    "Strategy",
    "get_strategy",
    "register_strategy",
    "BatchRunner",
]
