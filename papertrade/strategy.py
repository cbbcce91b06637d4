"""
The strategy contract consumed by the backtester and the catalog of
predefined strategies.

A strategy is a pair of pure decision functions evaluated once per bar:
`decide_entry` while the simulation is flat and `decide_exit` while a
position is open. Both receive the price series, the bar index and the
indicator frame precomputed for the whole run, so they can look back at
earlier rows without recomputing anything.
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional, Type

import pandas as pd

from papertrade.config import StrategyConfig


class Side(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


def _crossed_above(prev_a: float, prev_b: float, a: float, b: float) -> bool:
    return prev_a < prev_b and a > b


def _crossed_below(prev_a: float, prev_b: float, a: float, b: float) -> bool:
    return prev_a > prev_b and a < b


class Strategy(ABC):
    """
    Abstract base class for all strategies.

    Subclasses set `name`, `description` and their default risk parameters
    as class attributes and implement `decide_entry`. Comparisons against an
    undefined (NaN) indicator are always False, so no signal fires during an
    indicator's warm-up window.
    """
    name: str = ""
    description: str = ""
    stop_loss: float = 2.0
    take_profit: float = 4.0
    trailing_stop: Optional[float] = None
    max_holding_period: Optional[int] = None

    @abstractmethod
    def decide_entry(
        self,
        data: pd.DataFrame,
        index: int,
        indicators: pd.DataFrame,
    ) -> Optional[Side]:
        """
        Decides whether to open a position at bar `index`.

        Args:
            data (pd.DataFrame): The full OHLCV price series.
            index (int): Position of the current bar.
            indicators (pd.DataFrame): The indicator frame of `data`.

        Returns:
            Optional[Side]: The side to open, or None to stay flat.
        """
        raise NotImplementedError

    def decide_exit(
        self,
        data: pd.DataFrame,
        index: int,
        indicators: pd.DataFrame,
        side: Side,
    ) -> bool:
        """Decides whether to close the open `side` position at bar `index`."""
        return False

    def default_config(self, **overrides: Any) -> StrategyConfig:
        """
        Builds a StrategyConfig from the strategy's default risk parameters.

        Args:
            **overrides: StrategyConfig fields replacing the defaults.

        Returns:
            StrategyConfig: The validated configuration.
        """
        params: Dict[str, Any] = {
            "name": self.name,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "trailing_stop": self.trailing_stop,
            "max_holding_period": self.max_holding_period,
        }
        params.update(overrides)
        return StrategyConfig(**params)


class RSIReversal(Strategy):
    name = "RSI Reversal"
    description = "Buy when RSI < 30, sell when RSI > 70"
    stop_loss = 2.0
    take_profit = 4.0

    def __init__(
        self,
        oversold: float = 30.0,
        overbought: float = 70.0,
        exit_long_above: float = 60.0,
        exit_short_below: float = 40.0,
    ):
        self.oversold = oversold
        self.overbought = overbought
        self.exit_long_above = exit_long_above
        self.exit_short_below = exit_short_below

    def decide_entry(self, data, index, indicators):
        value = indicators["rsi"].iat[index]
        if value < self.oversold:
            return Side.LONG
        if value > self.overbought:
            return Side.SHORT
        return None

    def decide_exit(self, data, index, indicators, side):
        value = indicators["rsi"].iat[index]
        if side is Side.LONG:
            return bool(value > self.exit_long_above)
        return bool(value < self.exit_short_below)


class MACDCrossover(Strategy):
    name = "MACD Crossover"
    description = "Trade MACD line crossing signal line"
    stop_loss = 1.5
    take_profit = 3.0

    def decide_entry(self, data, index, indicators):
        if index < 1:
            return None
        line = indicators["macd"]
        signal = indicators["macd_signal"]
        prev = (line.iat[index - 1], signal.iat[index - 1])
        cur = (line.iat[index], signal.iat[index])
        if _crossed_above(*prev, *cur):
            return Side.LONG
        if _crossed_below(*prev, *cur):
            return Side.SHORT
        return None


class BollingerBounce(Strategy):
    name = "Bollinger Bounce"
    description = "Trade price bouncing off Bollinger Bands"
    stop_loss = 1.0
    take_profit = 2.0

    def __init__(self, exit_band_fraction: float = 0.1):
        self.exit_band_fraction = exit_band_fraction

    def decide_entry(self, data, index, indicators):
        close = data["close"].iat[index]
        if close <= indicators["bb_lower"].iat[index]:
            return Side.LONG
        if close >= indicators["bb_upper"].iat[index]:
            return Side.SHORT
        return None

    def decide_exit(self, data, index, indicators, side):
        close = data["close"].iat[index]
        middle = indicators["bb_middle"].iat[index]
        half_width = indicators["bb_upper"].iat[index] - middle
        return bool(abs(close - middle) < half_width * self.exit_band_fraction)


class MovingAverageCrossover(Strategy):
    name = "Moving Average Crossover"
    description = "Trade SMA20 crossing SMA50"
    stop_loss = 2.0
    take_profit = 5.0

    def decide_entry(self, data, index, indicators):
        if index < 1:
            return None
        fast = indicators["sma20"]
        slow = indicators["sma50"]
        prev = (fast.iat[index - 1], slow.iat[index - 1])
        cur = (fast.iat[index], slow.iat[index])
        if _crossed_above(*prev, *cur):
            return Side.LONG
        if _crossed_below(*prev, *cur):
            return Side.SHORT
        return None


# Registry for strategies
STRATEGY_REGISTRY: Dict[str, Type[Strategy]] = {}


def register_strategy(name: str, strategy_class: Type[Strategy]):
    """
    Registers a new strategy class.

    Args:
        name (str): The identifier for the strategy.
        strategy_class (Type[Strategy]): The strategy class to register.
    """
    if name in STRATEGY_REGISTRY:
        raise ValueError(f"Strategy '{name}' is already registered.")
    STRATEGY_REGISTRY[name] = strategy_class


def get_strategy(name: str, **kwargs) -> Strategy:
    """
    Retrieves an instance of a registered strategy.

    Args:
        name (str): The identifier of the strategy to retrieve.
        **kwargs: Keyword arguments to pass to the strategy's constructor.

    Returns:
        Strategy: An instance of the requested strategy.
    """
    if name not in STRATEGY_REGISTRY:
        raise ValueError(
            f"Strategy '{name}' is not registered. Available: {list(STRATEGY_REGISTRY.keys())}"
        )
    return STRATEGY_REGISTRY[name](**kwargs)


register_strategy(RSIReversal.name, RSIReversal)
register_strategy(MACDCrossover.name, MACDCrossover)
register_strategy(BollingerBounce.name, BollingerBounce)
register_strategy(MovingAverageCrossover.name, MovingAverageCrossover)
