"""
Abstract base class for backtesting engines.
"""
from abc import ABC, abstractmethod

import pandas as pd

from papertrade.backtester.results import BacktestResult
from papertrade.config import StrategyConfig
from papertrade.data.provider import validate_price_series
from papertrade.strategy import Strategy


class BaseBacktester(ABC):
    """
    Abstract base class for all backtesting engines.

    It defines the common interface for running a backtest against a given
    strategy and dataset. The price series is validated once and never
    mutated by a run, so one backtester may serve several runs.
    """

    def __init__(self, data: pd.DataFrame):
        """
        Initializes the backtester.

        Args:
            data (pd.DataFrame): The OHLCV data to be used for the backtest.

        Raises:
            ValueError: If the data is not a valid price series.
        """
        self._data = validate_price_series(data.copy())

    @property
    def data(self) -> pd.DataFrame:
        return self._data

    @abstractmethod
    def run(self, strategy: Strategy, config: StrategyConfig) -> BacktestResult:
        """
        Runs a backtest for the given strategy.

        Args:
            strategy (Strategy): The entry/exit decision logic.
            config (StrategyConfig): Capital, sizing and risk parameters.

        Returns:
            BacktestResult: An object containing the results of the backtest.
        """
        raise NotImplementedError
