"""
A bar-by-bar backtesting engine.

The engine walks the price series one bar at a time and keeps at most one
open position. While flat it asks the strategy for an entry; while in a
position it applies the exit rules in a fixed priority order. Orders fill at
the bar's close. Equity and drawdown are recorded on every bar from the
warm-up bar onward. A position still open when the data ends is left
unrealized: it shows in the final equity point but not in the trade log or
the statistics.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

import numpy as np
import pandas as pd

from papertrade.backtester.base import BaseBacktester
from papertrade.backtester.results import BacktestResult, ClosedTrade, ExitReason
from papertrade.config import StrategyConfig
from papertrade.indicators.factory import calculate_all_indicators
from papertrade.metrics import compute_statistics
from papertrade.strategy import Side, Strategy

logger = logging.getLogger(__name__)


@dataclass
class OpenPosition:
    side: Side
    entry_price: float
    entry_time: datetime
    entry_index: int
    quantity: int
    # best close since entry, for the trailing stop
    best_price: float

    def pnl(self, price: float) -> float:
        if self.side is Side.LONG:
            return (price - self.entry_price) * self.quantity
        return (self.entry_price - price) * self.quantity

    def pnl_percent(self, price: float) -> float:
        if self.side is Side.LONG:
            return (price - self.entry_price) / self.entry_price * 100
        return (self.entry_price - price) / self.entry_price * 100

    def update_best(self, price: float) -> None:
        if self.side is Side.LONG:
            self.best_price = max(self.best_price, price)
        else:
            self.best_price = min(self.best_price, price)

    def pullback_percent(self, price: float) -> float:
        if self.side is Side.LONG:
            return (self.best_price - price) / self.best_price * 100
        return (price - self.best_price) / self.best_price * 100


def _check_inputs(strategy: Strategy, config: StrategyConfig) -> None:
    if not isinstance(config, StrategyConfig):
        raise ValueError("config must be a StrategyConfig.")
    if strategy is None or not callable(getattr(strategy, "decide_entry", None)):
        raise ValueError("A strategy with a callable 'decide_entry' is required.")


class BarBacktester(BaseBacktester):
    """
    An event-driven backtesting engine for path-dependent strategies with
    stop-loss, take-profit, trailing-stop and time exits.
    """

    def run(
        self,
        strategy: Strategy,
        config: StrategyConfig,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> BacktestResult:
        """
        Runs the simulation for the given strategy.

        Args:
            strategy (Strategy): The entry/exit decision logic.
            config (StrategyConfig): Capital, sizing and risk parameters.
            should_stop (Optional[Callable[[], bool]]): Polled before each bar;
                when it returns True the run ends early and the result covers
                the bars processed so far.

        Returns:
            BacktestResult: An object containing the results of the backtest.

        Raises:
            ValueError: If the strategy or config is invalid.
        """
        _check_inputs(strategy, config)

        data = self._data
        indicators = calculate_all_indicators(data)
        closes = data["close"].to_numpy(dtype=np.float64)
        times = data.index
        n = len(data)

        capital = config.initial_capital
        peak_equity = capital
        position: Optional[OpenPosition] = None
        trades: List[ClosedTrade] = []
        equity: List[float] = []
        drawdown: List[float] = []

        for i in range(config.warmup, n):
            if should_stop is not None and should_stop():
                logger.info("Run '%s' stopped at bar %d of %d", config.name, i, n)
                break

            close = float(closes[i])

            # 1. Mark to market
            current_equity = capital
            if position is not None:
                current_equity += position.pnl(close)
            equity.append(current_equity)
            peak_equity = max(peak_equity, current_equity)
            drawdown.append((peak_equity - current_equity) / peak_equity * 100)

            # 2. Entry while flat
            if position is None:
                signal = strategy.decide_entry(data, i, indicators)
                if not signal:
                    continue
                quantity = math.floor(capital * config.position_size / close)
                if quantity <= 0:
                    continue
                position = OpenPosition(
                    side=Side(signal),
                    entry_price=close,
                    entry_time=times[i].to_pydatetime(),
                    entry_index=i,
                    quantity=quantity,
                    best_price=close,
                )
                logger.debug("%s %s x%d @ %.2f on %s", config.name, position.side.value,
                             quantity, close, times[i])
                continue

            # 3. Exits while in a position
            position.update_best(close)
            reason = self._exit_reason(strategy, config, position, i, indicators)
            if reason is None:
                continue

            pnl = position.pnl(close)
            trades.append(ClosedTrade(
                entry_time=position.entry_time,
                exit_time=times[i].to_pydatetime(),
                side=position.side,
                entry_price=position.entry_price,
                exit_price=close,
                quantity=position.quantity,
                pnl=pnl,
                pnl_percent=position.pnl_percent(close),
                exit_reason=reason,
                bars_held=i - position.entry_index,
            ))
            capital += pnl
            logger.debug("%s exit %s @ %.2f pnl=%.2f", config.name, reason.value, close, pnl)
            position = None

        index = times[config.warmup:config.warmup + len(equity)]
        equity_curve = pd.Series(equity, index=index, name="equity", dtype=np.float64)
        drawdown_curve = pd.Series(drawdown, index=index, name="drawdown", dtype=np.float64)

        stats = compute_statistics(
            trades,
            drawdown_curve,
            initial_capital=config.initial_capital,
            final_capital=capital,
            peak_equity=peak_equity,
            n_bars=n,
        )
        result = BacktestResult(
            strategy_name=config.name,
            initial_capital=config.initial_capital,
            final_capital=capital,
            trades=trades,
            equity_curve=equity_curve,
            drawdown_curve=drawdown_curve,
            **stats,
        )
        logger.info(
            "Backtest '%s' finished: %d trades, pnl=%.2f (%.2f%%), max drawdown %.2f%%",
            config.name, result.total_trades, result.total_pnl,
            result.total_pnl_percent, result.max_drawdown_percent,
        )
        return result

    def _exit_reason(
        self,
        strategy: Strategy,
        config: StrategyConfig,
        position: OpenPosition,
        index: int,
        indicators: pd.DataFrame,
    ) -> Optional[ExitReason]:
        """Returns the first satisfied exit rule, or None to stay in."""
        close = float(self._data["close"].iat[index])
        pnl_percent = position.pnl_percent(close)

        if pnl_percent <= -config.stop_loss:
            return ExitReason.STOP_LOSS
        if pnl_percent >= config.take_profit:
            return ExitReason.TARGET
        if config.trailing_stop is not None and position.pullback_percent(close) >= config.trailing_stop:
            return ExitReason.TRAILING_STOP
        if (config.max_holding_period is not None
                and index - position.entry_index >= config.max_holding_period):
            return ExitReason.TIME_EXIT
        if strategy.decide_exit(self._data, index, indicators, position.side):
            return ExitReason.SIGNAL
        return None


def run_backtest(
    data: pd.DataFrame,
    strategy: Strategy,
    config: Optional[StrategyConfig] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> BacktestResult:
    """
    Runs a single backtest.

    Args:
        data (pd.DataFrame): The OHLCV price series.
        strategy (Strategy): The strategy to test.
        config (Optional[StrategyConfig]): Run parameters. Defaults to the
            strategy's own default configuration.
        should_stop (Optional[Callable[[], bool]]): Cooperative cancellation
            hook, see BarBacktester.run.

    Returns:
        BacktestResult: The results of the run.
    """
    if config is None:
        if strategy is None:
            raise ValueError("A strategy with a callable 'decide_entry' is required.")
        config = strategy.default_config()
    return BarBacktester(data).run(strategy, config, should_stop=should_stop)
