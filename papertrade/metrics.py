"""
Functions for calculating performance statistics of a backtest.

Every function is a pure reduction over the closed-trade returns or the
equity/drawdown curves produced by the backtester and always returns a finite
float (profit factor aside), falling back to 0.0 when a statistic is
undefined. The objective registry maps metric names to accessors on a
BacktestResult and is used to rank runs in a batch.
"""
from operator import attrgetter
from typing import Callable, Dict, List, Sequence

import numpy as np
import pandas as pd

TRADING_DAYS_PER_YEAR = 252

# Relative tolerance below which a spread counts as zero
SPREAD_TOLERANCE = 1e-12

# Registry for objective functions
OBJECTIVE_REGISTRY: Dict[str, Callable[..., float]] = {}


def register_objective(name: str, func: Callable[..., float]):
    """
    Registers a new objective function for ranking backtest results.

    Args:
        name (str): The name of the objective function.
        func (Callable[..., float]): A function taking a BacktestResult and
            returning a score, higher being better.
    """
    if name in OBJECTIVE_REGISTRY:
        raise ValueError(f"Objective '{name}' is already registered.")
    OBJECTIVE_REGISTRY[name] = func


def get_objective(name: str) -> Callable[..., float]:
    """
    Retrieves an objective function from the registry.

    Args:
        name (str): The name of the objective function to retrieve.

    Returns:
        Callable[..., float]: The requested objective function.
    """
    if name not in OBJECTIVE_REGISTRY:
        raise ValueError(f"Objective '{name}' is not registered. Available: {list(OBJECTIVE_REGISTRY.keys())}")
    return OBJECTIVE_REGISTRY[name]


def is_negligible_spread(spread: float, center: float) -> bool:
    """
    True when a standard deviation (or error) is zero up to floating-point
    noise relative to the mean, e.g. the spread of [0.1, 0.1, 0.1].
    """
    return bool(np.isclose(spread, 0.0, rtol=0.0, atol=SPREAD_TOLERANCE * max(1.0, abs(center))))


def calculate_win_rate(pnls: pd.Series) -> float:
    """
    Fraction of trades with a strictly positive P&L. 0.0 without trades.
    """
    if pnls.empty:
        return 0.0
    return float((pnls > 0).sum() / len(pnls))


def calculate_profit_factor(pnls: pd.Series) -> float:
    """
    Calculates gross profit divided by gross loss.

    Args:
        pnls (pd.Series): Realized P&L per trade.

    Returns:
        float: The profit factor; inf if there is profit but no loss, 0.0 if
        there is neither.
    """
    gross_profit = pnls[pnls > 0].sum()
    gross_loss = abs(pnls[pnls <= 0].sum())
    if gross_loss > 0:
        return float(gross_profit / gross_loss)
    return float("inf") if gross_profit > 0 else 0.0


def calculate_sharpe_ratio(
    returns: pd.Series,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> float:
    """
    Calculates the annualized Sharpe ratio from per-trade percent returns.

    Args:
        returns (pd.Series): A Series of per-trade percent returns.
        periods_per_year (int): The annualization factor.

    Returns:
        float: mean / population standard deviation * sqrt(periods_per_year).
        Returns 0.0 if there are no returns or the standard deviation is zero.
    """
    if returns.empty:
        return 0.0
    mean = returns.mean()
    std_dev = returns.std(ddof=0)
    if is_negligible_spread(std_dev, mean):
        return 0.0
    return float(mean / std_dev * np.sqrt(periods_per_year))


def calculate_sortino_ratio(
    returns: pd.Series,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> float:
    """
    Calculates the annualized Sortino ratio from per-trade percent returns.

    The downside deviation is the root mean square of the negative returns
    only. Returns 0.0 when there are no negative returns.
    """
    negative = returns[returns < 0]
    if negative.empty:
        return 0.0
    downside_deviation = np.sqrt((negative ** 2).mean())
    if downside_deviation == 0:
        return 0.0
    return float(returns.mean() / downside_deviation * np.sqrt(periods_per_year))


def calculate_max_drawdown(drawdown_curve: pd.Series, peak_equity: float) -> Dict[str, float]:
    """
    Calculates the maximum drawdown from a drawdown curve in percent.

    Args:
        drawdown_curve (pd.Series): Drawdown per bar, in percent.
        peak_equity (float): The highest equity seen during the run.

    Returns:
        Dict[str, float]: 'max_drawdown_percent' and the absolute
        'max_drawdown' derived from it.
    """
    max_dd_percent = float(drawdown_curve.max()) if not drawdown_curve.empty else 0.0
    return {
        "max_drawdown_percent": max_dd_percent,
        "max_drawdown": max_dd_percent / 100 * peak_equity,
    }


def calculate_calmar_ratio(
    total_return_percent: float,
    max_drawdown_percent: float,
    n_bars: int,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> float:
    """
    Calculates the Calmar ratio as annualized return over maximum drawdown.

    The annualized return scales the total return linearly by
    `periods_per_year / n_bars`. Returns 0.0 when there is no drawdown.
    """
    if max_drawdown_percent <= 0 or n_bars <= 0:
        return 0.0
    annualized_return = total_return_percent * periods_per_year / n_bars
    return float(annualized_return / max_drawdown_percent)


def calculate_avg_holding_period(entry_times: Sequence, exit_times: Sequence) -> float:
    """
    Mean time between entry and exit, in days. 0.0 without trades.
    """
    if len(entry_times) == 0:
        return 0.0
    held = pd.DatetimeIndex(exit_times) - pd.DatetimeIndex(entry_times)
    return float(held.total_seconds().to_numpy().mean() / 86400)


def calculate_monthly_returns(exit_times: Sequence, returns: pd.Series) -> List[Dict[str, float]]:
    """
    Sums per-trade percent returns by calendar month of exit.

    Args:
        exit_times (Sequence): Exit timestamp of each trade.
        returns (pd.Series): Percent return of each trade.

    Returns:
        List[Dict[str, float]]: One {'month': 'YYYY-MM', 'return_pct': x}
        entry per month, in order of first appearance.
    """
    if len(exit_times) == 0:
        return []
    months = pd.DatetimeIndex(exit_times).strftime("%Y-%m")
    grouped = pd.Series(returns.to_numpy(), index=months).groupby(level=0, sort=False).sum()
    return [{"month": month, "return_pct": float(value)} for month, value in grouped.items()]


def calculate_expectancy(trade_returns: pd.Series) -> float:
    """
    Calculates the expectancy per trade.

    Expectancy is the (average win * win rate) - (average loss * loss rate).

    Args:
        trade_returns (pd.Series): A Series of returns for each individual trade.

    Returns:
        float: The calculated expectancy. Returns 0.0 if there are no trades.
    """
    if trade_returns.empty:
        return 0.0

    wins = trade_returns[trade_returns > 0]
    losses = trade_returns[trade_returns <= 0]

    win_rate = len(wins) / len(trade_returns)
    loss_rate = len(losses) / len(trade_returns)

    avg_win = wins.mean() if not wins.empty else 0.0
    avg_loss = abs(losses.mean()) if not losses.empty else 0.0

    expectancy = (win_rate * avg_win) - (loss_rate * avg_loss)
    return float(expectancy)


def compute_statistics(
    trades: Sequence,
    drawdown_curve: pd.Series,
    initial_capital: float,
    final_capital: float,
    peak_equity: float,
    n_bars: int,
) -> Dict[str, object]:
    """
    Reduces a closed-trade list and drawdown curve into summary statistics.

    Args:
        trades (Sequence): ClosedTrade objects in exit order.
        drawdown_curve (pd.Series): Drawdown per bar, in percent.
        initial_capital (float): Capital at the start of the run.
        final_capital (float): Realized capital at the end of the run.
        peak_equity (float): The highest equity seen during the run.
        n_bars (int): Number of bars in the input series.

    Returns:
        Dict[str, object]: Keyword arguments for BacktestResult, excluding
        the trade list and curves.
    """
    pnls = pd.Series([t.pnl for t in trades], dtype=np.float64)
    returns = pd.Series([t.pnl_percent for t in trades], dtype=np.float64)
    entry_times = [t.entry_time for t in trades]
    exit_times = [t.exit_time for t in trades]

    wins = pnls[pnls > 0]
    losses = pnls[pnls <= 0]
    total_pnl_percent = (final_capital - initial_capital) / initial_capital * 100
    drawdown = calculate_max_drawdown(drawdown_curve, peak_equity)

    return {
        "total_trades": len(pnls),
        "winning_trades": len(wins),
        "losing_trades": len(losses),
        "win_rate": calculate_win_rate(pnls),
        "total_pnl": float(pnls.sum()),
        "total_pnl_percent": float(total_pnl_percent),
        "avg_win": float(wins.mean()) if not wins.empty else 0.0,
        "avg_loss": float(losses.mean()) if not losses.empty else 0.0,
        "largest_win": float(wins.max()) if not wins.empty else 0.0,
        "largest_loss": float(losses.min()) if not losses.empty else 0.0,
        "expectancy": calculate_expectancy(returns),
        "profit_factor": calculate_profit_factor(pnls),
        "sharpe_ratio": calculate_sharpe_ratio(returns),
        "sortino_ratio": calculate_sortino_ratio(returns),
        "calmar_ratio": calculate_calmar_ratio(
            total_pnl_percent, drawdown["max_drawdown_percent"], n_bars
        ),
        "max_drawdown": drawdown["max_drawdown"],
        "max_drawdown_percent": drawdown["max_drawdown_percent"],
        "avg_holding_period": calculate_avg_holding_period(entry_times, exit_times),
        "monthly_returns": calculate_monthly_returns(exit_times, returns),
    }


# Register the default objective functions
for _name in (
    "sharpe_ratio",
    "sortino_ratio",
    "calmar_ratio",
    "total_pnl_percent",
    "win_rate",
    "profit_factor",
    "expectancy",
):
    register_objective(_name, attrgetter(_name))
