"""
Data structures for holding the results of a backtest.
"""
from datetime import datetime
from enum import Enum
from typing import List

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from papertrade.strategy import Side


class ExitReason(str, Enum):
    SIGNAL = "SIGNAL"
    STOP_LOSS = "STOP_LOSS"
    TARGET = "TARGET"
    TRAILING_STOP = "TRAILING_STOP"
    TIME_EXIT = "TIME_EXIT"


class ClosedTrade(BaseModel):
    """
    Represents a single round-trip trade executed by a strategy.

    Args:
        entry_time (datetime): The timestamp of the trade entry.
        exit_time (datetime): The timestamp of the trade exit.
        side (Side): LONG or SHORT.
        entry_price (float): The price at which the trade was entered.
        exit_price (float): The price at which the trade was exited.
        quantity (int): The number of units traded.
        pnl (float): Realized profit or loss in rupees.
        pnl_percent (float): Realized profit or loss relative to the entry
            price, in percent.
        exit_reason (ExitReason): The rule that closed the trade.
        bars_held (int): Number of bars between entry and exit.
    """
    model_config = ConfigDict(frozen=True)

    entry_time: datetime
    exit_time: datetime
    side: Side
    entry_price: float
    exit_price: float
    quantity: int = Field(..., gt=0)
    pnl: float
    pnl_percent: float
    exit_reason: ExitReason
    bars_held: int = Field(..., ge=0)


class MonthlyReturn(BaseModel):
    model_config = ConfigDict(frozen=True)

    month: str = Field(..., description="Calendar month of the exits, 'YYYY-MM'.")
    return_pct: float = Field(..., description="Sum of trade percent returns.")


class BacktestResult(BaseModel):
    """
    Holds all the results from a single backtest run of a strategy.

    Rates are fractions (win_rate is in [0, 1]); P&L values are rupees unless
    the field name ends in `_percent`. Ratios that cannot be computed (no
    trades, zero variance, no drawdown) are 0.0; profit_factor is inf when
    there are winning trades but no losing ones.

    Args:
        strategy_name (str): The name of the strategy run.
        trades (List[ClosedTrade]): Every closed trade, in exit order.
        equity_curve (pd.Series): Equity per bar from the warm-up bar onward.
        drawdown_curve (pd.Series): Drawdown in percent, aligned with
            `equity_curve`.
        monthly_returns (List[MonthlyReturn]): Percent P&L per exit month.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    strategy_name: str
    initial_capital: float
    final_capital: float

    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float

    total_pnl: float
    total_pnl_percent: float
    avg_win: float
    avg_loss: float
    largest_win: float
    largest_loss: float
    expectancy: float
    profit_factor: float

    sharpe_ratio: float
    sortino_ratio: float
    calmar_ratio: float
    max_drawdown: float
    max_drawdown_percent: float
    avg_holding_period: float = Field(..., description="Mean holding time in days.")

    trades: List[ClosedTrade] = Field(..., description="A list of all closed trades.")
    equity_curve: pd.Series = Field(..., description="The portfolio's equity over time.")
    drawdown_curve: pd.Series = Field(..., description="Drawdown from the running peak, in percent.")
    monthly_returns: List[MonthlyReturn] = Field(default_factory=list)

    @property
    def metrics(self) -> dict:
        """Scalar statistics keyed by field name."""
        return self.model_dump(exclude={"trades", "equity_curve", "drawdown_curve", "monthly_returns"})
