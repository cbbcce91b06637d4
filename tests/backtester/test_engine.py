"""
Tests for the bar-by-bar backtesting engine.
"""
import math

import pandas as pd
import pytest
from pydantic import ValidationError

from papertrade.backtester.engine import BarBacktester, run_backtest
from papertrade.backtester.results import BacktestResult, ExitReason
from papertrade.config import StrategyConfig
from papertrade.data.provider import RandomWalkProvider
from papertrade.strategy import RSIReversal, Side, Strategy


class EnterAt(Strategy):
    """Opens a position on the given bars and never signals an exit."""
    name = "Enter At"

    def __init__(self, bars, side=Side.LONG, exit_signal=False):
        self.bars = set(bars)
        self.side = side
        self.exit_signal = exit_signal

    def decide_entry(self, data, index, indicators):
        return self.side if index in self.bars else None

    def decide_exit(self, data, index, indicators, side):
        return self.exit_signal


class AlwaysLong(Strategy):
    name = "Always Long"

    def decide_entry(self, data, index, indicators):
        return Side.LONG

    def decide_exit(self, data, index, indicators, side):
        return index % 7 == 0


@pytest.fixture
def random_prices() -> pd.DataFrame:
    return RandomWalkProvider("NIFTY", days=2, seed=5).load()


def _config(**kwargs) -> StrategyConfig:
    params = {"name": "test", "stop_loss": 2.0, "take_profit": 4.0}
    params.update(kwargs)
    return StrategyConfig(**params)


def test_take_profit_on_rising_series(rising_prices):
    """
    A long entered at bar 50 of a 1%-per-bar rise reaches the 4% target four
    bars later.
    """
    result = BarBacktester(rising_prices).run(EnterAt([50]), _config())

    assert isinstance(result, BacktestResult)
    assert result.total_trades == 1
    trade = result.trades[0]
    assert trade.exit_reason is ExitReason.TARGET
    assert trade.side is Side.LONG
    assert trade.bars_held == 4
    assert trade.entry_time == rising_prices.index[50]
    assert trade.exit_time == rising_prices.index[54]
    assert trade.pnl_percent == pytest.approx((1.01 ** 4 - 1) * 100)

    entry_price = rising_prices["close"].iat[50]
    assert trade.quantity == math.floor(1_000_000 * 0.1 / entry_price)
    assert trade.pnl == pytest.approx((trade.exit_price - entry_price) * trade.quantity)
    assert result.win_rate == 1.0
    assert result.profit_factor == float("inf")
    assert result.final_capital == pytest.approx(1_000_000 + trade.pnl)


def test_flat_series_rsi_reversal(flat_prices):
    """
    On a constant series RSI is 100, so a short opens and never closes: no
    trades and no change in equity.
    """
    strategy = RSIReversal()
    result = run_backtest(flat_prices, strategy)

    assert result.total_trades == 0
    assert result.total_pnl == 0.0
    assert result.win_rate == 0.0
    assert result.sharpe_ratio == 0.0
    assert result.profit_factor == 0.0
    assert result.max_drawdown_percent == 0.0
    assert (result.equity_curve == strategy.default_config().initial_capital).all()
    assert result.monthly_returns == []


def test_short_stop_loss(rising_prices):
    result = BarBacktester(rising_prices).run(EnterAt([50], side=Side.SHORT), _config())

    trade = result.trades[0]
    assert trade.exit_reason is ExitReason.STOP_LOSS
    assert trade.side is Side.SHORT
    assert trade.bars_held == 2
    assert trade.pnl < 0
    assert trade.pnl == pytest.approx((trade.entry_price - trade.exit_price) * trade.quantity)
    assert result.losing_trades == 1
    assert result.win_rate == 0.0


def test_stop_loss_takes_priority_over_time_exit(rising_prices):
    config = _config(max_holding_period=2)
    result = BarBacktester(rising_prices).run(EnterAt([50], side=Side.SHORT), config)

    assert result.trades[0].exit_reason is ExitReason.STOP_LOSS


def test_target_takes_priority_over_signal(rising_prices):
    config = _config(take_profit=0.5)
    result = BarBacktester(rising_prices).run(EnterAt([50], exit_signal=True), config)

    trade = result.trades[0]
    assert trade.exit_reason is ExitReason.TARGET
    assert trade.bars_held == 1


def test_signal_exit(flat_prices):
    result = BarBacktester(flat_prices).run(EnterAt([50], exit_signal=True), _config())

    trade = result.trades[0]
    assert trade.exit_reason is ExitReason.SIGNAL
    assert trade.bars_held == 1
    assert trade.pnl == 0.0
    # a zero P&L counts as a loss
    assert result.losing_trades == 1


def test_time_exit(flat_prices):
    result = BarBacktester(flat_prices).run(EnterAt([50]), _config(max_holding_period=5))

    trade = result.trades[0]
    assert trade.exit_reason is ExitReason.TIME_EXIT
    assert trade.bars_held == 5
    assert trade.exit_time == flat_prices.index[55]


def test_trailing_stop(make_prices):
    closes = [100.0] * 50 + [100.0, 103.0, 106.0, 104.0, 103.0] + [103.0] * 5
    data = make_prices(closes)
    config = _config(stop_loss=5.0, take_profit=10.0, trailing_stop=2.5)

    result = BarBacktester(data).run(EnterAt([50]), config)

    trade = result.trades[0]
    assert trade.exit_reason is ExitReason.TRAILING_STOP
    assert trade.exit_time == data.index[54]
    assert trade.pnl > 0


def test_identical_trade_returns_have_zero_sharpe(make_prices):
    """
    Three trades with the same inexact return (0.1%) have no variance.
    """
    data = make_prices([1000.0] * 50 + [1000.0, 1001.0] * 3)
    result = BarBacktester(data).run(EnterAt([50, 52, 54]), _config(take_profit=0.1))

    assert result.total_trades == 3
    assert all(t.exit_reason is ExitReason.TARGET for t in result.trades)
    assert result.sharpe_ratio == 0.0


def test_open_position_stays_unrealized(rising_prices):
    result = BarBacktester(rising_prices).run(EnterAt([50]), _config(take_profit=100.0))

    assert result.total_trades == 0
    assert result.final_capital == 1_000_000
    assert result.total_pnl == 0.0
    assert result.equity_curve.iloc[-1] > 1_000_000


def test_zero_quantity_stays_flat(flat_prices):
    config = _config(initial_capital=100.0)
    result = BarBacktester(flat_prices).run(EnterAt([50], exit_signal=True), config)

    assert result.total_trades == 0
    assert (result.equity_curve == 100.0).all()


def test_equity_curve_starts_at_warmup(flat_prices):
    result = BarBacktester(flat_prices).run(EnterAt([]), _config(warmup=30))

    assert len(result.equity_curve) == len(flat_prices) - 30
    assert result.equity_curve.index[0] == flat_prices.index[30]
    assert result.drawdown_curve.index.equals(result.equity_curve.index)


def test_warmup_longer_than_series(flat_prices):
    result = BarBacktester(flat_prices).run(RSIReversal(), _config(warmup=500))

    assert result.total_trades == 0
    assert result.equity_curve.empty
    assert result.max_drawdown_percent == 0.0


def test_at_most_one_open_position(random_prices):
    result = BarBacktester(random_prices).run(AlwaysLong(), _config(stop_loss=0.5, take_profit=0.5))

    assert result.total_trades > 1
    for previous, current in zip(result.trades, result.trades[1:]):
        assert current.entry_time > previous.exit_time


def test_statistics_are_consistent(random_prices):
    result = BarBacktester(random_prices).run(AlwaysLong(), _config(stop_loss=0.5, take_profit=0.5))

    assert result.total_trades == result.winning_trades + result.losing_trades
    assert result.total_pnl == pytest.approx(sum(t.pnl for t in result.trades))
    assert result.final_capital == pytest.approx(result.initial_capital + result.total_pnl)
    assert 0.0 <= result.win_rate <= 1.0


def test_drawdown_matches_running_peak(random_prices):
    config = _config(stop_loss=0.5, take_profit=0.5)
    result = BarBacktester(random_prices).run(AlwaysLong(), config)

    equity = result.equity_curve
    peak = equity.cummax().clip(lower=config.initial_capital)
    expected = (peak - equity) / peak * 100

    assert (result.drawdown_curve >= 0).all()
    pd.testing.assert_series_equal(result.drawdown_curve, expected, check_names=False)
    assert result.max_drawdown_percent == pytest.approx(result.drawdown_curve.max())


def test_runs_are_idempotent(random_prices):
    backtester = BarBacktester(random_prices)
    strategy = RSIReversal()
    config = strategy.default_config()

    first = backtester.run(strategy, config)
    second = backtester.run(strategy, config)

    assert first.trades == second.trades
    assert first.metrics == second.metrics
    pd.testing.assert_series_equal(first.equity_curve, second.equity_curve)


def test_input_is_not_mutated(make_prices):
    data = make_prices([100.0] * 60)
    data.columns = [c.capitalize() for c in data.columns]
    original = data.copy()

    run_backtest(data, EnterAt([50]), _config())

    pd.testing.assert_frame_equal(data, original)


def test_should_stop_ends_run_early(flat_prices):
    calls = {"n": 0}

    def should_stop():
        calls["n"] += 1
        return calls["n"] > 10

    result = BarBacktester(flat_prices).run(EnterAt([]), _config(), should_stop=should_stop)

    assert len(result.equity_curve) == 10


def test_invalid_inputs_raise_error(flat_prices):
    backtester = BarBacktester(flat_prices)

    with pytest.raises(ValueError, match="StrategyConfig"):
        backtester.run(RSIReversal(), {"name": "x"})
    with pytest.raises(ValueError, match="decide_entry"):
        backtester.run(None, _config())
    with pytest.raises(ValueError, match="decide_entry"):
        run_backtest(flat_prices, None)


@pytest.mark.parametrize("field, value", [
    ("initial_capital", 0),
    ("position_size", 0),
    ("position_size", 1.5),
    ("stop_loss", -1),
    ("warmup", 0),
])
def test_invalid_config_raises_error(field, value):
    with pytest.raises(ValidationError):
        _config(**{field: value})


def test_invalid_price_series_raises_error(flat_prices):
    with pytest.raises(ValueError, match="missing required columns"):
        BarBacktester(flat_prices.drop(columns=["volume"]))
