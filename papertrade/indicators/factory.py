"""
A factory for creating financial indicators.

This module provides simple, consistent wrappers for calculating
common financial technical indicators. Every function returns a Series (or
DataFrame) aligned with its input; positions inside an indicator's warm-up
window hold NaN, which callers must read as "insufficient history".
"""
from typing import Optional

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

INDICATOR_COLUMNS = [
    "sma20", "sma50", "ema12", "ema26", "rsi",
    "macd", "macd_signal", "macd_histogram",
    "bb_upper", "bb_middle", "bb_lower",
    "atr", "adx", "obv", "vwap",
]

# Trend strength is not computed; strategies see a neutral constant.
ADX_PLACEHOLDER = 25.0


def _check_length(length: int) -> None:
    if length <= 0:
        raise ValueError(f"length must be a positive integer, got {length}.")


def _empty_like(series: pd.Series) -> pd.Series:
    return pd.Series(np.nan, index=series.index, dtype=np.float64)


def sma(
    close: pd.Series,
    length: int = 20,
    **kwargs,
) -> pd.Series:
    """
    Calculates the Simple Moving Average (SMA).

    Args:
        close (pd.Series): A Series of closing prices.
        length (int): The time period.

    Returns:
        pd.Series: A Series containing the SMA. The first `length - 1` values
        are NaN; if the input is shorter than `length` every value is NaN.
    """
    _check_length(length)
    return close.astype(np.float64).rolling(window=length).mean()


def ema(
    close: pd.Series,
    length: int,
    **kwargs,
) -> pd.Series:
    """
    Calculates the Exponential Moving Average (EMA).

    Index 0 carries the raw input value. Indices 1 to `length - 2` are NaN,
    index `length - 1` is seeded with the SMA of the first `length` values,
    and every later value follows
    ``ema[i] = (x[i] - ema[i - 1]) * 2 / (length + 1) + ema[i - 1]``.

    Undefined inputs propagate: a NaN inside the seed window or the recurrence
    leaves every later value undefined.

    Args:
        close (pd.Series): The input series.
        length (int): The time period.

    Returns:
        pd.Series: A Series containing the EMA.
    """
    _check_length(length)
    values = close.to_numpy(dtype=np.float64)
    n = len(values)
    result = np.full(n, np.nan)
    if n == 0:
        return pd.Series(result, index=close.index)

    multiplier = 2.0 / (length + 1)
    result[0] = values[0]
    if length <= n:
        result[length - 1] = values[:length].sum() / length
        for i in range(length, n):
            result[i] = (values[i] - result[i - 1]) * multiplier + result[i - 1]
    return pd.Series(result, index=close.index)


def rsi(
    close: pd.Series,
    length: int = 14,
    **kwargs,
) -> pd.Series:
    """
    Calculates the Relative Strength Index (RSI).

    Gains and losses are simple averages over the trailing `length` price
    changes (no Wilder smoothing). When the average loss is zero the RSI is
    100 by convention.

    Args:
        close (pd.Series): A Series of closing prices.
        length (int): The time period.

    Returns:
        pd.Series: A Series containing the RSI, NaN for the first `length`
        values.
    """
    _check_length(length)
    result = _empty_like(close)
    values = close.to_numpy(dtype=np.float64)
    if len(values) <= length:
        return result

    deltas = np.diff(values)
    windows = sliding_window_view(deltas, length)
    avg_gain = np.where(windows > 0, windows, 0.0).sum(axis=1) / length
    avg_loss = np.where(windows < 0, -windows, 0.0).sum(axis=1) / length

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        values_rsi = np.where(avg_loss == 0, 100.0, 100.0 - 100.0 / (1.0 + rs))

    # windows[k] covers the changes ending at bar k + length
    result.iloc[length:] = values_rsi
    return result


def macd(
    close: pd.Series,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
    signal_from_slow_seed: bool = True,
    **kwargs,
) -> pd.DataFrame:
    """
    Calculates the Moving Average Convergence Divergence (MACD).

    The MACD line is EMA(fast) - EMA(slow). The signal line is the EMA of the
    MACD line taken from the first bar where EMA(slow) is seeded, so the
    undefined stretch of the slow average does not poison it.
    With `signal_from_slow_seed=False` the signal EMA runs over the whole MACD
    line instead, so only index 0 is defined and every later value is NaN.

    Args:
        close (pd.Series): A Series of closing prices.
        fast (int): The fast EMA period.
        slow (int): The slow EMA period.
        signal (int): The signal EMA period.
        signal_from_slow_seed (bool): Start the signal EMA at the first bar
            where EMA(slow) is seeded.

    Returns:
        pd.DataFrame: Columns 'macd', 'signal' and 'histogram'.
    """
    _check_length(signal)
    line = ema(close, fast) - ema(close, slow)
    signal_line = _empty_like(close)
    if not signal_from_slow_seed:
        signal_line = ema(line, signal)
    elif len(close) >= slow:
        signal_line = ema(line.iloc[slow - 1:], signal).reindex(close.index)
    return pd.DataFrame(
        {
            "macd": line,
            "signal": signal_line,
            "histogram": line - signal_line,
        },
        index=close.index,
    )


def bollinger_bands(
    close: pd.Series,
    length: int = 20,
    num_std: float = 2.0,
    **kwargs,
) -> pd.DataFrame:
    """
    Calculates Bollinger Bands around an SMA using the population standard
    deviation of the trailing window.

    Args:
        close (pd.Series): A Series of closing prices.
        length (int): The time period.
        num_std (float): The band width in standard deviations.

    Returns:
        pd.DataFrame: Columns 'upper', 'middle' and 'lower'.
    """
    _check_length(length)
    middle = sma(close, length)
    std = _empty_like(close)
    values = close.to_numpy(dtype=np.float64)
    if len(values) >= length:
        std.iloc[length - 1:] = sliding_window_view(values, length).std(axis=1)
    return pd.DataFrame(
        {
            "upper": middle + num_std * std,
            "middle": middle,
            "lower": middle - num_std * std,
        },
        index=close.index,
    )


def true_range(data: pd.DataFrame) -> pd.Series:
    """
    Calculates the true range of each bar. The first bar uses high - low only.
    """
    prev_close = data["close"].shift(1)
    ranges = pd.concat(
        [
            data["high"] - data["low"],
            (data["high"] - prev_close).abs(),
            (data["low"] - prev_close).abs(),
        ],
        axis=1,
    )
    return ranges.max(axis=1).astype(np.float64)


def atr(
    data: pd.DataFrame,
    length: int = 14,
    **kwargs,
) -> pd.Series:
    """
    Calculates the Average True Range as the EMA of the true range.

    Args:
        data (pd.DataFrame): OHLCV data.
        length (int): The time period.

    Returns:
        pd.Series: A Series containing the ATR.
    """
    return ema(true_range(data), length)


def obv(data: pd.DataFrame, **kwargs) -> pd.Series:
    """
    Calculates On-Balance Volume, starting at 0 on the first bar.
    """
    direction = np.sign(data["close"].diff()).fillna(0.0)
    return (direction * data["volume"]).cumsum().astype(np.float64)


def vwap(
    data: pd.DataFrame,
    session: Optional[pd.Series] = None,
    **kwargs,
) -> pd.Series:
    """
    Calculates a cumulative Volume Weighted Average Price from the typical
    price (high + low + close) / 3.

    Args:
        data (pd.DataFrame): OHLCV data.
        session (Optional[pd.Series]): Optional per-bar session labels aligned
            with `data`. The running sums restart whenever the label changes.
            Without labels the whole series is one session.

    Returns:
        pd.Series: A Series containing the VWAP. Bars where the cumulative
        volume is still zero are NaN.
    """
    typical = (data["high"] + data["low"] + data["close"]) / 3
    pv = typical * data["volume"]
    volume = data["volume"].astype(np.float64)
    if session is None:
        cum_pv = pv.cumsum()
        cum_volume = volume.cumsum()
    else:
        session_id = (session != session.shift(1)).cumsum()
        cum_pv = pv.groupby(session_id).cumsum()
        cum_volume = volume.groupby(session_id).cumsum()
    return (cum_pv / cum_volume.replace(0.0, np.nan)).astype(np.float64)


def calculate_all_indicators(data: pd.DataFrame) -> pd.DataFrame:
    """
    Builds the indicator frame for a price series: one row per bar with the
    standard set of indicator columns.

    Args:
        data (pd.DataFrame): OHLCV data.

    Returns:
        pd.DataFrame: A DataFrame indexed like `data` with INDICATOR_COLUMNS.
    """
    close = data["close"]
    macd_frame = macd(close)
    bands = bollinger_bands(close, 20, 2.0)
    frame = pd.DataFrame(
        {
            "sma20": sma(close, 20),
            "sma50": sma(close, 50),
            "ema12": ema(close, 12),
            "ema26": ema(close, 26),
            "rsi": rsi(close, 14),
            "macd": macd_frame["macd"],
            "macd_signal": macd_frame["signal"],
            "macd_histogram": macd_frame["histogram"],
            "bb_upper": bands["upper"],
            "bb_middle": bands["middle"],
            "bb_lower": bands["lower"],
            "atr": atr(data, 14),
            "adx": ADX_PLACEHOLDER,
            "obv": obv(data),
            "vwap": vwap(data),
        },
        index=data.index,
    )
    return frame[INDICATOR_COLUMNS]
