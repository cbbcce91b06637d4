"""
Feature extraction for the signal model.

Turns the bars leading up to a point in a price series into a fixed-order
numeric vector (price changes, volume, indicators, moving-average spreads,
candle shape and time of day). The model that consumes these vectors lives
outside this package; this module only defines what it is fed.

Indicators are computed over the trailing window alone, not over the full
series, so a vector depends only on the `lookback + 1` bars that end at the
requested index.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from papertrade.indicators import factory

FEATURE_NAMES: List[str] = [
    "price_change_1m", "price_change_5m", "price_change_15m", "price_change_1h",
    "volume_ratio", "volume_trend",
    "rsi", "rsi_slope",
    "macd", "macd_signal", "macd_histogram",
    "bb_position", "bb_width",
    "atr_percent",
    "price_vs_sma20", "price_vs_sma50", "sma20_vs_sma50", "ema12_vs_ema26",
    "higher_highs", "lower_lows",
    "body_ratio", "upper_wick_ratio", "lower_wick_ratio",
    "hour_of_day", "day_of_week", "minute_of_hour",
    "oi_change", "call_put_ratio", "iv_rank",
]

# Divisors applied by features_to_array; everything else passes through.
_NORMALISERS: Dict[str, float] = {
    "rsi": 100.0,
    "higher_highs": 4.0,
    "lower_lows": 4.0,
    "hour_of_day": 24.0,
    "day_of_week": 7.0,
    "minute_of_hour": 60.0,
    "iv_rank": 100.0,
}

OUTCOME_LABELS = {"LOSS": 0, "NEUTRAL": 1, "PROFIT": 2}


@dataclass
class TrainingData:
    features: np.ndarray
    labels: np.ndarray
    feature_names: List[str] = field(default_factory=lambda: list(FEATURE_NAMES))


def _last(series: pd.Series, fallback: float) -> float:
    value = series.iat[-1] if len(series) else np.nan
    return fallback if pd.isna(value) else float(value)


def _pct_change(current: float, previous: float) -> float:
    return (current - previous) / previous * 100 if previous else 0.0


def extract_features(
    data: pd.DataFrame,
    index: int,
    lookback: int = 50,
) -> Optional[Dict[str, float]]:
    """
    Computes the named feature set at bar `index`.

    Args:
        data (pd.DataFrame): The OHLCV price series.
        index (int): Position of the bar to describe.
        lookback (int): Number of bars of history required before `index`.

    Returns:
        Optional[Dict[str, float]]: Feature values keyed by FEATURE_NAMES, or
        None if fewer than `lookback` bars precede `index`.
    """
    if index < lookback or index >= len(data):
        return None

    window = data.iloc[index - lookback:index + 1]
    current = window.iloc[-1]
    price = float(current["close"])
    closes = window["close"]
    all_closes = data["close"].to_numpy(dtype=np.float64)
    volumes = window["volume"].to_numpy(dtype=np.float64)

    changes = {}
    for name, bars in (("1m", 1), ("5m", 5), ("15m", 15), ("1h", 60)):
        changes[f"price_change_{name}"] = (
            _pct_change(price, all_closes[index - bars]) if index >= bars else 0.0
        )

    avg_volume = volumes[:-1].mean() if len(volumes) > 1 else 0.0
    volume_ratio = volumes[-1] / avg_volume if avg_volume > 0 else 0.0
    recent_volume = volumes[-5:].mean()
    older_volume = volumes[-10:-5].mean() if len(volumes) >= 10 else 0.0
    volume_trend = recent_volume / older_volume if older_volume > 0 else 1.0

    rsi_values = factory.rsi(closes, 14)
    rsi_value = _last(rsi_values, 50.0)
    rsi_slope = 0.0
    if len(rsi_values) > 5:
        slope = (rsi_values.iat[-1] - rsi_values.iat[-5]) / 5
        rsi_slope = 0.0 if pd.isna(slope) else float(slope)

    macd_frame = factory.macd(closes)
    bands = factory.bollinger_bands(closes, 20, 2.0)
    upper = _last(bands["upper"], price)
    lower = _last(bands["lower"], price)
    middle = _last(bands["middle"], price)
    band_width = upper - lower

    atr_value = _last(factory.atr(window, 14), 0.0)

    sma20 = _last(factory.sma(closes, 20), price)
    sma50 = _last(factory.sma(closes.iloc[-50:], 50), price)
    ema12 = _last(factory.ema(closes, 12), price)
    ema26 = _last(factory.ema(closes, 26), price)

    highs = window["high"].to_numpy()
    lows = window["low"].to_numpy()
    recent = range(len(window) - 5, len(window) - 1)
    higher_highs = sum(1 for i in recent if highs[i] < highs[i + 1])
    lower_lows = sum(1 for i in recent if lows[i] > lows[i + 1])

    open_ = float(current["open"])
    candle_range = float(current["high"] - current["low"])
    body = abs(price - open_)
    upper_wick = float(current["high"]) - max(open_, price)
    lower_wick = min(open_, price) - float(current["low"])

    timestamp = window.index[-1]

    return {
        **changes,
        "volume_ratio": float(volume_ratio),
        "volume_trend": float(volume_trend),
        "rsi": rsi_value,
        "rsi_slope": rsi_slope,
        "macd": _last(macd_frame["macd"], 0.0),
        "macd_signal": _last(macd_frame["signal"], 0.0),
        "macd_histogram": _last(macd_frame["histogram"], 0.0),
        "bb_position": (price - lower) / band_width if band_width != 0 else 0.5,
        "bb_width": band_width / middle if middle > 0 else 0.0,
        "atr": atr_value,
        "atr_percent": atr_value / price * 100 if price > 0 else 0.0,
        "price_vs_sma20": _pct_change(price, sma20),
        "price_vs_sma50": _pct_change(price, sma50),
        "sma20_vs_sma50": _pct_change(sma20, sma50),
        "ema12_vs_ema26": _pct_change(ema12, ema26),
        "higher_highs": float(higher_highs),
        "lower_lows": float(lower_lows),
        "body_ratio": body / candle_range if candle_range > 0 else 0.0,
        "upper_wick_ratio": upper_wick / candle_range if candle_range > 0 else 0.0,
        "lower_wick_ratio": lower_wick / candle_range if candle_range > 0 else 0.0,
        "hour_of_day": float(timestamp.hour),
        # Sunday = 0
        "day_of_week": float(timestamp.isoweekday() % 7),
        "minute_of_hour": float(timestamp.minute),
        # Option-chain inputs are not available from OHLCV data.
        "oi_change": 0.0,
        "call_put_ratio": 1.0,
        "iv_rank": 50.0,
    }


def features_to_array(features: Dict[str, float]) -> np.ndarray:
    """
    Converts a feature dict into the model's input vector, in FEATURE_NAMES
    order, scaling the bounded features into roughly [0, 1].
    """
    return np.array(
        [features[name] / _NORMALISERS.get(name, 1.0) for name in FEATURE_NAMES],
        dtype=np.float64,
    )


def generate_training_data(
    data: pd.DataFrame,
    forward_period: int = 15,
    profit_threshold: float = 0.5,
    lookback: int = 50,
) -> TrainingData:
    """
    Builds a labelled training set from a price series.

    Each bar with enough history and `forward_period` bars of future is
    labelled by its forward return: 2 (bullish) above `profit_threshold`
    percent, 0 (bearish) below minus the threshold, 1 (neutral) otherwise.

    Args:
        data (pd.DataFrame): The OHLCV price series.
        forward_period (int): Number of bars to look ahead for the outcome.
        profit_threshold (float): Percent move separating the classes.
        lookback (int): History required by extract_features.

    Returns:
        TrainingData: Feature matrix, label vector and feature names.
    """
    closes = data["close"].to_numpy(dtype=np.float64)
    rows: List[np.ndarray] = []
    labels: List[int] = []

    for i in range(lookback, len(data) - forward_period):
        features = extract_features(data, i, lookback)
        if features is None:
            continue
        forward_return = _pct_change(closes[i + forward_period], closes[i])
        label = 1
        if forward_return > profit_threshold:
            label = 2
        elif forward_return < -profit_threshold:
            label = 0
        rows.append(features_to_array(features))
        labels.append(label)

    matrix = np.vstack(rows) if rows else np.empty((0, len(FEATURE_NAMES)))
    return TrainingData(features=matrix, labels=np.array(labels, dtype=np.int64))


def extract_features_for_trade(
    timestamp: datetime,
    data: pd.DataFrame,
    outcome: str,
    lookback: int = 50,
) -> Optional[Tuple[np.ndarray, int]]:
    """
    Builds a labelled example from an executed trade.

    Args:
        timestamp (datetime): When the trade was placed.
        data (pd.DataFrame): The OHLCV price series around the trade.
        outcome (str): 'PROFIT', 'LOSS' or 'NEUTRAL'.
        lookback (int): History required by extract_features.

    Returns:
        Optional[Tuple[np.ndarray, int]]: The feature vector of the bar
        closest to `timestamp` and the outcome label, or None if that bar has
        too little history.
    """
    if outcome not in OUTCOME_LABELS:
        raise ValueError(f"Unknown outcome '{outcome}'. Available: {list(OUTCOME_LABELS)}")
    if data.empty:
        return None

    distance = np.abs((data.index - pd.Timestamp(timestamp)).total_seconds().to_numpy())
    closest = int(distance.argmin())
    features = extract_features(data, closest, lookback)
    if features is None:
        return None
    return features_to_array(features), OUTCOME_LABELS[outcome]
