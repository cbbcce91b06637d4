"""
Tests for feature extraction and training-set generation.
"""
import numpy as np
import pandas as pd
import pytest

from papertrade.features import (
    FEATURE_NAMES,
    OUTCOME_LABELS,
    extract_features,
    extract_features_for_trade,
    features_to_array,
    generate_training_data,
)


@pytest.fixture
def wave_prices(make_prices) -> pd.DataFrame:
    """120 one-minute bars oscillating around 100."""
    closes = 100 + 5 * np.sin(np.arange(120) / 6)
    volumes = 1000 + 100 * (np.arange(120) % 10)
    return make_prices(closes, start="2024-01-03 09:15", freq="min", volumes=volumes)


def test_feature_names_are_unique():
    assert len(FEATURE_NAMES) == 29
    assert len(set(FEATURE_NAMES)) == len(FEATURE_NAMES)


def test_extract_features_requires_history(wave_prices):
    assert extract_features(wave_prices, 49) is None
    assert extract_features(wave_prices, len(wave_prices)) is None
    assert extract_features(wave_prices, 50) is not None


def test_extract_features_values(wave_prices):
    index = 80
    features = extract_features(wave_prices, index)
    closes = wave_prices["close"]

    assert set(FEATURE_NAMES) <= set(features)
    assert features["price_change_1m"] == pytest.approx(
        (closes.iat[index] - closes.iat[index - 1]) / closes.iat[index - 1] * 100
    )
    assert 0.0 <= features["rsi"] <= 100.0
    assert features["hour_of_day"] == 10.0
    assert features["minute_of_hour"] == 35.0
    # 2024-01-03 is a Wednesday
    assert features["day_of_week"] == 3.0
    assert features["call_put_ratio"] == 1.0
    assert all(np.isfinite(features[name]) for name in FEATURE_NAMES)


def test_extract_features_uses_only_trailing_window(wave_prices):
    truncated = wave_prices.iloc[:81]

    assert extract_features(truncated, 80) == extract_features(wave_prices, 80)


def test_features_to_array_normalises(wave_prices):
    features = extract_features(wave_prices, 60)
    vector = features_to_array(features)

    assert vector.shape == (len(FEATURE_NAMES),)
    assert vector[FEATURE_NAMES.index("rsi")] == pytest.approx(features["rsi"] / 100)
    assert vector[FEATURE_NAMES.index("hour_of_day")] == pytest.approx(features["hour_of_day"] / 24)
    assert vector[FEATURE_NAMES.index("macd")] == features["macd"]


def test_generate_training_data_shapes(wave_prices):
    training = generate_training_data(wave_prices, forward_period=15, lookback=50)

    assert training.features.shape == (120 - 15 - 50, len(FEATURE_NAMES))
    assert len(training.labels) == training.features.shape[0]
    assert set(training.labels) <= {0, 1, 2}
    assert training.feature_names == FEATURE_NAMES


def test_generate_training_data_labels_rising_series(rising_prices):
    training = generate_training_data(rising_prices, forward_period=5, lookback=50)

    assert (training.labels == OUTCOME_LABELS["PROFIT"]).all()


def test_generate_training_data_too_short(make_prices):
    training = generate_training_data(make_prices([100.0] * 30))

    assert training.features.shape == (0, len(FEATURE_NAMES))
    assert len(training.labels) == 0


def test_extract_features_for_trade(wave_prices):
    timestamp = wave_prices.index[70] + pd.Timedelta(seconds=20)
    vector, label = extract_features_for_trade(timestamp, wave_prices, "PROFIT")

    np.testing.assert_array_equal(vector, features_to_array(extract_features(wave_prices, 70)))
    assert label == 2

    assert extract_features_for_trade(wave_prices.index[10], wave_prices, "LOSS") is None
    with pytest.raises(ValueError, match="Unknown outcome"):
        extract_features_for_trade(timestamp, wave_prices, "DRAW")
