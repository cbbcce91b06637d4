"""
Tests for the indicator factory.
"""
import numpy as np
import pandas as pd
import pytest

from papertrade.indicators import factory


@pytest.fixture
def ten_bars() -> pd.DataFrame:
    """
    Ten daily bars with hand-checkable closes.
    """
    closes = [100.0, 101.0, 99.0, 98.0, 102.0, 104.0, 103.0, 105.0, 107.0, 106.0]
    index = pd.date_range("2024-01-01 09:15", periods=len(closes), freq="D")
    return pd.DataFrame(
        {
            "open": closes,
            "high": [c + 1 for c in closes],
            "low": [c - 1 for c in closes],
            "close": closes,
            "volume": [1000] * len(closes),
        },
        index=index,
    )


def test_sma_values(ten_bars):
    result = factory.sma(ten_bars["close"], 3)

    assert result.iloc[:2].isna().all()
    expected = [100.0, 99.333333, 99.666667, 101.333333, 103.0, 104.0, 105.0, 106.0]
    assert result.iloc[2:].tolist() == pytest.approx(expected, rel=1e-6)


def test_sma_longer_than_series_is_all_nan(ten_bars):
    assert factory.sma(ten_bars["close"], 20).isna().all()


@pytest.mark.parametrize("func", [factory.sma, factory.ema, factory.rsi])
@pytest.mark.parametrize("length", [0, -3])
def test_non_positive_length_raises_error(ten_bars, func, length):
    with pytest.raises(ValueError, match="length"):
        func(ten_bars["close"], length)


def test_ema_seeding():
    """
    Index 0 is the raw value, the seed at length - 1 is the SMA, and the
    recurrence runs from there.
    """
    result = factory.ema(pd.Series([1.0, 2.0, 3.0, 4.0, 5.0, 6.0]), 3)

    assert result.iloc[0] == 1.0
    assert np.isnan(result.iloc[1])
    assert result.iloc[2:].tolist() == pytest.approx([2.0, 3.0, 4.0, 5.0])


def test_ema_longer_than_series_keeps_first_value_only():
    result = factory.ema(pd.Series([1.0, 2.0]), 5)

    assert result.iloc[0] == 1.0
    assert np.isnan(result.iloc[1])


def test_ema_empty_series():
    assert factory.ema(pd.Series([], dtype=float), 3).empty


def test_rsi_values():
    closes = pd.Series([10.0, 11.0, 12.0, 13.0, 12.0, 11.0, 10.0, 9.0, 10.0, 11.0, 12.0])
    result = factory.rsi(closes, 3)

    assert result.iloc[:3].isna().all()
    expected = [100.0, 66.666667, 33.333333, 0.0, 0.0, 33.333333, 66.666667, 100.0]
    assert result.iloc[3:].tolist() == pytest.approx(expected, rel=1e-6)


def test_rsi_constant_series_is_100():
    result = factory.rsi(pd.Series([50.0] * 30), 14)

    assert result.iloc[14:].eq(100.0).all()


def test_rsi_is_bounded():
    rng = np.random.default_rng(1)
    closes = pd.Series(100 + rng.normal(0, 1, 300).cumsum())
    result = factory.rsi(closes, 14).dropna()

    assert not result.empty
    assert result.between(0, 100).all()


def test_rsi_too_short_is_all_nan(ten_bars):
    assert factory.rsi(ten_bars["close"], 14).isna().all()


def test_macd_definition():
    rng = np.random.default_rng(2)
    closes = pd.Series(100 + rng.normal(0, 1, 120).cumsum())
    result = factory.macd(closes)

    expected_line = factory.ema(closes, 12) - factory.ema(closes, 26)
    pd.testing.assert_series_equal(result["macd"], expected_line, check_names=False)

    signal = result["signal"]
    assert signal.iloc[:25].isna().all()
    assert signal.iloc[26:33].isna().all()
    assert signal.iloc[33:].notna().all()

    defined = signal.notna()
    assert (result["histogram"][defined] == (result["macd"] - signal)[defined]).all()


def test_macd_signal_over_whole_line():
    rng = np.random.default_rng(2)
    closes = pd.Series(100 + rng.normal(0, 1, 120).cumsum())
    result = factory.macd(closes, signal_from_slow_seed=False)

    signal = result["signal"]
    assert signal.iloc[0] == 0.0
    assert signal.iloc[1:].isna().all()
    pd.testing.assert_series_equal(result["macd"], factory.macd(closes)["macd"])


def test_macd_short_series_has_no_signal(ten_bars):
    result = factory.macd(ten_bars["close"])

    assert list(result.columns) == ["macd", "signal", "histogram"]
    assert result["signal"].isna().all()


def test_bollinger_bands_values():
    result = factory.bollinger_bands(pd.Series([1.0, 2.0, 3.0]), 3, 2.0)
    last = result.iloc[-1]

    assert last["middle"] == pytest.approx(2.0)
    assert last["upper"] == pytest.approx(3.632993, rel=1e-6)
    assert last["lower"] == pytest.approx(0.367007, rel=1e-5)
    assert result.iloc[:2].isna().all().all()


def test_bollinger_bands_ordering():
    rng = np.random.default_rng(3)
    closes = pd.Series(100 + rng.normal(0, 1, 200).cumsum())
    result = factory.bollinger_bands(closes).dropna()

    assert (result["upper"] >= result["middle"]).all()
    assert (result["middle"] >= result["lower"]).all()


def test_bollinger_bands_collapse_on_constant_series():
    result = factory.bollinger_bands(pd.Series([5.0] * 25)).dropna()

    assert (result["upper"] == result["lower"]).all()


def test_true_range_and_atr():
    data = pd.DataFrame({
        "high": [10.0, 11.0, 10.5],
        "low": [8.0, 9.5, 7.0],
        "close": [9.0, 10.0, 8.0],
    })

    assert factory.true_range(data).tolist() == pytest.approx([2.0, 2.0, 3.5])
    assert factory.atr(data, 2).tolist() == pytest.approx([2.0, 2.0, 3.0])


def test_obv():
    data = pd.DataFrame({
        "close": [10.0, 11.0, 11.0, 9.0],
        "volume": [100, 200, 300, 400],
    })

    assert factory.obv(data).tolist() == [0.0, 200.0, 200.0, -200.0]


def test_vwap_cumulative_and_session_reset():
    data = pd.DataFrame({
        "high": [10.0, 20.0, 30.0],
        "low": [10.0, 20.0, 30.0],
        "close": [10.0, 20.0, 30.0],
        "volume": [1, 1, 2],
    })

    assert factory.vwap(data).tolist() == pytest.approx([10.0, 15.0, 22.5])

    session = pd.Series(["a", "a", "b"], index=data.index)
    assert factory.vwap(data, session=session).tolist() == pytest.approx([10.0, 15.0, 30.0])


def test_vwap_zero_volume_is_nan():
    data = pd.DataFrame({
        "high": [10.0, 11.0],
        "low": [10.0, 11.0],
        "close": [10.0, 11.0],
        "volume": [0, 5],
    })
    result = factory.vwap(data)

    assert np.isnan(result.iloc[0])
    assert result.iloc[1] == pytest.approx(11.0)


def test_calculate_all_indicators(ten_bars):
    result = factory.calculate_all_indicators(ten_bars)

    assert list(result.columns) == factory.INDICATOR_COLUMNS
    assert result.index.equals(ten_bars.index)
    assert (result["adx"] == factory.ADX_PLACEHOLDER).all()
    assert result["sma50"].isna().all()
    assert result["sma20"].isna().all()
    assert result["obv"].notna().all()
