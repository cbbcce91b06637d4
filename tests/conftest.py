"""
Shared fixtures for the test suite.
"""
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import pytest


def build_prices(
    closes: Sequence[float],
    start: str = "2024-01-01 09:15",
    freq: str = "D",
    volumes: Optional[Sequence[float]] = None,
) -> pd.DataFrame:
    """Builds a valid OHLCV frame whose bars open and close at the same price."""
    closes = np.asarray(closes, dtype=np.float64)
    index = pd.date_range(start, periods=len(closes), freq=freq, name="timestamp")
    if volumes is None:
        volumes = np.full(len(closes), 1000, dtype=np.int64)
    return pd.DataFrame(
        {
            "open": closes,
            "high": closes * 1.001,
            "low": closes * 0.999,
            "close": closes,
            "volume": np.asarray(volumes),
        },
        index=index,
    )


@pytest.fixture
def make_prices():
    """Factory fixture building a price series from a list of closes."""
    return build_prices


@pytest.fixture
def rising_prices() -> pd.DataFrame:
    """80 daily bars rising 1% per bar from 100."""
    return build_prices([100 * 1.01 ** i for i in range(80)])


@pytest.fixture
def flat_prices() -> pd.DataFrame:
    """120 daily bars at a constant 100."""
    return build_prices([100.0] * 120)
