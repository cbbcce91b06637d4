"""
Price data structures and data provider implementations.

This module defines the PriceBar model, helpers for converting between bars
and the DataFrame representation used throughout the engine (a "price
series"), the abstract interface for data providers, and concrete providers
that load OHLCV data from CSV or Parquet files or generate a seeded random
walk for demos.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, time
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: List[str] = ["open", "high", "low", "close", "volume"]

# NSE cash market session
SESSION_OPEN = time(9, 15)
SESSION_CLOSE = time(15, 30)


class PriceBar(BaseModel):
    """
    A single OHLCV sample.

    Args:
        timestamp (datetime): The start time of the sampling interval.
        open (float): Opening price.
        high (float): Highest traded price.
        low (float): Lowest traded price.
        close (float): Closing price (LTP at the end of the interval).
        volume (int): Traded quantity.
    """
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    open: float = Field(..., gt=0)
    high: float = Field(..., gt=0)
    low: float = Field(..., gt=0)
    close: float = Field(..., gt=0)
    volume: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_range(self) -> "PriceBar":
        if self.high < max(self.open, self.close):
            raise ValueError("high must be >= max(open, close)")
        if self.low > min(self.open, self.close):
            raise ValueError("low must be <= min(open, close)")
        return self


def bars_to_frame(bars: Iterable[PriceBar]) -> pd.DataFrame:
    """
    Builds a price series DataFrame from PriceBar objects.

    Args:
        bars (Iterable[PriceBar]): Bars in chronological order.

    Returns:
        pd.DataFrame: OHLCV columns indexed by a DatetimeIndex.
    """
    records = [bar.model_dump() for bar in bars]
    if not records:
        return pd.DataFrame(
            columns=REQUIRED_COLUMNS, index=pd.DatetimeIndex([], name="timestamp"), dtype=float
        )
    df = pd.DataFrame.from_records(records).set_index("timestamp")
    df.index = pd.DatetimeIndex(df.index)
    return df[REQUIRED_COLUMNS]


def frame_to_bars(df: pd.DataFrame) -> List[PriceBar]:
    """Converts a price series DataFrame back into PriceBar objects."""
    return [
        PriceBar(
            timestamp=ts.to_pydatetime(),
            open=row.open,
            high=row.high,
            low=row.low,
            close=row.close,
            volume=int(row.volume),
        )
        for ts, row in zip(df.index, df.itertuples(index=False))
    ]


def validate_price_series(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validates a price series DataFrame.

    - Converts all column names to lowercase.
    - Checks for the presence of required columns (OHLCV).
    - Ensures the DataFrame has a strictly increasing DatetimeIndex.
    - Checks that every bar has a consistent high/low range.

    Args:
        df (pd.DataFrame): The DataFrame to validate.

    Returns:
        pd.DataFrame: The validated DataFrame.

    Raises:
        ValueError: If any of the checks fails.
    """
    df.columns = [str(col).lower() for col in df.columns]

    if not all(col in df.columns for col in REQUIRED_COLUMNS):
        missing = set(REQUIRED_COLUMNS) - set(df.columns)
        raise ValueError(f"DataFrame is missing required columns: {missing}")

    if not isinstance(df.index, pd.DatetimeIndex):
        raise ValueError("DataFrame must have a DatetimeIndex.")

    if not df.index.is_monotonic_increasing or df.index.has_duplicates:
        raise ValueError("Timestamps must be strictly increasing.")

    if (df[["open", "high", "low", "close"]] <= 0).any().any():
        raise ValueError("Prices must be positive.")

    body_high = df[["open", "close"]].max(axis=1)
    body_low = df[["open", "close"]].min(axis=1)
    bad = (df["high"] < body_high) | (df["low"] > body_low)
    if bad.any():
        first = df.index[bad.to_numpy()][0]
        raise ValueError(f"Inconsistent OHLC range at {first}.")

    if (df["volume"] < 0).any():
        raise ValueError("Volume must be non-negative.")

    return df


class DataProvider(ABC):
    """
    Abstract base class for all data providers.

    It defines a common interface for loading data and enforces basic validation
    checks to ensure the data is in the expected format.
    """
    REQUIRED_COLUMNS: List[str] = REQUIRED_COLUMNS

    def __init__(self, path: str):
        """
        Initializes the data provider.

        Args:
            path (str): The path to the data source file.
        """
        self._path = path

    @abstractmethod
    def load(self) -> pd.DataFrame:
        """
        Loads the data from the source, performs validation, and returns it.

        This method must be implemented by all concrete subclasses.

        Returns:
            pd.DataFrame: A validated DataFrame containing the time-series data.
        """
        raise NotImplementedError

    def _validate(self, df: pd.DataFrame) -> pd.DataFrame:
        validated = validate_price_series(df)
        logger.debug("Loaded %d bars from %s", len(validated), self._path)
        return validated


class ParquetProvider(DataProvider):
    """
    A data provider for loading time-series data from a Parquet file.
    """

    def load(self) -> pd.DataFrame:
        """
        Loads data from the specified Parquet file.

        Raises:
            FileNotFoundError: If the file at `self._path` does not exist.
        """
        df = pd.read_parquet(self._path)
        return self._validate(df)


class CSVProvider(DataProvider):
    """
    A data provider for loading time-series data from a CSV file.

    It assumes that the first column of the CSV is the timestamp index.
    """

    def load(self) -> pd.DataFrame:
        """
        Loads data from the specified CSV file.

        Raises:
            FileNotFoundError: If the file at `self._path` does not exist.
        """
        df = pd.read_csv(self._path, index_col=0, parse_dates=True)
        return self._validate(df)


BASE_PRICES = {"NIFTY": 24500.0, "BANKNIFTY": 52000.0}


class RandomWalkProvider(DataProvider):
    """
    Generates one-minute bars for a symbol as a seeded random walk.

    Only weekday bars inside the NSE session (09:15 to 15:30) are emitted.
    The walk is fully determined by `seed`, so repeated loads return identical
    frames.
    """

    def __init__(
        self,
        symbol: str,
        days: int = 30,
        seed: int = 0,
        volatility: float = 0.015,
        start: Optional[datetime] = None,
        base_price: Optional[float] = None,
    ):
        super().__init__(path=f"random:{symbol}")
        if days <= 0:
            raise ValueError("days must be positive.")
        self.symbol = symbol
        self.days = days
        self.seed = seed
        self.volatility = volatility
        self.start = start or datetime(2024, 1, 1)
        self.base_price = base_price or BASE_PRICES.get(symbol, 2900.0)

    def load(self) -> pd.DataFrame:
        rng = np.random.default_rng(self.seed)
        minutes = pd.date_range(self.start, periods=self.days * 24 * 60, freq="min")
        minutes = minutes[minutes.dayofweek < 5]
        index = minutes[minutes.indexer_between_time(SESSION_OPEN, SESSION_CLOSE)]
        n = len(index)

        price = self.base_price
        v = self.volatility
        moves = (rng.random(n) - 0.5) * 2 * v
        upper = rng.random(n) * v * 0.5
        lower = rng.random(n) * v * 0.5
        volume = rng.integers(500_000, 1_500_000, size=n)

        rows = np.empty((n, 4))
        for i in range(n):
            open_ = price
            close = max(price + moves[i] * price, 0.01)
            rows[i] = (
                open_,
                max(open_, close) + upper[i] * price,
                max(min(open_, close) - lower[i] * price, 0.005),
                close,
            )
            price = close

        df = pd.DataFrame(rows, index=index, columns=["open", "high", "low", "close"])
        df["volume"] = volume
        df.index.name = "timestamp"
        return self._validate(df)


def build_provider(source: str, **kwargs) -> DataProvider:
    """
    Creates a data provider for the given source identifier.

    Args:
        source (str): One of 'csv', 'parquet' or 'random'.
        **kwargs: Provider-specific arguments ('path' for file sources,
            'symbol', 'days', 'seed' for the random walk).

    Returns:
        DataProvider: The configured provider.
    """
    if source == "csv":
        return CSVProvider(path=kwargs["path"])
    if source == "parquet":
        return ParquetProvider(path=kwargs["path"])
    if source == "random":
        return RandomWalkProvider(**kwargs)
    raise ValueError(f"Unknown data source '{source}'. Available: ['csv', 'parquet', 'random']")
