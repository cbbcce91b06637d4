"""
Input/Output operations for papertrade.

This module provides utility functions for loading framework objects, such
as configurations and price series.
"""
import pandas as pd
import yaml

from papertrade.config import Config, DataConfig
from papertrade.data.provider import build_provider


def load_config(path: str) -> Config:
    """
    Loads a YAML configuration file and parses it into a strongly-typed
    Config object.

    Args:
        path (str): The path to the YAML configuration file.

    Returns:
        Config: A Pydantic Config object with the validated configuration.
    """
    with open(path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}
    return Config(**raw_config)


def load_prices(data_config: DataConfig) -> pd.DataFrame:
    """
    Loads the price series described by a DataConfig.

    Args:
        data_config (DataConfig): The data source settings.

    Returns:
        pd.DataFrame: A validated OHLCV price series.
    """
    provider = build_provider(data_config.source, **data_config.provider_kwargs())
    return provider.load()
