"""
Configuration models for papertrade.

This module defines the Pydantic models for validating the risk parameters of
a single backtest run and the configuration of a batch of runs, which is
typically loaded from a YAML file.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StrategyConfig(BaseModel):
    """
    Immutable risk and sizing parameters of one backtest run.

    Args:
        name (str): Display name of the run, usually the strategy name.
        initial_capital (float): Starting capital in rupees.
        position_size (float): Fraction of current capital allocated to each
            new position, in (0, 1].
        stop_loss (float): Adverse move, in percent of the entry price, that
            closes a position.
        take_profit (float): Favourable move, in percent of the entry price,
            that closes a position.
        trailing_stop (Optional[float]): Pullback, in percent, from the best
            close since entry that closes a position.
        max_holding_period (Optional[int]): Maximum number of bars a position
            may stay open.
        warmup (int): Number of leading bars skipped before the first entry
            decision so indicators are defined.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., description="Name of the run.")
    initial_capital: float = Field(1_000_000.0, gt=0, description="Starting capital.")
    position_size: float = Field(0.1, gt=0, le=1, description="Fraction of capital per position.")
    stop_loss: float = Field(2.0, ge=0, description="Stop-loss percent.")
    take_profit: float = Field(4.0, ge=0, description="Take-profit percent.")
    trailing_stop: Optional[float] = Field(None, gt=0, description="Trailing-stop percent.")
    max_holding_period: Optional[int] = Field(None, gt=0, description="Maximum bars in a position.")
    warmup: int = Field(50, ge=1, description="Bars skipped before the first entry.")


class DataConfig(BaseModel):
    """
    Configuration for one price series.

    Args:
        symbol (str): The instrument, e.g. 'NIFTY'.
        source (str): 'csv', 'parquet' or 'random'.
        path (Optional[str]): File path for file based sources.
        days (int): Calendar days spanned by the random source (weekdays only).
        seed (int): Seed of the random source.
    """
    symbol: str = Field(..., description="Instrument symbol.")
    source: Literal["csv", "parquet", "random"] = Field("random", description="Data source.")
    path: Optional[str] = Field(None, description="Path to the dataset file.")
    days: int = Field(30, gt=0, description="Days generated by the random source.")
    seed: int = Field(0, description="Seed for the random source.")

    @model_validator(mode="after")
    def _check_path(self) -> "DataConfig":
        if self.source in ("csv", "parquet") and not self.path:
            raise ValueError(f"A path is required for the '{self.source}' source.")
        return self

    def provider_kwargs(self) -> Dict[str, Any]:
        if self.source == "random":
            return {"symbol": self.symbol, "days": self.days, "seed": self.seed}
        return {"path": self.path}


class RiskConfig(BaseModel):
    """
    Default risk parameters shared by every strategy in a batch. Strategy
    entries may override any of them.
    """
    model_config = ConfigDict(extra="forbid")

    initial_capital: float = Field(1_000_000.0, gt=0)
    position_size: float = Field(0.1, gt=0, le=1)
    trailing_stop: Optional[float] = Field(None, gt=0)
    max_holding_period: Optional[int] = Field(None, gt=0)
    warmup: int = Field(50, ge=1)


class StrategyEntry(BaseModel):
    """
    A strategy to run, referenced by its registered name.

    Args:
        name (str): Identifier registered in STRATEGY_REGISTRY.
        parameters (Dict[str, Any]): Constructor arguments for the strategy.
        overrides (Dict[str, Any]): StrategyConfig fields that replace the
            strategy defaults and the batch risk settings.
    """
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Registered strategy name.")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    overrides: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_overrides(self) -> "StrategyEntry":
        unknown = sorted(set(self.overrides) - set(StrategyConfig.model_fields))
        if unknown:
            raise ValueError(f"Unknown override(s) for strategy '{self.name}': {unknown}")
        return self


class ReportConfig(BaseModel):
    output_dir: str = Field("runs/latest", description="Directory for generated reports.")
    rank_by: str = Field("sharpe_ratio", description="Metric used to rank runs.")
    benchmark: Optional[str] = Field(None, description="Strategy the others are compared against.")


class BacktestConfig(BaseModel):
    parallel: bool = Field(False, description="Run combinations as parallel Ray tasks.")


class Config(BaseModel):
    """
    Top-level configuration object for a batch of backtests.

    Args:
        data (List[DataConfig]): The price series to test on.
        strategies (List[StrategyEntry]): The strategies to run on each series.
        risk (RiskConfig): Default risk parameters.
        backtest (BacktestConfig): Execution settings.
        report (ReportConfig): Report settings.
    """
    data: List[DataConfig] = Field(..., min_length=1)
    strategies: List[StrategyEntry] = Field(..., min_length=1)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
