"""
Report generation for a single backtest run.
"""
import math
import os
from typing import Any, Dict

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
import yaml  # noqa: E402
from pydantic import BaseModel, ConfigDict  # noqa: E402

from papertrade.analysis import trade_return_t_test  # noqa: E402
from papertrade.backtester.results import BacktestResult  # noqa: E402


class RunReport(BaseModel):
    """
    Pairs a backtest result with the symbol it was run on and writes it to
    disk as plots, a trade log and a summary.

    Args:
        symbol (str): The instrument the strategy was tested on.
        result (BacktestResult): The result of the run.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    symbol: str
    result: BacktestResult

    def summary(self) -> Dict[str, Any]:
        """Scalar statistics of the run, with inf replaced by a string."""
        metrics = {
            key: ("inf" if isinstance(value, float) and math.isinf(value) else value)
            for key, value in self.result.metrics.items()
        }
        metrics["symbol"] = self.symbol
        t_stat, p_value = trade_return_t_test([t.pnl_percent for t in self.result.trades])
        metrics["trade_t_statistic"] = t_stat
        metrics["trade_p_value"] = p_value
        metrics["monthly_returns"] = {m.month: m.return_pct for m in self.result.monthly_returns}
        return metrics

    def trades_frame(self) -> pd.DataFrame:
        columns = list(self.result.trades[0].model_dump().keys()) if self.result.trades else []
        frame = pd.DataFrame([t.model_dump(mode="json") for t in self.result.trades], columns=columns)
        return frame

    def generate_report(self, output_dir: str):
        """
        Generates a collection of static report files (plots, tables) in the
        specified output directory.
        """
        os.makedirs(output_dir, exist_ok=True)

        # 1. Equity and drawdown
        self._plot_equity(output_dir)

        # 2. Monthly returns
        self._plot_monthly_returns(output_dir)

        # 3. Trade log and summary
        self.trades_frame().to_csv(os.path.join(output_dir, "trades.csv"), index=False)
        with open(os.path.join(output_dir, "summary.yaml"), 'w') as f:
            yaml.safe_dump(self.summary(), f, sort_keys=False)

    def _plot_equity(self, output_dir: str):
        """Plots the equity curve above the drawdown curve."""
        equity = self.result.equity_curve
        if equity.empty:
            return

        fig, (ax_eq, ax_dd) = plt.subplots(2, 1, figsize=(10, 8), sharex=True)
        ax_eq.plot(equity.index, equity.values, linestyle='-')
        ax_eq.set_ylabel("Equity")
        ax_eq.set_title(f"{self.result.strategy_name} on {self.symbol}")
        ax_eq.grid(True)

        drawdown = self.result.drawdown_curve
        ax_dd.fill_between(drawdown.index, -drawdown.values, 0, color='firebrick', alpha=0.4)
        ax_dd.set_ylabel("Drawdown (%)")
        ax_dd.grid(True)

        plt.tight_layout()
        plt.savefig(os.path.join(output_dir, "equity_curve.png"))
        plt.close(fig)

    def _plot_monthly_returns(self, output_dir: str):
        """Bar chart of summed trade returns per exit month."""
        if not self.result.monthly_returns:
            return

        months = [m.month for m in self.result.monthly_returns]
        values = [m.return_pct for m in self.result.monthly_returns]
        colors = ['seagreen' if v >= 0 else 'firebrick' for v in values]

        fig, ax = plt.subplots(figsize=(10, 5))
        ax.bar(months, values, color=colors)
        ax.set_xlabel("Month")
        ax.set_ylabel("Return (%)")
        ax.set_title("Monthly Returns")
        ax.axhline(y=0, color='black', linestyle='-', linewidth=0.5)
        ax.grid(True, axis='y')

        plt.tight_layout()
        plt.savefig(os.path.join(output_dir, "monthly_returns.png"))
        plt.close(fig)
