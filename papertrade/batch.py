"""
Batch execution of backtests across strategy/symbol combinations.

Every run owns its own backtester state, so combinations are independent and
may execute in parallel. The price series of a symbol is shared read-only.
"""
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from papertrade.analysis import StatisticalSummary, compute_confidence_interval
from papertrade.backtester.engine import BarBacktester
from papertrade.config import Config, DataConfig, StrategyEntry
from papertrade.io import load_prices
from papertrade.metrics import get_objective
from papertrade.results import RunReport
from papertrade.strategy import get_strategy

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Result from a single strategy/symbol run."""
    symbol: str
    strategy: str
    report: Optional[RunReport]
    error: Optional[str] = None


def execute_run(
    config: Config,
    data_config: DataConfig,
    entry: StrategyEntry,
    prices: Optional[pd.DataFrame] = None,
) -> RunResult:
    """
    Runs one strategy on one symbol. Failures are captured in the returned
    RunResult instead of being raised, so one bad combination does not abort
    a batch.
    """
    try:
        if prices is None:
            prices = load_prices(data_config)
        strategy = get_strategy(entry.name, **entry.parameters)
        overrides = {**config.risk.model_dump(exclude_none=True), **entry.overrides}
        run_config = strategy.default_config(**overrides)
        result = BarBacktester(prices).run(strategy, run_config)
        return RunResult(
            symbol=data_config.symbol,
            strategy=entry.name,
            report=RunReport(symbol=data_config.symbol, result=result),
        )
    except Exception as e:
        logger.exception("Run %s on %s failed", entry.name, data_config.symbol)
        return RunResult(symbol=data_config.symbol, strategy=entry.name, report=None, error=str(e))


class BatchResults:
    """
    Aggregates results from multiple strategy/symbol runs.
    """

    def __init__(self, run_results: List[RunResult], config: Config):
        self.run_results = run_results
        self.config = config
        self.successful_runs = [r for r in run_results if r.report is not None]
        self.failed_runs = [r for r in run_results if r.error is not None]

    def score(self, run: RunResult, metric: Optional[str] = None) -> float:
        objective = get_objective(metric or self.config.report.rank_by)
        return float(objective(run.report.result))

    def ranked(self, metric: Optional[str] = None) -> List[RunResult]:
        """Successful runs sorted by `metric` (default: report.rank_by), best first."""
        return sorted(self.successful_runs, key=lambda r: self.score(r, metric), reverse=True)

    def per_run_table(self) -> pd.DataFrame:
        """One row of scalar statistics per successful run."""
        rows = []
        for run in self.successful_runs:
            result = run.report.result
            rows.append({
                "symbol": run.symbol,
                "strategy": run.strategy,
                "total_trades": result.total_trades,
                "win_rate": result.win_rate,
                "total_pnl": result.total_pnl,
                "total_pnl_percent": result.total_pnl_percent,
                "profit_factor": result.profit_factor,
                "sharpe_ratio": result.sharpe_ratio,
                "sortino_ratio": result.sortino_ratio,
                "calmar_ratio": result.calmar_ratio,
                "max_drawdown_percent": result.max_drawdown_percent,
            })
        return pd.DataFrame(rows)

    def _values_by_strategy(self, metric: str) -> Dict[str, Dict[str, float]]:
        values: Dict[str, Dict[str, float]] = {}
        for run in self.successful_runs:
            values.setdefault(run.strategy, {})[run.symbol] = self.score(run, metric)
        return values

    def aggregate_metrics(self, metric: Optional[str] = None) -> Dict[str, Any]:
        """Computes per-strategy statistics of `metric` across symbols."""
        metric = metric or self.config.report.rank_by
        result: Dict[str, Any] = {
            "num_runs": len(self.run_results),
            "successful_runs": len(self.successful_runs),
            "failed_runs": len(self.failed_runs),
            "metric": metric,
            "strategies": {},
        }
        for strategy, by_symbol in self._values_by_strategy(metric).items():
            values = [v for v in by_symbol.values() if np.isfinite(v)]
            if not values:
                continue
            mean, ci_lower, ci_upper = compute_confidence_interval(values)
            result["strategies"][strategy] = {
                "mean": mean,
                "std": float(np.std(values)),
                "ci_lower": ci_lower,
                "ci_upper": ci_upper,
            }
        return result

    def statistical_summary(self, metric: Optional[str] = None) -> Dict[str, StatisticalSummary]:
        """
        Builds a StatisticalSummary of `metric` per strategy, paired against
        the configured benchmark strategy on the symbols both ran on.
        """
        metric = metric or self.config.report.rank_by
        by_strategy = self._values_by_strategy(metric)
        benchmark = by_strategy.get(self.config.report.benchmark or "", {})

        summaries = {}
        for strategy, by_symbol in by_strategy.items():
            symbols = sorted(s for s, v in by_symbol.items() if np.isfinite(v))
            values = [by_symbol[s] for s in symbols]
            benchmark_values = None
            if benchmark and strategy != self.config.report.benchmark:
                shared = [s for s in symbols if s in benchmark and np.isfinite(benchmark[s])]
                if len(shared) == len(symbols):
                    benchmark_values = [benchmark[s] for s in shared]
            summaries[strategy] = StatisticalSummary(
                values=values,
                benchmark_values=benchmark_values,
                metric_name=metric,
                strategy_name=strategy,
            )
        return summaries

    def generate_batch_report(self, output_dir: str):
        """Generates a comprehensive report for all batch runs."""
        import matplotlib.pyplot as plt

        os.makedirs(output_dir, exist_ok=True)

        # 1. Summary statistics
        agg = self.aggregate_metrics()
        summary_path = os.path.join(output_dir, "batch_summary.txt")
        with open(summary_path, 'w') as f:
            f.write("=== Batch Run Summary ===\n\n")
            f.write(f"Total runs: {agg['num_runs']}\n")
            f.write(f"Successful: {agg['successful_runs']}\n")
            f.write(f"Failed: {agg['failed_runs']}\n\n")

            f.write(f"=== {agg['metric']} by strategy ===\n\n")
            for strategy, stats in agg["strategies"].items():
                f.write(
                    f"{strategy}: {stats['mean']:.4f} +/- {stats['std']:.4f} "
                    f"(95% CI [{stats['ci_lower']:.4f}, {stats['ci_upper']:.4f}])\n"
                )

            ranked = self.ranked()
            if ranked:
                best = ranked[0]
                f.write(f"\nBest run: {best.strategy} on {best.symbol} ({self.score(best):.4f})\n")

            if self.failed_runs:
                f.write("\n=== Failed Runs ===\n\n")
                for run in self.failed_runs:
                    f.write(f"{run.strategy} on {run.symbol}: {run.error}\n")

        # 2. Detailed statistical analysis
        summaries = self.statistical_summary()
        if summaries:
            with open(os.path.join(output_dir, "statistical_analysis.txt"), 'w') as f:
                for summary in summaries.values():
                    f.write(summary.format_summary())
                    f.write("\n\n")

        # 3. Per-run results CSV
        table = self.per_run_table()
        if not table.empty:
            table.to_csv(os.path.join(output_dir, "per_run_results.csv"), index=False)

            # 4. Comparison plot
            fig, ax = plt.subplots(figsize=(12, 6))
            labels = [f"{s}\n{sym}" for s, sym in zip(table["strategy"], table["symbol"])]
            ax.bar(range(len(table)), table["total_pnl_percent"], alpha=0.8)
            ax.set_xticks(range(len(table)))
            ax.set_xticklabels(labels, rotation=45, ha='right')
            ax.set_ylabel("Total Return (%)")
            ax.set_title("Return per Run")
            ax.axhline(y=0, color='black', linestyle='-', linewidth=0.5)
            ax.grid(True, axis='y')
            plt.tight_layout()
            plt.savefig(os.path.join(output_dir, "run_comparison.png"))
            plt.close(fig)

        # 5. Individual run reports
        runs_dir = os.path.join(output_dir, "runs")
        for run in self.successful_runs:
            slug = f"{run.strategy}_{run.symbol}".lower().replace(" ", "_")
            run.report.generate_report(os.path.join(runs_dir, slug))

        logger.info("Batch report generated in '%s'", output_dir)


class BatchRunner:
    """
    Runs every configured strategy on every configured symbol.
    """

    def __init__(self, config: Config, parallel: Optional[bool] = None):
        self.config = config
        self.parallel = config.backtest.parallel if parallel is None else parallel

    def run_all(self) -> BatchResults:
        """Runs all strategy/symbol combinations."""
        total_runs = len(self.config.data) * len(self.config.strategies)
        logger.info(
            "Batch run: %d symbols x %d strategies = %d runs (parallel=%s)",
            len(self.config.data), len(self.config.strategies), total_runs, self.parallel,
        )
        if self.parallel:
            return self._run_parallel()
        return self._run_sequential()

    def _run_sequential(self) -> BatchResults:
        """Runs all combinations in order, loading each price series once."""
        run_results = []
        for data_config in self.config.data:
            try:
                prices = load_prices(data_config)
            except Exception as e:
                logger.exception("Loading %s failed", data_config.symbol)
                run_results.extend(
                    RunResult(symbol=data_config.symbol, strategy=entry.name, report=None, error=str(e))
                    for entry in self.config.strategies
                )
                continue
            for entry in self.config.strategies:
                logger.info("[%d] %s on %s", len(run_results) + 1, entry.name, data_config.symbol)
                run_results.append(execute_run(self.config, data_config, entry, prices))
        return BatchResults(run_results, self.config)

    def _run_parallel(self) -> BatchResults:
        """Runs all combinations as Ray tasks."""
        import ray

        if not ray.is_initialized():
            ray.init(ignore_reinit_error=True)

        run_remote = ray.remote(execute_run)
        futures = [
            run_remote.remote(self.config, data_config, entry)
            for data_config in self.config.data
            for entry in self.config.strategies
        ]
        logger.info("Submitted %d parallel tasks", len(futures))
        return BatchResults(ray.get(futures), self.config)
