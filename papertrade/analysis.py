"""
Statistical analysis of backtest results across runs.
"""
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from scipy import stats

from papertrade.metrics import is_negligible_spread


def compute_confidence_interval(
    values: List[float],
    confidence: float = 0.95
) -> Tuple[float, float, float]:
    """
    Computes the confidence interval for a list of values.

    Args:
        values: List of numeric values.
        confidence: Confidence level (default: 0.95 for 95% CI).

    Returns:
        Tuple of (mean, lower_bound, upper_bound).
    """
    if not values or len(values) < 2:
        mean = values[0] if values else 0.0
        return (mean, mean, mean)

    n = len(values)
    mean = np.mean(values)
    std_err = stats.sem(values)
    if is_negligible_spread(std_err, mean):
        return (float(mean), float(mean), float(mean))

    t_value = stats.t.ppf((1 + confidence) / 2, n - 1)
    margin = t_value * std_err

    return (float(mean), float(mean - margin), float(mean + margin))


def trade_return_t_test(returns: List[float]) -> Tuple[float, float]:
    """
    One-sample t-test of whether the mean per-trade return differs from zero.

    Returns:
        Tuple of (t_statistic, p_value); (0.0, 1.0) with fewer than two
        trades or identical returns.
    """
    if len(returns) < 2 or is_negligible_spread(np.std(returns), np.mean(returns)):
        return (0.0, 1.0)
    t_stat, p_value = stats.ttest_1samp(returns, 0.0)
    return (float(t_stat), float(p_value))


def paired_t_test(
    benchmark: List[float],
    candidate: List[float]
) -> Tuple[float, float]:
    """
    Performs a paired t-test of a candidate strategy against a benchmark
    strategy run on the same symbols.

    Returns:
        Tuple of (t_statistic, p_value).
    """
    if len(benchmark) != len(candidate):
        raise ValueError("Benchmark and candidate must have same length")

    differences = np.subtract(candidate, benchmark)
    if len(differences) < 2 or is_negligible_spread(np.std(differences), np.mean(differences)):
        return (0.0, 1.0)

    t_stat, p_value = stats.ttest_rel(candidate, benchmark)
    return (float(t_stat), float(p_value))


def compute_effect_size(
    benchmark: List[float],
    candidate: List[float]
) -> float:
    """
    Computes Cohen's d effect size for paired samples.
    """
    if len(benchmark) != len(candidate) or len(benchmark) < 2:
        return 0.0

    differences = np.subtract(candidate, benchmark)
    std_diff = np.std(differences, ddof=1)

    if is_negligible_spread(std_diff, np.mean(differences)):
        return 0.0

    return float(np.mean(differences) / std_diff)


def interpret_effect_size(d: float) -> str:
    """Interprets Cohen's d effect size."""
    d = abs(d)
    if d < 0.2:
        return "negligible"
    elif d < 0.5:
        return "small"
    elif d < 0.8:
        return "medium"
    else:
        return "large"


def interpret_p_value(p: float, alpha: float = 0.05) -> str:
    """Interprets p-value for statistical significance."""
    if p < 0.001:
        return "highly significant (p < 0.001)"
    elif p < 0.01:
        return "very significant (p < 0.01)"
    elif p < alpha:
        return f"significant (p < {alpha})"
    else:
        return "not significant"


class StatisticalSummary:
    """
    Summarises one metric of a strategy across symbols, optionally against a
    benchmark strategy run on the same symbols.
    """

    def __init__(
        self,
        values: List[float],
        benchmark_values: Optional[List[float]] = None,
        metric_name: str = "metric",
        strategy_name: str = "strategy",
    ):
        self.values = values
        self.benchmark = benchmark_values
        self.metric_name = metric_name
        self.strategy_name = strategy_name

    def compute(self) -> Dict[str, Any]:
        """Computes full statistical summary."""
        result: Dict[str, Any] = {
            "metric": self.metric_name,
            "strategy": self.strategy_name,
            "n": len(self.values),
        }

        if not self.values:
            return result

        result["mean"] = float(np.mean(self.values))
        result["std"] = float(np.std(self.values, ddof=1)) if len(self.values) > 1 else 0.0
        result["min"] = float(np.min(self.values))
        result["max"] = float(np.max(self.values))
        result["median"] = float(np.median(self.values))

        _, ci_lower, ci_upper = compute_confidence_interval(self.values)
        result["ci_95_lower"] = ci_lower
        result["ci_95_upper"] = ci_upper

        if self.benchmark and len(self.benchmark) == len(self.values):
            result["benchmark_mean"] = float(np.mean(self.benchmark))
            result["improvement"] = result["mean"] - result["benchmark_mean"]

            t_stat, t_pvalue = paired_t_test(self.benchmark, self.values)
            result["t_statistic"] = t_stat
            result["t_pvalue"] = t_pvalue
            result["t_interpretation"] = interpret_p_value(t_pvalue)

            effect = compute_effect_size(self.benchmark, self.values)
            result["cohens_d"] = effect
            result["effect_interpretation"] = interpret_effect_size(effect)

        return result

    def format_summary(self) -> str:
        """Formats statistical summary as human-readable text."""
        summary = self.compute()
        lines = [f"=== {self.strategy_name}: {self.metric_name} ===", f"N = {summary['n']} runs", ""]

        if summary["n"] == 0:
            lines.append("No data available")
            return "\n".join(lines)

        lines.append(f"  Mean:   {summary['mean']:.4f}")
        lines.append(f"  Std:    {summary['std']:.4f}")
        lines.append(f"  95% CI: [{summary['ci_95_lower']:.4f}, {summary['ci_95_upper']:.4f}]")
        lines.append(f"  Range:  [{summary['min']:.4f}, {summary['max']:.4f}]")
        lines.append(f"  Median: {summary['median']:.4f}")

        if "benchmark_mean" in summary:
            lines.append("")
            lines.append(f"  Benchmark mean: {summary['benchmark_mean']:.4f}")
            lines.append(f"  Improvement:    {summary['improvement']:+.4f}")
            lines.append(f"  Effect size:    {summary['cohens_d']:.3f} ({summary['effect_interpretation']})")
            lines.append(f"  t-test:         {summary['t_interpretation']} (p={summary['t_pvalue']:.4f})")

        return "\n".join(lines)
