"""
Main entry point for running a batch of papertrade backtests.
"""
import logging
import os
import sys

# Ensure the project root is in the python path
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

import papertrade


def main(config_path: str = "config.yaml"):
    """
    Main execution function.
    """
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print("--- papertrade: strategy backtests ---")

    # 1. Load configuration from file
    config = papertrade.load_config(config_path)
    print(f"Configuration loaded. {len(config.data)} symbols, {len(config.strategies)} strategies.")

    # 2. Run every strategy on every symbol
    batch = papertrade.BatchRunner(config).run_all()

    # 3. Generate the report
    report_dir = config.report.output_dir
    batch.generate_batch_report(report_dir)

    for run in batch.ranked():
        result = run.report.result
        print(
            f"{run.strategy:<26} {run.symbol:<10} trades={result.total_trades:<4} "
            f"pnl={result.total_pnl_percent:+.2f}% sharpe={result.sharpe_ratio:.2f} "
            f"max_dd={result.max_drawdown_percent:.2f}%"
        )
    for run in batch.failed_runs:
        print(f"FAILED {run.strategy} on {run.symbol}: {run.error}")
    print(f"Report generated in '{report_dir}'.")
    return 1 if batch.failed_runs else 0


if __name__ == "__main__":
    sys.exit(main(*sys.argv[1:2]))
