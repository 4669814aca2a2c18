"""
CLI Entry Point for tradelab Backtests

Runs one strategy description (JSON) over one CSV of OHLCV bars and
prints the results summary.

Usage:
    python -m tradelab.backtesting.runners.cli --strategy sma.json --data btc.csv
    python -m tradelab.backtesting.runners.cli --strategy sma.json --data btc.csv --csv -o out
    python -m tradelab.backtesting.runners.cli --strategy sma.json --validate-only
    python -m tradelab.backtesting.runners.cli --strategy sma.json --data btc.csv --config bt.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import pandas as pd

from config.settings import (
    get_default_commission_rate,
    get_default_initial_capital,
    get_log_level,
    get_risk_free_rate,
    load_config,
)
from tradelab.backtesting.config import BacktestConfig
from tradelab.backtesting.engine import BacktestEngine
from tradelab.data import bars_from_dataframe
from tradelab.exceptions import TradelabError
from tradelab.strategy.compiler import StrategyCompiler


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='tradelab strategy backtester',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Inputs
    parser.add_argument('--strategy', required=True,
                        help='Path to strategy description JSON')
    parser.add_argument('--data', '-d',
                        help='Path to OHLCV CSV (timestamp/date column + open/high/low/close[/volume])')

    # Run settings (defaults come from settings / .env)
    parser.add_argument('--capital', type=float, default=None,
                        help='Initial capital (default: TRADELAB_INITIAL_CAPITAL or 10000)')
    parser.add_argument('--commission', type=float, default=None,
                        help='Commission rate per fill (default: TRADELAB_COMMISSION_RATE or 0.001)')
    parser.add_argument('--max-positions', type=int, default=None,
                        help='Max concurrently open lots (overrides strategy)')
    parser.add_argument('--start', default=None,
                        help='Start date YYYY-MM-DD')
    parser.add_argument('--end', default=None,
                        help='End date YYYY-MM-DD (inclusive)')

    # Output
    parser.add_argument('--output', '-o', default='data/backtests',
                        help='Output directory (default: data/backtests)')
    parser.add_argument('--csv', action='store_true',
                        help='Export trades and equity curve to CSV')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose logging')
    parser.add_argument('--validate-only', action='store_true',
                        help='Validate the strategy description and exit')

    # Config file
    parser.add_argument('--config', type=str,
                        help='Path to JSON backtest config file (overrides other args)')

    return parser.parse_args(argv)


def build_config(args) -> BacktestConfig:
    """Build BacktestConfig from CLI arguments."""
    if args.config:
        config_path = Path(args.config)
        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return BacktestConfig.from_dict(data)
        logging.warning("Config file %s not found, using CLI arguments", config_path)

    return BacktestConfig(
        initial_capital=args.capital if args.capital is not None else get_default_initial_capital(),
        commission_rate=args.commission if args.commission is not None else get_default_commission_rate(),
        max_positions=args.max_positions,
        start_date=args.start,
        end_date=args.end,
        risk_free_rate=get_risk_free_rate(),
    )


def load_strategy_file(path) -> dict:
    with open(path) as f:
        return json.load(f)


def load_bars(path):
    """Read a CSV of bars; a timestamp/date column (or the first column) is the time axis."""
    df = pd.read_csv(path)
    columns = {str(c).lower() for c in df.columns}
    if 'timestamp' not in columns and 'date' not in columns:
        df = df.set_index(df.columns[0])
    return bars_from_dataframe(df)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    load_config()

    # Setup logging
    level = logging.DEBUG if args.verbose else getattr(logging, get_log_level())
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
    )

    strategy = load_strategy_file(args.strategy)
    compiler = StrategyCompiler()

    validation = compiler.validate_strategy(strategy)
    for warning in validation.warnings:
        logging.warning("Strategy warning [%s]: %s", warning.code, warning.message)
    if not validation.is_valid:
        for error in validation.errors:
            logging.error("Strategy error [%s]: %s", error.code, error.message)
        sys.exit(1)
    if args.validate_only:
        print(f"Strategy '{strategy.get('name', '')}' is valid "
              f"({len(validation.warnings)} warnings)")
        return validation

    if not args.data:
        logging.error("--data is required unless --validate-only is given")
        sys.exit(1)

    config = build_config(args)

    # Validate
    issues = config.validate()
    if issues:
        for issue in issues:
            logging.error("Config error: %s", issue)
        sys.exit(1)

    # Run backtest
    engine = BacktestEngine(config, compiler=compiler)
    try:
        results = engine.run(strategy, load_bars(args.data))
    except TradelabError as e:
        logging.error("Backtest failed: %s", e)
        sys.exit(1)

    # Print summary
    print(results.summary_text())

    # Export CSV if requested
    if args.csv:
        output_path = Path(args.output)
        output_path.mkdir(parents=True, exist_ok=True)
        stem = results.metadata.get('strategy_id', 'backtest')
        trades_path = output_path / f"{stem}_trades.csv"
        equity_path = output_path / f"{stem}_equity.csv"
        results.trades_df().to_csv(trades_path, index=False)
        results.equity_df().to_csv(equity_path)
        print(f"\nTrades exported to: {trades_path}")
        print(f"Equity curve exported to: {equity_path}")

    return results


if __name__ == '__main__':
    main()
