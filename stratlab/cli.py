"""stratlab.cli

Command line interface entry point for stratlab.

Design constraints:
- argparse-based.
- Lazy imports: do not import heavy dependencies at parse time.

Exit codes: 0 ok, 1 cancelled, 2 invalid request or usage, 3 data error.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

EPILOG = "Past performance is a fixture, not a forecast."

EXIT_OK = 0
EXIT_CANCELLED = 1
EXIT_INVALID = 2
EXIT_DATA = 3


@dataclass(frozen=True)
class CliContext:
    repo_root: Path


def _repo_root_from_cwd() -> Path:
    return Path.cwd()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stratlab",
        description="Backtest crypto trading strategies against historical prices.",
        epilog=EPILOG,
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit.",
    )

    sub = parser.add_subparsers(dest="command")

    p_bt = sub.add_parser("backtest", help="Run one backtest and print the result as JSON")
    p_bt.add_argument(
        "--strategy",
        required=True,
        choices=["dca", "grid_trading", "sma_crossover", "rsi", "macd"],
    )
    p_bt.add_argument("--symbol", required=True, help="Asset symbol, e.g. BTCUSDT")
    p_bt.add_argument("--start", required=True, help="Start date (YYYY-MM-DD)")
    p_bt.add_argument("--end", required=True, help="End date (YYYY-MM-DD)")
    p_bt.add_argument("--capital", type=float, required=True, help="Initial capital in quote currency")
    p_bt.add_argument("--params", default=None, help="Strategy parameters as a JSON object")
    p_bt.add_argument("--prices-dir", default=None, help="Directory of <SYMBOL>.csv files (overrides config)")

    sub.add_parser("strategies", help="List strategy kinds, defaults and parameter bounds")

    p_api = sub.add_parser("api", help="Start FastAPI server")
    p_api.add_argument("--host", default=None)
    p_api.add_argument("--port", type=int, default=None)

    return parser


def _print_version() -> None:
    from stratlab import __version__

    print(f"stratlab v{__version__}")


def _load_config(ctx: CliContext):
    from stratlab.core.config import Config

    return Config.load(ctx.repo_root)


def _cmd_backtest(ctx: CliContext, args: argparse.Namespace) -> int:
    # Lazy imports: numpy + pydantic are not needed for --help.
    from stratlab.backtest.engine import Cancelled, run_backtest
    from stratlab.backtest.io import CsvPriceSource
    from stratlab.core.exceptions import BacktestValidationError, DataError
    from stratlab.core.logging import configure_logging

    config = _load_config(ctx)
    configure_logging(config.logging)

    params: dict = {}
    if args.params:
        try:
            params = json.loads(args.params)
        except json.JSONDecodeError as e:
            print(f"error: --params is not valid JSON: {e}", file=sys.stderr)
            return EXIT_INVALID
        if not isinstance(params, dict):
            print("error: --params must be a JSON object", file=sys.stderr)
            return EXIT_INVALID

    prices_dir = Path(args.prices_dir) if args.prices_dir else config.data.prices_dir
    if not prices_dir.is_absolute():
        prices_dir = ctx.repo_root / prices_dir

    payload = {
        "strategy_kind": args.strategy,
        "config": params,
        "asset_symbol": args.symbol,
        "start_date": args.start,
        "end_date": args.end,
        "initial_capital": args.capital,
    }

    try:
        outcome = run_backtest(payload, source=CsvPriceSource(prices_dir), config=config)
    except BacktestValidationError as e:
        print("error: invalid backtest request", file=sys.stderr)
        for issue in e.issues:
            print(f"- {issue.field}: {issue.message}", file=sys.stderr)
        return EXIT_INVALID
    except DataError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_DATA

    if isinstance(outcome, Cancelled):
        print(f"cancelled after {outcome.bars_processed} bars", file=sys.stderr)
        return EXIT_CANCELLED

    print(outcome.model_dump_json(indent=2))
    return EXIT_OK


def _cmd_strategies(ctx: CliContext, args: argparse.Namespace) -> int:
    from stratlab.backtest.validation import strategy_catalog

    print(json.dumps(strategy_catalog(), indent=2))
    return EXIT_OK


def _cmd_api(ctx: CliContext, args: argparse.Namespace) -> int:
    from stratlab.core.logging import configure_logging

    config = _load_config(ctx)
    configure_logging(config.logging)

    host = args.host or config.api.host
    port = args.port or config.api.port

    import uvicorn

    uvicorn.run("api.main:app", host=host, port=port, reload=False)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        _print_version()
        return EXIT_OK

    if not args.command:
        parser.print_help()
        return EXIT_INVALID

    ctx = CliContext(repo_root=_repo_root_from_cwd())

    dispatch: dict[str, Callable[[CliContext, argparse.Namespace], int]] = {
        "backtest": _cmd_backtest,
        "strategies": _cmd_strategies,
        "api": _cmd_api,
    }

    fn = dispatch.get(str(args.command))
    if fn is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return EXIT_INVALID

    from stratlab.core.exceptions import ConfigError

    try:
        return int(fn(ctx, args))
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return EXIT_INVALID


if __name__ == "__main__":
    raise SystemExit(main())
