#!/usr/bin/env python3
"""CLI entrypoint for one portfolio ledger cycle.

Usage::

    python run_cycle.py --decisions decisions.json --prices prices.json
    python run_cycle.py --config config/ledger.yaml --decisions decisions.json --prices prices.json
    python run_cycle.py --prices prices.json --sweep-stop-losses

Decisions are filled by the paper broker at the prices given in the prices
file (a JSON mapping of ticker -> price, or ticker -> {"price", "low"}).
No live brokerage ships with this CLI, so a config with ``execute_trades``
enabled is refused. The ledger lives in JSON files under ``--data-dir``.
The cycle report is printed as JSON.

Exit codes: 0 success, 1 persistence failure, 2 invalid decision batch,
3 live trading requested without a live brokerage.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from execution.brokers import StaticPriceProvider, select_executor
from execution.cycle import TradingCycle
from ledger.errors import PersistenceError, SchemaValidationError
from ledger.gateway import JsonFileLedgerGateway
from ledger.service import LedgerService
from models.config import LedgerConfig
from models.market import Quote

EXIT_PERSISTENCE_ERROR = 1
EXIT_VALIDATION_ERROR = 2
EXIT_CONFIG_ERROR = 3


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Apply an AI decision batch to the portfolio ledger.",
    )
    parser.add_argument(
        "--config",
        default=None,
        type=str,
        help="Path to a YAML configuration file (default: read from environment).",
    )
    parser.add_argument(
        "--decisions",
        default=None,
        type=str,
        help="Path to the decision batch JSON file.",
    )
    parser.add_argument(
        "--prices",
        required=True,
        type=str,
        help="Path to a JSON mapping of ticker -> price or quote.",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        type=str,
        help="Ledger directory (overrides the configured data_dir).",
    )
    parser.add_argument(
        "--sweep-stop-losses",
        action="store_true",
        help="Run the stop-loss sweep instead of a decision batch.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO).",
    )
    args = parser.parse_args()
    if not args.sweep_stop_losses and args.decisions is None:
        parser.error("--decisions is required unless --sweep-stop-losses is given")
    return args


def _setup_logging(level: str) -> None:
    """Configure root logger with a clean format."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def load_quotes(path: str | Path) -> dict[str, Quote]:
    """Read a prices file into quotes keyed by ticker."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Expected a JSON object in '{path}', got {type(raw).__name__}.")
    quotes: dict[str, Quote] = {}
    for ticker, value in raw.items():
        if isinstance(value, dict):
            quotes[ticker] = Quote(ticker=ticker, **value)
        else:
            quotes[ticker] = Quote(ticker=ticker, price=float(value))
    return quotes


async def _main() -> int:
    args = _parse_args()
    _setup_logging(args.log_level)

    logger = logging.getLogger(__name__)
    config = LedgerConfig.from_yaml(args.config) if args.config else LedgerConfig.from_env()
    if args.data_dir:
        config = config.model_copy(update={"data_dir": args.data_dir})
    logger.info("Ledger data directory: '%s'", config.data_dir)

    ledger = LedgerService(JsonFileLedgerGateway(config.data_dir), config)
    market_data = StaticPriceProvider(load_quotes(args.prices))
    try:
        executor = select_executor(config, market_data)
    except ValueError as exc:
        logger.error("Refusing to run: %s", exc)
        return EXIT_CONFIG_ERROR
    cycle = TradingCycle(ledger, executor, market_data, config)

    try:
        if args.sweep_stop_losses:
            report = await cycle.sweep_stop_losses()
        else:
            raw_batch = json.loads(Path(args.decisions).read_text(encoding="utf-8"))
            report = await cycle.run(raw_batch)
    except SchemaValidationError as exc:
        logger.error("Decision batch rejected: %s (expected %r, got %r)", exc, exc.expected, exc.actual)
        return EXIT_VALIDATION_ERROR
    except PersistenceError as exc:
        logger.error("Ledger persistence failed: %s", exc)
        return EXIT_PERSISTENCE_ERROR

    print(json.dumps(report.summary(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(_main()))
