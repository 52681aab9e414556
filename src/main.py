"""CLI entrypoint for the CEX/DEX arbitrage detector."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional

from chain.client import ChainClient
from chain.pool_reader import UniswapV3PoolReader
from config import get_env, load_settings
from core.base_types import Address, to_decimal
from core.serializer import CanonicalSerializer
from exchange.client import ExchangeClient
from exchange.orderbook import BookDepth
from exchange.orderbook_ws import DepthStream
from pricing.pool_state import PoolState
from runner import ArbitrageRunner, poll_books
from strategy.evaluator import ArbitrageConfig, ArbitrageEvaluator
from strategy.fees import GasCostModel, bps_to_rate

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CEX/DEX arbitrage detector")
    parser.add_argument(
        "--log-level", default=None, help="Overrides LOG_LEVEL (default INFO)"
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run the live detection loop (env config)")

    evaluate = subparsers.add_parser(
        "evaluate", help="Evaluate one tick from JSON pool and book snapshots"
    )
    evaluate.add_argument("--pool", required=True, help="Path to pool JSON file")
    evaluate.add_argument("--book", required=True, help="Path to book JSON file")
    evaluate.add_argument("--gas-gwei", default="0", help="Gas price in gwei")
    evaluate.add_argument("--gas-units", type=int, default=350_000)
    evaluate.add_argument("--gas-multiplier", default="1.2")
    evaluate.add_argument("--min-pnl", default="0")
    evaluate.add_argument("--dex-fee-bps", default="30")
    evaluate.add_argument("--cex-fee-bps", default="10")
    evaluate.add_argument("--book-levels", type=int, default=1)

    parser.set_defaults(command="run")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Entrypoint for the ``arb-detector`` script."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    try:
        if args.command == "evaluate":
            for line in evaluate_files(args):
                print(line)
            return

        asyncio.run(_run_live())
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("stopped")


def evaluate_files(args: argparse.Namespace) -> list[str]:
    """One offline tick; returns one canonical JSON line per opportunity."""
    pool = PoolState.from_dict(_load_json_object(args.pool))
    book_data = _load_json_object(args.book)
    book = BookDepth.from_levels(
        str(book_data.get("symbol", "ETH/USDC")),
        book_data.get("bids") or [],
        book_data.get("asks") or [],
    )
    base, _, quote = book.symbol.partition("/")
    config = ArbitrageConfig(
        min_pnl=to_decimal(args.min_pnl, "min_pnl"),
        dex_fee_rate=bps_to_rate(args.dex_fee_bps),
        cex_fee_rate=bps_to_rate(args.cex_fee_bps),
        base_symbol=base,
        quote_symbol=quote or "USD",
        book_levels=args.book_levels,
    )
    gas_model = GasCostModel(
        args.gas_units, to_decimal(args.gas_multiplier, "gas_multiplier")
    )
    gas_cost = gas_model.cost(args.gas_gwei, pool.price)

    lines = []
    for opp in ArbitrageEvaluator(config).evaluate(pool, book, gas_cost):
        payload = {**opp.to_dict(), "fingerprint": opp.fingerprint}
        lines.append(CanonicalSerializer.serialize(payload).decode("utf-8"))
    return lines


async def _run_live() -> None:
    settings = load_settings()
    chain = ChainClient(list(settings.rpc_urls))
    logger.info("rpc connected at block %d", chain.get_block_number())
    reader = UniswapV3PoolReader(
        chain,
        Address.from_string(settings.pool_address),
        settings.token0_decimals,
        settings.token1_decimals,
        segment_depth=settings.segment_depth,
    )

    if settings.dex_fee_bps is None:
        dex_fee_rate = reader.read_fee_rate()
        logger.info("using pool fee tier %s", dex_fee_rate)
    else:
        dex_fee_rate = bps_to_rate(settings.dex_fee_bps)

    config = ArbitrageConfig(
        min_pnl=settings.min_pnl,
        dex_fee_rate=dex_fee_rate,
        cex_fee_rate=bps_to_rate(settings.cex_fee_bps),
        base_symbol=settings.base_symbol,
        quote_symbol=settings.quote_symbol,
        book_levels=settings.book_levels,
    )

    if settings.cex_source == "rest":
        exchange = ExchangeClient({"enableRateLimit": True})

        def book_feed():
            return poll_books(
                lambda: exchange.fetch_book_depth(settings.cex_symbol),
                settings.tick_interval,
            )

    else:
        stream = DepthStream(settings.cex_symbol, settings.cex_ws_url)
        book_feed = stream.stream

    runner = ArbitrageRunner(
        evaluator=ArbitrageEvaluator(config),
        gas_model=GasCostModel(settings.gas_units, settings.gas_multiplier),
        pool_source=reader.fetch_state,
        gas_source=chain.gas_price_gwei,
        book_feed=book_feed,
        tick_interval=settings.tick_interval,
        pool_refresh_interval=settings.pool_refresh_interval,
        gas_refresh_interval=settings.gas_refresh_interval,
    )
    logger.info(
        "watching pool %s vs %s (%s feed)",
        settings.pool_address,
        settings.cex_symbol,
        settings.cex_source,
    )
    await runner.run()


def _configure_logging(level: Optional[str]) -> None:
    if level is None:
        level = get_env("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=(level or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_json_value(path: str) -> object:
    try:
        payload = Path(path).read_text(encoding="utf-8")
        data = json.loads(payload, parse_float=Decimal)
    except FileNotFoundError as exc:
        raise ValueError(f"JSON file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}") from exc
    return data


def _load_json_object(path: str) -> dict:
    data = _load_json_value(path)
    if not isinstance(data, dict):
        raise ValueError(f"JSON in {path} must be an object")
    return data


if __name__ == "__main__":
    main()
