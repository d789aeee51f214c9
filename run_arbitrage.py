#!/usr/bin/env python3
"""
AMM crossed-market arbitrage CLI.

Loads the configured pairs, watches the chain head, and serves the swap
intent WebSocket. With --batch every new block also runs the bundle
submission path.

Usage:
    python3 run_arbitrage.py
    python3 run_arbitrage.py --config configs/arbitrage.yaml
    python3 run_arbitrage.py --config configs/arbitrage.yaml --batch --debug
"""

import argparse
import asyncio
import sys

import uvicorn
from dotenv import load_dotenv
from eth_account import Account
from web3 import Web3

import logging_config
from amm_arbitrage.arbitrage import Arbitrage
from amm_arbitrage.metrics import ArbitrageMetrics
from amm_arbitrage.utils import get_logger
from amm_arbitrage.version import get_version
from dex.adapters.v2 import UniswappyV2EthPair, group_markets_by_token, load_markets
from dex.config import ArbitrageConfig, ConfigError, load_config
from dex.executor import build_executor_registry
from dex.relay import FlashbotsRelay
from dex.runner import ArbitrageRunner
from web_server import create_app

logger = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="AMM crossed-market arbitrage engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config
  python3 run_arbitrage.py

  # Submit bundles on every block as well
  python3 run_arbitrage.py --config configs/arbitrage.yaml --batch
        """,
    )

    parser.add_argument(
        "--config",
        default="configs/arbitrage.yaml",
        help="Path to config YAML file (default: configs/arbitrage.yaml)",
    )
    parser.add_argument(
        "--batch",
        action="store_true",
        help="Evaluate all tokens and submit a bundle on every block",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")

    return parser.parse_args()


async def run(config: ArbitrageConfig) -> None:
    """Wire the engine together and run until interrupted."""
    logger.info(f"Starting amm-arbitrage {get_version()}")
    web3 = Web3(
        Web3.HTTPProvider(config.rpc_url, request_kwargs={"timeout": config.rpc_timeout_sec})
    )
    arbitrage_signing_wallet = Account.from_key(config.private_key)
    flashbots_relay_signing_wallet = Account.from_key(config.flashbots_relay_signing_key)

    logger.info(f"Searcher wallet: {arbitrage_signing_wallet.address}")
    logger.info(f"Relay identity: {flashbots_relay_signing_wallet.address}")
    logger.info(f"BUNDLE_EXECUTOR_ADDRESS: {config.bundle_executor_address}")

    metrics = ArbitrageMetrics() if config.metrics_port is not None else None
    relay = FlashbotsRelay(
        flashbots_relay_signing_wallet,
        relay_url=config.relay_url,
        timeout_sec=config.relay_timeout_sec,
    )
    executors = build_executor_registry(web3, config.executors)
    arbitrage = Arbitrage(
        arbitrage_signing_wallet,
        relay,
        executors,
        reference_token=config.reference_token,
        metrics=metrics,
    )

    all_market_pairs = load_markets(config.pairs)
    markets_by_token = group_markets_by_token(all_market_pairs, config.reference_token)

    async def refresh_reserves() -> None:
        await UniswappyV2EthPair.update_reserves(
            web3, all_market_pairs, config.flash_query_address
        )

    runner = ArbitrageRunner(
        arbitrage,
        markets_by_token,
        all_market_pairs,
        refresh_reserves,
        config.miner_reward_percentage,
        batch_on_block=config.batch_on_block,
        metrics=metrics,
    )

    server = uvicorn.Server(
        uvicorn.Config(create_app(runner), host=config.host, port=config.port, log_config=None)
    )
    stop_event = asyncio.Event()

    if metrics is not None:
        await metrics.start_server(port=config.metrics_port)

    watcher = asyncio.create_task(runner.watch_blocks(web3, config.poll_sec, stop_event))
    try:
        await server.serve()
    finally:
        stop_event.set()
        await watcher
        await relay.close()
        if metrics is not None:
            await metrics.stop_server()


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args()
    load_dotenv()

    if args.debug:
        logging_config.setup_debug()
    else:
        logging_config.setup()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Config error: {e}")
        return 1

    if args.batch:
        config.batch_on_block = True

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
