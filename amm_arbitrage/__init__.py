"""
AMM Crossed-Market Arbitrage Engine.

Detects price crosses between constant-product pools trading the same token,
sizes the round trip, and executes it atomically through a bundle executor
contract submitted privately to a Flashbots-style relay.
"""

PROJECT_NAME = "amm-arbitrage"
VERSION = "0.3.0"

from amm_arbitrage.arbitrage import Arbitrage, miner_reward
from amm_arbitrage.registry import ExecutorRegistry
from amm_arbitrage.search import (
    SteppedVolumeSearch,
    find_crossed_markets,
    get_best_crossed_market,
    price_markets,
)
from amm_arbitrage.types import (
    BlockContext,
    BundleSubmission,
    BundleTransaction,
    CrossedMarketDetails,
    MarketsByToken,
    MultipleCallData,
    SimulationResult,
    SwapToken,
)

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "Arbitrage",
    "miner_reward",
    "ExecutorRegistry",
    "SteppedVolumeSearch",
    "find_crossed_markets",
    "get_best_crossed_market",
    "price_markets",
    "BlockContext",
    "BundleSubmission",
    "BundleTransaction",
    "CrossedMarketDetails",
    "MarketsByToken",
    "MultipleCallData",
    "SimulationResult",
    "SwapToken",
]
