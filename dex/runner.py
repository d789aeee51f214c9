"""
Per-block arbitrage pipeline.

Tracks the chain head, keeps pool reserves at most one refresh behind it,
answers swap intents from the ingestion server with signed arbitrage
transactions, and optionally runs the batch submission path on every block.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from web3 import Web3

from amm_arbitrage.arbitrage import Arbitrage
from amm_arbitrage.exceptions import NoArbitrageError, NoArbitrageSubmittedError
from amm_arbitrage.interfaces import EthMarket
from amm_arbitrage.metrics import ArbitrageMetrics
from amm_arbitrage.types import BlockContext, BundleSubmission, MarketsByToken, SwapToken
from amm_arbitrage.utils import get_logger, normalize_address, same_address

logger = get_logger(__name__)

# Refreshes per call when new heads keep landing mid-refresh
MAX_REFRESH_ATTEMPTS = 3


class BlockTracker:
    """Latest block seen and the block the reserve snapshot belongs to."""

    def __init__(self):
        self.latest_block: Optional[int] = None
        self.last_refreshed_block: Optional[int] = None
        self._refreshed = False

    def observe_block(self, block_number: int) -> bool:
        """Record a head; returns False for a block at or below the latest one."""
        if self.latest_block is not None and block_number <= self.latest_block:
            return False
        self.latest_block = block_number
        return True

    def mark_refreshed(self, block_number: Optional[int]) -> None:
        self.last_refreshed_block = block_number
        self._refreshed = True

    @property
    def needs_refresh(self) -> bool:
        return not self._refreshed or self.last_refreshed_block != self.latest_block

    def context(self) -> BlockContext:
        return BlockContext(
            block_number=self.latest_block, reserves_block=self.last_refreshed_block
        )


class ArbitrageRunner:
    """
    Drives an Arbitrage instance from block and swap-intent events.

    Args:
        arbitrage: Orchestrator that evaluates and executes opportunities
        markets_by_token: Markets grouped by non-reference token
        all_market_pairs: Every market whose reserves are refreshed
        refresh_reserves: Coroutine factory that refreshes all reserves
        miner_reward_percentage: Percent of profit paid to the block producer
        batch_on_block: Evaluate all tokens and submit a bundle on each block
        metrics: Optional metrics sink
    """

    def __init__(
        self,
        arbitrage: Arbitrage,
        markets_by_token: MarketsByToken,
        all_market_pairs: List[EthMarket],
        refresh_reserves: Callable[[], Awaitable[None]],
        miner_reward_percentage: int,
        batch_on_block: bool = False,
        metrics: Optional[ArbitrageMetrics] = None,
    ):
        self.arbitrage = arbitrage
        self.markets_by_token = markets_by_token
        self.all_market_pairs = all_market_pairs
        self.refresh_reserves = refresh_reserves
        self.miner_reward_percentage = miner_reward_percentage
        self.batch_on_block = batch_on_block
        self.metrics = metrics
        self.tracker = BlockTracker()
        self._refresh_lock = asyncio.Lock()

    @property
    def reference_token(self) -> str:
        return self.arbitrage.reference_token

    async def ensure_fresh_reserves(self) -> BlockContext:
        """
        Refresh reserves unless they already belong to the latest block.

        A head that arrives while the node is being read triggers another
        refresh, up to MAX_REFRESH_ATTEMPTS in total. A context that is still
        stale after that is returned as is and rejected by detection.
        """
        async with self._refresh_lock:
            attempts = 0
            while self.tracker.needs_refresh and attempts < MAX_REFRESH_ATTEMPTS:
                block_number = self.tracker.latest_block
                await self.refresh_reserves()
                self.tracker.mark_refreshed(block_number)
                attempts += 1
                logger.debug(
                    f"Refreshed reserves of {len(self.all_market_pairs)} markets "
                    f"at block {block_number}"
                )
        return self.tracker.context()

    async def on_block(self, block_number: int) -> Optional[BundleSubmission]:
        """
        Handle a new chain head.

        In batch mode, refreshes reserves, ranks every token's best crossed
        market and submits the first one that survives simulation.
        """
        if not self.tracker.observe_block(block_number):
            return None

        logger.info(f"Block received: {block_number}")
        if self.metrics:
            self.metrics.set_latest_block(block_number)

        if not self.batch_on_block:
            return None

        context = await self.ensure_fresh_reserves()
        best_crossed_markets = self.arbitrage.evaluate_markets(self.markets_by_token, context)
        if not best_crossed_markets:
            logger.info("No crossed markets")
            return None

        for crossed_market in best_crossed_markets:
            Arbitrage.print_crossed_market(crossed_market)

        try:
            return await self.arbitrage.take_crossed_markets(
                best_crossed_markets, block_number, self.miner_reward_percentage
            )
        except NoArbitrageSubmittedError as e:
            logger.info(f"Block {block_number}: {e}")
            return None

    def simulate_market_swap(self, token_address: str, swap: SwapToken) -> bool:
        """Run the intent against the market it names, if that market trades token_address."""
        markets = self.markets_by_token.get(normalize_address(token_address))
        if not markets:
            return False

        for market in markets:
            if same_address(market.market_address, swap.market):
                return market.simulate_swap(
                    swap.token_in, swap.token_out, swap.amount_in, swap.amount_out, swap.slippage
                )
        return False

    async def check_arbitrage(self, swap: SwapToken) -> str:
        """
        Signed back-run transaction for a swap intent.

        Only intents trading a token against the reference token, through a
        known market, and passing local simulation are considered.

        Raises:
            NoArbitrageError: The intent leaves no profitable crossed market
        """
        context = await self.ensure_fresh_reserves()

        if same_address(swap.token_out, self.reference_token):
            token_address = swap.token_in
        elif same_address(swap.token_in, self.reference_token):
            token_address = swap.token_out
        else:
            raise NoArbitrageError("no arbitrage")

        if not self.simulate_market_swap(token_address, swap):
            raise NoArbitrageError("no arbitrage")

        best_crossed_market = self.arbitrage.evaluate_markets_for_token(
            token_address, self.reference_token, self.markets_by_token, context
        )
        if best_crossed_market is None:
            raise NoArbitrageError("no arbitrage")

        Arbitrage.print_crossed_market(best_crossed_market)
        return await self.arbitrage.get_crossed_market_txn(
            best_crossed_market, self.miner_reward_percentage, self.reference_token
        )

    async def watch_blocks(
        self,
        web3: Web3,
        poll_sec: float,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Poll the node head and run on_block for each new block until stop_event is set."""
        loop = asyncio.get_running_loop()

        while stop_event is None or not stop_event.is_set():
            try:
                block_number = await loop.run_in_executor(None, lambda: web3.eth.block_number)
            except Exception as e:
                logger.error(f"Failed to poll block number: {e}")
            else:
                try:
                    await self.on_block(block_number)
                except Exception as e:
                    logger.error(f"Block {block_number} pipeline failed: {e}", exc_info=True)

            if stop_event is None:
                await asyncio.sleep(poll_sec)
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=poll_sec)
            except asyncio.TimeoutError:
                pass
