"""
Arbitrage orchestrator.

Turns crossed markets into executor-contract transactions: encodes both
swap legs, prices the producer reward, bounds gas, signs, and in the batch
path simulates and submits a one-transaction bundle through the relay.

Per candidate the flow is:
    Detected -> BuildFailed | Built -> GasRejected | GasEstimated -> Signed
    -> SimFailed | Simulated -> Submitted
GasRejected, gas-estimate failures and SimFailed move on to the next ranked
candidate; anything else ends the cycle.
"""

import asyncio
from typing import Any, Dict, List, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3

from .constants import (
    GAS_LIMIT_MULTIPLIER,
    MAX_GAS_ESTIMATE,
    MIN_PROFIT,
    PLACEHOLDER_GAS_LIMIT,
    TARGET_BLOCK_OFFSETS,
    WETH_ADDRESS,
)
from .exceptions import (
    GasEstimateFailedError,
    GasEstimateRejectedError,
    NoArbitrageSubmittedError,
    RelayError,
    SimulationRejectedError,
    StaleReservesError,
    TransactionBuildError,
)
from .interfaces import ExecutorHandle, RelayClient, VolumeSearchStrategy
from .metrics import ArbitrageMetrics
from .registry import ExecutorRegistry
from .search import find_crossed_markets, get_best_crossed_market, price_markets
from .types import (
    BlockContext,
    BundleSubmission,
    BundleTransaction,
    CrossedMarketDetails,
    MarketsByToken,
)
from .utils import big_number_to_decimal, format_ether, get_logger, normalize_address

logger = get_logger(__name__)


def miner_reward(profit: int, miner_reward_percentage: int) -> int:
    """
    Share of profit paid to the block producer.

    The percentage is truncated to an integer and must lie in [0, 100].
    """
    percentage = int(miner_reward_percentage)
    if not 0 <= percentage <= 100:
        raise ValueError(
            f"miner_reward_percentage must be between 0 and 100, got {miner_reward_percentage}"
        )
    return profit * percentage // 100


def _markets_for(markets_by_token: MarketsByToken, token_address: str) -> List:
    markets = markets_by_token.get(token_address)
    if markets is None:
        markets = markets_by_token.get(normalize_address(token_address), [])
    return markets


class Arbitrage:
    """
    Coordinates detection, transaction building and bundle submission.

    Owns the signing account, the relay client and the executor lookup.
    Markets are shared references refreshed elsewhere.
    """

    def __init__(
        self,
        executor_wallet: LocalAccount,
        flashbots_provider: RelayClient,
        executors: ExecutorRegistry,
        reference_token: str = WETH_ADDRESS,
        strategy: Optional[VolumeSearchStrategy] = None,
        metrics: Optional[ArbitrageMetrics] = None,
    ):
        self.executor_wallet = executor_wallet
        self.flashbots_provider = flashbots_provider
        self.executors = executors
        self.reference_token = reference_token
        self.strategy = strategy
        self.metrics = metrics

    @staticmethod
    def print_crossed_market(crossed_market: CrossedMarketDetails) -> None:
        buy_tokens = crossed_market.buy_from_market.tokens
        sell_tokens = crossed_market.sell_to_market.tokens
        logger.info(
            f"Profit: {format_ether(crossed_market.profit)} "
            f"Volume: {format_ether(crossed_market.volume)}\n"
            f"{crossed_market.buy_from_market.protocol} "
            f"({crossed_market.buy_from_market.market_address})\n"
            f"  {buy_tokens[0]} => {buy_tokens[1]}\n"
            f"{crossed_market.sell_to_market.protocol} "
            f"({crossed_market.sell_to_market.market_address})\n"
            f"  {sell_tokens[0]} => {sell_tokens[1]}\n"
        )

    # === DETECTION ===

    def evaluate_markets_for_token(
        self,
        token_address: str,
        reference_token: str,
        markets_by_token: MarketsByToken,
        context: Optional[BlockContext] = None,
    ) -> Optional[CrossedMarketDetails]:
        """
        Find the best crossed market for one token.

        Returns:
            The best opportunity when its profit exceeds MIN_PROFIT, else None

        Raises:
            StaleReservesError: If context says reserves predate the latest block
        """
        self._check_context(context)

        priced_markets = price_markets(
            _markets_for(markets_by_token, token_address), token_address, reference_token
        )
        crossed_markets = find_crossed_markets(priced_markets)
        best_crossed_market = get_best_crossed_market(
            crossed_markets, token_address, reference_token, self.strategy
        )
        if best_crossed_market is not None and best_crossed_market.profit > MIN_PROFIT:
            if self.metrics:
                self.metrics.record_opportunities(1)
            return best_crossed_market
        return None

    def evaluate_markets(
        self,
        markets_by_token: MarketsByToken,
        context: Optional[BlockContext] = None,
    ) -> List[CrossedMarketDetails]:
        """Best opportunity per token against the reference token, most profitable first."""
        self._check_context(context)

        best_crossed_markets = []
        for token_address in markets_by_token:
            best_crossed_market = self.evaluate_markets_for_token(
                token_address, self.reference_token, markets_by_token
            )
            if best_crossed_market is not None:
                best_crossed_markets.append(best_crossed_market)

        best_crossed_markets.sort(key=lambda cm: cm.profit, reverse=True)
        return best_crossed_markets

    @staticmethod
    def _check_context(context: Optional[BlockContext]) -> None:
        if context is not None and context.is_stale:
            raise StaleReservesError(
                f"Reserves from block {context.reserves_block} are stale "
                f"(latest block {context.block_number})",
                block_number=context.block_number,
                reserves_block=context.reserves_block,
            )

    # === TRANSACTION BUILDING ===

    async def _build_transaction(
        self,
        best_crossed_market: CrossedMarketDetails,
        miner_reward_percentage: int,
        token_address: str,
        executor: ExecutorHandle,
    ) -> Dict[str, Any]:
        """Encode both legs, populate the executor call and bound its gas."""
        logger.info(
            f"Send this much {token_address} {best_crossed_market.volume} "
            f"get this much profit {best_crossed_market.profit}"
        )
        try:
            buy_calls = await best_crossed_market.buy_from_market.sell_tokens_to_next_market(
                token_address,
                best_crossed_market.volume,
                best_crossed_market.sell_to_market,
            )
            inter = best_crossed_market.buy_from_market.get_tokens_out(
                token_address, best_crossed_market.token_address, best_crossed_market.volume
            )
            sell_call_data = await best_crossed_market.sell_to_market.sell_tokens(
                best_crossed_market.token_address, inter, executor.address
            )

            targets = [*buy_calls.targets, best_crossed_market.sell_to_market.market_address]
            payloads = [*buy_calls.data, sell_call_data]
            logger.debug(f"targets={targets} payloads={payloads}")

            reward = miner_reward(best_crossed_market.profit, miner_reward_percentage)
            transaction = await executor.populate_uniswap_weth(
                best_crossed_market.volume,
                reward,
                targets,
                payloads,
                {
                    "gasPrice": 0,
                    "gas": PLACEHOLDER_GAS_LIMIT,
                    "from": self.executor_wallet.address,
                },
            )
        except Exception as e:
            raise TransactionBuildError(
                f"Failed to build arbitrage call for {best_crossed_market.token_address}: {e}",
                token_address=best_crossed_market.token_address,
            ) from e

        try:
            estimate_gas = await executor.estimate_gas(
                {**transaction, "from": self.executor_wallet.address}
            )
        except Exception as e:
            logger.warning(
                f"Estimate gas failure for {best_crossed_market.token_address} "
                f"(volume={best_crossed_market.volume}, profit={best_crossed_market.profit}): {e}"
            )
            if self.metrics:
                self.metrics.record_gas_failed()
            raise GasEstimateFailedError(
                f"Gas estimation failed: {e}",
                token_address=best_crossed_market.token_address,
            ) from e

        if estimate_gas > MAX_GAS_ESTIMATE:
            logger.info(f"EstimateGas succeeded, but suspiciously large: {estimate_gas}")
            if self.metrics:
                self.metrics.record_gas_rejected()
            raise GasEstimateRejectedError(
                f"Estimated gas suspiciously large: {estimate_gas}",
                gas_estimate=estimate_gas,
                limit=MAX_GAS_ESTIMATE,
                token_address=best_crossed_market.token_address,
            )

        transaction["gas"] = estimate_gas * GAS_LIMIT_MULTIPLIER
        return transaction

    async def get_crossed_market_txn(
        self,
        best_crossed_market: CrossedMarketDetails,
        miner_reward_percentage: int,
        token_address: str,
    ) -> str:
        """
        Build and sign the arbitrage transaction for one opportunity.

        Args:
            best_crossed_market: Opportunity to execute
            miner_reward_percentage: Percent of profit paid to the block producer
            token_address: Input token of the trade, selects the executor contract

        Returns:
            0x-prefixed raw signed transaction

        Raises:
            ExecutorNotConfiguredError: No executor for token_address
            TransactionBuildError: A market could not encode its leg
            GasEstimateFailedError: The node could not estimate gas
            GasEstimateRejectedError: The estimate exceeded MAX_GAS_ESTIMATE
        """
        executor = self.executors.executor_for(token_address)
        transaction = await self._build_transaction(
            best_crossed_market, miner_reward_percentage, token_address, executor
        )
        signed_txn = self.executor_wallet.sign_transaction(transaction)
        if self.metrics:
            self.metrics.record_transaction_signed()
        return Web3.to_hex(signed_txn.raw_transaction)

    # === BUNDLE SUBMISSION ===

    async def take_crossed_markets(
        self,
        best_crossed_markets: List[CrossedMarketDetails],
        block_number: int,
        miner_reward_percentage: int,
    ) -> BundleSubmission:
        """
        Submit the first ranked opportunity that survives gas estimation and simulation.

        Candidates are tried in order and the loop stops at the first
        submitted bundle; the rest are never attempted.

        Raises:
            NoArbitrageSubmittedError: Every candidate was abandoned
            RelayError: The bundle was refused for every target block
        """
        executor = self.executors.executor_for(self.reference_token)

        for best_crossed_market in best_crossed_markets:
            try:
                return await self._submit_bundle(
                    best_crossed_market, block_number, miner_reward_percentage, executor
                )
            except (GasEstimateRejectedError, GasEstimateFailedError) as e:
                logger.info(f"Skipping {best_crossed_market.token_address}: {e}")
            except SimulationRejectedError:
                logger.info(
                    f"Simulation Error on token {best_crossed_market.token_address}, skipping"
                )

        raise NoArbitrageSubmittedError("No arbitrage submitted to relay")

    async def _submit_bundle(
        self,
        best_crossed_market: CrossedMarketDetails,
        block_number: int,
        miner_reward_percentage: int,
        executor: ExecutorHandle,
    ) -> BundleSubmission:
        transaction = await self._build_transaction(
            best_crossed_market, miner_reward_percentage, self.reference_token, executor
        )
        bundled_transactions = [
            BundleTransaction(signer=self.executor_wallet, transaction=transaction)
        ]
        signed_bundle = await self.flashbots_provider.sign_bundle(bundled_transactions)

        simulation = await self.flashbots_provider.simulate(signed_bundle, block_number + 1)
        if simulation.failed:
            if self.metrics:
                self.metrics.record_simulation_failed()
            raise SimulationRejectedError(
                f"Simulation failed: {simulation.error or simulation.first_revert}",
                simulation=simulation,
                token_address=best_crossed_market.token_address,
            )

        logger.info(
            f"Submitting bundle, profit sent to miner: "
            f"{big_number_to_decimal(simulation.coinbase_diff)}, "
            f"effective gas price: "
            f"{big_number_to_decimal(simulation.effective_gas_price, 9)} GWEI"
        )

        target_blocks = tuple(block_number + offset for offset in TARGET_BLOCK_OFFSETS)
        responses = await asyncio.gather(
            *[
                self.flashbots_provider.send_raw_bundle(signed_bundle, target_block_number)
                for target_block_number in target_blocks
            ],
            return_exceptions=True,
        )

        failures = []
        for target_block_number, response in zip(target_blocks, responses):
            if isinstance(response, BaseException):
                logger.warning(
                    f"Bundle submission for block {target_block_number} failed: {response}"
                )
                failures.append(response)
        if len(failures) == len(responses):
            raise RelayError(
                f"Bundle submission failed for blocks {list(target_blocks)}"
            ) from failures[0]

        if self.metrics:
            self.metrics.record_bundle_submitted()

        return BundleSubmission(
            opportunity=best_crossed_market,
            signed_bundle=signed_bundle,
            simulation=simulation,
            target_blocks=target_blocks,
            responses=list(responses),
        )
