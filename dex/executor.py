"""
Bundle executor contract handle.

The executor contract receives WETH, runs the encoded swap calls against
each target in order, checks it ended with more WETH than it started with,
and pays the block producer. This module populates calls to it and asks the
node for gas estimates. Signing stays with the orchestrator's account.
"""

import asyncio
from typing import Any, Dict, List, Mapping

from web3 import Web3
from web3.types import TxParams

from amm_arbitrage.registry import ExecutorRegistry
from amm_arbitrage.utils import get_logger

from .abi import BUNDLE_EXECUTOR_ABI

logger = get_logger(__name__)


class BundleExecutor:
    """
    Handle on one deployed bundle executor contract.

    web3 calls are synchronous, so they run in the default thread pool to
    keep the event loop free.
    """

    def __init__(self, web3: Web3, address: str):
        self.web3 = web3
        self.address = Web3.to_checksum_address(address)
        self.contract = web3.eth.contract(address=self.address, abi=BUNDLE_EXECUTOR_ABI)

    def __repr__(self) -> str:
        return f"BundleExecutor({self.address})"

    async def populate_uniswap_weth(
        self,
        amount_to_first_market: int,
        eth_amount_to_coinbase: int,
        targets: List[str],
        payloads: List[str],
        tx_overrides: Dict[str, Any],
    ) -> TxParams:
        """
        Unsigned ``uniswapWeth`` transaction.

        Fills chainId from the node, and the nonce of ``tx_overrides["from"]``
        when no nonce is given.
        """
        loop = asyncio.get_running_loop()
        overrides = dict(tx_overrides)

        if "from" in overrides and "nonce" not in overrides:
            overrides["nonce"] = await loop.run_in_executor(
                None, self.web3.eth.get_transaction_count, overrides["from"]
            )

        checksum_targets = [Web3.to_checksum_address(t) for t in targets]
        call = self.contract.functions.uniswapWeth(
            amount_to_first_market, eth_amount_to_coinbase, checksum_targets, payloads
        )
        transaction = await loop.run_in_executor(None, call.build_transaction, overrides)
        return dict(transaction)

    async def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        """
        Node gas estimate for the transaction.

        Raises:
            Web3Exception / ContractLogicError: If the call would revert or the RPC fails
        """
        loop = asyncio.get_running_loop()
        estimate = await loop.run_in_executor(None, self.web3.eth.estimate_gas, transaction)
        return int(estimate)


def build_executor_registry(web3: Web3, executors: Mapping[str, str]) -> ExecutorRegistry:
    """Create an ExecutorRegistry from a {token_address: executor_address} mapping."""
    registry = ExecutorRegistry()
    for token_address, executor_address in executors.items():
        registry.register(token_address, BundleExecutor(web3, executor_address))
        logger.info(f"Executor for {token_address}: {executor_address}")
    return registry
