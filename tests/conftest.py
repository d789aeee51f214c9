"""
Shared fixtures: V2 pairs with fixed reserves, a recording executor and a
scripted relay, so the orchestrator runs end to end without a node.
"""

from typing import Any, Dict, List, Optional

import pytest
from eth_account import Account
from web3 import Web3

from amm_arbitrage.constants import ETHER, WETH_ADDRESS
from amm_arbitrage.registry import ExecutorRegistry
from amm_arbitrage.types import SimulationResult
from dex.adapters.v2 import UniswappyV2EthPair

TOKEN_A = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
TOKEN_B = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
EXECUTOR_ADDRESS = "0xda0a57b710768ae17941a9fa33f8b720c8bd9ddd"
SEARCHER_KEY = "0x" + "11" * 32
RELAY_KEY = "0x" + "22" * 32


class RecordingExecutor:
    """ExecutorHandle that returns a signable legacy transaction and a fixed gas estimate."""

    def __init__(self, address: str = EXECUTOR_ADDRESS, gas_estimate: Any = 300_000):
        self.address = Web3.to_checksum_address(address)
        self.gas_estimate = gas_estimate
        self.populate_calls: List[Dict[str, Any]] = []
        self.estimate_calls: List[Dict[str, Any]] = []

    async def populate_uniswap_weth(
        self, amount_to_first_market, eth_amount_to_coinbase, targets, payloads, tx_overrides
    ):
        self.populate_calls.append(
            {
                "amount_to_first_market": amount_to_first_market,
                "eth_amount_to_coinbase": eth_amount_to_coinbase,
                "targets": targets,
                "payloads": payloads,
                "tx_overrides": tx_overrides,
            }
        )
        return {
            "to": self.address,
            "data": "0x" + "ab" * 4,
            "value": 0,
            "nonce": len(self.populate_calls) - 1,
            "chainId": 1,
            **tx_overrides,
        }

    async def estimate_gas(self, transaction):
        self.estimate_calls.append(transaction)
        estimate = self.gas_estimate
        if isinstance(estimate, list):
            estimate = estimate.pop(0)
        if isinstance(estimate, Exception):
            raise estimate
        return estimate


class ScriptedRelay:
    """RelayClient whose simulations come from a queue and whose submissions are recorded."""

    def __init__(self, simulations: Optional[List[SimulationResult]] = None, send_errors=None):
        self.simulations = list(simulations or [])
        self.send_errors = dict(send_errors or {})
        self.signed_bundles: List[List[Any]] = []
        self.simulated: List[int] = []
        self.sent: List[int] = []

    async def sign_bundle(self, bundled_transactions):
        self.signed_bundles.append(bundled_transactions)
        return [f"0xsigned{len(self.signed_bundles)}"]

    async def simulate(self, signed_bundle, block_tag):
        self.simulated.append(block_tag)
        if self.simulations:
            return self.simulations.pop(0)
        return SimulationResult(coinbase_diff=10**15, total_gas_used=200_000)

    async def send_raw_bundle(self, signed_bundle, target_block_number):
        self.sent.append(target_block_number)
        error = self.send_errors.get(target_block_number)
        if error is not None:
            raise error
        return {"bundleHash": f"0xhash{target_block_number}"}


def make_pair(
    address: str,
    token: str,
    weth_reserve: int,
    token_reserve: int,
    protocol: str = "uniswap_v2",
) -> UniswappyV2EthPair:
    """WETH/token pair with reserves already loaded."""
    pair = UniswappyV2EthPair(address, [token, WETH_ADDRESS], protocol)
    pair.set_reserves_via_ordered_balances([token_reserve, weth_reserve])
    return pair


@pytest.fixture
def searcher_wallet():
    return Account.from_key(SEARCHER_KEY)


@pytest.fixture
def relay_wallet():
    return Account.from_key(RELAY_KEY)


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def registry(executor):
    return ExecutorRegistry({WETH_ADDRESS: executor})


@pytest.fixture
def crossed_pairs():
    """Two deep pools where TOKEN_A is 1% cheaper on the second one."""
    expensive = make_pair(
        "0x1111111111111111111111111111111111111111",
        TOKEN_A,
        1000 * ETHER,
        1_000_000 * ETHER,
    )
    cheap = make_pair(
        "0x2222222222222222222222222222222222222222",
        TOKEN_A,
        1000 * ETHER,
        1_010_000 * ETHER,
        protocol="sushiswap",
    )
    return expensive, cheap


@pytest.fixture
def shallow_crossed_pairs():
    """Same 1% gap as crossed_pairs, but too shallow to clear the profit floor."""
    expensive = make_pair(
        "0x3333333333333333333333333333333333333333", TOKEN_A, 100 * ETHER, 100_000 * ETHER
    )
    cheap = make_pair(
        "0x4444444444444444444444444444444444444444", TOKEN_A, 100 * ETHER, 101_000 * ETHER
    )
    return expensive, cheap


@pytest.fixture
def markets_by_token(crossed_pairs):
    return {TOKEN_A.lower(): list(crossed_pairs)}
