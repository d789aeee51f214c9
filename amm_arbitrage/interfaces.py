"""
Capability interfaces the engine consumes.

The orchestrator and search only talk to pools, the relay and the executor
contract through these protocols, so concrete implementations (and test
fakes) can be swapped freely.
"""

from typing import Any, Dict, List, Protocol, Tuple, runtime_checkable

from .types import BundleTransaction, MultipleCallData, SimulationResult


@runtime_checkable
class EthMarket(Protocol):
    """A liquidity pool trading two tokens."""

    market_address: str
    protocol: str
    tokens: List[str]

    def get_tokens_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        """Amount of token_out received for selling amount_in of token_in."""
        ...

    def get_tokens_in(self, token_in: str, token_out: str, amount_out: int) -> int:
        """Amount of token_in needed to receive amount_out of token_out."""
        ...

    async def sell_tokens_to_next_market(
        self, token_in: str, amount_in: int, eth_market: "EthMarket"
    ) -> MultipleCallData:
        """Calls that sell amount_in of token_in with the output sent to eth_market."""
        ...

    async def sell_tokens(self, token_in: str, amount_in: int, recipient: str) -> str:
        """Call data that sells amount_in of token_in with the output sent to recipient."""
        ...

    def receive_directly(self, token_address: str) -> bool:
        """Whether the pool can take token_address as input without a transfer step."""
        ...

    def simulate_swap(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        amount_out: int,
        slippage: int,
    ) -> bool:
        """Whether a swap intent would fill against the current reserves."""
        ...


@runtime_checkable
class RelayClient(Protocol):
    """Private bundle relay."""

    async def sign_bundle(
        self, bundled_transactions: List[BundleTransaction]
    ) -> List[str]:
        """Sign every transaction of a bundle, returning raw hex transactions."""
        ...

    async def simulate(
        self, signed_bundle: List[str], block_tag: int
    ) -> SimulationResult:
        """Simulate a signed bundle on top of the given block."""
        ...

    async def send_raw_bundle(
        self, signed_bundle: List[str], target_block_number: int
    ) -> Dict[str, Any]:
        """Submit a signed bundle for inclusion in target_block_number."""
        ...


@runtime_checkable
class ExecutorHandle(Protocol):
    """On-chain bundle executor contract for one input token."""

    address: str

    async def populate_uniswap_weth(
        self,
        amount_to_first_market: int,
        eth_amount_to_coinbase: int,
        targets: List[str],
        payloads: List[str],
        tx_overrides: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Unsigned transaction calling the executor's arbitrage entry point."""
        ...

    async def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        """Gas units the node expects the transaction to use."""
        ...


@runtime_checkable
class VolumeSearchStrategy(Protocol):
    """Chooses the trade size for one crossed pair of pools."""

    def best_volume(
        self,
        buy_from_market: EthMarket,
        sell_to_market: EthMarket,
        token_address: str,
        reference_token: str,
    ) -> Tuple[int, int]:
        """Return (volume, profit) for the pair."""
        ...
