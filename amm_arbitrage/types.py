"""
Core data types for crossed-market arbitrage.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from .interfaces import EthMarket


MarketsByToken = Dict[str, List["EthMarket"]]


@dataclass
class CrossedMarketDetails:
    """
    A detected price cross between two pools for one token.

    Attributes:
        profit: Reference-asset profit of the round trip (wei)
        volume: Reference-asset amount sent into the buy-side pool (wei)
        token_address: Token bought on one pool and sold on the other
        buy_from_market: Pool the token is bought from
        sell_to_market: Pool the token is sold back to
    """

    profit: int
    volume: int
    token_address: str
    buy_from_market: "EthMarket"
    sell_to_market: "EthMarket"


@dataclass
class SwapToken:
    """
    A swap intent observed outside the engine.

    Attributes:
        id: Caller-assigned identifier, echoed back in replies
        token_in: Token the swapper sells
        amount_in: Amount of token_in (smallest unit)
        token_out: Token the swapper buys
        amount_out: Amount of token_out the swapper expects
        market: Address of the pool the swap goes through
        slippage: Tolerated slippage in basis points
    """

    id: int
    token_in: str
    amount_in: int
    token_out: str
    amount_out: int
    market: str
    slippage: int


@dataclass
class MultipleCallData:
    """Call targets and payloads produced by a market, in execution order."""

    targets: List[str]
    data: List[str]


@dataclass
class BundleTransaction:
    """A transaction and the account that signs it inside a bundle."""

    signer: "LocalAccount"
    transaction: Dict[str, Any]


@dataclass
class SimulationResult:
    """
    Relay simulation outcome for a signed bundle.

    Attributes:
        coinbase_diff: Wei paid to the block producer by the bundle
        total_gas_used: Gas used by all bundle transactions
        results: Per-transaction results as returned by the relay
        error: Top-level error message, if the simulation failed outright
        first_revert: First per-transaction result that reverted or errored
        bundle_hash: Bundle hash reported by the relay
    """

    coinbase_diff: int = 0
    total_gas_used: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    first_revert: Optional[Dict[str, Any]] = None
    bundle_hash: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None or self.first_revert is not None

    @property
    def effective_gas_price(self) -> int:
        """Wei paid to the producer per unit of gas."""
        if self.total_gas_used == 0:
            return 0
        return self.coinbase_diff // self.total_gas_used


@dataclass
class BundleSubmission:
    """A bundle that passed simulation and was sent to the relay."""

    opportunity: CrossedMarketDetails
    signed_bundle: List[str]
    simulation: SimulationResult
    target_blocks: Tuple[int, ...]
    responses: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class BlockContext:
    """
    Chain position a detection call runs against.

    Attributes:
        block_number: Latest block seen on chain
        reserves_block: Block the reserve snapshot was taken at
    """

    block_number: Optional[int]
    reserves_block: Optional[int]

    @property
    def is_stale(self) -> bool:
        return self.block_number is not None and self.reserves_block != self.block_number
