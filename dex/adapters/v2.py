"""
Uniswap V2 style adapter for constant-product AMM pools.

Quotes use the pair contract's own integer math (0.3% fee taken from the
input, amounts rounded the way the contract rounds) so a quoted amount is
exactly what the swap would pay against the cached reserves.
"""

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Sequence

from web3 import Web3

from amm_arbitrage.constants import (
    BPS_DENOMINATOR,
    V2_FEE_DENOMINATOR,
    V2_FEE_NUMERATOR,
)
from amm_arbitrage.interfaces import EthMarket
from amm_arbitrage.types import MarketsByToken, MultipleCallData
from amm_arbitrage.utils import get_logger, normalize_address, same_address

from ..abi import UNISWAP_QUERY_ABI, UNISWAP_V2_PAIR_ABI

logger = get_logger(__name__)

# Offline encoder for pair calls; never talks to a node
_PAIR_ENCODER = Web3().eth.contract(abi=UNISWAP_V2_PAIR_ABI)


def get_amount_out(reserve_in: int, reserve_out: int, amount_in: int) -> int:
    """
    Output amount for a V2 swap of amount_in.

    Formula (fee embedded, floor division as on-chain):
        amountInWithFee = amountIn * 997
        amountOut = amountInWithFee * reserveOut / (reserveIn * 1000 + amountInWithFee)

    Empty pools and non-positive inputs quote zero.
    """
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    amount_in_with_fee = amount_in * V2_FEE_NUMERATOR
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * V2_FEE_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def get_amount_in(reserve_in: int, reserve_out: int, amount_out: int) -> int:
    """
    Input amount needed to receive amount_out from a V2 swap.

    Raises:
        ValueError: If the pool does not hold more than amount_out
    """
    if amount_out >= reserve_out:
        raise ValueError(
            f"Insufficient liquidity: amount_out {amount_out} >= reserve {reserve_out}"
        )
    numerator = reserve_in * amount_out * V2_FEE_DENOMINATOR
    denominator = (reserve_out - amount_out) * V2_FEE_NUMERATOR
    return numerator // denominator + 1


class UniswappyV2EthPair:
    """
    A Uniswap V2 compatible pair (Uniswap, Sushiswap, ...) with cached reserves.

    Attributes:
        market_address: Pair contract address
        tokens: [token0, token1] in the pair's own order
        protocol: Name of the DEX the pair belongs to
    """

    def __init__(self, market_address: str, tokens: Sequence[str], protocol: str):
        if len(tokens) != 2:
            raise ValueError(f"A V2 pair trades exactly two tokens, got {len(tokens)}")
        self.market_address = market_address
        self.tokens = list(tokens)
        self.protocol = protocol
        self._token_balances: Dict[str, int] = {normalize_address(t): 0 for t in tokens}

    def __repr__(self) -> str:
        return (
            f"UniswappyV2EthPair({self.protocol} {self.market_address} "
            f"{self.tokens[0]}/{self.tokens[1]})"
        )

    # === RESERVES ===

    def receive_directly(self, token_address: str) -> bool:
        return normalize_address(token_address) in self._token_balances

    def get_balance(self, token_address: str) -> int:
        key = normalize_address(token_address)
        if key not in self._token_balances:
            raise ValueError(f"Bad token: {token_address}")
        return self._token_balances[key]

    def set_reserves_via_ordered_balances(self, balances: Sequence[int]) -> None:
        self.set_reserves_via_matching_array(self.tokens, balances)

    def set_reserves_via_matching_array(
        self, tokens: Sequence[str], balances: Sequence[int]
    ) -> None:
        for token, balance in zip(tokens, balances):
            self._token_balances[normalize_address(token)] = int(balance)

    # === QUOTES ===

    def get_tokens_in(self, token_in: str, token_out: str, amount_out: int) -> int:
        reserve_in = self.get_balance(token_in)
        reserve_out = self.get_balance(token_out)
        return get_amount_in(reserve_in, reserve_out, amount_out)

    def get_tokens_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        reserve_in = self.get_balance(token_in)
        reserve_out = self.get_balance(token_out)
        return get_amount_out(reserve_in, reserve_out, amount_in)

    def simulate_swap(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        amount_out: int,
        slippage: int,
    ) -> bool:
        """
        Check that a swap intent would fill against the cached reserves.

        The intent fills when the pool pays at least amount_out reduced by
        slippage (basis points). Reserves are left untouched.
        """
        if same_address(token_in, token_out):
            return False
        if not (self.receive_directly(token_in) and self.receive_directly(token_out)):
            return False

        slippage = min(max(int(slippage), 0), BPS_DENOMINATOR)
        expected_out = self.get_tokens_out(token_in, token_out, amount_in)
        min_out = amount_out * (BPS_DENOMINATOR - slippage) // BPS_DENOMINATOR
        return expected_out >= min_out

    # === CALL ENCODING ===

    async def sell_tokens_to_next_market(
        self, token_in: str, amount_in: int, eth_market: EthMarket
    ) -> MultipleCallData:
        """Swap on this pair with the output paid straight into the next pair."""
        exchange_call = await self.sell_tokens(token_in, amount_in, eth_market.market_address)
        return MultipleCallData(targets=[self.market_address], data=[exchange_call])

    async def sell_tokens(self, token_in: str, amount_in: int, recipient: str) -> str:
        """Encode ``swap(amount0Out, amount1Out, recipient, "")`` for selling amount_in."""
        amount0_out = 0
        amount1_out = 0
        if same_address(token_in, self.tokens[0]):
            amount1_out = self.get_tokens_out(token_in, self.tokens[1], amount_in)
        elif same_address(token_in, self.tokens[1]):
            amount0_out = self.get_tokens_out(token_in, self.tokens[0], amount_in)
        else:
            raise ValueError(f"Bad token input address: {token_in}")

        return _PAIR_ENCODER.encode_abi(
            "swap",
            args=[amount0_out, amount1_out, Web3.to_checksum_address(recipient), b""],
        )

    # === CHAIN STATE ===

    @staticmethod
    async def update_reserves(
        web3: Web3,
        all_market_pairs: Sequence["UniswappyV2EthPair"],
        flash_query_address: Optional[str] = None,
        batch_size: int = 1000,
    ) -> None:
        """
        Refresh cached reserves of every pair.

        Uses the UniswapFlashQuery helper (one call per batch) when its
        address is given, otherwise one getReserves call per pair. The
        synchronous web3 calls run in the default thread pool.

        Raises:
            Exception: Whatever the RPC layer raised; reserves may then be
                partially refreshed and must not be trusted for this block.
        """
        loop = asyncio.get_running_loop()

        if flash_query_address:
            query = web3.eth.contract(
                address=Web3.to_checksum_address(flash_query_address),
                abi=UNISWAP_QUERY_ABI,
            )
            for start in range(0, len(all_market_pairs), batch_size):
                batch = all_market_pairs[start : start + batch_size]
                pair_addresses = [Web3.to_checksum_address(m.market_address) for m in batch]
                reserves = await loop.run_in_executor(
                    None, query.functions.getReservesByPairs(pair_addresses).call
                )
                for market, market_reserves in zip(batch, reserves):
                    market.set_reserves_via_ordered_balances(
                        [market_reserves[0], market_reserves[1]]
                    )
            return

        async def fetch_one(market: "UniswappyV2EthPair") -> None:
            pair = web3.eth.contract(
                address=Web3.to_checksum_address(market.market_address),
                abi=UNISWAP_V2_PAIR_ABI,
            )
            reserves = await loop.run_in_executor(None, pair.functions.getReserves().call)
            market.set_reserves_via_ordered_balances([reserves[0], reserves[1]])

        await asyncio.gather(*[fetch_one(market) for market in all_market_pairs])


def load_markets(pair_configs: Iterable[Dict[str, Any]]) -> List[UniswappyV2EthPair]:
    """Create pairs from config entries with address, token0, token1 and protocol."""
    return [
        UniswappyV2EthPair(
            pair["address"],
            [pair["token0"], pair["token1"]],
            pair.get("protocol", "uniswap_v2"),
        )
        for pair in pair_configs
    ]


def group_markets_by_token(
    all_market_pairs: Iterable[UniswappyV2EthPair], reference_token: str
) -> MarketsByToken:
    """
    Group pairs trading against reference_token by their other token.

    Pairs without the reference token are ignored, and tokens listed on a
    single pair are dropped since they cannot cross. Keys are lower-cased.
    """
    grouped: Dict[str, List[UniswappyV2EthPair]] = {}
    for market in all_market_pairs:
        if same_address(market.tokens[0], reference_token):
            token_address = market.tokens[1]
        elif same_address(market.tokens[1], reference_token):
            token_address = market.tokens[0]
        else:
            continue
        grouped.setdefault(normalize_address(token_address), []).append(market)

    markets_by_token = {
        token_address: markets
        for token_address, markets in grouped.items()
        if len(markets) > 1
    }
    logger.info(
        f"Grouped {sum(len(m) for m in markets_by_token.values())} pairs "
        f"into {len(markets_by_token)} tokens"
    )
    return markets_by_token
