"""
Crossed-market opportunity search.

Pools are priced with a small probe trade in both directions; any pair where
one pool hands out more tokens for the probe than the other needs to pay the
probe back is "crossed". Each crossed pair is then scanned over a fixed table
of trade sizes to pick a volume.

The stepped scan is a coarse approximation of the (assumed unimodal) profit
curve: it walks up the size table until profit drops, probes one midpoint and
stops. It can miss the true maximum; outputs are expected to match this exact
policy, so changes belong in a new VolumeSearchStrategy rather than here.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .constants import PROBE_VOLUME, TEST_VOLUMES
from .interfaces import EthMarket, VolumeSearchStrategy
from .types import CrossedMarketDetails
from .utils import get_logger

logger = get_logger(__name__)


@dataclass
class PricedMarket:
    """A market with its probe quotes for one token against the reference asset."""

    eth_market: EthMarket
    buy_token_price: int  # tokens paid in to receive the probe of reference asset
    sell_token_price: int  # tokens received for the probe of reference asset


def price_markets(
    markets: Iterable[EthMarket],
    token_address: str,
    reference_token: str,
    probe_volume: int = PROBE_VOLUME,
) -> List[PricedMarket]:
    """
    Quote every market with the probe volume in both directions.

    Markets that cannot quote the probe (not enough liquidity) are left out.
    """
    priced = []
    for eth_market in markets:
        try:
            buy_token_price = eth_market.get_tokens_in(
                token_address, reference_token, probe_volume
            )
            sell_token_price = eth_market.get_tokens_out(
                reference_token, token_address, probe_volume
            )
        except (ValueError, ZeroDivisionError) as e:
            logger.debug(f"Skipping {eth_market.market_address}: {e}")
            continue
        priced.append(PricedMarket(eth_market, buy_token_price, sell_token_price))
    return priced


def find_crossed_markets(
    priced_markets: Sequence[PricedMarket],
) -> List[Tuple[EthMarket, EthMarket]]:
    """
    Build (sell_to_market, buy_from_market) pairs whose prices cross.

    A pair crosses when buying tokens on one market with the probe gives more
    tokens than the other market needs to return the probe.
    """
    crossed_markets = []
    for priced_market in priced_markets:
        for pm in priced_markets:
            if pm.sell_token_price > priced_market.buy_token_price:
                crossed_markets.append((priced_market.eth_market, pm.eth_market))
    return crossed_markets


def round_trip_profit(
    buy_from_market: EthMarket,
    sell_to_market: EthMarket,
    token_address: str,
    reference_token: str,
    size: int,
) -> int:
    """Reference asset gained by buying with `size` on one market and selling on the other."""
    tokens_out_from_buying_size = buy_from_market.get_tokens_out(
        reference_token, token_address, size
    )
    proceeds_from_selling_tokens = sell_to_market.get_tokens_out(
        token_address, reference_token, tokens_out_from_buying_size
    )
    return proceeds_from_selling_tokens - size


class SteppedVolumeSearch:
    """
    Walk the size table upward, stop at the first drop, try one midpoint.

    Equal profit counts as "not worse", so later sizes replace earlier ones
    on ties. The midpoint replaces the best only when strictly better.
    """

    def __init__(self, test_volumes: Sequence[int] = TEST_VOLUMES):
        if not test_volumes:
            raise ValueError("test_volumes must not be empty")
        self.test_volumes = list(test_volumes)

    def best_volume(
        self,
        buy_from_market: EthMarket,
        sell_to_market: EthMarket,
        token_address: str,
        reference_token: str,
    ) -> Tuple[int, int]:
        best_volume: Optional[int] = None
        best_profit: Optional[int] = None

        for size in self.test_volumes:
            profit = round_trip_profit(
                buy_from_market, sell_to_market, token_address, reference_token, size
            )
            if best_profit is not None and profit < best_profit:
                # The next size up lost value, meet halfway
                try_size = (size + best_volume) // 2
                try_profit = round_trip_profit(
                    buy_from_market,
                    sell_to_market,
                    token_address,
                    reference_token,
                    try_size,
                )
                if try_profit > best_profit:
                    best_volume, best_profit = try_size, try_profit
                break
            best_volume, best_profit = size, profit

        return best_volume, best_profit


def get_best_crossed_market(
    crossed_markets: Iterable[Tuple[EthMarket, EthMarket]],
    token_address: str,
    reference_token: str,
    strategy: Optional[VolumeSearchStrategy] = None,
) -> Optional[CrossedMarketDetails]:
    """
    Pick the most profitable crossed pair for a token.

    Args:
        crossed_markets: (sell_to_market, buy_from_market) pairs
        token_address: Token being arbitraged
        reference_token: Asset profit is measured in
        strategy: Volume search to run per pair (stepped search by default)

    Returns:
        The best CrossedMarketDetails, or None when there are no crossed pairs.
        No profit threshold is applied; the first pair wins ties.
    """
    strategy = strategy or SteppedVolumeSearch()
    best_crossed_market: Optional[CrossedMarketDetails] = None

    for sell_to_market, buy_from_market in crossed_markets:
        volume, profit = strategy.best_volume(
            buy_from_market, sell_to_market, token_address, reference_token
        )
        if best_crossed_market is None or profit > best_crossed_market.profit:
            best_crossed_market = CrossedMarketDetails(
                profit=profit,
                volume=volume,
                token_address=token_address,
                buy_from_market=buy_from_market,
                sell_to_market=sell_to_market,
            )

    return best_crossed_market
