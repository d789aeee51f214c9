"""
DEX adapter modules for different AMM types.
"""

from .v2 import UniswappyV2EthPair, get_amount_in, get_amount_out, group_markets_by_token

__all__ = ["UniswappyV2EthPair", "get_amount_in", "get_amount_out", "group_markets_by_token"]
