"""
Constants shared by the opportunity search and the orchestrator.

All amounts are integers in the smallest unit of the asset (wei for WETH).
"""

ETHER = 10**18

WETH_ADDRESS = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"

# UniswapFlashQuery helper deployed on mainnet (getReservesByPairs)
UNISWAP_FLASH_QUERY_ADDRESS = "0x5ef1009b9fcd4fec3094a5564047e190d72bd511"

DEFAULT_RELAY_URL = "https://relay.flashbots.net"

# Size used to read a pool's instantaneous price without moving it
PROBE_VOLUME = ETHER // 100

# Candidate trade sizes, ascending
TEST_VOLUMES = [
    ETHER // 100,
    ETHER // 10,
    ETHER // 6,
    ETHER // 4,
    ETHER // 2,
    ETHER,
    ETHER * 2,
    ETHER * 5,
    ETHER * 10,
]

# Opportunities must make strictly more than this to be acted on
MIN_PROFIT = ETHER // 1000

# Gas
PLACEHOLDER_GAS_LIMIT = 1_000_000
MAX_GAS_ESTIMATE = 1_400_000
GAS_LIMIT_MULTIPLIER = 2

# Bundles are offered for the next two blocks
TARGET_BLOCK_OFFSETS = (1, 2)

# Uniswap V2 fee: 0.3% taken from the input amount
V2_FEE_NUMERATOR = 997
V2_FEE_DENOMINATOR = 1000

BPS_DENOMINATOR = 10_000
