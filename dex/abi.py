"""
Minimal ABIs for the contracts the engine calls.
"""

# Uniswap V2 style pair
UNISWAP_V2_PAIR_ABI = [
    {
        "constant": True,
        "inputs": [],
        "name": "getReserves",
        "outputs": [
            {"name": "reserve0", "type": "uint112"},
            {"name": "reserve1", "type": "uint112"},
            {"name": "blockTimestampLast", "type": "uint32"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "token0",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "token1",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "amount0Out", "type": "uint256"},
            {"name": "amount1Out", "type": "uint256"},
            {"name": "to", "type": "address"},
            {"name": "data", "type": "bytes"},
        ],
        "name": "swap",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

# UniswapFlashQuery helper: reserves of many pairs in one call
UNISWAP_QUERY_ABI = [
    {
        "inputs": [
            {"internalType": "contract IUniswapV2Pair[]", "name": "_pairs", "type": "address[]"}
        ],
        "name": "getReservesByPairs",
        "outputs": [{"internalType": "uint256[3][]", "name": "", "type": "uint256[3][]"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Bundle executor: runs the swap calls and pays the block producer
BUNDLE_EXECUTOR_ABI = [
    {
        "inputs": [
            {"internalType": "uint256", "name": "_wethAmountToFirstMarket", "type": "uint256"},
            {"internalType": "uint256", "name": "_ethAmountToCoinbase", "type": "uint256"},
            {"internalType": "address[]", "name": "_targets", "type": "address[]"},
            {"internalType": "bytes[]", "name": "_payloads", "type": "bytes[]"},
        ],
        "name": "uniswapWeth",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address payable", "name": "_to", "type": "address"},
            {"internalType": "uint256", "name": "_value", "type": "uint256"},
            {"internalType": "bytes", "name": "_data", "type": "bytes"},
        ],
        "name": "call",
        "outputs": [{"internalType": "bytes", "name": "", "type": "bytes"}],
        "stateMutability": "payable",
        "type": "function",
    },
]
