"""
Minimal ABI definitions for the contracts the orchestrators talk to:
ERC20, UniswapV3Factory, UniswapV3Pool, NonfungiblePositionManager,
SwapRouter / SwapRouter02 and QuoterV2.
"""


def _fn(name, inputs, outputs=(), mutability="nonpayable"):
    return {
        "inputs": list(inputs),
        "name": name,
        "outputs": list(outputs),
        "stateMutability": mutability,
        "type": "function",
    }


def _arg(name, type_, indexed=None):
    arg = {"name": name, "type": type_}
    if indexed is not None:
        arg["indexed"] = indexed
    return arg


def _tuple(name, components):
    return {"components": list(components), "name": name, "type": "tuple"}


def _event(name, inputs):
    return {"anonymous": False, "inputs": list(inputs), "name": name, "type": "event"}


# ERC20 (approve / allowance / Transfer для разбора выхода свопа)
ERC20_ABI = [
    _fn("approve", [_arg("spender", "address"), _arg("amount", "uint256")], [_arg("", "bool")]),
    _fn("allowance", [_arg("owner", "address"), _arg("spender", "address")], [_arg("", "uint256")], "view"),
    _fn("balanceOf", [_arg("account", "address")], [_arg("", "uint256")], "view"),
    _fn("decimals", [], [_arg("", "uint8")], "view"),
    _fn("symbol", [], [_arg("", "string")], "view"),
    _event("Transfer", [
        _arg("from", "address", True),
        _arg("to", "address", True),
        _arg("value", "uint256", False),
    ]),
]

# UniswapV3Factory
FACTORY_ABI = [
    _fn("getPool", [_arg("tokenA", "address"), _arg("tokenB", "address"), _arg("fee", "uint24")],
        [_arg("pool", "address")], "view"),
    _fn("createPool", [_arg("tokenA", "address"), _arg("tokenB", "address"), _arg("fee", "uint24")],
        [_arg("pool", "address")]),
    _fn("feeAmountTickSpacing", [_arg("fee", "uint24")], [_arg("", "int24")], "view"),
    _event("PoolCreated", [
        _arg("token0", "address", True),
        _arg("token1", "address", True),
        _arg("fee", "uint24", True),
        _arg("tickSpacing", "int24", False),
        _arg("pool", "address", False),
    ]),
]

# UniswapV3Pool: immutables, slot0, initialize
POOL_ABI = [
    _fn("token0", [], [_arg("", "address")], "view"),
    _fn("token1", [], [_arg("", "address")], "view"),
    _fn("fee", [], [_arg("", "uint24")], "view"),
    _fn("tickSpacing", [], [_arg("", "int24")], "view"),
    _fn("liquidity", [], [_arg("", "uint128")], "view"),
    _fn("slot0", [], [
        _arg("sqrtPriceX96", "uint160"),
        _arg("tick", "int24"),
        _arg("observationIndex", "uint16"),
        _arg("observationCardinality", "uint16"),
        _arg("observationCardinalityNext", "uint16"),
        _arg("feeProtocol", "uint8"),
        _arg("unlocked", "bool"),
    ], "view"),
    _fn("initialize", [_arg("sqrtPriceX96", "uint160")]),
]

# NonfungiblePositionManager
POSITION_MANAGER_ABI = [
    _fn("mint", [_tuple("params", [
        _arg("token0", "address"),
        _arg("token1", "address"),
        _arg("fee", "uint24"),
        _arg("tickLower", "int24"),
        _arg("tickUpper", "int24"),
        _arg("amount0Desired", "uint256"),
        _arg("amount1Desired", "uint256"),
        _arg("amount0Min", "uint256"),
        _arg("amount1Min", "uint256"),
        _arg("recipient", "address"),
        _arg("deadline", "uint256"),
    ])], [
        _arg("tokenId", "uint256"),
        _arg("liquidity", "uint128"),
        _arg("amount0", "uint256"),
        _arg("amount1", "uint256"),
    ], "payable"),
    _fn("decreaseLiquidity", [_tuple("params", [
        _arg("tokenId", "uint256"),
        _arg("liquidity", "uint128"),
        _arg("amount0Min", "uint256"),
        _arg("amount1Min", "uint256"),
        _arg("deadline", "uint256"),
    ])], [_arg("amount0", "uint256"), _arg("amount1", "uint256")], "payable"),
    _fn("collect", [_tuple("params", [
        _arg("tokenId", "uint256"),
        _arg("recipient", "address"),
        _arg("amount0Max", "uint128"),
        _arg("amount1Max", "uint128"),
    ])], [_arg("amount0", "uint256"), _arg("amount1", "uint256")], "payable"),
    _fn("positions", [_arg("tokenId", "uint256")], [
        _arg("nonce", "uint96"),
        _arg("operator", "address"),
        _arg("token0", "address"),
        _arg("token1", "address"),
        _arg("fee", "uint24"),
        _arg("tickLower", "int24"),
        _arg("tickUpper", "int24"),
        _arg("liquidity", "uint128"),
        _arg("feeGrowthInside0LastX128", "uint256"),
        _arg("feeGrowthInside1LastX128", "uint256"),
        _arg("tokensOwed0", "uint128"),
        _arg("tokensOwed1", "uint128"),
    ], "view"),
    _event("IncreaseLiquidity", [
        _arg("tokenId", "uint256", True),
        _arg("liquidity", "uint128", False),
        _arg("amount0", "uint256", False),
        _arg("amount1", "uint256", False),
    ]),
    _event("DecreaseLiquidity", [
        _arg("tokenId", "uint256", True),
        _arg("liquidity", "uint128", False),
        _arg("amount0", "uint256", False),
        _arg("amount1", "uint256", False),
    ]),
    _event("Collect", [
        _arg("tokenId", "uint256", True),
        _arg("recipient", "address", False),
        _arg("amount0", "uint256", False),
        _arg("amount1", "uint256", False),
    ]),
    _event("Transfer", [
        _arg("from", "address", True),
        _arg("to", "address", True),
        _arg("tokenId", "uint256", True),
    ]),
]

# SwapRouter (v1): deadline внутри параметров
SWAP_ROUTER_ABI = [
    _fn("exactInputSingle", [_tuple("params", [
        _arg("tokenIn", "address"),
        _arg("tokenOut", "address"),
        _arg("fee", "uint24"),
        _arg("recipient", "address"),
        _arg("deadline", "uint256"),
        _arg("amountIn", "uint256"),
        _arg("amountOutMinimum", "uint256"),
        _arg("sqrtPriceLimitX96", "uint160"),
    ])], [_arg("amountOut", "uint256")], "payable"),
]

# SwapRouter02: без deadline, deadline передаётся через multicall(uint256,bytes[])
SWAP_ROUTER02_ABI = [
    _fn("exactInputSingle", [_tuple("params", [
        _arg("tokenIn", "address"),
        _arg("tokenOut", "address"),
        _arg("fee", "uint24"),
        _arg("recipient", "address"),
        _arg("amountIn", "uint256"),
        _arg("amountOutMinimum", "uint256"),
        _arg("sqrtPriceLimitX96", "uint160"),
    ])], [_arg("amountOut", "uint256")], "payable"),
    _fn("multicall", [_arg("deadline", "uint256"), _arg("data", "bytes[]")],
        [_arg("results", "bytes[]")], "payable"),
]

# QuoterV2
QUOTER_V2_ABI = [
    _fn("quoteExactInputSingle", [_tuple("params", [
        _arg("tokenIn", "address"),
        _arg("tokenOut", "address"),
        _arg("amountIn", "uint256"),
        _arg("fee", "uint24"),
        _arg("sqrtPriceLimitX96", "uint160"),
    ])], [
        _arg("amountOut", "uint256"),
        _arg("sqrtPriceX96After", "uint160"),
        _arg("initializedTicksCrossed", "uint32"),
        _arg("gasEstimate", "uint256"),
    ]),
]
