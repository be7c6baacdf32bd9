from .ticks import (
    encode_sqrt_price_x96,
    sqrt_price_x96_to_price,
    align_tick_to_spacing,
    compute_tick_range,
    isqrt,
    TickRange,
)
from .amounts import parse_units, format_units, apply_slippage
from .liquidity import (
    get_sqrt_ratio_at_tick,
    get_liquidity_for_amounts,
    get_amounts_for_liquidity,
    calculate_mint_amounts,
    LiquidityAmounts,
)
