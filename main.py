"""
AIVP Liquidity Orchestration CLI

Команды:
    create-pool       найти или создать пул и инициализировать ценой
    add-liquidity     mint позиции вокруг текущего тика
    remove-liquidity  decreaseLiquidity + collect
    swap              exact-input своп в одном пуле
    quote             котировка QuoterV2
    pool-info         состояние пула

Параметры сети и ключ берутся из .env (см. config.OrchestratorConfig.from_env).
Суммы задаются в человеческих единицах ("0.3"), decimals читаются из токенов.
"""

import argparse
import logging
import sys

from web3.exceptions import Web3Exception

from aivp_liquidity.errors import OrchestrationError
from aivp_liquidity.math import format_units, parse_units, sqrt_price_x96_to_price
from aivp_liquidity.math.ticks import to_fraction
from aivp_liquidity.pair import AssetDescriptor, order_pair
from aivp_liquidity.session import ChainSession
from config import DEFAULT_FEE, OrchestratorConfig

logger = logging.getLogger("aivp_liquidity.cli")

LOG_FILE = "aivp_liquidity.log"


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.FileHandler(LOG_FILE, encoding='utf-8'),
            logging.StreamHandler(),
        ],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aivp-liquidity",
        description="Uniswap V3 pool / position / swap orchestration",
    )
    parser.add_argument("--env-file", default=None, help=".env file (default: search from cwd)")
    parser.add_argument("--chain-id", type=int, default=None, help="Override CHAIN_ID")
    parser.add_argument("--journal", default=None, help="State journal JSON path")
    parser.add_argument("-v", "--verbose", action="store_true", help="DEBUG logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-pool", help="Find or create and initialize a pool")
    p.add_argument("--token-a", required=True)
    p.add_argument("--token-b", required=True)
    p.add_argument("--ratio-a", default="1", help="Relative value of token A (exact decimal)")
    p.add_argument("--ratio-b", default="1", help="Relative value of token B (exact decimal)")
    p.add_argument("--fee", type=int, default=DEFAULT_FEE)

    p = sub.add_parser("add-liquidity", help="Mint a position around the current tick")
    p.add_argument("--pool", required=True)
    p.add_argument("--amount0", required=True, help="token0 amount in human units")
    p.add_argument("--amount1", required=True, help="token1 amount in human units")
    p.add_argument("--width", type=int, default=2, help="Half-width in tick spacings")
    p.add_argument("--slippage-bps", type=int, default=None)
    p.add_argument("--recipient", default=None)

    p = sub.add_parser("remove-liquidity", help="Decrease liquidity and collect")
    p.add_argument("--token-id", type=int, required=True)
    p.add_argument("--liquidity", default="all", help="Raw liquidity to remove, or 'all'")
    p.add_argument("--slippage-bps", type=int, default=None)
    p.add_argument("--recipient", default=None)

    for name, help_text in (("swap", "Exact-input single-pool swap"), ("quote", "Quote via QuoterV2")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--token-in", required=True)
        p.add_argument("--token-out", required=True)
        p.add_argument("--amount", required=True, help="token_in amount in human units")
        p.add_argument("--fee", type=int, default=DEFAULT_FEE)
        if name == "swap":
            p.add_argument("--slippage-bps", type=int, default=None)
            p.add_argument("--min-out", default=None, help="Explicit minimum output (human units)")
            p.add_argument("--recipient", default=None)

    p = sub.add_parser("pool-info", help="Show pool state")
    p.add_argument("--pool", default=None)
    p.add_argument("--token-a", default=None)
    p.add_argument("--token-b", default=None)
    p.add_argument("--fee", type=int, default=DEFAULT_FEE)

    return parser


def cmd_create_pool(session: ChainSession, args) -> int:
    factory = session.pool_factory()
    info_a = factory.get_token_info(args.token_a)
    info_b = factory.get_token_info(args.token_b)
    asset_a = AssetDescriptor(info_a.address, info_a.decimals, to_fraction(args.ratio_a), info_a.symbol)
    asset_b = AssetDescriptor(info_b.address, info_b.decimals, to_fraction(args.ratio_b), info_b.symbol)
    pair, _, _ = order_pair(asset_a, asset_b)

    result = session.pool_provisioner().ensure_pool(pair, args.fee)
    print(f"Pool:              {result.pool_address}")
    print(f"Pair:              {pair.token0.symbol}/{pair.token1.symbol} fee={args.fee}")
    print(f"Created:           {result.created}")
    print(f"Initialized here:  {result.initialized_here}")
    print(f"sqrtPriceX96:      {result.sqrt_price_x96}")
    return 0


def cmd_add_liquidity(session: ChainSession, args) -> int:
    factory = session.pool_factory()
    pool = factory.get_pool_immutables(args.pool)
    token0 = factory.get_token_info(pool.token0)
    token1 = factory.get_token_info(pool.token1)

    position = session.liquidity_provider().mint_position(
        pool.address,
        parse_units(args.amount0, token0.decimals),
        parse_units(args.amount1, token1.decimals),
        args.width,
        slippage_bps=args.slippage_bps,
        recipient=args.recipient,
    )
    print(f"Token ID:   {position.token_id}")
    print(f"Liquidity:  {position.liquidity}")
    print(f"Ticks:      [{position.tick_range.lower}, {position.tick_range.upper}]")
    print(f"Deposited:  {format_units(position.amount0, token0.decimals)} {token0.symbol}, "
          f"{format_units(position.amount1, token1.decimals)} {token1.symbol}")
    print(f"TX:         {position.tx_hash}")
    return 0


def cmd_remove_liquidity(session: ChainSession, args) -> int:
    provider = session.liquidity_provider()
    if args.liquidity == "all":
        liquidity = provider.position_manager.get_position(args.token_id).liquidity
    else:
        liquidity = int(args.liquidity)

    result = provider.decrease_and_collect(
        args.token_id,
        liquidity,
        recipient=args.recipient,
        slippage_bps=args.slippage_bps,
    )
    print(f"Token ID:   {result.token_id}")
    print(f"Removed:    {liquidity}")
    print(f"Collected:  amount0={result.amount0} amount1={result.amount1} -> {result.recipient}")
    return 0


def cmd_quote(session: ChainSession, args) -> int:
    factory = session.pool_factory()
    token_in = factory.get_token_info(args.token_in)
    token_out = factory.get_token_info(args.token_out)
    quote = session.swap_executor().quote_exact_input_single(
        token_in.address, token_out.address, args.fee, parse_units(args.amount, token_in.decimals)
    )
    print(f"{args.amount} {token_in.symbol} -> "
          f"{format_units(quote.amount_out, token_out.decimals)} {token_out.symbol}")
    print(f"Ticks crossed: {quote.initialized_ticks_crossed}, gas estimate: {quote.gas_estimate}")
    return 0


def cmd_swap(session: ChainSession, args) -> int:
    factory = session.pool_factory()
    token_in = factory.get_token_info(args.token_in)
    token_out = factory.get_token_info(args.token_out)
    min_out = parse_units(args.min_out, token_out.decimals) if args.min_out is not None else None

    result = session.swap_executor().swap_exact_input_single(
        token_in.address,
        token_out.address,
        args.fee,
        parse_units(args.amount, token_in.decimals),
        recipient=args.recipient,
        slippage_bps=args.slippage_bps,
        amount_out_minimum=min_out,
    )
    print(f"Swapped {args.amount} {token_in.symbol} -> "
          f"{format_units(result.amount_out, token_out.decimals)} {token_out.symbol}")
    print(f"Min out: {format_units(result.amount_out_minimum, token_out.decimals)}")
    print(f"TX:      {result.tx_hash} (gas {result.gas_used})")
    return 0


def cmd_pool_info(session: ChainSession, args) -> int:
    factory = session.pool_factory()
    pool_address = args.pool
    if pool_address is None:
        if not (args.token_a and args.token_b):
            raise ValueError("Either --pool or --token-a/--token-b is required")
        pool_address = factory.get_pool_address(args.token_a, args.token_b, args.fee)
        if pool_address is None:
            print("Pool does not exist")
            return 0

    info = factory.get_pool_info(pool_address)
    token0 = factory.get_token_info(info.token0)
    token1 = factory.get_token_info(info.token1)
    print(f"Pool:          {info.address}")
    print(f"token0:        {token0.symbol} ({info.token0}, {token0.decimals} decimals)")
    print(f"token1:        {token1.symbol} ({info.token1}, {token1.decimals} decimals)")
    print(f"Fee:           {info.fee} (tick spacing {info.tick_spacing})")
    print(f"Initialized:   {info.initialized}")
    if info.initialized:
        price = sqrt_price_x96_to_price(info.sqrt_price_x96, token0.decimals, token1.decimals)
        print(f"sqrtPriceX96:  {info.sqrt_price_x96}")
        print(f"Tick:          {info.tick}")
        print(f"Price:         {float(price):.10g} {token1.symbol} per {token0.symbol}")
    print(f"Liquidity:     {info.liquidity}")
    return 0


COMMANDS = {
    "create-pool": cmd_create_pool,
    "add-liquidity": cmd_add_liquidity,
    "remove-liquidity": cmd_remove_liquidity,
    "swap": cmd_swap,
    "quote": cmd_quote,
    "pool-info": cmd_pool_info,
}


def describe_error(error: BaseException) -> str:
    """Сообщение с цепочкой причин: StepFailed -> RemoteRejection -> ..."""
    parts = []
    seen = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        parts.append(f"{type(error).__name__}: {error}")
        error = error.__cause__ or getattr(error, 'cause', None)
    return "\n  caused by ".join(parts)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = OrchestratorConfig.from_env(
            args.env_file, chain_id=args.chain_id, journal_path=args.journal
        )
        with ChainSession(config) as session:
            return COMMANDS[args.command](session, args)
    except (OrchestrationError, Web3Exception, ValueError, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {describe_error(e)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
