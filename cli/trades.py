#!/usr/bin/env python3

from logger import get_logger

logger = get_logger()


def _fmt(value, places=2):
    return f"{value:.{places}f}" if value is not None else "-"


def cmd_list(args, services):
    """List an owner's trades, newest first."""
    trades = services.trades.find_by_owner(args.owner, limit=args.limit)

    if not trades:
        logger.info("No trades found.")
        return

    strategies = {s.id: s.name for s in services.strategies.find_by_owner(args.owner)}

    logger.info("\nTrades:")
    logger.info("=" * 100)
    for trade in trades:
        exit_time = f"{trade.exit_time:%Y-%m-%d %H:%M}" if trade.exit_time else "open"
        logger.info(
            f"{trade.entry_time:%Y-%m-%d %H:%M} -> {exit_time:<16}  "
            f"{trade.symbol:<6} {trade.direction:<5} {trade.quantity.normalize()} @ "
            f"{_fmt(trade.entry_price)} -> {_fmt(trade.exit_price)}  "
            f"net {_fmt(trade.net_pnl)} {trade.result or ''}  "
            f"{strategies.get(trade.strategy_id, '')}"
        )

    total = services.trades.count_by_owner(args.owner)
    logger.info(f"\nShowing {len(trades)} of {total} trade(s)")


def cmd_strategies(args, services):
    """List an owner's strategies."""
    strategies = services.strategies.find_by_owner(args.owner)

    if not strategies:
        logger.info("No strategies found.")
        return

    for strategy in strategies:
        logger.info(f"{strategy.id:>5}  {strategy.name}")

    logger.info(f"\nTotal strategies: {len(strategies)}")


def setup_parser(subparsers):
    """Setup trades subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "trades",
        help="Browse imported trades",
        description="Browse imported trades and strategies",
    )

    trades_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available trade commands",
        dest="subcommand",
        required=True,
    )

    # trades list
    list_parser = trades_subparsers.add_parser("list", help="List trades")
    list_parser.add_argument("--owner", required=True, help="Owner identity")
    list_parser.add_argument(
        "--limit", type=int, default=50, help="Maximum trades to show (default: 50)"
    )
    list_parser.set_defaults(func=cmd_list)

    # trades strategies
    strategies_parser = trades_subparsers.add_parser(
        "strategies", help="List strategies"
    )
    strategies_parser.add_argument("--owner", required=True, help="Owner identity")
    strategies_parser.set_defaults(func=cmd_strategies)
