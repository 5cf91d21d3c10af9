"""Command-line interface for live-auction.

Usage:
    live-auction analyze ROOM [START] [END] [--snapshot=FILE] [--output-dir=DIR]
    live-auction simulate [--room=ROOM] [--viewers=N] [--duration=SECONDS]
    live-auction dashboard [--host=HOST] [--port=PORT] [--snapshot=FILE]
    live-auction version
    live-auction-report ROOM [START] [END]
"""

import argparse
import asyncio
import json
import logging
import os
import random
import sys
from pathlib import Path
from typing import List, Optional

from .config import Config, load_config
from .errors import ConnectivityError, LiveAuctionError
from .models.types import Role, current_ts_ms
from .orchestrator import LiveRoom
from .pseudonyms import pseudonym
from .report import write_report
from .room import Room
from .services.analytics import analyze_room
from .storage.base import RealtimeStore
from .storage.inventory import load_inventory
from .storage.memory_store import MemoryDatabase
from .storage.rest_store import RestStore


def setup_logging(level: str = "INFO", log_file: str = None) -> None:
    """Configure logging."""
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=handlers,
        force=True,
    )


def _logging_from_env() -> None:
    setup_logging(os.environ.get("LOG_LEVEL", "INFO"), os.environ.get("LOG_FILE"))


def open_store(config: Config, snapshot: Optional[str] = None) -> RealtimeStore:
    """Store for batch commands: a JSON snapshot if given, else the configured database.

    Raises:
        NotFoundError: snapshot file missing
        ConnectivityError: no database configured
    """
    if snapshot:
        return MemoryDatabase.from_json_file(snapshot).connect()
    if not config.database.url:
        raise ConnectivityError(
            "No database configured: set database.url in the config or pass --snapshot"
        )
    return RestStore(
        config.database.url,
        auth_token=config.database_token,
        timeout_seconds=config.database.timeout_seconds,
    )


# =============================================================================
# analyze
# =============================================================================

async def _run_analysis(args: argparse.Namespace, config: Config) -> Path:
    inventory = load_inventory(args.inventory or config.analytics.inventory_path)
    print(f"Loaded {len(inventory)} items from inventory")

    store = open_store(config, args.snapshot)
    if isinstance(store, RestStore):
        await store.start()
    try:
        report = await analyze_room(store, args.room, inventory, args.start, args.end, config=config)
    finally:
        await store.close()

    currency = config.auction.currency_symbol
    print(f"  Window: {report.start_time} - {report.end_time} ({report.window_source})")
    print(f"  Real users: {report.real_user_count}")
    print(f"  Total bids: {report.total_bids}")
    print(f"  Items sold: {report.items_sold} / {report.items_showcased}")
    print(f"  Revenue: {currency}{report.revenue:,}")
    print(f"  Conversion: {report.conversion_pct}%")
    print(f"  Avg multiplier: {report.avg_multiplier:.1f}x")
    print(f"  Highest multiplier: {report.highest_multiplier:.1f}x ({report.highest_multiplier_item})")
    print(f"  Avg viewers (est): {report.avg_viewers}")

    return write_report(report, args.output_dir or config.analytics.output_dir, currency=currency)


def cmd_analyze(args: argparse.Namespace) -> int:
    """Analyze a room and write report_{room}.html."""
    if not args.room:
        print("Error: Please provide a Room ID.")
        return 1

    config = load_config(args.config)
    _logging_from_env()

    print(f"Analyzing room: [ {args.room} ]")
    print("=" * 50)

    try:
        path = asyncio.run(_run_analysis(args, config))
    except Exception as e:
        print(f"Error: {e}")
        return 1

    print(f"\nReport generated: {path}")
    return 0


# =============================================================================
# simulate
# =============================================================================

async def _bid_until_closed(room: LiveRoom, rng: random.Random, increments: List[int]) -> int:
    """Scripted viewer: outbid the current price at random intervals."""
    accepted = 0
    while (await room.machine.read_state()).is_active:
        await asyncio.sleep(rng.uniform(0.05, 0.4))
        price = await room.ledger.read_price()
        result = await room.place_bid(price + rng.choice(increments))
        if result.accepted:
            accepted += 1
    return accepted


async def _run_simulation(args: argparse.Namespace, config: Config) -> MemoryDatabase:
    logger = logging.getLogger(__name__)
    database = MemoryDatabase(latency_seconds=args.latency)
    rng = random.Random(args.seed)
    started_at = current_ts_ms()

    host = await LiveRoom.login(
        database.connect(), args.room, "host@example.com", "0000000000", Role.HOST, config=config
    )
    await host.start()

    viewers = []
    for i in range(args.viewers):
        viewer = await LiveRoom.login(
            database.connect(), args.room, f"viewer{i}@example.com", f"9{i:09d}", config=config
        )
        await viewer.start()
        viewers.append(viewer)
    logger.info(f"{len(viewers)} viewers joined {args.room}")

    await host.ledger.set_price(host.participant, args.start_price)
    await host.machine.start(host.participant, args.duration, item_name=args.item)

    increments = [config.auction.bid_increment * n for n in (1, 2, 5)]
    accepted = await asyncio.gather(*(_bid_until_closed(v, rng, increments) for v in viewers))
    logger.info(f"{sum(accepted)} bids accepted")

    # The host's countdown closes the round
    while (await host.machine.read_state()).is_active:
        await asyncio.sleep(config.auction.countdown_interval_seconds)

    for viewer in viewers:
        await viewer.stop()
    await host.stop()

    database.set(Room(args.room).metadata_path, {"startTime": started_at, "endTime": current_ts_ms()})
    return database


def cmd_simulate(args: argparse.Namespace) -> int:
    """Run one scripted auction round against an in-memory database."""
    config = load_config(args.config)
    _logging_from_env()

    try:
        database = asyncio.run(_run_simulation(args, config))
    except LiveAuctionError as e:
        print(f"Error: {e}")
        return 1

    history = database.get(Room(args.room).history_path) or {}
    currency = config.auction.currency_symbol
    print("\nAuction History:")
    for record in history.values():
        print(f"  {record['itemName']}: {currency}{record['finalPrice']} -> {pseudonym(record['winner'])}")
        for rank, bidder in enumerate(record.get("topBidders", []), start=1):
            print(f"    {rank}. {pseudonym(bidder['user'])} ({bidder['user']}): {currency}{bidder['amount']}")

    if args.save:
        database.to_json_file(args.save)
        print(f"\nSnapshot saved to {args.save}")

    return 0


# =============================================================================
# dashboard / version
# =============================================================================

def cmd_dashboard(args: argparse.Namespace) -> int:
    """Run the web dashboard."""
    import uvicorn
    from .dashboard.api import create_app

    config = load_config(args.config)
    _logging_from_env()

    store = None
    if args.snapshot:
        try:
            store = MemoryDatabase.from_json_file(args.snapshot).connect()
        except (LiveAuctionError, ValueError) as e:
            print(f"Error: {e}")
            return 1
    elif not config.database.url:
        print("Error: set database.url in the config or pass --snapshot")
        return 1

    host = args.host or config.dashboard.host
    port = args.port or config.dashboard.port
    print(f"Starting Live Auction Dashboard at http://{host}:{port}")
    print("Press Ctrl+C to stop")

    uvicorn.run(create_app(store=store, config=config), host=host, port=port, log_level="info")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    from . import __version__
    print(f"live-auction version {__version__}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Print the effective configuration."""
    config = load_config(args.config)
    print(json.dumps(config.to_dict(), indent=2, ensure_ascii=False))
    return 0


# =============================================================================
# Parsers
# =============================================================================

def _add_analyze_arguments(parser: argparse.ArgumentParser) -> None:
    # Optional so a missing room exits 1 with a message instead of usage error 2
    parser.add_argument("room", nargs="?", help="Room ID")
    parser.add_argument("start", nargs="?", default=None, help="Window start (ISO-8601)")
    parser.add_argument("end", nargs="?", default=None, help="Window end (ISO-8601)")
    parser.add_argument("--snapshot", default=None, help="Analyze a database JSON export instead")
    parser.add_argument("--inventory", default=None, help="Inventory CSV (Name, Price)")
    parser.add_argument("--output-dir", "-o", default=None, help="Report directory")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="live-auction",
        description="Live multi-viewer auction coordination",
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to config file",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # analyze command
    analyze_parser = subparsers.add_parser("analyze", help="Analyze a room and write a report")
    _add_analyze_arguments(analyze_parser)
    analyze_parser.set_defaults(func=cmd_analyze)

    # simulate command
    sim_parser = subparsers.add_parser("simulate", help="Simulate one auction round in memory")
    sim_parser.add_argument("--room", default="DEMO", help="Room ID (default: DEMO)")
    sim_parser.add_argument("--viewers", "-n", type=int, default=5, help="Number of viewers")
    sim_parser.add_argument("--duration", "-d", type=int, default=3, help="Round length in seconds")
    sim_parser.add_argument("--start-price", type=int, default=100, help="Opening price")
    sim_parser.add_argument("--item", default="Vintage Jacket", help="Item name")
    sim_parser.add_argument("--latency", type=float, default=0.005, help="Store latency in seconds")
    sim_parser.add_argument("--seed", type=int, default=None, help="Random seed")
    sim_parser.add_argument("--save", default=None, help="Write the database to this JSON file")
    sim_parser.set_defaults(func=cmd_simulate)

    # dashboard command
    dash_parser = subparsers.add_parser("dashboard", help="Run the web dashboard")
    dash_parser.add_argument("--host", default=None, help="Host to bind to (default: from config)")
    dash_parser.add_argument("--port", "-p", type=int, default=None, help="Port (default: from config)")
    dash_parser.add_argument("--snapshot", default=None, help="Serve a database JSON export")
    dash_parser.set_defaults(func=cmd_dashboard)

    # config command
    config_parser = subparsers.add_parser("config", help="Show effective configuration")
    config_parser.set_defaults(func=cmd_config)

    # version command
    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    return args.func(args)


def analyze_main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the stand-alone report tool."""
    parser = argparse.ArgumentParser(
        prog="live-auction-report",
        description="Generate the post-event analytics report for a room",
    )
    parser.add_argument("--config", "-c", help="Path to config file", default=None)
    _add_analyze_arguments(parser)
    return cmd_analyze(parser.parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
