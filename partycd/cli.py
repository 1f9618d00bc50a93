"""
PartyCD CLI entry point.

Usage:
    partycd demo                                 # Simulated party (no network)
    partycd abilities                            # List known interrupts
    partycd validate partycd.yaml                # Check a config file
    partycd run --config partycd.yaml            # Live board on the configured channel
"""

import argparse
import asyncio
import logging
import os
import sys

logger = logging.getLogger("PartyCD")

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(
        logging, os.getenv("LOG_LEVEL", "WARNING").upper(), logging.WARNING
    )
    logging.basicConfig(level=level, format=_LOG_FORMAT, handlers=[logging.StreamHandler()])


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def cmd_demo(args) -> int:
    """Run the simulated party demo."""
    from partycd.demo import run_demo

    run_demo(at=args.at, test_bars=args.test_bars)
    return 0


def cmd_abilities(args) -> int:
    """Print the ability library (with config overrides applied)."""
    from rich.console import Console

    from partycd.abilities import AbilityLibrary
    from partycd.board import render_abilities
    from partycd.config import load_config

    config = load_config(args.config)
    Console().print(render_abilities(AbilityLibrary.from_config(config)))
    return 0


def cmd_validate(args) -> int:
    """Validate a config file; exit status 1 on errors."""
    from rich.console import Console

    from partycd.config import ConfigError, load_config, validate_config

    console = Console()
    try:
        config = load_config(args.path)
    except ConfigError as exc:
        console.print(f"  [red]{exc}[/]")
        return 1

    ok, errors = validate_config(config)
    if ok:
        console.print(f"  [green]{args.path}: OK[/]")
        return 0
    for msg in errors:
        console.print(f"  [red]✗[/] {msg}")
    return 1


async def _run_live(config: dict) -> None:
    from rich.console import Console
    from rich.live import Live

    from partycd.board import render_board
    from partycd.node import PartyNode
    from partycd.peer import qualify
    from partycd.scheduling import AsyncioScheduler
    from partycd.transport import create_transport

    console = Console()
    player = config["player"]
    self_peer = qualify(player["name"], player.get("realm") or None)
    scheduler = AsyncioScheduler(asyncio.get_running_loop())
    transport = create_transport(config["channel"], self_peer)

    node = PartyNode(config, transport, scheduler, notify=lambda line: console.print(f"[yellow]{line}[/]"))
    await transport.start()
    logger.info("Joined %s channel as %s", transport.name, self_peer)
    try:
        own = {int(i) for i in player.get("abilities") or [] if node.library.is_valid(int(i))}
        node.engine.own_capabilities = tuple(sorted(own))
        node.on_roster_update(config.get("party", {}).get("members", []))
        tick = float(config.get("board", {}).get("tick_s", 0.1))
        with Live(render_board([], node.library), console=console, refresh_per_second=10) as live:
            while True:
                node.tick()
                live.update(render_board(node.snapshot_rows(), node.library))
                await asyncio.sleep(tick)
    finally:
        await transport.stop()


def cmd_run(args) -> int:
    """Join the configured channel and keep the board on screen."""
    from partycd.config import ConfigError, load_config, log_validation_result

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"\n  {exc}\n")
        return 1
    if not log_validation_result(config):
        return 1
    if config["channel"].get("type", "loopback") == "loopback":
        print("\n  The loopback channel only exists inside one process.")
        print("  Set channel.type: mqtt, or try `partycd demo`.\n")
        return 1

    try:
        asyncio.run(_run_live(config))
    except KeyboardInterrupt:
        pass
    return 0


# ---------------------------------------------------------------------------
# Parser setup
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="partycd",
        description="PartyCD - shared interrupt cooldown board for small groups",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    p_demo = sub.add_parser("demo", help="Simulated party on a virtual clock")
    p_demo.add_argument(
        "--at", type=float, default=3.0, help="Seconds after the interrupts to show the board"
    )
    p_demo.add_argument("--test-bars", action="store_true", help="Add fake cooldowns to the board")

    p_abilities = sub.add_parser("abilities", help="List the ability library")
    p_abilities.add_argument("--config", default=None, help="Config with ability overrides")

    p_validate = sub.add_parser(
        "validate",
        help="Validate a config file",
        epilog="Example: partycd validate partycd.yaml",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p_validate.add_argument("path", help="Config file")

    p_run = sub.add_parser(
        "run",
        help="Live board on the configured channel",
        epilog="Example: partycd run --config partycd.yaml",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p_run.add_argument("--config", default=None, help="Config file (or env PARTYCD_CONFIG)")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    commands = {
        "demo": cmd_demo,
        "abilities": cmd_abilities,
        "validate": cmd_validate,
        "run": cmd_run,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 0
    return handler(args)


def _friendly_error_handler() -> None:
    """Wrap main() with readable messages for the common failures."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n  Interrupted.\n")
        sys.exit(130)
    except ImportError as exc:
        dep = exc.name or str(exc)
        print(f"\n  Missing dependency: {dep}")
        if "paho" in dep:
            print("  Hint: pip install partycd[mqtt]")
        print()
        sys.exit(1)
    except ConnectionError as exc:
        print(f"\n  Connection error: {exc}\n")
        sys.exit(1)


if __name__ == "__main__":
    _friendly_error_handler()
