"""
PartyCD Demo -- a simulated party on an in-process channel.

Runs four members on a loopback hub with a virtual clock: three run
PartyCD, one does not.  The local member checks presence, learns the
others' capabilities, watches two interrupts go out and prints the board.

Usage:
    partycd demo
    partycd demo --at 5
    partycd demo --test-bars
"""

import copy
import logging
from typing import Dict, List, Optional

from rich.console import Console

from partycd.board import render_board
from partycd.config import DEFAULT_CONFIG
from partycd.node import PartyNode
from partycd.scheduling import ManualScheduler
from partycd.transport.loopback import LoopbackHub, LoopbackTransport

logger = logging.getLogger("PartyCD.Demo")

DEMO_REALM = "Silvermoon"

# name -> abilities the member has; None means the member lacks the software
DEMO_PARTY: Dict[str, Optional[List[int]]] = {
    "Alice": [57994],
    "Bob": [147362, 187707],
    "Cara": [1766],
    "Dave": None,
}


def _member_config(name: str) -> dict:
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["player"] = {"name": name, "realm": DEMO_REALM}
    return config


def build_party(scheduler: ManualScheduler, notes: List[str]) -> Dict[str, PartyNode]:
    """Create the demo members; only the first one reports to *notes*."""
    hub = LoopbackHub(scheduler)
    nodes: Dict[str, PartyNode] = {}
    for i, (name, abilities) in enumerate(DEMO_PARTY.items()):
        if abilities is None:
            continue
        config = _member_config(name)
        transport = LoopbackTransport(config["channel"], hub, f"{name}-{DEMO_REALM}")
        node = PartyNode(
            config,
            transport,
            scheduler,
            notify=notes.append if i == 0 else None,
        )
        transport.open()
        node.engine.own_capabilities = tuple(sorted(abilities))
        nodes[name] = node
    return nodes


def run_demo(at: float = 3.0, console: Optional[Console] = None, test_bars: bool = False) -> dict:
    """Play the demo and print the board *at* seconds after the interrupts.

    With *test_bars* the local member also shows a few fake cooldowns.

    Returns a summary dict (used by the tests).
    """
    console = console or Console()
    scheduler = ManualScheduler()
    notes: List[str] = []
    nodes = build_party(scheduler, notes)
    logger.debug("Demo party: %d of %d members run PartyCD", len(nodes), len(DEMO_PARTY))
    roster = [f"{name}-{DEMO_REALM}" for name in DEMO_PARTY]

    for node in nodes.values():
        node.on_roster_update(roster)
    scheduler.advance(5.0)

    nodes["Bob"].on_local_ability_used(147362, cast_id="bob-1")
    nodes["Cara"].on_local_ability_used(1766, cast_id="cara-1")
    nodes["Alice"].on_local_ability_used(57994, cast_id="alice-1")
    scheduler.advance(at)

    alice = nodes["Alice"]
    if test_bars:
        alice.spawn_test_bars()
    alice.tick()
    rows = alice.snapshot_rows()

    console.print(f"\n[bold cyan]  PartyCD demo[/]  (virtual t={scheduler.time():.1f}s)\n")
    for line in notes:
        console.print(f"  [yellow]{line}[/]")
    console.print(render_board(rows, alice.library))
    for name in DEMO_PARTY:
        caps = alice.get_capabilities(name)
        shown = "unknown" if caps is None else ", ".join(alice.library.name_of(i) for i in sorted(caps)) or "none"
        console.print(f"  {name:<6} {shown}")
    console.print()

    return {
        "notes": notes,
        "rows": rows,
        "confirmed": sorted(alice.engine.knowledge.confirmed),
        "missing": sorted(alice.engine.knowledge.announced_missing),
    }
