"""
PartyCD Board -- terminal rendering of the cooldown board.

One row per active cooldown: peer, ability, a bar that fills as the
ability recharges, and the time left.

Usage:
    partycd demo        # simulated party, prints the board
    partycd run         # live board for the configured channel
"""

import math
from typing import Iterable, Optional

from rich.progress_bar import ProgressBar
from rich.table import Table

from partycd.abilities import AbilityLibrary
from partycd.peer import display_name
from partycd.tracker import CooldownRow

_BAR_WIDTH = 24


def format_remaining(seconds) -> str:
    """Format seconds as ``12s``, ``1m05s`` or ``1h2m`` (nearest second)."""
    try:
        sec = max(0, math.floor(float(seconds) + 0.5))
    except (TypeError, ValueError):
        sec = 0
    if sec >= 3600:
        return f"{sec // 3600}h{(sec % 3600) // 60}m"
    if sec >= 60:
        return f"{sec // 60}m{sec % 60:02d}s"
    return f"{sec}s"


def render_board(
    rows: Iterable[CooldownRow],
    library: Optional[AbilityLibrary] = None,
    title: str = "Interrupts",
) -> Table:
    """Build a rich table for *rows* (already sorted by the tracker)."""
    library = library or AbilityLibrary()
    table = Table(title=title, show_header=True, title_justify="left")
    table.add_column("Player", style="bold")
    table.add_column("Ability")
    table.add_column("Cooldown")
    table.add_column("Left", justify="right")

    rows = list(rows)
    if not rows:
        table.add_row("[dim]No active interrupts[/]", "", "", "")
        return table

    for row in rows:
        table.add_row(
            display_name(row.peer),
            library.name_of(row.ability_id),
            ProgressBar(total=1.0, completed=row.progress, width=_BAR_WIDTH),
            format_remaining(row.remaining),
        )
    return table


def render_abilities(library: AbilityLibrary) -> Table:
    """Table of every ability the library knows."""
    table = Table(title=f"Abilities: {len(library)}", show_header=True)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Role")
    table.add_column("Cooldown", justify="right")
    for info in library:
        table.add_row(
            str(info.ability_id), info.name, info.role, format_remaining(info.base_cooldown)
        )
    return table
