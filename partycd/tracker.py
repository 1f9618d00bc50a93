"""CooldownTracker -- in-memory cooldown windows and capability sets."""

from __future__ import annotations

import logging
import numbers
import time
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional

from partycd.peer import display_name, same_peer

logger = logging.getLogger("PartyCD.Tracker")


@dataclass(frozen=True)
class CooldownWindow:
    """A running cooldown: the ability is unavailable until ``expires_at``."""

    started_at: float
    duration: float

    @property
    def expires_at(self) -> float:
        return self.started_at + self.duration

    def remaining(self, now: float) -> float:
        return self.expires_at - now

    def progress(self, now: float) -> float:
        return min(1.0, max(0.0, (now - self.started_at) / self.duration))


@dataclass(frozen=True)
class CooldownRow:
    """One line of the cooldown board."""

    peer: str
    ability_id: int
    started_at: float
    duration: float
    expires_at: float
    remaining: float
    progress: float

    def to_dict(self) -> dict:
        return {
            "peer": self.peer,
            "ability_id": self.ability_id,
            "started_at": self.started_at,
            "duration": self.duration,
            "expires_at": self.expires_at,
            "remaining": self.remaining,
            "progress": self.progress,
        }


def _positive_number(value) -> bool:
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and value == value
        and 0 < value < float("inf")
    )


class CooldownTracker:
    """Maps ``(peer, ability)`` to the latest reported cooldown window.

    Rows are keyed by the peer's display name so that roster names and
    broadcast sender names land on the same row.  The tracker is passive:
    expiry happens lazily in :meth:`snapshot_rows` and in
    :meth:`prune_expired`, which the render loop calls on its own cadence.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        on_refresh: Optional[Callable[[], None]] = None,
    ) -> None:
        self._clock = clock
        self._on_refresh = on_refresh
        self._active: Dict[str, Dict[int, CooldownWindow]] = {}
        self._capabilities: Dict[str, FrozenSet[int]] = {}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _refresh(self) -> None:
        if self._on_refresh is not None:
            self._on_refresh()

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now

    # ------------------------------------------------------------------
    # Cooldown windows
    # ------------------------------------------------------------------

    def start(self, peer: str, ability_id: int, duration: float, now: Optional[float] = None) -> bool:
        """Start (or restart) the cooldown of *ability_id* for *peer*.

        Returns False and changes nothing for an empty peer, a non-positive
        ability id or a non-positive duration.
        """
        if not peer or not _positive_number(ability_id) or not _positive_number(duration):
            logger.debug("Rejected cooldown start: %r %r %r", peer, ability_id, duration)
            return False
        key = display_name(peer)
        self._active.setdefault(key, {})[int(ability_id)] = CooldownWindow(
            started_at=self._now(now), duration=duration
        )
        logger.debug("Cooldown started: %s ability=%s %.1fs", key, ability_id, duration)
        self._refresh()
        return True

    def get_window(self, peer: str, ability_id: int) -> Optional[CooldownWindow]:
        return self._active.get(display_name(peer), {}).get(ability_id)

    def prune_expired(self, now: Optional[float] = None) -> int:
        """Remove expired windows. Returns count removed."""
        now = self._now(now)
        removed = 0
        for peer in list(self._active):
            windows = self._active[peer]
            expired = [a for a, w in windows.items() if w.expires_at <= now]
            for ability_id in expired:
                del windows[ability_id]
            removed += len(expired)
            if not windows:
                del self._active[peer]
        return removed

    def clear_all(self) -> None:
        """Wipe every window and capability set (group exit)."""
        self._active.clear()
        self._capabilities.clear()
        self._refresh()

    @property
    def active(self) -> Mapping[str, Mapping[int, CooldownWindow]]:
        """Read-only copy of ``peer -> ability -> window``."""
        return {peer: dict(windows) for peer, windows in self._active.items()}

    def snapshot_rows(self, now: Optional[float] = None) -> List[CooldownRow]:
        """Active rows, soonest-to-finish first.

        Ties are broken by peer name, then by ability id, so repeated
        renders stay stable.
        """
        now = self._now(now)
        rows = []
        for peer, windows in self._active.items():
            for ability_id, window in windows.items():
                remaining = window.remaining(now)
                if remaining <= 0:
                    continue
                rows.append(
                    CooldownRow(
                        peer=peer,
                        ability_id=ability_id,
                        started_at=window.started_at,
                        duration=window.duration,
                        expires_at=window.expires_at,
                        remaining=remaining,
                        progress=window.progress(now),
                    )
                )
        rows.sort(key=lambda r: (r.expires_at, r.peer, r.ability_id))
        return rows

    # ------------------------------------------------------------------
    # Capability sets
    # ------------------------------------------------------------------

    def set_capabilities(self, peer: str, ability_ids: Iterable[int]) -> None:
        """Replace *peer*'s capability set wholesale (an empty set is kept).

        Sets are stored under the name as given, so same-named members of
        different realms keep separate entries.
        """
        if not peer:
            return
        self._capabilities[peer] = frozenset(int(i) for i in ability_ids)
        self._refresh()

    def get_capabilities(self, peer: str) -> Optional[FrozenSet[int]]:
        """Confirmed abilities of *peer*, or None when never reported.

        An exact name match wins; otherwise the first stored name that
        :func:`~partycd.peer.same_peer` matches is used.
        """
        if not peer:
            return None
        caps = self._capabilities.get(peer)
        if caps is not None:
            return caps
        for name, caps in self._capabilities.items():
            if same_peer(name, peer):
                return caps
        return None

    def known_peers(self) -> List[str]:
        return sorted(self._capabilities)
