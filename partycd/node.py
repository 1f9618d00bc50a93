"""
PartyNode -- one party member's PartyCD runtime.

Ties the transport, codec, protocol engine, cooldown tracker and
transmission guard together, and turns the host's events into protocol
actions:

- inbound payload          -> :meth:`PartyNode.on_transport_message`
- local ability succeeded  -> :meth:`PartyNode.on_local_ability_used`
- group roster changed     -> :meth:`PartyNode.on_roster_update`
- entered the world        -> :meth:`PartyNode.on_enter_world`
- render loop tick         -> :meth:`PartyNode.tick`
"""

from __future__ import annotations

import logging
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence

from partycd.abilities import AbilityLibrary
from partycd.codec import AbilityUsed, ParseFailure, decode, encode
from partycd.guard import TransmissionGuard
from partycd.peer import display_name, qualify, same_peer
from partycd.protocol import ProtocolEngine
from partycd.tracker import CooldownRow, CooldownTracker
from partycd.transport.base import BaseTransport

logger = logging.getLogger("PartyCD.Node")


class PartyNode:
    """Everything one member needs to take part in the cooldown board.

    Args:
        config: Loaded PartyCD config (see :mod:`partycd.config`).
        transport: The party channel; its inbound handler is taken over.
        scheduler: One-shot scheduler (``call_later``) that also serves as
            the clock when *clock* is not given.
        library: Valid abilities (built from the config when omitted).
        notify: Receives the one-line missing-peers summary.
        on_refresh: Called whenever the board should redraw.
    """

    def __init__(
        self,
        config: dict,
        transport: BaseTransport,
        scheduler,
        clock: Optional[Callable[[], float]] = None,
        library: Optional[AbilityLibrary] = None,
        notify: Optional[Callable[[str], None]] = None,
        on_refresh: Optional[Callable[[], None]] = None,
        instance_id: Optional[str] = None,
    ) -> None:
        player = config.get("player", {})
        self.self_peer = qualify(player.get("name", "Player"), player.get("realm") or None)
        self.config = config
        self.max_group_size = int(config.get("presence", {}).get("max_group_size", 5))

        self._clock = clock or scheduler
        self.library = library or AbilityLibrary.from_config(config)
        self.transport = transport
        self.tracker = CooldownTracker(clock=self._clock, on_refresh=on_refresh)
        self.guard = TransmissionGuard(config, clock=self._clock)
        self.engine = ProtocolEngine(
            self.self_peer,
            transport,
            self.library,
            self.tracker,
            scheduler,
            config=config,
            clock=self._clock,
            notify=notify,
            on_refresh=on_refresh,
            instance_id=instance_id,
        )
        self.roster: List[str] = []
        transport.set_handler(self.on_transport_message)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def is_self(self, sender: str) -> bool:
        return same_peer(sender, self.self_peer)

    def on_transport_message(self, prefix: str, payload: str, sender: str) -> None:
        """Decode and apply one inbound payload; anything unusable is dropped."""
        if prefix != self.transport.prefix:
            return
        if not payload or not sender:
            return
        if self.is_self(sender):
            return

        message = decode(payload, self.library.is_valid)
        if isinstance(message, ParseFailure):
            logger.debug("Dropped message from %s: %s (%.40s)", sender, message.reason, payload)
            return
        self.engine.handle_message(sender, message)

    # ------------------------------------------------------------------
    # Local events
    # ------------------------------------------------------------------

    @property
    def in_group(self) -> bool:
        return bool(self.roster)

    def on_local_ability_used(
        self,
        ability_id: int,
        cast_id: Optional[str] = None,
        known_talents: Iterable[int] = (),
    ) -> bool:
        """Start our own cooldown and report it to the party.

        The local board is always updated; the broadcast is skipped when
        not grouped or when the guard recognises a duplicate event.
        Returns True if a broadcast was sent.
        """
        duration = self.library.effective_cooldown(ability_id, known_talents)
        if duration is None:
            return False

        self.tracker.start(self.self_peer, ability_id, duration)

        if not self.in_group:
            return False
        if not self.guard.should_transmit(cast_id, ability_id):
            return False
        return self.transport.broadcast(encode(AbilityUsed(ability_id, duration)))

    def set_own_capabilities(self, ability_ids: Iterable[int]) -> bool:
        """Record which abilities the local player has and share them."""
        return self.engine.broadcast_own_capabilities(ability_ids)

    def on_roster_update(self, members: Sequence[str]) -> None:
        """Apply a new group roster snapshot (empty when not grouped)."""
        members = [m for m in dict.fromkeys(members) if m]
        if not members:
            if self.roster:
                logger.info("Left group: clearing cooldowns and presence state")
            self.roster = []
            self.tracker.clear_all()
            self.engine.on_group_exit()
            return

        just_joined = not self.roster
        new_member = any(m not in self.roster for m in members)
        self.roster = members
        self.engine.suppressed = len(members) > self.max_group_size

        if just_joined or new_member:
            self.engine.debounce_then_query(lambda: list(self.roster))
        if just_joined:
            self.engine.request_capabilities()

    def on_enter_world(self) -> None:
        if self.in_group:
            self.engine.debounce_then_query(lambda: list(self.roster))

    def tick(self, now: Optional[float] = None) -> int:
        """Render-loop hook: drop expired cooldowns."""
        return self.tracker.prune_expired(now)

    def spawn_test_bars(self) -> None:
        """Fill the board with a few fake cooldowns to check rendering."""
        realm = self.config.get("player", {}).get("realm") or "Realm"
        self.tracker.start(display_name(self.self_peer), 57994, 12)
        self.tracker.start(f"MageFriend-{realm}", 2139, 25)
        self.tracker.start(f"RogueFriend-{realm}", 1766, 15)

    # ------------------------------------------------------------------
    # Read side for the renderer
    # ------------------------------------------------------------------

    def snapshot_rows(self, now: Optional[float] = None) -> List[CooldownRow]:
        return self.tracker.snapshot_rows(now)

    def get_capabilities(self, peer: str) -> Optional[FrozenSet[int]]:
        return self.tracker.get_capabilities(peer)

    def should_treat_as_present(self, name: str, qualified_name: Optional[str] = None) -> bool:
        return self.engine.should_treat_as_present(name, qualified_name)
