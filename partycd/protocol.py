"""
ProtocolEngine -- presence handshake and capability gossip.

Presence: the local peer broadcasts a query carrying a fresh request id and
waits a fixed window for acks, which each peer whispers back at most once
per request id.  Members who stay silent are announced once, in a single
summary line, and are not announced again until the group session ends.
While a query is in flight every member gets a short grace period so the
board does not flicker while acks are still arriving.

Capabilities: each peer broadcasts the sorted list of abilities it actually
has.  A list always replaces the previous one for that peer.

Config (``presence`` and ``capabilities`` sections)::

    presence:
      query_timeout_s: 2.5
      grace_s: 2.8
      debounce_s: 0.8
      max_summary_names: 6
    capabilities:
      request_interval_s: 2.0
      broadcast_interval_s: 1.0
"""

from __future__ import annotations

import itertools
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from partycd.abilities import AbilityLibrary
from partycd.codec import (
    AbilityUsed,
    CapabilityList,
    CapabilityRequest,
    Message,
    PresenceAck,
    PresenceQuery,
    encode,
)
from partycd.peer import display_name, same_peer
from partycd.tracker import CooldownTracker
from partycd.transport.base import BaseTransport

logger = logging.getLogger("PartyCD.Protocol")

_DEFAULT_QUERY_TIMEOUT = 2.5
_DEFAULT_GRACE = 2.8
_DEFAULT_DEBOUNCE = 0.8
_DEFAULT_MAX_SUMMARY_NAMES = 6
_DEFAULT_REQUEST_INTERVAL = 2.0
_DEFAULT_BROADCAST_INTERVAL = 1.0
_SEEN_REQUESTS_MAX = 4096

MembersSource = Union[Sequence[str], Callable[[], Sequence[str]]]


@dataclass(frozen=True)
class PresenceSession:
    """The one presence query currently waiting for acks."""

    request_id: str
    members: Tuple[str, ...]
    started_at: float


@dataclass
class PresenceKnowledge:
    """What this group session has learned about who runs the software."""

    confirmed: Set[str] = field(default_factory=set)
    announced_missing: Set[str] = field(default_factory=set)
    pending_grace: Dict[str, float] = field(default_factory=dict)  # display name -> deadline

    def clear(self) -> None:
        self.confirmed.clear()
        self.announced_missing.clear()
        self.pending_grace.clear()


def summarize_missing(missing: Sequence[str], max_names: int = _DEFAULT_MAX_SUMMARY_NAMES) -> Optional[str]:
    """One-line summary of *missing* (already sorted), truncated after *max_names*."""
    total = len(missing)
    if total == 0:
        return None
    shown = ", ".join(missing[:max_names])
    extra = total - min(total, max_names)
    noun = "player" if total == 1 else "players"
    if extra > 0:
        return f"PartyCD missing: {total} {noun} ({shown} +{extra} more)"
    return f"PartyCD missing: {total} {noun} ({shown})"


class ProtocolEngine:
    """Request/response handshakes over an unreliable party channel.

    Args:
        self_peer: Qualified name of the local player.
        transport: Outbound channel.
        library: Valid ability lookup.
        tracker: Store that receives capability sets and ability uses.
        config: PartyCD config dict.
        clock: Monotonic clock.
        scheduler: Object with ``call_later(delay, callback)``.
        notify: Receives the missing-peers summary line.
        on_refresh: Called after any change the board should redraw for.
        instance_id: Token that makes request ids unique to this process.
    """

    def __init__(
        self,
        self_peer: str,
        transport: BaseTransport,
        library: AbilityLibrary,
        tracker: CooldownTracker,
        scheduler,
        config: Optional[dict] = None,
        clock: Callable[[], float] = time.monotonic,
        notify: Optional[Callable[[str], None]] = None,
        on_refresh: Optional[Callable[[], None]] = None,
        instance_id: Optional[str] = None,
    ) -> None:
        config = config or {}
        presence_cfg = config.get("presence", {}) or {}
        caps_cfg = config.get("capabilities", {}) or {}

        self.self_peer = self_peer
        self._transport = transport
        self._library = library
        self._tracker = tracker
        self._scheduler = scheduler
        self._clock = clock
        self._notify = notify
        self._on_refresh = on_refresh

        self.enabled: bool = bool(presence_cfg.get("enabled", True))
        self.query_timeout: float = float(presence_cfg.get("query_timeout_s", _DEFAULT_QUERY_TIMEOUT))
        self.grace: float = float(presence_cfg.get("grace_s", _DEFAULT_GRACE))
        self.debounce_delay: float = float(presence_cfg.get("debounce_s", _DEFAULT_DEBOUNCE))
        self.max_summary_names: int = int(
            presence_cfg.get("max_summary_names", _DEFAULT_MAX_SUMMARY_NAMES)
        )
        self.request_interval: float = float(
            caps_cfg.get("request_interval_s", _DEFAULT_REQUEST_INTERVAL)
        )
        self.broadcast_interval: float = float(
            caps_cfg.get("broadcast_interval_s", _DEFAULT_BROADCAST_INTERVAL)
        )

        # Set by the owner when the group is too large for all-to-all presence
        self.suppressed = False

        self.session: Optional[PresenceSession] = None
        self.knowledge = PresenceKnowledge()
        self._seen_ids: Set[str] = set()
        self._seen_order: Deque[str] = deque(maxlen=_SEEN_REQUESTS_MAX)
        self._debounce_token: Optional[int] = None

        self.instance_id = instance_id or uuid.uuid4().hex[:8]
        self._counter = itertools.count(1)
        self._debounce_seq = itertools.count(1)

        self.own_capabilities: Tuple[int, ...] = ()
        self._last_caps_broadcast: Optional[float] = None
        self._last_caps_request: Optional[float] = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _refresh(self) -> None:
        if self._on_refresh is not None:
            self._on_refresh()

    def _broadcast(self, message: Message) -> bool:
        return self._transport.broadcast(encode(message))

    def _next_request_id(self) -> str:
        return f"{self.instance_id}-{next(self._counter)}"

    def _is_self(self, peer: str) -> bool:
        return same_peer(peer, self.self_peer)

    def _is_confirmed(self, peer: str) -> bool:
        if peer in self.knowledge.confirmed:
            return True
        return any(same_peer(peer, c) for c in self.knowledge.confirmed)

    # ------------------------------------------------------------------
    # Presence: querying side
    # ------------------------------------------------------------------

    @property
    def is_pending(self) -> bool:
        return self.session is not None

    def initiate_presence_query(self, members: Sequence[str]) -> Optional[str]:
        """Broadcast a presence query for *members*.

        Returns the new request id, or None when a query is already in
        flight, fewer than two members are known, or presence checks are
        disabled or suppressed for this group.
        """
        if not self.enabled or self.suppressed:
            logger.debug("Presence query skipped (enabled=%s suppressed=%s)", self.enabled, self.suppressed)
            return None
        if self.session is not None:
            logger.debug("Presence query skipped: %s still pending", self.session.request_id)
            return None

        snapshot = tuple(dict.fromkeys(m for m in members if m))
        if len(snapshot) < 2:
            return None

        now = self._clock()
        request_id = self._next_request_id()
        self.session = PresenceSession(request_id=request_id, members=snapshot, started_at=now)

        deadline = now + self.grace
        for member in snapshot:
            self.knowledge.pending_grace[display_name(member)] = deadline

        self._broadcast(PresenceQuery(request_id))
        self._scheduler.call_later(self.query_timeout, lambda rid=request_id: self.resolve_session(rid))
        logger.debug("Presence query %s sent to %d member(s)", request_id, len(snapshot))
        self._refresh()
        return request_id

    def debounce_then_query(self, members: MembersSource) -> bool:
        """Collapse bursts of triggers into one query after a short delay.

        *members* may be a callable, in which case the roster is read when
        the delay fires.  Returns False if a debounce was already scheduled.
        """
        if self._debounce_token is not None:
            return False
        token = next(self._debounce_seq)
        self._debounce_token = token

        def _fire() -> None:
            if self._debounce_token != token:
                # Group exit happened while we waited
                return
            self._debounce_token = None
            roster = members() if callable(members) else members
            self.initiate_presence_query(roster)

        self._scheduler.call_later(self.debounce_delay, _fire)
        return True

    def on_presence_ack(self, sender: str, request_id: str) -> None:
        """Record that *sender* runs the software, whatever session it answers."""
        if not sender:
            return
        self.knowledge.confirmed.add(sender)
        self.knowledge.pending_grace.pop(display_name(sender), None)
        logger.debug("Presence ack from %s (%s)", sender, request_id)
        self._refresh()

    def resolve_session(self, request_id: str) -> List[str]:
        """Close the session *request_id* and announce silent members.

        A stale or repeated call is a no-op.  Returns the newly missing
        members (sorted).
        """
        session = self.session
        if session is None or session.request_id != request_id:
            return []
        self.session = None

        missing = sorted(
            m
            for m in session.members
            if not self._is_self(m)
            and not self._is_confirmed(m)
            and m not in self.knowledge.announced_missing
        )
        for name in missing:
            self.knowledge.announced_missing.add(name)
            self.knowledge.pending_grace.pop(display_name(name), None)

        summary = summarize_missing(missing, self.max_summary_names)
        if summary:
            logger.info(summary)
            if self._notify is not None:
                self._notify(summary)
        self._refresh()
        return missing

    # ------------------------------------------------------------------
    # Presence: answering side
    # ------------------------------------------------------------------

    def on_presence_query(self, sender: str, request_id: str) -> bool:
        """Whisper one ack per request id back to *sender*."""
        if not sender or not request_id or request_id in self._seen_ids:
            return False
        if len(self._seen_order) == self._seen_order.maxlen:
            self._seen_ids.discard(self._seen_order[0])
        self._seen_ids.add(request_id)
        self._seen_order.append(request_id)
        return self._transport.whisper(sender, encode(PresenceAck(request_id)))

    def should_treat_as_present(self, name: str, qualified_name: Optional[str] = None) -> bool:
        """True if the member should be shown as running the software now."""
        if qualified_name and qualified_name in self.knowledge.confirmed:
            return True
        deadline = self.knowledge.pending_grace.get(name)
        if deadline is not None:
            if deadline > self._clock():
                return True
            del self.knowledge.pending_grace[name]
        return any(display_name(c) == name for c in self.knowledge.confirmed)

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def request_capabilities(self) -> bool:
        """Ask the party to rebroadcast capabilities, answering it ourselves too."""
        now = self._clock()
        if self._last_caps_request is not None and now - self._last_caps_request < self.request_interval:
            return False
        self._last_caps_request = now
        self._broadcast(CapabilityRequest())
        self.broadcast_own_capabilities()
        return True

    def broadcast_own_capabilities(self, ability_ids: Optional[Iterable[int]] = None) -> bool:
        """Record and (throttled) broadcast the local player's abilities.

        The tracker's entry for self is updated even when the broadcast
        itself is skipped.
        """
        if ability_ids is not None:
            self.own_capabilities = tuple(
                sorted({int(i) for i in ability_ids if self._library.is_valid(i)})
            )
        self._tracker.set_capabilities(self.self_peer, self.own_capabilities)

        if not self.own_capabilities:
            return False
        now = self._clock()
        if (
            self._last_caps_broadcast is not None
            and now - self._last_caps_broadcast < self.broadcast_interval
        ):
            logger.debug("Capability broadcast throttled")
            return False
        self._last_caps_broadcast = now
        return self._broadcast(CapabilityList(self.own_capabilities))

    def on_capability_request(self, sender: str) -> None:
        self.broadcast_own_capabilities()

    def on_capability_list(self, sender: str, ability_ids: Iterable[int]) -> None:
        """Replace *sender*'s capability set with its valid abilities."""
        if not sender:
            return
        self._tracker.set_capabilities(
            sender, [i for i in ability_ids if self._library.is_valid(i)]
        )

    # ------------------------------------------------------------------
    # Dispatch / session boundary
    # ------------------------------------------------------------------

    def handle_message(self, sender: str, message: Message) -> None:
        """Apply one decoded inbound message from *sender*."""
        if isinstance(message, AbilityUsed):
            self._tracker.start(sender, message.ability_id, message.duration)
        elif isinstance(message, CapabilityList):
            self.on_capability_list(sender, message.ability_ids)
        elif isinstance(message, CapabilityRequest):
            self.on_capability_request(sender)
        elif isinstance(message, PresenceQuery):
            self.on_presence_query(sender, message.request_id)
        elif isinstance(message, PresenceAck):
            self.on_presence_ack(sender, message.request_id)
        else:
            raise TypeError(f"unhandled message type {type(message).__name__}")

    def on_group_exit(self) -> None:
        """Forget everything learned in this group session."""
        self.session = None
        self.knowledge.clear()
        self._seen_ids.clear()
        self._seen_order.clear()
        self._debounce_token = None
        self._refresh()
