"""
In-process party channel.

:class:`LoopbackHub` connects several :class:`LoopbackTransport` instances
as if they shared one group channel.  Deliveries are queued on the hub's
scheduler rather than dispatched inline, so a handler that replies never
re-enters another handler.  Like a real group channel, a broadcast also
reaches its sender.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from partycd.peer import same_peer
from partycd.transport.base import BaseTransport, InboundHandler

logger = logging.getLogger("PartyCD.Transport.Loopback")


class LoopbackHub:
    """Shared medium for a set of loopback transports.

    Args:
        scheduler: Object with ``call_later(delay, callback)``.
        latency: Delivery delay in seconds.
    """

    def __init__(self, scheduler: Any, latency: float = 0.05):
        self._scheduler = scheduler
        self.latency = latency
        self._members: Dict[str, LoopbackTransport] = {}
        self.sent: List[tuple] = []  # (sender, target or None, payload)

    def attach(self, transport: LoopbackTransport) -> None:
        self._members[transport.peer] = transport

    def detach(self, peer: str) -> None:
        self._members.pop(peer, None)

    @property
    def members(self) -> List[str]:
        return list(self._members)

    def _schedule(self, target: LoopbackTransport, prefix: str, payload: str, sender: str) -> None:
        def _deliver() -> None:
            # The target may have left the channel while the payload was in flight
            if self._members.get(target.peer) is target:
                target.deliver(prefix, payload, sender)

        self._scheduler.call_later(self.latency, _deliver)

    def broadcast(self, sender: str, prefix: str, payload: str) -> None:
        self.sent.append((sender, None, payload))
        for member in list(self._members.values()):
            self._schedule(member, prefix, payload, sender)

    def whisper(self, sender: str, target: str, prefix: str, payload: str) -> None:
        self.sent.append((sender, target, payload))
        for member in list(self._members.values()):
            if same_peer(member.peer, target):
                self._schedule(member, prefix, payload, sender)
                return
        logger.debug("Whisper to %s dropped: not on channel", target)


class LoopbackTransport(BaseTransport):
    """One member's end of a :class:`LoopbackHub`."""

    name = "loopback"

    def __init__(
        self,
        config: dict,
        hub: LoopbackHub,
        peer: str,
        on_message: Optional[InboundHandler] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        if clock is None:
            clock = hub._scheduler
        super().__init__(config, on_message, clock=clock)
        self.hub = hub
        self.peer = peer
        self._running = False

    async def start(self):
        self.open()

    async def stop(self):
        self.close()

    def open(self) -> None:
        self._running = True
        self.hub.attach(self)

    def close(self) -> None:
        self._running = False
        self.hub.detach(self.peer)

    def _send_broadcast(self, payload: str) -> None:
        if not self._running:
            return
        self.hub.broadcast(self.peer, self.prefix, payload)

    def _send_whisper(self, target: str, payload: str) -> None:
        if not self._running:
            return
        self.hub.whisper(self.peer, target, self.prefix, payload)
