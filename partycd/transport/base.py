"""
Base class for party transports.

A transport moves short opaque text payloads over one named channel: a
broadcast reaches the whole party, a whisper reaches one member.  Nothing is
guaranteed: payloads may be lost, duplicated or reordered across senders.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Optional

logger = logging.getLogger("PartyCD.Transport")

# Same ceiling as the addon-message channel the protocol was designed for
MAX_PAYLOAD_BYTES = 255

# Default outbound budget: 20 messages per second
_DEFAULT_RATE_LIMIT = 20
_DEFAULT_RATE_WINDOW = 1.0

InboundHandler = Callable[[str, str, str], None]


class BaseTransport(ABC):
    """Abstract base class for party transports."""

    name: str = "base"

    def __init__(
        self,
        config: dict,
        on_message: Optional[InboundHandler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            config: The ``channel`` section of the PartyCD config.
                    Accepts ``prefix`` (default ``PartyCD``),
                    ``rate_limit_max`` and ``rate_limit_window`` for the
                    outbound budget.
            on_message: Callback for inbound payloads.
                        Signature: on_message(prefix, payload, sender).
        """
        self.config = config
        self.prefix: str = config.get("prefix", "PartyCD")
        self._on_message_callback = on_message
        self._clock = clock
        self.logger = logging.getLogger(f"PartyCD.Transport.{self.name}")

        self._rate_limit: int = int(config.get("rate_limit_max", _DEFAULT_RATE_LIMIT))
        self._rate_window: float = float(config.get("rate_limit_window", _DEFAULT_RATE_WINDOW))
        self._sent: Deque[float] = deque()

    def set_handler(self, on_message: Optional[InboundHandler]) -> None:
        self._on_message_callback = on_message

    def _check_outbound(self, payload: str) -> bool:
        """Return True if *payload* may be sent now."""
        if len(payload.encode("utf-8")) > MAX_PAYLOAD_BYTES:
            self.logger.warning(
                "[%s] Dropping oversize payload (%d bytes)", self.name, len(payload.encode("utf-8"))
            )
            return False

        now = self._clock()
        window_start = now - self._rate_window
        while self._sent and self._sent[0] < window_start:
            self._sent.popleft()
        if len(self._sent) >= self._rate_limit:
            self.logger.warning(
                "[%s] Outbound rate limit hit (%d msg/%ss), dropping %.40s",
                self.name,
                self._rate_limit,
                self._rate_window,
                payload,
            )
            return False
        self._sent.append(now)
        return True

    def broadcast(self, payload: str) -> bool:
        """Send *payload* to the whole party. Returns False if dropped locally."""
        if not self._check_outbound(payload):
            return False
        self._send_broadcast(payload)
        return True

    def whisper(self, target: str, payload: str) -> bool:
        """Send *payload* to *target* only. Returns False if dropped locally."""
        if not target:
            return False
        if not self._check_outbound(payload):
            return False
        self._send_whisper(target, payload)
        return True

    def deliver(self, prefix: str, payload: str, sender: str) -> None:
        """Hand an inbound payload to the registered handler."""
        if self._on_message_callback is None:
            return
        self._on_message_callback(prefix, payload, sender)

    @abstractmethod
    async def start(self):
        """Join the channel."""

    @abstractmethod
    async def stop(self):
        """Leave the channel."""

    @abstractmethod
    def _send_broadcast(self, payload: str) -> None:
        """Platform-specific broadcast."""

    @abstractmethod
    def _send_whisper(self, target: str, payload: str) -> None:
        """Platform-specific directed send."""
