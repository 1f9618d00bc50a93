"""
partycd/transport/mqtt_transport.py -- party channel over an MQTT broker.

Every member subscribes to the shared party topic and to its own whisper
topic::

    <topic_root>/<prefix>/party              broadcast
    <topic_root>/<prefix>/whisper/<peer>     directed, one per member

MQTT carries no sender identity, so each payload is framed as
``<sender>\\n<payload>``.  paho-mqtt runs its network loop on its own thread;
inbound payloads are handed to the asyncio loop with
``call_soon_threadsafe`` so that protocol handlers stay single-threaded.

Config (``channel`` section)::

    channel:
      type: mqtt
      broker_host: localhost   (or env PARTYCD_MQTT_HOST)
      broker_port: 1883
      topic_root: partycd
      username: ...            (or env PARTYCD_MQTT_USERNAME)
      password: ...            (or env PARTYCD_MQTT_PASSWORD)
      keepalive: 60
      qos: 0
      tls: false

Install::

    pip install partycd[mqtt]   # or: pip install paho-mqtt
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from typing import Callable, Optional

from partycd.transport.base import BaseTransport, InboundHandler

logger = logging.getLogger("PartyCD.Transport.MQTT")

try:
    import paho.mqtt.client as _mqtt_client

    HAS_PAHO = True
except ImportError:
    HAS_PAHO = False

_FRAME_SEPARATOR = "\n"


class MQTTTransport(BaseTransport):
    """Party channel backed by paho-mqtt."""

    name = "mqtt"

    def __init__(
        self,
        config: dict,
        peer: str,
        on_message: Optional[InboundHandler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(config, on_message, clock=clock)
        self.peer = peer
        self._broker_host = config.get("broker_host", os.getenv("PARTYCD_MQTT_HOST", "localhost"))
        self._broker_port = int(config.get("broker_port", os.getenv("PARTYCD_MQTT_PORT", "1883")))
        self._topic_root = config.get("topic_root", "partycd").rstrip("/")
        self._username = config.get("username", os.getenv("PARTYCD_MQTT_USERNAME", ""))
        self._password = config.get("password", os.getenv("PARTYCD_MQTT_PASSWORD", ""))
        self._keepalive = int(config.get("keepalive", 60))
        self._qos = int(config.get("qos", 0))
        self._tls = bool(config.get("tls", False))
        self._client_id = config.get("client_id", f"partycd-{os.getpid()}")
        self._client = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected = threading.Event()
        self._running = False

    # ── Topics ────────────────────────────────────────────────────────────────

    @property
    def party_topic(self) -> str:
        return f"{self._topic_root}/{self.prefix}/party"

    def whisper_topic(self, peer: str) -> str:
        return f"{self._topic_root}/{self.prefix}/whisper/{peer}"

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self):
        """Connect to the broker and subscribe to the party and whisper topics."""
        if not HAS_PAHO:
            raise ImportError("paho-mqtt is not installed. Install with: pip install paho-mqtt")

        self._loop = asyncio.get_running_loop()
        self._running = True

        self._client = _mqtt_client.Client(
            _mqtt_client.CallbackAPIVersion.VERSION2, client_id=self._client_id
        )
        if self._username:
            self._client.username_pw_set(self._username, self._password)
        if self._tls:
            self._client.tls_set()

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        self._client.connect(self._broker_host, self._broker_port, self._keepalive)
        self._client.loop_start()

        await asyncio.to_thread(self._connected.wait, 10.0)
        if not self._connected.is_set():
            raise ConnectionError(
                f"MQTT: Could not connect to {self._broker_host}:{self._broker_port} within 10 s"
            )

        logger.info(
            "MQTT transport connected to %s:%d as %s (party=%r)",
            self._broker_host,
            self._broker_port,
            self.peer,
            self.party_topic,
        )

    async def stop(self):
        """Disconnect from the broker."""
        self._running = False
        if self._client:
            self._client.loop_stop()
            self._client.disconnect()
            self._client = None
        logger.info("MQTT transport disconnected")

    # ── Outbound ──────────────────────────────────────────────────────────────

    def _publish(self, topic: str, payload: str) -> None:
        if not (self._client and self._connected.is_set()):
            logger.debug("MQTT not connected, dropping %.40s", payload)
            return
        framed = f"{self.peer}{_FRAME_SEPARATOR}{payload}"
        self._client.publish(topic, framed.encode("utf-8"), qos=self._qos)

    def _send_broadcast(self, payload: str) -> None:
        self._publish(self.party_topic, payload)

    def _send_whisper(self, target: str, payload: str) -> None:
        self._publish(self.whisper_topic(target), payload)

    # ── MQTT callbacks (execute in paho's internal thread) ────────────────────

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        if rc == 0:
            client.subscribe(self.party_topic, qos=self._qos)
            client.subscribe(self.whisper_topic(self.peer), qos=self._qos)
            self._connected.set()
            logger.debug("MQTT connected (rc=%s), subscribed to %r", rc, self.party_topic)
        else:
            logger.error("MQTT connect failed: rc=%s", rc)

    def _on_disconnect(self, client, userdata, flags, rc, properties=None):
        if rc != 0:
            logger.warning("MQTT unexpected disconnect (rc=%s), will auto-reconnect", rc)
        self._connected.clear()

    def _on_message(self, client, userdata, msg):
        """Unframe an inbound payload and hand it to the event loop."""
        if not self._running:
            return

        text = msg.payload.decode("utf-8", errors="replace")
        sender, sep, payload = text.partition(_FRAME_SEPARATOR)
        if not sep or not sender:
            logger.debug("MQTT unframed payload on %r dropped", msg.topic)
            return

        if self._loop and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.deliver, self.prefix, payload, sender)
