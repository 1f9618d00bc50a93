"""
PartyCD transport registry.
Builds the party channel named by the ``channel.type`` config key.
"""

import logging
from typing import Callable, Dict, Optional

from partycd.transport.base import MAX_PAYLOAD_BYTES, BaseTransport
from partycd.transport.loopback import LoopbackHub, LoopbackTransport

__all__ = [
    "BaseTransport",
    "LoopbackHub",
    "LoopbackTransport",
    "MAX_PAYLOAD_BYTES",
    "create_transport",
    "get_available_transports",
]

logger = logging.getLogger("PartyCD.Transport")

_TRANSPORT_CLASSES: Dict[str, type] = {"loopback": LoopbackTransport}


def _register_builtin_transports():
    try:
        from partycd.transport.mqtt_transport import HAS_PAHO, MQTTTransport

        if HAS_PAHO:
            _TRANSPORT_CLASSES["mqtt"] = MQTTTransport
        else:
            logger.debug("MQTT transport unavailable (paho-mqtt not installed)")
    except ImportError:
        logger.debug("MQTT transport unavailable")


def get_available_transports():
    """Return names of transports whose libraries are installed."""
    if "mqtt" not in _TRANSPORT_CLASSES:
        _register_builtin_transports()
    return sorted(_TRANSPORT_CLASSES)


def create_transport(
    config: dict,
    peer: str,
    hub: Optional[LoopbackHub] = None,
    on_message: Optional[Callable] = None,
) -> BaseTransport:
    """Build the transport for the ``channel`` section *config*.

    Raises:
        ValueError: Unknown or unavailable transport type, or a loopback
            transport requested without a hub.
    """
    kind = config.get("type", "loopback")
    if kind not in get_available_transports():
        raise ValueError(
            f"Transport {kind!r} is not available (installed: {', '.join(get_available_transports())})"
        )
    if kind == "loopback":
        if hub is None:
            raise ValueError("loopback transport needs a LoopbackHub")
        return LoopbackTransport(config, hub, peer, on_message=on_message)
    return _TRANSPORT_CLASSES[kind](config, peer, on_message=on_message)
