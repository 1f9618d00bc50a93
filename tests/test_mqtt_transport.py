"""Tests for partycd/transport/mqtt_transport.py -- MQTT party channel."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from partycd.transport.mqtt_transport import HAS_PAHO, MQTTTransport


def _make_transport(config=None, **kwargs):
    cfg = {"broker_host": "localhost"}
    cfg.update(config or {})
    return MQTTTransport(cfg, "Alice-Realm", **kwargs)


# ── Construction ──────────────────────────────────────────────────────────────


def test_defaults():
    t = _make_transport()
    assert t.name == "mqtt"
    assert t._broker_host == "localhost"
    assert t._broker_port == 1883
    assert t.party_topic == "partycd/PartyCD/party"
    assert t.whisper_topic("Bob-Realm") == "partycd/PartyCD/whisper/Bob-Realm"


def test_custom_config():
    t = _make_transport(
        {
            "broker_host": "broker.example.com",
            "broker_port": 8883,
            "topic_root": "guild/",
            "prefix": "CD",
            "tls": True,
            "qos": 1,
        }
    )
    assert t._broker_host == "broker.example.com"
    assert t._broker_port == 8883
    assert t.party_topic == "guild/CD/party"
    assert t._tls is True
    assert t._qos == 1


def test_env_var_defaults(monkeypatch):
    monkeypatch.setenv("PARTYCD_MQTT_HOST", "env-broker")
    monkeypatch.setenv("PARTYCD_MQTT_USERNAME", "user1")
    t = MQTTTransport({}, "Alice-Realm")
    assert t._broker_host == "env-broker"
    assert t._username == "user1"


# ── No paho-mqtt available ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_start_raises_without_paho():
    with patch("partycd.transport.mqtt_transport.HAS_PAHO", False):
        t = _make_transport()
        with pytest.raises(ImportError, match="paho-mqtt"):
            await t.start()


# ── Outbound ──────────────────────────────────────────────────────────────────


def test_publish_noop_when_disconnected():
    t = _make_transport()
    assert t.broadcast("R|1") is True  # accepted locally, nothing to publish on


def test_broadcast_frames_sender():
    t = _make_transport()
    t._client = MagicMock()
    t._connected.set()
    t.broadcast("I|1|2139|25")
    t._client.publish.assert_called_once_with(
        "partycd/PartyCD/party", b"Alice-Realm\nI|1|2139|25", qos=0
    )


def test_whisper_uses_target_topic():
    t = _make_transport()
    t._client = MagicMock()
    t._connected.set()
    t.whisper("Bob-Realm", "A|1|x-1")
    topic = t._client.publish.call_args[0][0]
    assert topic == "partycd/PartyCD/whisper/Bob-Realm"


# ── Callbacks ─────────────────────────────────────────────────────────────────


def test_on_connect_subscribes_and_sets_event():
    t = _make_transport()
    client = MagicMock()
    t._on_connect(client, None, None, 0)
    assert t._connected.is_set()
    subscribed = [c[0][0] for c in client.subscribe.call_args_list]
    assert subscribed == ["partycd/PartyCD/party", "partycd/PartyCD/whisper/Alice-Realm"]


def test_on_connect_error_rc():
    t = _make_transport()
    t._on_connect(MagicMock(), None, None, 5)
    assert not t._connected.is_set()


def test_on_disconnect_clears_event():
    t = _make_transport()
    t._connected.set()
    t._on_disconnect(None, None, None, 1)
    assert not t._connected.is_set()


def test_on_message_noop_when_not_running():
    received = []
    t = _make_transport(on_message=lambda *a: received.append(a))
    t._running = False
    msg = MagicMock()
    msg.payload = b"Bob-Realm\nR|1"
    msg.topic = "partycd/PartyCD/party"
    t._on_message(None, None, msg)
    assert received == []


@pytest.mark.asyncio
async def test_on_message_hands_off_to_loop():
    received = []
    t = _make_transport(on_message=lambda *a: received.append(a))
    t._running = True
    t._loop = asyncio.get_running_loop()
    msg = MagicMock()
    msg.payload = b"Bob-Realm\nL|1|147362,187707"
    msg.topic = "partycd/PartyCD/party"
    t._on_message(None, None, msg)
    assert received == []
    await asyncio.sleep(0)
    assert received == [("PartyCD", "L|1|147362,187707", "Bob-Realm")]


def test_on_message_unframed_dropped():
    received = []
    t = _make_transport(on_message=lambda *a: received.append(a))
    t._running = True
    t._loop = MagicMock()
    msg = MagicMock()
    msg.payload = b"R|1"
    msg.topic = "partycd/PartyCD/party"
    t._on_message(None, None, msg)
    t._loop.call_soon_threadsafe.assert_not_called()


# ── Registration ──────────────────────────────────────────────────────────────


def test_mqtt_registered_when_paho_installed():
    from partycd.transport import get_available_transports

    if HAS_PAHO:
        assert "mqtt" in get_available_transports()
