"""
PartyCD wire codec.

Messages are short pipe-delimited ASCII strings.  The first field is a
one-letter kind tag followed by the protocol version::

    I|v|abilityId|seconds   ability used, whole seconds (broadcast)
    L|v|id,id,...           capability list, sorted ascending (broadcast)
    R|v                     capability request (broadcast)
    Q|v|requestId           presence query (broadcast)
    A|v|requestId           presence ack (whispered back to the querier)

The oldest format carries no tag at all: ``v|abilityId|seconds``.

:func:`decode` never raises.  Anything it cannot use comes back as a
:class:`ParseFailure` so the caller can drop it; a different protocol
version is treated the same way, which keeps older clients from
misreading newer messages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Tuple, Union

logger = logging.getLogger("PartyCD.Codec")

PROTOCOL_VERSION = 1
FIELD_SEPARATOR = "|"
LIST_SEPARATOR = ","


class Kind(str, Enum):
    """One-letter message kind tags."""

    ABILITY_USED = "I"
    CAPABILITY_LIST = "L"
    CAPABILITY_REQUEST = "R"
    PRESENCE_QUERY = "Q"
    PRESENCE_ACK = "A"


@dataclass(frozen=True)
class AbilityUsed:
    ability_id: int
    duration: int
    legacy: bool = False


@dataclass(frozen=True)
class CapabilityList:
    ability_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class CapabilityRequest:
    pass


@dataclass(frozen=True)
class PresenceQuery:
    request_id: str


@dataclass(frozen=True)
class PresenceAck:
    request_id: str


@dataclass(frozen=True)
class ParseFailure:
    """A message that was dropped, and why."""

    reason: str
    raw: str = field(default="", compare=False)


Message = Union[AbilityUsed, CapabilityList, CapabilityRequest, PresenceQuery, PresenceAck]
DecodeResult = Union[Message, ParseFailure]


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _check_request_id(request_id: str) -> None:
    if not request_id or FIELD_SEPARATOR in request_id:
        raise ValueError(f"invalid request id: {request_id!r}")


def _whole_seconds(value: float) -> int:
    # Fractions are truncated; the wire only carries whole seconds
    seconds = int(value)
    if seconds <= 0:
        raise ValueError(f"duration must be at least one second, got {value}")
    return seconds


def encode(message: Message, version: int = PROTOCOL_VERSION) -> str:
    """Serialise *message* to its wire form.

    Raises:
        ValueError: If the message could not be decoded back (non-positive
            duration, empty request id, ...).
        TypeError: For objects that are not PartyCD messages.
    """
    if isinstance(message, AbilityUsed):
        seconds = _whole_seconds(message.duration)
        fields = [str(version), str(int(message.ability_id)), str(seconds)]
        if not message.legacy:
            fields.insert(0, Kind.ABILITY_USED.value)
        return FIELD_SEPARATOR.join(fields)

    if isinstance(message, CapabilityList):
        ids = LIST_SEPARATOR.join(str(i) for i in sorted(set(message.ability_ids)))
        return FIELD_SEPARATOR.join([Kind.CAPABILITY_LIST.value, str(version), ids])

    if isinstance(message, CapabilityRequest):
        return FIELD_SEPARATOR.join([Kind.CAPABILITY_REQUEST.value, str(version)])

    if isinstance(message, PresenceQuery):
        _check_request_id(message.request_id)
        return FIELD_SEPARATOR.join([Kind.PRESENCE_QUERY.value, str(version), message.request_id])

    if isinstance(message, PresenceAck):
        _check_request_id(message.request_id)
        return FIELD_SEPARATOR.join([Kind.PRESENCE_ACK.value, str(version), message.request_id])

    raise TypeError(f"cannot encode {type(message).__name__}")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _parse_int(text: Optional[str]) -> Optional[int]:
    """Parse a plain ASCII digit string; signs, separators and other scripts fail."""
    if text is None:
        return None
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    return int(text)


def _decode_ability_used(
    fields: list,
    raw: str,
    is_valid_ability: Callable[[int], bool],
    legacy: bool,
) -> DecodeResult:
    ability_id = _parse_int(fields[0] if fields else None)
    duration = _parse_int(fields[1] if len(fields) > 1 else None)
    if ability_id is None or duration is None:
        return ParseFailure("non-numeric ability field", raw)
    if duration <= 0:
        return ParseFailure("non-positive duration", raw)
    if not is_valid_ability(ability_id):
        return ParseFailure(f"unknown ability {ability_id}", raw)
    return AbilityUsed(ability_id=ability_id, duration=duration, legacy=legacy)


def _decode_capability_list(
    payload: Optional[str], is_valid_ability: Callable[[int], bool]
) -> CapabilityList:
    ids = set()
    for part in (payload or "").split(LIST_SEPARATOR):
        if not part.strip():
            continue
        ability_id = _parse_int(part)
        if ability_id is not None and is_valid_ability(ability_id):
            ids.add(ability_id)
        else:
            logger.debug("Capability list entry %r dropped", part)
    return CapabilityList(tuple(sorted(ids)))


def decode(
    raw: str,
    is_valid_ability: Callable[[int], bool],
    version: int = PROTOCOL_VERSION,
) -> DecodeResult:
    """Parse a wire string into a typed message or a :class:`ParseFailure`.

    Args:
        raw: The payload as received from the transport.
        is_valid_ability: Lookup for the externally supplied ability set.
        version: The locally supported protocol version.
    """
    if not isinstance(raw, str) or not raw:
        return ParseFailure("empty message", raw if isinstance(raw, str) else "")

    fields = raw.split(FIELD_SEPARATOR)
    tag = fields[0]

    try:
        kind = Kind(tag)
    except ValueError:
        kind = None

    if kind is None:
        # Untagged: the oldest ability-used shape starts with the version.
        legacy_version = _parse_int(tag)
        if legacy_version is None:
            return ParseFailure(f"unknown kind {tag!r}", raw)
        if legacy_version != version:
            return ParseFailure(f"unsupported version {legacy_version}", raw)
        return _decode_ability_used(fields[1:], raw, is_valid_ability, legacy=True)

    msg_version = _parse_int(fields[1] if len(fields) > 1 else None)
    if msg_version is None:
        return ParseFailure("missing version", raw)
    if msg_version != version:
        return ParseFailure(f"unsupported version {msg_version}", raw)

    rest = fields[2:]
    if kind is Kind.ABILITY_USED:
        return _decode_ability_used(rest, raw, is_valid_ability, legacy=False)
    if kind is Kind.CAPABILITY_LIST:
        return _decode_capability_list(rest[0] if rest else None, is_valid_ability)
    if kind is Kind.CAPABILITY_REQUEST:
        return CapabilityRequest()

    request_id = rest[0] if rest else ""
    if not request_id:
        return ParseFailure("empty request id", raw)
    if kind is Kind.PRESENCE_QUERY:
        return PresenceQuery(request_id)
    return PresenceAck(request_id)
