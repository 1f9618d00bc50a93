"""Peer naming helpers.

A party member is identified either by a *qualified* name (``Name-Realm``),
which is unique across realms, or by its *display* name (``Name``), which is
what roster queries return for members on the local realm.
"""

from __future__ import annotations

from typing import Optional

REALM_SEPARATOR = "-"


def display_name(peer: str) -> str:
    """Return the short form of *peer* (everything before the first ``-``)."""
    if not peer:
        return peer
    return peer.split(REALM_SEPARATOR, 1)[0]


def realm_of(peer: str) -> Optional[str]:
    """Return the realm part of a qualified name, or None for a bare name."""
    if not peer or REALM_SEPARATOR not in peer:
        return None
    realm = peer.split(REALM_SEPARATOR, 1)[1]
    return realm or None


def is_qualified(peer: str) -> bool:
    return realm_of(peer) is not None


def qualify(peer: str, default_realm: Optional[str] = None) -> str:
    """Return *peer* in qualified form, appending *default_realm* if needed.

    Bare names stay bare when no realm is known.
    """
    if not peer or is_qualified(peer) or not default_realm:
        return peer
    return f"{peer}{REALM_SEPARATOR}{default_realm}"


def same_peer(a: str, b: str) -> bool:
    """True if *a* and *b* name the same member.

    Two qualified names must match exactly; otherwise the display forms are
    compared.
    """
    if not a or not b:
        return False
    if is_qualified(a) and is_qualified(b):
        return a == b
    return display_name(a) == display_name(b)
