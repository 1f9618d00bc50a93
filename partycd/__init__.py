"""PartyCD: shared interrupt cooldowns for small groups over a broadcast channel."""

try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("partycd")
except Exception:
    __version__ = "2026.10.0"  # fallback

__all__ = ["__version__"]
