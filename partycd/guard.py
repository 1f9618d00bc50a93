"""
TransmissionGuard -- report each local ability use to the party only once.

One real ability use can raise several local "succeeded" events (retries of
the same cast id, or duplicated events without any cast id).  The guard
suppresses the repeats on the *broadcast* path only; the caller always
updates its own tracker first.

Config (``guard`` section)::

    guard:
      cast_window_s: 0.60
      ability_window_s: 0.25
      sweep_interval_s: 2.0
      max_age_s: 3.0
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Hashable, Optional

logger = logging.getLogger("PartyCD.Guard")

_DEFAULT_CAST_WINDOW = 0.60
_DEFAULT_ABILITY_WINDOW = 0.25
_DEFAULT_SWEEP_INTERVAL = 2.0
_DEFAULT_MAX_AGE = 3.0


class TransmissionGuard:
    """Short-lived caches of recently transmitted cast ids and ability ids."""

    def __init__(self, config: Optional[dict] = None, clock: Callable[[], float] = time.monotonic):
        cfg = (config or {}).get("guard", {}) or {}
        self.cast_window: float = float(cfg.get("cast_window_s", _DEFAULT_CAST_WINDOW))
        self.ability_window: float = float(cfg.get("ability_window_s", _DEFAULT_ABILITY_WINDOW))
        self.sweep_interval: float = float(cfg.get("sweep_interval_s", _DEFAULT_SWEEP_INTERVAL))
        self.max_age: float = float(cfg.get("max_age_s", _DEFAULT_MAX_AGE))
        self._clock = clock
        self._by_cast: Dict[Hashable, float] = {}
        self._by_ability: Dict[int, float] = {}
        self._last_sweep: Optional[float] = None

    def should_transmit(
        self, cast_id: Optional[Hashable], ability_id: int, now: Optional[float] = None
    ) -> bool:
        """Return False if this use was already reported moments ago."""
        now = self._clock() if now is None else now
        self._maybe_sweep(now)

        if cast_id:
            seen = self._by_cast.get(cast_id)
            if seen is not None and now - seen < self.cast_window:
                logger.debug("Suppressed duplicate cast %s (%.2fs)", cast_id, now - seen)
                return False

        seen = self._by_ability.get(ability_id)
        if seen is not None and now - seen < self.ability_window:
            logger.debug("Suppressed repeat of ability %s (%.2fs)", ability_id, now - seen)
            return False

        if cast_id:
            self._by_cast[cast_id] = now
        self._by_ability[ability_id] = now
        return True

    def _maybe_sweep(self, now: float) -> None:
        if self._last_sweep is not None and now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now
        cutoff = now - self.max_age
        for cache in (self._by_cast, self._by_ability):
            for key in [k for k, seen in cache.items() if seen < cutoff]:
                del cache[key]

    def __len__(self) -> int:
        return len(self._by_cast) + len(self._by_ability)
