"""
PartyCD Ability Library.

Static table of the interchangeable interrupt abilities, one or more per
role, with their base cooldown in seconds.  Receivers trust the cooldown
carried on the wire; only the local player's effective cooldown is computed
here, from the base value and any known talent that shortens it.

Config overrides (``abilities`` section) add or replace entries::

    abilities:
      - {id: 2139, name: Counterspell, role: MAGE, cooldown: 24}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger("PartyCD.Abilities")


@dataclass(frozen=True)
class AbilityInfo:
    """A single timed ability."""

    ability_id: int
    name: str
    role: str
    base_cooldown: float

    def to_dict(self) -> dict:
        return {
            "id": self.ability_id,
            "name": self.name,
            "role": self.role,
            "cooldown": self.base_cooldown,
        }

    @classmethod
    def from_dict(cls, d: dict) -> AbilityInfo:
        return cls(
            ability_id=int(d["id"]),
            name=str(d.get("name", d["id"])),
            role=str(d.get("role", "UNKNOWN")).upper(),
            base_cooldown=float(d["cooldown"]),
        )


@dataclass(frozen=True)
class TalentModifier:
    """A talent that replaces an ability's base cooldown when known."""

    talent: str
    role: str
    talent_id: int
    modifies: int
    alt_cooldown: float


DEFAULT_ABILITIES: List[AbilityInfo] = [
    AbilityInfo(47528, "Mind Freeze", "DEATHKNIGHT", 15),
    AbilityInfo(183752, "Disrupt", "DEMONHUNTER", 15),
    AbilityInfo(106839, "Skull Bash", "DRUID", 15),
    AbilityInfo(351338, "Quell", "EVOKER", 15),
    AbilityInfo(147362, "Counter Shot", "HUNTER", 24),
    AbilityInfo(187707, "Muzzle", "HUNTER", 15),
    AbilityInfo(2139, "Counterspell", "MAGE", 25),
    AbilityInfo(116705, "Spear Hand Strike", "MONK", 15),
    AbilityInfo(96231, "Rebuke", "PALADIN", 15),
    AbilityInfo(15487, "Silence", "PRIEST", 30),
    AbilityInfo(1766, "Kick", "ROGUE", 15),
    AbilityInfo(57994, "Wind Shear", "SHAMAN", 12),
    AbilityInfo(6552, "Pummel", "WARRIOR", 15),
]

DEFAULT_MODIFIERS: List[TalentModifier] = [
    TalentModifier("Coldthirst", "DEATHKNIGHT", 378848, modifies=47528, alt_cooldown=12),
    TalentModifier("Quick Witted", "MAGE", 382297, modifies=2139, alt_cooldown=20),
]


class AbilityLibrary:
    """Lookup table of valid abilities.

    Args:
        abilities: Entries to load (defaults to :data:`DEFAULT_ABILITIES`).
        modifiers: Talent modifiers (defaults to :data:`DEFAULT_MODIFIERS`).
    """

    def __init__(
        self,
        abilities: Optional[Iterable[AbilityInfo]] = None,
        modifiers: Optional[Iterable[TalentModifier]] = None,
    ):
        self._abilities: Dict[int, AbilityInfo] = {}
        self._modifiers: Dict[int, List[TalentModifier]] = {}
        for info in DEFAULT_ABILITIES if abilities is None else abilities:
            self.register(info)
        for mod in DEFAULT_MODIFIERS if modifiers is None else modifiers:
            self._modifiers.setdefault(mod.modifies, []).append(mod)

    @classmethod
    def from_config(cls, config: dict) -> AbilityLibrary:
        """Build the default library with the ``abilities`` overrides applied."""
        library = cls()
        for entry in config.get("abilities") or []:
            try:
                library.register(AbilityInfo.from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping bad ability entry %r: %s", entry, exc)
        return library

    def register(self, info: AbilityInfo) -> None:
        if info.base_cooldown <= 0 or not float(info.base_cooldown).is_integer():
            raise ValueError(f"ability {info.ability_id} needs a positive whole-second cooldown")
        self._abilities[info.ability_id] = info

    def is_valid(self, ability_id) -> bool:
        """True if *ability_id* is a known ability."""
        return ability_id in self._abilities

    def get(self, ability_id: int) -> Optional[AbilityInfo]:
        return self._abilities.get(ability_id)

    def name_of(self, ability_id: int) -> str:
        info = self._abilities.get(ability_id)
        return info.name if info else str(ability_id)

    def for_role(self, role: str) -> List[AbilityInfo]:
        role = role.upper()
        return [a for a in self._abilities.values() if a.role == role]

    def effective_cooldown(
        self, ability_id: int, known_talents: Iterable[int] = ()
    ) -> Optional[float]:
        """Cooldown for the local player, or None for an unknown ability.

        The first modifier whose talent is known replaces the base value.
        """
        info = self._abilities.get(ability_id)
        if info is None:
            return None
        known = set(known_talents)
        for mod in self._modifiers.get(ability_id, []):
            if mod.talent_id in known:
                return mod.alt_cooldown
        return info.base_cooldown

    @property
    def ids(self) -> List[int]:
        return sorted(self._abilities)

    def __iter__(self):
        return iter(sorted(self._abilities.values(), key=lambda a: (a.role, a.ability_id)))

    def __len__(self) -> int:
        return len(self._abilities)

    def __contains__(self, ability_id) -> bool:
        return self.is_valid(ability_id)
