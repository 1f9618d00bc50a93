"""PartyCD configuration loading and validation.

Configs are YAML files whose sections are merged over :data:`DEFAULT_CONFIG`,
so a file only needs the keys it changes.  Call :func:`validate_config`
right after loading to fail fast with a readable message instead of a
``KeyError`` deep inside the protocol engine.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger("PartyCD.Config")

CONFIG_ENV_VAR = "PARTYCD_CONFIG"

DEFAULT_CONFIG: Dict[str, Any] = {
    "player": {"name": "Player", "realm": ""},
    "channel": {
        "type": "loopback",
        "prefix": "PartyCD",
        "rate_limit_max": 20,
        "rate_limit_window": 1.0,
    },
    "presence": {
        "enabled": True,
        "query_timeout_s": 2.5,
        "grace_s": 2.8,
        "debounce_s": 0.8,
        "max_summary_names": 6,
        "max_group_size": 5,
    },
    "capabilities": {
        "request_interval_s": 2.0,
        "broadcast_interval_s": 1.0,
    },
    "guard": {
        "cast_window_s": 0.60,
        "ability_window_s": 0.25,
        "sweep_interval_s": 2.0,
        "max_age_s": 3.0,
    },
    "board": {"tick_s": 0.1},
    "abilities": [],
}

REQUIRED_SECTIONS: List[str] = ["player", "channel", "presence", "capabilities", "guard"]

KNOWN_CHANNEL_TYPES = ("loopback", "mqtt")

_POSITIVE_TIMINGS: List[Tuple[str, str]] = [
    ("presence", "query_timeout_s"),
    ("presence", "grace_s"),
    ("presence", "debounce_s"),
    ("capabilities", "request_interval_s"),
    ("capabilities", "broadcast_interval_s"),
    ("guard", "cast_window_s"),
    ("guard", "ability_window_s"),
    ("guard", "sweep_interval_s"),
    ("guard", "max_age_s"),
    ("channel", "rate_limit_window"),
]


class ConfigError(ValueError):
    """Raised when a config file cannot be read or parsed."""


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def find_config(config_path: Optional[str] = None) -> Optional[Path]:
    """Return the config path to use: explicit argument, then the env var."""
    if config_path:
        return Path(config_path)
    env_cfg = os.getenv(CONFIG_ENV_VAR)
    if env_cfg:
        return Path(env_cfg)
    return None


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load a YAML config merged over the defaults.

    With no path (and no ``PARTYCD_CONFIG``) the defaults are returned.

    Raises:
        ConfigError: If the file is missing, unreadable, or not a mapping.
    """
    defaults = copy.deepcopy(DEFAULT_CONFIG)
    path = find_config(config_path)
    if path is None:
        return defaults
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")

    try:
        with open(path) as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    logger.debug("Loaded config from %s", path)
    return _merge(defaults, data)


def validate_config(config: dict) -> Tuple[bool, List[str]]:
    """Validate a loaded PartyCD config.

    Returns:
        A ``(is_valid, errors)`` tuple; ``errors`` lists human-readable
        problems and is empty when the config is usable.
    """
    if not isinstance(config, dict):
        return False, ["Config must be a mapping (check YAML syntax)"]

    errors: List[str] = []

    for key in REQUIRED_SECTIONS:
        if key not in config:
            errors.append(f"Missing required section: '{key}'")
        elif not isinstance(config[key], dict):
            errors.append(f"'{key}' must be a mapping, not a scalar")

    player = config.get("player")
    if isinstance(player, dict) and not player.get("name"):
        errors.append("Missing or empty required key: 'player.name'")
    if isinstance(player, dict) and "-" in str(player.get("name", "")):
        errors.append("'player.name' must not contain '-' (use 'player.realm')")

    channel = config.get("channel")
    if isinstance(channel, dict):
        kind = channel.get("type", "loopback")
        if kind not in KNOWN_CHANNEL_TYPES:
            errors.append(
                f"Unknown channel type '{kind}' (expected one of: {', '.join(KNOWN_CHANNEL_TYPES)})"
            )
        prefix = channel.get("prefix", "PartyCD")
        if not prefix or "/" in str(prefix):
            errors.append("'channel.prefix' must be a non-empty string without '/'")

    for section, key in _POSITIVE_TIMINGS:
        block = config.get(section)
        if not isinstance(block, dict) or key not in block:
            continue
        value = block[key]
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
            errors.append(f"'{section}.{key}' must be a positive number, got {value!r}")

    presence = config.get("presence")
    if isinstance(presence, dict):
        timeout = presence.get("query_timeout_s")
        grace = presence.get("grace_s")
        if (
            isinstance(timeout, (int, float))
            and isinstance(grace, (int, float))
            and grace <= timeout
        ):
            errors.append("'presence.grace_s' must be longer than 'presence.query_timeout_s'")
        max_names = presence.get("max_summary_names", 6)
        if not isinstance(max_names, int) or max_names < 1:
            errors.append("'presence.max_summary_names' must be a positive integer")

    abilities = config.get("abilities", [])
    if abilities is not None and not isinstance(abilities, list):
        errors.append("'abilities' must be a list")
    elif abilities:
        for i, entry in enumerate(abilities):
            if not isinstance(entry, dict) or "id" not in entry or "cooldown" not in entry:
                errors.append(f"'abilities[{i}]' needs 'id' and 'cooldown'")
                continue
            cooldown = entry["cooldown"]
            if (
                not isinstance(cooldown, (int, float))
                or isinstance(cooldown, bool)
                or cooldown <= 0
                or not float(cooldown).is_integer()
            ):
                errors.append(f"'abilities[{i}].cooldown' must be a positive whole number of seconds")

    return len(errors) == 0, errors


def log_validation_result(config: dict, label: str = "PartyCD config") -> bool:
    """Validate *config* and log each error.  Returns True if valid."""
    ok, errors = validate_config(config)
    if ok:
        logger.debug("%s validation passed", label)
    else:
        for msg in errors:
            logger.error("%s validation error: %s", label, msg)
    return ok
