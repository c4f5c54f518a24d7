"""Loading and validating watchdog configuration."""

import re
import tomllib
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from memwatch.errors import ConfigurationError
from memwatch.models import ThresholdConfig

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([kmg]?)b?\s*$", re.IGNORECASE)
_UNITS = {"": 1, "k": 1024, "m": 1024**2, "g": 1024**3}


def parse_size(value: Any) -> int:
    """
    Parse a byte count such as ``524288``, ``"512KB"`` or ``"1g"``.

    Suffixes are powers of 1024. Raises ConfigurationError for anything
    else, including negative numbers.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"invalid size: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ConfigurationError(f"size must be >= 0, got {value}")
        return value
    if isinstance(value, str):
        match = _SIZE_PATTERN.match(value)
        if match:
            number, unit = match.groups()
            return int(number) * _UNITS[unit.lower()]
    raise ConfigurationError(f"invalid size: {value!r}")


def parse_assignments(items: Iterable[str]) -> dict[str, int]:
    """Parse ``NAME=SIZE`` command-line options into a threshold mapping."""
    thresholds: dict[str, int] = {}
    for item in items:
        key, sep, size = item.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"expected NAME=SIZE, got {item!r}")
        thresholds[key.strip()] = parse_size(size)
    return thresholds


def parse_thresholds(section: str, value: Any) -> dict[str, int]:
    """Validate a table of NAME = SIZE thresholds."""
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"'{section}' must be a table of NAME = SIZE")
    return {str(key): parse_size(size) for key, size in value.items()}


def config_from_mapping(data: Mapping[str, Any]) -> ThresholdConfig:
    """
    Build a validated ThresholdConfig from plain data.

    Recognized keys are ``program``, ``group``, ``any`` (required),
    ``uptime``, ``name`` and ``cumulative``.
    """
    if data.get("any") is None:
        raise ConfigurationError("'any' threshold is required (use 0 to disable)")

    uptime = data.get("uptime", 60)
    if isinstance(uptime, bool) or not isinstance(uptime, int):
        raise ConfigurationError(f"uptime must be an integer, got {uptime!r}")

    name = data.get("name")
    if name is not None and not isinstance(name, str):
        raise ConfigurationError(f"name must be a string, got {name!r}")

    return ThresholdConfig(
        program=parse_thresholds("program", data.get("program")),
        group=parse_thresholds("group", data.get("group")),
        any=parse_size(data["any"]),
        uptime=uptime,
        name=name or None,
        cumulative=bool(data.get("cumulative", False)),
    )


def load_config(path: str | Path) -> dict[str, Any]:
    """
    Read raw settings from a TOML file.

    The watchdog settings may live at the top level or under a
    ``[memwatch]`` table.
    """
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"invalid TOML in {path}: {e}") from e

    return data.get("memwatch", data)
