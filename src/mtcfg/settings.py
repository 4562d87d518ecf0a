"""Parser for compile settings files.

Settings files are JSON documents. Each key holds either a bare value or an
object with a ``value`` member::

    {
        "start_symbol": "Song",
        "seed": 7,
        "instrument": {"value": "piano"},
        "velocity": 90,
        "max_events": 200000,
        "tempo_bpm": 96
    }

Unknown keys are ignored; a key whose value has the wrong type is logged and
left at its default. Command-line flags override file values.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mtcfg.expander import (
    DEFAULT_INSTRUMENT, DEFAULT_VELOCITY,
    DEFAULT_MAX_DEPTH, DEFAULT_MAX_EVENTS, DEFAULT_MAX_STEPS,
    PerformanceState,
)

logger = logging.getLogger(__name__)


@dataclass
class CompileSettings:
    """Options for one compile run."""
    start_symbol: str | None = None   # None: use the grammar's start directive
    seed: int | None = None           # None: the fixed default seed

    # Initial performance state
    instrument: str = DEFAULT_INSTRUMENT
    velocity: int = DEFAULT_VELOCITY

    # Resource ceilings
    max_depth: int = DEFAULT_MAX_DEPTH
    max_events: int = DEFAULT_MAX_EVENTS
    max_steps: int = DEFAULT_MAX_STEPS

    # MIDI export
    ticks_per_beat: int = 480
    tempo_bpm: float = 120.0

    @property
    def initial_state(self) -> PerformanceState:
        return PerformanceState(instrument=self.instrument,
                                velocity=self.velocity)

    @property
    def limits(self) -> dict[str, int]:
        return {
            "max_depth": self.max_depth,
            "max_events": self.max_events,
            "max_steps": self.max_steps,
        }


# key -> converter
_FIELDS: dict[str, type] = {
    "start_symbol": str,
    "seed": int,
    "instrument": str,
    "velocity": int,
    "max_depth": int,
    "max_events": int,
    "max_steps": int,
    "ticks_per_beat": int,
    "tempo_bpm": float,
}


def _get_value(data: dict, key: str, default: Any = None) -> Any:
    """Extract a value that may be wrapped as ``{"value": ...}``."""
    if key not in data:
        return default
    entry = data[key]
    if isinstance(entry, dict) and "value" in entry:
        return entry["value"]
    return entry


def settings_from_dict(data: dict) -> CompileSettings:
    """Build CompileSettings from an already-decoded JSON object."""
    settings = CompileSettings()
    for key, convert in _FIELDS.items():
        val = _get_value(data, key)
        if val is None:
            continue
        try:
            setattr(settings, key, convert(val))
        except (ValueError, TypeError):
            logger.warning("Ignoring setting %s=%r: expected %s",
                           key, val, convert.__name__)
    return settings


def parse_settings_file(path: str | Path) -> CompileSettings:
    """Parse a JSON settings file.

    Args:
        path: Path to the settings file

    Returns:
        CompileSettings with extracted values

    Raises:
        ValueError: if the file is not a JSON object
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: settings must be a JSON object")
    return settings_from_dict(data)
