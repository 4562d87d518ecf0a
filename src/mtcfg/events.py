"""Engine output: immutable timed events.

An event with no pitches is a rest. Onsets and durations are exact tick
counts; the JSON form writes them as ints when whole and ``"n/d"`` strings
otherwise, so two runs with the same seed produce identical text.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from fractions import Fraction

from mtcfg.pitch import Pitch
from mtcfg.timing import format_ticks


@dataclass(frozen=True)
class Event:
    onset: Fraction
    duration: Fraction
    pitches: tuple[Pitch, ...]
    instrument: str
    velocity: int

    @property
    def is_rest(self) -> bool:
        return not self.pitches

    @property
    def end(self) -> Fraction:
        return self.onset + self.duration

    def shifted(self, offset: Fraction) -> Event:
        return Event(self.onset + offset, self.duration, self.pitches,
                     self.instrument, self.velocity)

    def to_dict(self) -> dict[str, object]:
        return {
            "onset": format_ticks(self.onset),
            "duration": format_ticks(self.duration),
            "pitches": [p.to_dict() for p in self.pitches],
            "instrument": self.instrument,
            "velocity": self.velocity,
        }

    def __str__(self) -> str:
        what = " ".join(str(p) for p in self.pitches) or "rest"
        return (f"@{format_ticks(self.onset)} +{format_ticks(self.duration)} "
                f"{what} [{self.instrument} v{self.velocity}]")


def sort_events(events: list[Event]) -> list[Event]:
    """Sort by onset; equal onsets keep emission order."""
    return sorted(events, key=lambda e: e.onset)


def total_duration(events: list[Event]) -> Fraction:
    """End of the last sounding or silent event."""
    return max((e.end for e in events), default=Fraction(0))


def events_to_json(events: list[Event], indent: int | None = 2) -> str:
    """Serialise events deterministically."""
    return json.dumps([e.to_dict() for e in events], indent=indent)
