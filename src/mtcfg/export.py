"""Write event timelines to Standard MIDI Files and JSON.

One grammar tick is one MIDI beat. Each instrument gets its own track and
channel, in order of first appearance; drum instruments go to channel 10
(index 9). Rests produce no messages.
"""

from __future__ import annotations

import logging
from fractions import Fraction
from pathlib import Path

import mido

from mtcfg.events import Event, events_to_json

logger = logging.getLogger(__name__)

DRUM_CHANNEL = 9
DRUM_INSTRUMENTS = frozenset({"drums", "drum", "percussion", "kit"})

# General MIDI programs (0-based) for instrument names used in grammars
GM_PROGRAMS: dict[str, int] = {
    "piano": 0, "epiano": 4, "harpsichord": 6, "vibes": 11,
    "organ": 19, "guitar": 24, "bass": 33, "violin": 40, "cello": 42,
    "strings": 48, "choir": 52, "trumpet": 56, "brass": 61, "sax": 65,
    "flute": 73, "sine": 80, "square": 80, "saw": 81, "pad": 88,
}


def assign_channels(events: list[Event]) -> dict[str, int]:
    """Map instruments to MIDI channels in order of first sounding event.

    Raises:
        ValueError: more than 15 melodic instruments
    """
    channels: dict[str, int] = {}
    free = [c for c in range(16) if c != DRUM_CHANNEL]
    for e in events:
        if e.is_rest or e.instrument in channels:
            continue
        if e.instrument in DRUM_INSTRUMENTS:
            channels[e.instrument] = DRUM_CHANNEL
            continue
        if not free:
            raise ValueError("more than 15 melodic instruments")
        channels[e.instrument] = free.pop(0)
    return channels


def _to_ticks(value: Fraction, ticks_per_beat: int) -> int:
    return round(value * ticks_per_beat)


def events_to_midi(events: list[Event], ticks_per_beat: int = 480,
                   tempo_bpm: float = 120.0) -> mido.MidiFile:
    """Build a type-1 MidiFile: a tempo track plus one track per instrument."""
    mid = mido.MidiFile(type=1, ticks_per_beat=ticks_per_beat)

    conductor = mido.MidiTrack()
    conductor.append(mido.MetaMessage("set_tempo",
                                      tempo=mido.bpm2tempo(tempo_bpm)))
    mid.tracks.append(conductor)

    channels = assign_channels(events)
    for instrument, channel in channels.items():
        # (tick, note-off first, message) so a re-struck note is released
        # before it sounds again
        timed: list[tuple[int, int, mido.Message]] = []
        for e in events:
            if e.is_rest or e.instrument != instrument:
                continue
            start = _to_ticks(e.onset, ticks_per_beat)
            end = max(_to_ticks(e.end, ticks_per_beat), start + 1)
            velocity = max(0, min(127, e.velocity))
            for p in e.pitches:
                note = p.midi_number
                if not 0 <= note <= 127:
                    raise ValueError(f"{p} (MIDI {note}) is outside 0-127")
                timed.append((start, 1, mido.Message(
                    "note_on", channel=channel, note=note, velocity=velocity)))
                timed.append((end, 0, mido.Message(
                    "note_off", channel=channel, note=note, velocity=0)))
        timed.sort(key=lambda item: (item[0], item[1]))

        track = mido.MidiTrack()
        track.append(mido.MetaMessage("track_name", name=instrument))
        if channel != DRUM_CHANNEL:
            track.append(mido.Message(
                "program_change", channel=channel,
                program=GM_PROGRAMS.get(instrument, 0)))
        last_tick = 0
        for tick, _, message in timed:
            message.time = tick - last_tick
            track.append(message)
            last_tick = tick
        mid.tracks.append(track)

    return mid


def write_midi(events: list[Event], path: str | Path,
               ticks_per_beat: int = 480, tempo_bpm: float = 120.0) -> None:
    mid = events_to_midi(events, ticks_per_beat, tempo_bpm)
    mid.save(str(path))
    logger.info("Saved %d events to %s", len(events), path)


def write_json(events: list[Event], path: str | Path) -> None:
    Path(path).write_text(events_to_json(events) + "\n", encoding="utf-8")
    logger.info("Saved %d events to %s", len(events), path)
