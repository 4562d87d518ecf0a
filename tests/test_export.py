"""Tests for MIDI and JSON export."""

import json
from fractions import Fraction

import mido
import pytest
from mtcfg.compiler import compile_grammar
from mtcfg.events import Event, events_to_json
from mtcfg.export import (
    DRUM_CHANNEL, assign_channels, events_to_midi, write_json, write_midi,
)
from mtcfg.pitch import Pitch, Letter


GROOVE = "start S\nS = :c [>>2][:d :e] ::i=drums :c\n"


def _notes(track):
    return [(m.type, m.note, m.time) for m in track
            if m.type in ("note_on", "note_off")]


class TestChannels:
    def test_first_appearance_order(self):
        events = compile_grammar(
            "start S\nS = ::i=bass :c ::i=piano :d ::i=bass :e\n")
        assert assign_channels(events) == {"bass": 0, "piano": 1}

    def test_drums(self):
        events = compile_grammar("start S\nS = ::i=drums :c ::i=piano :d\n")
        assert assign_channels(events) == {"drums": DRUM_CHANNEL, "piano": 0}

    def test_rests_take_no_channel(self):
        events = compile_grammar("start S\nS = ::i=organ :_ ::i=piano :c\n")
        assert assign_channels(events) == {"piano": 0}

    def test_too_many_instruments(self):
        body = " ".join(f"::i=inst{i} :c" for i in range(16))
        events = compile_grammar(f"start S\nS = {body}\n")
        with pytest.raises(ValueError):
            assign_channels(events)


class TestEventsToMidi:
    def test_tracks(self):
        mid = events_to_midi(compile_grammar(GROOVE))
        assert mid.type == 1
        assert mid.ticks_per_beat == 480
        assert len(mid.tracks) == 3
        tempo = [m for m in mid.tracks[0] if m.type == "set_tempo"]
        assert tempo[0].tempo == mido.bpm2tempo(120)

    def test_note_timing(self):
        mid = events_to_midi(compile_grammar(GROOVE))
        assert _notes(mid.tracks[1]) == [
            ("note_on", 60, 0), ("note_off", 60, 480),
            ("note_on", 62, 0), ("note_off", 62, 240),
            ("note_on", 64, 0), ("note_off", 64, 240),
        ]
        assert _notes(mid.tracks[2]) == [
            ("note_on", 60, 960), ("note_off", 60, 480),
        ]

    def test_program_and_channel(self):
        mid = events_to_midi(compile_grammar(GROOVE))
        programs = [m for m in mid.tracks[1] if m.type == "program_change"]
        assert programs[0].program == 80
        assert all(m.channel == DRUM_CHANNEL for m in mid.tracks[2]
                   if m.type in ("note_on", "note_off"))
        assert not any(m.type == "program_change" for m in mid.tracks[2])

    def test_chord_and_velocity(self):
        mid = events_to_midi(compile_grammar(
            "start S\nS = ::v=100 Cmaj\nCmaj = :c :e :g\n"))
        ons = [m for m in mid.tracks[1] if m.type == "note_on"]
        assert [m.note for m in ons] == [60, 64, 67]
        assert all(m.velocity == 100 and m.time == 0 for m in ons)

    def test_repeated_note_released_first(self):
        mid = events_to_midi(compile_grammar("start S\nS = [x2][:c]\n"))
        assert [t for t, _, _ in _notes(mid.tracks[1])] == [
            "note_on", "note_off", "note_on", "note_off",
        ]

    def test_tempo_and_resolution(self):
        mid = events_to_midi(compile_grammar(GROOVE), ticks_per_beat=96,
                             tempo_bpm=90)
        assert mid.ticks_per_beat == 96
        assert _notes(mid.tracks[1])[1] == ("note_off", 60, 96)

    def test_out_of_range_note(self):
        event = Event(Fraction(0), Fraction(1), (Pitch(10, Letter.C),),
                      "sine", 64)
        with pytest.raises(ValueError, match="outside"):
            events_to_midi([event])


class TestWriters:
    def test_write_midi_round_trip(self, tmp_path):
        path = tmp_path / "groove.mid"
        write_midi(compile_grammar(GROOVE), path)
        mid = mido.MidiFile(str(path))
        assert len(mid.tracks) == 3
        assert mid.tracks[1].name == "sine"
        assert mid.tracks[2].name == "drums"
        assert len(_notes(mid.tracks[1])) == 6
        # three beats at 120 bpm
        assert mid.length == pytest.approx(1.5)

    def test_write_json(self, tmp_path):
        path = tmp_path / "groove.json"
        events = compile_grammar(GROOVE)
        write_json(events, path)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert len(data) == 4
        assert data[1]["onset"] == 1
        assert data[2]["onset"] == "3/2"
        assert data[1]["duration"] == "1/2"
        assert data[3]["instrument"] == "drums"
        assert data[0]["pitches"] == [
            {"octave": 4, "letter": "C", "accidental": "natural"},
        ]

    def test_json_is_deterministic(self):
        events = compile_grammar(GROOVE)
        assert events_to_json(events) == events_to_json(compile_grammar(GROOVE))
