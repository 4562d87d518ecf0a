"""Tests for pitch.py and timing.py."""

from fractions import Fraction

import pytest
from mtcfg.pitch import (
    Pitch, Letter, Accidental, parse_pitch,
)
from mtcfg.timing import parse_fraction, format_ticks


class TestMidiNumbers:
    # MIDI = (octave + 1) * 12 + semitone: C4 = 60
    def test_c4_is_60(self):
        assert parse_pitch("c", octave=4).midi_number == 60

    def test_a4_is_69(self):
        assert parse_pitch("a", octave=4).midi_number == 69

    def test_default_octave(self):
        assert parse_pitch("c").midi_number == 60

    def test_sharp(self):
        assert parse_pitch("F", "#", 3).midi_number == 54

    def test_flat(self):
        assert parse_pitch("b", "b", 5).midi_number == 82

    def test_c0(self):
        assert Pitch(0, Letter.C).midi_number == 12

    def test_enharmonics_share_a_number(self):
        assert parse_pitch("c", "#").midi_number == parse_pitch("d", "b").midi_number


class TestParsePitch:
    def test_defaults(self):
        assert parse_pitch("c") == Pitch(4, Letter.C, Accidental.NATURAL)

    def test_uppercase(self):
        assert parse_pitch("G", "#", 2) == Pitch(2, Letter.G, Accidental.SHARP)

    def test_unknown_letter(self):
        with pytest.raises(ValueError, match="letter"):
            parse_pitch("h")

    def test_unknown_accidental(self):
        with pytest.raises(ValueError, match="accidental"):
            parse_pitch("c", "x")


class TestTranspose:
    def test_b4_up_three_is_d5(self):
        assert Pitch(4, Letter.B).transpose(3) == Pitch(5, Letter.D)

    def test_c4_down_one_is_b3(self):
        assert Pitch(4, Letter.C).transpose(-1) == Pitch(3, Letter.B)

    def test_octave(self):
        assert Pitch(4, Letter.E).transpose(12) == Pitch(5, Letter.E)
        assert Pitch(4, Letter.E).transpose(-24) == Pitch(2, Letter.E)

    def test_result_spelled_with_sharps(self):
        bb = Pitch(4, Letter.B, Accidental.FLAT)
        assert bb.transpose(2) == Pitch(5, Letter.C)
        assert Pitch(4, Letter.C).transpose(1) == Pitch(4, Letter.C, Accidental.SHARP)

    def test_zero_keeps_spelling(self):
        eb = Pitch(4, Letter.E, Accidental.FLAT)
        assert eb.transpose(0) is eb

    def test_additive(self):
        p = Pitch(4, Letter.A)
        assert p.transpose(5).transpose(-2) == p.transpose(3)


class TestPitchText:
    def test_str(self):
        assert str(Pitch(4, Letter.C)) == "C4"
        assert str(Pitch(3, Letter.B, Accidental.FLAT)) == "Bb3"
        assert str(Pitch(5, Letter.F, Accidental.SHARP)) == "F#5"

    def test_to_dict(self):
        assert Pitch(4, Letter.F, Accidental.SHARP).to_dict() == {
            "octave": 4, "letter": "F", "accidental": "sharp",
        }
        assert Pitch(2, Letter.A).to_dict()["accidental"] == "natural"


class TestFractions:
    def test_integer(self):
        assert parse_fraction("3") == Fraction(3)

    def test_ratio(self):
        assert parse_fraction("3/4") == Fraction(3, 4)
        assert parse_fraction("-3/4") == Fraction(-3, 4)
        assert parse_fraction(" 6 / 4 ") == Fraction(3, 2)

    def test_decimal(self):
        assert parse_fraction("1.5") == Fraction(3, 2)

    def test_zero_denominator(self):
        with pytest.raises(ValueError, match="zero"):
            parse_fraction("1/0")

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_fraction("abc")
        with pytest.raises(ValueError):
            parse_fraction("")

    def test_format_ticks(self):
        assert format_ticks(Fraction(4)) == 4
        assert format_ticks(Fraction(3, 2)) == "3/2"
        assert format_ticks(Fraction(0)) == 0
