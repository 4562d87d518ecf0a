"""Pitch value type and semitone arithmetic.

Octave conventions (scientific pitch notation):
- Octaves change between B and C: B4 + 1 semitone = C5.
- MIDI = (octave + 1) * 12 + semitone  → C4 = 60, A4 = 69.
- A note token without an octave digit is in DEFAULT_OCTAVE.

Transposition renormalises through a sharp-spelled table, so the spelling
of a transposed pitch is always natural or sharp (``bb`` up 2 → ``c``).
An untransposed pitch keeps the spelling it was written with.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

DEFAULT_OCTAVE = 4


class Letter(Enum):
    C = "c"
    D = "d"
    E = "e"
    F = "f"
    G = "g"
    A = "a"
    B = "b"


class Accidental(Enum):
    NATURAL = ""
    SHARP = "#"
    FLAT = "b"


LETTER_SEMITONES: dict[Letter, int] = {
    Letter.C: 0, Letter.D: 2, Letter.E: 4, Letter.F: 5,
    Letter.G: 7, Letter.A: 9, Letter.B: 11,
}

ACCIDENTAL_OFFSETS: dict[Accidental, int] = {
    Accidental.NATURAL: 0, Accidental.SHARP: 1, Accidental.FLAT: -1,
}

# Pitch class -> spelling used after transposition
_SHARP_SPELLING: tuple[tuple[Letter, Accidental], ...] = (
    (Letter.C, Accidental.NATURAL), (Letter.C, Accidental.SHARP),
    (Letter.D, Accidental.NATURAL), (Letter.D, Accidental.SHARP),
    (Letter.E, Accidental.NATURAL),
    (Letter.F, Accidental.NATURAL), (Letter.F, Accidental.SHARP),
    (Letter.G, Accidental.NATURAL), (Letter.G, Accidental.SHARP),
    (Letter.A, Accidental.NATURAL), (Letter.A, Accidental.SHARP),
    (Letter.B, Accidental.NATURAL),
)


@dataclass(frozen=True)
class Pitch:
    octave: int
    letter: Letter
    accidental: Accidental = Accidental.NATURAL

    @property
    def semitone(self) -> int:
        """Absolute semitone number, C0 = 0."""
        return (12 * self.octave
                + LETTER_SEMITONES[self.letter]
                + ACCIDENTAL_OFFSETS[self.accidental])

    @property
    def midi_number(self) -> int:
        return self.semitone + 12

    @classmethod
    def from_semitone(cls, semitone: int) -> Pitch:
        octave, pitch_class = divmod(semitone, 12)
        letter, accidental = _SHARP_SPELLING[pitch_class]
        return cls(octave, letter, accidental)

    def transpose(self, semitones: int) -> Pitch:
        if semitones == 0:
            return self
        return Pitch.from_semitone(self.semitone + semitones)

    def to_dict(self) -> dict[str, object]:
        return {
            "octave": self.octave,
            "letter": self.letter.name,
            "accidental": self.accidental.name.lower(),
        }

    def __str__(self) -> str:
        return f"{self.letter.name}{self.accidental.value}{self.octave}"


def parse_pitch(letter: str, accidental: str = "",
                octave: int | None = None) -> Pitch:
    """Build a Pitch from the pieces of a note token.

    Args:
        letter: Pitch letter, case-insensitive (``"c"``, ``"B"``)
        accidental: ``""``, ``"#"`` or ``"b"``
        octave: Explicit octave digit(s), or None for DEFAULT_OCTAVE

    Raises:
        ValueError: if the letter or accidental is unknown
    """
    try:
        letter_enum = Letter(letter.lower())
    except ValueError:
        raise ValueError(f"Unknown pitch letter: {letter!r}") from None
    try:
        accidental_enum = Accidental(accidental)
    except ValueError:
        raise ValueError(f"Unknown accidental: {accidental!r}") from None
    return Pitch(
        DEFAULT_OCTAVE if octave is None else octave,
        letter_enum,
        accidental_enum,
    )
