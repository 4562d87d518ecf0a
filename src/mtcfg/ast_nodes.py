"""AST node definitions for the pattern grammar.

A grammar file is a start directive plus named definitions; each definition
body is an expression tree built from the nodes below. All nodes are frozen
so a parsed grammar can be shared freely between expansions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction

from mtcfg.pitch import Pitch


# --- Source position ---

@dataclass(frozen=True)
class Span:
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


def _span():
    # Positions are diagnostics only; two nodes at different places compare equal
    return field(default=None, compare=False, repr=False)


# --- Terminals ---

@dataclass(frozen=True)
class NoteEvent:
    pitch: Pitch
    duration: Fraction = Fraction(1)
    span: Span | None = _span()


@dataclass(frozen=True)
class RestEvent:
    duration: Fraction = Fraction(1)
    span: Span | None = _span()


@dataclass(frozen=True)
class ChordLiteral:
    """Pitches sounding together for one nominal duration."""
    pitches: tuple[Pitch, ...]
    duration: Fraction = Fraction(1)
    span: Span | None = _span()


@dataclass(frozen=True)
class ControlSet:
    """Performance-state change for everything expanded after it.

    key is ``"instrument"`` or ``"velocity"``.
    """
    key: str
    value: str | int
    span: Span | None = _span()


# --- Non-terminals and combinators ---

@dataclass(frozen=True)
class Reference:
    name: str
    span: Span | None = _span()


@dataclass(frozen=True)
class Sequence:
    terms: tuple[Expression, ...] = ()
    span: Span | None = _span()


@dataclass(frozen=True)
class Choice:
    """Exactly one alternative per occurrence, chosen uniformly."""
    alternatives: tuple[Expression, ...]
    span: Span | None = _span()


@dataclass(frozen=True)
class Repeat:
    """``[xN][body]``."""
    count: int
    body: Expression
    span: Span | None = _span()


@dataclass(frozen=True)
class TimeScale:
    """``[>>rate][body]``: the body plays ``rate`` times as fast.

    Durations and onsets inside the body are multiplied by ``1 / rate``.
    """
    rate: Fraction
    body: Expression
    span: Span | None = _span()

    @property
    def factor(self) -> Fraction:
        return 1 / self.rate


@dataclass(frozen=True)
class Transpose:
    """``[Tn][body]``. Stored as a Fraction so ``[T1/2]`` can be rejected
    at expansion time with a located error."""
    semitones: Fraction
    body: Expression
    span: Span | None = _span()


Expression = (
    Sequence | Reference | NoteEvent | RestEvent | ChordLiteral
    | Repeat | Choice | TimeScale | Transpose | ControlSet
)

OPERATOR_NODES = (Repeat, Choice, TimeScale, Transpose)


# --- Definitions ---

@dataclass(frozen=True)
class Definition:
    name: str
    body: Expression
    line: int = field(default=0, compare=False)


@dataclass
class GrammarFile:
    start: str | None = None
    definitions: list[Definition] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)

    def definition_names(self) -> list[str]:
        """Names in first-definition order, without duplicates."""
        seen: dict[str, None] = {}
        for d in self.definitions:
            seen.setdefault(d.name, None)
        return list(seen)

    def redefinitions(self) -> dict[str, list[int]]:
        """Map of names defined more than once to their line numbers."""
        lines: dict[str, list[int]] = {}
        for d in self.definitions:
            lines.setdefault(d.name, []).append(d.line)
        return {name: ls for name, ls in lines.items() if len(ls) > 1}
