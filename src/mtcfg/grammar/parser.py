"""Parser for pattern grammar files.

Uses a two-phase approach:
1. Line-oriented pre-processor that classifies lines (comments, the start
   directive, definitions)
2. Per-line recursive descent over the definition body, producing the
   expression tree defined in ast_nodes

Grammar summary::

    start S
    S   = [x2][Bar] {:c<2> | :_ :d} ::i=piano Cmaj
    Bar = [T-2][:4c :e :g<1/2> :_<1/2>]
    Cmaj = :c :e :g

Every syntax error is a ParseError with a 1-based line and column.
Nesting deeper than MAX_NESTING is a ResourceLimitError.
"""

from __future__ import annotations

import logging
import re
from fractions import Fraction
from pathlib import Path

from mtcfg.ast_nodes import (
    GrammarFile, Definition, Span, Expression,
    Sequence, Reference, NoteEvent, RestEvent, ChordLiteral,
    Repeat, Choice, TimeScale, Transpose, ControlSet,
)
from mtcfg.errors import ParseError, ResourceLimitError
from mtcfg.expander import DEFAULT_MAX_DEPTH
from mtcfg.pitch import parse_pitch
from mtcfg.timing import parse_fraction

logger = logging.getLogger(__name__)


# ---------- Regex patterns ----------

RE_COMMENT = re.compile(r"^\s*//(.*)$")
RE_TRAILING_COMMENT = re.compile(r"(?:^|\s)//.*$")
RE_START = re.compile(r"^\s*start\s+(\S+)\s*$")
RE_DEFINITION = re.compile(r"^\s*([A-Za-z0-9_\-/#?]+)\s*=")

# Symbol names: letters, digits and a few punctuation marks
RE_NAME = re.compile(r"[A-Za-z0-9_\-/#?]+")
NAME_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-/#?"
)

# Terminals (after the ':' sentinel)
RE_NOTE_HEAD = re.compile(r"(\d+)?([a-gA-G])")
RE_DURATION = re.compile(r"<([^<>]*)>")
RE_INSTRUMENT = re.compile(r"i=([A-Za-z][A-Za-z0-9_]*)")
RE_VELOCITY = re.compile(r"v=(\d+)")

# Transform headers inside the first bracket pair
RE_REPEAT = re.compile(r"^x\s*(-?\d+)$")
RE_TRANSPOSE = re.compile(r"^T\s*(.+)$")
RE_SCALE = re.compile(r"^>>\s*(.+)$")

# A definition body made only of bare note tokens is a chord
RE_CHORD_BODY = re.compile(r"^(?:\s*:\d*[a-gA-G][#b]?(?=\s|$))+\s*$")

MAX_VELOCITY = 127

# Brackets and braces nested deeper than this are rejected before the
# recursive descent runs out of interpreter stack
MAX_NESTING = DEFAULT_MAX_DEPTH


def parse_file(path: str | Path) -> GrammarFile:
    """Parse a grammar file and return its AST."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    return parse_text(text)


def parse_text(text: str) -> GrammarFile:
    """Parse grammar text and return its AST."""
    grammar = GrammarFile()
    start_line: int | None = None

    for line_no, raw in enumerate(text.splitlines(), 1):
        stripped = raw.strip()

        # Skip empty lines
        if not stripped:
            continue

        # Whole-line comments
        m = RE_COMMENT.match(raw)
        if m:
            grammar.comments.append(m.group(1).strip())
            continue

        line = RE_TRAILING_COMMENT.sub("", raw)

        # Start directive
        m = RE_START.match(line)
        if m:
            if start_line is not None:
                raise ParseError(
                    f"duplicate start directive (first on line {start_line})",
                    line_no, 1,
                )
            name = m.group(1)
            if not RE_NAME.fullmatch(name):
                raise ParseError(f"invalid start symbol {name!r}",
                                 line_no, m.start(1) + 1)
            grammar.start = name
            start_line = line_no
            continue

        # Definition
        m = RE_DEFINITION.match(line)
        if m:
            grammar.definitions.append(
                _parse_definition(line, m.group(1), m.end(), line_no)
            )
            continue

        col = len(raw) - len(raw.lstrip()) + 1
        raise ParseError("expected 'start <symbol>' or '<name> = <body>'",
                         line_no, col)

    logger.debug("Parsed %d definitions (start=%s)",
                 len(grammar.definitions), grammar.start)
    return grammar


def parse_body(text: str, line_no: int = 1) -> Expression:
    """Parse a single definition body, e.g. ``"[x2][:c :d]"``."""
    terms, pos = _parse_sequence(text, 0, line_no, closers="")
    return _as_expression(terms, Span(line_no, 1))


def _parse_definition(line: str, name: str, body_pos: int,
                      line_no: int) -> Definition:
    """Parse the text after ``name =`` into a Definition."""
    body_text = line[body_pos:]
    span = Span(line_no, body_pos + 1)
    terms, _ = _parse_sequence(line, body_pos, line_no, closers="")

    if len(terms) >= 2 and RE_CHORD_BODY.match(body_text):
        body: Expression = ChordLiteral(
            pitches=tuple(t.pitch for t in terms), span=span,
        )
    else:
        body = _as_expression(terms, span)
    return Definition(name=name, body=body, line=line_no)


def _as_expression(terms: list[Expression], span: Span) -> Expression:
    if len(terms) == 1:
        return terms[0]
    return Sequence(terms=tuple(terms), span=span)


def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in " \t":
        pos += 1
    return pos


def _parse_sequence(text: str, pos: int, line_no: int, closers: str,
                    depth: int = 0) -> tuple[list[Expression], int]:
    """Parse terms until end of line or one of ``closers``.

    Returns the terms and the position of the closer (or len(text)).
    """
    terms: list[Expression] = []
    while True:
        pos = _skip_ws(text, pos)
        if pos >= len(text):
            return terms, pos
        ch = text[pos]
        if ch in closers:
            return terms, pos
        if ch in "]}|,":
            raise ParseError(f"unexpected {ch!r}", line_no, pos + 1)
        term, pos = _parse_term(text, pos, line_no, depth)
        terms.append(term)


def _parse_term(text: str, pos: int, line_no: int,
                depth: int = 0) -> tuple[Expression, int]:
    ch = text[pos]
    if ch == "{":
        return _parse_choice(text, pos, line_no, depth)
    if ch == "[":
        return _parse_transform(text, pos, line_no, depth)
    if ch == ":":
        term, end = _parse_terminal(text, pos, line_no)
        if end < len(text) and text[end] in NAME_CHARS:
            raise ParseError(f"unexpected {text[end]!r} after terminal",
                             line_no, end + 1)
        return term, end

    m = RE_NAME.match(text, pos)
    if m is None:
        raise ParseError(f"unexpected character {ch!r}", line_no, pos + 1)
    return Reference(name=m.group(0), span=Span(line_no, pos + 1)), m.end()


def _parse_terminal(text: str, pos: int,
                    line_no: int) -> tuple[Expression, int]:
    """Parse a ``:``-prefixed note, rest or control."""
    span = Span(line_no, pos + 1)
    pos += 1
    if pos >= len(text):
        raise ParseError("expected note, rest or control after ':'",
                         line_no, pos + 1)

    # Control: ::i=piano, ::v=80
    if text[pos] == ":":
        return _parse_control(text, pos + 1, line_no, span)

    # Rest: :_ with optional duration
    if text[pos] == "_":
        duration, pos = _parse_duration(text, pos + 1, line_no)
        return RestEvent(duration=duration, span=span), pos

    m = RE_NOTE_HEAD.match(text, pos)
    if m is None:
        raise ParseError(
            f"expected note letter a-g after ':', got {text[pos]!r}",
            line_no, pos + 1,
        )
    octave = int(m.group(1)) if m.group(1) else None
    letter = m.group(2)
    pos = m.end()

    # The letter is consumed first, so a following 'b' can only be a flat
    accidental = ""
    if pos < len(text) and text[pos] in "#b":
        accidental = text[pos]
        pos += 1

    pitch = parse_pitch(letter, accidental, octave)
    duration, pos = _parse_duration(text, pos, line_no)
    return NoteEvent(pitch=pitch, duration=duration, span=span), pos


def _parse_duration(text: str, pos: int,
                    line_no: int) -> tuple[Fraction, int]:
    """Parse an optional ``<n>`` or ``<n/d>`` multiplier (default 1)."""
    if pos >= len(text) or text[pos] != "<":
        return Fraction(1), pos
    m = RE_DURATION.match(text, pos)
    if m is None:
        raise ParseError("unbalanced '<': expected '>'", line_no, pos + 1)
    try:
        value = parse_fraction(m.group(1))
    except ValueError as e:
        raise ParseError(f"bad duration: {e}", line_no, pos + 2) from None
    return value, m.end()


def _parse_control(text: str, pos: int, line_no: int,
                   span: Span) -> tuple[ControlSet, int]:
    m = RE_INSTRUMENT.match(text, pos)
    if m:
        return ControlSet("instrument", m.group(1), span=span), m.end()
    m = RE_VELOCITY.match(text, pos)
    if m:
        velocity = int(m.group(1))
        if velocity > MAX_VELOCITY:
            raise ParseError(
                f"velocity must be 0-{MAX_VELOCITY}, got {velocity}",
                line_no, m.start(1) + 1,
            )
        return ControlSet("velocity", velocity, span=span), m.end()
    raise ParseError("expected control 'i=<instrument>' or 'v=<velocity>'",
                     line_no, pos + 1)


def _parse_choice(text: str, start: int, line_no: int,
                  depth: int = 0) -> tuple[Choice, int]:
    """Parse ``{alt | alt, alt}``."""
    _check_nesting(depth, line_no, start)
    alternatives: list[Expression] = []
    pos = start + 1
    while True:
        alt_pos = _skip_ws(text, pos)
        terms, pos = _parse_sequence(text, pos, line_no, "|,}", depth + 1)
        if pos >= len(text):
            raise ParseError("unbalanced '{': expected '}'",
                             line_no, start + 1)
        sep = text[pos]
        if not terms:
            if sep == "}" and not alternatives:
                raise ParseError("choice needs at least one alternative",
                                 line_no, start + 1)
            raise ParseError("empty alternative", line_no, alt_pos + 1)
        alternatives.append(_as_expression(terms, Span(line_no, alt_pos + 1)))
        pos += 1
        if sep == "}":
            break
    return Choice(tuple(alternatives), span=Span(line_no, start + 1)), pos


def _parse_transform(text: str, start: int, line_no: int,
                     depth: int = 0) -> tuple[Expression, int]:
    """Parse ``[xN][body]``, ``[Tn][body]`` or ``[>>r][body]``."""
    _check_nesting(depth, line_no, start)
    span = Span(line_no, start + 1)
    close = text.find("]", start + 1)
    if close < 0:
        raise ParseError("unbalanced '[': expected ']'", line_no, start + 1)
    header = text[start + 1:close].strip()

    pos = _skip_ws(text, close + 1)
    if pos >= len(text) or text[pos] != "[":
        raise ParseError(f"expected '[' with the operand of [{header}]",
                         line_no, pos + 1)
    body_open = pos
    terms, pos = _parse_sequence(text, pos + 1, line_no, "]", depth + 1)
    if pos >= len(text):
        raise ParseError("unbalanced '[': expected ']'",
                         line_no, body_open + 1)
    body = _as_expression(terms, Span(line_no, body_open + 2))
    end = pos + 1

    m = RE_REPEAT.match(header)
    if m:
        return Repeat(count=int(m.group(1)), body=body, span=span), end

    m = RE_TRANSPOSE.match(header)
    if m:
        semitones = _header_number(m.group(1), header, line_no, start)
        return Transpose(semitones=semitones, body=body, span=span), end

    m = RE_SCALE.match(header)
    if m:
        rate = _header_number(m.group(1), header, line_no, start)
        return TimeScale(rate=rate, body=body, span=span), end

    raise ParseError(f"unknown transform [{header}]; expected xN, Tn or >>r",
                     line_no, start + 2)


def _header_number(text: str, header: str, line_no: int,
                   start: int) -> Fraction:
    try:
        return parse_fraction(text)
    except ValueError as e:
        raise ParseError(f"bad argument in [{header}]: {e}",
                         line_no, start + 2) from None


def _check_nesting(depth: int, line_no: int, start: int) -> None:
    if depth >= MAX_NESTING:
        raise ResourceLimitError(
            f"line {line_no}, column {start + 1}: "
            f"brackets nested deeper than {MAX_NESTING}")
