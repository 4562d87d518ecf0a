"""CLI entry point for mtcfg: pattern grammar -> event timeline.

Exit codes: 0 success, 1 parse failure, 2 undefined symbol, 3 cycle,
4 resource limit, 5 invalid operator argument or duration underflow.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from mtcfg.ast_nodes import (
    GrammarFile, Expression,
    Sequence, Reference, NoteEvent, RestEvent, ChordLiteral,
    Repeat, Choice, TimeScale, Transpose, ControlSet,
)
from mtcfg.compiler import compile_parsed
from mtcfg.errors import CompileError
from mtcfg.events import events_to_json
from mtcfg.export import write_json, write_midi
from mtcfg.grammar.parser import parse_file
from mtcfg.grammar.transformer import (
    collect_undefined_symbols, validate_grammar, warnings_summary,
)
from mtcfg.pitch import DEFAULT_OCTAVE, Pitch
from mtcfg.settings import CompileSettings, parse_settings_file
from mtcfg.timing import format_ticks

logger = logging.getLogger(__name__)

MIDI_SUFFIXES = (".mid", ".midi")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="mtcfg",
        description="Expand a pattern grammar into a timed note/chord/rest event list",
    )
    parser.add_argument(
        "input",
        help="Path to the grammar file",
    )
    parser.add_argument(
        "-o", "--output",
        help="Output file: .mid/.midi writes MIDI, anything else JSON (default: JSON on stdout)",
    )
    parser.add_argument(
        "--start-symbol",
        default=None,
        help="Start symbol (default: the grammar's 'start' line)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for choices (default: fixed seed 0)",
    )
    parser.add_argument(
        "--settings",
        default=None,
        help="JSON settings file (initial instrument/velocity, limits, tempo)",
    )
    parser.add_argument(
        "--list-definitions",
        action="store_true",
        help="List all parsed definitions and exit",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Verbose output (debug logging and grammar warnings)",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: file not found: {input_path}", file=sys.stderr)
        sys.exit(1)

    settings = CompileSettings()
    if args.settings:
        try:
            settings = parse_settings_file(args.settings)
        except (OSError, ValueError) as e:
            print(f"Error reading settings {args.settings}: {e}", file=sys.stderr)
            sys.exit(1)
    if args.start_symbol is not None:
        settings.start_symbol = args.start_symbol
    if args.seed is not None:
        settings.seed = args.seed

    try:
        grammar = parse_file(input_path)
    except OSError as e:
        print(f"Error reading {input_path}: {e}", file=sys.stderr)
        sys.exit(1)
    except CompileError as e:
        print(f"Error in {input_path}: {e}", file=sys.stderr)
        sys.exit(e.exit_code)

    try:
        # List definitions mode
        if args.list_definitions:
            _print_definitions(grammar)
            return

        if args.verbose:
            warnings = validate_grammar(grammar)
            for w in warnings:
                print(str(w), file=sys.stderr)
            print(warnings_summary(warnings), file=sys.stderr)

        events = compile_parsed(
            grammar, settings.start_symbol, settings.seed,
            settings.initial_state, **settings.limits,
        )
    except CompileError as e:
        print(f"Error in {input_path}: {e}", file=sys.stderr)
        sys.exit(e.exit_code)

    # Output
    if args.output:
        output_path = Path(args.output)
        try:
            if output_path.suffix.lower() in MIDI_SUFFIXES:
                write_midi(events, output_path, settings.ticks_per_beat,
                           settings.tempo_bpm)
            else:
                write_json(events, output_path)
        except (OSError, ValueError) as e:
            print(f"Error writing {output_path}: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Written: {output_path} ({len(events)} events)", file=sys.stderr)
    else:
        print(events_to_json(events))


def _print_definitions(grammar: GrammarFile) -> None:
    """Print all parsed definitions in a readable format."""
    for comment in grammar.comments:
        print(f"// {comment}")
    print(f"start {grammar.start or '?'}")
    redefined = grammar.redefinitions()
    for d in grammar.definitions:
        note = ""
        if d.name in redefined and d.line != redefined[d.name][-1]:
            note = "    // shadowed"
        print(f"{d.name} = {_expr_str(d.body)}{note}")
    undefined = collect_undefined_symbols(grammar)
    if undefined:
        print(f"// undefined: {', '.join(sorted(undefined))}")


def _pitch_str(p: Pitch) -> str:
    octave = "" if p.octave == DEFAULT_OCTAVE else str(p.octave)
    return f"{octave}{p.letter.value}{p.accidental.value}"


def _dur_str(duration) -> str:
    if duration == 1:
        return ""
    return f"<{format_ticks(duration)}>"


def _expr_str(e: Expression) -> str:
    if isinstance(e, NoteEvent):
        return f":{_pitch_str(e.pitch)}{_dur_str(e.duration)}"
    if isinstance(e, RestEvent):
        return f":_{_dur_str(e.duration)}"
    if isinstance(e, ChordLiteral):
        return " ".join(f":{_pitch_str(p)}" for p in e.pitches)
    if isinstance(e, ControlSet):
        key = "i" if e.key == "instrument" else "v"
        return f"::{key}={e.value}"
    if isinstance(e, Reference):
        return e.name
    if isinstance(e, Sequence):
        return " ".join(_expr_str(t) for t in e.terms)
    if isinstance(e, Choice):
        return "{" + " | ".join(_expr_str(a) for a in e.alternatives) + "}"
    if isinstance(e, Repeat):
        return f"[x{e.count}][{_expr_str(e.body)}]"
    if isinstance(e, Transpose):
        return f"[T{format_ticks(e.semitones)}][{_expr_str(e.body)}]"
    if isinstance(e, TimeScale):
        return f"[>>{format_ticks(e.rate)}][{_expr_str(e.body)}]"
    return repr(e)


if __name__ == "__main__":
    main()
