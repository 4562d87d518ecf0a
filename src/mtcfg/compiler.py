"""Library entry point: grammar source -> event list.

    events = compile_grammar(source, seed=7)

Pipeline: parse -> load symbol table -> check the start symbol and every
reference -> reject non-terminating cycles -> expand the start symbol.
Any stage may raise a CompileError; nothing is returned on failure.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path

from mtcfg.ast_nodes import GrammarFile
from mtcfg.errors import ParseError
from mtcfg.events import Event
from mtcfg.expander import (
    DEFAULT_MAX_DEPTH, DEFAULT_MAX_EVENTS, DEFAULT_MAX_STEPS,
    Expander, PerformanceState,
)
from mtcfg.grammar.parser import parse_text
from mtcfg.grammar.transformer import GrammarWarning, validate_grammar
from mtcfg.symbols import SymbolTable

logger = logging.getLogger(__name__)


def load_grammar(grammar: GrammarFile,
                 start_symbol: str | None = None) -> tuple[SymbolTable, str]:
    """Build a checked, frozen symbol table and pick the start symbol.

    Raises:
        ParseError: no start symbol given or declared
        UndefinedSymbolError: start or a referenced symbol is undefined
        CycleError: some definitions can never finish expanding
    """
    start = start_symbol or grammar.start
    if start is None:
        raise ParseError("no start symbol: add a 'start <name>' line "
                         "or pass one explicitly")
    table = SymbolTable.from_grammar(grammar)
    table.check_references(start)
    table.check_cycles()
    return table, start


def compile_parsed(grammar: GrammarFile,
                   start_symbol: str | None = None,
                   seed: int | None = None,
                   initial_state: PerformanceState | None = None,
                   *, rng: random.Random | None = None,
                   max_depth: int = DEFAULT_MAX_DEPTH,
                   max_events: int = DEFAULT_MAX_EVENTS,
                   max_steps: int = DEFAULT_MAX_STEPS) -> list[Event]:
    """Compile an already-parsed grammar."""
    table, start = load_grammar(grammar, start_symbol)
    expander = Expander(table, rng=rng, seed=seed, max_depth=max_depth,
                        max_events=max_events, max_steps=max_steps)
    logger.debug("Expanding %s (seed=%s)", start, seed)
    return expander.expand_symbol(start, initial_state).events


def compile_grammar(source: str,
                    start_symbol: str | None = None,
                    seed: int | None = None,
                    initial_state: PerformanceState | None = None,
                    **options) -> list[Event]:
    """Compile grammar text into a sorted event list.

    Args:
        source: Grammar text
        start_symbol: Overrides the ``start`` directive when given
        seed: Random seed; None means the fixed default seed
        initial_state: Instrument and velocity at onset 0
        **options: ``rng`` and the resource limits accepted by Expander
    """
    return compile_parsed(parse_text(source), start_symbol, seed,
                          initial_state, **options)


def compile_grammar_with_warnings(source: str,
                                  start_symbol: str | None = None,
                                  seed: int | None = None,
                                  initial_state: PerformanceState | None = None,
                                  **options
                                  ) -> tuple[list[Event], list[GrammarWarning]]:
    """Compile and also return structural warnings for diagnostics."""
    grammar = parse_text(source)
    warnings = validate_grammar(grammar)
    for w in warnings:
        logger.info("%s", w)
    events = compile_parsed(grammar, start_symbol, seed, initial_state,
                            **options)
    return events, warnings


def compile_file(path: str | Path,
                 start_symbol: str | None = None,
                 seed: int | None = None,
                 initial_state: PerformanceState | None = None,
                 **options) -> list[Event]:
    """Read a UTF-8 grammar file and compile it."""
    source = Path(path).read_text(encoding="utf-8")
    return compile_grammar(source, start_symbol, seed, initial_state,
                           **options)
