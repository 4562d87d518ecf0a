"""Expression tree -> flat event timeline.

The expander walks an expression depth-first, left to right, keeping two
kinds of inherited information apart:

- PerformanceState (instrument, velocity) flows forward: a ControlSet
  changes it for every later term of the enclosing sequence, for anything
  nested after it, and for whatever follows the construct it sits in.
- The scale and transpose accumulators are scoped to the bracket that
  introduced them and are pushed down to the leaves, so nested ``[>>p]``
  multiply and nested ``[Tn]`` add.

Randomness comes from one injected generator. Each Choice reached draws
exactly one ``randrange(len(alternatives))``, in depth-first order, so the
same seed and source always give the same events.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from fractions import Fraction

from mtcfg.ast_nodes import (
    Expression,
    Sequence, Reference, NoteEvent, RestEvent, ChordLiteral,
    Repeat, Choice, TimeScale, Transpose, ControlSet,
)
from mtcfg.errors import (
    DurationUnderflow, InvalidOperatorArgument, ResourceLimitError,
)
from mtcfg.events import Event, sort_events
from mtcfg.symbols import SymbolTable

logger = logging.getLogger(__name__)

DEFAULT_SEED = 0
DEFAULT_INSTRUMENT = "sine"
DEFAULT_VELOCITY = 64

# Python frames per nesting level stay well below the interpreter limit
DEFAULT_MAX_DEPTH = 200
DEFAULT_MAX_EVENTS = 1_000_000
DEFAULT_MAX_STEPS = 10_000_000


@dataclass(frozen=True)
class PerformanceState:
    """Attributes inherited by every sound expanded after they are set."""
    instrument: str = DEFAULT_INSTRUMENT
    velocity: int = DEFAULT_VELOCITY

    def apply(self, control: ControlSet) -> PerformanceState:
        return replace(self, **{control.key: control.value})


@dataclass(frozen=True)
class _Context:
    """Scoped accumulators for the subtree being expanded."""
    scale: Fraction = Fraction(1)
    transpose: int = 0
    chain: tuple[str, ...] = ()
    depth: int = 0


@dataclass
class Expansion:
    events: list[Event]
    end_state: PerformanceState
    duration: Fraction


class Expander:
    """Expand expressions against a symbol table."""

    def __init__(self, table: SymbolTable,
                 rng: random.Random | None = None,
                 seed: int | None = None,
                 max_depth: int = DEFAULT_MAX_DEPTH,
                 max_events: int = DEFAULT_MAX_EVENTS,
                 max_steps: int = DEFAULT_MAX_STEPS):
        self.table = table
        if rng is None:
            rng = random.Random(DEFAULT_SEED if seed is None else seed)
        self.rng = rng
        self.max_depth = max_depth
        self.max_events = max_events
        self.max_steps = max_steps

        self._events: list[Event] = []
        self._steps = 0

    def expand(self, expr: Expression,
               state: PerformanceState | None = None) -> Expansion:
        """Expand ``expr`` from onset 0 with the given performance state."""
        self._events = []
        self._steps = 0
        if state is None:
            state = PerformanceState()

        end, end_state = self._expand(expr, Fraction(0), state, _Context())

        events = sort_events(self._events)
        self._events = []
        logger.debug("Expanded %d events over %s ticks (%d steps)",
                     len(events), end, self._steps)
        return Expansion(events=events, end_state=end_state, duration=end)

    def expand_symbol(self, name: str,
                      state: PerformanceState | None = None) -> Expansion:
        return self.expand(Reference(name), state)

    # ------------------------------------------------------------------
    # Recursive walk
    # ------------------------------------------------------------------

    def _expand(self, expr: Expression, onset: Fraction,
                state: PerformanceState,
                ctx: _Context) -> tuple[Fraction, PerformanceState]:
        """Expand one node starting at ``onset``.

        Returns the onset just after the node and the state it leaves behind.
        """
        self._steps += 1
        if self._steps > self.max_steps:
            raise ResourceLimitError(
                f"expansion exceeded {self.max_steps} steps", ctx.chain)
        if ctx.depth > self.max_depth:
            raise ResourceLimitError(
                f"nesting deeper than {self.max_depth}", ctx.chain)

        if isinstance(expr, Sequence):
            for term in expr.terms:
                onset, state = self._expand(term, onset, state, ctx)
            return onset, state

        if isinstance(expr, NoteEvent):
            duration = self._scaled(expr.duration, expr, ctx)
            pitch = expr.pitch.transpose(ctx.transpose)
            self._emit(Event(onset, duration, (pitch,),
                             state.instrument, state.velocity), ctx)
            return onset + duration, state

        if isinstance(expr, RestEvent):
            duration = self._scaled(expr.duration, expr, ctx)
            self._emit(Event(onset, duration, (),
                             state.instrument, state.velocity), ctx)
            return onset + duration, state

        if isinstance(expr, ChordLiteral):
            duration = self._scaled(expr.duration, expr, ctx)
            pitches = tuple(p.transpose(ctx.transpose) for p in expr.pitches)
            self._emit(Event(onset, duration, pitches,
                             state.instrument, state.velocity), ctx)
            return onset + duration, state

        if isinstance(expr, ControlSet):
            return onset, state.apply(expr)

        if isinstance(expr, Reference):
            chain = ctx.chain + (expr.name,)
            body = self.table.resolve(expr.name, ctx.chain)
            inner = replace(ctx, chain=chain, depth=ctx.depth + 1)
            return self._expand(body, onset, state, inner)

        if isinstance(expr, Choice):
            index = self.rng.randrange(len(expr.alternatives))
            inner = replace(ctx, depth=ctx.depth + 1)
            return self._expand(expr.alternatives[index], onset, state, inner)

        if isinstance(expr, Repeat):
            return self._expand_repeat(expr, onset, state, ctx)

        if isinstance(expr, TimeScale):
            if expr.rate <= 0:
                raise InvalidOperatorArgument(
                    ">>", expr.rate, "scale rate must be positive",
                    ctx.chain, _line(expr))
            inner = replace(ctx, scale=ctx.scale * expr.factor,
                            depth=ctx.depth + 1)
            return self._expand(expr.body, onset, state, inner)

        if isinstance(expr, Transpose):
            if expr.semitones.denominator != 1:
                raise InvalidOperatorArgument(
                    "T", expr.semitones, "transpose needs whole semitones",
                    ctx.chain, _line(expr))
            inner = replace(ctx, transpose=ctx.transpose + int(expr.semitones),
                            depth=ctx.depth + 1)
            return self._expand(expr.body, onset, state, inner)

        raise TypeError(f"cannot expand {type(expr).__name__}")

    def _expand_repeat(self, expr: Repeat, onset: Fraction,
                       state: PerformanceState,
                       ctx: _Context) -> tuple[Fraction, PerformanceState]:
        """Expand the body ``count`` times back to back.

        A deterministic body expands the same way whenever it starts from
        the same state, and its controls settle after one pass. From the
        first pass that ends in the state it started from, the remaining
        passes are copies of that pass.
        """
        if expr.count <= 0:
            raise InvalidOperatorArgument(
                "x", expr.count, "repeat count must be positive",
                ctx.chain, _line(expr))
        inner = replace(ctx, depth=ctx.depth + 1)
        deterministic = (expr.count > 1
                         and self.table.is_deterministic(expr.body))

        first = len(self._events)
        start = onset
        onset, end_state = self._expand(expr.body, onset, state, inner)
        done = 1
        if deterministic and end_state != state:
            state = end_state
            first = len(self._events)
            start = onset
            onset, end_state = self._expand(expr.body, onset, state, inner)
            done = 2

        if deterministic and end_state == state:
            remaining = expr.count - done
            block = self._events[first:]
            length = onset - start
            if len(self._events) + len(block) * remaining > self.max_events:
                raise ResourceLimitError(
                    f"more than {self.max_events} events", ctx.chain)
            if block:
                for i in range(1, remaining + 1):
                    offset = length * i
                    self._events.extend(e.shifted(offset) for e in block)
            return onset + length * remaining, state

        state = end_state
        for _ in range(expr.count - done):
            onset, state = self._expand(expr.body, onset, state, inner)
        return onset, state

    def _scaled(self, duration: Fraction, expr: Expression,
                ctx: _Context) -> Fraction:
        scaled = duration * ctx.scale
        if scaled <= 0:
            raise DurationUnderflow(scaled, ctx.chain, _line(expr))
        return scaled

    def _emit(self, event: Event, ctx: _Context) -> None:
        if len(self._events) >= self.max_events:
            raise ResourceLimitError(
                f"more than {self.max_events} events", ctx.chain)
        self._events.append(event)


def _line(expr: Expression) -> int | None:
    return expr.span.line if expr.span is not None else None


def expand(table: SymbolTable, expr: Expression,
           state: PerformanceState | None = None,
           rng: random.Random | None = None,
           seed: int | None = None, **limits: int) -> Expansion:
    """Convenience function: expand one expression with a fresh Expander."""
    expander = Expander(table, rng=rng, seed=seed, **limits)
    return expander.expand(expr, state)
