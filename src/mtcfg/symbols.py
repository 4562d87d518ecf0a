"""Symbol table: named definitions, lazy resolution and static checks.

Redefinition policy is last-wins: ``define`` silently replaces an earlier
binding (the parser's warnings report it). Once ``freeze`` has been called
the table is read-only, so any number of expansions can share it.

The cycle check is the classic productive-nonterminal fixpoint. A symbol is
productive when its body can finish expanding:

- notes, rests, chords and controls are productive
- a sequence, repeat, scale or transpose needs every part productive
- a choice needs at least one productive alternative
- a reference needs a productive target

Symbols left unproductive after the fixpoint can only ever recurse, e.g.
``A = B`` / ``B = A``, ``A = [x2][A]`` or ``A = {A | A}``. Recursion with an
escape route such as ``A = {:c | :c A}`` is legal.
"""

from __future__ import annotations

import logging
from collections import deque

from mtcfg.ast_nodes import (
    GrammarFile, Expression,
    Sequence, Reference, Repeat, Choice, TimeScale, Transpose,
)
from mtcfg.errors import CycleError, UndefinedSymbolError
from mtcfg.grammar.transformer import children, referenced_names

logger = logging.getLogger(__name__)


class SymbolTable:
    """Name → expression tree bindings."""

    def __init__(self) -> None:
        self._definitions: dict[str, Expression] = {}
        self._frozen = False
        self._deterministic: dict[str, bool] = {}

    @classmethod
    def from_grammar(cls, grammar: GrammarFile) -> SymbolTable:
        """Load every definition in file order and freeze the table."""
        table = cls()
        for d in grammar.definitions:
            table.define(d.name, d.body)
        table.freeze()
        return table

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    def define(self, name: str, expr: Expression) -> None:
        """Bind ``name`` to ``expr``, replacing any earlier binding."""
        if self._frozen:
            raise RuntimeError("symbol table is frozen")
        if name in self._definitions:
            logger.debug("Redefinition of %s: last definition wins", name)
        self._definitions[name] = expr
        self._deterministic.clear()

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def resolve(self, name: str, chain: tuple[str, ...] = ()) -> Expression:
        try:
            return self._definitions[name]
        except KeyError:
            raise UndefinedSymbolError(name, chain) from None

    def is_alias(self, name: str) -> bool:
        """True when the body is a single bare reference."""
        return isinstance(self.resolve(name), Reference)

    def names(self) -> list[str]:
        return list(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    # ------------------------------------------------------------------
    # Static checks
    # ------------------------------------------------------------------

    def check_references(self, start: str) -> None:
        """Fail if the start symbol or any referenced symbol is undefined.

        The error's chain leads from ``start`` to the offending reference
        when it is reachable, otherwise from the definition containing it.
        """
        if start not in self._definitions:
            raise UndefinedSymbolError(start, ())

        # Breadth-first from start so the reported chain is a shortest path
        parents: dict[str, str | None] = {start: None}
        queue = deque([start])
        while queue:
            name = queue.popleft()
            for ref in referenced_names(self._definitions[name]):
                if ref.name not in self._definitions:
                    raise UndefinedSymbolError(
                        ref.name, _path_to(parents, name))
                if ref.name not in parents:
                    parents[ref.name] = name
                    queue.append(ref.name)

        for name, body in self._definitions.items():
            if name in parents:
                continue
            for ref in referenced_names(body):
                if ref.name not in self._definitions:
                    raise UndefinedSymbolError(ref.name, (name,))

    def unproductive_symbols(self) -> set[str]:
        """Symbols whose expansion can never finish."""
        productive: set[str] = set()
        changed = True
        while changed:
            changed = False
            for name, body in self._definitions.items():
                if name not in productive and _can_finish(body, productive):
                    productive.add(name)
                    changed = True
        return set(self._definitions) - productive

    def check_cycles(self) -> None:
        """Raise CycleError naming every symbol that can only recurse."""
        stuck = self.unproductive_symbols()
        if stuck:
            raise CycleError(sorted(stuck))

    def is_deterministic(self, expr: Expression) -> bool:
        """True when no Choice can be reached from ``expr``.

        Results for named definitions are memoised; an in-progress symbol
        counts as non-deterministic, which only costs an optimisation.
        """
        if isinstance(expr, Choice):
            return False
        if isinstance(expr, Reference):
            cached = self._deterministic.get(expr.name)
            if cached is not None:
                return cached
            if expr.name not in self._definitions:
                return False
            self._deterministic[expr.name] = False
            result = self.is_deterministic(self._definitions[expr.name])
            self._deterministic[expr.name] = result
            return result
        return all(self.is_deterministic(c) for c in children(expr))


def _can_finish(expr: Expression, productive: set[str]) -> bool:
    if isinstance(expr, Reference):
        return expr.name in productive
    if isinstance(expr, Choice):
        return any(_can_finish(a, productive) for a in expr.alternatives)
    if isinstance(expr, (Sequence, Repeat, TimeScale, Transpose)):
        return all(_can_finish(c, productive) for c in children(expr))
    return True


def _path_to(parents: dict[str, str | None], name: str) -> tuple[str, ...]:
    path: list[str] = []
    node: str | None = name
    while node is not None:
        path.append(node)
        node = parents[node]
    return tuple(reversed(path))
