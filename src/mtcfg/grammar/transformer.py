"""Static checks and symbol collection over parsed grammars.

Nothing here raises: structural oddities that are still legal grammar are
reported as GrammarWarning records, the same way the compiler reports them
alongside its events. Hard errors (undefined symbols, cycles) belong to the
symbol table.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from mtcfg.ast_nodes import (
    GrammarFile, Expression,
    Sequence, Reference, NoteEvent, RestEvent, ControlSet,
    Repeat, Choice, TimeScale, Transpose, OPERATOR_NODES,
)


@dataclass
class GrammarWarning:
    """A non-fatal diagnostic about a grammar."""
    category: str       # e.g. "redefinition", "unused_definition"
    message: str        # human-readable description
    definition: str | None = None
    line: int | None = None

    def __str__(self) -> str:
        loc = ""
        if self.definition is not None:
            loc += self.definition
            if self.line is not None:
                loc += f"@{self.line}"
            loc += " "
        return f"[{self.category}] {loc}{self.message}"


def validate_grammar(grammar: GrammarFile) -> list[GrammarWarning]:
    """Validate a parsed grammar for structural oddities.

    Returns a list of warnings (empty if nothing stands out).
    """
    warnings: list[GrammarWarning] = []

    if not grammar.definitions:
        warnings.append(GrammarWarning("empty_grammar", "No definitions found"))

    for name, lines in grammar.redefinitions().items():
        warnings.append(GrammarWarning(
            "redefinition",
            f"defined on lines {', '.join(map(str, lines))}; "
            f"the definition on line {lines[-1]} wins",
            definition=name, line=lines[-1],
        ))

    for d in grammar.definitions:
        body = d.body
        if isinstance(body, Sequence) and not body.terms:
            warnings.append(GrammarWarning(
                "empty_definition", "body is empty and lasts zero ticks",
                definition=d.name, line=d.line,
            ))
        elif _is_mixed_note_list(body):
            warnings.append(GrammarWarning(
                "sequential_note_list",
                "notes mixed with rests/controls/operators play one after "
                "another, not as a chord",
                definition=d.name, line=d.line,
            ))

    if grammar.start is not None:
        reachable = reachable_symbols(grammar, grammar.start)
        for name in grammar.definition_names():
            if name not in reachable:
                warnings.append(GrammarWarning(
                    "unused_definition",
                    f"not reachable from start symbol {grammar.start!r}",
                    definition=name,
                ))

    return warnings


def warnings_summary(warnings: list[GrammarWarning]) -> str:
    """Return a human-readable summary of warnings by category."""
    if not warnings:
        return "No warnings."
    counts: Counter[str] = Counter(w.category for w in warnings)
    lines = [f"{len(warnings)} warning(s):"]
    for cat, n in counts.most_common():
        lines.append(f"  {cat}: {n}")
    return "\n".join(lines)


def _is_mixed_note_list(body: Expression) -> bool:
    """A flat note list that would be a chord without its other terms."""
    if not isinstance(body, Sequence):
        return False
    notes = sum(isinstance(t, NoteEvent) for t in body.terms)
    breakers = (RestEvent, ControlSet) + OPERATOR_NODES
    return notes >= 2 and any(isinstance(t, breakers) for t in body.terms)


def children(expr: Expression) -> tuple[Expression, ...]:
    """Direct sub-expressions of a node."""
    if isinstance(expr, Sequence):
        return expr.terms
    if isinstance(expr, Choice):
        return expr.alternatives
    if isinstance(expr, (Repeat, TimeScale, Transpose)):
        return (expr.body,)
    return ()


def walk_expression(expr: Expression) -> list[Expression]:
    """Recursively collect a node and all nested nodes, depth-first."""
    result: list[Expression] = [expr]
    for child in children(expr):
        result.extend(walk_expression(child))
    return result


def referenced_names(expr: Expression) -> list[Reference]:
    """All Reference nodes inside an expression, in textual order."""
    return [e for e in walk_expression(expr) if isinstance(e, Reference)]


def collect_defined_symbols(grammar: GrammarFile) -> set[str]:
    """Collect all symbols that have a definition."""
    return {d.name for d in grammar.definitions}


def collect_referenced_symbols(grammar: GrammarFile) -> set[str]:
    """Collect all symbols referenced from any definition body."""
    names: set[str] = set()
    for d in grammar.definitions:
        names.update(r.name for r in referenced_names(d.body))
    return names


def collect_undefined_symbols(grammar: GrammarFile) -> set[str]:
    """Symbols that are referenced but never defined."""
    return collect_referenced_symbols(grammar) - collect_defined_symbols(grammar)


def reachable_symbols(grammar: GrammarFile, start: str) -> set[str]:
    """Defined symbols reachable from ``start`` (last definition wins)."""
    bodies = {d.name: d.body for d in grammar.definitions}
    seen: set[str] = set()
    stack = [start]
    while stack:
        name = stack.pop()
        if name in seen or name not in bodies:
            continue
        seen.add(name)
        stack.extend(r.name for r in referenced_names(bodies[name]))
    return seen
