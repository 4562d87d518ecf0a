"""Error taxonomy for grammar compilation.

Every error is fatal: the compiler either returns a complete event list or
raises exactly one of these. Each class carries the exit code the CLI uses
for it.
"""

from __future__ import annotations


def format_chain(chain: tuple[str, ...] | list[str]) -> str:
    """Render a reference chain as ``S -> A -> B``."""
    return " -> ".join(chain)


class CompileError(Exception):
    """Base class for all grammar compilation failures."""
    exit_code = 1


class ParseError(CompileError):
    """Malformed token, unbalanced bracket, empty alternative list, ..."""
    exit_code = 1

    def __init__(self, message: str, line: int | None = None,
                 column: int | None = None):
        self.message = message
        self.line = line
        self.column = column
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        if self.column is None:
            return f"line {self.line}: {self.message}"
        return f"line {self.line}, column {self.column}: {self.message}"


class UndefinedSymbolError(CompileError):
    exit_code = 2

    def __init__(self, name: str, chain: tuple[str, ...] = ()):
        self.name = name
        self.chain = tuple(chain)
        msg = f"undefined symbol {name!r}"
        if self.chain:
            msg += f" (referenced via {format_chain(self.chain)})"
        super().__init__(msg)


class CycleError(CompileError):
    """Reference structure that can never finish expanding."""
    exit_code = 3

    def __init__(self, symbols: list[str] | tuple[str, ...]):
        self.symbols = tuple(sorted(symbols))
        super().__init__(
            "non-terminating reference cycle through: "
            + ", ".join(self.symbols)
        )


class ResourceLimitError(CompileError):
    exit_code = 4

    def __init__(self, message: str, chain: tuple[str, ...] = ()):
        self.chain = tuple(chain)
        if self.chain:
            message += f" (in {format_chain(self.chain)})"
        super().__init__(message)


class InvalidOperatorArgument(CompileError):
    """Operator argument outside its domain, e.g. ``[x0]`` or ``[T1/2]``."""
    exit_code = 5

    def __init__(self, operator: str, argument: object,
                 reason: str, chain: tuple[str, ...] = (),
                 line: int | None = None):
        self.operator = operator
        self.argument = argument
        self.chain = tuple(chain)
        self.line = line
        msg = f"invalid argument {argument} for [{operator}]: {reason}"
        if line is not None:
            msg += f" at line {line}"
        if self.chain:
            msg += f" (in {format_chain(self.chain)})"
        super().__init__(msg)


class DurationUnderflow(CompileError):
    exit_code = 5

    def __init__(self, duration: object, chain: tuple[str, ...] = (),
                 line: int | None = None):
        self.duration = duration
        self.chain = tuple(chain)
        self.line = line
        msg = f"duration must be positive, got {duration}"
        if line is not None:
            msg += f" at line {line}"
        if self.chain:
            msg += f" (in {format_chain(self.chain)})"
        super().__init__(msg)
