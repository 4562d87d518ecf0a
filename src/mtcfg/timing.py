"""Rational tick arithmetic.

All durations and onsets are ``fractions.Fraction`` counts of base ticks.
A note without a duration suffix lasts one tick before any scaling.
"""

from __future__ import annotations

import re
from fractions import Fraction

RE_NUMBER = re.compile(r"^\s*(-?\d+)(?:\s*/\s*(-?\d+)|(\.\d+))?\s*$")


def parse_fraction(text: str) -> Fraction:
    """Parse ``"3"``, ``"-3/4"`` or ``"1.5"`` into an exact Fraction.

    Raises:
        ValueError: on malformed text or a zero denominator
    """
    m = RE_NUMBER.match(text)
    if m is None:
        raise ValueError(f"Expected a number, got {text!r}")
    numerator = int(m.group(1))
    if m.group(2) is not None:
        denominator = int(m.group(2))
        if denominator == 0:
            raise ValueError("Denominator cannot be zero")
        return Fraction(numerator, denominator)
    if m.group(3) is not None:
        return Fraction(m.group(1) + m.group(3))
    return Fraction(numerator)


def format_ticks(value: Fraction) -> int | str:
    """Render a tick count as an int when whole, else as ``"n/d"``."""
    if value.denominator == 1:
        return value.numerator
    return f"{value.numerator}/{value.denominator}"
