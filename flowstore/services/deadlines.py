"""Normalization of per-flow deadline rules.

Two input shapes are accepted:

* ``{"field": "<column key>", "days": <number>}`` - the current shape, a single
  rule measured from a date column of the flow.
* ``{"<node or column key>": <number>, ...}`` - the legacy shape, one day count
  per key.

Anything that does not survive validation is dropped, and an empty result is
stored as ``None``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any


_RADIX_LITERAL = re.compile(
    r"0(?:[xX](?P<hex>[0-9a-fA-F]+)|[oO](?P<oct>[0-7]+)|[bB](?P<bin>[01]+))"
)
_RADIX_BASES = {"hex": 16, "oct": 8, "bin": 2}


def _to_number(value: Any) -> float:
    """Coerce like a JavaScript ``Number()`` call; NaN marks a rejected value.

    Strings may be decimal, exponent or unsigned ``0x``/``0o``/``0b`` literals.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if "_" in text:
            return math.nan
        radix = _RADIX_LITERAL.fullmatch(text)
        if radix:
            kind = radix.lastgroup
            try:
                return float(int(radix.group(kind), _RADIX_BASES[kind]))
            except OverflowError:
                return math.inf
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _clean_days(value: Any) -> int | float | None:
    num = _to_number(value)
    if not math.isfinite(num) or num < 0:
        return None
    return int(num) if num.is_integer() else num


def sanitize_deadlines(raw: Any) -> dict[str, Any] | None:
    if not isinstance(raw, Mapping) or not raw:
        return None

    if "field" in raw or "days" in raw:
        out: dict[str, Any] = {}

        field = raw.get("field")
        if isinstance(field, str) and field.strip():
            out["field"] = field.strip()

        if "days" in raw:
            days = _clean_days(raw["days"])
            if days is not None:
                out["days"] = days

        return out or None

    legacy: dict[str, Any] = {}
    for key, value in raw.items():
        days = _clean_days(value)
        if days is not None:
            legacy[str(key)] = days
    return legacy or None
