"""Canonical JSON rendering for candidate keys."""

from __future__ import annotations

import json
import math
from typing import Any

JsonValue = Any

# Integral floats below this magnitude print as integers, like a float64 JSON encoder.
_INTEGRAL_FLOAT_LIMIT = 1e21


def canonicalize(value: JsonValue) -> JsonValue:
    """Return a copy of ``value`` with sorted object fields and normalized numbers.

    ``10``, ``10.0`` and ``1e1`` all become ``10``.
    """

    if isinstance(value, dict):
        return {name: canonicalize(value[name]) for name in sorted(value)}
    if isinstance(value, list):
        return [canonicalize(item) for item in value]
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"Non-finite number is not valid JSON: {value!r}")
    if isinstance(value, float) and value.is_integer() and abs(value) < _INTEGRAL_FLOAT_LIMIT:
        return int(value)
    return value


def canonical_json(value: JsonValue) -> str:
    """Serialize ``value`` with sorted fields and no insignificant whitespace."""

    return json.dumps(
        canonicalize(value),
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def scalar_text(value: JsonValue) -> str:
    """Render one JSON value as prompt text: strings verbatim, the rest as JSON."""

    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return canonical_json(value)
