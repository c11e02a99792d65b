"""
xapi_core/canonical.py — Deterministic JSON serialization

Produces the exact bytes that go on the wire (multipart part 1, signature
payload) and the sorted form used for structural comparison.  Two calls
on the same logical value MUST produce byte-identical output.

Two orderings:
  - wire order (default): keys in insertion order, i.e. model field order.
    This is what the LRS receives and what Content-Length is computed over.
  - sorted order: full RFC 8785 canonical form, produced by the jcs
    library.  Used when comparing a recovered statement with its carrier,
    where key order must not matter.

Strategy for wire order: json.dumps for string escaping, custom logic
only for number formatting (ECMAScript Number.toString) and negative zero.

Reference: https://www.rfc-editor.org/rfc/rfc8785
"""

from __future__ import annotations

import json
import math
from typing import Any

import jcs

from .errors import EncodingFailure


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def canonicalize(obj: Any, sort_keys: bool = False) -> bytes:
    """Serialize a JSON-compatible Python object to compact UTF-8 JSON bytes.

    Raises:
        EncodingFailure: If input contains NaN, Infinity, integers outside
                         the IEEE 754 double range, or non-JSON types.
    """
    text = _serialize_value(obj)
    if not sort_keys:
        return text.encode("utf-8")
    # the wire writer has already rejected anything outside the JSON model
    try:
        return jcs.canonicalize(obj)
    except (TypeError, ValueError) as e:
        raise EncodingFailure(f"Cannot canonicalize: {e}") from None


def canonical_text(obj: Any, sort_keys: bool = False) -> str:
    """Same as canonicalize() but returns str (for display and logging)."""
    return canonicalize(obj, sort_keys).decode("utf-8")


# ---------------------------------------------------------------------------
# Wire-order writer
# ---------------------------------------------------------------------------

def _serialize_value(value: Any) -> str:
    """Recursively serialize a value to canonical JSON string."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        # Must check bool before int (bool is subclass of int)
        return "true" if value else "false"
    if isinstance(value, int):
        return _serialize_integer(value)
    if isinstance(value, float):
        return _serialize_float(value)
    if isinstance(value, str):
        # ensure_ascii=False passes non-ASCII through as UTF-8.
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (list, tuple)):
        items = ",".join(_serialize_value(item) for item in value)
        return f"[{items}]"
    if isinstance(value, dict):
        return _serialize_object(value)
    raise EncodingFailure(
        f"Cannot serialize type {type(value).__name__}. "
        f"Only JSON-compatible types are allowed."
    )


def _serialize_integer(n: int) -> str:
    """Serialize an integer. Reject values beyond IEEE 754 double range."""
    if abs(n) > 2**53:
        raise EncodingFailure(
            f"Integer {n} exceeds IEEE 754 double precision range (2^53)."
        )
    return str(n)


def _serialize_float(f: float) -> str:
    """Serialize a float per ECMAScript NumberToString.

    - NaN and Infinity are rejected (not valid JSON).
    - Negative zero is serialized as "0".
    - Otherwise: shortest representation that round-trips exactly.
    """
    if math.isnan(f) or math.isinf(f):
        raise EncodingFailure(
            f"Cannot serialize {f}: NaN and Infinity are not valid JSON"
        )
    if f == 0.0:
        return "0"
    return _es6_number_to_string(f)


def _es6_number_to_string(f: float) -> str:
    """ECMAScript Number::toString over the shortest round-trip digits.

    repr() yields the same digit string as ECMAScript but switches to
    exponent notation at different magnitudes, so only its digits and
    decimal point position are kept.
    """
    sign = "-" if f < 0 else ""
    mantissa, _, exp_str = repr(abs(f)).partition("e")
    int_part, _, frac_part = mantissa.partition(".")
    digits = int_part + frac_part
    # value = 0.<digits> * 10**point
    point = len(int_part) + (int(exp_str) if exp_str else 0)
    stripped = digits.lstrip("0")
    point -= len(digits) - len(stripped)
    digits = stripped.rstrip("0")
    k = len(digits)

    if k <= point <= 21:
        text = digits + "0" * (point - k)
    elif 0 < point <= 21:
        text = f"{digits[:point]}.{digits[point:]}"
    elif -6 < point <= 0:
        text = "0." + "0" * -point + digits
    else:
        exponent = point - 1
        head = digits[0] + (f".{digits[1:]}" if k > 1 else "")
        text = f"{head}e{'+' if exponent >= 0 else '-'}{abs(exponent)}"
    return sign + text


def _serialize_object(obj: dict) -> str:
    for k in obj.keys():
        if not isinstance(k, str):
            raise EncodingFailure(
                f"Object key must be string, got {type(k).__name__}: {k!r}"
            )

    pairs = []
    for key, value in obj.items():
        k_str = json.dumps(key, ensure_ascii=False)
        v_str = _serialize_value(value)
        pairs.append(f"{k_str}:{v_str}")
    return "{" + ",".join(pairs) + "}"

