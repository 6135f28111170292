"""
Canonical JSON primitives shared by the aggregation pipeline.

Proof objects arrive as arbitrary JSON; the backend program receives them as
strings. Re-serializing through ``rfc8785_canonicalize`` makes that string
independent of the client's key order and whitespace, so the same proof always
yields the same program input (and the same request hash).
"""

import json
import math
from typing import Any


def rfc8785_canonicalize(obj: Any) -> str:
    """
    Canonicalize JSON following RFC 8785 (JSON Canonicalization Scheme).

    Rules:
    - Keys sorted lexicographically
    - No insignificant whitespace
    - Strings emitted with literal (unescaped) Unicode

    Raises:
        ValueError: for NaN/Infinity, which have no JSON representation
        TypeError: for values that are not JSON types
    """
    if obj is None:
        return "null"
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"non-finite number has no canonical form: {obj!r}")
        if obj.is_integer() and abs(obj) < 2**53:
            return str(int(obj))
        return json.dumps(obj)
    if isinstance(obj, str):
        return json.dumps(obj, ensure_ascii=False)
    if isinstance(obj, (list, tuple)):
        return "[" + ",".join(rfc8785_canonicalize(item) for item in obj) + "]"
    if isinstance(obj, dict):
        pairs = []
        for key in sorted(obj.keys()):
            if not isinstance(key, str):
                raise TypeError(f"object keys must be strings, got {type(key).__name__}")
            pairs.append(f"{json.dumps(key, ensure_ascii=False)}:{rfc8785_canonicalize(obj[key])}")
        return "{" + ",".join(pairs) + "}"
    raise TypeError(f"value of type {type(obj).__name__} is not JSON serializable")


def canonical_bytes(obj: Any) -> bytes:
    return rfc8785_canonicalize(obj).encode("utf-8")
