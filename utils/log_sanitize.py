"""
Make payloads and mask records safe to log.

Tokens are reversible by anyone holding the signing secret, so they are treated
like the raw values they protect: neither is ever written to logs.

- sanitize_for_log(obj): redacts well-known value-carrying keys
- redact_leaves(obj): keeps only the shape of a payload (every string replaced)
"""

from __future__ import annotations

from typing import Any, Mapping

# Keys that hold a raw value, a plaintext or a token in the structures we log.
PII_VALUE_KEYS = frozenset({"value", "token", "plaintext"})

# Placeholder used in logs instead of real values.
REDACTED_PLACEHOLDER = "[REDACTED]"


def sanitize_for_log(obj: Any) -> Any:
    """
    Return a copy of obj where every PII_VALUE_KEYS entry is replaced with
    REDACTED_PLACEHOLDER. Nested dicts, lists and tuples are processed
    recursively; the input is not modified.
    """
    if isinstance(obj, Mapping) and not isinstance(obj, type):
        out = {}
        for k, v in obj.items():
            if k in PII_VALUE_KEYS:
                out[k] = REDACTED_PLACEHOLDER
            else:
                out[k] = sanitize_for_log(v)
        return out
    if isinstance(obj, list):
        return [sanitize_for_log(item) for item in obj]
    if isinstance(obj, tuple):
        return tuple(sanitize_for_log(item) for item in obj)
    return obj


def redact_leaves(obj: Any) -> Any:
    """
    Return the shape of a JSON-like payload with every string replaced.

    Numbers, booleans and None are kept; they are useful when debugging a
    rejected body and are never masked by the sanitizer either.
    """
    if isinstance(obj, Mapping):
        return {k: redact_leaves(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [redact_leaves(item) for item in obj]
    if isinstance(obj, str):
        return REDACTED_PLACEHOLDER
    return obj
