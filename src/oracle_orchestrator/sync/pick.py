"""Pick expressions: extract the submitted value from a fetched payload.

A request carries a ``pick`` string that tells the oracle which part of the
HTTP response to submit. The ledger never evaluates it. The fulfiller treats it
as an opaque ``(expression, payload) -> str`` transform, so any evaluator with
that shape can be injected (see :data:`PickFunction`).

The built-in evaluator covers the jq path subset oracle requests use:

=====================  ==============================================
``""``                 raw payload, verbatim (no JSON parsing)
``.``                  whole JSON document
``.price``             object field
``.data.items[0]``     nested fields and array index
``.["odd key"]``       quoted field name
``.[-1]``              negative index from the end
``.rates.EUR?``        optional: missing path yields ``""``
=====================  ==============================================

Output follows ``jq -r``: strings are returned raw, every other JSON value is
serialised compactly.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

# An injectable evaluator: (expression, payload) -> extracted string.
PickFunction = Callable[[str, str], str]

_TOKEN = re.compile(
    r"""
    \.(?P<field>[A-Za-z_][A-Za-z0-9_]*)      # .field
  | \.?\[\s*"(?P<quoted>(?:[^"\\]|\\.)*)"\s*\]  # ["key"] or .["key"]
  | \.?\[\s*(?P<index>-?\d+)\s*\]           # [0] or .[0]
  | (?P<optional>\?)                        # optional marker
    """,
    re.VERBOSE,
)


class PickError(ValueError):
    """The pick expression is malformed or does not match the payload."""


def _tokenize(expression: str) -> list[tuple[str, Any]]:
    """Split a path expression into ``(kind, value)`` steps."""
    if not expression.startswith("."):
        raise PickError(f"pick expression must start with '.': {expression!r}")
    if expression == ".":
        return []

    steps: list[tuple[str, Any]] = []
    position = 0
    while position < len(expression):
        match = _TOKEN.match(expression, position)
        if match is None:
            raise PickError(f"unexpected input at offset {position} in {expression!r}")
        if match.group("field") is not None:
            steps.append(("key", match.group("field")))
        elif match.group("quoted") is not None:
            try:
                key = json.loads(f'"{match.group("quoted")}"')
            except json.JSONDecodeError as exc:
                raise PickError(f"invalid escape in quoted key of {expression!r}: {exc}") from exc
            steps.append(("key", key))
        elif match.group("index") is not None:
            steps.append(("index", int(match.group("index"))))
        else:
            if not steps or steps[-1][0] == "optional":
                raise PickError(f"misplaced '?' in {expression!r}")
            steps.append(("optional", None))
        position = match.end()
    return steps


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def apply_pick(expression: str, payload: str) -> str:
    """Evaluate ``expression`` against ``payload`` and return the result string.

    Args:
        expression: Pick expression; empty means "use the payload verbatim".
        payload: Raw HTTP response body.

    Returns:
        The extracted value rendered as a string.

    Raises:
        PickError: The expression is malformed, the payload is not JSON, or a
            non-optional path step does not exist.
    """
    expression = expression.strip()
    if not expression:
        return payload

    steps = _tokenize(expression)
    try:
        value: Any = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise PickError(f"payload is not valid JSON: {exc}") from exc

    for position, (kind, key) in enumerate(steps):
        if kind == "optional":
            continue
        optional = position + 1 < len(steps) and steps[position + 1][0] == "optional"
        try:
            if kind == "key":
                if not isinstance(value, dict):
                    raise KeyError(key)
                value = value[key]
            else:
                if not isinstance(value, list):
                    raise IndexError(key)
                value = value[key]
        except (KeyError, IndexError) as exc:
            if optional:
                return ""
            raise PickError(f"path {expression!r} not found in payload") from exc

    return _render(value)
