"""
L0 Data — Formula template rendering.

Release pipelines ship formulas as templates with ``__KEY__``
placeholders (``__URL__``, ``__SHA256__``, ``__COMMIT__``,
``__VERSION__``) that are filled in right before use.
No I/O.
"""

from __future__ import annotations

import re

_PLACEHOLDER_RE = re.compile(r"__([A-Z][A-Z0-9_]*?)__")


def find_placeholders(text: str) -> list[str]:
    """Placeholder keys still present in ``text``, in first-seen order."""
    seen: list[str] = []
    for match in _PLACEHOLDER_RE.finditer(text):
        key = match.group(1)
        if key not in seen:
            seen.append(key)
    return seen


def render_template(text: str, variables: dict[str, str]) -> str:
    """Substitute ``__KEY__`` placeholders whose key is in ``variables``.

    Keys are matched case-insensitively (``commit`` fills ``__COMMIT__``).
    Unknown placeholders are left in place so the caller can report
    them with ``find_placeholders``.
    """
    upper = {k.upper(): str(v) for k, v in variables.items()}

    def _sub(match: re.Match[str]) -> str:
        return upper.get(match.group(1), match.group(0))

    return _PLACEHOLDER_RE.sub(_sub, text)


def parse_assignments(pairs: list[str] | tuple[str, ...]) -> dict[str, str]:
    """Turn ``["KEY=value", ...]`` (CLI ``--set``) into a dict.

    Raises:
        ValueError: On an entry without ``=`` or with an empty key.
    """
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        result[key.strip().upper()] = value
    return result
