"""
L1 Domain — Version constraint validation (pure).

Checks an available version against a dependency's constraint string.
No I/O, no subprocess.
"""

from __future__ import annotations

import re

_CONSTRAINT_RE = re.compile(r"^\s*(>=|<=|==|~=|>|<|=)?\s*v?([0-9][0-9A-Za-z.\-+]*)\s*$")


def _parse_semver(v: str) -> tuple[int, ...]:
    """``"v1.21.3"`` → ``(1, 21, 3)``.  Pre-release/build suffixes are ignored."""
    core = re.split(r"[-+]", v.strip().lstrip("v"), maxsplit=1)[0]
    return tuple(int(x) for x in core.split(".")[:3])


def _pad(parts: tuple[int, ...], n: int = 3) -> tuple[int, ...]:
    return parts + (0,) * (n - len(parts))


def check_version_constraint(available: str, constraint: str) -> dict:
    """Validate an available version against a constraint string.

    Operators:
        - ``>=``, ``>``, ``<=``, ``<``: ordered comparison
        - ``==`` / ``=``: exact match (missing trailing parts count as 0)
        - ``~=``: compatible release — same leading parts, not older
        - none: a bare version means ``>=``

    Args:
        available: The version that is installed, e.g. ``"1.21.3"``.
        constraint: The declared constraint, e.g. ``">=1.21"``.

    Returns:
        ``{"valid": True}`` or ``{"valid": False, "message": "..."}``.
        Unparseable versions are treated as valid with ``parse_error``
        set, since nothing can be said about them.
    """
    m = _CONSTRAINT_RE.match(constraint or "")
    if not m:
        return {"valid": True, "parse_error": True}
    op = m.group(1) or ">="
    ref = m.group(2)

    try:
        ref_parts = _parse_semver(ref)
        sel = _pad(_parse_semver(available))
    except (ValueError, IndexError):
        return {"valid": True, "parse_error": True}
    ref_full = _pad(ref_parts)

    if op == ">=":
        ok = sel >= ref_full
    elif op == ">":
        ok = sel > ref_full
    elif op == "<=":
        ok = sel <= ref_full
    elif op == "<":
        ok = sel < ref_full
    elif op in ("==", "="):
        ok = sel == ref_full
    else:  # ~=
        # ~=1.2 → >=1.2, ==1.*    ~=1.2.3 → >=1.2.3, ==1.2.*
        lead = max(len(ref_parts) - 1, 1)
        ok = sel[:lead] == ref_full[:lead] and sel >= ref_full

    if ok:
        return {"valid": True}
    return {
        "valid": False,
        "message": f"Version {available} does not satisfy {op}{ref}",
    }
