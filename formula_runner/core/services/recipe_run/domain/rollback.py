"""
L1 Domain — Rollback plan generation (pure).

The stager keeps a journal of what it did to the prefix; this turns
the journal into the list of undo operations, newest first.
No I/O, no subprocess.

Journal entries::

    {"op": "mkdir",   "path": "/prefix/bin"}
    {"op": "create",  "path": "/prefix/bin/tool"}
    {"op": "replace", "path": "/prefix/bin/tool", "backup": "/prefix/bin/.tool.bak"}
"""

from __future__ import annotations

_UNDO = {
    "mkdir": "rmdir",       # only if still empty
    "create": "remove",
    "replace": "restore",   # move backup back over path
}


def generate_rollback(journal: list[dict]) -> list[dict]:
    """Undo operations for ``journal``, in reverse order of execution.

    Unknown ops are skipped; they have nothing the stager can undo.
    """
    rollback: list[dict] = []
    for entry in reversed(journal):
        undo = _UNDO.get(entry.get("op", ""))
        if undo is None:
            continue
        step = {"op": undo, "path": entry["path"]}
        if "backup" in entry:
            step["backup"] = entry["backup"]
        rollback.append(step)
    return rollback


def generate_commit(journal: list[dict]) -> list[dict]:
    """Cleanup once a stage is committed: drop the backups of replaced files."""
    return [
        {"op": "remove", "path": entry["backup"]}
        for entry in journal
        if entry.get("op") == "replace" and entry.get("backup")
    ]
