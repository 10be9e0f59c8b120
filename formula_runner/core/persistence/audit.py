"""
Run ledger — one NDJSON line per formula run.

Every orchestrator run, successful or not, is appended here with the
recipe, the prefix, the final state and the phase that stopped it.
Lines are only ever appended; ``history`` reads them back.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

LEDGER_NAME = "audit.ndjson"


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class AuditEntry(BaseModel):
    """What a single run did, as stored in the ledger."""

    operation_id: str = ""
    timestamp: str = Field(default_factory=_utc_now)
    recipe: str = ""
    prefix: str = ""

    # outcome
    state: str = ""
    status: str = ""
    phase: str | None = None
    error: str | None = None
    rolled_back: bool = False

    files_staged: list[str] = Field(default_factory=list)
    assertions_total: int = 0
    assertions_failed: int = 0

    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Appends to and reads back ``<state_dir>/audit.ndjson``.

    Pass either the ledger file itself or the state directory that
    holds it.  Nothing is created until the first entry is written.
    """

    def __init__(self, path: Path | None = None, state_dir: Path | None = None):
        if path is None:
            path = (state_dir if state_dir is not None else Path(".state")) / LEDGER_NAME
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append ``entry``.  An unwritable ledger is logged, not raised."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as ledger:
                ledger.write(entry.model_dump_json() + "\n")
        except OSError as e:
            logger.error("Could not record run %s in %s: %s", entry.operation_id, self._path, e)
            return
        logger.debug("Recorded run %s (%s, %s)", entry.operation_id, entry.recipe, entry.status)

    def read_all(self) -> list[AuditEntry]:
        """Every recorded run, oldest first."""
        return list(self._entries())

    def read_recent(self, n: int = 20, recipe: str | None = None) -> list[AuditEntry]:
        """The last ``n`` runs, optionally only those of ``recipe``."""
        entries = [e for e in self._entries() if recipe is None or e.recipe == recipe]
        return entries[-n:] if n > 0 else []

    def _entries(self) -> Iterator[AuditEntry]:
        if not self._path.is_file():
            return
        with self._path.open(encoding="utf-8") as ledger:
            for lineno, raw in enumerate(ledger, start=1):
                if not raw.strip():
                    continue
                try:
                    yield AuditEntry.model_validate(json.loads(raw))
                except (ValueError, ValidationError) as e:
                    logger.warning("%s:%d: unreadable ledger line skipped (%s)", self._path, lineno, e)
