"""
Install receipts — which recipe owns which files under a prefix.

One JSON file per recipe in ``<prefix>/.receipts/``.  The stager reads
them to tell "our own previous install" apart from "somebody else's
file", and writes one after a successful stage.  Writes are atomic
(temp file, then rename) so a crash never leaves a half-written
receipt behind.
"""

from __future__ import annotations

import json
import logging
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

RECEIPTS_DIR = ".receipts"


class InstallReceipt(BaseModel):
    """Files one recipe installed into a prefix."""

    schema_version: int = 1
    owner: str
    files: list[str] = Field(default_factory=list)
    installed_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


def receipt_path(prefix: Path, owner: str) -> Path:
    return prefix / RECEIPTS_DIR / f"{owner}.json"


def load_receipt(prefix: Path, owner: str) -> InstallReceipt | None:
    """Load the receipt for ``owner``, or None if there isn't a usable one."""
    path = receipt_path(prefix, owner)
    if not path.is_file():
        return None
    try:
        return InstallReceipt.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable receipt %s: %s", path, e)
        return None


def file_owners(prefix: Path) -> dict[str, str]:
    """Map every recorded file (relative to the prefix) to its owner."""
    owners: dict[str, str] = {}
    rdir = prefix / RECEIPTS_DIR
    if not rdir.is_dir():
        return owners
    for path in sorted(rdir.glob("*.json")):
        receipt = load_receipt(prefix, path.stem)
        if receipt is None:
            continue
        for rel in receipt.files:
            owners[rel] = receipt.owner
    return owners


def save_receipt(prefix: Path, receipt: InstallReceipt) -> Path:
    """Write the receipt atomically and return its path."""
    path = receipt_path(prefix, receipt.owner)
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(receipt.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    _fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".receipt_", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with open(_fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Receipt saved to %s", path)
    return path


def remove_receipt(prefix: Path, owner: str) -> None:
    receipt_path(prefix, owner).unlink(missing_ok=True)
