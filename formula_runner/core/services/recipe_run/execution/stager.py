"""
L4 Execution — Install stager.

Copies build outputs into the install prefix as one atomic unit.
Every change to the prefix is journaled; if any install action fails
the journal is replayed backwards (files removed, replaced files
restored, new directories pruned) before the error propagates, so a
failed stage never leaves a partial install behind.

A stage can be left uncommitted (``commit=False``) so the caller can
still roll it back after verification; ``commit_stage`` makes it
final and records ownership in the prefix's install receipt.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from formula_runner.core.errors import DestinationConflict, InstallError, MissingSource
from formula_runner.core.models.recipe import InstallAction
from formula_runner.core.models.run import BuildResult, StagedFile, StagedSet
from formula_runner.core.persistence.receipts import (
    InstallReceipt,
    file_owners,
    load_receipt,
    remove_receipt,
    save_receipt,
)
from formula_runner.core.services.recipe_run.domain.rollback import (
    generate_commit,
    generate_rollback,
)

logger = logging.getLogger(__name__)


def stage(
    build: BuildResult,
    actions: Iterable[InstallAction],
    prefix: Path | str,
    *,
    owner: str,
    commit: bool = True,
) -> StagedSet:
    """Copy each action's source from the build tree into ``prefix``.

    Args:
        build: Completed build; its ``workdir`` is the build tree.
        actions: Install actions, applied in order.
        prefix: Install prefix (created if missing).
        owner: Recipe name recorded as owner of the staged files.
        commit: Commit right away.  Pass False to decide later with
            ``commit_stage`` / ``rollback_stage``.

    Returns:
        The staged set.

    Raises:
        MissingSource: A source path is absent from the build tree.
        DestinationConflict: A destination exists and is not owned by
            ``owner`` (or is claimed twice in this stage).
        InstallError: Any other filesystem failure while copying.
    """
    prefix = Path(prefix)
    build_root = build.workdir.resolve()
    owners = file_owners(prefix) if prefix.is_dir() else {}
    staged = StagedSet(owner=owner, prefix=prefix)

    try:
        for action in actions:
            for src, rel in _expand_action(build_root, action):
                _stage_file(staged, src, rel, owners)
        if commit:
            commit_stage(staged)
    except InstallError as e:
        logger.error("Staging '%s' failed: %s — rolling back", owner, e)
        rollback_stage(staged)
        raise
    except OSError as e:
        logger.error("Staging '%s' failed: %s — rolling back", owner, e)
        rollback_stage(staged)
        raise InstallError(f"Cannot stage '{owner}' into {prefix}: {e}") from e
    except BaseException:
        rollback_stage(staged)
        raise

    logger.info("Staged %d files for '%s' into %s", len(staged.files), owner, prefix)
    return staged


def commit_stage(staged: StagedSet) -> None:
    """Make a stage final: write the receipt, drop backups and stale files."""
    if staged.committed:
        return

    previous = load_receipt(staged.prefix, staged.owner)
    save_receipt(staged.prefix, InstallReceipt(owner=staged.owner, files=staged.paths))
    staged.committed = True

    for step in generate_commit(staged.journal):
        Path(step["path"]).unlink(missing_ok=True)

    if previous is not None:
        current = set(staged.paths)
        for rel in previous.files:
            if rel not in current:
                logger.debug("Removing stale file from earlier install: %s", rel)
                stale = staged.prefix / rel
                stale.unlink(missing_ok=True)
                _prune_empty_dirs(stale.parent, staged.prefix)

    staged.journal.clear()


def rollback_stage(staged: StagedSet) -> list[str]:
    """Undo an uncommitted stage.  Best effort: every step is attempted.

    Returns:
        Errors encountered (empty when the prefix is fully restored).
    """
    errors: list[str] = []
    for step in generate_rollback(staged.journal):
        path = Path(step["path"])
        try:
            if step["op"] == "remove":
                path.unlink(missing_ok=True)
            elif step["op"] == "restore":
                os.replace(step["backup"], path)
            elif step["op"] == "rmdir":
                if path.is_dir() and not any(path.iterdir()):
                    path.rmdir()
        except OSError as e:
            errors.append(f"{step['op']} {path}: {e}")
            logger.warning("Rollback step failed: %s %s — %s", step["op"], path, e)

    staged.journal.clear()
    staged.files.clear()
    return errors


def unstage(staged: StagedSet) -> None:
    """Remove a committed stage from its prefix, receipt included."""
    if not staged.committed:
        rollback_stage(staged)
        return

    for f in staged.files:
        f.dest.unlink(missing_ok=True)
        _prune_empty_dirs(f.dest.parent, staged.prefix)
    remove_receipt(staged.prefix, staged.owner)
    staged.files.clear()
    staged.committed = False
    logger.info("Unstaged '%s' from %s", staged.owner, staged.prefix)


# ── Internals ───────────────────────────────────────────────────


def _expand_action(build_root: Path, action: InstallAction) -> list[tuple[Path, str]]:
    """``(source file, dest relative to prefix)`` pairs for one action."""
    src = build_root / action.source
    try:
        resolved = src.resolve()
    except OSError:
        raise MissingSource(action.source)
    if not resolved.is_relative_to(build_root) or not resolved.exists():
        raise MissingSource(action.source)

    if resolved.is_file():
        return [(resolved, action.dest)]

    pairs = []
    for child in sorted(resolved.rglob("*")):
        if child.is_file():
            rel = child.relative_to(resolved).as_posix()
            pairs.append((child, str(PurePosixPath(action.dest) / rel)))
    return pairs


def _stage_file(staged: StagedSet, src: Path, rel: str, owners: dict[str, str]) -> None:
    dest = staged.prefix / rel

    if rel in {f.relative for f in staged.files}:
        raise DestinationConflict(rel, staged.owner)

    if dest.exists() or dest.is_symlink():
        owner = owners.get(rel)
        if owner != staged.owner or dest.is_dir():
            raise DestinationConflict(rel, owner)

    _ensure_dir(dest.parent, staged)

    if dest.exists() or dest.is_symlink():
        backup = dest.with_name(f".{dest.name}.{staged.owner}.bak")
        os.replace(dest, backup)
        staged.journal.append({"op": "replace", "path": str(dest), "backup": str(backup)})
        created = False
    else:
        created = True

    tmp = dest.with_name(f".{dest.name}.tmp")
    try:
        shutil.copy2(src, tmp)
        os.replace(tmp, dest)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    if created:
        staged.journal.append({"op": "create", "path": str(dest)})

    staged.files.append(StagedFile(
        relative=rel,
        dest=dest,
        source=src,
        mode=dest.stat().st_mode & 0o7777,
    ))
    logger.debug("Staged %s → %s", src, dest)


def _ensure_dir(directory: Path, staged: StagedSet) -> None:
    """Create ``directory`` and missing parents, journaling each one."""
    missing: list[Path] = []
    current = directory
    while not current.exists():
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent
    if current.exists() and not current.is_dir():
        raise DestinationConflict(str(current))

    for d in reversed(missing):
        d.mkdir()
        staged.journal.append({"op": "mkdir", "path": str(d)})


def _prune_empty_dirs(directory: Path, stop: Path) -> None:
    current = directory
    while current != stop and current.is_relative_to(stop):
        if not current.is_dir() or any(current.iterdir()):
            return
        current.rmdir()
        current = current.parent
