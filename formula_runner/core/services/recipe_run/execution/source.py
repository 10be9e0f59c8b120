"""
L4 Execution — Source acquisition and integrity check.

Fetching is the host's job (``SourceFetcher``); this module only
checks the bytes against the formula's sha256 and lays them out in
the build tree.  A digest mismatch stops the run before any build
step executes.
"""

from __future__ import annotations

import hashlib
import io
import logging
import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import urlparse
from urllib.request import url2pathname

from formula_runner.core.errors import BuildError, ChecksumMismatch
from formula_runner.core.models.recipe import Recipe

logger = logging.getLogger(__name__)


class SourceFetcher(Protocol):
    """Host-supplied source download."""

    def fetch(self, url: str) -> bytes:
        """Return the bytes behind ``url``."""


class LocalSourceFetcher:
    """Reads ``file://`` URLs and plain paths.

    With ``override`` set, that file is returned for any URL, which is
    how the CLI's ``--source`` flag feeds a pre-downloaded tarball.
    """

    def __init__(self, override: Path | None = None):
        self._override = override

    def fetch(self, url: str) -> bytes:
        path = self._override or _local_path(url)
        if path is None:
            raise BuildError(f"Cannot fetch {url}: only local sources are supported")
        try:
            return path.read_bytes()
        except OSError as e:
            raise BuildError(f"Cannot read source {path}: {e}") from e


def is_local_url(url: str) -> bool:
    """Whether ``LocalSourceFetcher`` can read ``url`` without an override."""
    return _local_path(url) is not None


def _local_path(url: str) -> Path | None:
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return Path(url2pathname(parsed.path))
    if parsed.scheme == "":
        return Path(url)
    return None


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def verify_digest(recipe: Recipe, data: bytes) -> str:
    """Check ``data`` against ``recipe.sha256``.

    Returns:
        The digest (lowercase hex).

    Raises:
        ChecksumMismatch: The bytes are not what the formula pinned.
    """
    actual = sha256_hex(data)
    if actual != recipe.sha256:
        logger.error("sha256 mismatch for '%s': %s != %s", recipe.name, actual, recipe.sha256)
        raise ChecksumMismatch(recipe.sha256, actual)
    logger.debug("sha256 verified for '%s'", recipe.name)
    return actual


def unpack_source(data: bytes, workdir: Path, url: str = "") -> Path:
    """Lay verified source bytes out in ``workdir``.

    Tar archives (any compression ``tarfile`` reads) are extracted with
    the ``data`` filter; a single top-level directory is stripped, the
    way release tarballs are usually wrapped.  Entries an earlier run
    left in ``workdir`` are replaced, not merged.  Anything else is
    written as one file named after the URL.

    Returns:
        ``workdir``.
    """
    try:
        archive = tarfile.open(fileobj=io.BytesIO(data), mode="r:*")
    except tarfile.ReadError:
        name = PurePosixPath(urlparse(url).path).name or "source"
        (workdir / name).write_bytes(data)
        logger.debug("Source is not an archive; wrote %s", name)
        return workdir

    staging = Path(tempfile.mkdtemp(dir=workdir, prefix=".unpack_"))
    try:
        with archive:
            archive.extractall(staging, filter="data")
        entries = list(staging.iterdir())
        root = entries[0] if len(entries) == 1 and entries[0].is_dir() else staging
        for child in root.iterdir():
            target = workdir / child.name
            _remove_entry(target)
            shutil.move(str(child), str(target))
    except tarfile.TarError as e:
        raise BuildError(f"Cannot unpack source archive: {e}") from e
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    logger.debug("Unpacked source into %s", workdir)
    return workdir


def _remove_entry(path: Path) -> None:
    """Clear ``path`` so an unpacked entry can take its place."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()
