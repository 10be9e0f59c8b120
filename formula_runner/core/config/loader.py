"""
Configuration loader — reads formula-runner.yml into EngineSettings.

The file is optional: when none is found the engine runs with
defaults.  A file that exists but is broken is an error, never
silently ignored.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from formula_runner.core.models.settings import EngineSettings

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "formula-runner.yml"


class ConfigError(Exception):
    """Raised when engine configuration is invalid."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """The nearest formula-runner.yml in ``start_dir`` (default: cwd) or above."""
    start = (start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / CONFIG_FILE
        if candidate.is_file():
            return candidate
    return None


def load_settings(path: Path | None = None) -> EngineSettings:
    """Load and validate engine settings.

    Relative paths in the file are resolved against the file's
    directory, so a checked-in config works from any cwd.

    Args:
        path: Explicit config path. If None, searches upward.

    Returns:
        Validated EngineSettings (defaults if no file exists).

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    explicit = path is not None
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found — using defaults", CONFIG_FILE)
        return EngineSettings()

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return EngineSettings()

    logger.debug("Loading engine config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        settings = EngineSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid engine configuration: {e}") from e

    settings = _anchor_paths(settings, path.parent.resolve())
    logger.info("Loaded engine config from %s (%d installed packages)",
                path, len(settings.installed))
    return settings


def _anchor_paths(settings: EngineSettings, base: Path) -> EngineSettings:
    """Resolve relative paths against the config file's directory."""

    def anchor(p: Path | None) -> Path | None:
        if p is None or p.is_absolute():
            return p
        return base / p

    installed = {
        name: pkg.model_copy(update={"path": anchor(pkg.path)})
        for name, pkg in settings.installed.items()
    }
    return settings.model_copy(update={
        "prefix": anchor(settings.prefix),
        "workdir_root": anchor(settings.workdir_root),
        "state_dir": anchor(settings.state_dir),
        "installed": installed,
    })
