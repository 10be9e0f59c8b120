"""
L4 Execution — Core subprocess runner.

The SINGLE PLACE where ``subprocess.run`` is called for build and
test commands.  Environment handling, output capture and timeout
handling are centralised here.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import time
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from formula_runner.core.observability.logging_config import OUTPUT_LOGGER

logger = logging.getLogger(__name__)
output_logger = logging.getLogger(OUTPUT_LOGGER)

_VAR_RE = re.compile(r"\$(?:(\w+)|\{(\w+)\})")


class CommandRunner(Protocol):
    """Signature shared by ``run_command`` and its test doubles."""

    def __call__(
        self,
        command: str | Sequence[str],
        *,
        cwd: str | os.PathLike[str] | None = None,
        env_overrides: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]: ...


def build_env(
    overrides: Mapping[str, str] | None = None,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """A fresh environment for one child process.

    Starts from a copy of ``base`` (default: ``os.environ``) and applies
    ``overrides`` with ``$VAR`` references expanded against the
    environment being built, so ``PATH: /opt/go/bin:$PATH`` works.
    The process's own environment is never modified.
    """
    env = dict(os.environ if base is None else base)
    for key, value in (overrides or {}).items():
        env[key] = _expand(value, env)
    return env


def _expand(value: str, env: Mapping[str, str]) -> str:
    """``os.path.expandvars`` semantics, but against ``env``."""

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        return env.get(name, match.group(0))

    return _VAR_RE.sub(_sub, value)


def run_command(
    command: str | Sequence[str],
    *,
    cwd: str | os.PathLike[str] | None = None,
    env_overrides: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Run a command, capturing stdout and stderr together.

    A string runs through ``/bin/sh``; a sequence is executed directly.

    Args:
        command: Shell string or argv list.
        cwd: Working directory for the command.
        env_overrides: Variables set for this child only.
        timeout: Seconds before the child is killed; None waits forever.

    Returns:
        ``{"ok": bool, "exit_status": int | None, "output": str,
        "elapsed_ms": int}``; ``"timed_out": True`` is added when the
        deadline expired, ``"error"`` when the command could not start.
    """
    env = build_env(env_overrides)
    use_shell = isinstance(command, str)
    args: str | list[str] = command if use_shell else list(command)

    logger.debug("Executing: %s (cwd=%s)", command, cwd)
    start = time.monotonic()
    try:
        result = subprocess.run(
            args,
            shell=use_shell,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        output = e.output or ""
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        return {
            "ok": False,
            "exit_status": None,
            "output": output,
            "timed_out": True,
            "elapsed_ms": int((time.monotonic() - start) * 1000),
        }
    except OSError as e:
        logger.debug("Cannot start %s: %s", command, e)
        return {
            "ok": False,
            "exit_status": 127,
            "output": "",
            "error": str(e),
            "elapsed_ms": int((time.monotonic() - start) * 1000),
        }

    elapsed_ms = int((time.monotonic() - start) * 1000)
    output = result.stdout or ""
    if output:
        output_logger.debug("%s\n%s", command, output.rstrip())

    return {
        "ok": result.returncode == 0,
        "exit_status": result.returncode,
        "output": output,
        "elapsed_ms": elapsed_ms,
    }
