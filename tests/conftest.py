"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest

from formula_runner.core.models.plan import InstalledLocation
from formula_runner.core.services.recipe_run import parse, render_template

# Template in the shape release pipelines publish: placeholders are
# filled right before the formula is used.  The build writes a tiny
# shell script standing in for the real binary.
AWS_SSO_TEMPLATE = textwrap.dedent("""\
    name: aws-sso-cli
    desc: Securely manage AWS API credentials using AWS SSO
    homepage: https://github.com/synfinatic/aws-sso-cli
    url: __URL__
    sha256: __SHA256__
    version: __VERSION__
    depends_on:
      - go: build
    env:
      BREW_INSTALL: 1
      PROJECT_COMMIT: __COMMIT__
    build:
      - test "$BREW_INSTALL" = 1
      - |
        mkdir -p dist
        printf '#!/bin/sh\\nif [ "$1" = version ]; then echo "AWS SSO CLI Version %s"; exit 0; fi\\necho "Please specify --sso"\\nexit 1\\n' "__VERSION__" > dist/aws-sso
        chmod +x dist/aws-sso
    install:
      - ./dist/aws-sso
    test:
      - run: aws-sso version
        expect: "AWS SSO CLI Version __VERSION__"
      - run: aws-sso --config /dev/null
        expect: "Please specify --sso"
        exit_status: 1
""")

AWS_SSO_VARS = {
    "URL": "https://example/x.tar",
    "SHA256": "deadbeef" * 8,
    "VERSION": "1.2.3",
    "COMMIT": "abc1234",
}


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def aws_sso_template() -> str:
    return AWS_SSO_TEMPLATE


@pytest.fixture
def aws_sso_vars() -> dict[str, str]:
    return dict(AWS_SSO_VARS)


@pytest.fixture
def aws_sso_recipe():
    """The aws-sso-cli formula, rendered and parsed."""
    return parse(render_template(AWS_SSO_TEMPLATE, AWS_SSO_VARS))


@pytest.fixture
def formula_file(tmp_path: Path) -> Path:
    """The aws-sso-cli template written to disk."""
    path = tmp_path / "aws-sso-cli.yml"
    path.write_text(AWS_SSO_TEMPLATE)
    return path


@pytest.fixture
def go_installed(tmp_path: Path) -> dict[str, InstalledLocation]:
    """A fake Go toolchain satisfying the formula's build dependency."""
    root = tmp_path / "toolchains" / "go"
    (root / "bin").mkdir(parents=True)
    return {"go": InstalledLocation(name="go", path=root, version="1.21.5")}


class RecordingRunner:
    """Command runner double: records calls, replays scripted results.

    ``results`` is consumed in order; once exhausted every call succeeds
    with empty output.
    """

    def __init__(self, results=None):
        self.results = list(results or [])
        self.calls: list[dict] = []

    def __call__(self, command, *, cwd=None, env_overrides=None, timeout=None):
        self.calls.append({
            "command": command,
            "cwd": cwd,
            "env": dict(env_overrides or {}),
            "timeout": timeout,
        })
        if self.results:
            return self.results.pop(0)
        return {"ok": True, "exit_status": 0, "output": "", "elapsed_ms": 1}


@pytest.fixture
def recording_runner():
    """Factory: ``recording_runner([result, ...])``."""
    return RecordingRunner
