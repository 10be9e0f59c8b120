"""
L0 Data — Formula parser.

Turns formula text (YAML) into a frozen ``Recipe``.  Shorthand forms
are expanded to their full shape before pydantic validation; every
failure surfaces as a single ``ParseError``.
No I/O, no subprocess.

Formula shape::

    name: aws-sso-cli
    desc: Securely manage AWS API credentials using AWS SSO
    homepage: https://github.com/synfinatic/aws-sso-cli
    url: https://example/x.tar
    sha256: 0123...cdef                  # 64 hex chars
    depends_on:
      - go: build                        # {name: kind}
      - xcode                            # bare name = runtime
    env:
      BREW_INSTALL: "1"
      PROJECT_COMMIT: abc1234
    build:
      - make                             # shell string
    install:
      - ./dist/aws-sso                   # → bin/aws-sso
      - {source: share/man, dest: share/man}
    test:
      - run: bin/aws-sso version
        expect: "AWS SSO CLI Version 1.2.3"
      - run: [bin/aws-sso, --config, /dev/null]
        expect: "Please specify --sso"
        match: regex
"""

from __future__ import annotations

import logging
import shlex
from pathlib import PurePosixPath
from typing import Any

import yaml
from pydantic import ValidationError

from formula_runner.core.errors import ParseError
from formula_runner.core.models.recipe import Recipe

logger = logging.getLogger(__name__)

# Alternative spellings accepted at the top level → canonical key
_KEY_ALIASES = {
    "desc": "description",
    "depends_on": "dependencies",
    "tests": "test",
}

_KIND_ALIASES = {
    "build": "build",
    "build-time": "build",
    "build_time": "build",
    "runtime": "runtime",
    "run": "runtime",
}


def parse(data: bytes | str) -> Recipe:
    """Parse formula text into a Recipe.

    Args:
        data: Raw formula bytes (UTF-8) or text.

    Returns:
        Validated, immutable Recipe.

    Raises:
        ParseError: On invalid YAML, a non-mapping document, missing
            required fields (name, url, sha256, build) or a malformed
            sha256 digest.
    """
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Formula is not valid UTF-8: {e}") from e
    else:
        text = data

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise ParseError(f"Expected a YAML mapping, got {type(raw).__name__}")

    normalized = _normalize(raw)

    try:
        recipe = Recipe.model_validate(normalized)
    except ValidationError as e:
        raise ParseError(_summarize(e)) from e

    logger.debug(
        "Parsed formula '%s': %d deps, %d build steps, %d install actions, %d tests",
        recipe.name, len(recipe.dependencies), len(recipe.build),
        len(recipe.install), len(recipe.test),
    )
    return recipe


def _normalize(raw: dict) -> dict:
    """Expand shorthand forms into the shape ``Recipe`` validates."""
    out: dict[str, Any] = {}
    for key, value in raw.items():
        out[_KEY_ALIASES.get(str(key), str(key))] = value

    # YAML reads unquoted all-digit hashes as ints
    if isinstance(out.get("sha256"), int):
        out["sha256"] = str(out["sha256"])
    # ... and ``version: 1.2`` as a float
    if isinstance(out.get("version"), (int, float)):
        out["version"] = str(out["version"])

    if "dependencies" in out:
        out["dependencies"] = [_dependency(d) for d in _as_list(out["dependencies"])]
    if "build" in out:
        out["build"] = [_build_step(s) for s in _as_list(out["build"])]
    if "install" in out:
        out["install"] = [_install_action(a) for a in _as_list(out["install"])]
    if "test" in out:
        out["test"] = [_test_assertion(t) for t in _as_list(out["test"])]
    return out


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _dependency(item: Any) -> Any:
    if isinstance(item, str):
        return {"name": item.lstrip(":"), "kind": "runtime"}
    if isinstance(item, dict) and "name" not in item and len(item) == 1:
        # {go: build} or {go: {kind: build, version: ">=1.21"}}
        ((name, spec),) = item.items()
        if isinstance(spec, dict):
            return {"name": str(name), **_with_kind(spec)}
        return {"name": str(name), "kind": _kind(spec)}
    if isinstance(item, dict):
        return _with_kind(item)
    return item


def _with_kind(spec: dict) -> dict:
    spec = dict(spec)
    if "kind" in spec:
        spec["kind"] = _kind(spec["kind"])
    if isinstance(spec.get("version"), (int, float)):
        spec["version"] = str(spec["version"])
    return spec


def _kind(value: Any) -> Any:
    if isinstance(value, list) and len(value) == 1:
        value = value[0]
    if isinstance(value, str):
        return _KIND_ALIASES.get(value.lstrip(":").lower(), value)
    return value


def _build_step(item: Any) -> Any:
    if isinstance(item, (str, list)):
        return {"command": item}
    return item


def _install_action(item: Any) -> Any:
    if isinstance(item, str):
        name = PurePosixPath(item).name
        return {"source": item, "dest": f"bin/{name}"}
    return item


def _test_assertion(item: Any) -> Any:
    if isinstance(item, dict) and isinstance(item.get("run"), str):
        try:
            argv = shlex.split(item["run"])
        except ValueError as e:
            raise ParseError(f"test.run: {e}: {item['run']!r}") from e
        item = {**item, "run": argv}
    return item


def _summarize(error: ValidationError) -> str:
    """One line per problem, with a dotted field path."""
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "formula"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "Invalid formula — " + "; ".join(parts)
