"""
Tests for formula parsing — shorthand expansion and validation errors.
"""

import textwrap

import pytest

from formula_runner.core.errors import ParseError
from formula_runner.core.services.recipe_run import parse

_HASH = "ab" * 32


def _formula(body: str = "") -> str:
    base = textwrap.dedent(f"""\
        name: demo
        url: https://example/demo.tar.gz
        sha256: {_HASH}
        build:
          - make
    """)
    return base + textwrap.dedent(body)


class TestParseValid:
    """Formulas that load."""

    def test_minimal(self):
        recipe = parse(_formula())
        assert recipe.name == "demo"
        assert recipe.url == "https://example/demo.tar.gz"
        assert recipe.sha256 == _HASH
        assert len(recipe.build) == 1
        assert recipe.build[0].command == "make"
        assert recipe.dependencies == ()
        assert recipe.install == ()
        assert recipe.test == ()

    def test_accepts_bytes(self):
        recipe = parse(_formula().encode("utf-8"))
        assert recipe.name == "demo"

    def test_aws_sso_formula(self, aws_sso_recipe):
        """The published formula parses into the expected shape."""
        r = aws_sso_recipe
        assert r.name == "aws-sso-cli"
        assert r.description.startswith("Securely manage")
        assert r.version == "1.2.3"
        assert r.sha256 == "deadbeef" * 8
        assert [(d.name, d.kind) for d in r.dependencies] == [("go", "build")]
        assert r.env == {"BREW_INSTALL": "1", "PROJECT_COMMIT": "abc1234"}
        assert len(r.build) == 2
        assert r.install[0].source == "dist/aws-sso"
        assert r.install[0].dest == "bin/aws-sso"
        assert r.test[0].run == ("aws-sso", "version")
        assert r.test[0].expect == "AWS SSO CLI Version 1.2.3"
        assert r.test[1].run == ("aws-sso", "--config", "/dev/null")
        assert r.test[1].exit_status == 1

    def test_uppercase_hash_is_normalized(self):
        recipe = parse(_formula().replace(_HASH, _HASH.upper()))
        assert recipe.sha256 == _HASH

    def test_numeric_version_becomes_string(self):
        recipe = parse(_formula("version: 1.2\n"))
        assert recipe.version == "1.2"

    def test_dependency_shorthands(self):
        recipe = parse(_formula("""\
            dependencies:
              - :xcode
              - go: build
              - cmake: build-time
              - openssl: {kind: run, version: ">=3.0"}
              - {name: zlib, kind: runtime}
        """))
        deps = {d.name: d for d in recipe.dependencies}
        assert deps["xcode"].kind == "runtime"
        assert deps["go"].kind == "build"
        assert deps["cmake"].kind == "build"
        assert deps["openssl"].kind == "runtime"
        assert deps["openssl"].version == ">=3.0"
        assert deps["zlib"].kind == "runtime"
        assert [d.name for d in recipe.build_dependencies()] == ["go", "cmake"]

    def test_argv_build_step_and_step_env(self):
        recipe = parse(_formula("").replace(
            "  - make\n",
            "  - [make, install]\n  - {command: ./configure, env: {CC: clang, JOBS: 4}}\n",
        ))
        assert recipe.build[0].command == ("make", "install")
        assert recipe.build[0].display == "make install"
        assert recipe.build[1].env == {"CC": "clang", "JOBS": "4"}

    def test_install_forms(self):
        recipe = parse(_formula("""\
            install:
              - build/out/tool
              - {source: share/man, dest: share/man/man1}
        """))
        assert recipe.install[0].dest == "bin/tool"
        assert recipe.install[1].source == "share/man"
        assert recipe.install[1].dest == "share/man/man1"

    def test_regex_assertion(self):
        recipe = parse(_formula("""\
            test:
              - run: [tool, --version]
                expect: "^tool \\\\d+"
                match: regex
        """))
        assert recipe.test[0].match == "regex"
        assert recipe.test[0].run == ("tool", "--version")

    def test_recipe_is_frozen(self):
        recipe = parse(_formula())
        with pytest.raises(Exception):
            recipe.name = "other"


class TestParseErrors:
    """Everything that goes wrong surfaces as a ParseError."""

    def test_invalid_yaml(self):
        with pytest.raises(ParseError, match="Invalid YAML"):
            parse("name: [unclosed")

    def test_not_a_mapping(self):
        with pytest.raises(ParseError, match="mapping"):
            parse("- just\n- a list\n")

    def test_invalid_utf8(self):
        with pytest.raises(ParseError, match="UTF-8"):
            parse(b"name: \xff\xfe")

    @pytest.mark.parametrize("field", ["name", "url", "sha256", "build"])
    def test_missing_required_field(self, field):
        lines = [
            line for line in _formula().splitlines(keepends=True)
            if not line.startswith(field) and not (field == "build" and line.startswith("  - "))
        ]
        with pytest.raises(ParseError) as exc:
            parse("".join(lines))
        assert field in str(exc.value)
        assert exc.value.phase == "parse"

    def test_empty_build(self):
        with pytest.raises(ParseError, match="build"):
            parse(_formula().replace("  - make\n", "  []\n").replace("build:\n", "build:"))

    def test_malformed_hash(self):
        with pytest.raises(ParseError, match="sha256"):
            parse(_formula().replace(_HASH, "deadbeef"))

    def test_absolute_install_dest(self):
        with pytest.raises(ParseError, match="relative"):
            parse(_formula("""\
                install:
                  - {source: tool, dest: /usr/bin/tool}
            """))

    def test_install_source_escaping_tree(self):
        with pytest.raises(ParseError, match="relative"):
            parse(_formula("""\
                install:
                  - {source: ../outside, dest: bin/x}
            """))

    def test_bad_regex(self):
        with pytest.raises(ParseError, match="regular expression"):
            parse(_formula("""\
                test:
                  - run: tool
                    expect: "(unclosed"
                    match: regex
            """))

    def test_unknown_dependency_kind(self):
        with pytest.raises(ParseError, match="dependencies"):
            parse(_formula("""\
                dependencies:
                  - go: optional
            """))

    def test_unbalanced_quote_in_test_command(self):
        with pytest.raises(ParseError, match="test.run"):
            parse(_formula("""\
                test:
                  - run: "bin/x 'unterminated"
                    expect: ok
            """))

    @pytest.mark.parametrize("name", ["synfinatic/tap/aws-sso-cli", "..", "a\\b"])
    def test_name_with_path_separator(self, name):
        with pytest.raises(ParseError, match="name"):
            parse(_formula().replace("name: demo", f"name: '{name}'"))
