"""
Tests for configuration loading — formula-runner.yml parsing and validation.
"""

import textwrap
from pathlib import Path

import pytest

from formula_runner.core.config.loader import ConfigError, find_config_file, load_settings


@pytest.fixture
def valid_config(tmp_path: Path) -> Path:
    """Create a valid formula-runner.yml in a temp directory."""
    content = textwrap.dedent("""\
        prefix: opt/pkgs
        workdir_root: /var/tmp/builds
        state_dir: .state

        build_timeout: 600
        verify_timeout: 15
        verify_policy: rollback
        use_path_lookup: false

        installed:
          go:
            path: toolchains/go
            version: "1.21.5"
          make:
            path: /usr/bin/make
            depends_on: [libc]

        variables:
          url: https://example/x.tar
    """)
    path = tmp_path / "formula-runner.yml"
    path.write_text(content)
    return path


class TestFindConfigFile:
    def test_finds_in_current_dir(self, valid_config: Path):
        assert find_config_file(valid_config.parent) == valid_config

    def test_walks_up(self, valid_config: Path):
        nested = valid_config.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == valid_config

    def test_none_when_absent(self, tmp_path: Path):
        assert find_config_file(tmp_path) is None


class TestLoadSettings:
    def test_full_config(self, valid_config: Path):
        settings = load_settings(valid_config)
        base = valid_config.parent.resolve()
        assert settings.prefix == base / "opt" / "pkgs"
        assert settings.workdir_root == Path("/var/tmp/builds")
        assert settings.state_dir == base / ".state"
        assert settings.build_timeout == 600
        assert settings.verify_timeout == 15
        assert settings.verify_policy == "rollback"
        assert settings.use_path_lookup is False
        assert settings.variables == {"url": "https://example/x.tar"}

    def test_installed_locations(self, valid_config: Path):
        locations = load_settings(valid_config).installed_locations()
        assert locations["go"].path == valid_config.parent.resolve() / "toolchains" / "go"
        assert locations["go"].version == "1.21.5"
        assert locations["make"].path == Path("/usr/bin/make")
        assert locations["make"].depends_on == ("libc",)

    def test_defaults_without_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        settings = load_settings()
        assert settings.prefix is None
        assert settings.verify_policy == "report"
        assert settings.verify_timeout == 60.0
        assert settings.use_path_lookup is True

    def test_auto_detect(self, valid_config: Path, monkeypatch):
        monkeypatch.chdir(valid_config.parent)
        assert load_settings().verify_policy == "rollback"

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "formula-runner.yml"
        path.write_text("")
        assert load_settings(path).installed == {}

    def test_explicit_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "formula-runner.yml"
        path.write_text("installed: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "formula-runner.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path)

    def test_invalid_policy(self, tmp_path: Path):
        path = tmp_path / "formula-runner.yml"
        path.write_text("verify_policy: ignore\n")
        with pytest.raises(ConfigError, match="Invalid engine configuration"):
            load_settings(path)
