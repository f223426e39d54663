"""Tests for YAML layering and the include: directive."""

from pathlib import Path

import pytest

from uefirunner.core.config import State
from uefirunner.core.yaml_settings import YamlWithIncludesSettingsSource


@pytest.fixture
def fixtures_dir():
    """Path to test fixtures directory."""
    return Path(__file__).parent / "fixtures"


def load(yaml_file):
    return YamlWithIncludesSettingsSource(State, yaml_file=str(yaml_file))()


def test_package_defaults_always_load(fixtures_dir):
    """Package defaults sit under every other file."""
    data = load(fixtures_dir / "minimal.yaml")

    build = data["config"]["build"]
    assert build["crate"] == "minimal-app"
    assert "{triple}" in build["command"]
    assert data["config"]["emulator"]["timeout"] == 300


def test_include_directive(fixtures_dir):
    """Included files are merged under the including file."""
    data = load(fixtures_dir / "with_include.yaml")

    emulator = data["config"]["emulator"]
    assert emulator["memory"] == "512M"
    assert emulator["extra_args"] == ["-no-reboot"]
    assert emulator["smp"] == 2
    assert data["config"]["build"]["crate"] == "included-app"
    assert "include" not in data


def test_nested_includes(fixtures_dir):
    """nested_include -> with_include -> emulator, outermost wins."""
    data = load(fixtures_dir / "nested_include.yaml")

    emulator = data["config"]["emulator"]
    assert emulator["memory"] == "1G"
    assert emulator["smp"] == 2
    assert data["config"]["build"]["crate"] == "included-app"


def test_include_relative_to_including_file(fixtures_dir, tmp_path):
    shared = tmp_path / "shared"
    shared.mkdir()
    (shared / "emulator.yaml").write_text(
        (fixtures_dir / "emulator.yaml").read_text()
    )
    subdir = tmp_path / "subdir"
    subdir.mkdir()
    config_file = subdir / "config.yaml"
    config_file.write_text("include: ../shared/emulator.yaml\n")

    data = load(config_file)

    assert data["config"]["emulator"]["memory"] == "512M"


def test_include_list(fixtures_dir, tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "include:\n"
        f"  - {fixtures_dir / 'minimal.yaml'}\n"
        f"  - {fixtures_dir / 'emulator.yaml'}\n"
    )

    data = load(config_file)

    assert data["config"]["build"]["crate"] == "minimal-app"
    assert data["config"]["emulator"]["memory"] == "512M"


def test_circular_include_rejected(fixtures_dir):
    with pytest.raises(ValueError, match="Circular include"):
        load(fixtures_dir / "circular_a.yaml")


def test_project_file_in_working_directory(tmp_path, monkeypatch):
    """./uefirunner.yaml overrides the defaults."""
    (tmp_path / "uefirunner.yaml").write_text(
        "config:\n  emulator:\n    timeout: 42\n"
    )
    monkeypatch.chdir(tmp_path)

    data = YamlWithIncludesSettingsSource(State)()

    assert data["config"]["emulator"]["timeout"] == 42
    assert data["config"]["emulator"]["grace_period"] == 5


def test_user_config_under_project_file(tmp_path, monkeypatch):
    """The user config applies, but the project file wins."""
    user_dir = tmp_path / "xdg-config" / "uefirunner"
    user_dir.mkdir(parents=True)
    (user_dir / "uefirunner.yaml").write_text(
        "config:\n  emulator:\n    memory: 2G\n    smp: 8\n"
    )
    project = tmp_path / "project"
    project.mkdir()
    (project / "uefirunner.yaml").write_text(
        "config:\n  emulator:\n    smp: 1\n"
    )
    monkeypatch.chdir(project)

    data = YamlWithIncludesSettingsSource(State)()

    assert data["config"]["emulator"]["memory"] == "2G"
    assert data["config"]["emulator"]["smp"] == 1


def test_empty_file(tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("")

    data = load(empty)

    assert data["config"]["build"]["crate"] == "uefi-test-runner"
