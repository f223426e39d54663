"""Pytest configuration and fixtures for uefirunner tests."""

import os
import stat
import tempfile
import textwrap
from pathlib import Path

import pytest

from uefirunner.core.log import ConsoleSink, setup_logger
from uefirunner.core.target import FirmwarePaths


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Console-only debug logging for the whole session."""
    test_log_root = Path(tempfile.gettempdir()) / "uefirunner-tests"
    setup_logger(
        log_root=test_log_root,
        run_name="test",
        console=ConsoleSink(level="debug"),
    )


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Keep user config and state directories out of the tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "xdg-state"))
    for name in list(os.environ):
        if name.startswith("UEFIRUNNER_"):
            monkeypatch.delenv(name)


@pytest.fixture
def firmware(tmp_path) -> FirmwarePaths:
    """Fake OVMF code and vars images."""
    fw_dir = tmp_path / "fw"
    fw_dir.mkdir()
    code = fw_dir / "OVMF_CODE.fd"
    code.write_bytes(b"\x00CODE" * 64)
    vars_ = fw_dir / "OVMF_VARS.fd"
    vars_.write_bytes(b"\x00VARS" * 64)
    return FirmwarePaths(code=code, vars=vars_)


@pytest.fixture
def make_script(tmp_path):
    """Write an executable /bin/sh script and return its path."""

    def _make(name: str, body: str) -> Path:
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n" + textwrap.dedent(body))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP)
        return path

    return _make


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


@pytest.fixture
def pid_alive():
    """Predicate telling whether a process id still exists."""
    return _pid_alive

