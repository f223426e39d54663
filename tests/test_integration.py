"""End-to-end tests through the command line entry point.

The toolchain is a shell command that writes a fake .efi file and the
emulator is a shell script printing guest markers.
"""

import os

import pytest
import yaml

from uefirunner.cli import main
from uefirunner.core.errors import ExitCode

pytestmark = pytest.mark.skipif(
    os.name != "posix", reason="fake toolchain and emulator use /bin/sh"
)

FAKE_CARGO = (
    "mkdir -p {target_dir}/{triple}/{profile} && "
    "printf MZ > {target_dir}/{triple}/{profile}/{crate}.efi"
)

GUEST_PASSES = """\
echo "MARKERS: v1"
echo "PASS test_alloc"
echo "PASS test_boot"
echo "SUMMARY: 2/2 passed"
"""

GUEST_FAILS = """\
echo "PASS test_alloc"
echo "FAIL test_boot: unexpected status"
echo "SUMMARY: 1/2 passed"
"""

GUEST_HANGS = """\
echo "PASS test_alloc"
exec sleep 30
"""

GUEST_CRASHES = """\
echo "PASS test_alloc"
exit 1
"""


@pytest.fixture
def project(tmp_path, monkeypatch, firmware, make_script):
    """Write uefirunner.yaml into a scratch directory and chdir there.

    Returns a function taking the fake emulator body and optional
    build command.
    """
    crate = tmp_path / "crate"
    crate.mkdir()
    monkeypatch.chdir(tmp_path)

    def _configure(guest=GUEST_PASSES, build_command=FAKE_CARGO):
        pidfile = tmp_path / "qemu.pid"
        qemu = make_script("qemu", f'echo $$ > "{pidfile}"\n' + guest)
        fw = {"code": str(firmware.code), "vars": str(firmware.vars)}
        config = {
            "config": {
                "workdir": str(crate),
                "log_root": str(tmp_path / "logs"),
                "build": {
                    "crate": "app",
                    "command": build_command,
                    "target_dir": "target",
                },
                "emulator": {
                    "binary": str(qemu),
                    "kvm": "off",
                    "timeout": 2,
                    "interactive_timeout": 3,
                    "grace_period": 1,
                },
                "firmware": {"native-x86_64": fw, "cross-aarch64": fw},
            }
        }
        (tmp_path / "uefirunner.yaml").write_text(yaml.safe_dump(config))
        return crate, pidfile

    return _configure


def test_build_cross(project):
    crate, _ = project()

    assert main(["build", "--target", "cross-aarch64"]) == ExitCode.OK

    efi = crate / "target" / "aarch64-unknown-uefi" / "debug" / "app.efi"
    assert efi.read_bytes() == b"MZ"


def test_build_release(project):
    crate, _ = project()

    assert main(["build", "--release"]) == ExitCode.OK

    assert (
        crate / "target" / "x86_64-unknown-uefi" / "release" / "app.efi"
    ).is_file()


def test_build_does_not_boot(project):
    _, pidfile = project()

    assert main(["build"]) == ExitCode.OK
    assert not pidfile.exists()


def test_run_headless_ci_passes(project):
    crate, pidfile = project()

    assert main(["run", "--headless", "--ci"]) == ExitCode.OK

    assert pidfile.exists()
    boot = (
        crate / "target" / "uefirunner" / "native-x86_64" / "esp" / "EFI"
        / "BOOT" / "BOOTX64.EFI"
    )
    assert boot.read_bytes() == b"MZ"


def test_run_twice_gives_same_result(project):
    project()

    assert main(["run", "--headless", "--ci"]) == ExitCode.OK
    assert main(["run", "--headless", "--ci"]) == ExitCode.OK


def test_serial_log_saved(project, tmp_path):
    project()

    assert main(["run", "--headless", "--ci"]) == ExitCode.OK

    logs = list((tmp_path / "logs").rglob("serial.log"))
    assert len(logs) == 1
    assert "SUMMARY: 2/2 passed" in logs[0].read_text()


def test_failing_guest_test(project):
    project(guest=GUEST_FAILS)

    assert main(["run", "--headless", "--ci"]) == ExitCode.TEST_FAILURE


def test_failing_guest_test_without_ci(project):
    project(guest=GUEST_FAILS)

    assert main(["run", "--headless"]) == ExitCode.TEST_FAILURE


def test_hang_times_out(project, pid_alive):
    _, pidfile = project(guest=GUEST_HANGS)

    assert main(["run", "--headless", "--ci"]) == ExitCode.TIMEOUT
    assert not pid_alive(int(pidfile.read_text()))


def test_early_exit_in_ci(project):
    project(guest=GUEST_CRASHES)

    assert main(["run", "--headless", "--ci"]) == ExitCode.UNEXPECTED_EXIT


def test_early_exit_without_ci(project):
    """A guest that never reports fails with or without --ci."""
    project(guest=GUEST_CRASHES)

    assert main(["run", "--headless"]) == ExitCode.UNEXPECTED_EXIT


def test_silent_exit_without_ci(project):
    project(guest="exit 3\n")

    assert main(["run", "--headless"]) == ExitCode.UNEXPECTED_EXIT


def test_hang_times_out_without_ci(project, pid_alive):
    """Without --ci the interactive limit still bounds the run."""
    _, pidfile = project(guest=GUEST_HANGS)

    assert main(["run", "--headless"]) == ExitCode.TIMEOUT
    assert not pid_alive(int(pidfile.read_text()))


def test_build_failure(project, capsys):
    project(build_command="echo 'error: linker failed' >&2; exit 1")

    assert main(["run", "--headless", "--ci"]) == ExitCode.BUILD
    assert "error: linker failed" in capsys.readouterr().err


def test_missing_emulator(project, tmp_path):
    project()
    (tmp_path / "bin" / "qemu").unlink()

    assert main(["run", "--headless", "--ci"]) == ExitCode.LAUNCH


def test_unsupported_target(project):
    project()

    assert main(["build", "--target", "riscv64"]) == (
        ExitCode.UNSUPPORTED_TARGET
    )


def test_target_alias(project):
    project()

    assert main(["build", "--target", "x86_64-unknown-uefi"]) == ExitCode.OK


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["frobnicate"],
        ["run", "--no-such-flag"],
    ],
)
def test_usage_errors(project, argv):
    project()

    assert main(argv) == ExitCode.USAGE


def test_verbose(project):
    project()

    assert main(["run", "--headless", "--ci", "--verbose"]) == ExitCode.OK
