"""Error taxonomy and process exit codes.

Every pipeline stage raises one of the errors below and never retries.
The CLI is the only place that turns an error into an exit code.
"""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path


class ExitCode(IntEnum):
    """Process exit codes, one per failure kind."""

    OK = 0
    TEST_FAILURE = 1
    USAGE = 2
    UNSUPPORTED_TARGET = 3
    BUILD = 4
    PACKAGING = 5
    LAUNCH = 6
    TIMEOUT = 7
    UNEXPECTED_EXIT = 8
    INTERNAL = 70


class UefiRunnerError(Exception):
    """Base class for all orchestrator errors."""

    exit_code: ExitCode = ExitCode.INTERNAL


class UsageError(UefiRunnerError):
    """Bad command line input."""

    exit_code = ExitCode.USAGE


class UnsupportedTargetError(UefiRunnerError):
    """Requested build target is not in the supported set."""

    exit_code = ExitCode.UNSUPPORTED_TARGET

    def __init__(self, identifier: str, supported: list[str]):
        self.identifier = identifier
        self.supported = supported
        super().__init__(
            f"Unsupported target '{identifier}' "
            f"(supported: {', '.join(supported)})"
        )


class BuildError(UefiRunnerError):
    """Toolchain failed or did not leave the expected artifact."""

    exit_code = ExitCode.BUILD

    def __init__(
        self,
        message: str,
        diagnostics: str = "",
        log_file: Path | None = None,
        returncode: int | None = None,
    ):
        self.diagnostics = diagnostics
        self.log_file = log_file
        self.returncode = returncode
        super().__init__(message)


class PackagingError(UefiRunnerError):
    """Bootable image could not be assembled."""

    exit_code = ExitCode.PACKAGING


class LaunchError(UefiRunnerError):
    """Emulator could not be started."""

    exit_code = ExitCode.LAUNCH


class GuestTimeoutError(UefiRunnerError, TimeoutError):
    """Emulator was still running when the wall-clock limit expired."""

    exit_code = ExitCode.TIMEOUT


class UnexpectedExitError(UefiRunnerError):
    """Emulator exited before the guest reported a summary."""

    exit_code = ExitCode.UNEXPECTED_EXIT


class TestFailureError(UefiRunnerError):
    """Guest reported at least one failing test."""

    exit_code = ExitCode.TEST_FAILURE

    def __init__(self, message: str, failed: list[str] | None = None):
        self.failed = failed or []
        super().__init__(message)


class MarkerProtocolError(UefiRunnerError):
    """Guest spoke a marker protocol version this monitor cannot read."""


__all__ = [
    "ExitCode",
    "UefiRunnerError",
    "UsageError",
    "UnsupportedTargetError",
    "BuildError",
    "PackagingError",
    "LaunchError",
    "GuestTimeoutError",
    "UnexpectedExitError",
    "TestFailureError",
    "MarkerProtocolError",
]
