"""Values passed between pipeline stages."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from uefirunner.core.errors import ExitCode
from uefirunner.core.target import BuildTarget, FirmwarePaths


class BuildArtifact(BaseModel):
    """Compiled UEFI application for one target."""

    model_config = ConfigDict(frozen=True)

    path: Path
    target: BuildTarget
    built_at: datetime
    sha256: str
    log_file: Path | None = None


class BootableImage(BaseModel):
    """EFI system partition directory ready to be attached to QEMU."""

    model_config = ConfigDict(frozen=True)

    root: Path
    boot_path: Path
    firmware: FirmwarePaths = Field(
        description="Code ROM plus the writable vars copy in the image"
    )
    target: BuildTarget
    digest: str


class RunConfig(BaseModel):
    """Per-invocation settings, fixed once the CLI has been parsed."""

    model_config = ConfigDict(frozen=True)

    target: BuildTarget
    headless: bool = False
    ci: bool = False
    release: bool = False
    timeout: float | None = Field(
        default=None,
        description="Wall-clock limit for the emulator, None for no limit",
    )
    grace_period: float = Field(
        default=5.0,
        description="Seconds between terminate and kill",
    )


class MonitorState(str, Enum):
    """Guest signal monitor states."""

    WAITING = "waiting"
    RUNNING = "running"
    ALL_PASSED = "all_passed"
    SOME_FAILED = "some_failed"
    TIMEOUT = "timeout"
    UNEXPECTED_EXIT = "unexpected_exit"

    @property
    def terminal(self) -> bool:
        return self not in (MonitorState.WAITING, MonitorState.RUNNING)


EXIT_CODES = {
    MonitorState.ALL_PASSED: ExitCode.OK,
    MonitorState.SOME_FAILED: ExitCode.TEST_FAILURE,
    MonitorState.TIMEOUT: ExitCode.TIMEOUT,
    MonitorState.UNEXPECTED_EXIT: ExitCode.UNEXPECTED_EXIT,
}


class TestResult(BaseModel):
    """One PASS or FAIL marker."""

    __test__ = False

    name: str
    passed: bool
    detail: str | None = None


class Summary(BaseModel):
    passed: int
    total: int


class TestOutcome(BaseModel):
    """Aggregate result of one guest test run."""

    __test__ = False

    status: MonitorState
    results: list[TestResult] = Field(default_factory=list)
    summary: Summary | None = None
    exit_code: int | None = Field(
        default=None,
        description="Emulator exit status, when it exited on its own",
    )
    elapsed: float = 0.0

    @property
    def failed(self) -> list[str]:
        return [r.name for r in self.results if not r.passed]

    @property
    def passed(self) -> bool:
        return self.status is MonitorState.ALL_PASSED

    @property
    def process_exit_code(self) -> ExitCode:
        """Exit code for this outcome; raises for non-terminal states."""
        return EXIT_CODES[self.status]


__all__ = [
    "BootableImage",
    "BuildArtifact",
    "EXIT_CODES",
    "MonitorState",
    "RunConfig",
    "Summary",
    "TestOutcome",
    "TestResult",
]
