"""Run command - build, boot in QEMU and collect guest test results."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from pydantic import Field
from pydantic_settings import CliImplicitFlag

from uefirunner.command.build import BuildCommand

if TYPE_CHECKING:
    from uefirunner.core.config import State
    from uefirunner.core.state import PipelineState


class RunCommand(BuildCommand):
    """Build the application, boot it under QEMU and wait for the guest
    test harness to report.

    Exits 0 only when every guest test passed.
    """

    headless: CliImplicitFlag[bool] = Field(
        default=False,
        description="Run without a display; console on serial only",
    )
    ci: CliImplicitFlag[bool] = Field(
        default=False,
        description=(
            "Use the CI wall-clock limit (emulator.timeout) instead of "
            "emulator.interactive_timeout"
        ),
    )

    command_name: ClassVar[str] = "run"

    def pipeline_state(self, state: State) -> PipelineState:
        pipeline = super().pipeline_state(state)
        pipeline.headless = self.headless
        pipeline.ci = self.ci
        return pipeline
