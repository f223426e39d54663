"""Build command - compile the UEFI application for one target."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, Field
from pydantic_settings import CliImplicitFlag

from uefirunner.core.log import logger

if TYPE_CHECKING:
    from uefirunner.core.config import State
    from uefirunner.core.state import PipelineState


class BuildCommand(BaseModel):
    """Build the UEFI application for a target.

    Exits 0 when the toolchain succeeds and the .efi binary exists.
    """

    target: str = Field(
        default="native",
        description=(
            "Build target: native-x86_64 (aliases: native, x86_64) or "
            "cross-aarch64 (aliases: cross, aarch64)"
        ),
    )
    release: CliImplicitFlag[bool] = Field(
        default=False,
        description="Build the release profile instead of debug",
    )
    verbose: CliImplicitFlag[bool] = Field(
        default=False,
        description="Show debug output on the console",
    )

    command_name: ClassVar[str] = "build"

    def pipeline_state(self, state: State) -> PipelineState:
        from uefirunner.core.state import PipelineState

        return PipelineState(
            config=state.config,
            command=self.command_name,
            target_id=self.target,
            release=self.release,
        )

    async def run_workflow(self, state: State) -> int:
        """Run the pipeline for this command.

        Args:
            state: Loaded settings

        Returns:
            Exit code (0=success); failures raise
        """
        from uefirunner.workflow.graph import create_workflow
        from uefirunner.workflow.nodes.resolve import ResolveTarget

        if self.verbose:
            state.config.use_verbose_console()

        pipeline = self.pipeline_state(state)
        workflow = create_workflow()

        async with workflow.iter(ResolveTarget(), state=pipeline) as run:
            async for node in run:
                logger.debug(
                    "Pipeline step {step}", step=type(node).__name__
                )

        return int(run.result.output)
