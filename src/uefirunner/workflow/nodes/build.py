"""Build node - compile the UEFI application."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from uefirunner.core.errors import ExitCode
from uefirunner.core.state import PipelineState
from uefirunner.runner.build import Builder
from uefirunner.workflow.nodes.assemble import Assemble


@dataclass
class Build(BaseNode[PipelineState, None, int]):
    """Run the toolchain for the resolved target."""

    async def run(
        self, ctx: GraphRunContext[PipelineState]
    ) -> Assemble | End[int]:
        """Build, then stop here for `build` or continue for `run`.

        Returns:
            Assemble: The image is needed (run)
            End[int]: Build-only invocation succeeded
        """
        state = ctx.state
        builder = Builder(state.config.workdir, state.config.build)
        state.artifact = builder.build(
            state.run.target,
            release=state.run.release,
            log_file=state.log_dir.build_log,
        )
        if state.boots:
            return Assemble()
        return End(ExitCode.OK)
