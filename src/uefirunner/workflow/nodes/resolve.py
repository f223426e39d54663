"""ResolveTarget node - validate the target and fix the run settings."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from uefirunner.core.log import logger
from uefirunner.core.logdir import RunLogDir
from uefirunner.core.result import RunConfig
from uefirunner.core.state import PipelineState
from uefirunner.core.target import resolve_target
from uefirunner.workflow.nodes.build import Build


@dataclass
class ResolveTarget(BaseNode[PipelineState, None, int]):
    """Resolve the requested target and build the RunConfig."""

    async def run(self, ctx: GraphRunContext[PipelineState]) -> Build:
        state = ctx.state
        config = state.config

        target = resolve_target(state.target_id, config.firmware)
        emulator = config.emulator
        state.run = RunConfig(
            target=target,
            headless=state.headless,
            ci=state.ci,
            release=state.release,
            timeout=(
                emulator.timeout if state.ci
                else emulator.interactive_timeout
            ),
            grace_period=emulator.grace_period,
        )
        state.log_dir = RunLogDir(
            config.log_root, state.command, target.id
        )
        logger.info(
            "Target {target} ({triple})",
            target=target.id,
            triple=target.triple,
            logs=str(state.log_dir.run_dir),
        )
        return Build()
