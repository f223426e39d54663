"""Assemble node - lay out the bootable image."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from uefirunner.core.state import PipelineState
from uefirunner.runner.image import ImageAssembler
from uefirunner.workflow.nodes.boot import Boot


@dataclass
class Assemble(BaseNode[PipelineState, None, int]):
    """Place the artifact into the EFI system partition."""

    async def run(self, ctx: GraphRunContext[PipelineState]) -> Boot:
        config = ctx.state.config
        template = (
            config.resolve(config.image.template_dir)
            if config.image.template_dir is not None
            else None
        )
        assembler = ImageAssembler(
            config.resolve(config.image.staging_dir), template
        )
        ctx.state.image = assembler.assemble(ctx.state.artifact)
        return Boot()
