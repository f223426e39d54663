"""Graph workflow definition."""

from pydantic_graph import Graph

from uefirunner.core.log import logger
from uefirunner.core.state import PipelineState


def create_workflow():
    """Create the pipeline graph.

    ResolveTarget -> Build -> [End (build) | Assemble -> Boot -> End]

    Returns:
        Graph workflow with PipelineState as state_type
    """
    logger.debug("Building workflow graph")

    from uefirunner.workflow.nodes.assemble import Assemble
    from uefirunner.workflow.nodes.boot import Boot
    from uefirunner.workflow.nodes.build import Build
    from uefirunner.workflow.nodes.resolve import ResolveTarget

    return Graph(
        nodes=(
            ResolveTarget,
            Build,
            Assemble,
            Boot,
        ),
        state_type=PipelineState,
    )
