"""Workflow nodes for the build/boot pipeline."""

from uefirunner.workflow.nodes.assemble import Assemble
from uefirunner.workflow.nodes.boot import Boot
from uefirunner.workflow.nodes.build import Build
from uefirunner.workflow.nodes.resolve import ResolveTarget

__all__ = [
    "ResolveTarget",
    "Build",
    "Assemble",
    "Boot",
]
