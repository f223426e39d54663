"""CLI subcommands."""

from uefirunner.command.build import BuildCommand
from uefirunner.command.run import RunCommand

__all__ = ["BuildCommand", "RunCommand"]
