#!/usr/bin/env python3
"""uefirunner CLI - build, boot and test UEFI applications."""

from __future__ import annotations

import asyncio
import sys

from pydantic import PrivateAttr, ValidationError
from pydantic_settings import (
    CliApp,
    CliSubCommand,
    SettingsError,
    get_subcommand,
)

from uefirunner.command.build import BuildCommand
from uefirunner.command.run import RunCommand
from uefirunner.core.config import State
from uefirunner.core.errors import (
    BuildError,
    ExitCode,
    UefiRunnerError,
    UsageError,
)
from uefirunner.core.log import logger


class CliState(State):
    """Build UEFI applications and run their tests under QEMU.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.emulator.timeout 60)
    2. Environment variables (UEFIRUNNER_CONFIG__EMULATOR__TIMEOUT=60)
    3. .env file
    4. ./uefirunner.yaml, then the user config file
    5. Package defaults

    Exit codes: 0 ok, 1 guest tests failed, 2 usage, 3 unsupported
    target, 4 build failed, 5 image assembly failed, 6 emulator failed
    to start, 7 guest timed out, 8 emulator exited early.
    """

    build: CliSubCommand[BuildCommand]
    run: CliSubCommand[RunCommand]

    _exit_code: int = PrivateAttr(default=ExitCode.OK)

    def cli_cmd(self):
        """Dispatch to the active subcommand and record its exit code."""
        with self.config:
            try:
                subcommand = get_subcommand(self, is_required=False)
                if subcommand is None:
                    raise UsageError(
                        "A subcommand is required: build or run "
                        "(see --help)"
                    )
                self._exit_code = asyncio.run(subcommand.run_workflow(self))
            except UefiRunnerError as e:
                self._exit_code = report(e)
            except Exception as e:
                logger.exception("Internal error: {error}", error=repr(e))
                self._exit_code = ExitCode.INTERNAL

    @property
    def exit_code(self) -> int:
        return int(self._exit_code)


def report(error: UefiRunnerError) -> int:
    """Log an orchestrator error and return its exit code."""
    logger.error(
        "{kind}: {message}",
        kind=type(error).__name__,
        message=str(error),
        exit_code=int(error.exit_code),
    )
    if isinstance(error, BuildError):
        if error.diagnostics:
            print(error.diagnostics, file=sys.stderr)
        if error.log_file:
            logger.error("Full build log: {path}", path=str(error.log_file))
    return int(error.exit_code)


def main(argv: list[str] | None = None) -> int:
    """Entry point. Returns the process exit code."""
    try:
        cli = CliApp.run(CliState, cli_args=argv)
    except SettingsError as e:
        print(f"build.py: error: {e}", file=sys.stderr)
        return ExitCode.USAGE
    except ValidationError as e:
        print(f"build.py: invalid configuration:\n{e}", file=sys.stderr)
        return ExitCode.USAGE
    return cli.exit_code


if __name__ == "__main__":
    sys.exit(main())
