"""Command execution using invoke, with spawn/stop for long-running
children such as the emulator."""

from __future__ import annotations

import os
import shlex
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from invoke import Context, Result
from invoke.exceptions import CommandTimedOut
from invoke.runners import Promise

from uefirunner.core.log import logger

# Shell exit status for "command not found".
COMMAND_NOT_FOUND = 127


def join_command(argv: Sequence[str | os.PathLike]) -> str:
    """Quote an argument vector into a single shell command string."""
    return " ".join(shlex.quote(str(arg)) for arg in argv)


class Runner(Context):
    """invoke.Context with the execution methods the pipeline needs.

    execute() runs a command to completion with captured output and an
    optional timeout. spawn() starts a command in the background with
    its output streamed to a file-like object; stop() brings such a
    command down.
    """

    def execute(
        self,
        command: str,
        cwd: Path | None = None,
        timeout: int | None = None,
        log_file: Path | None = None,
        log_level: str | None = None,
        check: bool = True,
        env: dict[str, str] | None = None,
    ) -> Result:
        """Execute a command and wait for it.

        Args:
            command: Command string to execute
            cwd: Working directory for command execution
            timeout: Maximum execution time in seconds
            log_file: Path to write combined stdout/stderr output
            log_level: Level at which to replay output lines
            check: If True, raise on non-zero exit code
            env: Extra environment variables (merged into os.environ)

        Returns:
            invoke.Result; exited is -1 when the command timed out

        Raises:
            invoke.UnexpectedExit: If check=True and command
                returns non-zero
        """
        kwargs = {
            "hide": True,
            "warn": not check,
            "in_stream": False,
        }
        if timeout:
            kwargs["timeout"] = timeout
        if env:
            kwargs["env"] = env

        logger.debug("Executing {command}", command=command, cwd=str(cwd))
        try:
            if cwd:
                with self.cd(str(cwd)):
                    result = self.run(command, **kwargs)
            else:
                result = self.run(command, **kwargs)
        except CommandTimedOut as e:
            result = e.result
            result.exited = -1

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            log_file.write_text(result.stdout + result.stderr)

        if log_level:
            for line in (result.stdout + result.stderr).splitlines():
                logger.log(log_level, "{line}", line=line.rstrip())

        return result

    def spawn(
        self,
        argv: Sequence[str | os.PathLike],
        out_stream: TextIO,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> Promise:
        """Start a command in the background.

        stdout and stderr are both written to out_stream as they
        arrive. The caller must finish with stop() and Promise.join().

        Args:
            argv: Program and arguments
            out_stream: File-like object receiving the output
            cwd: Working directory
            env: Extra environment variables

        Returns:
            invoke Promise for the running command
        """
        command = join_command(argv)
        if os.name == "posix":
            # Replace the shell so signals reach the program itself.
            command = f"exec {command}"

        kwargs = {
            "asynchronous": True,
            "hide": False,
            "warn": True,
            "in_stream": False,
            "out_stream": out_stream,
            "err_stream": out_stream,
        }
        if env:
            kwargs["env"] = env

        logger.debug("Spawning {command}", command=command)
        if cwd:
            with self.cd(str(cwd)):
                return self.run(command, **kwargs)
        return self.run(command, **kwargs)

    @staticmethod
    def process(promise: Promise) -> subprocess.Popen:
        """The child process behind a spawned Promise."""
        return promise.runner.process

    def stop(self, promise: Promise, grace_period: float) -> None:
        """Terminate a spawned command, killing it if it lingers.

        Sends SIGTERM (TerminateProcess on Windows), waits up to
        grace_period seconds, then kills. Returns once the process
        has exited. Does not join the promise.
        """
        process = self.process(promise)
        if process.poll() is not None:
            return

        logger.debug("Terminating process", pid=process.pid)
        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            process.wait(timeout=grace_period)
        except subprocess.TimeoutExpired:
            logger.warn(
                "Process ignored terminate; killing",
                pid=process.pid,
                grace_period=grace_period,
            )
            process.kill()
            process.wait()
