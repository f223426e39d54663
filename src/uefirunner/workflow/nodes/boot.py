"""Boot node - run the image in QEMU and judge the guest outcome."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from uefirunner.core.errors import (
    ExitCode,
    GuestTimeoutError,
    TestFailureError,
    UnexpectedExitError,
)
from uefirunner.core.log import logger
from uefirunner.core.result import MonitorState
from uefirunner.core.state import PipelineState
from uefirunner.emulator.launcher import EmulatorLauncher


@dataclass
class Boot(BaseNode[PipelineState, None, int]):
    """Launch the emulator and turn the guest outcome into an exit code."""

    async def run(self, ctx: GraphRunContext[PipelineState]) -> End[int]:
        """Boot the assembled image.

        Returns:
            End[int]: ExitCode.OK, only when every guest test passed

        Raises:
            TestFailureError: Guest reported failing tests
            GuestTimeoutError: Guest still running at the deadline
            UnexpectedExitError: Emulator exited without a summary
        """
        state = ctx.state
        launcher = EmulatorLauncher(
            state.config.emulator,
            serial_log=state.log_dir.serial_log,
        )
        outcome = launcher.launch(state.image, state.run)
        state.outcome = outcome

        if outcome.status is MonitorState.ALL_PASSED:
            logger.info(
                "All {count} guest tests passed",
                count=outcome.summary.total,
            )
            return End(ExitCode.OK)

        if outcome.status is MonitorState.SOME_FAILED:
            failed = outcome.failed
            summary = outcome.summary
            raise TestFailureError(
                f"Guest tests failed ({summary.passed}/{summary.total} "
                f"passed): {', '.join(failed) or 'see serial log'}",
                failed=failed,
            )

        logger.error(
            "Guest transcript: {serial_log}",
            serial_log=str(state.log_dir.serial_log),
        )
        if outcome.status is MonitorState.TIMEOUT:
            raise GuestTimeoutError(
                f"Guest did not finish within {state.run.timeout}s"
            )
        raise UnexpectedExitError(
            "Emulator exited before the guest reported a summary "
            f"(exit status {outcome.exit_code})"
        )
