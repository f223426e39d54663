"""Guest signal monitor: turns serial console lines into a TestOutcome.

Marker protocol, version 1. One marker per line; ANSI escape sequences,
carriage returns and surrounding whitespace are ignored, and so is any
line that is not a marker:

    MARKERS: v1                       optional protocol header
    PASS <test-name>
    FAIL <test-name>[: <detail>]
    SUMMARY: <passed>/<total> passed

States: WAITING -> RUNNING (first marker) -> ALL_PASSED | SOME_FAILED
| TIMEOUT | UNEXPECTED_EXIT. SUMMARY is the only way to a passing
outcome; a stream that ends without one is a failure.
"""

from __future__ import annotations

import queue
import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from uefirunner.core.errors import MarkerProtocolError
from uefirunner.core.log import logger
from uefirunner.core.result import (
    MonitorState,
    Summary,
    TestOutcome,
    TestResult,
)

PROTOCOL_VERSION = 1


@dataclass(frozen=True)
class StreamEnd:
    """Queued after the last line, once the emulator has exited."""

    exit_code: int | None = None


EOF = StreamEnd()

# Longest single wait on the queue, so the deadline is checked often.
POLL_INTERVAL = 0.1

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]|\x1b[()][A-Za-z0-9]")
_HEADER_RE = re.compile(r"^MARKERS:\s*v(\d+)$")
_RESULT_RE = re.compile(r"^(PASS|FAIL)\s+(\S+?)(?::\s+(.*))?$")
_SUMMARY_RE = re.compile(r"^SUMMARY:\s*(\d+)\s*/\s*(\d+)\s+passed$")


def clean_line(line: str) -> str:
    return _ANSI_RE.sub("", line).replace("\r", "").strip()


class GuestMonitor:
    """State machine over guest output lines."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.state = MonitorState.WAITING
        self.results: list[TestResult] = []
        self.summary: Summary | None = None
        self.exit_code: int | None = None
        self._clock = clock
        self._started = clock()

    @property
    def terminal(self) -> bool:
        return self.state.terminal

    def feed(self, line: str) -> MonitorState:
        """Consume one line of guest output."""
        if self.terminal:
            return self.state

        text = clean_line(line)
        if not text:
            return self.state

        if match := _HEADER_RE.match(text):
            version = int(match.group(1))
            if version != PROTOCOL_VERSION:
                raise MarkerProtocolError(
                    f"Guest uses marker protocol v{version}, "
                    f"only v{PROTOCOL_VERSION} is supported"
                )
            self._mark_running()
        elif match := _RESULT_RE.match(text):
            verdict, name, detail = match.groups()
            self._mark_running()
            result = TestResult(
                name=name, passed=verdict == "PASS", detail=detail
            )
            self.results.append(result)
            if result.passed:
                logger.debug("Guest test passed: {name}", name=name)
            else:
                logger.error(
                    "Guest test failed: {name}", name=name, detail=detail
                )
        elif match := _SUMMARY_RE.match(text):
            passed, total = (int(g) for g in match.groups())
            self._mark_running()
            self.summary = Summary(passed=passed, total=total)
            failed = any(not r.passed for r in self.results)
            if passed == total and not failed:
                self.state = MonitorState.ALL_PASSED
            else:
                self.state = MonitorState.SOME_FAILED
            logger.info(
                "Guest summary: {passed}/{total} passed",
                passed=passed,
                total=total,
            )
        return self.state

    def finish(self, exit_code: int | None = None) -> MonitorState:
        """The output stream ended (the emulator exited)."""
        self.exit_code = exit_code
        if not self.terminal:
            self.state = MonitorState.UNEXPECTED_EXIT
        return self.state

    def expire(self) -> MonitorState:
        """The wall-clock deadline passed."""
        if not self.terminal:
            self.state = MonitorState.TIMEOUT
        return self.state

    def watch(
        self, lines: queue.Queue, timeout: float | None = None
    ) -> TestOutcome:
        """Consume lines until a terminal state is reached.

        Args:
            lines: Queue of output lines, ending with a StreamEnd
            timeout: Seconds from now before the outcome is TIMEOUT;
                None waits indefinitely

        Returns:
            The terminal TestOutcome
        """
        deadline = None if timeout is None else self._clock() + timeout
        while not self.terminal:
            wait = POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    self.expire()
                    break
                wait = min(wait, remaining)
            try:
                line = lines.get(timeout=wait)
            except queue.Empty:
                continue
            if isinstance(line, StreamEnd):
                self.finish(line.exit_code)
            else:
                self.feed(line)
        return self.outcome()

    def outcome(self) -> TestOutcome:
        return TestOutcome(
            status=self.state,
            results=list(self.results),
            summary=self.summary,
            exit_code=self.exit_code,
            elapsed=self._clock() - self._started,
        )

    def _mark_running(self) -> None:
        if self.state is MonitorState.WAITING:
            logger.debug("Guest test harness started")
            self.state = MonitorState.RUNNING
