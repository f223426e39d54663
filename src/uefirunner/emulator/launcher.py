"""QEMU launch and supervision."""

from __future__ import annotations

import os
import queue
import shutil
import threading
from pathlib import Path
from typing import TextIO

from uefirunner.core.config import EmulatorConfig
from uefirunner.core.errors import LaunchError
from uefirunner.core.log import logger
from uefirunner.core.result import BootableImage, RunConfig, TestOutcome
from uefirunner.core.runner import COMMAND_NOT_FOUND, Runner
from uefirunner.core.target import BuildTarget
from uefirunner.emulator.monitor import GuestMonitor, StreamEnd


def qemu_path(path: Path) -> str:
    """Escape a path for use inside a QEMU -drive option."""
    return str(path).replace(",", ",,")


class LineStream:
    """Write-only text stream that splits output into lines.

    invoke's IO threads write arbitrary chunks here; complete lines go
    onto a queue for the monitor and, optionally, into a transcript.
    """

    def __init__(self, lines: queue.Queue, transcript: TextIO | None = None):
        self.lines = lines
        self.transcript = transcript
        self._partial = ""
        self._lock = threading.Lock()

    def write(self, data: str) -> int:
        with self._lock:
            if self.transcript is not None:
                self.transcript.write(data)
            self._partial += data
            *complete, self._partial = self._partial.split("\n")
            for line in complete:
                logger.spew("guest: {line}", line=line)
                self.lines.put(line)
        return len(data)

    def flush(self) -> None:
        if self.transcript is not None:
            self.transcript.flush()

    def end(self, exit_code: int | None) -> None:
        """Queue any unterminated last line, then the end marker."""
        with self._lock:
            if self._partial:
                self.lines.put(self._partial)
                self._partial = ""
        self.lines.put(StreamEnd(exit_code))


class EmulatorLauncher:
    """Boot a BootableImage in QEMU and monitor the guest tests."""

    def __init__(
        self,
        settings: EmulatorConfig,
        runner: Runner | None = None,
        serial_log: Path | None = None,
    ):
        """Initialize launcher.

        Args:
            settings: Emulator settings (memory, kvm, extra args)
            runner: Command runner (a fresh one by default)
            serial_log: Where to save the guest console transcript
        """
        self.settings = settings
        self.runner = runner or Runner()
        self.serial_log = serial_log

    def kvm_enabled(self, target: BuildTarget) -> bool:
        mode = self.settings.kvm.lower()
        if mode == "on":
            return True
        if mode == "off":
            return False
        return not target.cross and os.access("/dev/kvm", os.R_OK | os.W_OK)

    def command(self, image: BootableImage, run: RunConfig) -> list[str]:
        """QEMU argument vector for image."""
        target = run.target
        argv = [
            self.settings.binary or target.qemu,
            "-nodefaults",
            *target.machine,
            "-m", self.settings.memory,
            "-smp", str(self.settings.smp),
        ]
        if self.kvm_enabled(target):
            argv.append("-enable-kvm")

        # yapf: disable
        argv += [
            "-drive", "if=pflash,format=raw,readonly=on,file="
                      + qemu_path(image.firmware.code),
            "-drive", "if=pflash,format=raw,file="
                      + qemu_path(image.firmware.vars),
            "-drive", "format=raw,file=fat:rw:" + qemu_path(image.root),
            "-serial", "stdio",
        ]
        # yapf: enable

        if run.headless:
            argv += ["-display", "none"]
        else:
            argv += list(target.display)

        argv += self.settings.extra_args
        return argv

    def launch(
        self,
        image: BootableImage,
        run: RunConfig,
        monitor: GuestMonitor | None = None,
    ) -> TestOutcome:
        """Run the emulator until the guest reports, exits or hangs.

        The child process has always exited when this returns, whether
        by a terminal outcome, the timeout, or an exception raised
        while monitoring.

        Args:
            image: Image to boot
            run: Invocation settings (timeout, headless, grace period)
            monitor: Monitor to drive (a fresh one by default)

        Returns:
            Terminal TestOutcome

        Raises:
            LaunchError: QEMU or the firmware is missing, or QEMU
                could not be started
        """
        monitor = monitor or GuestMonitor()
        argv = self.command(image, run)

        if shutil.which(argv[0]) is None:
            raise LaunchError(f"Emulator '{argv[0]}' not found on PATH")
        if not image.firmware.code.is_file():
            raise LaunchError(
                f"Firmware {image.firmware.code} does not exist"
            )

        transcript = None
        if self.serial_log is not None:
            self.serial_log.parent.mkdir(parents=True, exist_ok=True)
            transcript = open(  # noqa: SIM115
                self.serial_log, "w", encoding="utf-8"
            )

        lines: queue.Queue = queue.Queue()
        stream = LineStream(lines, transcript)
        try:
            with logger.span(
                "Booting {target}", target=run.target.id, argv=argv
            ):
                outcome = self._supervise(argv, stream, lines, monitor, run)
        finally:
            if transcript is not None:
                transcript.close()

        if (
            outcome.exit_code == COMMAND_NOT_FOUND
            and not outcome.results
            and outcome.summary is None
        ):
            raise LaunchError(f"Emulator '{argv[0]}' could not be started")
        return outcome

    def _supervise(
        self,
        argv: list[str],
        stream: LineStream,
        lines: queue.Queue,
        monitor: GuestMonitor,
        run: RunConfig,
    ) -> TestOutcome:
        try:
            promise = self.runner.spawn(argv, stream)
        except OSError as e:
            raise LaunchError(f"Could not start {argv[0]}: {e}") from e

        pid = self.runner.process(promise).pid
        logger.info("Emulator started", pid=pid, timeout=run.timeout)

        errors: list[BaseException] = []

        def drain():
            exit_code = None
            try:
                exit_code = promise.join().exited
            except Exception as e:
                errors.append(e)
            finally:
                stream.end(exit_code)

        watcher = threading.Thread(
            target=drain, name=f"emulator-{pid}", daemon=True
        )
        watcher.start()
        try:
            outcome = monitor.watch(lines, run.timeout)
        finally:
            self.runner.stop(promise, run.grace_period)
            watcher.join()

        if errors:
            raise LaunchError(
                f"Emulator output could not be read: {errors[0]}"
            ) from errors[0]

        logger.info(
            "Emulator finished",
            pid=pid,
            status=outcome.status.value,
            elapsed=round(outcome.elapsed, 2),
        )
        return outcome
