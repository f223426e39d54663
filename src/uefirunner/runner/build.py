"""Toolchain build of the UEFI application."""

from __future__ import annotations

import hashlib
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ValidationError

from uefirunner.core.config import BuildConfig
from uefirunner.core.errors import BuildError
from uefirunner.core.log import logger
from uefirunner.core.result import BuildArtifact
from uefirunner.core.runner import Runner
from uefirunner.core.target import BuildTarget

# Lines of build output carried in a BuildError.
DIAGNOSTIC_TAIL = 40


class CargoMetadata(BaseModel):
    """The part of `cargo metadata` output the builder reads."""

    target_directory: Path


def file_digest(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 16), b""):
            h.update(chunk)
    return h.hexdigest()


class Builder:
    """Run the toolchain for one target and verify its artifact."""

    def __init__(
        self,
        workdir: Path,
        settings: BuildConfig,
        runner: Runner | None = None,
    ):
        """Initialize builder.

        Args:
            workdir: Crate directory the build command runs in
            settings: Build command template, crate name, timeout
            runner: Command runner (a fresh one by default)
        """
        self.workdir = workdir
        self.settings = settings
        self.runner = runner or Runner()
        self._target_dir: Path | None = None

    def target_dir(self) -> Path:
        """Directory cargo writes build output to.

        The configured target_dir when set, otherwise what
        metadata_command reports. A workspace member builds into the
        workspace root's target/, not its own directory.

        Raises:
            BuildError: metadata_command failed or its output has no
                target_directory
        """
        if self._target_dir is None:
            configured = self.settings.target_dir
            if configured is None:
                self._target_dir = self._query_target_dir()
            else:
                self._target_dir = self.workdir / configured
        return self._target_dir

    def _query_target_dir(self) -> Path:
        command = self.settings.metadata_command
        result = self.runner.execute(
            command,
            cwd=self.workdir,
            timeout=self.settings.timeout,
            check=False,
            env=self.settings.env or None,
        )
        if result.exited != 0:
            raise BuildError(
                f"'{command}' failed with exit status {result.exited}",
                diagnostics=self._tail(result.stdout + result.stderr),
                returncode=result.exited,
            )
        try:
            metadata = CargoMetadata.model_validate_json(result.stdout)
        except ValidationError as e:
            raise BuildError(
                f"'{command}' did not report a target_directory",
                diagnostics=self._tail(result.stdout + result.stderr),
            ) from e

        target_dir = self.workdir / metadata.target_directory
        logger.debug(
            "Cargo target directory {path}", path=str(target_dir)
        )
        return target_dir

    def artifact_path(self, target: BuildTarget, release: bool) -> Path:
        """Where the toolchain leaves the .efi binary for target."""
        profile = "release" if release else "debug"
        return (
            self.target_dir() / target.triple / profile
            / f"{self.settings.crate}.efi"
        )

    def command(self, target: BuildTarget, release: bool) -> str:
        return self.settings.command.format(
            triple=target.triple,
            profile="release" if release else "debug",
            profile_flag="--release" if release else "",
            crate=self.settings.crate,
            target_dir=self.target_dir(),
        )

    def build(
        self,
        target: BuildTarget,
        release: bool = False,
        log_file: Path | None = None,
    ) -> BuildArtifact:
        """Build for target and return the artifact.

        Succeeds only if the command exits 0 and the artifact exists
        afterwards. Never retries.

        Args:
            target: Resolved build target
            release: Build the release profile
            log_file: Where to save combined build output

        Returns:
            BuildArtifact for the produced binary

        Raises:
            BuildError: On non-zero exit, timeout or missing artifact
        """
        command = self.command(target, release)
        expected = self.artifact_path(target, release)

        logger.info(
            "Building {triple}", triple=target.triple, command=command
        )
        result = self.runner.execute(
            command,
            cwd=self.workdir,
            timeout=self.settings.timeout,
            log_file=log_file,
            log_level="spew",
            check=False,
            env=self.settings.env or None,
        )
        diagnostics = self._tail(result.stdout + result.stderr)

        if result.exited == -1:
            raise BuildError(
                f"Build for {target.triple} timed out after "
                f"{self.settings.timeout}s",
                diagnostics=diagnostics,
                log_file=log_file,
                returncode=result.exited,
            )
        if result.exited != 0:
            raise BuildError(
                f"Build for {target.triple} failed with exit status "
                f"{result.exited}",
                diagnostics=diagnostics,
                log_file=log_file,
                returncode=result.exited,
            )
        if not expected.is_file():
            raise BuildError(
                f"Build for {target.triple} reported success but "
                f"{expected} does not exist",
                diagnostics=diagnostics,
                log_file=log_file,
                returncode=result.exited,
            )

        artifact = BuildArtifact(
            path=expected,
            target=target,
            built_at=datetime.now(),
            sha256=file_digest(expected),
            log_file=log_file,
        )
        logger.info(
            "Built {path}", path=str(expected), sha256=artifact.sha256
        )
        return artifact

    @staticmethod
    def _tail(output: str) -> str:
        return "\n".join(output.splitlines()[-DIAGNOSTIC_TAIL:])
