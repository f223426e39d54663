"""Application configuration."""

from __future__ import annotations

from pathlib import Path

import platformdirs
from pydantic import Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from uefirunner.core.base import BaseConfig
from uefirunner.core.log import Logger
from uefirunner.core.target import FirmwarePaths
from uefirunner.core.yaml_settings import YamlWithIncludesSettingsSource


class BuildConfig(BaseConfig):
    """Toolchain invocation."""

    command: str = Field(
        description=(
            "Build command template. Placeholders: {triple}, {profile}, "
            "{profile_flag}, {crate}, {target_dir}"
        )
    )
    crate: str = Field(
        description="Crate whose .efi binary is the build artifact"
    )
    target_dir: Path | None = Field(
        default=None,
        description=(
            "Cargo target directory, relative to workdir. Unset asks "
            "metadata_command, so workspace members find the shared "
            "target/ at the workspace root"
        ),
    )
    metadata_command: str = Field(
        default="cargo metadata --format-version 1 --no-deps",
        description=(
            "Command printing cargo metadata JSON; its "
            "target_directory locates the build output"
        ),
    )
    timeout: int = Field(
        default=3600,
        description="Build timeout in seconds",
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for the build",
    )


class ImageConfig(BaseConfig):
    """Bootable image layout."""

    staging_dir: Path = Field(
        default=Path("target/uefirunner"),
        description=(
            "Where images are assembled, one subdirectory per target; "
            "relative to workdir"
        ),
    )
    template_dir: Path | None = Field(
        default=None,
        description=(
            "Optional directory tree copied into the EFI system "
            "partition before the boot file is placed"
        ),
    )


class EmulatorConfig(BaseConfig):
    """QEMU invocation and supervision."""

    binary: str | None = Field(
        default=None,
        description="Override the target's QEMU binary",
    )
    memory: str = Field(default="128M", description="Guest memory")
    smp: int = Field(default=4, description="Guest CPU count")
    kvm: str = Field(
        default="auto",
        description=(
            "'on', 'off' or 'auto' (native target with /dev/kvm present)"
        ),
    )
    timeout: float = Field(
        default=300,
        description=(
            "Wall-clock limit in seconds for --ci runs; a guest still "
            "running past it is treated as hung"
        ),
    )
    interactive_timeout: float = Field(
        default=1800,
        description=(
            "Wall-clock limit in seconds without --ci; longer than the "
            "CI limit so a developer can watch the guest"
        ),
    )
    grace_period: float = Field(
        default=5.0,
        description="Seconds between terminate and kill",
    )
    extra_args: list[str] = Field(
        default_factory=list,
        description="Additional QEMU arguments",
    )


class Config(BaseConfig):
    """Application configuration loaded from YAML/env/CLI."""

    logger: Logger = Field(
        default=None,
        description="Logger configuration and runtime instance"
    )
    build: BuildConfig = Field(description="Toolchain settings")
    image: ImageConfig = Field(
        default_factory=ImageConfig,
        description="Image assembly settings",
    )
    emulator: EmulatorConfig = Field(
        default_factory=EmulatorConfig,
        description="Emulator settings",
    )
    firmware: dict[str, FirmwarePaths] = Field(
        default_factory=dict,
        description=(
            "Boot ROM paths keyed by target id "
            "(native-x86_64, cross-aarch64)"
        ),
    )
    workdir: Path = Field(
        default=Path("."),
        description="Crate directory the toolchain runs in",
    )
    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir("uefirunner"))
        ),
        description="Root directory for run logs",
    )

    @model_validator(mode='after')
    def _setup_logger(self) -> 'Config':
        """Configure the module-level logger from the loaded config."""
        from uefirunner.core.log import setup_logger

        if self.logger is None:
            self.logger = Logger()

        setup_logger(
            log_root=self.log_root,
            run_name=self.run_name,
            level=self.logger.level,
            console=self.logger.console,
            file=self.logger.file,
            logfire=self.logger.logfire,
        )
        return self

    @property
    def run_name(self) -> str:
        return self.workdir.resolve().name or "uefirunner"

    def resolve(self, path: Path) -> Path:
        """Resolve a configured path against workdir."""
        path = Path(path).expanduser()
        if path.is_absolute():
            return path
        return self.workdir / path

    def use_verbose_console(self):
        """Switch the console sink to debug level."""
        from uefirunner.core.log import setup_logger

        self.logger.console.level = "debug"
        setup_logger(
            log_root=self.log_root,
            run_name=self.run_name,
            level=self.logger.level,
            console=self.logger.console.model_copy(),
            file=self.logger.file.model_copy(),
            logfire=self.logger.logfire.model_copy(),
        )

    def close(self):
        """Close config and the module-level logger."""
        from uefirunner.core.log import logger
        logger.close()
        super().close()


class State(BaseSettings):
    """Settings root: everything loaded from YAML/env/CLI."""

    config: Config = Field(
        description="Application configuration (from YAML/env/CLI)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="UEFIRUNNER_",
        env_nested_delimiter="__",
        cli_parse_args=True,
        cli_implicit_flags=True,
        cli_exit_on_error=False,
        cli_prog_name="build.py",
        cli_use_class_docs_for_groups=True,
        arbitrary_types_allowed=True,
        extra='ignore'
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority, highest first: init args, environment, .env,
        YAML files, file secrets.
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            file_secret_settings,
        )


__all__ = [
    "BuildConfig",
    "Config",
    "EmulatorConfig",
    "ImageConfig",
    "State",
]
