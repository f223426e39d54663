"""Supported build targets and identifier resolution."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from uefirunner.core.errors import UnsupportedTargetError


class FirmwarePaths(BaseModel):
    """Boot ROM for a target: read-only code plus a variable store
    template."""

    model_config = ConfigDict(frozen=True)

    code: Path
    vars: Path


class BuildTarget(BaseModel):
    """An (architecture, toolchain triple, boot ROM) tuple."""

    model_config = ConfigDict(frozen=True)

    id: str
    arch: str
    triple: str
    cross: bool
    boot_file: str = Field(
        description="Removable-media boot file name under EFI/BOOT"
    )
    qemu: str = Field(description="QEMU system emulator binary")
    machine: tuple[str, ...] = Field(
        description="Machine/CPU arguments for QEMU"
    )
    display: tuple[str, ...] = Field(
        description="QEMU display device arguments for windowed runs"
    )
    firmware: FirmwarePaths


TARGETS: dict[str, BuildTarget] = {
    "native-x86_64": BuildTarget(
        id="native-x86_64",
        arch="x86_64",
        triple="x86_64-unknown-uefi",
        cross=False,
        boot_file="BOOTX64.EFI",
        qemu="qemu-system-x86_64",
        machine=("-machine", "q35"),
        display=("-vga", "std"),
        firmware=FirmwarePaths(
            code=Path("/usr/share/OVMF/OVMF_CODE.fd"),
            vars=Path("/usr/share/OVMF/OVMF_VARS.fd"),
        ),
    ),
    "cross-aarch64": BuildTarget(
        id="cross-aarch64",
        arch="aarch64",
        triple="aarch64-unknown-uefi",
        cross=True,
        boot_file="BOOTAA64.EFI",
        qemu="qemu-system-aarch64",
        machine=("-machine", "virt", "-cpu", "cortex-a72"),
        display=("-device", "ramfb"),
        firmware=FirmwarePaths(
            code=Path("/usr/share/AAVMF/AAVMF_CODE.fd"),
            vars=Path("/usr/share/AAVMF/AAVMF_VARS.fd"),
        ),
    ),
}

ALIASES: dict[str, str] = {
    "native": "native-x86_64",
    "x86_64": "native-x86_64",
    "x86_64-unknown-uefi": "native-x86_64",
    "cross": "cross-aarch64",
    "aarch64": "cross-aarch64",
    "aarch64-unknown-uefi": "cross-aarch64",
}


def resolve_target(
    identifier: str,
    firmware_overrides: dict[str, FirmwarePaths] | None = None,
) -> BuildTarget:
    """Validate a target identifier and return its BuildTarget.

    Accepts canonical ids, architecture names and toolchain triples,
    case-insensitively.

    Args:
        identifier: Requested target (e.g. 'native', 'cross-aarch64')
        firmware_overrides: Boot ROM paths keyed by canonical target id,
            replacing the built-in defaults

    Returns:
        The resolved BuildTarget

    Raises:
        UnsupportedTargetError: If the identifier is not recognized
    """
    key = (identifier or "").strip().lower()
    key = ALIASES.get(key, key)

    target = TARGETS.get(key)
    if target is None:
        raise UnsupportedTargetError(identifier, sorted(TARGETS))

    override = (firmware_overrides or {}).get(target.id)
    if override is not None:
        target = target.model_copy(update={"firmware": override})
    return target


__all__ = [
    "ALIASES",
    "BuildTarget",
    "FirmwarePaths",
    "TARGETS",
    "resolve_target",
]
