"""Assembly of the EFI system partition QEMU boots from.

Layout under <staging_dir>/<target id>/:

    esp/                      attached as a FAT drive (fat:rw:)
        <template files>
        EFI/BOOT/BOOTX64.EFI  the built application
    firmware/
        <target id>-vars.fd   writable copy of the vars template
"""

from __future__ import annotations

import filecmp
import hashlib
import shutil
from pathlib import Path

from uefirunner.core.errors import PackagingError
from uefirunner.core.log import logger
from uefirunner.core.result import BootableImage, BuildArtifact
from uefirunner.core.target import FirmwarePaths

BOOT_DIR = Path("EFI") / "BOOT"


def tree_digest(root: Path) -> str:
    """SHA-256 over the relative paths and contents of every file."""
    h = hashlib.sha256()
    for path in sorted(p for p in root.rglob("*") if p.is_file()):
        h.update(path.relative_to(root).as_posix().encode())
        h.update(b"\0")
        h.update(path.read_bytes())
        h.update(b"\0")
    return h.hexdigest()


class ImageAssembler:
    """Place a build artifact into a bootable image directory."""

    def __init__(self, staging_dir: Path, template_dir: Path | None = None):
        self.staging_dir = staging_dir
        self.template_dir = template_dir

    def assemble(self, artifact: BuildArtifact) -> BootableImage:
        """Build (or refresh) the image for artifact.

        Files already byte-identical are left alone and files that
        the inputs do not produce are removed, so identical inputs
        always give an identical image.

        Raises:
            PackagingError: Missing template or firmware vars, a
                directory in the way of a file, or an I/O failure
        """
        target = artifact.target
        root = self.staging_dir / target.id
        esp = root / "esp"
        boot_path = esp / BOOT_DIR / target.boot_file
        vars_copy = root / "firmware" / f"{target.id}-vars.fd"

        if self.template_dir is not None and not self.template_dir.is_dir():
            raise PackagingError(
                f"Image template {self.template_dir} does not exist"
            )
        if not artifact.path.is_file():
            raise PackagingError(f"Artifact {artifact.path} is missing")
        if not target.firmware.vars.is_file():
            raise PackagingError(
                f"Firmware vars template {target.firmware.vars} "
                f"does not exist"
            )
        if self.template_dir is not None:
            self._check_template(boot_path.relative_to(esp))

        with logger.span("Assembling image", root=str(root)):
            try:
                placed: set[Path] = set()
                if self.template_dir is not None:
                    for src in sorted(self.template_dir.rglob("*")):
                        if src.is_file():
                            dst = esp / src.relative_to(self.template_dir)
                            self._place(src, dst)
                            placed.add(dst)

                self._place(artifact.path, boot_path)
                placed.add(boot_path)
                self._place(target.firmware.vars, vars_copy)
                placed.add(vars_copy)

                self._prune(root, placed)
            except OSError as e:
                raise PackagingError(
                    f"Could not assemble image in {root}: {e}"
                ) from e

            digest = tree_digest(root)

        logger.info(
            "Image ready at {esp}", esp=str(esp), digest=digest
        )
        return BootableImage(
            root=esp,
            boot_path=boot_path,
            firmware=FirmwarePaths(
                code=target.firmware.code, vars=vars_copy
            ),
            target=target,
            digest=digest,
        )

    def _check_template(self, boot_rel: Path) -> None:
        """Refuse a template that provides its own boot file.

        FAT is case-insensitive, so names are compared ignoring case.
        """
        wanted = boot_rel.as_posix().lower()
        for src in self.template_dir.rglob("*"):
            rel = src.relative_to(self.template_dir)
            if rel.as_posix().lower() == wanted:
                raise PackagingError(
                    f"Image template {self.template_dir} already has "
                    f"{rel.as_posix()}, which collides with the built "
                    f"boot file"
                )

    @staticmethod
    def _place(src: Path, dst: Path) -> None:
        if dst.is_dir():
            raise PackagingError(
                f"Cannot place {src.name}: {dst} is a directory"
            )
        if dst.is_file() and filecmp.cmp(src, dst, shallow=False):
            logger.spew("Up to date: {dst}", dst=str(dst))
            return
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dst)

    @staticmethod
    def _prune(root: Path, keep: set[Path]) -> None:
        """Remove files and empty directories not in keep."""
        for path in sorted(root.rglob("*"), reverse=True):
            if path.is_file() or path.is_symlink():
                if path not in keep:
                    logger.debug("Removing stale {path}", path=str(path))
                    path.unlink()
            elif path.is_dir() and not any(path.iterdir()):
                path.rmdir()
