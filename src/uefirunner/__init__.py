"""uefirunner - build, boot and test UEFI applications under QEMU."""

__version__ = "0.1.0"
