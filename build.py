#!/usr/bin/env python3
"""Build the UEFI test runner and run it under QEMU.

    ./build.py build [--target aarch64] [--release]
    ./build.py run [--headless] [--ci]
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from uefirunner.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
