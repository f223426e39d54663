"""Per-invocation log directory management."""

from datetime import datetime
from pathlib import Path


class RunLogDir:
    """Directory holding the build and serial logs of one invocation."""

    def __init__(
        self, base_dir: Path, command: str, target_id: str | None = None
    ):
        """Create a new log directory for this invocation.

        Args:
            base_dir: Base directory for all run logs
            command: Subcommand name (build, run)
            target_id: Optional target id used as a subdirectory
        """
        timestamp = datetime.now().strftime('%Y%m%d-%H%M%S-%f')

        if target_id:
            base_dir = base_dir / target_id

        self.run_dir = base_dir / f"{command}-{timestamp}"
        self.run_dir.mkdir(parents=True, exist_ok=True)

    @property
    def build_log(self) -> Path:
        return self.run_dir / "build.log"

    @property
    def serial_log(self) -> Path:
        return self.run_dir / "serial.log"
