"""Pipeline state threaded through the workflow graph."""

from __future__ import annotations

from pydantic import ConfigDict, Field

from uefirunner.core.base import BaseState
from uefirunner.core.config import Config
from uefirunner.core.logdir import RunLogDir
from uefirunner.core.result import (
    BootableImage,
    BuildArtifact,
    RunConfig,
    TestOutcome,
)


class PipelineState(BaseState):
    """State of one build or run invocation.

    The CLI fills in the request fields; each stage adds its product.
    One instance per invocation, never shared.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    config: Config
    command: str = Field(description="Subcommand: build or run")
    target_id: str = Field(description="Target identifier as requested")
    release: bool = False
    headless: bool = False
    ci: bool = False

    run: RunConfig | None = None
    log_dir: RunLogDir | None = None
    artifact: BuildArtifact | None = None
    image: BootableImage | None = None
    outcome: TestOutcome | None = None

    @property
    def boots(self) -> bool:
        return self.command == "run"
