"""Build-and-push executor backed by docker buildx.

The image build itself (multi-arch compilation, layer caching) belongs to
buildx. This module only turns the resolved tags and labels into one
``docker buildx build --push`` invocation and maps its failure to BuildError.
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from container_attest.exceptions import (
    BuildError,
    CommandCancelledError,
    CommandExecutionError,
    PipelineCancelledError,
)
from container_attest.logging_config import logger
from container_attest.release import LabelSet
from container_attest.utils import run_command

# Multi-platform builds under QEMU can be slow
DEFAULT_BUILD_TIMEOUT = 3600


@dataclass(frozen=True)
class BuildPushInput:
    """
    Input parameters for one build-and-push.

    Attributes:
        context_path: Build context directory
        dockerfile_path: Path to the Dockerfile
        references: Full image references (repository:tag) to push
        labels: OCI labels to set on the image
        platforms: Target platforms (e.g. linux/amd64, linux/arm64)
    """

    context_path: str
    dockerfile_path: str
    references: tuple[str, ...]
    labels: LabelSet
    platforms: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.references:
            raise ValueError("At least one image reference is required")
        if not self.platforms:
            raise ValueError("At least one platform is required")


class BuildPushExecutor(Protocol):
    """Anything that can build an image and push it under the given references."""

    def build_and_push(self, input: BuildPushInput) -> None:
        """
        Build and push the image.

        On success every reference exists in the registry and points at the
        same manifest (or manifest list for multi-platform builds).

        Raises:
            BuildError: If the build or push fails
        """
        ...


class DockerBuildxExecutor:
    """Build-push executor that shells out to ``docker buildx build``."""

    command = "docker"

    def __init__(
        self,
        timeout: float = DEFAULT_BUILD_TIMEOUT,
        builder: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._timeout = timeout
        self._builder = builder
        self._cancel_event = cancel_event

    def build_command(self, input: BuildPushInput) -> list[str]:
        """Assemble the buildx command line for an input."""
        cmd = ["docker", "buildx", "build"]
        if self._builder:
            cmd += ["--builder", self._builder]
        cmd += ["--file", input.dockerfile_path, "--platform", ",".join(input.platforms)]
        for reference in input.references:
            cmd += ["--tag", reference]
        for label in input.labels.as_build_args():
            cmd += ["--label", label]
        cmd += ["--push", input.context_path]
        return cmd

    def build_and_push(self, input: BuildPushInput) -> None:
        if not Path(input.context_path).is_dir():
            raise BuildError(f"Build context not found: {input.context_path}")
        if not Path(input.dockerfile_path).is_file():
            raise BuildError(f"Dockerfile not found: {input.dockerfile_path}")

        logger.info(f"Building {len(input.references)} tag(s) for {', '.join(input.platforms)}")
        try:
            run_command(
                self.build_command(input),
                "docker buildx",
                timeout=self._timeout,
                cancel_event=self._cancel_event,
            )
        except CommandCancelledError as e:
            raise PipelineCancelledError(str(e)) from e
        except CommandExecutionError as e:
            raise BuildError(f"Image build/push failed: {e}") from e

        logger.info(f"Pushed {', '.join(input.references)}")
