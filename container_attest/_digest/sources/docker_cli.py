"""Digest source backed by the docker CLI.

Pulls the pushed tag and reads the repository digest from ``docker inspect``,
the same way a human would check what a tag points at.
"""

import json
import threading
from typing import Optional

from container_attest.exceptions import (
    CommandCancelledError,
    CommandExecutionError,
    DigestNotFoundError,
    PipelineCancelledError,
    RegistryError,
)
from container_attest.logging_config import logger
from container_attest.utils import run_command

from ..protocol import ImageDigest

# docker pull stderr fragments meaning "the tag is not there (yet)"
NOT_FOUND_MARKERS = ("manifest unknown", "not found", "name unknown")

DEFAULT_PULL_TIMEOUT = 900


class DockerCliDigestSource:
    """Resolve digests with ``docker pull`` + ``docker inspect``."""

    command = "docker"

    def __init__(self, timeout: float = DEFAULT_PULL_TIMEOUT, cancel_event: Optional[threading.Event] = None) -> None:
        self._timeout = timeout
        self._cancel_event = cancel_event

    @property
    def name(self) -> str:
        return "docker"

    def lookup(self, repository: str, tag: str) -> ImageDigest:
        reference = f"{repository}:{tag}"
        self._pull(reference)
        repo_digests = self._inspect(reference)

        if not repo_digests:
            raise RegistryError(f"docker inspect reported no repository digest for {reference}")

        # Prefer the entry for this repository; an image can carry several
        for entry in repo_digests:
            if entry.rsplit("@", 1)[0] == repository:
                return ImageDigest.parse(entry)

        logger.debug(f"No RepoDigests entry for {repository}, using {repo_digests[0]}")
        return ImageDigest.parse(repo_digests[0])

    def _pull(self, reference: str) -> None:
        try:
            run_command(
                ["docker", "pull", "--quiet", reference],
                "docker pull",
                timeout=self._timeout,
                cancel_event=self._cancel_event,
            )
        except CommandCancelledError as e:
            raise PipelineCancelledError(str(e)) from e
        except CommandExecutionError as e:
            stderr = e.stderr.lower()
            if any(marker in stderr for marker in NOT_FOUND_MARKERS):
                raise DigestNotFoundError(f"{reference} not found in registry") from e
            raise RegistryError(f"docker pull {reference} failed: {e}") from e

    def _inspect(self, reference: str) -> list[str]:
        try:
            result = run_command(
                ["docker", "inspect", reference, "--format", "{{json .RepoDigests}}"],
                "docker inspect",
                timeout=60,
                cancel_event=self._cancel_event,
            )
        except CommandCancelledError as e:
            raise PipelineCancelledError(str(e)) from e
        except CommandExecutionError as e:
            raise RegistryError(f"docker inspect {reference} failed: {e}") from e

        try:
            repo_digests = json.loads(result.stdout.strip() or "null")
        except json.JSONDecodeError as e:
            raise RegistryError(f"Unexpected docker inspect output for {reference}: {e}") from e

        if repo_digests is None:
            return []
        if not isinstance(repo_digests, list):
            raise RegistryError(f"Unexpected docker inspect output for {reference}: {repo_digests!r}")
        return [str(entry) for entry in repo_digests]
