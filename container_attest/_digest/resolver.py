"""Digest resolver: tag -> immutable digest, with bounded retry.

A freshly pushed tag may take a moment to become visible. DigestNotFoundError
is therefore retried with exponential backoff; every other registry error is
surfaced immediately so configuration and credential problems are not masked
as transient ones.
"""

import time
from typing import Callable, Iterable, Optional

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from container_attest.exceptions import DigestInconsistencyError, DigestNotFoundError
from container_attest.logging_config import logger

from .protocol import DigestSource, ImageDigest

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE = 2.0
DEFAULT_BACKOFF_MAX = 60.0


class DigestResolver:
    """
    Resolve and cross-check the digest of a pushed image.

    Example:
        resolver = DigestResolver(DockerCliDigestSource())
        digest = resolver.resolve("ghcr.io/acme/svc", tags)
        resolver.verify("ghcr.io/acme/svc", tags, digest)
    """

    def __init__(
        self,
        source: DigestSource,
        attempts: int = DEFAULT_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_max: float = DEFAULT_BACKOFF_MAX,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            source: Where digests are read from
            attempts: Total lookup attempts for a missing tag (>= 1)
            backoff_base: First wait in seconds; doubles after each attempt
            backoff_max: Upper bound for a single wait
            sleep: Sleep function (injectable for tests)
        """
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self._source = source
        self._attempts = attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._sleep = sleep

    @property
    def source(self) -> DigestSource:
        return self._source

    def lookup(self, repository: str, tag: str) -> ImageDigest:
        """
        Look up one tag, retrying while it is not found.

        Raises:
            DigestNotFoundError: If the tag is still missing after the last attempt
            RegistryError: On any non-transient registry failure (not retried)
        """
        retrying = Retrying(
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=self._backoff_base, max=self._backoff_max),
            retry=retry_if_exception_type(DigestNotFoundError),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        digest = retrying(self._source.lookup, repository, tag)
        logger.info(f"{repository}:{tag} resolved to {digest} via {self._source.name}")
        return digest

    def resolve(self, repository: str, tags: Iterable[str]) -> ImageDigest:
        """
        Resolve the digest of a push from its first tag.

        All tags of one push point at the same manifest, so the first one is
        enough.
        """
        first = next(iter(tags), None)
        if first is None:
            raise ValueError("At least one tag is required to resolve a digest")
        return self.lookup(repository, first)

    def verify(self, repository: str, tags: Iterable[str], expected: ImageDigest) -> None:
        """
        Re-resolve every tag and require that all of them match ``expected``.

        Raises:
            DigestInconsistencyError: If any tag points somewhere else
        """
        for tag in tags:
            actual = self.lookup(repository, tag)
            if actual != expected:
                raise DigestInconsistencyError(
                    f"{repository}:{tag} resolved to {actual}, expected {expected}; "
                    "the tag was modified concurrently"
                )
        logger.info(f"All tags of {repository} point at {expected}")


def _log_retry(retry_state: RetryCallState) -> None:
    wait: Optional[float] = retry_state.next_action.sleep if retry_state.next_action else None
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"Digest lookup attempt {retry_state.attempt_number} failed ({exception}); retrying in {wait:.0f}s")
