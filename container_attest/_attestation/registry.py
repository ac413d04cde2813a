"""Job registry for managing attestation jobs."""

from typing import Any, Dict, Iterable, List, Optional

from container_attest.exceptions import ConfigError
from container_attest.logging_config import logger

from .jobs import AttestationJob
from .protocol import ATTESTATION_KINDS


class JobRegistry:
    """
    Registry of attestation jobs, at most one per kind.

    Example:
        registry = JobRegistry()
        registry.register(AttestationJob(kind="signature", attestor=cosign))
        registry.register(AttestationJob(kind="sbom", attestor=cosign, predicate_generator=SyftSbomGenerator()))

        jobs = registry.get_jobs(["sbom"])
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._jobs: Dict[str, AttestationJob] = {}

    def register(self, job: AttestationJob) -> None:
        """
        Register a job.

        Raises:
            ValueError: If a job of the same kind is already registered
        """
        if job.kind in self._jobs:
            raise ValueError(f"A {job.kind} job is already registered")
        self._jobs[job.kind] = job
        generator = job.predicate_generator.name if job.predicate_generator else "none"
        logger.debug(f"Registered attestation job: {job.kind} (generator={generator})")

    def get(self, kind: str) -> Optional[AttestationJob]:
        return self._jobs.get(kind)

    @property
    def kinds(self) -> List[str]:
        """Registered kinds in reporting order."""
        return sorted(self._jobs, key=_kind_order)

    def get_jobs(self, kinds: Optional[Iterable[str]] = None) -> List[AttestationJob]:
        """
        Jobs for the requested kinds (all when None), in reporting order.

        Raises:
            ConfigError: If a requested kind has no registered job
        """
        if kinds is None:
            return [self._jobs[kind] for kind in self.kinds]

        requested = list(dict.fromkeys(kinds))
        unknown = [kind for kind in requested if kind not in self._jobs]
        if unknown:
            raise ConfigError(
                f"Unknown attestation kind(s): {', '.join(unknown)}. Available: {', '.join(self.kinds) or 'none'}"
            )
        return [self._jobs[kind] for kind in sorted(requested, key=_kind_order)]

    def list_jobs(self) -> List[Dict[str, Any]]:
        """
        List all registered jobs with their collaborators.

        Returns:
            List of dicts with job info
        """
        return [
            {
                "kind": job.kind,
                "predicate_type": job.predicate_type,
                "generator": job.predicate_generator.name if job.predicate_generator else None,
                "commands": job.commands,
            }
            for job in (self._jobs[kind] for kind in self.kinds)
        ]

    def clear(self) -> None:
        """Remove all registered jobs."""
        self._jobs.clear()


def _kind_order(kind: str) -> tuple[int, str]:
    # Unknown kinds sort after the built-in ones
    try:
        return ATTESTATION_KINDS.index(kind), kind
    except ValueError:
        return len(ATTESTATION_KINDS), kind
