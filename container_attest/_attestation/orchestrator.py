"""Attestation orchestrator and factory functions."""

import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Iterable, Optional

from container_attest.exceptions import PipelineCancelledError
from container_attest.logging_config import logger

from .cosign import CosignClient
from .generators import SlsaProvenanceGenerator, SyftSbomGenerator
from .jobs import AttestationJob
from .protocol import AttestationContext, Attestor
from .registry import JobRegistry
from .result import AttestationResult, RunOutcome

# Upper bound on concurrently running jobs (one per built-in kind)
MAX_WORKERS = 3


def create_default_registry(
    attestor: Optional[Attestor] = None,
    skip_existing: bool = True,
    key: Optional[str] = None,
) -> JobRegistry:
    """
    Create a JobRegistry with the built-in attestation jobs.

    - signature: ``cosign sign`` of the digest (no predicate)
    - sbom: syft SPDX document, attached as ``https://spdx.dev/Document``
    - provenance: slsa-provenance predicate, attached as ``https://slsa.dev/provenance/v0.2``

    Args:
        attestor: Signing / attestation service (defaults to a keyless CosignClient)
        skip_existing: Skip attaching records that are already present
        key: Signing key reference (keyless when None)

    Returns:
        Configured JobRegistry
    """
    attestor = attestor or CosignClient(key=key)
    registry = JobRegistry()
    registry.register(AttestationJob(kind="signature", attestor=attestor, skip_existing=skip_existing, key=key))
    registry.register(
        AttestationJob(
            kind="sbom",
            attestor=attestor,
            predicate_generator=SyftSbomGenerator(),
            skip_existing=skip_existing,
            key=key,
        )
    )
    registry.register(
        AttestationJob(
            kind="provenance",
            attestor=attestor,
            predicate_generator=SlsaProvenanceGenerator(),
            skip_existing=skip_existing,
            key=key,
        )
    )
    return registry


class AttestationOrchestrator:
    """
    Runs attestation jobs concurrently against one digest.

    Jobs are independent: each one's failure becomes its own failed result
    and never stops the others. There is no retry at this level.

    Example:
        orchestrator = AttestationOrchestrator()
        outcome = orchestrator.run(AttestationContext(
            repository="ghcr.io/acme/svc",
            digest=digest,
            tags=("v1.2.3", "sha-0123..."),
            workdir=Path("/tmp/attest"),
        ))
        print(outcome.status)  # succeeded | degraded
    """

    def __init__(self, registry: Optional[JobRegistry] = None, max_workers: int = MAX_WORKERS) -> None:
        """
        Initialize the AttestationOrchestrator.

        Args:
            registry: Optional JobRegistry. If not provided, creates a default
                      registry with the signature, sbom and provenance jobs.
            max_workers: Upper bound for the worker pool
        """
        self._registry = registry or create_default_registry()
        self._max_workers = max(1, min(max_workers, MAX_WORKERS))

    @property
    def registry(self) -> JobRegistry:
        """Get the job registry."""
        return self._registry

    def run(
        self,
        context: AttestationContext,
        jobs: Optional[Iterable[AttestationJob]] = None,
        kinds: Optional[Iterable[str]] = None,
    ) -> RunOutcome:
        """
        Run jobs against ``context.digest`` and aggregate their results.

        Args:
            context: Per-run context built from the freshly resolved digest
            jobs: Explicit jobs to run (default: registered jobs)
            kinds: Restrict registered jobs to these kinds (ignored with ``jobs``)

        Returns:
            RunOutcome with one result per job, in job order

        Raises:
            PipelineCancelledError: If interrupted; in-flight jobs are stopped first
        """
        selected = list(jobs) if jobs is not None else self._registry.get_jobs(kinds)
        if not selected:
            logger.warning("No attestation jobs selected")
            return RunOutcome([])

        context.workdir.mkdir(parents=True, exist_ok=True)
        workers = min(self._max_workers, len(selected))
        logger.info(
            f"Running {len(selected)} attestation job(s) for {context.subject_ref} "
            f"({', '.join(job.kind for job in selected)}; {workers} worker(s))"
        )

        results: dict[int, AttestationResult] = {}
        start = time.monotonic()
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="attest") as executor:
            futures = {executor.submit(job.run, context): index for index, job in enumerate(selected)}
            try:
                for future in as_completed(futures):
                    index = futures[future]
                    results[index] = self._collect(selected[index], future)
            except KeyboardInterrupt:
                logger.warning("Interrupted, stopping in-flight attestation jobs")
                context.cancel_event.set()
                executor.shutdown(wait=True, cancel_futures=True)
                raise PipelineCancelledError("Attestation cancelled by user")

        outcome = RunOutcome([results[index] for index in range(len(selected))])
        logger.info(
            f"Attestation finished in {time.monotonic() - start:.1f}s: {outcome.status} "
            f"({len(outcome.succeeded)} succeeded, {len(outcome.failed)} failed)"
        )
        return outcome

    def _collect(self, job: AttestationJob, future: Future) -> AttestationResult:
        try:
            result = future.result()
        except Exception as e:
            # Jobs report their own domain errors; anything else is a bug in a plugin
            logger.exception(f"{job.kind} attestation raised an unexpected error")
            return AttestationResult.failure_result(job.kind, f"Unexpected error: {e}")

        if result.succeeded:
            state = "already attached" if result.skipped else "attached"
            logger.info(f"{job.kind}: {state} ({result.duration:.1f}s)")
        else:
            logger.warning(f"{job.kind}: failed ({result.error_detail})")
        return result
