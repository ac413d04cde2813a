"""Attestation plugin architecture.

This module attaches independent supply-chain records to one image digest:
- signature: keyless (or key-based) cosign signature
- sbom: SPDX document generated by syft, attached as an attestation
- provenance: SLSA v0.2 predicate generated by slsa-provenance

Jobs run concurrently, fail in isolation and skip records that are already
attached, so re-running a release is safe.

Usage:
    from container_attest._attestation import (
        AttestationContext,
        AttestationOrchestrator,
        create_default_registry,
    )

    orchestrator = AttestationOrchestrator(create_default_registry(skip_existing=True))
    outcome = orchestrator.run(AttestationContext(
        repository="ghcr.io/acme/svc",
        digest=digest,
        tags=("v1.2.3",),
        workdir=Path("/tmp/attest"),
    ))
"""

from .cosign import CosignClient
from .generators import SlsaProvenanceGenerator, SyftSbomGenerator
from .hints import hints_for
from .jobs import AttestationJob, predicate_fingerprint
from .orchestrator import MAX_WORKERS, AttestationOrchestrator, create_default_registry
from .protocol import (
    ATTESTATION_KINDS,
    DEFAULT_JOB_TIMEOUT,
    SLSA_PROVENANCE_PREDICATE_TYPE,
    SPDX_PREDICATE_TYPE,
    AttestationContext,
    AttestationKind,
    AttestationRecord,
    Attestor,
    PredicateGenerator,
    VerificationHint,
)
from .registry import JobRegistry
from .result import AttestationResult, RunOutcome

__all__ = [
    # Core types
    "AttestationKind",
    "AttestationContext",
    "AttestationRecord",
    "AttestationResult",
    "RunOutcome",
    "VerificationHint",
    "Attestor",
    "PredicateGenerator",
    # Constants
    "ATTESTATION_KINDS",
    "DEFAULT_JOB_TIMEOUT",
    "MAX_WORKERS",
    "SPDX_PREDICATE_TYPE",
    "SLSA_PROVENANCE_PREDICATE_TYPE",
    # Jobs, registry and orchestration
    "AttestationJob",
    "JobRegistry",
    "AttestationOrchestrator",
    "create_default_registry",
    "predicate_fingerprint",
    "hints_for",
    # Implementations
    "CosignClient",
    "SyftSbomGenerator",
    "SlsaProvenanceGenerator",
]
