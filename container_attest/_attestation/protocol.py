"""Protocols and shared types for the attestation plugin system.

Every attestation job follows the same protocol:
    generate predicate -> validate -> check for an existing record -> attach -> hints

The only input a job receives is the AttestationContext built once per run
from the freshly resolved digest.
"""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, Protocol

from container_attest._digest import ImageDigest
from container_attest.validation import SLSA_PROVENANCE_PREDICATE_TYPE, SPDX_PREDICATE_TYPE

# =============================================================================
# Kinds and predicate types
# =============================================================================

AttestationKind = Literal["signature", "sbom", "provenance"]

# Execution and reporting order
ATTESTATION_KINDS: tuple[str, ...] = ("signature", "sbom", "provenance")

# Short names understood by ``cosign attest --type``
COSIGN_PREDICATE_TYPES = {
    SPDX_PREDICATE_TYPE: "spdx",
    SLSA_PROVENANCE_PREDICATE_TYPE: "slsaprovenance",
}

# Default per-job timeout in seconds
DEFAULT_JOB_TIMEOUT = 600


@dataclass(frozen=True)
class AttestationContext:
    """
    Per-run, read-only input shared by every attestation job.

    Attributes:
        repository: Repository coordinate, e.g. ghcr.io/acme/svc
        digest: Digest every attestation is attached to
        tags: Tags of the push (informational, used by provenance)
        workdir: Directory jobs write their predicate files to
        timeout: Timeout in seconds for each external call of a job
        cancel_event: Set when the run is aborted; stops in-flight calls
    """

    repository: str
    digest: ImageDigest
    tags: tuple[str, ...]
    workdir: Path
    timeout: float = DEFAULT_JOB_TIMEOUT
    cancel_event: threading.Event = field(default_factory=threading.Event, compare=False)

    @property
    def subject_ref(self) -> str:
        """Digest-pinned reference every job signs or attests."""
        return self.digest.reference(self.repository)

    def predicate_path(self, kind: str) -> Path:
        """Per-kind predicate file inside the workdir; jobs never share a file."""
        return self.workdir / f"{kind}.predicate.json"


@dataclass(frozen=True)
class AttestationRecord:
    """
    Reference to an attached (or already present) attestation.

    Attributes:
        kind: Attestation kind
        subject_ref: Digest-pinned reference the record is attached to
        predicate_type: Predicate type URI (None for signatures)
        fingerprint: Stable fingerprint of the predicate (None for signatures)
    """

    kind: str
    subject_ref: str
    predicate_type: Optional[str] = None
    fingerprint: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "subject": self.subject_ref,
            "predicate_type": self.predicate_type,
            "fingerprint": self.fingerprint,
        }


@dataclass(frozen=True)
class VerificationHint:
    """An advisory command a consumer can run to verify an attestation."""

    title: str
    command: str


class PredicateGenerator(Protocol):
    """
    Protocol for predicate generators (SBOM, provenance).

    Example:
        class SyftSbomGenerator:
            name = "syft"
            command = "syft"
            predicate_type = SPDX_PREDICATE_TYPE

            def generate(self, context: AttestationContext) -> bytes:
                ...
    """

    @property
    def name(self) -> str:
        """Human-readable generator name used in logs and results."""
        ...

    @property
    def command(self) -> str:
        """External tool the generator shells out to (used for tool checks)."""
        ...

    @property
    def predicate_type(self) -> str:
        """Predicate type URI of the generated payload."""
        ...

    def generate(self, context: AttestationContext) -> bytes:
        """
        Generate the predicate payload for ``context.subject_ref``.

        Returns:
            Predicate JSON as bytes

        Raises:
            PredicateGenerationError: If the tool fails or produces unusable output
        """
        ...


class Attestor(Protocol):
    """
    Protocol for the signing / attestation service.

    Implementations attach records to ``context.subject_ref`` and list the
    records already attached to it.
    """

    def sign(self, context: AttestationContext) -> AttestationRecord:
        """
        Sign the digest.

        Raises:
            AttachmentError: If signing fails
        """
        ...

    def attest(
        self, context: AttestationContext, kind: str, predicate_path: Path, predicate_type: str
    ) -> AttestationRecord:
        """
        Attach a predicate as an attestation of the given kind.

        Raises:
            AttachmentError: If the attach fails
        """
        ...

    def has_signature(self, context: AttestationContext) -> bool:
        """
        Whether any signature is already attached to the digest.

        Raises:
            AttachmentError: If the registry cannot be queried
        """
        ...

    def existing_predicates(self, context: AttestationContext, predicate_type: str) -> list[dict[str, Any]]:
        """
        Predicates of the given type already attached to the digest.

        Raises:
            AttachmentError: If the registry cannot be queried
        """
        ...
