"""Attestation jobs and predicate fingerprints.

A job runs the same protocol whatever its kind:

1. generate the predicate (signatures have none: the digest is signed)
2. validate the predicate shape
3. skip the attach if an identical record is already attached
4. attach via the attestor
5. build verification hints

Jobs hold no mutable state and share nothing with each other except the
read-only AttestationContext, so they can run concurrently.
"""

import copy
import hashlib
import json
import time
from dataclasses import dataclass, replace
from typing import Any, Optional

from container_attest.exceptions import AttachmentError, AttestationJobError, PipelineCancelledError
from container_attest.logging_config import logger
from container_attest.validation import validate_predicate

from .hints import hints_for
from .protocol import (
    SLSA_PROVENANCE_PREDICATE_TYPE,
    SPDX_PREDICATE_TYPE,
    AttestationContext,
    AttestationRecord,
    Attestor,
    PredicateGenerator,
)
from .result import AttestationResult

# Fields that differ between two runs over the same image
VOLATILE_FIELDS: dict[str, tuple[tuple[str, ...], ...]] = {
    SPDX_PREDICATE_TYPE: (
        ("creationInfo", "created"),
        ("documentNamespace",),
    ),
    SLSA_PROVENANCE_PREDICATE_TYPE: (
        ("metadata", "buildStartedOn"),
        ("metadata", "buildFinishedOn"),
        ("metadata", "buildInvocationId"),
    ),
}


def unwrap_predicate(predicate: dict[str, Any]) -> dict[str, Any]:
    """
    Undo cosign's wrapping of non-JSON predicate types.

    ``cosign attest --type spdx`` stores the document as a string under
    ``Data`` next to a ``Timestamp``; the JSON document itself is returned.
    """
    if set(predicate) <= {"Data", "Timestamp"} and isinstance(predicate.get("Data"), str):
        try:
            inner = json.loads(predicate["Data"])
        except json.JSONDecodeError:
            return predicate
        if isinstance(inner, dict):
            return inner
    return predicate


def predicate_fingerprint(predicate_type: str, predicate: dict[str, Any]) -> str:
    """
    Stable fingerprint of a predicate, ignoring fields that change on every run.

    Two predicates with the same fingerprint describe the same thing, so the
    second one need not be attached.
    """
    normalized = copy.deepcopy(unwrap_predicate(predicate))
    for path in VOLATILE_FIELDS.get(predicate_type, ()):
        _drop_path(normalized, path)
    canonical = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    return f"{predicate_type}#sha256:{hashlib.sha256(canonical.encode()).hexdigest()}"


def _drop_path(data: dict[str, Any], path: tuple[str, ...]) -> None:
    parent: Any = data
    for key in path[:-1]:
        parent = parent.get(key) if isinstance(parent, dict) else None
        if parent is None:
            return
    if isinstance(parent, dict):
        parent.pop(path[-1], None)


@dataclass(frozen=True)
class AttestationJob:
    """
    One kind of attestation for the run digest.

    Attributes:
        kind: "signature", "sbom" or "provenance"
        attestor: Signing / attestation service
        predicate_generator: Predicate source (None for signatures)
        skip_existing: Skip the attach when an identical record exists
        key: Signing key reference, only used to word the verification hints
    """

    kind: str
    attestor: Attestor
    predicate_generator: Optional[PredicateGenerator] = None
    skip_existing: bool = True
    key: Optional[str] = None

    @property
    def predicate_type(self) -> Optional[str]:
        return self.predicate_generator.predicate_type if self.predicate_generator else None

    @property
    def commands(self) -> list[str]:
        """External tools this job needs (for pre-flight tool checks)."""
        commands = [getattr(self.attestor, "command", "cosign")]
        if self.predicate_generator is not None:
            commands.append(self.predicate_generator.command)
        return commands

    def run(self, context: AttestationContext) -> AttestationResult:
        """
        Run the job protocol.

        Failures local to this job become a failed result; they never
        propagate to other jobs.
        """
        start = time.monotonic()
        try:
            if self.predicate_generator is None:
                record, skipped = self._sign(context)
            else:
                record, skipped = self._attest(context, self.predicate_generator)
        except PipelineCancelledError as e:
            logger.warning(f"{self.kind} attestation cancelled: {e}")
            return AttestationResult.failure_result(self.kind, f"cancelled: {e}", time.monotonic() - start)
        except AttestationJobError as e:
            logger.error(f"{self.kind} attestation failed: {e}")
            return AttestationResult.failure_result(self.kind, str(e), time.monotonic() - start)

        return AttestationResult.success_result(
            self.kind,
            record=record,
            hints=hints_for(self.kind, context.subject_ref, self.key),
            skipped=skipped,
            duration=time.monotonic() - start,
        )

    def _sign(self, context: AttestationContext) -> tuple[AttestationRecord, bool]:
        if self.skip_existing and self._signature_exists(context):
            logger.info(f"{context.subject_ref} is already signed, skipping")
            return AttestationRecord(kind=self.kind, subject_ref=context.subject_ref), True
        record = self.attestor.sign(context)
        return replace(record, kind=self.kind), False

    def _attest(self, context: AttestationContext, generator: PredicateGenerator) -> tuple[AttestationRecord, bool]:
        predicate_type = generator.predicate_type
        payload = generator.generate(context)
        predicate = validate_predicate(predicate_type, payload)
        fingerprint = predicate_fingerprint(predicate_type, predicate)

        if self.skip_existing and self._predicate_exists(context, predicate_type, fingerprint):
            logger.info(f"Identical {self.kind} attestation already attached to {context.subject_ref}, skipping")
            record = AttestationRecord(
                kind=self.kind,
                subject_ref=context.subject_ref,
                predicate_type=predicate_type,
                fingerprint=fingerprint,
            )
            return record, True

        predicate_path = context.predicate_path(self.kind)
        predicate_path.write_bytes(payload)
        record = self.attestor.attest(context, self.kind, predicate_path, predicate_type)
        return replace(record, fingerprint=fingerprint), False

    def _signature_exists(self, context: AttestationContext) -> bool:
        try:
            return self.attestor.has_signature(context)
        except AttachmentError as e:
            logger.warning(f"Could not list existing signatures, signing anyway: {e}")
            return False

    def _predicate_exists(self, context: AttestationContext, predicate_type: str, fingerprint: str) -> bool:
        try:
            existing = self.attestor.existing_predicates(context, predicate_type)
        except AttachmentError as e:
            logger.warning(f"Could not list existing {self.kind} attestations, attaching anyway: {e}")
            return False
        return any(predicate_fingerprint(predicate_type, predicate) == fingerprint for predicate in existing)
