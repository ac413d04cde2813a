"""Attestation results and the aggregated run outcome."""

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from .protocol import AttestationRecord, VerificationHint

JobStatus = Literal["succeeded", "failed"]
RunStatus = Literal["succeeded", "degraded"]


@dataclass
class AttestationResult:
    """
    Outcome of one attestation job.

    Attributes:
        kind: Attestation kind ("signature", "sbom", "provenance")
        status: "succeeded" or "failed"
        error_detail: Error message if the job failed
        skipped: True when an identical record was already attached
        record: Reference to the attached (or existing) record
        hints: Verification commands for consumers
        duration: Wall-clock seconds the job took
    """

    kind: str
    status: JobStatus
    error_detail: Optional[str] = None
    skipped: bool = False
    record: Optional[AttestationRecord] = None
    hints: list[VerificationHint] = field(default_factory=list)
    duration: float = 0.0

    def __post_init__(self) -> None:
        """Validate result state."""
        if self.status == "failed" and not self.error_detail:
            raise ValueError("Failed result must have error_detail")
        if self.status == "succeeded" and self.error_detail:
            raise ValueError("Successful result must not have error_detail")

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @classmethod
    def success_result(
        cls,
        kind: str,
        record: Optional[AttestationRecord] = None,
        hints: Optional[list[VerificationHint]] = None,
        skipped: bool = False,
        duration: float = 0.0,
    ) -> "AttestationResult":
        """Create a successful attestation result."""
        return cls(
            kind=kind,
            status="succeeded",
            skipped=skipped,
            record=record,
            hints=list(hints or []),
            duration=duration,
        )

    @classmethod
    def failure_result(cls, kind: str, error_detail: str, duration: float = 0.0) -> "AttestationResult":
        """Create a failed attestation result."""
        return cls(kind=kind, status="failed", error_detail=error_detail, duration=duration)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "status": self.status,
            "skipped": self.skipped,
            "error": self.error_detail,
            "record": self.record.to_dict() if self.record else None,
            "hints": [{"title": hint.title, "command": hint.command} for hint in self.hints],
            "duration_seconds": round(self.duration, 3),
        }


@dataclass
class RunOutcome:
    """
    Ordered job results of one run and their aggregated status.

    Aggregation:
        succeeded: every job succeeded (or no job ran)
        degraded: at least one job failed; the image is still published

    ``all_failed`` tells a run where nothing was attached apart from one that
    is merely incomplete.
    """

    results: list[AttestationResult] = field(default_factory=list)

    @property
    def status(self) -> RunStatus:
        if any(not result.succeeded for result in self.results):
            return "degraded"
        return "succeeded"

    @property
    def all_failed(self) -> bool:
        return bool(self.results) and not any(result.succeeded for result in self.results)

    @property
    def failed(self) -> list[AttestationResult]:
        return [result for result in self.results if not result.succeeded]

    @property
    def succeeded(self) -> list[AttestationResult]:
        return [result for result in self.results if result.succeeded]

    def get(self, kind: str) -> Optional[AttestationResult]:
        """Result for one kind, or None if that kind did not run."""
        for result in self.results:
            if result.kind == kind:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "all_failed": self.all_failed,
            "results": [result.to_dict() for result in self.results],
        }
