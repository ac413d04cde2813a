"""Custom exceptions for container-attest."""

from typing import Optional


class ContainerAttestError(Exception):
    """Base exception for all container-attest operations."""


class ConfigError(ContainerAttestError):
    """Raised when the release or pipeline configuration is invalid."""


class BuildError(ContainerAttestError):
    """Raised when building or pushing the image fails."""


class RegistryError(ContainerAttestError):
    """Raised when the registry cannot be read."""


class DigestNotFoundError(RegistryError):
    """Raised when the pushed tag is not (yet) visible in the registry.

    This is the only transient condition in the pipeline and the only one
    that is retried.
    """


class DigestInconsistencyError(RegistryError):
    """Raised when two tags of the same push resolve to different digests."""


class AttestationJobError(ContainerAttestError):
    """Base exception for failures local to one attestation job."""


class PredicateGenerationError(AttestationJobError):
    """Raised when a predicate generator fails."""


class PredicateValidationError(PredicateGenerationError):
    """Raised when a generated predicate does not have the expected shape."""


class AttachmentError(AttestationJobError):
    """Raised when signing or attaching an attestation fails."""


class CommandExecutionError(ContainerAttestError):
    """Raised when external command execution fails."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: Optional[str] = None) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr or ""


class CommandCancelledError(CommandExecutionError):
    """Raised when an external command is terminated because the run was cancelled."""


class PipelineCancelledError(ContainerAttestError):
    """Raised when the run is aborted by the user."""
