"""Syft SBOM generator for pushed images.

Scans the digest-pinned image reference straight from the registry and
emits an SPDX JSON document, the predicate of the SBOM attestation.

Verified capabilities (Syft 1.x):
- SPDX versions: 2.2, 2.3 (default: 2.3)
- Version selection: -o format@version=file
"""

from pathlib import Path

from container_attest.exceptions import (
    CommandCancelledError,
    CommandExecutionError,
    PipelineCancelledError,
    PredicateGenerationError,
)
from container_attest.logging_config import logger
from container_attest.utils import run_command

from ..protocol import SPDX_PREDICATE_TYPE, AttestationContext

SYFT_SPDX_VERSIONS = ("2.2", "2.3")
SYFT_SPDX_DEFAULT = "2.3"


class SyftSbomGenerator:
    """
    SPDX SBOM generator backed by ``syft scan``.

    The image is addressed by digest, never by tag, so the SBOM always
    describes the exact manifest it is attached to.
    """

    def __init__(self, spdx_version: str = SYFT_SPDX_DEFAULT) -> None:
        if spdx_version not in SYFT_SPDX_VERSIONS:
            raise ValueError(f"Unsupported SPDX version {spdx_version}; syft supports {', '.join(SYFT_SPDX_VERSIONS)}")
        self._spdx_version = spdx_version

    @property
    def name(self) -> str:
        return "syft"

    @property
    def command(self) -> str:
        return "syft"

    @property
    def predicate_type(self) -> str:
        return SPDX_PREDICATE_TYPE

    def output_path(self, context: AttestationContext) -> Path:
        return context.workdir / "sbom.spdx.json"

    def build_command(self, context: AttestationContext) -> list[str]:
        output_spec = f"spdx-json@{self._spdx_version}={self.output_path(context)}"
        return ["syft", "scan", context.subject_ref, "-o", output_spec]

    def generate(self, context: AttestationContext) -> bytes:
        """Generate an SPDX SBOM using the syft scan command."""
        output_file = self.output_path(context)
        logger.info(f"Running syft scan for {context.subject_ref} (spdx {self._spdx_version})")

        try:
            run_command(
                self.build_command(context),
                "syft",
                timeout=context.timeout,
                cancel_event=context.cancel_event,
            )
        except CommandCancelledError as e:
            raise PipelineCancelledError(str(e)) from e
        except CommandExecutionError as e:
            raise PredicateGenerationError(f"syft failed: {e}") from e

        # Verify output file was created
        if not output_file.exists():
            raise PredicateGenerationError("Syft completed but output file not created")

        payload = output_file.read_bytes()
        if not payload.strip():
            raise PredicateGenerationError("Syft produced an empty SBOM")
        return payload
