"""Attestor implementation backed by the cosign CLI.

Signing is keyless by default (Fulcio/Rekor via the ambient OIDC identity of
the CI job); a key reference switches to key-based signing. Existing records
are listed with ``cosign download``, which prints one JSON document per line.
"""

import base64
import json
import os
from pathlib import Path
from typing import Any, Optional

from container_attest.exceptions import (
    AttachmentError,
    CommandCancelledError,
    CommandExecutionError,
    PipelineCancelledError,
)
from container_attest.logging_config import logger
from container_attest.utils import run_command

from .protocol import COSIGN_PREDICATE_TYPES, AttestationContext, AttestationRecord

# stderr fragments meaning "nothing attached yet" rather than a failure.
# A missing signature or attestation manifest comes back as MANIFEST_UNKNOWN.
NOTHING_ATTACHED_MARKERS = (
    "no signatures associated",
    "no attestations associated",
    "found no attestations",
    "manifest unknown",
    "manifest_unknown",
)


class CosignClient:
    """
    Sign, attest and list records with cosign.

    Example:
        cosign = CosignClient()
        cosign.sign(context)
        cosign.attest(context, "sbom", Path("sbom.json"), SPDX_PREDICATE_TYPE)
    """

    command = "cosign"

    def __init__(self, key: Optional[str] = None, env: Optional[dict[str, str]] = None) -> None:
        """
        Args:
            key: Optional signing key reference (file path, KMS URI, ...); keyless when unset
            env: Environment for cosign (defaults to the current environment)
        """
        self._key = key
        self._env = dict(env if env is not None else os.environ)
        if not key:
            self._env.setdefault("COSIGN_EXPERIMENTAL", "1")

    @property
    def keyless(self) -> bool:
        return not self._key

    def sign_command(self, context: AttestationContext) -> list[str]:
        cmd = ["cosign", "sign", "--yes"]
        if self._key:
            cmd += ["--key", self._key]
        cmd.append(context.subject_ref)
        return cmd

    def attest_command(self, context: AttestationContext, predicate_path: Path, predicate_type: str) -> list[str]:
        cmd = ["cosign", "attest", "--yes", "--predicate", str(predicate_path), "--type", _cosign_type(predicate_type)]
        if self._key:
            cmd += ["--key", self._key]
        cmd.append(context.subject_ref)
        return cmd

    def sign(self, context: AttestationContext) -> AttestationRecord:
        self._run(self.sign_command(context), "cosign sign", context)
        logger.info(f"Signed {context.subject_ref}")
        return AttestationRecord(kind="signature", subject_ref=context.subject_ref)

    def attest(
        self, context: AttestationContext, kind: str, predicate_path: Path, predicate_type: str
    ) -> AttestationRecord:
        if not predicate_path.exists():
            raise AttachmentError(f"Predicate file not found: {predicate_path}")
        self._run(self.attest_command(context, predicate_path, predicate_type), "cosign attest", context)
        logger.info(f"Attached {predicate_type} attestation to {context.subject_ref}")
        return AttestationRecord(kind=kind, subject_ref=context.subject_ref, predicate_type=predicate_type)

    def has_signature(self, context: AttestationContext) -> bool:
        return bool(self._download("signature", context))

    def existing_predicates(self, context: AttestationContext, predicate_type: str) -> list[dict[str, Any]]:
        predicates = []
        for envelope in self._download("attestation", context):
            statement = decode_envelope(envelope)
            if statement is None or statement.get("predicateType") != predicate_type:
                continue
            predicate = statement.get("predicate")
            if isinstance(predicate, dict):
                predicates.append(predicate)
        return predicates

    def _download(self, what: str, context: AttestationContext) -> list[dict[str, Any]]:
        try:
            result = run_command(
                ["cosign", "download", what, context.subject_ref],
                f"cosign download {what}",
                timeout=context.timeout,
                env=self._env,
                cancel_event=context.cancel_event,
            )
        except CommandCancelledError as e:
            raise PipelineCancelledError(str(e)) from e
        except CommandExecutionError as e:
            stderr = e.stderr.lower()
            if any(marker in stderr for marker in NOTHING_ATTACHED_MARKERS):
                return []
            raise AttachmentError(f"cosign download {what} failed: {e}") from e
        return parse_json_lines(result.stdout)

    def _run(self, cmd: list[str], command_name: str, context: AttestationContext) -> None:
        try:
            run_command(cmd, command_name, timeout=context.timeout, env=self._env, cancel_event=context.cancel_event)
        except CommandCancelledError as e:
            raise PipelineCancelledError(str(e)) from e
        except CommandExecutionError as e:
            raise AttachmentError(f"{command_name} failed: {e}") from e


def _cosign_type(predicate_type: str) -> str:
    # cosign accepts unknown predicate types as full URIs
    return COSIGN_PREDICATE_TYPES.get(predicate_type, predicate_type)


def parse_json_lines(output: str) -> list[dict[str, Any]]:
    """Parse cosign's one-JSON-document-per-line output, skipping unparsable lines."""
    documents = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            document = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unparsable cosign output line: {e}")
            continue
        if isinstance(document, dict):
            documents.append(document)
    return documents


def decode_envelope(envelope: dict[str, Any]) -> Optional[dict[str, Any]]:
    """
    Decode the in-toto statement inside a DSSE envelope.

    Returns:
        The statement dict, or None if the envelope carries no readable payload
    """
    payload = envelope.get("payload")
    if not payload:
        return None
    try:
        statement = json.loads(base64.b64decode(payload))
    except (ValueError, TypeError) as e:
        logger.warning(f"Ignoring undecodable attestation envelope: {e}")
        return None
    return statement if isinstance(statement, dict) else None
