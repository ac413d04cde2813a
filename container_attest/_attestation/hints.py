"""Verification hints: commands a consumer can run to check each attestation.

Hints are advisory output only; nothing in the pipeline executes them.
"""

from typing import Optional

from .protocol import SLSA_PROVENANCE_PREDICATE_TYPE, SPDX_PREDICATE_TYPE, VerificationHint

_DECODE_BUNDLE_BODY = ".[0].optional.Bundle.Payload.body |= @base64d | .[0].optional.Bundle.Payload.body | fromjson"
_DECODE_PAYLOAD = ".payload |= @base64d | .payload | fromjson"


def _cosign(subcommand: str, subject_ref: str, key: Optional[str]) -> str:
    if key:
        return f"cosign {subcommand} --key {key} {subject_ref}"
    return f"COSIGN_EXPERIMENTAL=1 cosign {subcommand} {subject_ref}"


def signature_hints(subject_ref: str, key: Optional[str] = None) -> list[VerificationHint]:
    verify = _cosign("verify", subject_ref, key)
    hints = [
        VerificationHint("Verify signature", f"{verify} | jq '.[0]'"),
        VerificationHint("Inspect signature bundle", f"{verify} | jq '{_DECODE_BUNDLE_BODY}'"),
    ]
    if not key:
        # Only keyless signatures carry a Fulcio certificate
        hints.append(
            VerificationHint(
                "Inspect certificate",
                f"{verify} | jq -r '{_DECODE_BUNDLE_BODY} | .spec.signature.publicKey.content |= @base64d"
                " | .spec.signature.publicKey.content' | openssl x509 -text",
            )
        )
    return hints


def sbom_hints(subject_ref: str, key: Optional[str] = None) -> list[VerificationHint]:
    verify = _cosign("verify-attestation", subject_ref, key)
    return [
        VerificationHint(
            "Verify SBOM attestation",
            f"{verify} | jq '{_DECODE_PAYLOAD} | select(.predicateType == \"{SPDX_PREDICATE_TYPE}\")"
            " | .predicate.Data | fromjson'",
        )
    ]


def provenance_hints(subject_ref: str, key: Optional[str] = None) -> list[VerificationHint]:
    verify = _cosign("verify-attestation", subject_ref, key)
    return [
        VerificationHint(
            "Verify provenance attestation",
            f"{verify} | jq '{_DECODE_PAYLOAD} | select(.predicateType == \"{SLSA_PROVENANCE_PREDICATE_TYPE}\")'",
        )
    ]


HINT_BUILDERS = {
    "signature": signature_hints,
    "sbom": sbom_hints,
    "provenance": provenance_hints,
}


def hints_for(kind: str, subject_ref: str, key: Optional[str] = None) -> list[VerificationHint]:
    """Verification hints for one attestation kind (empty for unknown kinds)."""
    builder = HINT_BUILDERS.get(kind)
    return builder(subject_ref, key) if builder else []
