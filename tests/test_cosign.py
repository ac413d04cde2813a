"""Tests for the cosign attestor."""

import base64
import json
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from container_attest._attestation import (
    SLSA_PROVENANCE_PREDICATE_TYPE,
    SPDX_PREDICATE_TYPE,
    AttestationContext,
    CosignClient,
)
from container_attest._attestation.cosign import decode_envelope, parse_json_lines
from container_attest._digest import ImageDigest
from container_attest.exceptions import (
    AttachmentError,
    CommandCancelledError,
    CommandExecutionError,
    PipelineCancelledError,
)

DIGEST = ImageDigest.parse("sha256:" + "a" * 64)
REPO = "ghcr.io/acme/svc"
SUBJECT = f"{REPO}@{DIGEST}"


def _envelope(predicate_type, predicate):
    statement = {
        "_type": "https://in-toto.io/Statement/v0.1",
        "predicateType": predicate_type,
        "subject": [{"name": REPO, "digest": {"sha256": DIGEST.hex}}],
        "predicate": predicate,
    }
    payload = base64.b64encode(json.dumps(statement).encode()).decode()
    return {"payloadType": "application/vnd.in-toto+json", "payload": payload}


def _completed(stdout=""):
    return subprocess.CompletedProcess([], 0, stdout, "")


class CosignTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.context = AttestationContext(
            repository=REPO,
            digest=DIGEST,
            tags=("v1",),
            workdir=Path(self.tmp.name),
            timeout=30,
        )

    def tearDown(self):
        self.tmp.cleanup()


class TestCosignCommands(CosignTestCase):
    """Tests for the command lines cosign is invoked with."""

    def test_keyless_sign(self):
        cosign = CosignClient(env={})
        self.assertTrue(cosign.keyless)
        self.assertEqual(cosign.sign_command(self.context), ["cosign", "sign", "--yes", SUBJECT])

    def test_key_sign(self):
        cosign = CosignClient(key="cosign.key", env={})
        self.assertFalse(cosign.keyless)
        self.assertEqual(
            cosign.sign_command(self.context),
            ["cosign", "sign", "--yes", "--key", "cosign.key", SUBJECT],
        )

    def test_attest_command_uses_short_types(self):
        cosign = CosignClient(env={})
        path = Path("/tmp/sbom.json")

        sbom = cosign.attest_command(self.context, path, SPDX_PREDICATE_TYPE)
        provenance = cosign.attest_command(self.context, path, SLSA_PROVENANCE_PREDICATE_TYPE)

        self.assertEqual(
            sbom,
            ["cosign", "attest", "--yes", "--predicate", "/tmp/sbom.json", "--type", "spdx", SUBJECT],
        )
        self.assertEqual(provenance[provenance.index("--type") + 1], "slsaprovenance")

    def test_attest_command_passes_unknown_type_through(self):
        cmd = CosignClient(env={}).attest_command(self.context, Path("p.json"), "https://example.com/custom/v1")
        self.assertEqual(cmd[cmd.index("--type") + 1], "https://example.com/custom/v1")

    def test_every_command_targets_the_digest(self):
        cosign = CosignClient(key="k", env={})
        for cmd in (
            cosign.sign_command(self.context),
            cosign.attest_command(self.context, Path("p.json"), SPDX_PREDICATE_TYPE),
        ):
            self.assertEqual(cmd[-1], SUBJECT)


@patch("container_attest._attestation.cosign.run_command")
class TestCosignClient(CosignTestCase):
    """Tests for sign / attest / existing-record lookups."""

    def test_sign_keyless_sets_experimental(self, mock_run):
        mock_run.return_value = _completed()

        record = CosignClient(env={}).sign(self.context)

        self.assertEqual(record.kind, "signature")
        self.assertEqual(record.subject_ref, SUBJECT)
        self.assertEqual(mock_run.call_args.kwargs["env"]["COSIGN_EXPERIMENTAL"], "1")
        self.assertIs(mock_run.call_args.kwargs["cancel_event"], self.context.cancel_event)
        self.assertEqual(mock_run.call_args.kwargs["timeout"], 30)

    def test_sign_with_key_leaves_experimental_unset(self, mock_run):
        mock_run.return_value = _completed()
        CosignClient(key="cosign.key", env={}).sign(self.context)
        self.assertNotIn("COSIGN_EXPERIMENTAL", mock_run.call_args.kwargs["env"])

    def test_sign_failure(self, mock_run):
        mock_run.side_effect = CommandExecutionError("cosign sign command failed with return code 1", 1, "no identity")
        with self.assertRaises(AttachmentError):
            CosignClient(env={}).sign(self.context)

    def test_sign_cancelled(self, mock_run):
        mock_run.side_effect = CommandCancelledError("cosign sign cancelled")
        with self.assertRaises(PipelineCancelledError):
            CosignClient(env={}).sign(self.context)

    def test_attest(self, mock_run):
        mock_run.return_value = _completed()
        predicate = self.context.predicate_path("sbom")
        predicate.write_text("{}")

        record = CosignClient(env={}).attest(self.context, "sbom", predicate, SPDX_PREDICATE_TYPE)

        self.assertEqual(record.kind, "sbom")
        self.assertEqual(record.predicate_type, SPDX_PREDICATE_TYPE)
        self.assertEqual(record.subject_ref, SUBJECT)

    def test_attest_missing_predicate(self, mock_run):
        with self.assertRaises(AttachmentError):
            CosignClient(env={}).attest(
                self.context, "sbom", self.context.predicate_path("sbom"), SPDX_PREDICATE_TYPE
            )
        mock_run.assert_not_called()

    def test_has_signature(self, mock_run):
        mock_run.return_value = _completed('{"Base64Signature": "abc", "Payload": "def"}\n')
        self.assertTrue(CosignClient(env={}).has_signature(self.context))
        self.assertEqual(mock_run.call_args.args[0], ["cosign", "download", "signature", SUBJECT])

    def test_no_signature_attached(self, mock_run):
        mock_run.side_effect = CommandExecutionError(
            "cosign download signature command failed with return code 1",
            1,
            "Error: no signatures associated with ghcr.io/acme/svc",
        )
        self.assertFalse(CosignClient(env={}).has_signature(self.context))

    def test_download_failure(self, mock_run):
        mock_run.side_effect = CommandExecutionError(
            "cosign download signature command failed with return code 1", 1, "UNAUTHORIZED"
        )
        with self.assertRaises(AttachmentError):
            CosignClient(env={}).has_signature(self.context)

    def test_missing_attestation_manifest(self, mock_run):
        mock_run.side_effect = CommandExecutionError(
            "cosign download attestation command failed with return code 1",
            1,
            "Error: GET https://ghcr.io/v2/acme/svc/manifests/sha256-aaaa.att: MANIFEST_UNKNOWN: manifest unknown",
        )
        self.assertEqual(CosignClient(env={}).existing_predicates(self.context, SPDX_PREDICATE_TYPE), [])

    def test_unrelated_not_found_is_a_failure(self, mock_run):
        for stderr in ("Error: signing key not found", "Error: config file not found"):
            mock_run.side_effect = CommandExecutionError(
                "cosign download signature command failed with return code 1", 1, stderr
            )
            with self.subTest(stderr=stderr), self.assertRaises(AttachmentError):
                CosignClient(env={}).has_signature(self.context)

    def test_existing_predicates_filters_by_type(self, mock_run):
        lines = [
            json.dumps(_envelope(SPDX_PREDICATE_TYPE, {"Data": "{}", "Timestamp": "t"})),
            json.dumps(_envelope(SLSA_PROVENANCE_PREDICATE_TYPE, {"buildType": "x"})),
        ]
        mock_run.return_value = _completed("\n".join(lines) + "\n")

        predicates = CosignClient(env={}).existing_predicates(self.context, SLSA_PROVENANCE_PREDICATE_TYPE)

        self.assertEqual(predicates, [{"buildType": "x"}])
        self.assertEqual(mock_run.call_args.args[0], ["cosign", "download", "attestation", SUBJECT])


class TestParsing(unittest.TestCase):
    def test_parse_json_lines_skips_garbage(self):
        documents = parse_json_lines('{"a": 1}\n\nnot json\n[1]\n{"b": 2}\n')
        self.assertEqual(documents, [{"a": 1}, {"b": 2}])

    def test_decode_envelope(self):
        statement = decode_envelope(_envelope(SPDX_PREDICATE_TYPE, {"x": 1}))
        self.assertEqual(statement["predicateType"], SPDX_PREDICATE_TYPE)
        self.assertEqual(statement["predicate"], {"x": 1})

    def test_decode_envelope_without_payload(self):
        self.assertIsNone(decode_envelope({}))

    def test_decode_envelope_with_bad_payload(self):
        self.assertIsNone(decode_envelope({"payload": "!!!not-base64!!!"}))


if __name__ == "__main__":
    unittest.main()
