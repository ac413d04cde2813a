"""Tests for verification hints."""

import unittest

from container_attest._attestation.hints import hints_for, provenance_hints, sbom_hints, signature_hints

SUBJECT = "ghcr.io/acme/svc@sha256:" + "a" * 64


class TestVerificationHints(unittest.TestCase):
    def test_keyless_signature(self):
        hints = signature_hints(SUBJECT)

        self.assertEqual([hint.title for hint in hints][-1], "Inspect certificate")
        for hint in hints:
            self.assertTrue(hint.command.startswith(f"COSIGN_EXPERIMENTAL=1 cosign verify {SUBJECT}"))

    def test_key_signature_has_no_certificate(self):
        hints = signature_hints(SUBJECT, key="cosign.pub")

        self.assertNotIn("Inspect certificate", [hint.title for hint in hints])
        self.assertTrue(hints[0].command.startswith(f"cosign verify --key cosign.pub {SUBJECT}"))

    def test_sbom(self):
        (hint,) = sbom_hints(SUBJECT)
        self.assertIn("cosign verify-attestation", hint.command)
        self.assertIn("https://spdx.dev/Document", hint.command)

    def test_provenance(self):
        (hint,) = provenance_hints(SUBJECT)
        self.assertIn("https://slsa.dev/provenance/v0.2", hint.command)

    def test_every_hint_targets_the_digest(self):
        for kind in ("signature", "sbom", "provenance"):
            for hint in hints_for(kind, SUBJECT):
                self.assertIn(SUBJECT, hint.command)

    def test_unknown_kind(self):
        self.assertEqual(hints_for("vex", SUBJECT), [])


if __name__ == "__main__":
    unittest.main()
