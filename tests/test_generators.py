"""Tests for the syft SBOM and slsa-provenance predicate generators."""

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
    SlsaProvenanceGenerator,
    SyftSbomGenerator,
)
from container_attest._digest import ImageDigest
from container_attest.exceptions import (
    CommandCancelledError,
    CommandExecutionError,
    PipelineCancelledError,
    PredicateGenerationError,
    PredicateValidationError,
)

DIGEST = ImageDigest.parse("sha256:" + "a" * 64)
REPO = "ghcr.io/acme/svc"


class GeneratorTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.context = AttestationContext(
            repository=REPO,
            digest=DIGEST,
            tags=("v1.2.3", "latest"),
            workdir=Path(self.tmp.name),
            timeout=45,
        )

    def tearDown(self):
        self.tmp.cleanup()


@patch("container_attest._attestation.generators.syft.run_command")
class TestSyftSbomGenerator(GeneratorTestCase):
    """Tests for SyftSbomGenerator."""

    def _writes(self, content):
        def side_effect(cmd, *args, **kwargs):
            output_spec = cmd[cmd.index("-o") + 1]
            Path(output_spec.split("=", 1)[1]).write_text(content)
            return subprocess.CompletedProcess(cmd, 0, "", "")

        return side_effect

    def test_properties(self, mock_run):
        generator = SyftSbomGenerator()
        self.assertEqual(generator.name, "syft")
        self.assertEqual(generator.command, "syft")
        self.assertEqual(generator.predicate_type, SPDX_PREDICATE_TYPE)

    def test_scans_the_digest(self, mock_run):
        cmd = SyftSbomGenerator().build_command(self.context)
        self.assertEqual(cmd[:3], ["syft", "scan", f"{REPO}@{DIGEST}"])
        self.assertEqual(cmd[4], f"spdx-json@2.3={Path(self.tmp.name) / 'sbom.spdx.json'}")

    def test_spdx_version(self, mock_run):
        cmd = SyftSbomGenerator(spdx_version="2.2").build_command(self.context)
        self.assertTrue(cmd[4].startswith("spdx-json@2.2="))

    def test_unsupported_spdx_version(self, mock_run):
        with self.assertRaises(ValueError):
            SyftSbomGenerator(spdx_version="3.0")

    def test_generate(self, mock_run):
        mock_run.side_effect = self._writes('{"spdxVersion": "SPDX-2.3"}')

        payload = SyftSbomGenerator().generate(self.context)

        self.assertEqual(json.loads(payload), {"spdxVersion": "SPDX-2.3"})
        self.assertEqual(mock_run.call_args.kwargs["timeout"], 45)
        self.assertIs(mock_run.call_args.kwargs["cancel_event"], self.context.cancel_event)

    def test_tool_failure(self, mock_run):
        mock_run.side_effect = CommandExecutionError("syft command failed with return code 1", 1, "pull failed")
        with self.assertRaises(PredicateGenerationError):
            SyftSbomGenerator().generate(self.context)

    def test_cancelled(self, mock_run):
        mock_run.side_effect = CommandCancelledError("syft cancelled")
        with self.assertRaises(PipelineCancelledError):
            SyftSbomGenerator().generate(self.context)

    def test_missing_output(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, "", "")
        with self.assertRaises(PredicateGenerationError):
            SyftSbomGenerator().generate(self.context)

    def test_empty_output(self, mock_run):
        mock_run.side_effect = self._writes("  \n")
        with self.assertRaises(PredicateGenerationError):
            SyftSbomGenerator().generate(self.context)


@patch("container_attest._attestation.generators.slsa.run_command")
class TestSlsaProvenanceGenerator(GeneratorTestCase):
    """Tests for SlsaProvenanceGenerator."""

    PREDICATE = {
        "builder": {"id": "https://github.com/acme/svc/actions/runs/1"},
        "buildType": "https://github.com/Attestations/GitHubActionsWorkflow@v1",
    }

    def _writes(self, statement):
        def side_effect(cmd, *args, **kwargs):
            Path(cmd[cmd.index("--output-path") + 1]).write_text(
                statement if isinstance(statement, str) else json.dumps(statement)
            )
            return subprocess.CompletedProcess(cmd, 0, "", "")

        return side_effect

    def _statement(self, digest_hex=DIGEST.hex):
        return {
            "_type": "https://in-toto.io/Statement/v0.1",
            "subject": [{"name": REPO, "digest": {"sha256": digest_hex}}],
            "predicateType": SLSA_PROVENANCE_PREDICATE_TYPE,
            "predicate": self.PREDICATE,
        }

    def test_build_command(self, mock_run):
        cmd = SlsaProvenanceGenerator(env={}).build_command(self.context)

        self.assertEqual(cmd[:3], ["slsa-provenance", "generate", "container"])
        self.assertEqual(cmd[cmd.index("--repository") + 1], REPO)
        self.assertEqual(cmd[cmd.index("--digest") + 1], str(DIGEST))
        self.assertEqual(cmd[cmd.index("--tags") + 1], "v1.2.3,latest")
        self.assertNotIn("--github-context", cmd)

    def test_github_contexts_passed_through(self, mock_run):
        env = {"GITHUB_CONTEXT": '{"sha": "abc"}', "RUNNER_CONTEXT": '{"os": "Linux"}'}
        cmd = SlsaProvenanceGenerator(env=env).build_command(self.context)

        self.assertEqual(cmd[cmd.index("--github-context") + 1], '{"sha": "abc"}')
        self.assertEqual(cmd[cmd.index("--runner-context") + 1], '{"os": "Linux"}')

    def test_generate_returns_predicate(self, mock_run):
        mock_run.side_effect = self._writes(self._statement())

        payload = SlsaProvenanceGenerator(env={}).generate(self.context)

        self.assertEqual(json.loads(payload), self.PREDICATE)
        self.assertEqual(mock_run.call_args.kwargs["env"]["COSIGN_EXPERIMENTAL"], "0")

    def test_subject_for_another_digest(self, mock_run):
        mock_run.side_effect = self._writes(self._statement(digest_hex="b" * 64))

        with self.assertRaises(PredicateValidationError):
            SlsaProvenanceGenerator(env={}).generate(self.context)

    def test_statement_not_json(self, mock_run):
        mock_run.side_effect = self._writes("not json")

        with self.assertRaises(PredicateValidationError):
            SlsaProvenanceGenerator(env={}).generate(self.context)

    def test_tool_failure(self, mock_run):
        mock_run.side_effect = CommandExecutionError("slsa-provenance command failed with return code 1", 1, "")

        with self.assertRaises(PredicateGenerationError):
            SlsaProvenanceGenerator(env={}).generate(self.context)

    def test_missing_output(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, "", "")

        with self.assertRaises(PredicateGenerationError):
            SlsaProvenanceGenerator(env={}).generate(self.context)


if __name__ == "__main__":
    unittest.main()
