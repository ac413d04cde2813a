"""Tests for the docker CLI digest source."""

import subprocess
import unittest
from unittest.mock import patch

from container_attest._digest import DockerCliDigestSource, ImageDigest
from container_attest.exceptions import (
    CommandCancelledError,
    CommandExecutionError,
    DigestNotFoundError,
    PipelineCancelledError,
    RegistryError,
)

DIGEST_A = "sha256:" + "a" * 64
DIGEST_B = "sha256:" + "b" * 64
REPO = "ghcr.io/acme/svc"


def _completed(stdout=""):
    return subprocess.CompletedProcess([], 0, stdout, "")


@patch("container_attest._digest.sources.docker_cli.run_command")
class TestDockerCliDigestSource(unittest.TestCase):
    """Tests for docker pull + docker inspect resolution."""

    def test_lookup_prefers_matching_repository(self, mock_run):
        mock_run.side_effect = [
            _completed(),
            _completed(f'["docker.io/acme/svc@{DIGEST_B}", "{REPO}@{DIGEST_A}"]\n'),
        ]

        digest = DockerCliDigestSource().lookup(REPO, "v1")

        self.assertEqual(digest, ImageDigest.parse(DIGEST_A))
        pull_cmd = mock_run.call_args_list[0].args[0]
        inspect_cmd = mock_run.call_args_list[1].args[0]
        self.assertEqual(pull_cmd, ["docker", "pull", "--quiet", f"{REPO}:v1"])
        self.assertEqual(inspect_cmd[:3], ["docker", "inspect", f"{REPO}:v1"])

    def test_lookup_falls_back_to_first_entry(self, mock_run):
        mock_run.side_effect = [_completed(), _completed(f'["mirror.local/svc@{DIGEST_B}"]')]

        self.assertEqual(DockerCliDigestSource().lookup(REPO, "v1"), ImageDigest.parse(DIGEST_B))

    def test_pull_manifest_unknown(self, mock_run):
        mock_run.side_effect = CommandExecutionError(
            "docker pull command failed with return code 1",
            returncode=1,
            stderr="Error response from daemon: manifest unknown",
        )

        with self.assertRaises(DigestNotFoundError):
            DockerCliDigestSource().lookup(REPO, "v1")

    def test_pull_other_failure(self, mock_run):
        mock_run.side_effect = CommandExecutionError(
            "docker pull command failed with return code 1",
            returncode=1,
            stderr="denied: permission_denied",
        )

        with self.assertRaises(RegistryError) as ctx:
            DockerCliDigestSource().lookup(REPO, "v1")
        self.assertNotIsInstance(ctx.exception, DigestNotFoundError)

    def test_pull_cancelled(self, mock_run):
        mock_run.side_effect = CommandCancelledError("docker pull cancelled")

        with self.assertRaises(PipelineCancelledError):
            DockerCliDigestSource().lookup(REPO, "v1")

    def test_no_repo_digests(self, mock_run):
        mock_run.side_effect = [_completed(), _completed("null\n")]

        with self.assertRaises(RegistryError):
            DockerCliDigestSource().lookup(REPO, "v1")

    def test_unexpected_inspect_output(self, mock_run):
        mock_run.side_effect = [_completed(), _completed("not json")]

        with self.assertRaises(RegistryError):
            DockerCliDigestSource().lookup(REPO, "v1")


if __name__ == "__main__":
    unittest.main()
