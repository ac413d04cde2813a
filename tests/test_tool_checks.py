"""Tests for tool_checks module."""

import unittest
from unittest.mock import patch

from container_attest.tool_checks import (
    EXTERNAL_TOOLS,
    ToolInfo,
    check_tool_available,
    format_missing_tools_error,
    get_missing_tools,
    log_tool_status,
    required_tools,
)


class TestToolInfo(unittest.TestCase):
    """Tests for ToolInfo dataclass."""

    def test_default_required_for(self):
        info = ToolInfo(
            name="Test",
            command="test",
            description="desc",
            install_instructions="install",
            homepage="https://example.com",
        )
        self.assertEqual(info.required_for, [])

    def test_known_tools(self):
        self.assertEqual(set(EXTERNAL_TOOLS), {"docker", "cosign", "syft", "slsa-provenance"})
        for tool_id, info in EXTERNAL_TOOLS.items():
            self.assertEqual(info.command, tool_id)
            self.assertTrue(info.install_instructions)


class TestCheckToolAvailable(unittest.TestCase):
    @patch("container_attest.tool_checks.shutil.which")
    def test_available(self, mock_which):
        mock_which.return_value = "/usr/local/bin/cosign"
        self.assertEqual(check_tool_available("cosign"), (True, "/usr/local/bin/cosign"))
        mock_which.assert_called_once_with("cosign")

    @patch("container_attest.tool_checks.shutil.which")
    def test_not_available(self, mock_which):
        mock_which.return_value = None
        self.assertEqual(check_tool_available("cosign"), (False, None))


class TestRequiredTools(unittest.TestCase):
    """Tests for required_tools."""

    def test_full_run(self):
        self.assertEqual(
            required_tools(["signature", "sbom", "provenance"]),
            ["docker", "cosign", "syft", "slsa-provenance"],
        )

    def test_signature_only(self):
        self.assertEqual(required_tools(["signature"]), ["docker", "cosign"])

    def test_sbom_only(self):
        self.assertEqual(required_tools(["sbom"]), ["docker", "cosign", "syft"])

    def test_no_docker_without_build_or_docker_digest(self):
        tools = required_tools(["provenance"], build=False, docker_digest=False)
        self.assertEqual(tools, ["cosign", "slsa-provenance"])

    def test_docker_for_digest_only(self):
        self.assertEqual(required_tools([], build=False, docker_digest=True), ["docker"])

    def test_nothing_needed(self):
        self.assertEqual(required_tools([], build=False, docker_digest=False), [])


class TestMissingTools(unittest.TestCase):
    @patch("container_attest.tool_checks.shutil.which")
    def test_get_missing_tools(self, mock_which):
        mock_which.side_effect = lambda command: None if command in ("syft", "slsa-provenance") else f"/bin/{command}"

        missing = get_missing_tools(["docker", "cosign", "syft", "slsa-provenance"])

        self.assertEqual(missing, ["syft", "slsa-provenance"])

    @patch("container_attest.tool_checks.shutil.which", return_value=None)
    def test_unknown_tool_id_is_looked_up_by_name(self, mock_which):
        self.assertEqual(get_missing_tools(["crane"]), ["crane"])
        mock_which.assert_called_once_with("crane")

    @patch("container_attest.tool_checks.shutil.which", return_value="/bin/tool")
    def test_nothing_missing(self, mock_which):
        self.assertEqual(get_missing_tools(["docker", "cosign"]), [])

    def test_format_error(self):
        message = format_missing_tools_error(["cosign", "crane"])

        self.assertTrue(message.startswith("Required tools are not installed:"))
        self.assertIn("cosign (needed for: signature, sbom, provenance):", message)
        self.assertIn("sigstore/cosign-installer", message)
        self.assertIn("  crane", message)


class TestLogToolStatus(unittest.TestCase):
    @patch("container_attest.tool_checks.logger")
    @patch("container_attest.tool_checks.shutil.which")
    def test_logs_available_and_missing(self, mock_which, mock_logger):
        mock_which.side_effect = lambda command: None if command == "syft" else f"/bin/{command}"

        log_tool_status(["docker", "syft"], verbose=True)

        mock_logger.info.assert_any_call("Available tools: docker")
        mock_logger.warning.assert_called_once_with("Missing tools: syft")
        mock_logger.info.assert_any_call("\nSyft:")

    @patch("container_attest.tool_checks.logger")
    @patch("container_attest.tool_checks.shutil.which", return_value="/bin/tool")
    def test_no_warning_when_all_present(self, mock_which, mock_logger):
        log_tool_status(["docker", "cosign"])
        mock_logger.warning.assert_not_called()


if __name__ == "__main__":
    unittest.main()
