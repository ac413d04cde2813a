"""Test Sentry error filtering for user vs system errors."""

import os
import unittest
from unittest.mock import patch

import sentry_sdk

from container_attest.cli.main import _before_send, initialize_sentry
from container_attest.exceptions import (
    BuildError,
    ConfigError,
    DigestNotFoundError,
    PredicateGenerationError,
)


def _hint(exc):
    return {"exc_info": (type(exc), exc, None)}


class TestSentryFiltering(unittest.TestCase):
    def test_configuration_errors_are_filtered(self):
        """Configuration errors are user input problems and are not tracked."""
        event = {"exception": {"values": [{"type": "ConfigError"}]}}
        self.assertIsNone(_before_send(event, _hint(ConfigError("Image name is not defined (NAME)"))))

    def test_system_errors_are_sent(self):
        for exc in (
            BuildError("docker buildx build failed"),
            DigestNotFoundError("ghcr.io/acme/svc:v1 not found"),
            PredicateGenerationError("syft failed"),
        ):
            event = {"exception": {"values": [{"type": type(exc).__name__}]}}
            self.assertIs(_before_send(event, _hint(exc)), event)

    def test_events_without_exception_are_sent(self):
        event = {"message": "hello"}
        self.assertIs(_before_send(event, {}), event)

    @patch.dict(os.environ, {"TELEMETRY": "true"})
    def test_initialize_registers_filter(self):
        with patch.object(sentry_sdk, "init") as mock_init:
            initialize_sentry()

        mock_init.assert_called_once()
        kwargs = mock_init.call_args.kwargs
        self.assertIs(kwargs["before_send"], _before_send)
        self.assertFalse(kwargs["send_default_pii"])
        self.assertTrue(kwargs["release"].startswith("container-attest@"))

    @patch.dict(os.environ, {"TELEMETRY": "true", "SENTRY_DSN": "https://public@sentry.example.com/1"})
    def test_dsn_comes_from_the_environment(self):
        with patch.object(sentry_sdk, "init") as mock_init:
            initialize_sentry()
        self.assertEqual(mock_init.call_args.kwargs["dsn"], "https://public@sentry.example.com/1")

    @patch.dict(os.environ, {"TELEMETRY": "false"})
    def test_telemetry_disabled(self):
        with patch.object(sentry_sdk, "init") as mock_init:
            initialize_sentry()
        mock_init.assert_not_called()


if __name__ == "__main__":
    unittest.main()
