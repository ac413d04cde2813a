"""Pytest configuration and shared fixtures for all tests."""

import pytest

# Environment variables read by the CLI or the pipeline
_PIPELINE_ENV_VARS = (
    "NAME",
    "TAG",
    "LATEST",
    "REGISTRY",
    "REGISTRY_ORG",
    "DOCKERFILE_PATH",
    "BUILD_CONTEXT",
    "LICENSES",
    "VENDOR",
    "PLATFORMS",
    "COMMIT_SHA",
    "ATTESTATIONS",
    "DIGEST_SOURCE",
    "DIGEST_ATTEMPTS",
    "DIGEST_BACKOFF",
    "JOB_TIMEOUT",
    "BUILD_TIMEOUT",
    "COSIGN_KEY",
    "COSIGN_EXPERIMENTAL",
    "REGISTRY_USERNAME",
    "REGISTRY_PASSWORD",
    "SKIP_BUILD",
    "SKIP_EXISTING",
    "FAIL_ON_DEGRADED",
    "OUTPUT_FILE",
    "GITHUB_OUTPUT",
    "GITHUB_SHA",
    "GITHUB_REPOSITORY",
    "GITHUB_REPOSITORY_OWNER",
    "GITHUB_CONTEXT",
    "RUNNER_CONTEXT",
)


@pytest.fixture(autouse=True)
def disable_sentry_for_tests(monkeypatch):
    """Disable Sentry telemetry for all tests.

    This fixture runs automatically for every test to prevent Sentry events
    from being sent during test runs. Tests that specifically need to test
    Sentry functionality (like test_sentry_filtering.py) set TELEMETRY=true
    themselves.
    """
    monkeypatch.setenv("TELEMETRY", "false")


@pytest.fixture(autouse=True)
def isolate_pipeline_environment(monkeypatch):
    """Keep the environment of the machine running the tests out of CLI defaults."""
    for name in _PIPELINE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
