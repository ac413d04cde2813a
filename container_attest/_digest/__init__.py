"""Digest resolution for pushed images.

Turns a mutable tag into the immutable ImageDigest every attestation job is
attached to. Sources are pluggable; the resolver adds bounded retry for tags
that are not visible yet and a cross-tag consistency check.

Usage:
    from container_attest._digest import DigestResolver, create_digest_source

    resolver = DigestResolver(create_digest_source("docker"))
    digest = resolver.resolve("ghcr.io/acme/svc", ["v1.2.3", "sha-0123..."])
"""

import threading
from typing import Optional

from container_attest.exceptions import ConfigError

from .protocol import DigestSource, ImageDigest, split_repository
from .resolver import DEFAULT_ATTEMPTS, DEFAULT_BACKOFF_BASE, DigestResolver
from .sources import DockerCliDigestSource, RegistryApiDigestSource

DIGEST_SOURCES = ("docker", "registry-api")


def create_digest_source(
    name: str = "docker",
    username: Optional[str] = None,
    password: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
) -> DigestSource:
    """
    Create a digest source by name.

    Args:
        name: "docker" or "registry-api"
        username: Registry username (registry-api only)
        password: Registry password or token (registry-api only)
        cancel_event: Event that aborts docker subprocesses when set

    Raises:
        ConfigError: If the name is unknown
    """
    if name == "docker":
        return DockerCliDigestSource(cancel_event=cancel_event)
    if name == "registry-api":
        return RegistryApiDigestSource(username=username, password=password)
    raise ConfigError(f"Unknown digest source '{name}'. Valid sources: {', '.join(DIGEST_SOURCES)}")


__all__ = [
    "DIGEST_SOURCES",
    "DEFAULT_ATTEMPTS",
    "DEFAULT_BACKOFF_BASE",
    "DigestResolver",
    "DigestSource",
    "DockerCliDigestSource",
    "ImageDigest",
    "RegistryApiDigestSource",
    "create_digest_source",
    "split_repository",
]
