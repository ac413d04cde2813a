"""Digest types and the DigestSource protocol.

ImageDigest is the only identifier shared between the digest resolver and the
attestation jobs. It is created once per run and never mutated.
"""

import re
from dataclasses import dataclass
from typing import Protocol

from container_attest.exceptions import RegistryError

# algorithm:hex, e.g. sha256:0123...
_DIGEST_PATTERN = re.compile(r"^(?P<algorithm>[a-z0-9]+(?:[.+_-][a-z0-9]+)*):(?P<hex>[a-fA-F0-9]{32,})$")

# Expected hex lengths for well-known algorithms
_HEX_LENGTHS = {"sha256": 64, "sha512": 128}


@dataclass(frozen=True)
class ImageDigest:
    """
    Content address of one immutable image manifest.

    Attributes:
        algorithm: Hash algorithm (e.g. "sha256")
        hex: Lowercase hex-encoded hash
    """

    algorithm: str
    hex: str

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hex}"

    @classmethod
    def parse(cls, value: str) -> "ImageDigest":
        """
        Parse a digest, accepting either ``algorithm:hex`` or a repo digest.

        Repo digests (``ghcr.io/org/name@sha256:...``) lose everything up to
        and including the ``@``.

        Raises:
            RegistryError: If the value is not a well-formed digest
        """
        candidate = (value or "").strip()
        if "@" in candidate:
            candidate = candidate.rsplit("@", 1)[1]

        match = _DIGEST_PATTERN.match(candidate)
        if not match:
            raise RegistryError(f"Malformed image digest: '{value}'")

        algorithm = match.group("algorithm")
        hex_value = match.group("hex").lower()
        expected = _HEX_LENGTHS.get(algorithm)
        if expected is not None and len(hex_value) != expected:
            raise RegistryError(f"Malformed {algorithm} digest: '{value}' (expected {expected} hex characters)")
        return cls(algorithm=algorithm, hex=hex_value)

    def reference(self, repository: str) -> str:
        """Digest-pinned image reference, e.g. ghcr.io/org/name@sha256:..."""
        return f"{repository}@{self}"


def split_repository(repository: str) -> tuple[str, str]:
    """
    Split ``host/path`` into (host, path).

    Raises:
        RegistryError: If the repository has no registry host component
    """
    if "/" not in repository:
        raise RegistryError(f"Repository '{repository}' has no registry host")
    host, path = repository.split("/", 1)
    return host, path


class DigestSource(Protocol):
    """
    Protocol for reading the digest an image tag currently points at.

    Example:
        class StaticSource:
            name = "static"

            def lookup(self, repository: str, tag: str) -> ImageDigest:
                return ImageDigest.parse("sha256:...")
    """

    @property
    def name(self) -> str:
        """Human-readable name used in logs (e.g. "docker", "registry-api")."""
        ...

    def lookup(self, repository: str, tag: str) -> ImageDigest:
        """
        Return the digest ``repository:tag`` points at.

        Raises:
            DigestNotFoundError: If the tag does not exist (yet)
            RegistryError: For any other registry failure
        """
        ...
