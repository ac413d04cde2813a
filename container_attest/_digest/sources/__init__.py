"""Digest source implementations.

- DockerCliDigestSource: ``docker pull`` + ``docker inspect`` (default)
- RegistryApiDigestSource: HEAD request against the OCI distribution API
"""

from .docker_cli import DockerCliDigestSource
from .registry_api import RegistryApiDigestSource

__all__ = [
    "DockerCliDigestSource",
    "RegistryApiDigestSource",
]
