"""Predicate generator plugin implementations.

- SyftSbomGenerator: SPDX SBOM of the pushed image (syft)
- SlsaProvenanceGenerator: SLSA v0.2 build provenance (slsa-provenance)
"""

from .slsa import SlsaProvenanceGenerator
from .syft import SyftSbomGenerator

__all__ = [
    "SlsaProvenanceGenerator",
    "SyftSbomGenerator",
]
