"""Tool availability checks for the external tools the pipeline drives.

The build needs docker (with buildx), digest resolution needs docker unless
the registry API source is used, and each attestation kind needs cosign plus
its predicate generator. Missing tools are reported up front with install
instructions instead of failing halfway through a release.
"""

import shutil
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .logging_config import logger


@dataclass
class ToolInfo:
    """Information about an external tool."""

    name: str
    command: str
    description: str
    install_instructions: str
    homepage: str
    required_for: list[str] = field(default_factory=list)


EXTERNAL_TOOLS: dict[str, ToolInfo] = {
    "docker": ToolInfo(
        name="Docker",
        command="docker",
        description="Container engine with the buildx plugin",
        install_instructions=(
            "Install Docker Engine with buildx:\n"
            "  - Linux: https://docs.docker.com/engine/install/\n"
            "  - GitHub Actions: docker/setup-buildx-action (and docker/setup-qemu-action for multi-arch)"
        ),
        homepage="https://docs.docker.com",
        required_for=["build", "digest"],
    ),
    "cosign": ToolInfo(
        name="cosign",
        command="cosign",
        description="Container signing and attestation",
        install_instructions=(
            "Install via package manager:\n"
            "  - macOS: brew install cosign\n"
            "  - Linux: https://docs.sigstore.dev/cosign/system_config/installation/\n"
            "  - GitHub Actions: sigstore/cosign-installer"
        ),
        homepage="https://github.com/sigstore/cosign",
        required_for=["signature", "sbom", "provenance"],
    ),
    "syft": ToolInfo(
        name="Syft",
        command="syft",
        description="SBOM generator for container images",
        install_instructions=(
            "Install via package manager:\n"
            "  - macOS: brew install syft\n"
            "  - Linux: curl -sSfL https://raw.githubusercontent.com/anchore/syft/main/install.sh"
            " | sh -s -- -b /usr/local/bin\n"
            "  - GitHub Actions: anchore/sbom-action/download-syft"
        ),
        homepage="https://github.com/anchore/syft",
        required_for=["sbom"],
    ),
    "slsa-provenance": ToolInfo(
        name="slsa-provenance",
        command="slsa-provenance",
        description="SLSA provenance generator",
        install_instructions=(
            "Install a release binary:\n"
            "  - https://github.com/philips-labs/slsa-provenance-action/releases\n"
            "  - go install github.com/philips-labs/slsa-provenance-action/cmd/slsa-provenance@latest"
        ),
        homepage="https://github.com/philips-labs/slsa-provenance-action",
        required_for=["provenance"],
    ),
}


def check_tool_available(command: str) -> tuple[bool, Optional[str]]:
    """
    Check if a command-line tool is available on the system.

    Args:
        command: The command to check (e.g., "cosign", "syft")

    Returns:
        Tuple of (is_available, path_if_found)
    """
    path = shutil.which(command)
    return (path is not None, path)


def required_tools(kinds: Iterable[str], build: bool = True, docker_digest: bool = True) -> list[str]:
    """
    Tools needed for a run.

    Args:
        kinds: Attestation kinds that will run
        build: Whether the image is built by this run
        docker_digest: Whether digests are read through the docker CLI

    Returns:
        Tool IDs in a stable order
    """
    needed = []
    if build or docker_digest:
        needed.append("docker")
    for tool_id, info in EXTERNAL_TOOLS.items():
        if tool_id != "docker" and any(kind in info.required_for for kind in kinds):
            needed.append(tool_id)
    return needed


def get_missing_tools(tool_ids: Iterable[str]) -> list[str]:
    """
    Get the subset of tool IDs that are not installed.

    Returns:
        List of tool IDs that are not installed
    """
    missing = []
    for tool_id in tool_ids:
        info = EXTERNAL_TOOLS.get(tool_id)
        available, _ = check_tool_available(info.command if info else tool_id)
        if not available:
            missing.append(tool_id)
    return missing


def log_tool_status(tool_ids: Iterable[str], verbose: bool = False) -> None:
    """
    Log the status of the given external tools.

    Args:
        tool_ids: Tools to report on
        verbose: If True, show installation instructions for missing tools
    """
    tool_ids = list(tool_ids)
    missing = set(get_missing_tools(tool_ids))
    available = [tool_id for tool_id in tool_ids if tool_id not in missing]

    if available:
        logger.info(f"Available tools: {', '.join(available)}")

    if missing:
        logger.warning(f"Missing tools: {', '.join(sorted(missing))}")
        if verbose:
            for tool_id in sorted(missing):
                info = EXTERNAL_TOOLS.get(tool_id)
                if info:
                    logger.info(f"\n{info.name}:")
                    logger.info(f"  {info.install_instructions}")


def format_missing_tools_error(tool_ids: Iterable[str]) -> str:
    """
    Format an error message with installation instructions for missing tools.

    Args:
        tool_ids: Missing tool IDs

    Returns:
        Formatted error message
    """
    lines = ["Required tools are not installed:", ""]
    for tool_id in tool_ids:
        info = EXTERNAL_TOOLS.get(tool_id)
        if info is None:
            lines.append(f"  {tool_id}")
            continue
        lines.append(f"  {info.name} (needed for: {', '.join(info.required_for)}):")
        for install_line in info.install_instructions.split("\n"):
            lines.append(f"    {install_line}")
        lines.append("")
    return "\n".join(lines)
