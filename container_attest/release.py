"""Release tags and OCI labels.

Computes the canonical tag set and the descriptive OCI labels for a release.
Everything here is pure: the same ReleaseSpec and commit always produce the
same TagSet and LabelSet.

Tag layout:
    [version_tag, "sha-<long commit sha>", "latest" (only when requested)]

Usage:
    from container_attest.release import ReleaseSpec, resolve

    spec = ReleaseSpec(name="svc", version_tag="v1.2.3", registry_org="acme", latest=True)
    tags, labels = resolve(spec, commit_sha="0123abcd...")
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from container_attest.exceptions import ConfigError

DEFAULT_REGISTRY = "ghcr.io"
DEFAULT_LICENSES = "Apache-2.0"
DEFAULT_PLATFORMS = ("linux/amd64",)

LATEST_TAG = "latest"
COMMIT_TAG_PREFIX = "sha-"

# OCI image annotation keys
LABEL_SOURCE = "org.opencontainers.image.source"
LABEL_TITLE = "org.opencontainers.image.title"
LABEL_VERSION = "org.opencontainers.image.version"
LABEL_LICENSES = "org.opencontainers.image.licenses"
LABEL_VENDOR = "org.opencontainers.image.vendor"
LABEL_REVISION = "org.opencontainers.image.revision"

# Docker tag grammar
_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
# One repository path component (distribution spec, lowercase only)
_PATH_COMPONENT_PATTERN = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_REGISTRY_PATTERN = re.compile(r"^[A-Za-z0-9.-]+(?::[0-9]+)?$")
_COMMIT_PATTERN = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")


@dataclass(frozen=True)
class ReleaseSpec:
    """
    Immutable description of one release.

    Attributes:
        name: Short image name, also used as the image title
        version_tag: Version tag to publish (usually the git ref name)
        registry_org: Registry organisation (namespace) to push to
        latest: Whether the "latest" tag should be published as well
        licenses: SPDX license expression for the image label
        vendor: Vendor label (defaults to registry_org)
        platforms: Target platforms for the build
        registry: Registry host
    """

    name: str
    version_tag: str
    registry_org: str
    latest: bool = False
    licenses: str = DEFAULT_LICENSES
    vendor: Optional[str] = None
    platforms: tuple[str, ...] = DEFAULT_PLATFORMS
    registry: str = DEFAULT_REGISTRY

    @property
    def repository(self) -> str:
        """Full repository coordinate, e.g. ghcr.io/acme/svc."""
        return f"{self.registry}/{self.registry_org}/{self.name}"

    @property
    def effective_vendor(self) -> str:
        return self.vendor or self.registry_org


@dataclass(frozen=True)
class TagSet:
    """Ordered sequence of distinct tags for one release."""

    tags: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.tags:
            raise ValueError("TagSet must contain at least one tag")
        if len(set(self.tags)) != len(self.tags):
            raise ValueError(f"TagSet contains duplicate tags: {list(self.tags)}")

    def __iter__(self) -> Iterator[str]:
        return iter(self.tags)

    def __len__(self) -> int:
        return len(self.tags)

    def __contains__(self, tag: object) -> bool:
        return tag in self.tags

    @property
    def first(self) -> str:
        return self.tags[0]

    def joined(self, separator: str = ",") -> str:
        """Comma-joined tags, as published in the run outputs."""
        return separator.join(self.tags)

    def references(self, repository: str) -> list[str]:
        """Full image references (repository:tag) for every tag."""
        return [f"{repository}:{tag}" for tag in self.tags]


@dataclass(frozen=True)
class LabelSet:
    """Descriptive OCI labels. Never used for addressing."""

    labels: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze a private copy so callers cannot mutate it later
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))

    def __getitem__(self, key: str) -> str:
        return self.labels[key]

    def __contains__(self, key: object) -> bool:
        return key in self.labels

    def __len__(self) -> int:
        return len(self.labels)

    def as_dict(self) -> dict[str, str]:
        return dict(self.labels)

    def as_build_args(self) -> list[str]:
        """Labels in key=value form, as accepted by ``docker buildx build --label``."""
        return [f"{key}={value}" for key, value in self.labels.items()]


def validate_release_spec(spec: ReleaseSpec) -> None:
    """
    Validate a ReleaseSpec.

    Raises:
        ConfigError: If any field cannot be used to address a registry repository
    """
    if not spec.version_tag:
        raise ConfigError("version_tag must not be empty")
    if not _TAG_PATTERN.match(spec.version_tag):
        raise ConfigError(f"Invalid version tag '{spec.version_tag}': not a valid image tag")
    if not spec.name or not _is_repository_path(spec.name):
        raise ConfigError(f"Invalid image name '{spec.name}': must be a lowercase registry repository path")
    if not spec.registry_org or not _is_repository_path(spec.registry_org):
        raise ConfigError(
            f"Invalid registry organisation '{spec.registry_org}': must be a lowercase registry repository path"
        )
    if not spec.registry or not _REGISTRY_PATTERN.match(spec.registry):
        raise ConfigError(f"Invalid registry host '{spec.registry}'")
    if not spec.platforms:
        raise ConfigError("At least one build platform is required")


def _is_repository_path(value: str) -> bool:
    return all(_PATH_COMPONENT_PATTERN.match(component) for component in value.split("/"))


def normalize_commit_sha(commit_sha: str) -> str:
    """
    Return the long, lowercase form of a commit SHA.

    Raises:
        ConfigError: If the value is not a full 40 (SHA-1) or 64 (SHA-256) hex digest
    """
    normalized = (commit_sha or "").strip().lower()
    if not _COMMIT_PATTERN.match(normalized):
        raise ConfigError(f"Invalid commit SHA '{commit_sha}': expected the full 40 or 64 character hex digest")
    return normalized


def resolve_tags(spec: ReleaseSpec, commit_sha: str) -> TagSet:
    """Compute the ordered, de-duplicated TagSet for a release."""
    candidates = [spec.version_tag, f"{COMMIT_TAG_PREFIX}{normalize_commit_sha(commit_sha)}"]
    if spec.latest:
        candidates.append(LATEST_TAG)

    # dict preserves first-seen order
    return TagSet(tuple(dict.fromkeys(candidates)))


def resolve_labels(spec: ReleaseSpec, commit_sha: str, source_url: Optional[str] = None) -> LabelSet:
    """Compute the OCI labels for a release."""
    labels: dict[str, str] = {}
    if source_url:
        labels[LABEL_SOURCE] = source_url
    labels[LABEL_TITLE] = spec.name
    labels[LABEL_VERSION] = spec.version_tag
    labels[LABEL_LICENSES] = spec.licenses
    labels[LABEL_VENDOR] = spec.effective_vendor
    labels[LABEL_REVISION] = normalize_commit_sha(commit_sha)
    return LabelSet(labels)


def resolve(spec: ReleaseSpec, commit_sha: str, source_url: Optional[str] = None) -> tuple[TagSet, LabelSet]:
    """
    Compute the full tag set and label set for a release.

    Args:
        spec: The release description
        commit_sha: Full source commit SHA the image is built from
        source_url: Optional source repository URL for the source label

    Returns:
        Tuple of (TagSet, LabelSet)

    Raises:
        ConfigError: If the release or commit SHA is invalid
    """
    validate_release_spec(spec)
    return resolve_tags(spec, commit_sha), resolve_labels(spec, commit_sha, source_url)
