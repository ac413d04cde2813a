import os
import signal
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import click
import sentry_sdk

from .. import __version__
from .._attestation import (
    ATTESTATION_KINDS,
    DEFAULT_JOB_TIMEOUT,
    AttestationOrchestrator,
    CosignClient,
    create_default_registry,
)
from .._digest import DEFAULT_ATTEMPTS, DEFAULT_BACKOFF_BASE, DIGEST_SOURCES, DigestResolver, create_digest_source
from ..build import DEFAULT_BUILD_TIMEOUT, DockerBuildxExecutor
from ..console import (
    print_banner,
    print_final_degraded,
    print_final_failure,
    print_final_success,
    print_summary_table,
)
from ..exceptions import ConfigError, ContainerAttestError, PipelineCancelledError
from ..logging_config import logger, set_log_level
from ..pipeline import Pipeline, PipelineResult, write_github_outputs, write_report
from ..release import DEFAULT_LICENSES, DEFAULT_PLATFORMS, DEFAULT_REGISTRY, ReleaseSpec, normalize_commit_sha
from ..tool_checks import format_missing_tools_error, get_missing_tools, log_tool_status, required_tools

VERSION = __version__

# Exit codes
EXIT_OK = 0
EXIT_FATAL = 1
EXIT_DEGRADED = 2
EXIT_CANCELLED = 130


@dataclass
class Config:
    """Configuration settings for one publish-and-attest run."""

    name: str
    tag: str
    registry_org: str
    commit_sha: str
    latest: bool = False
    registry: str = DEFAULT_REGISTRY
    dockerfile_path: str = "Dockerfile"
    build_context: str = "."
    licenses: str = DEFAULT_LICENSES
    vendor: Optional[str] = None
    platforms: tuple[str, ...] = DEFAULT_PLATFORMS
    attestations: tuple[str, ...] = ATTESTATION_KINDS
    digest_source: str = "docker"
    digest_attempts: int = DEFAULT_ATTEMPTS
    digest_backoff: float = DEFAULT_BACKOFF_BASE
    job_timeout: float = DEFAULT_JOB_TIMEOUT
    build_timeout: float = DEFAULT_BUILD_TIMEOUT
    cosign_key: Optional[str] = None
    registry_username: Optional[str] = None
    registry_password: Optional[str] = field(default=None, repr=False)
    skip_build: bool = False
    skip_existing: bool = True
    fail_on_degraded: bool = False
    output_file: Optional[str] = None
    source_url: Optional[str] = None

    def validate(self) -> None:
        """
        Validate configuration settings.

        Raises:
            ConfigError: If configuration is invalid
        """
        if not self.name:
            raise ConfigError("Image name is not defined (NAME)")
        if not self.tag:
            raise ConfigError("Version tag is not defined (TAG)")
        if not self.registry_org:
            raise ConfigError("Registry organisation is not defined (REGISTRY_ORG or GITHUB_REPOSITORY_OWNER)")
        if not self.commit_sha:
            raise ConfigError("Commit SHA is not defined (COMMIT_SHA or GITHUB_SHA)")
        self.commit_sha = normalize_commit_sha(self.commit_sha)

        unknown = [kind for kind in self.attestations if kind not in ATTESTATION_KINDS]
        if unknown:
            raise ConfigError(
                f"Unknown attestation kind(s): {', '.join(unknown)}. Valid kinds: {', '.join(ATTESTATION_KINDS)}"
            )

        if self.digest_source not in DIGEST_SOURCES:
            raise ConfigError(
                f"Unknown digest source '{self.digest_source}'. Valid sources: {', '.join(DIGEST_SOURCES)}"
            )
        if self.digest_attempts < 1:
            raise ConfigError("DIGEST_ATTEMPTS must be at least 1")
        if self.digest_backoff < 0:
            raise ConfigError("DIGEST_BACKOFF must not be negative")
        if self.job_timeout <= 0:
            raise ConfigError("JOB_TIMEOUT must be positive")
        if self.build_timeout <= 0:
            raise ConfigError("BUILD_TIMEOUT must be positive")

        if not self.skip_build:
            if not Path(self.build_context).is_dir():
                raise ConfigError(f"Build context not found: {self.build_context}")
            # buildx resolves --file against the working directory, not the context
            if not Path(self.dockerfile_path).is_file():
                raise ConfigError(f"Dockerfile not found: {self.dockerfile_path}")

    def release_spec(self) -> ReleaseSpec:
        return ReleaseSpec(
            name=self.name,
            version_tag=self.tag,
            registry_org=self.registry_org,
            latest=self.latest,
            licenses=self.licenses,
            vendor=self.vendor,
            platforms=self.platforms,
            registry=self.registry,
        )


def evaluate_boolean(value: str) -> bool:
    """
    Evaluate string values as boolean.

    Args:
        value: String value to evaluate

    Returns:
        Boolean result
    """
    return value.lower() in ["true", "yes", "yeah", "1"]


def _parse_list(value: Optional[str]) -> tuple[str, ...]:
    """Split a comma- or whitespace-separated list, dropping empty entries."""
    if not value:
        return ()
    return tuple(item.strip() for item in value.replace("\n", ",").replace(" ", ",").split(",") if item.strip())


def _parse_attestation_kinds(value: Optional[str]) -> tuple[str, ...]:
    """
    Parse the ATTESTATIONS input.

    "all" (or an empty value) selects every kind, "none" selects no kind.
    """
    kinds = tuple(kind.lower() for kind in _parse_list(value))
    if not kinds or kinds == ("all",):
        return ATTESTATION_KINDS
    if kinds == ("none",):
        return ()
    # Keep the canonical order and drop duplicates
    return tuple(sorted(dict.fromkeys(kinds), key=_kind_rank))


def _kind_rank(kind: str) -> int:
    return ATTESTATION_KINDS.index(kind) if kind in ATTESTATION_KINDS else len(ATTESTATION_KINDS)


def _default_source_url() -> Optional[str]:
    repository = os.getenv("GITHUB_REPOSITORY")
    if not repository:
        return None
    server = os.getenv("GITHUB_SERVER_URL", "https://github.com").rstrip("/")
    return f"{server}/{repository}"


def build_config(
    name: Optional[str] = None,
    tag: Optional[str] = None,
    registry_org: Optional[str] = None,
    commit_sha: Optional[str] = None,
    latest: bool = False,
    registry: str = DEFAULT_REGISTRY,
    dockerfile_path: str = "Dockerfile",
    build_context: str = ".",
    licenses: str = DEFAULT_LICENSES,
    vendor: Optional[str] = None,
    platforms: Optional[str] = None,
    attestations: Optional[str] = None,
    digest_source: str = "docker",
    digest_attempts: int = DEFAULT_ATTEMPTS,
    digest_backoff: float = DEFAULT_BACKOFF_BASE,
    job_timeout: float = DEFAULT_JOB_TIMEOUT,
    build_timeout: float = DEFAULT_BUILD_TIMEOUT,
    cosign_key: Optional[str] = None,
    registry_username: Optional[str] = None,
    registry_password: Optional[str] = None,
    skip_build: bool = False,
    skip_existing: bool = True,
    fail_on_degraded: bool = False,
    output_file: Optional[str] = None,
    source_url: Optional[str] = None,
) -> Config:
    """
    Build a Config from CLI options (already merged with their env-var fallbacks).

    Raises:
        ConfigError: If the configuration is invalid
    """
    if not registry_org:
        owner = os.getenv("GITHUB_REPOSITORY_OWNER")
        # Registry namespaces are lowercase; GitHub owners may not be
        registry_org = owner.lower() if owner else None
    if not commit_sha:
        commit_sha = os.getenv("GITHUB_SHA")

    config = Config(
        name=name or "",
        tag=tag or "",
        registry_org=registry_org or "",
        commit_sha=commit_sha or "",
        latest=latest,
        registry=registry or DEFAULT_REGISTRY,
        dockerfile_path=dockerfile_path,
        build_context=build_context,
        licenses=licenses or DEFAULT_LICENSES,
        vendor=vendor or None,
        platforms=_parse_list(platforms) or DEFAULT_PLATFORMS,
        attestations=_parse_attestation_kinds(attestations),
        digest_source=(digest_source or "docker").lower(),
        digest_attempts=digest_attempts,
        digest_backoff=digest_backoff,
        job_timeout=job_timeout,
        build_timeout=build_timeout,
        cosign_key=cosign_key or None,
        registry_username=registry_username or None,
        registry_password=registry_password or None,
        skip_build=skip_build,
        skip_existing=skip_existing,
        fail_on_degraded=fail_on_degraded,
        output_file=output_file or None,
        source_url=source_url or _default_source_url(),
    )
    config.validate()
    return config


def setup_dependencies(config: Config) -> None:
    """
    Check that the external tools this run needs are installed.

    Raises:
        ConfigError: If a required tool is missing
    """
    tool_ids = required_tools(
        config.attestations,
        build=not config.skip_build,
        docker_digest=config.digest_source == "docker",
    )
    log_tool_status(tool_ids)
    missing = get_missing_tools(tool_ids)
    if missing:
        raise ConfigError(format_missing_tools_error(missing))


def _before_send(event, hint):
    """
    Filter events before sending to Sentry.
    Don't send configuration errors - these are expected user errors.
    """
    if "exc_info" in hint:
        exc_type, exc_value, tb = hint["exc_info"]
        # BuildError, RegistryError and job errors are still sent
        if isinstance(exc_value, ConfigError):
            return None
    return event


def initialize_sentry() -> None:
    """Initialize Sentry for error tracking (no-op transport without SENTRY_DSN)."""
    if not evaluate_boolean(os.getenv("TELEMETRY", "true")):
        logger.debug("Telemetry disabled")
        return

    sentry_sdk.init(
        dsn=os.getenv("SENTRY_DSN"),
        release=f"container-attest@{VERSION}",
        send_default_pii=False,
        traces_sample_rate=1.0,
        before_send=_before_send,
    )


def _raise_keyboard_interrupt(signum, frame):
    raise KeyboardInterrupt


def _install_sigterm_handler() -> None:
    """Treat SIGTERM (runner cancellation) like Ctrl-C."""
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)


def create_pipeline(config: Config) -> Pipeline:
    """Wire the pipeline components for a configuration."""
    cancel_event = threading.Event()
    executor = None
    if not config.skip_build:
        executor = DockerBuildxExecutor(timeout=config.build_timeout, cancel_event=cancel_event)
    source = create_digest_source(
        config.digest_source,
        username=config.registry_username,
        password=config.registry_password,
        cancel_event=cancel_event,
    )
    resolver = DigestResolver(source, attempts=config.digest_attempts, backoff_base=config.digest_backoff)
    registry = create_default_registry(
        attestor=CosignClient(key=config.cosign_key),
        skip_existing=config.skip_existing,
        key=config.cosign_key,
    )
    return Pipeline(
        executor=executor,
        resolver=resolver,
        orchestrator=AttestationOrchestrator(registry),
        cancel_event=cancel_event,
    )


def run_pipeline(config: Config) -> PipelineResult:
    """
    Run the publish-and-attest pipeline for a validated configuration.

    Raises:
        ContainerAttestError: On any fatal failure
    """
    print_summary_table(
        "Configuration",
        [
            ("Image", f"{config.registry}/{config.registry_org}/{config.name}"),
            ("Version tag", config.tag),
            ("Latest", "yes" if config.latest else "no"),
            ("Attestations", ", ".join(config.attestations) or "none"),
            ("Digest source", config.digest_source),
            ("Signing", "key" if config.cosign_key else "keyless"),
            ("Build", "skipped" if config.skip_build else "docker buildx"),
        ],
    )

    _install_sigterm_handler()
    pipeline = create_pipeline(config)
    result = pipeline.run(
        config.release_spec(),
        config.commit_sha,
        context_path=config.build_context,
        dockerfile_path=config.dockerfile_path,
        source_url=config.source_url,
        kinds=config.attestations,
        job_timeout=config.job_timeout,
    )

    write_github_outputs(result.outputs())
    if config.output_file:
        write_report(result, config.output_file)
    return result


def _exit_code_for(result: PipelineResult, fail_on_degraded: bool) -> int:
    if result.status == "succeeded":
        print_final_success()
        return EXIT_OK

    print_final_degraded([r.kind for r in result.outcome.failed])
    return EXIT_DEGRADED if fail_on_degraded else EXIT_OK


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=VERSION, prog_name="container-attest")
@click.option("--name", envvar="NAME", help="Image name, e.g. 'svc' (env: NAME).")
@click.option("--tag", envvar="TAG", help="Version tag to publish, usually the git ref name (env: TAG).")
@click.option(
    "--latest/--no-latest",
    envvar="LATEST",
    default=False,
    help="Also publish the 'latest' tag (env: LATEST).",
)
@click.option("--registry", envvar="REGISTRY", default=DEFAULT_REGISTRY, show_default=True, help="Registry host.")
@click.option(
    "--registry-org",
    envvar="REGISTRY_ORG",
    help="Registry organisation (env: REGISTRY_ORG, defaults to GITHUB_REPOSITORY_OWNER).",
)
@click.option("--dockerfile", "dockerfile_path", envvar="DOCKERFILE_PATH", default="Dockerfile", show_default=True)
@click.option("--context", "build_context", envvar="BUILD_CONTEXT", default=".", show_default=True)
@click.option("--licenses", envvar="LICENSES", default=DEFAULT_LICENSES, show_default=True, help="Image license label.")
@click.option("--vendor", envvar="VENDOR", help="Image vendor label (defaults to the registry organisation).")
@click.option(
    "--platforms",
    envvar="PLATFORMS",
    default=",".join(DEFAULT_PLATFORMS),
    show_default=True,
    help="Comma-separated target platforms.",
)
@click.option(
    "--commit-sha",
    envvar="COMMIT_SHA",
    help="Full source commit SHA (env: COMMIT_SHA, defaults to GITHUB_SHA).",
)
@click.option(
    "--attestations",
    envvar="ATTESTATIONS",
    default="all",
    show_default=True,
    help=f"Comma-separated attestation kinds ({', '.join(ATTESTATION_KINDS)}), 'all' or 'none'.",
)
@click.option(
    "--digest-source",
    envvar="DIGEST_SOURCE",
    type=click.Choice(DIGEST_SOURCES, case_sensitive=False),
    default="docker",
    show_default=True,
)
@click.option("--digest-attempts", envvar="DIGEST_ATTEMPTS", type=int, default=DEFAULT_ATTEMPTS, show_default=True)
@click.option(
    "--digest-backoff",
    envvar="DIGEST_BACKOFF",
    type=float,
    default=DEFAULT_BACKOFF_BASE,
    show_default=True,
    help="Base delay in seconds between digest lookups.",
)
@click.option("--job-timeout", envvar="JOB_TIMEOUT", type=float, default=DEFAULT_JOB_TIMEOUT, show_default=True)
@click.option("--build-timeout", envvar="BUILD_TIMEOUT", type=float, default=DEFAULT_BUILD_TIMEOUT, show_default=True)
@click.option("--cosign-key", envvar="COSIGN_KEY", help="cosign key reference; keyless signing when omitted.")
@click.option("--registry-username", envvar="REGISTRY_USERNAME", help="Registry user for the registry-api source.")
@click.option("--registry-password", envvar="REGISTRY_PASSWORD", help="Registry password or token.")
@click.option(
    "--skip-build/--build",
    envvar="SKIP_BUILD",
    default=False,
    help="Attest tags that were already pushed instead of building (env: SKIP_BUILD).",
)
@click.option(
    "--skip-existing/--no-skip-existing",
    envvar="SKIP_EXISTING",
    default=True,
    help="Skip attestations that are already attached (env: SKIP_EXISTING).",
)
@click.option(
    "--fail-on-degraded/--no-fail-on-degraded",
    envvar="FAIL_ON_DEGRADED",
    default=False,
    help="Exit with code 2 when any attestation fails (env: FAIL_ON_DEGRADED).",
)
@click.option("-o", "--output-file", envvar="OUTPUT_FILE", help="Write a JSON run report to this path.")
@click.option(
    "--telemetry/--no-telemetry",
    envvar="TELEMETRY",
    default=True,
    help="Send error reports to Sentry (env: TELEMETRY).",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option("-q", "--quiet", is_flag=True, help="Only log warnings and errors.")
def cli(
    name: Optional[str],
    tag: Optional[str],
    latest: bool,
    registry: str,
    registry_org: Optional[str],
    dockerfile_path: str,
    build_context: str,
    licenses: str,
    vendor: Optional[str],
    platforms: str,
    commit_sha: Optional[str],
    attestations: str,
    digest_source: str,
    digest_attempts: int,
    digest_backoff: float,
    job_timeout: float,
    build_timeout: float,
    cosign_key: Optional[str],
    registry_username: Optional[str],
    registry_password: Optional[str],
    skip_build: bool,
    skip_existing: bool,
    fail_on_degraded: bool,
    output_file: Optional[str],
    telemetry: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Build, push, sign and attest a container image by digest.

    Every attestation (signature, SPDX SBOM, SLSA provenance) is attached to
    the digest resolved right after the push, never to a tag.

    \b
    Examples:
      container-attest --name svc --tag v1.2.3 --registry-org acme --commit-sha $GITHUB_SHA
      container-attest --skip-build --attestations signature,sbom ...
    """
    if verbose and quiet:
        raise click.UsageError("Cannot use both --verbose and --quiet")
    if verbose:
        set_log_level("DEBUG")
    elif quiet:
        set_log_level("WARNING")

    print_banner(VERSION)

    if telemetry:
        initialize_sentry()

    try:
        config = build_config(
            name=name,
            tag=tag,
            registry_org=registry_org,
            commit_sha=commit_sha,
            latest=latest,
            registry=registry,
            dockerfile_path=dockerfile_path,
            build_context=build_context,
            licenses=licenses,
            vendor=vendor,
            platforms=platforms,
            attestations=attestations,
            digest_source=digest_source,
            digest_attempts=digest_attempts,
            digest_backoff=digest_backoff,
            job_timeout=job_timeout,
            build_timeout=build_timeout,
            cosign_key=cosign_key,
            registry_username=registry_username,
            registry_password=registry_password,
            skip_build=skip_build,
            skip_existing=skip_existing,
            fail_on_degraded=fail_on_degraded,
            output_file=output_file,
        )
        setup_dependencies(config)
        result = run_pipeline(config)
    except PipelineCancelledError as e:
        logger.warning(f"{e}")
        print_final_failure("Run cancelled")
        sys.exit(EXIT_CANCELLED)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        print_final_failure(str(e))
        sys.exit(EXIT_FATAL)
    except ContainerAttestError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sentry_sdk.capture_exception(e)
        print_final_failure(str(e))
        sys.exit(EXIT_FATAL)

    sys.exit(_exit_code_for(result, config.fail_on_degraded))


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
