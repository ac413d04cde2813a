"""Publish-and-attest pipeline.

Wires the stages strictly one way:

    resolve tags/labels -> build & push -> resolve digest -> attest

Any failure before the digest is known aborts the run; attestation failures
only degrade it. Attestations are attached to the digest resolved in this
run and to nothing else.
"""

import json
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ._attestation import DEFAULT_JOB_TIMEOUT, AttestationContext, AttestationOrchestrator, RunOutcome
from ._digest import DigestResolver, ImageDigest
from .build import BuildPushExecutor, BuildPushInput
from .console import (
    console,
    print_attestation_summary,
    print_step_end,
    print_step_header,
    print_summary_table,
    print_verification_hints,
)
from .exceptions import PipelineCancelledError
from .logging_config import logger
from .release import LabelSet, ReleaseSpec, TagSet, resolve

OUTPUT_IMAGE_DIGEST = "image-digest"
OUTPUT_IMAGE_TAGS = "image-tags"
OUTPUT_ATTESTATION_STATUS = "attestation-status"


@dataclass
class PipelineResult:
    """Everything a run publishes."""

    repository: str
    digest: ImageDigest
    tags: TagSet
    labels: LabelSet
    outcome: RunOutcome

    @property
    def status(self) -> str:
        return self.outcome.status

    def outputs(self) -> dict[str, str]:
        """Run outputs, keyed by their published names."""
        return {
            OUTPUT_IMAGE_DIGEST: str(self.digest),
            OUTPUT_IMAGE_TAGS: self.tags.joined(),
            OUTPUT_ATTESTATION_STATUS: self.status,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository,
            "digest": str(self.digest),
            "reference": self.digest.reference(self.repository),
            "tags": list(self.tags),
            "labels": self.labels.as_dict(),
            "attestation": self.outcome.to_dict(),
        }


class Pipeline:
    """
    Runs one release end to end.

    Example:
        pipeline = Pipeline(
            executor=DockerBuildxExecutor(),
            resolver=DigestResolver(DockerCliDigestSource()),
            orchestrator=AttestationOrchestrator(),
        )
        result = pipeline.run(spec, commit_sha, context_path=".", dockerfile_path="Dockerfile")
    """

    def __init__(
        self,
        executor: Optional[BuildPushExecutor],
        resolver: DigestResolver,
        orchestrator: AttestationOrchestrator,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Args:
            executor: Build-push executor; None when the image was pushed elsewhere
            resolver: Digest resolver
            orchestrator: Attestation orchestrator
            cancel_event: Shared event that stops in-flight subprocesses when set
        """
        self._executor = executor
        self._resolver = resolver
        self._orchestrator = orchestrator
        self._cancel_event = cancel_event or threading.Event()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    def run(
        self,
        spec: ReleaseSpec,
        commit_sha: str,
        context_path: str = ".",
        dockerfile_path: str = "Dockerfile",
        source_url: Optional[str] = None,
        kinds: Optional[Iterable[str]] = None,
        job_timeout: float = DEFAULT_JOB_TIMEOUT,
        workdir: Optional[Path] = None,
    ) -> PipelineResult:
        """
        Publish and attest one release.

        Raises:
            ConfigError: If the release description is invalid
            BuildError: If the build or push fails
            RegistryError: If the digest cannot be resolved or is inconsistent
            PipelineCancelledError: If the run is interrupted
        """
        args = (spec, commit_sha, context_path, dockerfile_path, source_url, kinds, job_timeout)
        try:
            if workdir is not None:
                workdir.mkdir(parents=True, exist_ok=True)
                return self._run(*args, workdir)
            with tempfile.TemporaryDirectory(prefix="container-attest-") as tmp:
                return self._run(*args, Path(tmp))
        except KeyboardInterrupt:
            self._cancel_event.set()
            raise PipelineCancelledError("Run cancelled by user")

    def _run(
        self,
        spec: ReleaseSpec,
        commit_sha: str,
        context_path: str,
        dockerfile_path: str,
        source_url: Optional[str],
        kinds: Optional[Iterable[str]],
        job_timeout: float,
        workdir: Path,
    ) -> PipelineResult:
        repository = spec.repository

        # Step 1: tags and labels
        print_step_header(1, "Resolve Tags & Labels")
        tags, labels = resolve(spec, commit_sha, source_url)
        print_summary_table(
            "Release",
            [("Repository", repository), ("Tags", tags.joined(", ")), ("Platforms", ", ".join(spec.platforms))],
        )
        print_step_end(1)

        # Step 2: build and push
        print_step_header(2, "Build & Push")
        if self._executor is None:
            logger.info("Build skipped, expecting the tags to be pushed already")
        else:
            try:
                self._executor.build_and_push(
                    BuildPushInput(
                        context_path=context_path,
                        dockerfile_path=dockerfile_path,
                        references=tuple(tags.references(repository)),
                        labels=labels,
                        platforms=spec.platforms,
                    )
                )
            except Exception:
                print_step_end(2, success=False)
                raise
        print_step_end(2)

        # Step 3: digest
        print_step_header(3, "Resolve Digest")
        try:
            digest = self._resolver.resolve(repository, tags)
            self._resolver.verify(repository, list(tags)[1:], digest)
        except Exception:
            print_step_end(3, success=False)
            raise
        console.print(f"Digest: [highlight]{digest}[/highlight]")
        print_step_end(3)

        if self._cancel_event.is_set():
            raise PipelineCancelledError("Run cancelled before attestation")

        # Step 4: attestations
        print_step_header(4, "Attest")
        context = AttestationContext(
            repository=repository,
            digest=digest,
            tags=tuple(tags),
            workdir=workdir,
            timeout=job_timeout,
            cancel_event=self._cancel_event,
        )
        outcome = self._orchestrator.run(context, kinds=kinds)
        print_attestation_summary(outcome)
        print_verification_hints(outcome)
        print_step_end(4, success=not outcome.all_failed)

        if self._cancel_event.is_set():
            raise PipelineCancelledError("Run cancelled during attestation")

        return PipelineResult(repository=repository, digest=digest, tags=tags, labels=labels, outcome=outcome)


def write_github_outputs(outputs: Mapping[str, str], output_path: Optional[str] = None) -> None:
    """
    Publish run outputs.

    Appends ``name=value`` lines to the file named by $GITHUB_OUTPUT (or
    ``output_path``); prints them when neither is available.
    """
    target = output_path or os.getenv("GITHUB_OUTPUT")
    if not target:
        for name, value in outputs.items():
            console.print(f"{name}={value}", highlight=False)
        return

    with open(target, "a") as f:
        for name, value in outputs.items():
            f.write(f"{name}={value}\n")
    logger.info(f"Wrote {len(outputs)} output(s) to {target}")


def write_report(result: PipelineResult, path: str) -> None:
    """Write the JSON run report."""
    report_path = Path(path)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with open(report_path, "w") as f:
        json.dump(result.to_dict(), f, indent=2)
    logger.info(f"Run report written to {report_path}")
