"""SLSA provenance generator backed by ``slsa-provenance generate container``.

The tool writes a complete in-toto statement. Only its ``predicate`` member
is attached (cosign wraps it into a fresh statement bound to the digest), but
the statement is checked first: its subject must be the digest of this run.

GitHub Actions exposes the workflow and runner contexts as JSON; when
GITHUB_CONTEXT / RUNNER_CONTEXT are present in the environment they are
passed through so the provenance records the invocation.
"""

import json
import os
from typing import Mapping, Optional

from container_attest.exceptions import (
    CommandCancelledError,
    CommandExecutionError,
    PipelineCancelledError,
    PredicateGenerationError,
    PredicateValidationError,
)
from container_attest.logging_config import logger
from container_attest.utils import run_command
from container_attest.validation import validate_in_toto_statement

from ..protocol import SLSA_PROVENANCE_PREDICATE_TYPE, AttestationContext


class SlsaProvenanceGenerator:
    """SLSA v0.2 provenance predicate generator for container images."""

    def __init__(self, env: Optional[Mapping[str, str]] = None) -> None:
        """
        Args:
            env: Environment to read the GitHub contexts from and run the tool in
                 (defaults to the current environment)
        """
        self._env = dict(env if env is not None else os.environ)
        # Provenance generation does not sign anything itself
        self._env["COSIGN_EXPERIMENTAL"] = "0"

    @property
    def name(self) -> str:
        return "slsa-provenance"

    @property
    def command(self) -> str:
        return "slsa-provenance"

    @property
    def predicate_type(self) -> str:
        return SLSA_PROVENANCE_PREDICATE_TYPE

    def build_command(self, context: AttestationContext) -> list[str]:
        cmd = [
            "slsa-provenance",
            "generate",
            "container",
            "--repository",
            context.repository,
            "--output-path",
            str(context.workdir / "provenance.att"),
            "--digest",
            str(context.digest),
            "--tags",
            ",".join(context.tags),
        ]
        if self._env.get("GITHUB_CONTEXT"):
            cmd += ["--github-context", self._env["GITHUB_CONTEXT"]]
        if self._env.get("RUNNER_CONTEXT"):
            cmd += ["--runner-context", self._env["RUNNER_CONTEXT"]]
        return cmd

    def generate(self, context: AttestationContext) -> bytes:
        """Generate the statement and return its predicate."""
        output_file = context.workdir / "provenance.att"
        logger.info(f"Generating SLSA provenance for {context.subject_ref}")

        try:
            run_command(
                self.build_command(context),
                "slsa-provenance",
                timeout=context.timeout,
                env=self._env,
                cancel_event=context.cancel_event,
            )
        except CommandCancelledError as e:
            raise PipelineCancelledError(str(e)) from e
        except CommandExecutionError as e:
            raise PredicateGenerationError(f"slsa-provenance failed: {e}") from e

        if not output_file.exists():
            raise PredicateGenerationError("slsa-provenance completed but output file not created")

        try:
            statement = json.loads(output_file.read_text())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PredicateValidationError(f"Provenance statement is not valid JSON: {e}") from e

        result = validate_in_toto_statement(statement, context.digest, SLSA_PROVENANCE_PREDICATE_TYPE)
        if not result.valid:
            raise PredicateValidationError(f"Invalid provenance statement: {result.describe()}")

        return json.dumps(statement["predicate"], indent=2).encode()
