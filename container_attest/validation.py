"""Predicate validation using JSON schemas and spdx-tools.

Every generated predicate is checked before it is attached:

- SPDX SBOMs: JSON schema for the document shape, then a full parse with
  spdx-tools (semantic findings are logged, not fatal)
- SLSA v0.2 provenance: JSON schema for the predicate
- in-toto statements produced by provenance generators: JSON schema, and the
  statement subject must carry the digest of the current run

Usage:
    from container_attest.validation import validate_predicate

    predicate = validate_predicate(SPDX_PREDICATE_TYPE, payload_bytes)
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import jsonschema
from spdx_tools.spdx.parser.error import SPDXParsingError
from spdx_tools.spdx.parser.jsonlikedict.json_like_dict_parser import JsonLikeDictParser
from spdx_tools.spdx.validation.document_validator import validate_full_spdx_document

from container_attest._digest import ImageDigest
from container_attest.exceptions import PredicateValidationError
from container_attest.logging_config import logger

SPDX_PREDICATE_TYPE = "https://spdx.dev/Document"
SLSA_PROVENANCE_PREDICATE_TYPE = "https://slsa.dev/provenance/v0.2"

# Path to schemas within the package directory
PACKAGE_DIR = Path(__file__).parent
SCHEMA_DIR = PACKAGE_DIR / "schemas"

SCHEMAS = {
    "spdx": SCHEMA_DIR / "spdx-2.3-document.schema.json",
    "slsa-provenance": SCHEMA_DIR / "slsa-provenance-v0.2.schema.json",
    "in-toto-statement": SCHEMA_DIR / "in-toto-statement-v0.1.schema.json",
}

# Cache for loaded schemas
_schema_cache: dict[str, dict] = {}


@dataclass
class ValidationResult:
    """Result of predicate validation.

    The `valid` field has three states:
    - True: Validation passed
    - False: Validation failed
    - None: Validation was skipped (e.g., no schema available)
    """

    valid: Optional[bool]
    document_type: str
    error_message: Optional[str] = None
    error_path: Optional[str] = None

    @classmethod
    def success(cls, document_type: str) -> "ValidationResult":
        """Create a successful validation result."""
        return cls(valid=True, document_type=document_type)

    @classmethod
    def failure(cls, document_type: str, error_message: str, error_path: Optional[str] = None) -> "ValidationResult":
        """Create a failed validation result."""
        return cls(valid=False, document_type=document_type, error_message=error_message, error_path=error_path)

    @classmethod
    def skipped(cls, document_type: str, reason: str) -> "ValidationResult":
        """Create a result indicating validation was skipped (schema not available)."""
        return cls(valid=None, document_type=document_type, error_message=reason)

    def describe(self) -> str:
        """One-line description of a failure, including the JSON path if known."""
        if self.error_path:
            return f"{self.error_message} (at {self.error_path})"
        return self.error_message or ""


def _load_schema(schema_path: Path) -> Optional[dict]:
    """Load a JSON schema from disk with caching."""
    cache_key = str(schema_path)
    if cache_key in _schema_cache:
        return _schema_cache[cache_key]

    if not schema_path.exists():
        logger.warning(f"Schema file not found: {schema_path}")
        return None

    with open(schema_path) as f:
        schema = json.load(f)
        _schema_cache[cache_key] = schema
        return schema


def validate_against_schema(data: Any, document_type: str) -> ValidationResult:
    """
    Validate data against one of the bundled JSON schemas.

    Args:
        data: Parsed JSON data
        document_type: Key into SCHEMAS ("spdx", "slsa-provenance", "in-toto-statement")

    Returns:
        ValidationResult with validation status and any errors
    """
    schema_path = SCHEMAS.get(document_type)
    schema = _load_schema(schema_path) if schema_path else None

    if schema is None:
        reason = f"No schema available for {document_type}"
        logger.warning(f"{reason}, unable to validate")
        return ValidationResult.skipped(document_type, reason)

    try:
        jsonschema.validate(instance=data, schema=schema)
        logger.debug(f"{document_type} validated successfully against its schema")
        return ValidationResult.success(document_type)
    except jsonschema.ValidationError as e:
        error_path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else None
        logger.error(f"{document_type} validation failed: {e.message}")
        if error_path:
            logger.error(f"Error at path: {error_path}")
        return ValidationResult.failure(document_type, e.message, error_path)
    except jsonschema.SchemaError as e:
        logger.error(f"Invalid schema: {e.message}")
        return ValidationResult.failure(document_type, f"Invalid schema: {e.message}")


def validate_spdx_document(data: Any) -> ValidationResult:
    """
    Validate an SPDX JSON document.

    The schema check catches shape errors; the spdx-tools parse catches
    documents that are well-formed JSON but not a usable SPDX model.
    """
    result = validate_against_schema(data, "spdx")
    if result.valid is False:
        return result

    try:
        document = JsonLikeDictParser().parse(data)
    except SPDXParsingError as e:
        messages = e.get_messages()
        logger.error(f"SPDX parsing failed with {len(messages)} error(s)")
        return ValidationResult.failure("spdx", "; ".join(messages[:5]) or "SPDX document could not be parsed")

    findings = validate_full_spdx_document(document)
    if findings:
        logger.warning(f"SPDX document has {len(findings)} validation finding(s)")
        for finding in findings[:10]:
            logger.warning(f"  {finding.validation_message}")

    return ValidationResult.success("spdx")


def validate_slsa_predicate(data: Any) -> ValidationResult:
    """Validate a SLSA v0.2 provenance predicate."""
    return validate_against_schema(data, "slsa-provenance")


def validate_in_toto_statement(
    statement: Any,
    expected_digest: ImageDigest,
    predicate_type: Optional[str] = None,
) -> ValidationResult:
    """
    Validate an in-toto statement and bind it to the digest of this run.

    Args:
        statement: Parsed statement
        expected_digest: Digest the statement must be about
        predicate_type: If given, the statement's predicateType must match

    Returns:
        ValidationResult; failure when no subject carries ``expected_digest``
    """
    result = validate_against_schema(statement, "in-toto-statement")
    if result.valid is False:
        return result

    if predicate_type and statement.get("predicateType") != predicate_type:
        return ValidationResult.failure(
            "in-toto-statement",
            f"Unexpected predicateType '{statement.get('predicateType')}', expected '{predicate_type}'",
            "predicateType",
        )

    for subject in statement.get("subject", []):
        if subject.get("digest", {}).get(expected_digest.algorithm) == expected_digest.hex:
            return ValidationResult.success("in-toto-statement")

    found = [f"{alg}:{value}" for subject in statement.get("subject", []) for alg, value in subject["digest"].items()]
    return ValidationResult.failure(
        "in-toto-statement",
        f"Statement subject digest {', '.join(found) or 'none'} does not match {expected_digest}",
        "subject",
    )


def parse_predicate(payload: bytes) -> dict[str, Any]:
    """
    Parse predicate bytes as a JSON object.

    Raises:
        PredicateValidationError: If the payload is not a JSON object
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PredicateValidationError(f"Predicate is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PredicateValidationError(f"Predicate must be a JSON object, got {type(data).__name__}")
    return data


def validate_predicate(predicate_type: str, payload: bytes) -> dict[str, Any]:
    """
    Parse and validate a predicate of a known type.

    Args:
        predicate_type: Predicate type URI
        payload: Predicate JSON bytes

    Returns:
        The parsed predicate

    Raises:
        PredicateValidationError: If the predicate does not have the expected shape
    """
    data = parse_predicate(payload)

    if predicate_type == SPDX_PREDICATE_TYPE:
        result = validate_spdx_document(data)
    elif predicate_type == SLSA_PROVENANCE_PREDICATE_TYPE:
        result = validate_slsa_predicate(data)
    else:
        result = ValidationResult.skipped(predicate_type, f"No validator for predicate type {predicate_type}")

    if result.valid is False:
        raise PredicateValidationError(f"Invalid {result.document_type} predicate: {result.describe()}")
    if result.valid is None:
        logger.warning(f"Predicate not validated: {result.error_message}")
    return data
