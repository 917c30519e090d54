"""
Manifest Validation - JSON schema validation of desired-state documents.

A manifest document names a kind, carries metadata and a spec, and may set
per-document options:

    kind: VolumeSnapshot
    metadata:
      name: nightly-v1
    spec:
      name: nightly
      volume: {name: v1}
      svm: {name: svm1}
    options:
      rename: false
"""

import logging
from typing import Any, Dict, Optional, Tuple, Type

from jsonschema import Draft7Validator, ValidationError
from pydantic import ValidationError as ModelValidationError

from models import StateModel

logger = logging.getLogger(__name__)

MANIFEST_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["kind", "metadata", "spec"],
    "additionalProperties": False,
    "properties": {
        "kind": {"type": "string", "minLength": 1},
        "metadata": {
            "type": "object",
            "required": ["name"],
            "properties": {
                "name": {
                    "type": "string",
                    "pattern": "^[A-Za-z0-9]([A-Za-z0-9_.-]{0,126}[A-Za-z0-9])?$",
                },
            },
        },
        "spec": {"type": "object"},
        "options": {
            "type": "object",
            "additionalProperties": False,
            "properties": {"rename": {"type": "boolean"}},
        },
    },
}


def validate_spec_against_schema(
    spec: Dict[str, Any], schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a document against a JSON Schema.

    Args:
        spec: The document to validate
        schema: The Draft 7 JSON Schema to validate against

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        validator = Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)
        errors = sorted(validator.iter_errors(spec), key=lambda e: str(list(e.path)))

        if not errors:
            return True, None

        # Collect all validation errors
        error_messages = []
        for error in errors:
            path = ".".join(str(p) for p in error.absolute_path) or "(root)"
            error_messages.append(f"{path}: {error.message}")

        return False, "; ".join(error_messages)

    except ValidationError as e:
        return False, f"Validation error: {str(e)}"


def validate_manifest_document(document: Any) -> Tuple[bool, Optional[str]]:
    """Validate the envelope of one manifest document."""
    if not isinstance(document, dict):
        return False, "(root): document must be a mapping"
    return validate_spec_against_schema(document, MANIFEST_SCHEMA)


def parse_spec(
    model: Type[StateModel], spec: Dict[str, Any]
) -> Tuple[Optional[StateModel], Optional[str]]:
    """
    Build a desired-state model from a document's spec.

    Returns:
        Tuple of (model_instance, error_message). On failure the instance
        is None.
    """
    try:
        return model.model_validate(spec), None
    except ModelValidationError as e:
        messages = []
        for error in e.errors():
            path = ".".join(str(p) for p in error["loc"]) or "(root)"
            messages.append(f"{path}: {error['msg']}")
        return None, "; ".join(messages)
