"""
Desired State Validation - JSON Schema checks for resource configuration.

Each resource schema renders to a JSON Schema (Draft 7); desired state is
validated against it before any remote call is made.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from schema import ResourceSchema

logger = logging.getLogger(__name__)


def validate_json_schema(schema: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate that a rendered schema is a valid JSON Schema.

    Args:
        schema: The schema to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        Draft7Validator.check_schema(schema)
        return True, None
    except SchemaError as e:
        return False, f"Invalid schema: {e.message}"


def strip_unset(desired: Dict[str, Any]) -> Dict[str, Any]:
    """Drop top-level fields explicitly set to None (unset optionals)."""
    return {k: v for k, v in desired.items() if v is not None}


def validate_desired_state(
    desired: Dict[str, Any], resource_schema: ResourceSchema
) -> Tuple[bool, Optional[str]]:
    """
    Validate desired state against a resource schema.

    Args:
        desired: The desired state to validate
        resource_schema: The resource type schema

    Returns:
        Tuple of (is_valid, error_message)
    """
    schema = resource_schema.to_json_schema()
    validator = Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)
    errors = sorted(
        validator.iter_errors(strip_unset(desired)),
        key=lambda e: list(e.absolute_path),
    )

    if not errors:
        return True, None

    # Collect all validation errors
    error_messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        error_messages.append(f"{path}: {error.message}")

    logger.debug(f"Desired state rejected: {error_messages}")
    return False, "; ".join(error_messages)
