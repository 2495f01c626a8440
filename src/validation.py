"""
Desired State Validation - JSON Schema and attribute group checks.

Provides functions to validate resource schemas and desired-state attribute
sets before any remote call is issued.
"""

from typing import Any, Dict, Optional, Sequence, Tuple

from jsonschema import Draft7Validator, SchemaError


def is_set(value: Any) -> bool:
    """Whether an attribute value counts as supplied by the user."""
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, set, frozenset, dict)):
        return len(value) > 0
    return True


def _error_path(error) -> str:
    return ".".join(str(p) for p in error.absolute_path) or "(root)"


def validate_json_schema(schema: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate that a generated resource schema is a valid JSON Schema.

    Args:
        schema: The schema to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        return False, f"Invalid schema: {e.message}"
    return True, None


def validate_desired_state(
    desired: Dict[str, Any], schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a desired-state attribute set against a resource JSON Schema.

    Args:
        desired: The user-declared attribute values
        schema: The JSON Schema rendered from the resource descriptor

    Returns:
        Tuple of (is_valid, error_message)
    """
    messages = [
        f"{_error_path(error)}: {error.message}"
        for error in Draft7Validator(schema).iter_errors(desired)
    ]
    if not messages:
        return True, None
    return False, "; ".join(messages)


def check_exclusive_groups(
    desired: Dict[str, Any],
    groups: Sequence[Sequence[str]],
    required: bool = False,
) -> Tuple[bool, Optional[str]]:
    """
    Check a set of mutually exclusive attribute groups.

    A group counts as supplied when any of its attributes is set. At most one
    group may be supplied (exactly one when ``required``), and a supplied
    group must set every one of its attributes.

    Args:
        desired: The user-declared attribute values
        groups: The attribute groups, e.g. [["credential_id"], ["username", "password"]]
        required: Whether one group must be supplied

    Returns:
        Tuple of (is_valid, error_message)
    """
    supplied = [g for g in groups if any(is_set(desired.get(a)) for a in g)]
    described = " or ".join("(" + ", ".join(g) + ")" for g in groups)

    if len(supplied) > 1:
        conflicting = " and ".join("(" + ", ".join(g) + ")" for g in supplied)
        return False, f"{conflicting} conflict: supply only one of {described}"

    if not supplied:
        if required:
            return False, f"one of {described} must be supplied"
        return True, None

    missing = [a for a in supplied[0] if not is_set(desired.get(a))]
    if missing:
        return False, (
            f"{', '.join(missing)} must be supplied together with "
            f"{', '.join(a for a in supplied[0] if a not in missing)}"
        )

    return True, None
