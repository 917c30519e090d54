"""
Field mutability policy.

Each resource kind declares a table of FieldPolicy values. The controllers
feed prior and desired state through compute_changes(), which returns the
PATCH body or raises before any backend call is made.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping

from errors import ValidationError

logger = logging.getLogger(__name__)


class FieldPolicy(Enum):
    """How a field may change after creation."""

    MUTABLE = "mutable"
    IMMUTABLE = "immutable"
    RENAME_GATED = "rename_gated"
    NO_EMPTY_TRANSITION = "no_empty_transition"
    COMPUTED = "computed"


def is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def compute_changes(
    policies: Mapping[str, FieldPolicy],
    prior: Mapping[str, Any],
    desired: Mapping[str, Any],
    rename: bool = False,
) -> Dict[str, Any]:
    """
    Compute the fields to PATCH.

    Changes are found by comparing desired against prior state only, never
    against the live backend.

    Args:
        policies: Field name to FieldPolicy.
        prior: Last observed state.
        desired: Requested state.
        rename: Whether RENAME_GATED fields may be sent.

    Returns:
        Dict of changed, policy-approved fields.

    Raises:
        ValidationError: An IMMUTABLE field differs, or a NO_EMPTY_TRANSITION
            field would become empty.
    """
    changes: Dict[str, Any] = {}
    violations = []

    for field_name, policy in policies.items():
        if policy is FieldPolicy.COMPUTED:
            continue

        old = prior.get(field_name)
        new = desired.get(field_name)
        if old == new:
            continue

        if policy is FieldPolicy.IMMUTABLE:
            violations.append(f"{field_name} cannot be changed after creation")
        elif policy is FieldPolicy.RENAME_GATED:
            if rename:
                changes[field_name] = new
            else:
                logger.debug(f"Ignoring {field_name} change: rename not requested")
        elif policy is FieldPolicy.NO_EMPTY_TRANSITION:
            if is_empty(new):
                violations.append(f"{field_name} cannot be updated with empty string")
            else:
                changes[field_name] = new
        elif new is not None:
            # MUTABLE: an unset desired value leaves the backend value alone
            changes[field_name] = new

    if violations:
        raise ValidationError("; ".join(violations), details=violations)

    return changes


def differing_fields(
    policies: Mapping[str, FieldPolicy],
    prior: Mapping[str, Any],
    desired: Mapping[str, Any],
) -> List[str]:
    """
    Names of managed fields whose desired value differs from prior.

    Computed fields never count, and an unset MUTABLE field is left alone,
    matching compute_changes().
    """
    fields = []
    for field_name, policy in policies.items():
        if policy is FieldPolicy.COMPUTED:
            continue
        new = desired.get(field_name)
        if policy is FieldPolicy.MUTABLE and new is None:
            continue
        if prior.get(field_name) != new:
            fields.append(field_name)
    return fields
