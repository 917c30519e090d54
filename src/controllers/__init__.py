"""
Resource controllers.

One controller per managed kind. Built-in controllers are registered with
register_builtin_controllers(); third-party controllers are discovered via
Python entry points (group: 'ontap.controllers').
"""

from controllers.base import CreateResult, ResourceController
from controllers.registry import (
    ControllerRegistry,
    get_registry,
    register_builtin_controllers,
)
from controllers.relationship import RelationshipController
from controllers.snapshot import SnapshotController
from controllers.svm import SvmController

__all__ = [
    "CreateResult",
    "ResourceController",
    "ControllerRegistry",
    "get_registry",
    "register_builtin_controllers",
    "RelationshipController",
    "SnapshotController",
    "SvmController",
]
