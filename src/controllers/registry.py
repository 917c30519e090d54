"""
Controller Registry - discovery and registration of resource controllers.

Maps manifest kinds to controller classes and hands out one controller
instance per (kind, gateway) pair.
"""

import logging
from importlib.metadata import entry_points
from typing import Dict, List, Optional, Tuple, Type

from config import PollerConfig
from controllers.base import ResourceController
from gateway import BackendGateway

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "ontap.controllers"


class ControllerRegistry:
    """
    Central registry for resource controllers.

    Handles registration, entry point discovery and instantiation.
    """

    def __init__(self):
        # Registered controller classes (not instantiated)
        self._controllers: Dict[str, Type[ResourceController]] = {}

        # Instances keyed by kind and gateway identity
        self._instances: Dict[Tuple[str, int], ResourceController] = {}

    def register(self, controller_class: Type[ResourceController]) -> None:
        """
        Register a controller class.

        Args:
            controller_class: The ResourceController subclass to register

        Raises:
            ValueError: If the class declares no kind, or the kind is already
                claimed by another controller class
        """
        kind = controller_class.kind
        if not kind:
            raise ValueError(
                f"Controller {controller_class.__name__} does not declare a kind"
            )

        existing = self._controllers.get(kind)
        if existing is not None and existing is not controller_class:
            raise ValueError(
                f"Kind '{kind}' is already claimed by "
                f"{existing.__name__}. Cannot register {controller_class.__name__}."
            )

        self._controllers[kind] = controller_class
        logger.info(f"Registered controller: {controller_class.__name__} ({kind})")

    def get_controller(
        self,
        kind: str,
        gateway: BackendGateway,
        poller_config: Optional[PollerConfig] = None,
    ) -> ResourceController:
        """
        Get a controller instance bound to a gateway.

        Args:
            kind: The manifest kind
            gateway: Gateway of the connection profile the object lives on
            poller_config: Poller configuration for new instances

        Raises:
            ValueError: If no controller handles the kind
        """
        if kind not in self._controllers:
            available = ", ".join(self._controllers.keys()) or "none"
            raise ValueError(f"Unknown kind: {kind}. Available kinds: {available}")

        key = (kind, id(gateway))
        if key not in self._instances:
            self._instances[key] = self._controllers[kind](gateway, poller_config)
            logger.debug(f"Instantiated controller for {kind}")
        return self._instances[key]

    def has_kind(self, kind: str) -> bool:
        return kind in self._controllers

    def list_kinds(self) -> List[str]:
        return list(self._controllers.keys())


# Global registry instance
_registry: Optional[ControllerRegistry] = None


def get_registry() -> ControllerRegistry:
    """Get the global controller registry singleton."""
    global _registry
    if _registry is None:
        _registry = ControllerRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_controllers(registry: Optional[ControllerRegistry] = None) -> None:
    """
    Register the built-in controllers and discover third-party ones
    via entry points.
    """
    from controllers.relationship import RelationshipController
    from controllers.snapshot import SnapshotController
    from controllers.svm import SvmController

    registry = registry or get_registry()
    for controller_class in (RelationshipController, SnapshotController, SvmController):
        registry.register(controller_class)

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            registry.register(ep.load())
        except Exception as e:
            logger.warning(f"Could not load controller {ep.name}: {e}")
