"""
Reconciler - drives desired-state documents through the resource controllers.

Each managed object is reconciled independently and concurrently (bounded
by max_concurrent_reconciles); inside one object every backend call runs in
a fixed order. Outcomes are recorded in the state store so identities
survive partial failures.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from config import Config, ConnectionProfile
from controllers.base import ResourceController
from controllers.registry import ControllerRegistry, get_registry
from errors import InvalidStateError, NotFoundError, OntapError, ValidationError
from gateway import BackendGateway, RestClient
from models import StateModel
from operation import OperationContext
from policy import differing_fields
from state import StateStore, TrackedObject
from validation import parse_spec, validate_manifest_document

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[ConnectionProfile], BackendGateway]


@dataclass
class ManifestDocument:
    """One desired-state document."""

    kind: str
    name: str
    spec: Dict[str, Any]
    rename: bool = False

    @classmethod
    def from_dict(cls, document: Any) -> "ManifestDocument":
        """
        Validate and wrap a decoded manifest document.

        Raises:
            ValidationError: If the document does not match the manifest schema.
        """
        is_valid, error = validate_manifest_document(document)
        if not is_valid:
            raise ValidationError(f"Invalid manifest document: {error}")
        return cls(
            kind=document["kind"],
            name=document["metadata"]["name"],
            spec=document["spec"],
            rename=document.get("options", {}).get("rename", False),
        )


@dataclass
class ReconcileOutcome:
    """Result of reconciling one managed object."""

    kind: str
    name: str
    action: str
    success: bool = False
    message: str = ""
    identity: Optional[str] = None
    warning: Optional[str] = None
    error_kind: Optional[str] = None
    duration_seconds: float = 0.0


class Reconciler:
    """
    Reconciles manifest documents against the backend.

    Configuration, state store and registry are passed in explicitly; one
    gateway is created per connection profile and reused for all objects
    on that profile.
    """

    def __init__(
        self,
        config: Config,
        store: StateStore,
        registry: Optional[ControllerRegistry] = None,
        gateway_factory: GatewayFactory = RestClient,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.config = config
        self.store = store
        self.registry = registry or get_registry()
        self.gateway_factory = gateway_factory
        self.cancel_event = cancel_event
        self.max_concurrent_reconciles = config.reconciler.max_concurrent_reconciles
        self.operation_timeout = config.reconciler.operation_timeout
        self.semaphore = asyncio.Semaphore(self.max_concurrent_reconciles)
        self._gateways: Dict[str, BackendGateway] = {}

    async def close(self) -> None:
        """Close all gateways."""
        for gateway in self._gateways.values():
            await gateway.close()
        self._gateways = {}

    # ==================== Wiring ====================

    def _get_gateway(self, profile_name: Optional[str]) -> BackendGateway:
        profile = self.config.get_profile(profile_name)
        if profile.name not in self._gateways:
            self._gateways[profile.name] = self.gateway_factory(profile)
            logger.debug(f"Created gateway for profile {profile.name}")
        return self._gateways[profile.name]

    def _get_controller(
        self, kind: str, profile_name: Optional[str]
    ) -> ResourceController:
        if not self.registry.has_kind(kind):
            available = ", ".join(self.registry.list_kinds()) or "none"
            raise ValidationError(f"Unknown kind: {kind}. Available kinds: {available}")
        return self.registry.get_controller(
            kind, self._get_gateway(profile_name), self.config.poller
        )

    def _parse(self, controller: ResourceController, document: ManifestDocument):
        desired, error = parse_spec(controller.model, document.spec)
        if desired is None:
            raise ValidationError(f"Invalid spec for {document.name}: {error}")
        return desired

    def _context(
        self,
        controller: ResourceController,
        operation: str,
        name: str,
        on_identity: Optional[Callable[[str], None]] = None,
    ) -> OperationContext:
        return controller.new_context(
            operation,
            name,
            cancel_event=self.cancel_event,
            timeout=self.operation_timeout,
            on_identity=on_identity,
        )

    def _prior(
        self, controller: ResourceController, tracked: TrackedObject
    ) -> Optional[StateModel]:
        if not tracked.observed:
            return None
        try:
            return controller.model.model_validate(tracked.observed)
        except ValueError as e:
            logger.warning(f"Discarding unreadable tracked state for {tracked.key}: {e}")
            return None

    def _track(
        self,
        kind: str,
        name: str,
        observed: StateModel,
        status: str,
        message: str = "",
    ) -> None:
        self.store.put(
            TrackedObject(
                kind=kind,
                name=name,
                id=observed.id,
                cx_profile_name=observed.cx_profile_name,
                observed=observed.model_dump(),
                status=status,
                message=message,
            )
        )

    def _mark_failed(self, kind: str, name: str, message: str) -> None:
        tracked = self.store.get(kind, name)
        if tracked is not None:
            tracked.status = "failed"
            tracked.message = message
            self.store.put(tracked)

    # ==================== Public API ====================

    async def apply(self, documents: List[ManifestDocument]) -> List[ReconcileOutcome]:
        """Create or update every document's object."""
        names = [f"{d.kind}/{d.name}" for d in documents]
        if len(set(names)) != len(names):
            raise ValidationError("Manifest contains duplicate kind/name pairs")

        return await asyncio.gather(
            *(self._guarded("apply", self._apply_one, d) for d in documents)
        )

    async def destroy(self, names: Optional[List[str]] = None) -> List[ReconcileOutcome]:
        """
        Delete tracked objects.

        Args:
            names: Object names or kind/name keys; None destroys everything.
        """
        targets = [
            t
            for t in self.store.list()
            if names is None or t.name in names or t.key in names
        ]
        return await asyncio.gather(
            *(self._guarded("delete", self._destroy_one, t) for t in targets)
        )

    async def refresh(self) -> List[ReconcileOutcome]:
        """Re-read every tracked object, dropping those that no longer exist."""
        return await asyncio.gather(
            *(self._guarded("refresh", self._refresh_one, t) for t in self.store.list())
        )

    async def import_resource(
        self, document: ManifestDocument, identity: str
    ) -> ReconcileOutcome:
        """Adopt an existing backend object by identity."""
        return await self._guarded("import", self._import_one, document, identity)

    # ==================== Per-object operations ====================

    async def _guarded(self, action: str, fn, target, *args) -> ReconcileOutcome:
        """Run one object's reconciliation, turning failures into outcomes."""
        async with self.semaphore:
            kind, name = target.kind, target.name
            start_time = time.monotonic()
            try:
                outcome = await fn(target, *args)
            except OntapError as e:
                logger.error(f"Failed to reconcile {kind}/{name}: {e}")
                self._mark_failed(kind, name, str(e))
                tracked = self.store.get(kind, name)
                outcome = ReconcileOutcome(
                    kind=kind,
                    name=name,
                    action=action,
                    message=str(e),
                    identity=tracked.id if tracked else None,
                    error_kind=e.kind,
                )
            except Exception as e:
                logger.error(f"Error reconciling {kind}/{name}: {e}", exc_info=True)
                self._mark_failed(kind, name, f"Reconciliation error: {e}")
                outcome = ReconcileOutcome(
                    kind=kind,
                    name=name,
                    action=action,
                    message=f"Reconciliation error: {e}",
                    error_kind="internal",
                )
            outcome.duration_seconds = time.monotonic() - start_time
            return outcome

    async def _create(
        self,
        document: ManifestDocument,
        controller: ResourceController,
        desired: StateModel,
        action: str = "create",
    ) -> ReconcileOutcome:
        def on_identity(identity: str) -> None:
            self.store.record_identity(
                document.kind,
                document.name,
                identity,
                cx_profile_name=desired.cx_profile_name,
                observed=desired.model_dump(),
            )

        ctx = self._context(controller, "create", document.name, on_identity)
        result = await controller.create(desired, ctx)

        status = "degraded" if result.warning else "ready"
        self._track(document.kind, document.name, result.observed, status, result.warning or "")
        return ReconcileOutcome(
            kind=document.kind,
            name=document.name,
            action=action,
            success=True,
            message=result.warning or "created",
            identity=result.identity,
            warning=result.warning,
        )

    async def _apply_one(self, document: ManifestDocument) -> ReconcileOutcome:
        controller = self._get_controller(
            document.kind, document.spec.get("cx_profile_name")
        )
        desired = self._parse(controller, document)
        tracked = self.store.get(document.kind, document.name)

        if tracked is None or not tracked.id:
            return await self._create(document, controller, desired)

        prior = self._prior(controller, tracked) or desired.model_copy(
            update={"id": tracked.id}
        )
        current = await controller.read(
            tracked.id, prior, self._context(controller, "read", document.name)
        )
        if current is None:
            logger.info(f"{tracked.key} is gone from the backend, recreating")
            self.store.remove(document.kind, document.name)
            return await self._create(document, controller, desired, action="recreate")

        drift = differing_fields(
            controller.field_policies, current.model_dump(), desired.model_dump()
        )
        body: Dict[str, Any] = {}
        if drift:
            logger.info(f"Drift detected for {tracked.key}: {', '.join(drift)}")
            body = await controller.update(
                tracked.id,
                current,
                desired,
                rename=document.rename,
                ctx=self._context(controller, "update", document.name),
            )
        if not body:
            self._track(document.kind, document.name, current, "ready")
            return ReconcileOutcome(
                kind=document.kind,
                name=document.name,
                action="noop",
                success=True,
                message="up to date",
                identity=tracked.id,
            )

        expected = controller.model.model_validate({**current.model_dump(), **body})
        observed = await controller.read(
            tracked.id, expected, self._context(controller, "read", document.name)
        )
        self._track(document.kind, document.name, observed or expected, "ready")
        return ReconcileOutcome(
            kind=document.kind,
            name=document.name,
            action="update",
            success=True,
            message=f"updated {', '.join(sorted(body))}",
            identity=tracked.id,
        )

    async def _destroy_one(self, tracked: TrackedObject) -> ReconcileOutcome:
        controller = self._get_controller(tracked.kind, tracked.cx_profile_name)
        ctx = self._context(controller, "delete", tracked.name)
        await controller.delete(tracked.id, self._prior(controller, tracked), ctx)
        self.store.remove(tracked.kind, tracked.name)
        return ReconcileOutcome(
            kind=tracked.kind,
            name=tracked.name,
            action="delete",
            success=True,
            message="deleted",
            identity=tracked.id,
        )

    async def _refresh_one(self, tracked: TrackedObject) -> ReconcileOutcome:
        if not tracked.id:
            raise InvalidStateError(f"{tracked.key} has no identity to refresh")

        controller = self._get_controller(tracked.kind, tracked.cx_profile_name)
        ctx = self._context(controller, "read", tracked.name)
        observed = await controller.read(tracked.id, self._prior(controller, tracked), ctx)

        if observed is None:
            self.store.remove(tracked.kind, tracked.name)
            return ReconcileOutcome(
                kind=tracked.kind,
                name=tracked.name,
                action="drop",
                success=True,
                message="no longer exists; dropped from state",
                identity=tracked.id,
            )

        self._track(tracked.kind, tracked.name, observed, "ready")
        return ReconcileOutcome(
            kind=tracked.kind,
            name=tracked.name,
            action="refresh",
            success=True,
            message="refreshed",
            identity=tracked.id,
        )

    async def _import_one(
        self, document: ManifestDocument, identity: str
    ) -> ReconcileOutcome:
        controller = self._get_controller(
            document.kind, document.spec.get("cx_profile_name")
        )
        desired = self._parse(controller, document)
        ctx = self._context(controller, "import", document.name)
        observed = await controller.read(identity, desired, ctx)
        if observed is None:
            raise NotFoundError(f"{document.kind} {identity} not found")

        self._track(document.kind, document.name, observed, "ready")
        return ReconcileOutcome(
            kind=document.kind,
            name=document.name,
            action="import",
            success=True,
            message="imported",
            identity=identity,
        )
