"""
Resource Controller Base - generic Create/Read/Update/Delete orchestration.

A controller owns one managed kind. It composes the reference resolver and
the backend gateway into an ordered sequence of calls, and applies the
kind's field mutability policy on update. Every public operation runs
inside an OperationContext: the first failure is translated and reported
once, and nothing else is sent to the backend for that invocation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from config import PollerConfig
from errors import BackendError, InvalidStateError, UnsupportedOperationError
from gateway import BackendGateway, Query
from models import StateModel
from operation import OperationContext
from policy import FieldPolicy, compute_changes
from poller import TransitionPoller
from resolver import ReferenceResolver

logger = logging.getLogger(__name__)

# Model fields that only exist on our side and are never sent to the backend
LOCAL_FIELDS = ("cx_profile_name", "id")


@dataclass
class CreateResult:
    """Outcome of a successful Create."""

    identity: str
    observed: StateModel
    warning: Optional[str] = None


class ResourceController(ABC):
    """
    Abstract base class for resource controllers.

    Subclasses set the class attributes below and implement the API path
    hooks. References are resolved before any dependent call is built.
    """

    kind: str = ""
    model: Type[StateModel] = StateModel
    field_policies: Dict[str, FieldPolicy] = {}
    # Kinds with no PATCH semantics reject every update
    immutable: bool = False
    read_fields: str = "uuid,name"

    def __init__(
        self,
        gateway: BackendGateway,
        poller_config: Optional[PollerConfig] = None,
    ):
        self.gateway = gateway
        self.resolver = ReferenceResolver(gateway)
        self.poller = TransitionPoller(poller_config)

    # ==================== Hooks ====================

    @abstractmethod
    def collection_api(self, refs: Dict[str, str]) -> str:
        """API path of the collection new objects are created in."""
        pass

    def object_api(self, identity: str, refs: Dict[str, str]) -> str:
        """API path of one object."""
        return f"{self.collection_api(refs)}/{identity}"

    def display_name(self, model: Optional[StateModel]) -> str:
        if model is None:
            return ""
        return getattr(model, "name", "") or ""

    async def resolve_references(
        self,
        ctx: OperationContext,
        model: Optional[StateModel],
        operation: str,
    ) -> Dict[str, str]:
        """
        Resolve the NameReferences an operation needs.

        Returns:
            Reference kind to resolved uuid.
        """
        return {}

    def build_create_body(
        self, desired: StateModel, refs: Dict[str, str]
    ) -> Dict[str, Any]:
        """Payload of explicitly set, backend-owned fields."""
        body = desired.set_fields()
        for name in LOCAL_FIELDS:
            body.pop(name, None)
        for name, policy in self.field_policies.items():
            if policy is FieldPolicy.COMPUTED:
                body.pop(name, None)
        return body

    def build_update_body(
        self, changes: Dict[str, Any], refs: Dict[str, str]
    ) -> Dict[str, Any]:
        return changes

    def to_model(
        self, record: Dict[str, Any], prior: Optional[StateModel]
    ) -> StateModel:
        """Merge a backend record into prior state."""
        update = {"id": record.get("uuid")}
        if "name" in record and "name" in self.model.model_fields:
            update["name"] = record["name"]
        if prior is None:
            return self.model.model_validate(update)
        return prior.model_copy(update=update)

    async def after_create(
        self,
        ctx: OperationContext,
        desired: StateModel,
        identity: str,
        refs: Dict[str, str],
    ) -> CreateResult:
        """Kind-specific steps after the object exists."""
        return CreateResult(
            identity=identity,
            observed=desired.model_copy(update={"id": identity}),
        )

    # ==================== Public operations ====================

    def new_context(
        self,
        operation: str,
        name: str = "",
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
        on_identity: Optional[Callable[[str], None]] = None,
    ) -> OperationContext:
        """Create an OperationContext for one invocation of this controller."""
        return OperationContext(
            kind=self.kind,
            operation=operation,
            name=name,
            cancel_event=cancel_event,
            timeout=timeout,
            on_identity=on_identity,
        )

    async def create(
        self, desired: StateModel, ctx: Optional[OperationContext] = None
    ) -> CreateResult:
        """
        Create the object described by desired.

        Args:
            desired: Desired state.
            ctx: Operation context; a fresh one is created when omitted.

        Returns:
            CreateResult with the backend-assigned identity and observed state.
        """
        ctx = ctx or self.new_context("create", self.display_name(desired))
        return await self._run(ctx, f"error creating {self.kind}", self._create, desired)

    async def read(
        self,
        identity: str,
        prior: Optional[StateModel] = None,
        ctx: Optional[OperationContext] = None,
    ) -> Optional[StateModel]:
        """
        Refresh an object by identity.

        Returns:
            The observed state, or None if the backend has no such object.
        """
        ctx = ctx or self.new_context("read", self.display_name(prior))
        return await self._run(
            ctx, f"error reading {self.kind}", self._read, identity, prior
        )

    async def update(
        self,
        identity: str,
        prior: StateModel,
        desired: StateModel,
        rename: bool = False,
        ctx: Optional[OperationContext] = None,
    ) -> Dict[str, Any]:
        """
        Apply policy-approved changes between prior and desired state.

        Args:
            identity: Object identity.
            prior: Last observed state.
            desired: Requested state.
            rename: Whether rename-gated fields may change.
            ctx: Operation context.

        Returns:
            The PATCH body sent (empty when nothing changed).
        """
        ctx = ctx or self.new_context("update", self.display_name(desired))
        return await self._run(
            ctx,
            f"error updating {self.kind}",
            self._update,
            identity,
            prior,
            desired,
            rename,
        )

    async def delete(
        self,
        identity: Optional[str],
        prior: Optional[StateModel] = None,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        """Delete an object by identity."""
        ctx = ctx or self.new_context("delete", self.display_name(prior))
        await self._run(ctx, f"error deleting {self.kind}", self._delete, identity, prior)

    # ==================== Implementation ====================

    async def _run(
        self,
        ctx: OperationContext,
        summary: str,
        fn: Callable[..., Awaitable[Any]],
        *args,
    ) -> Any:
        """Run an operation, reporting its first failure exactly once."""
        try:
            return await fn(ctx, *args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = ctx.reporter.report(summary, e)
            if error is e:
                raise
            raise error from e

    async def _create(self, ctx: OperationContext, desired: StateModel) -> CreateResult:
        refs = await self.resolve_references(ctx, desired, "create")
        body = self.build_create_body(desired, refs)
        api = self.collection_api(refs)
        query = Query().add("return_records", True)

        logger.debug(f"Creating {self.kind} at {api}: {body}")
        status, response = await ctx.call(
            self.gateway.call_create_method, api, query, body
        )

        records = (response or {}).get("records") or []
        identity = records[0].get("uuid") if records else None
        if not identity:
            raise BackendError(
                f"error on POST {api}: no record returned",
                status_code=status,
                details=response,
            )

        ctx.record_identity(identity)
        logger.info(f"Created {self.kind} {self.display_name(desired)}: {identity}")
        return await self.after_create(ctx, desired, identity, refs)

    async def _read_record(
        self, ctx: OperationContext, identity: str, refs: Dict[str, str]
    ) -> Optional[Dict[str, Any]]:
        query = Query().add("fields", self.read_fields)
        _, record = await ctx.call(
            self.gateway.get_nil_or_one_record, self.object_api(identity, refs), query
        )
        return record

    async def _read(
        self,
        ctx: OperationContext,
        identity: str,
        prior: Optional[StateModel],
    ) -> Optional[StateModel]:
        if not identity:
            raise InvalidStateError(f"{self.kind} identity is not set")

        refs = await self.resolve_references(ctx, prior, "read")
        record = await self._read_record(ctx, identity, refs)
        if record is None:
            logger.info(f"{self.kind} {identity} no longer exists")
            return None

        logger.debug(f"Read {self.kind} info: {record}")
        return self.to_model(record, prior)

    async def _update(
        self,
        ctx: OperationContext,
        identity: str,
        prior: StateModel,
        desired: StateModel,
        rename: bool,
    ) -> Dict[str, Any]:
        if self.immutable:
            raise UnsupportedOperationError(f"Update not supported for {self.kind}")
        if not identity:
            raise InvalidStateError(f"{self.kind} identity is not set")

        changes = compute_changes(
            self.field_policies,
            prior.model_dump(),
            desired.model_dump(),
            rename=rename,
        )
        if not changes:
            logger.info(f"No changes for {self.kind} {identity}")
            return {}

        refs = await self.resolve_references(ctx, desired, "update")
        body = self.build_update_body(changes, refs)
        logger.debug(f"Update {self.kind} {identity}: {body}")
        await ctx.call(
            self.gateway.call_update_method, self.object_api(identity, refs), None, body
        )
        logger.info(f"Updated {self.kind} {identity}: {', '.join(sorted(body))}")
        return body

    async def _delete(
        self,
        ctx: OperationContext,
        identity: Optional[str],
        prior: Optional[StateModel],
    ) -> None:
        if not identity:
            raise InvalidStateError(f"{self.kind} UUID is null")

        refs = await self.resolve_references(ctx, prior, "delete")
        await ctx.call(self.gateway.call_delete_method, self.object_api(identity, refs))
        logger.info(f"Deleted {self.kind} {identity}")
