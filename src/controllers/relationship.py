"""
SnapMirror relationship controller.

Relationships cannot be modified once created. Their state and health are
owned by the backend; creating one with initialize requested drives the
uninitialized -> snapmirrored transition and waits for it.
"""

import logging
from typing import Any, Dict, Optional

from controllers.base import CreateResult, ResourceController
from errors import BackendError, TransitionTimeoutError
from models import ClusterRef, Endpoint, ReplicationRelationship, StateModel
from operation import OperationContext
from policy import FieldPolicy

logger = logging.getLogger(__name__)

UNINITIALIZED = "uninitialized"
INITIALIZE_TARGET_STATE = "snapmirrored"


def _endpoint_from_record(record: Dict[str, Any]) -> Endpoint:
    cluster = (record.get("cluster") or {}).get("name")
    return Endpoint(
        path=record.get("path", ""),
        cluster=ClusterRef(name=cluster) if cluster else None,
    )


class RelationshipController(ResourceController):
    """Controller for snapmirror/relationships."""

    kind = "SnapmirrorRelationship"
    model = ReplicationRelationship
    immutable = True
    read_fields = "uuid,healthy,state,source,destination"
    field_policies = {
        "source_endpoint": FieldPolicy.IMMUTABLE,
        "destination_endpoint": FieldPolicy.IMMUTABLE,
        "create_destination": FieldPolicy.IMMUTABLE,
        "initialize": FieldPolicy.IMMUTABLE,
        "healthy": FieldPolicy.COMPUTED,
        "state": FieldPolicy.COMPUTED,
    }

    def collection_api(self, refs: Dict[str, str]) -> str:
        return "snapmirror/relationships"

    def display_name(self, model: Optional[StateModel]) -> str:
        if model is None:
            return ""
        return model.destination_endpoint.path

    def build_create_body(
        self, desired: StateModel, refs: Dict[str, str]
    ) -> Dict[str, Any]:
        body = super().build_create_body(desired, refs)
        body.pop("initialize", None)
        body["source"] = body.pop("source_endpoint")
        body["destination"] = body.pop("destination_endpoint")
        return body

    def to_model(
        self, record: Dict[str, Any], prior: Optional[StateModel]
    ) -> StateModel:
        observed = {
            "id": record.get("uuid"),
            "healthy": record.get("healthy"),
            "state": record.get("state"),
        }
        if prior is not None:
            return prior.model_copy(update=observed)

        return ReplicationRelationship(
            source_endpoint=_endpoint_from_record(record.get("source") or {}),
            destination_endpoint=_endpoint_from_record(record.get("destination") or {}),
            **observed,
        )

    async def initialize(self, ctx: OperationContext, identity: str) -> None:
        """Request the relationship's baseline transfer."""
        api = self.object_api(identity, {})
        logger.info(f"Initializing {self.kind} {identity}")
        await ctx.call(
            self.gateway.call_update_method,
            api,
            None,
            {"state": INITIALIZE_TARGET_STATE},
        )

    async def after_create(
        self,
        ctx: OperationContext,
        desired: StateModel,
        identity: str,
        refs: Dict[str, str],
    ) -> CreateResult:
        async def read_record() -> Optional[Dict[str, Any]]:
            return await self._read_record(ctx, identity, refs)

        record = await read_record()
        if record is None:
            raise BackendError(f"{self.kind} {identity} not found after create")
        logger.debug(f"Read snapmirror info: {record}")

        warning = None
        if desired.initialize and record.get("state") == UNINITIALIZED:
            await self.initialize(ctx, identity)
            try:
                record = await self.poller.wait_for_transition(
                    ctx, read_record, UNINITIALIZED
                )
            except TransitionTimeoutError as e:
                warning = e.message
                logger.warning(f"{ctx.label}: {e.message}")
                record = await read_record() or record

        return CreateResult(
            identity=identity,
            observed=self.to_model(record, desired),
            warning=warning,
        )
