"""
Volume snapshot controller.

Snapshots live under their volume's API path, so every operation first
resolves the owning svm and then the volume inside it.
"""

import logging
from typing import Any, Dict, Optional

from controllers.base import ResourceController
from errors import InvalidStateError
from models import StateModel, StorageSnapshot
from operation import OperationContext
from policy import FieldPolicy

logger = logging.getLogger(__name__)


class SnapshotController(ResourceController):
    """Controller for storage/volumes/{volume}/snapshots."""

    kind = "VolumeSnapshot"
    model = StorageSnapshot
    read_fields = "uuid,name"
    field_policies = {
        "name": FieldPolicy.MUTABLE,
        "volume": FieldPolicy.IMMUTABLE,
        "svm": FieldPolicy.IMMUTABLE,
        "expiry_time": FieldPolicy.NO_EMPTY_TRANSITION,
        "snaplock_expiry_time": FieldPolicy.NO_EMPTY_TRANSITION,
        "comment": FieldPolicy.NO_EMPTY_TRANSITION,
        "snapmirror_label": FieldPolicy.NO_EMPTY_TRANSITION,
    }

    def collection_api(self, refs: Dict[str, str]) -> str:
        return f"storage/volumes/{refs['volume']}/snapshots"

    async def resolve_references(
        self,
        ctx: OperationContext,
        model: Optional[StateModel],
        operation: str,
    ) -> Dict[str, str]:
        if model is None:
            raise InvalidStateError(
                f"{operation} {self.kind} needs the owning svm and volume names"
            )
        svm_uuid = await self.resolver.resolve("svm", model.svm.name, ctx)
        volume_uuid = await self.resolver.resolve(
            "volume", model.volume.name, ctx, scope=svm_uuid
        )
        return {"svm": svm_uuid, "volume": volume_uuid}

    def build_create_body(
        self, desired: StateModel, refs: Dict[str, str]
    ) -> Dict[str, Any]:
        body = super().build_create_body(desired, refs)
        # carried in the API path
        body.pop("svm", None)
        body.pop("volume", None)
        return body
