"""
Storage VM controller.

The svm name only changes when the caller explicitly asks for a rename;
a differing desired name alone never renames.
"""

import logging
from typing import Any, Dict, Optional

from controllers.base import ResourceController
from models import NameRef, StateModel, VirtualStorageMachine
from operation import OperationContext
from policy import FieldPolicy

logger = logging.getLogger(__name__)

SCALAR_FIELDS = ("name", "subtype", "comment", "language")


class SvmController(ResourceController):
    """Controller for svm/svms."""

    kind = "StorageVM"
    model = VirtualStorageMachine
    read_fields = "uuid,name,subtype,comment,language,ipspace.name,snapshot_policy.name"
    field_policies = {
        "name": FieldPolicy.RENAME_GATED,
        "ipspace": FieldPolicy.IMMUTABLE,
        "subtype": FieldPolicy.IMMUTABLE,
        "snapshot_policy": FieldPolicy.MUTABLE,
        "comment": FieldPolicy.MUTABLE,
        "language": FieldPolicy.MUTABLE,
        "max_volumes": FieldPolicy.MUTABLE,
        "aggregates": FieldPolicy.MUTABLE,
    }

    def collection_api(self, refs: Dict[str, str]) -> str:
        return "svm/svms"

    async def resolve_references(
        self,
        ctx: OperationContext,
        model: Optional[StateModel],
        operation: str,
    ) -> Dict[str, str]:
        refs: Dict[str, str] = {}
        if operation != "create" or model is None:
            return refs

        if model.ipspace is not None:
            refs["ipspace"] = await self.resolver.resolve(
                "ipspace", model.ipspace.name, ctx
            )
        if model.snapshot_policy is not None:
            refs["snapshot_policy"] = await self.resolver.resolve(
                "snapshot_policy", model.snapshot_policy.name, ctx
            )
        return refs

    def build_create_body(
        self, desired: StateModel, refs: Dict[str, str]
    ) -> Dict[str, Any]:
        body = super().build_create_body(desired, refs)
        for ref_name, uuid in refs.items():
            body[ref_name]["uuid"] = uuid
        return body

    def to_model(
        self, record: Dict[str, Any], prior: Optional[StateModel]
    ) -> StateModel:
        observed: Dict[str, Any] = {"id": record.get("uuid")}
        for field_name in SCALAR_FIELDS:
            if field_name in record:
                observed[field_name] = record[field_name]
        for ref_name in ("ipspace", "snapshot_policy"):
            ref = record.get(ref_name) or {}
            if ref.get("name"):
                observed[ref_name] = NameRef(name=ref["name"])

        if prior is None:
            return VirtualStorageMachine.model_validate(observed)
        return prior.model_copy(update=observed)
