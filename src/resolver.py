"""
Reference Resolver - maps display names to backend identifiers.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from errors import AmbiguousReferenceError, NotFoundError, ValidationError
from gateway import BackendGateway, Query
from operation import OperationContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceKind:
    """Where to look up one kind of named object."""

    api: str
    label: str
    scope_field: Optional[str] = None  # query field a scope uuid filters on


REFERENCE_KINDS: Dict[str, ReferenceKind] = {
    "svm": ReferenceKind(api="svm/svms", label="svm"),
    "volume": ReferenceKind(
        api="storage/volumes", label="volume", scope_field="svm.uuid"
    ),
    "ipspace": ReferenceKind(api="network/ipspaces", label="ipspace"),
    "snapshot_policy": ReferenceKind(
        api="storage/snapshot-policies", label="snapshot policy"
    ),
}


class ReferenceResolver:
    """
    Resolves a NameReference to the uuid downstream calls need.

    A pure query: no caching and no retries. Zero matches raise
    NotFoundError, more than one raise AmbiguousReferenceError.
    """

    def __init__(self, gateway: BackendGateway):
        self.gateway = gateway

    async def resolve(
        self,
        kind: str,
        name: str,
        ctx: Optional[OperationContext] = None,
        scope: Optional[str] = None,
    ) -> str:
        """
        Resolve a name to its uuid.

        Args:
            kind: Reference kind ('svm', 'volume', 'ipspace', 'snapshot_policy').
            name: Display name; must be non-empty.
            ctx: Operation context guarding the backend call.
            scope: Scope uuid for scoped kinds (the svm uuid for volumes).

        Returns:
            The uuid of the single matching record.

        Raises:
            ValidationError: Unknown kind, empty name or missing scope.
            NotFoundError: No record matches.
            AmbiguousReferenceError: More than one record matches.
            BackendError / TransportError: The lookup itself failed.
        """
        ref = REFERENCE_KINDS.get(kind)
        if ref is None:
            raise ValidationError(f"Unknown reference kind: {kind}")
        if not name:
            raise ValidationError(f"{ref.label} name cannot be empty")

        query = Query().add("name", name)
        if ref.scope_field:
            if not scope:
                raise ValidationError(
                    f"{ref.label} '{name}' cannot be resolved without its scope"
                )
            query.add(ref.scope_field, scope)
        query.add("fields", "uuid,name")

        if ctx is not None:
            _, records = await ctx.call(
                self.gateway.get_zero_or_more_records, ref.api, query
            )
        else:
            _, records = await self.gateway.get_zero_or_more_records(ref.api, query)

        if not records:
            raise NotFoundError(f"{ref.label} {name} not found.")
        if len(records) > 1:
            raise AmbiguousReferenceError(
                f"{ref.label} name {name} matched {len(records)} records",
                details=[r.get("uuid") for r in records],
            )

        uuid = records[0].get("uuid")
        if not uuid:
            raise NotFoundError(f"{ref.label} {name} has no uuid in the response.")

        logger.debug(f"Resolved {ref.label} {name} to {uuid}")
        return uuid
