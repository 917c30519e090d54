"""
Desired and observed state models for the managed storage objects.

Fields the backend owns (id, healthy, state) are computed: they are never
sent in a mutation payload and are always refreshed from the backend.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StateModel(BaseModel):
    """Base for all managed object models."""

    model_config = ConfigDict(extra="forbid")

    cx_profile_name: Optional[str] = Field(None, description="Connection profile name")
    id: Optional[str] = Field(None, description="Backend-assigned identifier")

    def set_fields(self) -> Dict[str, Any]:
        """Fields explicitly set in the desired state, serialized."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class NameRef(BaseModel):
    """A reference to another backend object by display name."""

    name: str = Field(..., min_length=1)


class ClusterRef(BaseModel):
    name: str = Field(..., min_length=1)


class Endpoint(BaseModel):
    """Source or destination of a replication relationship."""

    path: str = Field(..., min_length=1, description="svm:volume path")
    cluster: Optional[ClusterRef] = None


class CreateDestination(BaseModel):
    enabled: bool


class ReplicationRelationship(StateModel):
    """SnapMirror relationship between two endpoints."""

    source_endpoint: Endpoint
    destination_endpoint: Endpoint
    create_destination: Optional[CreateDestination] = None
    initialize: bool = True
    healthy: Optional[bool] = None
    state: Optional[str] = None


class StorageSnapshot(StateModel):
    """Snapshot of a volume owned by an svm."""

    name: str = Field(..., min_length=1)
    volume: NameRef
    svm: NameRef
    expiry_time: Optional[str] = None
    snaplock_expiry_time: Optional[str] = None
    comment: Optional[str] = None
    snapmirror_label: Optional[str] = None


class VirtualStorageMachine(StateModel):
    """Storage virtual machine (vserver)."""

    name: str = Field(..., min_length=1)
    ipspace: Optional[NameRef] = None
    snapshot_policy: Optional[NameRef] = None
    subtype: Optional[str] = None
    comment: Optional[str] = None
    language: Optional[str] = None
    max_volumes: Optional[str] = None
    aggregates: Optional[List[NameRef]] = None

    @field_validator("max_volumes", mode="before")
    @classmethod
    def validate_max_volumes(cls, v: Any) -> Optional[str]:
        """Accept an integer or the literal 'unlimited'."""
        if v is None:
            return v
        value = str(v)
        if value in ("", "unlimited"):
            return value
        try:
            as_int = int(value)
        except ValueError:
            raise ValueError(f"expecting int value or 'unlimited', got: {value}")
        if str(as_int) != value:
            raise ValueError(f"expecting int value or 'unlimited', got: {value}")
        return value
