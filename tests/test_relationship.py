"""Unit tests for the snapmirror relationship controller."""

import pytest

from config import PollerConfig
from controllers.relationship import RelationshipController
from errors import (
    BackendError,
    InvalidStateError,
    TransportError,
    UnsupportedOperationError,
)
from models import ReplicationRelationship

API = "snapmirror/relationships"


@pytest.mark.asyncio
class TestRelationshipCreate:
    """Tests for creating relationships."""

    @pytest.fixture
    def controller(self, storage_gateway, poller_config):
        return RelationshipController(storage_gateway, poller_config)

    async def test_create_without_initialize(self, controller, storage_gateway, relationship_spec):
        desired = ReplicationRelationship(**dict(relationship_spec, initialize=False))

        result = await controller.create(desired)

        assert result.identity == "uuid-1"
        assert result.warning is None
        assert result.observed.id == "uuid-1"
        assert result.observed.state == "uninitialized"
        assert storage_gateway.methods() == ["POST", "GET"]

        _, api, query, body = storage_gateway.calls[0]
        assert api == API
        assert query.get("return_records") == "true"
        assert body == {
            "source": {"path": "svm_src:vol_src"},
            "destination": {"path": "svm1:vol_dst"},
        }

    async def test_create_with_initialize(self, controller, storage_gateway, relationship_spec):
        """Test that initialize moves the relationship out of uninitialized."""
        desired = ReplicationRelationship(**relationship_spec)

        result = await controller.create(desired)

        assert result.observed.state != "uninitialized"
        assert result.observed.state == "snapmirrored"
        assert result.observed.healthy is True
        patches = storage_gateway.calls_for("PATCH")
        assert len(patches) == 1
        assert patches[0][1] == f"{API}/uuid-1"
        assert patches[0][3] == {"state": "snapmirrored"}

    async def test_already_initialized_is_not_patched(
        self, controller, storage_gateway, relationship_spec
    ):
        storage_gateway.defaults[API] = {"state": "snapmirrored", "healthy": True}

        result = await controller.create(ReplicationRelationship(**relationship_spec))

        assert result.observed.state == "snapmirrored"
        assert storage_gateway.calls_for("PATCH") == []

    async def test_transition_timeout_is_warning(self, storage_gateway, relationship_spec):
        """Test that create succeeds with a warning when the state never moves."""
        storage_gateway.patch_applies = False
        controller = RelationshipController(
            storage_gateway, PollerConfig(interval=0, timeout=0)
        )

        result = await controller.create(ReplicationRelationship(**relationship_spec))

        assert result.identity == "uuid-1"
        assert result.warning is not None
        assert "still uninitialized" in result.warning
        assert result.observed.state == "uninitialized"

    async def test_create_backend_error(self, controller, storage_gateway, relationship_spec):
        """Test that a backend failure is reported once with its code."""
        storage_gateway.fail[("POST", API)] = BackendError.from_response(
            "POST",
            API,
            400,
            {"error": {"message": "duplicate entry", "code": "6619337"}},
        )
        ctx = controller.new_context("create", "svm1:vol_dst")

        with pytest.raises(BackendError) as exc_info:
            await controller.create(ReplicationRelationship(**relationship_spec), ctx)

        assert "code: 6619337" in str(exc_info.value)
        assert ctx.reporter.error is exc_info.value
        assert ctx.identity is None
        assert storage_gateway.methods() == ["POST"]

    async def test_initialize_failure_aborts_create(
        self, controller, storage_gateway, relationship_spec
    ):
        """Test that a failed initialize stops Create before any poll."""
        storage_gateway.fail[("PATCH", f"{API}/uuid-1")] = BackendError.from_response(
            "PATCH",
            f"{API}/uuid-1",
            400,
            {"error": {"message": "transfer cannot start", "code": "13303812"}},
        )
        ctx = controller.new_context("create", "svm1:vol_dst")

        with pytest.raises(BackendError, match="code: 13303812"):
            await controller.create(ReplicationRelationship(**relationship_spec), ctx)

        assert storage_gateway.methods() == ["POST", "GET", "PATCH"]
        assert ctx.identity == "uuid-1"
        assert isinstance(ctx.reporter.error, BackendError)

    async def test_identity_recorded_before_read_failure(
        self, controller, storage_gateway, relationship_spec
    ):
        recorded = []
        storage_gateway.fail[("GET", f"{API}/uuid-1")] = TransportError("reset")
        ctx = controller.new_context("create", on_identity=recorded.append)

        with pytest.raises(TransportError):
            await controller.create(ReplicationRelationship(**relationship_spec), ctx)

        assert recorded == ["uuid-1"]
        assert ctx.identity == "uuid-1"


@pytest.mark.asyncio
class TestRelationshipReadUpdateDelete:
    """Tests for read, update and delete."""

    @pytest.fixture
    def controller(self, storage_gateway, poller_config):
        return RelationshipController(storage_gateway, poller_config)

    @pytest.fixture
    def existing(self, storage_gateway):
        storage_gateway.objects[f"{API}/rel-1"] = {
            "uuid": "rel-1",
            "state": "snapmirrored",
            "healthy": False,
            "source": {"path": "svm_src:vol_src", "cluster": {"name": "c1"}},
            "destination": {"path": "svm1:vol_dst"},
        }
        return "rel-1"

    async def test_create_then_read_same_identity(
        self, controller, storage_gateway, relationship_spec
    ):
        result = await controller.create(ReplicationRelationship(**relationship_spec))
        observed = await controller.read(result.identity, result.observed)
        assert observed.id == result.identity

    async def test_read_merges_computed_fields(self, controller, existing, relationship_spec):
        prior = ReplicationRelationship(**relationship_spec)

        observed = await controller.read(existing, prior)

        assert observed.id == "rel-1"
        assert observed.state == "snapmirrored"
        assert observed.healthy is False
        assert observed.source_endpoint == prior.source_endpoint

    async def test_read_without_prior_builds_endpoints(self, controller, existing):
        observed = await controller.read(existing)

        assert observed.source_endpoint.path == "svm_src:vol_src"
        assert observed.source_endpoint.cluster.name == "c1"
        assert observed.destination_endpoint.path == "svm1:vol_dst"
        assert observed.destination_endpoint.cluster is None

    async def test_read_missing_returns_none(self, controller):
        assert await controller.read("gone") is None

    async def test_read_requires_identity(self, controller, storage_gateway):
        with pytest.raises(InvalidStateError):
            await controller.read("")
        assert storage_gateway.calls == []

    async def test_update_is_unsupported(
        self, controller, storage_gateway, existing, relationship_spec
    ):
        """Test that update always fails without touching the backend."""
        prior = ReplicationRelationship(**relationship_spec)
        desired = prior.model_copy(update={"initialize": False})

        with pytest.raises(UnsupportedOperationError, match="Update not supported"):
            await controller.update(existing, prior, desired)
        with pytest.raises(UnsupportedOperationError):
            await controller.update(existing, prior, prior)
        assert storage_gateway.calls == []

    async def test_delete(self, controller, storage_gateway, existing):
        await controller.delete(existing)

        assert storage_gateway.calls_for("DELETE")[0][1] == f"{API}/rel-1"
        assert f"{API}/rel-1" not in storage_gateway.objects

    async def test_delete_without_identity(self, controller, storage_gateway):
        with pytest.raises(InvalidStateError, match="UUID is null"):
            await controller.delete(None)
        assert storage_gateway.calls == []
