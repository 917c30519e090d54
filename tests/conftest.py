"""Pytest configuration and fixtures."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from config import (
    Config,
    ConnectionProfile,
    PollerConfig,
    ReconcilerConfig,
)
from gateway import BackendGateway, Query


class FakeGateway(BackendGateway):
    """
    In-memory gateway.

    Name lookups are served from ``lookups`` keyed by (api, name); created
    objects live in ``objects`` keyed by their object API path. Every call
    is appended to ``calls`` as (method, api, query, body).
    """

    def __init__(self):
        self.lookups: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.defaults: Dict[str, Dict[str, Any]] = {}
        self.fail: Dict[Tuple[str, str], Exception] = {}
        self.calls: List[Tuple[str, str, Optional[Query], Any]] = []
        self.patch_applies = True
        self.closed = False
        self._next_id = 0

    def _record(self, method, api, query=None, body=None):
        self.calls.append((method, api, query, body))
        error = self.fail.get((method, api))
        if error is not None:
            raise error

    def methods(self) -> List[str]:
        return [call[0] for call in self.calls]

    def calls_for(self, method: str) -> List[Tuple[str, str, Optional[Query], Any]]:
        return [call for call in self.calls if call[0] == method]

    def add_lookup(self, api: str, name: str, *uuids: str) -> None:
        self.lookups[(api, name)] = [{"uuid": uuid, "name": name} for uuid in uuids]

    async def get_nil_or_one_record(self, api, query=None):
        self._record("GET", api, query)
        if api not in self.objects:
            return 404, None
        return 200, dict(self.objects[api])

    async def get_zero_or_more_records(self, api, query=None):
        self._record("GET", api, query)
        name = query.get("name") if query else None
        return 200, list(self.lookups.get((api, name), []))

    async def call_create_method(self, api, query, body):
        self._record("POST", api, query, body)
        self._next_id += 1
        uuid = f"uuid-{self._next_id}"
        record = dict(self.defaults.get(api, {}))
        record.update(body)
        record["uuid"] = uuid
        self.objects[f"{api}/{uuid}"] = record
        return 201, {"num_records": 1, "records": [{"uuid": uuid}]}

    async def call_update_method(self, api, query, body):
        self._record("PATCH", api, query, body)
        if self.patch_applies and api in self.objects:
            self.objects[api].update(body)
        return 200, {}

    async def call_delete_method(self, api, query=None, body=None):
        self._record("DELETE", api, query, body)
        self.objects.pop(api, None)
        return 200, {}

    async def close(self):
        self.closed = True


@pytest.fixture
def gateway():
    """Empty in-memory gateway."""
    return FakeGateway()


@pytest.fixture
def storage_gateway(gateway):
    """Gateway preloaded with svm1/vol1 and the Default ipspace."""
    gateway.add_lookup("svm/svms", "svm1", "svm-uuid")
    gateway.add_lookup("storage/volumes", "vol1", "vol-uuid")
    gateway.add_lookup("network/ipspaces", "Default", "ipspace-uuid")
    gateway.add_lookup("storage/snapshot-policies", "default", "policy-uuid")
    gateway.defaults["snapmirror/relationships"] = {
        "state": "uninitialized",
        "healthy": True,
    }
    return gateway


@pytest.fixture
def poller_config():
    """Poller that never actually sleeps."""
    return PollerConfig(interval=0, timeout=5)


@pytest.fixture
def profile():
    """Sample connection profile."""
    return ConnectionProfile(
        name="cluster1",
        hostname="cluster1.example.com",
        username="admin",
        password="secret",
        validate_certs=False,
    )


@pytest.fixture
def config(profile, poller_config, tmp_path):
    """Config with one profile and a state file under tmp_path."""
    return Config(
        profiles={profile.name: profile},
        poller=poller_config,
        reconciler=ReconcilerConfig(
            max_concurrent_reconciles=2,
            state_file=str(tmp_path / "state.json"),
        ),
        default_profile=profile.name,
    )


@pytest.fixture
def snapshot_spec():
    """Desired state of a volume snapshot."""
    return {
        "name": "nightly",
        "volume": {"name": "vol1"},
        "svm": {"name": "svm1"},
        "comment": "taken every night",
    }


@pytest.fixture
def relationship_spec():
    """Desired state of a snapmirror relationship."""
    return {
        "source_endpoint": {"path": "svm_src:vol_src"},
        "destination_endpoint": {"path": "svm1:vol_dst"},
        "initialize": True,
    }


@pytest.fixture
def svm_spec():
    """Desired state of a storage VM."""
    return {
        "name": "svm_data",
        "ipspace": {"name": "Default"},
        "comment": "data svm",
        "language": "c.utf_8",
    }
