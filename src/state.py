"""
State Store - tracked identity and last observed state per managed object.

Entries are keyed by "<kind>/<name>" and persisted as a JSON file. An entry
is written as soon as a Create reports its identity so that objects are
never lost when a later step of the Create fails.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

STATE_VERSION = 1


@dataclass
class TrackedObject:
    """One managed object as last seen."""

    kind: str
    name: str
    id: Optional[str] = None
    cx_profile_name: Optional[str] = None
    observed: Dict[str, Any] = field(default_factory=dict)
    status: str = "pending"
    message: str = ""

    @property
    def key(self) -> str:
        return state_key(self.kind, self.name)


def state_key(kind: str, name: str) -> str:
    return f"{kind}/{name}"


class StateStore:
    """JSON file backed store of TrackedObject entries."""

    def __init__(self, path: str):
        self.path = path
        self._objects: Dict[str, TrackedObject] = {}
        self.load()

    def load(self) -> None:
        """Load entries from disk; a missing file means an empty store."""
        self._objects = {}
        if not os.path.exists(self.path):
            return

        with open(self.path, "r") as f:
            data = json.load(f)

        for entry in data.get("objects", []):
            obj = TrackedObject(**entry)
            self._objects[obj.key] = obj
        logger.debug(f"Loaded {len(self._objects)} tracked object(s) from {self.path}")

    def save(self) -> None:
        """Write all entries atomically."""
        data = {
            "version": STATE_VERSION,
            "objects": [asdict(obj) for obj in self._objects.values()],
        }
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".ontap-state-")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def get(self, kind: str, name: str) -> Optional[TrackedObject]:
        return self._objects.get(state_key(kind, name))

    def list(self) -> List[TrackedObject]:
        return sorted(self._objects.values(), key=lambda o: o.key)

    def put(self, obj: TrackedObject) -> None:
        self._objects[obj.key] = obj
        self.save()

    def record_identity(
        self,
        kind: str,
        name: str,
        identity: str,
        cx_profile_name: Optional[str] = None,
        observed: Optional[Dict[str, Any]] = None,
    ) -> TrackedObject:
        """Track a freshly created object before anything else happens."""
        obj = self.get(kind, name) or TrackedObject(kind=kind, name=name)
        obj.id = identity
        obj.cx_profile_name = cx_profile_name
        if observed is not None:
            obj.observed = dict(observed, id=identity)
        obj.status = "created"
        self.put(obj)
        logger.info(f"Tracking {obj.key} as {identity}")
        return obj

    def remove(self, kind: str, name: str) -> bool:
        obj = self._objects.pop(state_key(kind, name), None)
        if obj is None:
            return False
        self.save()
        return True
