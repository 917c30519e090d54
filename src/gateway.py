"""
Backend Gateway - REST access to the storage controller.

BackendGateway is the interface the controllers consume. RestClient is the
aiohttp implementation talking to an ONTAP cluster's /api endpoint.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from config import ConnectionProfile
from errors import BackendError, TransportError

logger = logging.getLogger(__name__)

JOB_TERMINAL_STATES = ("success", "failure")


class Query:
    """Ordered key/value pairs appended to a request URL."""

    def __init__(self):
        self._items: List[Tuple[str, str]] = []

    def add(self, key: str, value: Any) -> "Query":
        if isinstance(value, bool):
            value = "true" if value else "false"
        self._items.append((key, str(value)))
        return self

    def items(self) -> List[Tuple[str, str]]:
        return list(self._items)

    def get(self, key: str) -> Optional[str]:
        for k, v in self._items:
            if k == key:
                return v
        return None

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return "&".join(f"{k}={v}" for k, v in self._items)


class BackendGateway(ABC):
    """
    Abstract REST gateway.

    Implementations raise BackendError for non-success responses and
    TransportError when a call cannot be completed.
    """

    @abstractmethod
    async def get_nil_or_one_record(
        self, api: str, query: Optional[Query] = None
    ) -> Tuple[int, Optional[Dict[str, Any]]]:
        """
        GET zero or one record.

        Returns:
            Tuple of (status_code, record). record is None when nothing exists.
        """
        pass

    @abstractmethod
    async def get_zero_or_more_records(
        self, api: str, query: Optional[Query] = None
    ) -> Tuple[int, List[Dict[str, Any]]]:
        """GET a collection. Returns (status_code, records)."""
        pass

    @abstractmethod
    async def call_create_method(
        self, api: str, query: Optional[Query], body: Dict[str, Any]
    ) -> Tuple[int, Dict[str, Any]]:
        """POST a new object. Returns (status_code, response)."""
        pass

    @abstractmethod
    async def call_update_method(
        self, api: str, query: Optional[Query], body: Dict[str, Any]
    ) -> Tuple[int, Dict[str, Any]]:
        """PATCH an existing object. Returns (status_code, response)."""
        pass

    @abstractmethod
    async def call_delete_method(
        self,
        api: str,
        query: Optional[Query] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Dict[str, Any]]:
        """DELETE an object. Returns (status_code, response)."""
        pass

    async def close(self) -> None:
        """Release any connection resources."""
        pass


class RestClient(BackendGateway):
    """
    Gateway implementation over aiohttp.

    One client per connection profile. The underlying ClientSession is
    created lazily so the client can be built outside a running loop.
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        session: Optional[aiohttp.ClientSession] = None,
        job_poll_interval: float = 1.0,
    ):
        self.profile = profile
        self.base_url = f"https://{profile.hostname}/api"
        self.job_poll_interval = job_poll_interval
        self._session = session

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                ssl=True if self.profile.validate_certs else False
            )
            self._session = aiohttp.ClientSession(
                auth=aiohttp.BasicAuth(self.profile.username, self.profile.password),
                timeout=aiohttp.ClientTimeout(total=self.profile.timeout),
                connector=connector,
                headers={"Accept": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _request(
        self,
        method: str,
        api: str,
        query: Optional[Query] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Dict[str, Any]]:
        """Issue one request and decode the JSON body."""
        url = f"{self.base_url}/{api}"
        params = query.items() if query else None
        logger.debug(f"{method} {api} query={query!r} body={body}")

        try:
            async with self._get_session().request(
                method, url, params=params, json=body
            ) as response:
                status = response.status
                text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"error on {method} {api}: {str(e) or type(e).__name__}"
            ) from e

        try:
            data = json.loads(text) if text else {}
        except json.JSONDecodeError as e:
            raise BackendError(
                f"failed to decode response from {method} {api}: {e}",
                status_code=status,
                details=text,
            ) from e

        if status >= 300:
            raise BackendError.from_response(method, api, status, data)

        if status == 202 and isinstance(data.get("job"), dict):
            await self._wait_on_job(method, api, data["job"])

        return status, data

    async def _wait_on_job(
        self, method: str, api: str, job: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Poll cluster/jobs/{uuid} until the job finishes."""
        job_uuid = job.get("uuid")
        if not job_uuid:
            return job

        while True:
            _, record = await self._request("GET", f"cluster/jobs/{job_uuid}")
            state = record.get("state")
            if state in JOB_TERMINAL_STATES:
                break
            logger.debug(f"Job {job_uuid} state: {state}, waiting...")
            await asyncio.sleep(self.job_poll_interval)

        if state == "failure":
            raise BackendError(
                f"error on {method} {api}: job {job_uuid} failed: "
                f"{record.get('message', '')}, code: {record.get('code')}",
                details=record,
                code=str(record.get("code")) if record.get("code") else None,
            )
        return record

    async def get_nil_or_one_record(
        self, api: str, query: Optional[Query] = None
    ) -> Tuple[int, Optional[Dict[str, Any]]]:
        try:
            status, data = await self._request("GET", api, query)
        except BackendError as e:
            if e.status_code == 404:
                return 404, None
            raise

        if "records" not in data:
            return status, data or None

        records = data.get("records") or []
        if not records:
            return status, None
        if len(records) > 1:
            raise BackendError(
                f"error on GET {api}: expected at most one record, "
                f"got {len(records)}",
                status_code=status,
                details=data,
            )
        return status, records[0]

    async def get_zero_or_more_records(
        self, api: str, query: Optional[Query] = None
    ) -> Tuple[int, List[Dict[str, Any]]]:
        status, data = await self._request("GET", api, query)
        return status, data.get("records") or []

    async def call_create_method(
        self, api: str, query: Optional[Query], body: Dict[str, Any]
    ) -> Tuple[int, Dict[str, Any]]:
        return await self._request("POST", api, query, body)

    async def call_update_method(
        self, api: str, query: Optional[Query], body: Dict[str, Any]
    ) -> Tuple[int, Dict[str, Any]]:
        return await self._request("PATCH", api, query, body)

    async def call_delete_method(
        self,
        api: str,
        query: Optional[Query] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Dict[str, Any]]:
        return await self._request("DELETE", api, query, body)
