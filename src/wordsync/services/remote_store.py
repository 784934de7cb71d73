"""Remote store boundary and its REST client."""
import logging
from typing import Optional, Protocol

import httpx

from wordsync.errors import InvariantViolation
from wordsync.models.progress import ProgressRecord, SyncState, deserialize_record, serialize_record
from wordsync.models.sync_models import StoreResponse

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """Server-side copy of the learner's progress."""

    async def upsert_progress(self, record: ProgressRecord) -> StoreResponse:
        ...

    async def delete_progress(self, user_id: str, item_id: str) -> StoreResponse:
        ...


class RestRemoteStore:
    """Remote store reached over HTTP.

    ``PUT {base}/progress/{user}/{item}`` stores a record and ``DELETE`` on the
    same path removes it. A 409 answer carries the server's record in its
    body. Transport errors and every other non-success status are treated as
    transient.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = client or httpx.AsyncClient(base_url=base_url, headers=headers)
        self.base_url = base_url.rstrip("/")

    def _path(self, user_id: str, item_id: str) -> str:
        return f"{self.base_url}/progress/{user_id}/{item_id}"

    def _conflict(self, response: httpx.Response) -> StoreResponse:
        try:
            server_record = deserialize_record(response.json())
        except (ValueError, InvariantViolation) as e:
            # Without a usable server copy there is nothing to merge against
            return StoreResponse.transient(f"unreadable conflict body: {e}")
        server_record.sync_state = SyncState.SYNCED
        return StoreResponse.conflict(server_record)

    async def upsert_progress(self, record: ProgressRecord) -> StoreResponse:
        """Store the record remotely."""
        payload = serialize_record(record)
        payload.pop("sync_state")
        try:
            response = await self.client.put(self._path(record.user_id, record.item_id), json=payload)
        except httpx.HTTPError as e:
            logger.info("Upsert of item %s failed: %s", record.item_id, e)
            return StoreResponse.transient(str(e))

        if response.is_success:
            return StoreResponse.ok()
        if response.status_code == 409:
            return self._conflict(response)
        return StoreResponse.transient(f"HTTP {response.status_code}")

    async def delete_progress(self, user_id: str, item_id: str) -> StoreResponse:
        """Remove the record remotely. A missing record counts as deleted."""
        try:
            response = await self.client.delete(self._path(user_id, item_id))
        except httpx.HTTPError as e:
            logger.info("Delete of item %s failed: %s", item_id, e)
            return StoreResponse.transient(str(e))

        if response.is_success or response.status_code == 404:
            return StoreResponse.ok()
        if response.status_code == 409:
            return self._conflict(response)
        return StoreResponse.transient(f"HTTP {response.status_code}")

    async def aclose(self) -> None:
        await self.client.aclose()
