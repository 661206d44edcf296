"""
Kubernetes Object Store - ObjectStore implementation over the REST API.

Talks to the API server with aiohttp. Updates are sent as JSON Patch
documents; a 404 is reported as the not-found signal, every other failed
response is raised as a StoreError built from the server's Status body.
Connection failures and timeouts are raised as StoreError with status 0.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from config import StoreConfig
from errors import StoreError
from kinds.base import ResourceKind
from mapper import parse_id
from patch import PatchDocument
from store import ObjectStore

logger = logging.getLogger(__name__)

JSON_PATCH_CONTENT_TYPE = "application/json-patch+json"


class KubernetesObjectStore(ObjectStore):
    """Object store for one resource kind on a Kubernetes API server."""

    def __init__(self, kind: ResourceKind, config: Optional[StoreConfig] = None):
        self.kind = kind
        self.config = config or StoreConfig()
        self.api_server = self.config.api_server.rstrip("/")

    def _get_headers(self, content_type: str = "application/json") -> Dict[str, str]:
        """Get HTTP headers for API server requests."""
        headers = {
            "Accept": "application/json",
            "Content-Type": content_type,
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.config.request_timeout),
            connector=aiohttp.TCPConnector(ssl=self.config.verify_ssl),
        )

    def _collection_url(self, namespace: Optional[str] = None) -> str:
        return f"{self.api_server}{self.kind.api_path(namespace)}"

    def _item_url(self, object_id: str) -> str:
        namespace, name = parse_id(object_id)
        return f"{self._collection_url(namespace)}/{name}"

    async def _raise_for_status(self, response: aiohttp.ClientResponse) -> None:
        """Turn a failed response into a StoreError."""
        try:
            body = await response.json(content_type=None)
        except ValueError:
            body = None
        if isinstance(body, dict):
            reason = body.get("reason", "")
            message = body.get("message", "")
        else:
            reason = response.reason or ""
            message = await response.text()
        raise StoreError(response.status, reason, message)

    def _transport_error(self, action: str, object_id: str, e: Exception):
        """Wrap a connection failure or timeout as a StoreError."""
        logger.error(f"Failed to {action} {self.kind.kind} {object_id}: {e!r}")
        return StoreError(0, type(e).__name__, str(e) or "request failed")

    async def create(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        namespace = (draft.get("metadata") or {}).get("namespace")
        url = self._collection_url(namespace)

        try:
            async with self._session() as session:
                async with session.post(
                    url, headers=self._get_headers(), json=draft
                ) as response:
                    if response.status in (200, 201, 202):
                        return await response.json()
                    logger.error(
                        f"Failed to create {self.kind.kind}: {response.status}"
                    )
                    await self._raise_for_status(response)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._transport_error("create", url, e) from e

    async def get(self, object_id: str) -> Optional[Dict[str, Any]]:
        url = self._item_url(object_id)

        try:
            async with self._session() as session:
                async with session.get(url, headers=self._get_headers()) as response:
                    if response.status == 200:
                        return await response.json()
                    if response.status == 404:
                        return None
                    logger.debug(
                        f"Received error reading {object_id}: {response.status}"
                    )
                    await self._raise_for_status(response)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._transport_error("read", object_id, e) from e

    async def patch(
        self, object_id: str, document: PatchDocument
    ) -> Dict[str, Any]:
        url = self._item_url(object_id)

        try:
            async with self._session() as session:
                async with session.patch(
                    url,
                    headers=self._get_headers(JSON_PATCH_CONTENT_TYPE),
                    data=document.to_json(),
                ) as response:
                    if response.status == 200:
                        return await response.json()
                    logger.error(
                        f"Failed to update {self.kind.kind} {object_id}: "
                        f"{response.status}"
                    )
                    await self._raise_for_status(response)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._transport_error("update", object_id, e) from e

    async def delete(self, object_id: str) -> bool:
        url = self._item_url(object_id)

        try:
            async with self._session() as session:
                async with session.delete(
                    url, headers=self._get_headers()
                ) as response:
                    if response.status in (200, 202):
                        return True
                    if response.status == 404:
                        return False
                    logger.error(
                        f"Failed to delete {self.kind.kind} {object_id}: "
                        f"{response.status}"
                    )
                    await self._raise_for_status(response)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._transport_error("delete", object_id, e) from e
