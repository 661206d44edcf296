"""Unit tests for kube.py - Kubernetes REST object store."""

import asyncio
import json

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from config import StoreConfig
from errors import StoreError
from kube import JSON_PATCH_CONTENT_TYPE, KubernetesObjectStore
from patch import PatchDocument, PatchOp, PatchOperation

API = "https://cluster.example:6443"


def _mock_session(mock_session_cls, method, status, body=None, text=""):
    """Wire a mocked ClientSession whose ``method`` returns one response."""
    mock_resp = AsyncMock()
    mock_resp.status = status
    mock_resp.reason = "Reason"
    if isinstance(body, Exception):
        mock_resp.json = AsyncMock(side_effect=body)
    else:
        mock_resp.json = AsyncMock(return_value=body)
    mock_resp.text = AsyncMock(return_value=text)

    mock_session = AsyncMock()
    setattr(
        mock_session,
        method,
        MagicMock(
            return_value=AsyncMock(
                __aenter__=AsyncMock(return_value=mock_resp),
                __aexit__=AsyncMock(return_value=False),
            )
        ),
    )
    mock_session_cls.return_value = AsyncMock(
        __aenter__=AsyncMock(return_value=mock_session),
        __aexit__=AsyncMock(return_value=False),
    )
    return mock_session


@pytest.fixture
def kube_store(kind):
    return KubernetesObjectStore(kind, StoreConfig(api_server=API + "/", token="t0k"))


class TestKubernetesObjectStore:
    """Tests for URL and header construction."""

    def test_headers_include_token(self, kube_store):
        headers = kube_store._get_headers()
        assert headers["Authorization"] == "Bearer t0k"
        assert headers["Content-Type"] == "application/json"

    def test_headers_without_token(self, kind):
        store = KubernetesObjectStore(kind, StoreConfig(api_server=API))
        assert "Authorization" not in store._get_headers()

    def test_cluster_scoped_urls(self, kube_store):
        assert kube_store._item_url("high") == (
            f"{API}/apis/scheduling.k8s.io/v1/priorityclasses/high"
        )

    def test_namespaced_urls(self, config_map_kind):
        store = KubernetesObjectStore(config_map_kind, StoreConfig(api_server=API))
        assert store._item_url("prod/web") == (
            f"{API}/api/v1/namespaces/prod/configmaps/web"
        )


@pytest.mark.asyncio
class TestKubernetesObjectStoreAsync:
    """Tests for the REST calls."""

    async def test_create(self, kube_store):
        draft = {"metadata": {"name": "high"}, "value": 1}
        created = dict(draft, metadata={"name": "high", "resourceVersion": "7"})

        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            session = _mock_session(mock_session_cls, "post", 201, created)
            out = await kube_store.create(draft)

        assert out == created
        args, kwargs = session.post.call_args
        assert args[0] == f"{API}/apis/scheduling.k8s.io/v1/priorityclasses"
        assert kwargs["json"] == draft

    async def test_create_conflict(self, kube_store):
        status = {"kind": "Status", "reason": "AlreadyExists", "message": "exists"}

        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            _mock_session(mock_session_cls, "post", 409, status)
            with pytest.raises(StoreError) as exc_info:
                await kube_store.create({"metadata": {"name": "high"}})

        assert exc_info.value.status == 409
        assert exc_info.value.reason == "AlreadyExists"
        assert exc_info.value.message == "exists"

    async def test_get(self, kube_store):
        obj = {"metadata": {"name": "high"}, "value": 1}

        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            _mock_session(mock_session_cls, "get", 200, obj)
            assert await kube_store.get("high") == obj

    async def test_get_not_found_returns_none(self, kube_store):
        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            _mock_session(mock_session_cls, "get", 404, {"reason": "NotFound"})
            assert await kube_store.get("high") is None

    async def test_get_forbidden_raises(self, kube_store):
        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            _mock_session(
                mock_session_cls, "get", 403, {"reason": "Forbidden", "message": "no"}
            )
            with pytest.raises(StoreError) as exc_info:
                await kube_store.get("high")

        assert exc_info.value.status == 403

    async def test_patch_sends_json_patch(self, kube_store):
        document = PatchDocument([PatchOperation(PatchOp.REPLACE, ("value",), 2)])

        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            session = _mock_session(
                mock_session_cls, "patch", 200, {"metadata": {"name": "high"}}
            )
            await kube_store.patch("high", document)

        args, kwargs = session.patch.call_args
        assert args[0].endswith("/priorityclasses/high")
        assert kwargs["headers"]["Content-Type"] == JSON_PATCH_CONTENT_TYPE
        assert json.loads(kwargs["data"]) == [
            {"op": "replace", "path": "/value", "value": 2}
        ]

    async def test_patch_invalid(self, kube_store):
        document = PatchDocument([PatchOperation(PatchOp.REPLACE, ("value",), 2)])

        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            _mock_session(
                mock_session_cls, "patch", 422, {"reason": "Invalid", "message": "x"}
            )
            with pytest.raises(StoreError) as exc_info:
                await kube_store.patch("high", document)

        assert exc_info.value.status == 422

    async def test_delete(self, kube_store):
        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            _mock_session(mock_session_cls, "delete", 200, {})
            assert await kube_store.delete("high") is True

    async def test_delete_not_found(self, kube_store):
        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            _mock_session(mock_session_cls, "delete", 404, {})
            assert await kube_store.delete("high") is False

    async def test_error_without_status_body(self, kube_store):
        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            _mock_session(
                mock_session_cls,
                "delete",
                500,
                ValueError("not json"),
                text="upstream failure",
            )
            with pytest.raises(StoreError) as exc_info:
                await kube_store.delete("high")

        assert exc_info.value.status == 500
        assert exc_info.value.reason == "Reason"
        assert exc_info.value.message == "upstream failure"

    async def test_connection_failure_raises_store_error(self, kube_store):
        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            session = _mock_session(mock_session_cls, "get", 200, {})
            session.get = MagicMock(
                side_effect=aiohttp.ClientConnectionError("connection refused")
            )
            with pytest.raises(StoreError) as exc_info:
                await kube_store.get("high")

        assert exc_info.value.status == 0
        assert exc_info.value.reason == "ClientConnectionError"
        assert "connection refused" in str(exc_info.value)

    async def test_timeout_raises_store_error(self, kube_store):
        with patch("kube.aiohttp.ClientSession") as mock_session_cls:
            session = _mock_session(mock_session_cls, "patch", 200, {})
            session.patch.return_value.__aenter__.side_effect = (
                asyncio.TimeoutError()
            )
            with pytest.raises(StoreError) as exc_info:
                await kube_store.patch("high", PatchDocument())

        assert exc_info.value.status == 0
        assert exc_info.value.reason == "TimeoutError"
