"""
Test suite for the durable tool-data store client

Requests are answered by an httpx.MockTransport so the proxy contract
(paths, headers, payloads, status handling) is checked without a network.
"""

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import json

import httpx
import pytest
from errors import ToolDataStoreError
from tool_store import ToolDataStore, remove_none


def _store(handler):
    return ToolDataStore(base_url="https://proxy.test/", timeout=5, transport=httpx.MockTransport(handler))


class TestRemoveNone:
    def test_nested(self):
        """None values are dropped at every depth."""
        assert remove_none({"a": None, "b": {"c": None, "d": 1}, "e": [None, 2]}) == {"b": {"d": 1}, "e": [2]}


class TestToolDataStore:
    """HTTP contract with the tool-data proxy."""

    def test_load_all(self):
        """load() forwards the bearer token and keeps only record objects."""
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            return httpx.Response(200, json={
                "income-estimator": {"data": {"totalIncome": 40000}, "created": "2026-10-01T00:00:00Z"},
                "broken": "not a record",
            })

        result = asyncio.run(_store(handler).load("user-1", "tok"))

        assert seen == {"auth": "Bearer tok", "path": "/api/tool-data/load-all"}
        assert list(result) == ["income-estimator"]

    def test_load_one_missing(self):
        """A 404 is no data, not an error."""
        store = _store(lambda request: httpx.Response(404, json={"error": "not found"}))
        assert asyncio.run(store.load_one("user-1", "tok", "orchestrator-plan")) is None

    def test_load_one(self):
        """load_one() passes the tool id as a query parameter."""
        def handler(request):
            assert request.url.params["toolId"] == "orchestrator-plan"
            return httpx.Response(200, json={"id": "r1", "data": {"userId": "user-1"}, "created": "2026-10-19"})

        record = asyncio.run(_store(handler).load_one("user-1", "tok", "orchestrator-plan"))
        assert record == {"data": {"userId": "user-1"}, "created": "2026-10-19", "id": "r1"}

    def test_save(self):
        """save() posts the tool id and the data without None values."""
        captured = {}

        def handler(request):
            captured.update(json.loads(request.content))
            return httpx.Response(200, json={"id": "rec-9"})

        record_id = asyncio.run(_store(handler).save("user-1", "tok", "orchestrator-plan", {"a": 1, "b": None}))

        assert record_id == "rec-9"
        assert captured == {"toolId": "orchestrator-plan", "data": {"a": 1}}

    def test_server_error(self):
        """HTTP errors raise ToolDataStoreError with the status code."""
        store = _store(lambda request: httpx.Response(503, text="down"))

        with pytest.raises(ToolDataStoreError) as exc_info:
            asyncio.run(store.load("user-1", "tok"))
        assert exc_info.value.status_code == 503

    def test_transport_error(self):
        """Connection failures raise ToolDataStoreError."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ToolDataStoreError):
            asyncio.run(_store(handler).load("user-1", "tok"))

    def test_missing_token(self):
        """No token never reaches the network."""
        with pytest.raises(ToolDataStoreError):
            asyncio.run(_store(lambda request: httpx.Response(200, json={})).load("user-1", ""))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
