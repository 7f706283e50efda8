"""
Durable tool-data store client.

Talks to the tool-data proxy that fronts the per-user record store. The
user's bearer token is forwarded as-is; the proxy derives the user from it.
A missing record is "no data", never an error. Transport and HTTP failures
raise ToolDataStoreError.
"""

import os
import logging
from typing import Any, Dict, Optional

import httpx
from dotenv import load_dotenv

from errors import ToolDataStoreError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_PROXY_URL = "https://proxy.retirewise.now"
TOOL_DATA_PROXY_URL = os.getenv("TOOL_DATA_PROXY_URL", DEFAULT_PROXY_URL)
TOOL_DATA_TIMEOUT_SECONDS = float(os.getenv("TOOL_DATA_TIMEOUT_SECONDS", "15"))


def remove_none(obj: Any) -> Any:
    """Recursively drop None values from dicts and lists before saving."""
    if isinstance(obj, dict):
        return {k: remove_none(v) for k, v in obj.items() if v is not None}
    if isinstance(obj, list):
        return [remove_none(v) for v in obj if v is not None]
    return obj


class ToolDataStore:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or TOOL_DATA_PROXY_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else TOOL_DATA_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self, auth_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {auth_token}"},
            transport=self._transport,
        )

    async def _request(self, auth_token: str, method: str, path: str, **kwargs) -> Optional[httpx.Response]:
        """Returns None on 404; raises ToolDataStoreError on any other failure."""
        if not auth_token:
            raise ToolDataStoreError("No auth token provided")
        try:
            async with self._client(auth_token) as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ToolDataStoreError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise ToolDataStoreError(
                f"{method} {path} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ToolDataStoreError(f"Invalid JSON from tool-data store: {e}") from e

    async def load(self, user_id: str, auth_token: str) -> Dict[str, Dict[str, Any]]:
        """All records for the user as {tool_id: {data, created}}."""
        resp = await self._request(auth_token, "GET", "/api/tool-data/load-all")
        if resp is None:
            return {}
        result = self._json(resp)
        if not isinstance(result, dict):
            logger.warning("Unexpected load-all payload for user %s: %s", user_id, type(result).__name__)
            return {}
        return {k: v for k, v in result.items() if isinstance(v, dict)}

    async def load_one(self, user_id: str, auth_token: str, tool_id: str) -> Optional[Dict[str, Any]]:
        resp = await self._request(auth_token, "GET", "/api/tool-data/load", params={"toolId": tool_id})
        if resp is None:
            return None
        result = self._json(resp)
        if not isinstance(result, dict) or not result.get("data"):
            return None
        return {"data": result["data"], "created": result.get("created"), "id": result.get("id")}

    async def save(self, user_id: str, auth_token: str, tool_id: str, data: Dict[str, Any]) -> Optional[str]:
        """Save a record and return its id."""
        resp = await self._request(
            auth_token, "POST", "/api/tool-data/save",
            json={"toolId": tool_id, "data": remove_none(data)},
        )
        if resp is None:
            raise ToolDataStoreError(f"Save endpoint not found for {tool_id}", status_code=404)
        result = self._json(resp)
        return result.get("id") if isinstance(result, dict) else None
