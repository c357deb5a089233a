"""HTTP client for the sensor snapshot endpoints."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Unable to load sensors"


class SnapshotError(Exception):
    """Raised when a snapshot cannot be fetched.

    ``message`` is suitable for showing to the user: the server's own message
    when it sent one, otherwise the transport error.
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class SnapshotClient:
    """Fetches the latest sensor snapshot and recent history over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API root, e.g. "https://host/api".
            timeout: Total request timeout in seconds.
            session: Shared session to use. The client closes only sessions
                     it created itself.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self):
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_latest(self, device_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Fetch the current snapshot for a device.

        Args:
            device_id: Device to fetch; the server picks its default if None.

        Returns:
            The snapshot mapping, or None when no device is reporting.

        Raises:
            SnapshotError: On timeout, connection failure or HTTP error.
        """
        params = {"deviceId": device_id} if device_id else None
        body = await self._get_json("/sensors/latest", params)
        payload = unwrap_envelope(body)

        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not isinstance(payload, dict) or not payload:
            return None
        return payload

    async def fetch_history(self, device_id: Optional[str] = None, limit: int = 336) -> List[Dict[str, Any]]:
        """Fetch the most recent stored readings.

        Raises:
            SnapshotError: On timeout, connection failure or HTTP error.
        """
        params: Dict[str, Any] = {"limit": limit}
        if device_id:
            params["deviceId"] = device_id
        body = await self._get_json("/sensors/data", params)
        payload = unwrap_envelope(body)

        if isinstance(payload, dict):
            payload = payload.get("items") or payload.get("readings") or []
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        session = await self._get_session()

        try:
            async with session.get(url, params=params, timeout=self.timeout) as response:
                body = await self._read_body(response)
                if response.status >= 400:
                    message = server_message(body) or f"HTTP {response.status}: {response.reason}"
                    raise SnapshotError(message, status=response.status)
                return body
        except asyncio.TimeoutError:
            raise SnapshotError(f"Request to {path} timed out after {self.timeout.total:.0f}s")
        except aiohttp.ClientError as e:
            raise SnapshotError(str(e) or DEFAULT_ERROR_MESSAGE)

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        if response.status == 204:
            return None
        try:
            return await response.json(content_type=None)
        except ValueError:
            # Not JSON; keep the text for error messages
            text = await response.text()
            return text.strip() or None


def unwrap_envelope(body: Any) -> Any:
    """Strip ``{"success": ..., "data": ...}`` wrappers, however deeply nested."""
    while isinstance(body, dict) and "data" in body:
        body = body["data"]
    return body


def server_message(body: Any) -> Optional[str]:
    """Extract a structured error message from a response body."""
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict):
                nested = server_message(value)
                if nested:
                    return nested
    if isinstance(body, str) and body:
        return body[:200]
    return None
