"""Realtime database client over the Firebase-style REST API.

Endpoints:
- GET/PUT/DELETE/POST {url}/{path}.json
- Conditional writes: GET with X-Firebase-ETag, then PUT with if-match
  (HTTP 412 means another writer got there first)
- Subscriptions: GET with Accept: text/event-stream

The REST surface has no server-side disconnect hook, so paths registered
for disconnect cleanup are removed on graceful close() only. A client that
dies without closing leaves them behind.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import aiohttp

from ..errors import ConcurrencyConflict, ConnectivityError, PermissionDeniedError
from ..room import join_path
from .base import ChangeCallback, RealtimeStore, Subscription

logger = logging.getLogger(__name__)


class RestStore(RealtimeStore):
    """REST client for a hosted realtime database.

    Usage:
        store = RestStore("https://example.firebaseio.com", auth_token=token)
        await store.start()
        price = await store.read("rooms/ROOM1/bid")
        await store.close()
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout_seconds: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout_seconds = timeout_seconds

        self._session: Optional[aiohttp.ClientSession] = None
        self._cleanup_paths: List[str] = []
        self._subscriptions: List[Subscription] = []

    async def start(self) -> None:
        """Open the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
            logger.info(f"REST store connected to {self.base_url}")

    async def close(self) -> None:
        """Run disconnect cleanups, cancel subscriptions and close the session."""
        if self._session is None:
            return

        for path in self._cleanup_paths:
            try:
                await self.remove(path)
            except ConnectivityError as e:
                logger.warning(f"Disconnect cleanup of {path} failed: {e}")
        self._cleanup_paths = []

        try:
            for subscription in self._subscriptions:
                await subscription.cancel()
        finally:
            self._subscriptions = []
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "RestStore":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _url(self, path: str) -> str:
        normalized = join_path(path) if path else ""
        return f"{self.base_url}/{normalized}.json"

    def _params(self) -> Dict[str, str]:
        return {"auth": self.auth_token} if self.auth_token else {}

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise ConnectivityError("REST store is not started")
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Mapping[str, str], Any]:
        """Send a request and decode the JSON response."""
        session = self._require_session()
        kwargs: Dict[str, Any] = {"params": self._params(), "headers": headers or {}}
        if method in ("PUT", "POST"):
            kwargs["data"] = json.dumps(body)

        try:
            async with session.request(method, self._url(path), **kwargs) as resp:
                text = await resp.text()
                status = resp.status
                resp_headers = resp.headers
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ConnectivityError(f"{method} {path} failed: {e}") from e

        if status == 412:
            raise ConcurrencyConflict(f"{path} changed since it was read")
        if status in (401, 403):
            raise PermissionDeniedError(f"{method} {path} rejected: {text[:200]}")
        if status >= 400:
            raise ConnectivityError(f"{method} {path} returned HTTP {status}: {text[:200]}")

        try:
            data = json.loads(text) if text else None
        except json.JSONDecodeError as e:
            raise ConnectivityError(f"{method} {path} returned invalid JSON") from e

        return status, resp_headers, data

    async def read(self, path: str) -> Any:
        _, _, data = await self._request("GET", path)
        return data

    async def write(self, path: str, value: Any) -> None:
        if value is None:
            await self.remove(path)
            return
        await self._request("PUT", path, body=value)

    async def remove(self, path: str) -> None:
        await self._request("DELETE", path)

    async def append(self, path: str, value: Any) -> str:
        _, _, data = await self._request("POST", path, body=value)
        if not isinstance(data, dict) or "name" not in data:
            raise ConnectivityError(f"POST {path} did not return a generated key")
        return data["name"]

    async def _read_versioned(self, path: str) -> Tuple[Any, Any]:
        _, headers, data = await self._request("GET", path, headers={"X-Firebase-ETag": "true"})
        etag = headers.get("ETag")
        if etag is None:
            raise ConnectivityError(f"GET {path} returned no ETag")
        return data, etag

    async def _write_if_unchanged(self, path: str, value: Any, version: Any) -> None:
        headers = {"if-match": version}
        if value is None:
            await self._request("DELETE", path, headers=headers)
        else:
            await self._request("PUT", path, body=value, headers=headers)

    async def register_disconnect_cleanup(self, path: str) -> None:
        self._cleanup_paths.append(join_path(path))
        logger.debug(f"{path} will be removed when this REST connection closes")

    async def cancel_disconnect_cleanup(self, path: str) -> None:
        normalized = join_path(path)
        self._cleanup_paths = [p for p in self._cleanup_paths if p != normalized]

    async def subscribe(self, path: str, callback: ChangeCallback) -> Subscription:
        self._require_session()
        task = asyncio.create_task(self._stream(path, callback))
        subscription = Subscription(path, task)
        self._subscriptions.append(subscription)
        return subscription

    async def _stream(self, path: str, callback: ChangeCallback) -> None:
        """Consume the event stream for path until cancelled or revoked."""
        session = self._require_session()
        headers = {"Accept": "text/event-stream"}
        timeout = aiohttp.ClientTimeout(total=None, sock_read=None)

        try:
            async with session.get(
                self._url(path), params=self._params(), headers=headers, timeout=timeout
            ) as resp:
                if resp.status != 200:
                    raise ConnectivityError(f"Stream {path} returned HTTP {resp.status}")

                event: Optional[str] = None
                async for raw_line in resp.content:
                    line = raw_line.decode("utf-8").rstrip("\r\n")
                    if line.startswith("event:"):
                        event = line[len("event:"):].strip()
                    elif line.startswith("data:"):
                        if not await self._handle_stream_event(path, event, callback):
                            return
                        event = None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Stream {path} dropped: {e}")
            raise ConnectivityError(f"Stream {path} dropped: {e}") from e

    async def _handle_stream_event(self, path: str, event: Optional[str], callback: ChangeCallback) -> bool:
        """Handle one stream event; returns False when the stream must stop."""
        if event in ("put", "patch"):
            # Event payloads are relative patches; deliver the full value instead
            value = await self.read(path)
            try:
                await callback(value)
            except Exception:
                logger.exception(f"Subscriber callback for {path} failed")
            return True

        if event in ("cancel", "auth_revoked"):
            logger.error(f"Stream {path} ended by server: {event}")
            return False

        # keep-alive
        return True
