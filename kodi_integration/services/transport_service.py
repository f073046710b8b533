"""
Transport Service

Issues Kodi JSON-RPC POSTs and TVHeadend GETs over one shared httpx client.

Every exchange yields exactly one `TransportResult` keyed by its correlation id.
Network failures, non-2xx answers and protocol errors become error results; the
transport never raises for them. Exchanges run as tracked tasks so the
connection lifecycle can cancel everything in flight on disconnect.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Coroutine

import httpx

from kodi_integration.services.kodi_rpc import build_payload
from kodi_integration.services.session_types import Endpoint
from kodi_integration.utils.logging_helpers import sanitize_url


logger = logging.getLogger(__name__)

FIRST_CORRELATION_ID = 12345


class RequestKind(str, Enum):
    """What a request is for; the poller and lifecycle dispatch on it."""
    PING = "ping"
    ACTIVE_PLAYERS = "active_players"
    PLAYER_ITEM = "player_item"
    PREPARE_DOWNLOAD = "prepare_download"
    PLAYER_PROPERTIES = "player_properties"
    APPLICATION_PROPERTIES = "application_properties"
    PVR_CHANNELS = "pvr_channels"
    COMMAND = "command"
    TVH_SERVER_INFO = "tvh_server_info"
    TVH_CHANNELS = "tvh_channels"
    TVH_EPG = "tvh_epg"


@dataclass(frozen=True, slots=True)
class TransportResult:
    """Outcome of one exchange."""
    correlation_id: int
    kind: RequestKind
    status_code: int | None = None
    data: Any = None
    error: str | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


class Transport:
    """
    Async HTTP transport for Kodi and TVHeadend.

    Requests are not serialized: each runs in its own task and a slow or failed
    exchange never blocks the others.
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
        first_correlation_id: int = FIRST_CORRELATION_ID,
    ) -> None:
        self._timeout = timeout
        self._http_transport = http_transport
        self._ids = itertools.count(first_correlation_id)
        self._client: httpx.AsyncClient | None = None
        self._in_flight: set[asyncio.Task] = set()

    def next_correlation_id(self) -> int:
        return next(self._ids)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._http_transport)
        return self._client

    @staticmethod
    def _auth(username: str | None, password: str | None) -> httpx.BasicAuth | None:
        if username and password:
            return httpx.BasicAuth(username, password)
        return None

    async def request(
        self,
        endpoint: Endpoint,
        payload: dict[str, Any],
        correlation_id: int,
        kind: RequestKind,
    ) -> TransportResult:
        """POST a JSON-RPC payload to Kodi."""
        return await self._track(correlation_id, kind, self._post_jsonrpc(endpoint, payload, correlation_id, kind))

    async def call(
        self,
        endpoint: Endpoint,
        kind: RequestKind,
        method: str,
        params: dict[str, Any] | None = None,
    ) -> TransportResult:
        """Build a JSON-RPC payload with a fresh correlation id and send it."""
        correlation_id = self.next_correlation_id()
        payload = build_payload(method, params, correlation_id)
        return await self.request(endpoint, payload, correlation_id, kind)

    async def get_with_auth(
        self,
        endpoint: Endpoint,
        path: str,
        query: dict[str, Any] | None,
        username: str | None,
        password: str | None,
        correlation_id: int,
        kind: RequestKind,
    ) -> TransportResult:
        """GET a TVHeadend resource, with HTTP basic auth when credentials are given."""
        return await self._track(
            correlation_id,
            kind,
            self._get_json(endpoint, path, query, self._auth(username, password), correlation_id, kind),
        )

    async def get(
        self,
        endpoint: Endpoint,
        kind: RequestKind,
        path: str,
        query: dict[str, Any] | None = None,
    ) -> TransportResult:
        """GET with the endpoint's own credentials and a fresh correlation id."""
        return await self.get_with_auth(
            endpoint,
            path,
            query,
            endpoint.username,
            endpoint.password,
            self.next_correlation_id(),
            kind,
        )

    def cancel_all(self) -> int:
        """Cancel every exchange in flight; each one still reports a cancelled result."""
        tasks = [task for task in self._in_flight if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"Cancelled {len(tasks)} in-flight request(s)")
        return len(tasks)

    async def aclose(self) -> None:
        self.cancel_all()
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _track(
        self,
        correlation_id: int,
        kind: RequestKind,
        exchange: Coroutine[Any, Any, TransportResult],
    ) -> TransportResult:
        task = asyncio.create_task(exchange)
        self._in_flight.add(task)
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            self._in_flight.discard(task)

        if task.cancelled():
            logger.debug(f"Request {correlation_id} ({kind.value}) cancelled")
            return TransportResult(correlation_id, kind, error="cancelled", cancelled=True)
        return task.result()

    async def _post_jsonrpc(
        self,
        endpoint: Endpoint,
        payload: dict[str, Any],
        correlation_id: int,
        kind: RequestKind,
    ) -> TransportResult:
        url = endpoint.url
        logger.debug(f"Request {correlation_id}: {payload.get('method')} -> {sanitize_url(url)}")
        try:
            response = await self._get_client().post(
                url,
                json=payload,
                auth=self._auth(endpoint.username, endpoint.password),
            )
        except httpx.HTTPError as e:
            return self._failure(correlation_id, kind, None, f"{type(e).__name__}: {e}", url)

        body, error = self._decode(response)
        if error:
            return self._failure(correlation_id, kind, response.status_code, error, url)
        if not isinstance(body, dict):
            return self._failure(correlation_id, kind, response.status_code, "JSON-RPC response is not an object", url)
        if body.get("id") != correlation_id:
            return self._failure(
                correlation_id,
                kind,
                response.status_code,
                f"JSON-RPC id mismatch (got {body.get('id')!r})",
                url,
            )
        if "error" in body:
            rpc_error = body["error"]
            message = rpc_error.get("message") if isinstance(rpc_error, dict) else rpc_error
            return self._failure(correlation_id, kind, response.status_code, f"JSON-RPC error: {message}", url)

        return TransportResult(correlation_id, kind, response.status_code, body.get("result"))

    async def _get_json(
        self,
        endpoint: Endpoint,
        path: str,
        query: dict[str, Any] | None,
        auth: httpx.BasicAuth | None,
        correlation_id: int,
        kind: RequestKind,
    ) -> TransportResult:
        url = f"{endpoint.base_url}{path}"
        logger.debug(f"Request {correlation_id}: GET {sanitize_url(url)} {query or ''}")
        try:
            response = await self._get_client().get(url, params=query, auth=auth)
        except httpx.HTTPError as e:
            return self._failure(correlation_id, kind, None, f"{type(e).__name__}: {e}", url)

        body, error = self._decode(response)
        if error:
            return self._failure(correlation_id, kind, response.status_code, error, url)
        return TransportResult(correlation_id, kind, response.status_code, body)

    @staticmethod
    def _decode(response: httpx.Response) -> tuple[Any, str | None]:
        if not response.is_success:
            return None, f"HTTP {response.status_code}"
        try:
            return response.json(), None
        except ValueError:
            return None, "Response body is not valid JSON"

    @staticmethod
    def _failure(
        correlation_id: int,
        kind: RequestKind,
        status_code: int | None,
        error: str,
        url: str,
    ) -> TransportResult:
        logger.warning(f"Request {correlation_id} ({kind.value}) to {sanitize_url(url)} failed: {error}")
        return TransportResult(correlation_id, kind, status_code, None, error)
