"""
Pytest configuration and fixtures for the Kodi integration tests.

Provides:
- Fake Kodi JSON-RPC and TVHeadend REST servers behind httpx.MockTransport
- A recording entity sink and a fake event-server client
- Temporary SQLite databases
- Factories for fully wired integrations
"""
import asyncio
import json
from typing import Any, Callable

import httpx
import pytest

from kodi_integration.config import CustomSettings
from kodi_integration.database import close_db, init_db
from kodi_integration.services.integration_service import KodiIntegration, build_session
from kodi_integration.services.scheduler_service import IntegrationScheduler
from kodi_integration.services.session_types import Backend, ConnectionStatus
from kodi_integration.services.transport_service import Transport


KODI_HOST = "kodi.test"
TVH_HOST = "tvh.test"


class FakeKodi:
    """Answers JSON-RPC calls from a method -> result table."""

    def __init__(self) -> None:
        self.results: dict[str, Any] = {
            "JSONRPC.Ping": "pong",
            "Player.GetActivePlayers": [],
            "PVR.GetChannels": {"channels": []},
            "Application.GetProperties": {"volume": 50, "muted": False},
        }
        self.errors: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[str, dict]] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method = body["method"]
        params = body.get("params") or {}
        self.calls.append((method, params))

        if method in self.gates:
            await self.gates[method].wait()
        if method in self.errors:
            return httpx.Response(500, text="Internal Server Error")

        result = self.results.get(method, "OK")
        if callable(result):
            result = result(params)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def params_of(self, method: str) -> list[dict]:
        return [params for name, params in self.calls if name == method]


class FakeTVHeadend:
    """Answers REST GETs from a path -> JSON table."""

    def __init__(self) -> None:
        self.epg: dict[str, list[dict]] = {}
        self.results: dict[str, Any] = {
            "/api/serverinfo": {"name": "Tvheadend", "sw_version": "4.3"},
            "/api/channel/list": {"entries": []},
            "/api/epg/events/grid": self._grid,
        }
        self.errors: set[str] = set()
        self.calls: list[tuple[str, dict]] = []
        self.auth_headers: list[str | None] = []

    def _grid(self, params: dict) -> dict:
        entries = self.epg.get(params.get("channel", ""), [])
        return {"entries": entries, "totalCount": len(entries)}

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = dict(request.url.params)
        self.calls.append((path, params))
        self.auth_headers.append(request.headers.get("authorization"))

        if path in self.errors or path not in self.results:
            return httpx.Response(500 if path in self.errors else 404)
        result = self.results[path]
        if callable(result):
            result = result(params)
        return httpx.Response(200, json=result)

    def paths(self) -> list[str]:
        return [path for path, _ in self.calls]


class RecordingSink:
    """EntitySink that records every update."""

    def __init__(self) -> None:
        self.updates: list[tuple[Any, Any]] = []
        self.models: list[Any] = []

    def update_attr(self, entity_id, attr, value) -> None:
        self.updates.append((attr, value))

    def set_browse_model(self, entity_id, model) -> None:
        self.models.append(model)

    def values(self, attr) -> list[Any]:
        return [value for name, value in self.updates if name is attr]


class FakeEventClient:
    """Stands in for EventServerClient; tests push notifications through it."""

    available = True
    open_gate: asyncio.Event | None = None

    def __init__(self, endpoint, on_message, on_closed=None, *, connect_timeout: float = 5.0) -> None:
        self.endpoint = endpoint
        self.on_message = on_message
        self.on_closed = on_closed
        self.opened = False
        self.closed = False

    async def open(self) -> bool:
        if self.open_gate is not None:
            await self.open_gate.wait()
        self.opened = self.available
        return self.available

    async def close(self) -> None:
        self.closed = True

    async def push(self, method: str, params: dict | None = None) -> None:
        await self.on_message(method, params or {})


def make_http_transport(kodi: FakeKodi, tvheadend: FakeTVHeadend) -> httpx.MockTransport:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == KODI_HOST:
            return await kodi(request)
        if request.url.host == TVH_HOST:
            return await tvheadend(request)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def serve_playing_channel(
    kodi: FakeKodi,
    *,
    title: str = "News at Ten",
    thumbnail: str = "image://thumb.png/",
    speed: int = 1,
    media_type: str = "channel",
) -> None:
    """Make the fake Kodi report a live TV channel on player 1."""
    kodi.results["Player.GetActivePlayers"] = [{"playerid": 1, "type": "video"}]
    kodi.results["Player.GetItem"] = {
        "item": {"type": media_type, "id": 7, "title": title, "label": "BBC One", "thumbnail": thumbnail}
    }
    kodi.results["Files.PrepareDownload"] = {
        "protocol": "http",
        "mode": "redirect",
        "details": {"path": "vfs/thumb.png"},
    }
    kodi.results["Player.GetProperties"] = {
        "totaltime": {"hours": 0, "minutes": 30, "seconds": 0, "milliseconds": 0},
        "time": {"hours": 0, "minutes": 1, "seconds": 5, "milliseconds": 900},
        "speed": speed,
    }


async def wait_for_call(kodi: FakeKodi, method: str, timeout: float = 1.0) -> None:
    async with asyncio.timeout(timeout):
        while method not in kodi.methods():
            await asyncio.sleep(0.005)


@pytest.fixture
def settings(tmp_path) -> CustomSettings:
    return CustomSettings(
        _env_file=None,
        kodi_host=KODI_HOST,
        tvheadend_host=TVH_HOST,
        database_path=str(tmp_path / "settings.db"),
        max_connection_tries=3,
        probe_backoff_initial_sec=0,
    )


@pytest.fixture
def kodi() -> FakeKodi:
    return FakeKodi()


@pytest.fixture
def tvheadend() -> FakeTVHeadend:
    return FakeTVHeadend()


@pytest.fixture
def http_transport(kodi, tvheadend) -> httpx.MockTransport:
    return make_http_transport(kodi, tvheadend)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
async def transport(http_transport):
    transport = Transport(timeout=5, http_transport=http_transport)
    yield transport
    await transport.aclose()


@pytest.fixture
async def scheduler():
    scheduler = IntegrationScheduler()
    yield scheduler
    scheduler.shutdown()


@pytest.fixture
def session(settings):
    """Session with both backends online, as after a successful connect."""
    session = build_session(settings)
    session.statuses[Backend.KODI] = ConnectionStatus.ONLINE
    session.statuses[Backend.TVHEADEND] = ConnectionStatus.ONLINE
    session.epoch = 1
    return session


@pytest.fixture
async def database(tmp_path):
    await init_db(str(tmp_path / "mappings.db"))
    yield
    await close_db()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def event_clients() -> list[FakeEventClient]:
    return []


@pytest.fixture
async def make_integration(http_transport, sleeps, event_clients, database) -> Callable[..., KodiIntegration]:
    created: list[KodiIntegration] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    def factory(settings, **overrides) -> KodiIntegration:
        def event_client_factory(*args, **kwargs):
            client = FakeEventClient(*args, **kwargs)
            event_clients.append(client)
            return client

        integration = KodiIntegration.from_settings(
            settings,
            http_transport=overrides.pop("http_transport", http_transport),
            event_client_factory=event_client_factory,
            sleep=fake_sleep,
            **overrides,
        )
        created.append(integration)
        return integration

    yield factory

    for integration in created:
        await integration.aclose()


@pytest.fixture
async def integration(make_integration, settings) -> KodiIntegration:
    return make_integration(settings)
