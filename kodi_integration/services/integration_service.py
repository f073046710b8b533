"""
Kodi integration

Wires one session's components together and exposes the lifecycle and the
command entry point to the HTTP layer.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from kodi_integration.config import CustomSettings
from kodi_integration.services.channel_reconciler import ChannelReconciler
from kodi_integration.services.command_service import CommandDispatcher
from kodi_integration.services.connection_service import (
    ConnectionLifecycle,
    EventClientFactory,
    LifecycleOptions,
)
from kodi_integration.services.entity_service import MediaPlayerEntityStore
from kodi_integration.services.epg_service import EPGAggregator
from kodi_integration.services.event_server_service import EventServerClient
from kodi_integration.services.mapping_store import MappingStore
from kodi_integration.services.notification_service import NotificationCenter
from kodi_integration.services.player_poller import PlayerPoller
from kodi_integration.services.scheduler_service import IntegrationScheduler
from kodi_integration.services.session_types import (
    Backend,
    ChannelGroup,
    Command,
    Endpoint,
    SessionState,
)
from kodi_integration.services.transport_service import Transport
from kodi_integration.utils.timezone import resolve_timezone


logger = logging.getLogger(__name__)

KODI_JSONRPC_PATH = "/jsonrpc"


def build_session(settings: CustomSettings) -> SessionState:
    """Create the session state with the endpoints described by the settings."""
    kodi = Endpoint(
        scheme=settings.kodi_scheme,
        host=settings.kodi_host,
        port=settings.kodi_port,
        path=KODI_JSONRPC_PATH,
        username=settings.kodi_user or None,
        password=settings.kodi_password or None,
    )
    event_server = Endpoint(scheme="tcp", host=settings.kodi_host, port=settings.kodi_event_port)
    tvheadend = Endpoint(
        scheme=settings.tvheadend_scheme,
        host=settings.tvheadend_host,
        port=settings.tvheadend_port,
        username=settings.tvheadend_user or None,
        password=settings.tvheadend_password or None,
    )
    return SessionState(kodi=kodi, event_server=event_server, tvheadend=tvheadend, entity_id=settings.entity_id)


class KodiIntegration:
    """One Kodi (+ TVHeadend) media player integration."""

    def __init__(
        self,
        session: SessionState,
        transport: Transport,
        scheduler: IntegrationScheduler,
        entities: MediaPlayerEntityStore,
        notifications: NotificationCenter,
        poller: PlayerPoller,
        reconcilers: dict[ChannelGroup, ChannelReconciler],
        epg: EPGAggregator,
        lifecycle: ConnectionLifecycle,
        commands: CommandDispatcher,
    ) -> None:
        self.session = session
        self.transport = transport
        self.scheduler = scheduler
        self.entities = entities
        self.notifications = notifications
        self.poller = poller
        self.reconcilers = reconcilers
        self.epg = epg
        self.lifecycle = lifecycle
        self.commands = commands

    @classmethod
    def from_settings(
        cls,
        settings: CustomSettings,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
        event_client_factory: EventClientFactory = EventServerClient,
        store: MappingStore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> KodiIntegration:
        session = build_session(settings)
        transport = Transport(timeout=settings.request_timeout_sec, http_transport=http_transport)
        scheduler = IntegrationScheduler(timezone=settings.display_timezone)
        entities = MediaPlayerEntityStore()
        notifications = NotificationCenter()
        store = store or MappingStore()

        poller = PlayerPoller(
            session,
            transport,
            entities,
            scheduler,
            progress_interval_sec=settings.progress_interval_sec,
        )
        reconcilers = {group: ChannelReconciler(session, transport, store, group) for group in ChannelGroup}
        epg = EPGAggregator(
            session,
            transport,
            ttl_hours=settings.epg_ttl_hours,
            grid_limit=settings.epg_grid_limit,
            channel_filter=settings.epg_channels,
        )
        options = LifecycleOptions(
            friendly_name=settings.friendly_name,
            max_connection_tries=settings.max_connection_tries,
            probe_backoff_initial_sec=settings.probe_backoff_initial_sec,
            probe_backoff_multiplier=settings.probe_backoff_multiplier,
            poll_interval_sec=settings.poll_interval_sec,
            epg_load_interval_sec=settings.epg_load_interval_sec,
            keepalive_every_ticks=settings.keepalive_every_ticks,
            event_server_connect_timeout_sec=settings.event_server_connect_timeout_sec,
        )
        lifecycle = ConnectionLifecycle(
            session,
            transport,
            scheduler,
            poller,
            reconcilers,
            epg,
            notifications,
            entities,
            options,
            event_client_factory=event_client_factory,
            sleep=sleep,
        )
        commands = CommandDispatcher(
            session,
            transport,
            entities,
            poller,
            reconcilers,
            epg,
            display_timezone=resolve_timezone(settings.display_timezone),
        )
        return cls(session, transport, scheduler, entities, notifications, poller, reconcilers, epg, lifecycle,
                   commands)

    @property
    def entity_id(self) -> str:
        return self.session.entity_id

    async def connect(self) -> None:
        await self.lifecycle.connect()

    async def disconnect(self) -> None:
        await self.lifecycle.disconnect()

    async def enter_standby(self) -> None:
        await self.lifecycle.enter_standby()

    async def leave_standby(self) -> None:
        await self.lifecycle.leave_standby()

    async def send_command(self, command: Command, param: Any = None) -> bool:
        return await self.commands.send(command, param)

    def status(self) -> dict:
        session = self.session
        return {
            "kodi": session.status(Backend.KODI).value,
            "tvheadend": session.status(Backend.TVHEADEND).value,
            "event_socket": session.status(Backend.EVENT_SOCKET).value,
            "jobs": self.scheduler.job_ids(),
            "mapped_channels": {group: len(session.mappings[group]) for group in ChannelGroup},
        }

    async def aclose(self) -> None:
        """Disconnect and release the HTTP client and the scheduler."""
        await self.lifecycle.disconnect()
        await self.transport.aclose()
        self.scheduler.shutdown()
