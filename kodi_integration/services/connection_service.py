"""
Connection Lifecycle

Drives both backends through Unconfigured -> Connecting -> Online / Offline,
owns the retry counters, the timers and the reconnect notification, and reacts
to event-server notifications.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from kodi_integration.schemas import ApplicationProperties, TVHServerInfo
from kodi_integration.services import kodi_rpc
from kodi_integration.services.channel_reconciler import ChannelReconciler
from kodi_integration.services.entity_service import EntityAttr, EntitySink
from kodi_integration.services.epg_service import EPGAggregator
from kodi_integration.services.errors import NotConfiguredError
from kodi_integration.services.event_server_service import EventServerClient
from kodi_integration.services.notification_service import NotificationCenter
from kodi_integration.services.player_poller import PlayerPoller
from kodi_integration.services.scheduler_service import EPG_JOB, POLL_JOB, IntegrationScheduler
from kodi_integration.services.session_types import (
    Backend,
    ChannelGroup,
    ConnectionStatus,
    PollState,
    SessionState,
)
from kodi_integration.services.transport_service import RequestKind, Transport
from kodi_integration.utils.logging_helpers import (
    log_probe_attempt,
    log_section_end,
    log_section_start,
    log_session_event,
)


logger = logging.getLogger(__name__)

SERVER_INFO_PATH = "/api/serverinfo"
RECONNECT_LABEL = "Reconnect"

EventClientFactory = Callable[..., EventServerClient]


@dataclass(frozen=True, slots=True)
class LifecycleOptions:
    friendly_name: str = "Kodi"
    max_connection_tries: int = 4
    probe_backoff_initial_sec: float = 1.0
    probe_backoff_multiplier: float = 2.0
    poll_interval_sec: float = 5.0
    epg_load_interval_sec: float = 10.0
    keepalive_every_ticks: int = 10
    event_server_connect_timeout_sec: float = 5.0

    def backoff(self, attempt: int) -> float:
        """Delay after the given failed attempt (0-based)."""
        return self.probe_backoff_initial_sec * self.probe_backoff_multiplier ** attempt


class ConnectionLifecycle:
    """Connects, keeps alive and disconnects one integration session."""

    def __init__(
        self,
        session: SessionState,
        transport: Transport,
        scheduler: IntegrationScheduler,
        poller: PlayerPoller,
        reconcilers: dict[ChannelGroup, ChannelReconciler],
        epg: EPGAggregator,
        notifications: NotificationCenter,
        sink: EntitySink,
        options: LifecycleOptions | None = None,
        *,
        event_client_factory: EventClientFactory = EventServerClient,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self.transport = transport
        self.scheduler = scheduler
        self.poller = poller
        self.reconcilers = reconcilers
        self.epg = epg
        self.notifications = notifications
        self.sink = sink
        self.options = options or LifecycleOptions()
        self._event_client_factory = event_client_factory
        self._sleep = sleep
        self.event_client: EventServerClient | None = None

    def _set_status(self, backend: Backend, status: ConnectionStatus) -> None:
        previous = self.session.statuses[backend]
        if previous is not status:
            logger.info(f"{backend.value}: {previous.value} -> {status.value}")
        self.session.statuses[backend] = status

    def _is_active(self) -> bool:
        return self.event_client is not None or any(
            status in (ConnectionStatus.CONNECTING, ConnectionStatus.ONLINE)
            for status in self.session.statuses.values()
        )

    async def connect(self) -> None:
        """
        Probe every configured backend and start the session.

        Raises:
            NotConfiguredError: If neither Kodi nor TVHeadend is configured
        """
        session = self.session
        if not session.kodi.is_configured and not session.tvheadend.is_configured:
            raise NotConfiguredError("Neither Kodi nor TVHeadend is configured")

        if self._is_active():
            await self.disconnect()

        log_section_start(logger, "connect")
        session.epoch += 1
        session.first_run = True
        session.network_tries = 0
        session.poll_ticks = 0
        epoch = session.epoch
        log_session_event(logger, "connecting", epoch)

        probes: dict[Backend, Awaitable[bool]] = {}
        if session.kodi.is_configured:
            self._set_status(Backend.KODI, ConnectionStatus.CONNECTING)
            probes[Backend.KODI] = self._probe(Backend.KODI, self._ping_kodi, epoch)
        if session.tvheadend.is_configured:
            self._set_status(Backend.TVHEADEND, ConnectionStatus.CONNECTING)
            probes[Backend.TVHEADEND] = self._probe(Backend.TVHEADEND, self._probe_tvheadend, epoch)

        answers = dict(zip(probes, await asyncio.gather(*probes.values())))
        if session.epoch != epoch:
            logger.info("Session changed while probing, abandoning connect")
            return

        if Backend.TVHEADEND in answers:
            if answers[Backend.TVHEADEND]:
                self._set_status(Backend.TVHEADEND, ConnectionStatus.ONLINE)
            else:
                self._set_status(Backend.TVHEADEND, ConnectionStatus.OFFLINE)
                logger.warning(
                    f"TVHeadend {session.tvheadend.base_url} unreachable after "
                    f"{self.options.max_connection_tries} tries, EPG disabled"
                )

        if Backend.KODI in answers:
            if not answers[Backend.KODI]:
                await self._give_up_kodi()
                log_section_end(logger, "connect")
                return
            self._set_status(Backend.KODI, ConnectionStatus.ONLINE)
            await self._start_kodi(epoch)

        if session.epoch == epoch and session.is_online(Backend.TVHEADEND):
            self.scheduler.add_interval_job(EPG_JOB, self.epg.refresh_step, self.options.epg_load_interval_sec)

        log_section_end(logger, "connect")

    async def _probe(self, backend: Backend, probe: Callable[[], Awaitable[bool]], epoch: int) -> bool:
        total = self.options.max_connection_tries
        url = self.session.kodi.url if backend is Backend.KODI else self.session.tvheadend.base_url
        for attempt in range(total):
            if self.session.epoch != epoch:
                return False
            log_probe_attempt(logger, backend.value, attempt + 1, total, url)
            if await probe():
                self.session.network_tries = 0
                return True
            if attempt < total - 1:
                await self._sleep(self.options.backoff(attempt))
        return False

    async def _ping_kodi(self) -> bool:
        result = await self.transport.call(self.session.kodi, RequestKind.PING, kodi_rpc.PING)
        return result.ok and result.data == kodi_rpc.PONG

    async def _probe_tvheadend(self) -> bool:
        result = await self.transport.get(self.session.tvheadend, RequestKind.TVH_SERVER_INFO, SERVER_INFO_PATH)
        if not result.ok:
            return False
        try:
            info = TVHServerInfo.model_validate(result.data)
        except ValidationError:
            logger.warning("TVHeadend server info has no name")
            return False
        logger.info(f"TVHeadend server: {info.name}")
        return True

    async def _start_kodi(self, epoch: int) -> None:
        session = self.session
        client = self._event_client_factory(
            session.event_server,
            self._on_event,
            self._on_event_closed,
            connect_timeout=self.options.event_server_connect_timeout_sec,
        )
        opened = await client.open()
        if session.epoch != epoch:
            # disconnected while the socket was opening
            await client.close()
            return
        if opened:
            self.event_client = client
            self._set_status(Backend.EVENT_SOCKET, ConnectionStatus.ONLINE)
        else:
            self._set_status(Backend.EVENT_SOCKET, ConnectionStatus.OFFLINE)
            logger.warning("Event server unavailable, relying on polling only")

        self.scheduler.add_interval_job(POLL_JOB, self.poll_tick, self.options.poll_interval_sec)

        for reconciler in self.reconcilers.values():
            await reconciler.fetch_kodi_channels()
            if session.epoch != epoch:
                return

        await self.poller.poll_cycle()

    async def poll_tick(self) -> None:
        """Poll timer handler: keep-alive every N ticks, then a poll cycle."""
        session = self.session
        if not session.is_online(Backend.KODI):
            return
        session.poll_ticks += 1
        if session.poll_ticks % self.options.keepalive_every_ticks == 0:
            if not await self.keep_alive():
                return
        await self.poller.poll_cycle()

    async def keep_alive(self) -> bool:
        """
        Ping Kodi and refresh the volume.

        Returns:
            False when Kodi was given up and the session disconnected
        """
        session = self.session
        epoch = session.epoch
        alive = await self._ping_kodi()
        if session.epoch != epoch:
            return False

        if alive:
            session.network_tries = 0
            await self._refresh_volume(epoch)
            return True

        session.network_tries += 1
        logger.warning(
            f"Kodi keep-alive failed ({session.network_tries}/{self.options.max_connection_tries})"
        )
        if session.network_tries >= self.options.max_connection_tries:
            await self._give_up_kodi()
            return False
        return True

    async def _refresh_volume(self, epoch: int) -> None:
        result = await self.transport.call(
            self.session.kodi,
            RequestKind.APPLICATION_PROPERTIES,
            kodi_rpc.APPLICATION_GET_PROPERTIES,
            {"properties": kodi_rpc.APPLICATION_PROPERTIES},
        )
        if self.session.epoch != epoch or not result.ok:
            return
        try:
            properties = ApplicationProperties.model_validate(result.data)
        except ValidationError as e:
            logger.warning(f"Unexpected Application.GetProperties payload: {e.error_count()} error(s)")
            return
        self.sink.update_attr(self.session.entity_id, EntityAttr.VOLUME, properties.volume)

    async def _give_up_kodi(self) -> None:
        self.notifications.add(
            f"Cannot connect to {self.options.friendly_name}.",
            error=True,
            action_label=RECONNECT_LABEL,
            action=self.connect,
        )
        await self.disconnect()

    async def disconnect(self) -> None:
        """Stop timers, cancel requests, close the socket and clear the entity. Idempotent."""
        session = self.session
        log_section_start(logger, "disconnect")
        session.epoch += 1
        log_session_event(logger, "disconnecting", session.epoch)

        self.scheduler.remove_all_jobs()
        self.transport.cancel_all()

        client, self.event_client = self.event_client, None
        if client is not None:
            await client.close()

        self.epg.reset()
        self.poller.clear()
        session.poll_state = PollState.GET_ACTIVE_PLAYERS
        session.pending_thumbnail = ""
        session.poll_ticks = 0

        for backend, endpoint in (
            (Backend.KODI, session.kodi),
            (Backend.TVHEADEND, session.tvheadend),
            (Backend.EVENT_SOCKET, session.kodi),
        ):
            if endpoint.is_configured:
                self._set_status(backend, ConnectionStatus.OFFLINE)
        log_section_end(logger, "disconnect")

    async def enter_standby(self) -> None:
        await self.disconnect()

    async def leave_standby(self) -> None:
        await self.connect()

    async def _on_event(self, method: str, params: dict[str, Any]) -> None:
        if method == "System.OnQuit":
            logger.info("Kodi is quitting")
            await self.disconnect()
        elif method == "Player.OnResume":
            self.poller.mark_playing()
            await self.poller.poll_cycle()
        elif method == "Player.OnPlay":
            await self.poller.poll_cycle()
        else:
            logger.debug(f"Unhandled notification {method}")

    async def _on_event_closed(self) -> None:
        client, self.event_client = self.event_client, None
        if client is not None:
            await client.close()
        if self.session.kodi.is_configured:
            self._set_status(Backend.EVENT_SOCKET, ConnectionStatus.OFFLINE)
