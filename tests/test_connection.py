"""
Unit tests for the connection lifecycle.

Tests ConnectionLifecycle functionality including:
- Configuration checks and backend probing with retries and backoff
- The "Cannot connect" notification and its Reconnect action
- Timers started per backend
- Keep-alive counting and volume refresh
- Idempotent disconnect and event-server notifications
"""
import asyncio

import pytest

from conftest import KODI_HOST, FakeEventClient, serve_playing_channel, wait_for_call
from kodi_integration.config import CustomSettings
from kodi_integration.services.entity_service import EntityAttr, MediaPlayerState
from kodi_integration.services.errors import NotConfiguredError
from kodi_integration.services.scheduler_service import EPG_JOB, POLL_JOB, PROGRESS_JOB
from kodi_integration.services.session_types import (
    Backend,
    ChannelGroup,
    ConnectionStatus,
    PlayerSnapshot,
    PollState,
)


def statuses(integration):
    return {backend: integration.session.status(backend) for backend in Backend}


# =============================================================================
# Connect Tests
# =============================================================================

class TestConnect:
    """Tests for connect()."""

    async def test_connect_without_backends_raises(self, make_integration, tmp_path):
        """connect() needs at least one configured backend."""
        integration = make_integration(CustomSettings(_env_file=None, database_path=str(tmp_path / "x.db")))

        with pytest.raises(NotConfiguredError):
            await integration.connect()

        assert integration.scheduler.job_ids() == []
        assert integration.session.status(Backend.KODI) is ConnectionStatus.UNCONFIGURED

    async def test_connect_brings_both_backends_online(self, kodi, tvheadend, integration, event_clients):
        """Both probes succeed: timers, channels and the event socket are up."""
        await integration.connect()

        assert statuses(integration) == {
            Backend.KODI: ConnectionStatus.ONLINE,
            Backend.TVHEADEND: ConnectionStatus.ONLINE,
            Backend.EVENT_SOCKET: ConnectionStatus.ONLINE,
        }
        assert integration.scheduler.job_ids() == sorted([POLL_JOB, EPG_JOB])
        assert [p["channelgroupid"] for p in kodi.params_of("PVR.GetChannels")] == ["alltv", "allradio"]
        assert "Player.GetActivePlayers" in kodi.methods()
        assert "/api/serverinfo" in tvheadend.paths()
        assert event_clients[0].opened
        assert event_clients[0].endpoint.host == KODI_HOST
        assert event_clients[0].endpoint.port == 9090

    async def test_kodi_probe_retries_with_backoff(self, kodi, make_integration, settings, sleeps):
        """Failed pings are retried with exponential delays."""
        integration = make_integration(settings.model_copy(update={"probe_backoff_initial_sec": 1.0}))
        kodi.errors.add("JSONRPC.Ping")

        await integration.connect()

        assert kodi.methods().count("JSONRPC.Ping") == 3
        assert sleeps == [1.0, 2.0]

    async def test_kodi_unreachable_notifies_and_disconnects(self, kodi, integration):
        """After the last try the user is offered a reconnect."""
        kodi.errors.add("JSONRPC.Ping")

        await integration.connect()

        assert integration.session.status(Backend.KODI) is ConnectionStatus.OFFLINE
        assert integration.scheduler.job_ids() == []
        [note] = integration.notifications.list()
        assert note.text == "Cannot connect to Kodi."
        assert note.error
        assert note.action_label == "Reconnect"

    async def test_repeated_give_up_keeps_one_notification(self, kodi, integration):
        """Failing to reconnect again replaces the pending prompt."""
        kodi.errors.add("JSONRPC.Ping")
        await integration.connect()
        [first] = integration.notifications.list()

        await integration.connect()

        [note] = integration.notifications.list()
        assert note.id != first.id
        assert note.text == "Cannot connect to Kodi."

    async def test_reconnect_action_connects_again(self, kodi, integration):
        """Triggering the notification runs connect() once more."""
        kodi.errors.add("JSONRPC.Ping")
        await integration.connect()
        [note] = integration.notifications.list()

        kodi.errors.clear()
        assert await integration.notifications.trigger(note.id)

        assert integration.session.is_online(Backend.KODI)
        assert integration.notifications.list() == []

    async def test_kodi_recovers_on_second_try(self, kodi, integration):
        """A ping that fails once and then succeeds still connects."""
        answers = iter(["busy", "pong"])
        kodi.results["JSONRPC.Ping"] = lambda params: next(answers)

        await integration.connect()

        assert integration.session.is_online(Backend.KODI)
        assert integration.session.network_tries == 0

    async def test_tvheadend_unreachable_keeps_kodi(self, tvheadend, integration):
        """TVHeadend failure only disables the EPG."""
        tvheadend.errors.add("/api/serverinfo")

        await integration.connect()

        assert integration.session.status(Backend.TVHEADEND) is ConnectionStatus.OFFLINE
        assert integration.session.is_online(Backend.KODI)
        assert integration.scheduler.job_ids() == [POLL_JOB]
        assert integration.notifications.list() == []

    async def test_tvheadend_without_name_is_rejected(self, tvheadend, integration):
        """A server info without a name is not TVHeadend."""
        tvheadend.results["/api/serverinfo"] = {"version": "x"}

        await integration.connect()

        assert integration.session.status(Backend.TVHEADEND) is ConnectionStatus.OFFLINE

    async def test_tvheadend_only(self, tvheadend, make_integration, settings):
        """Without Kodi only the EPG timer runs."""
        integration = make_integration(settings.model_copy(update={"kodi_host": ""}))

        await integration.connect()

        assert integration.session.status(Backend.KODI) is ConnectionStatus.UNCONFIGURED
        assert integration.session.is_online(Backend.TVHEADEND)
        assert integration.scheduler.job_ids() == [EPG_JOB]

    async def test_event_server_unavailable_falls_back_to_polling(self, integration, event_clients, monkeypatch):
        """A closed event port does not prevent the connection."""
        monkeypatch.setattr(FakeEventClient, "available", False)

        await integration.connect()

        assert integration.session.is_online(Backend.KODI)
        assert integration.session.status(Backend.EVENT_SOCKET) is ConnectionStatus.OFFLINE
        assert POLL_JOB in integration.scheduler.job_ids()

    async def test_connect_twice_restarts_session(self, integration, event_clients):
        """A second connect tears the first session down."""
        await integration.connect()
        first_epoch = integration.session.epoch

        await integration.connect()

        assert event_clients[0].closed
        assert len(event_clients) == 2
        assert integration.session.epoch > first_epoch + 1


# =============================================================================
# Disconnect and Standby Tests
# =============================================================================

class TestDisconnect:
    """Tests for disconnect() and standby."""

    async def test_disconnect_stops_everything(self, kodi, integration, event_clients):
        """Timers, socket and entity are cleared."""
        serve_playing_channel(kodi)
        await integration.connect()
        assert integration.scheduler.has_job(PROGRESS_JOB)

        await integration.disconnect()

        assert integration.scheduler.job_ids() == []
        assert event_clients[0].closed
        assert integration.session.snapshot == PlayerSnapshot()
        assert integration.session.poll_state is PollState.GET_ACTIVE_PLAYERS
        assert integration.entities.attribute(integration.entity_id, EntityAttr.STATE) is MediaPlayerState.IDLE
        assert set(statuses(integration).values()) == {ConnectionStatus.OFFLINE}

    async def test_disconnect_is_idempotent(self, integration):
        """Calling disconnect twice yields the same state."""
        await integration.connect()
        await integration.disconnect()
        first = statuses(integration)

        await integration.disconnect()

        assert statuses(integration) == first
        assert integration.scheduler.job_ids() == []

    async def test_disconnect_while_event_socket_opens(self, integration, event_clients, monkeypatch):
        """A socket that finishes opening after disconnect() is closed, not kept."""
        gate = asyncio.Event()
        monkeypatch.setattr(FakeEventClient, "open_gate", gate)
        connecting = asyncio.create_task(integration.connect())
        async with asyncio.timeout(1):
            while not event_clients:
                await asyncio.sleep(0.005)

        await integration.disconnect()
        gate.set()
        await connecting

        assert event_clients[0].closed
        assert integration.lifecycle.event_client is None
        assert integration.session.status(Backend.EVENT_SOCKET) is ConnectionStatus.OFFLINE
        assert integration.session.status(Backend.KODI) is ConnectionStatus.OFFLINE
        assert integration.scheduler.job_ids() == []

    async def test_disconnect_before_connect(self, integration):
        """Disconnecting a fresh integration is harmless."""
        await integration.disconnect()

        assert integration.scheduler.job_ids() == []

    async def test_disconnect_discards_in_flight_poll(self, kodi, integration):
        """A poll answer arriving after disconnect must not update the entity."""
        await integration.connect()
        serve_playing_channel(kodi)
        kodi.gates["Player.GetItem"] = asyncio.Event()
        cycle = asyncio.create_task(integration.poller.poll_cycle())
        await wait_for_call(kodi, "Player.GetItem")

        await integration.disconnect()
        kodi.gates["Player.GetItem"].set()
        await cycle

        assert integration.session.snapshot == PlayerSnapshot()
        assert integration.entities.attribute(integration.entity_id, EntityAttr.MEDIATITLE) == ""

    async def test_standby_round_trip(self, integration):
        """Standby disconnects; leaving it connects again."""
        await integration.connect()

        await integration.enter_standby()
        assert integration.session.status(Backend.KODI) is ConnectionStatus.OFFLINE

        await integration.leave_standby()
        assert integration.session.is_online(Backend.KODI)

    async def test_mappings_survive_disconnect(self, kodi, tvheadend, integration):
        """The reconciled mapping is kept across sessions."""
        kodi.results["PVR.GetChannels"] = {
            "channels": [{"channelid": 7, "channelnumber": 3, "label": "BBC One"}]
        }
        tvheadend.results["/api/channel/list"] = {"entries": [{"key": "uuid-123", "val": "BBC One"}]}
        await integration.connect()

        await integration.disconnect()

        assert integration.session.mappings[ChannelGroup.TV].uuid_for(3) == "uuid-123"
        assert integration.status()["mapped_channels"][ChannelGroup.TV] == 1


# =============================================================================
# Keep-alive Tests
# =============================================================================

class TestKeepAlive:
    """Tests for keep_alive() and poll ticks."""

    async def test_keep_alive_refreshes_volume(self, integration):
        await integration.connect()

        assert await integration.lifecycle.keep_alive()

        assert integration.entities.attribute(integration.entity_id, EntityAttr.VOLUME) == 50

    async def test_keep_alive_failures_are_counted(self, kodi, integration):
        """Each missed ping counts towards the limit."""
        await integration.connect()
        kodi.errors.add("JSONRPC.Ping")

        assert await integration.lifecycle.keep_alive()
        assert integration.session.network_tries == 1
        assert integration.session.is_online(Backend.KODI)

    async def test_keep_alive_gives_up_after_max_tries(self, kodi, integration):
        """Reaching max_connection_tries disconnects with a notification."""
        await integration.connect()
        kodi.errors.add("JSONRPC.Ping")

        results = [await integration.lifecycle.keep_alive() for _ in range(3)]

        assert results == [True, True, False]
        assert integration.session.status(Backend.KODI) is ConnectionStatus.OFFLINE
        assert [n.action_label for n in integration.notifications.list()] == ["Reconnect"]

    async def test_successful_ping_resets_counter(self, kodi, integration):
        await integration.connect()
        kodi.errors.add("JSONRPC.Ping")
        await integration.lifecycle.keep_alive()

        kodi.errors.clear()
        await integration.lifecycle.keep_alive()

        assert integration.session.network_tries == 0

    async def test_poll_tick_pings_every_nth_tick(self, kodi, make_integration, settings):
        """Keep-alive runs on every keepalive_every_ticks-th poll tick."""
        integration = make_integration(settings.model_copy(update={"keepalive_every_ticks": 2}))
        await integration.connect()
        pings = kodi.methods().count("JSONRPC.Ping")

        await integration.lifecycle.poll_tick()
        assert kodi.methods().count("JSONRPC.Ping") == pings

        await integration.lifecycle.poll_tick()
        assert kodi.methods().count("JSONRPC.Ping") == pings + 1


# =============================================================================
# Event-server Notification Tests
# =============================================================================

class TestEventNotifications:
    """Tests for notifications pushed by Kodi."""

    async def test_on_quit_disconnects(self, integration, event_clients):
        await integration.connect()

        await event_clients[0].push("System.OnQuit")

        assert integration.session.status(Backend.KODI) is ConnectionStatus.OFFLINE
        assert integration.scheduler.job_ids() == []

    async def test_on_resume_marks_playing_and_polls(self, kodi, integration, event_clients):
        await integration.connect()
        polls = kodi.methods().count("Player.GetActivePlayers")

        await event_clients[0].push("Player.OnResume")

        assert integration.entities.attribute(integration.entity_id, EntityAttr.STATE) is MediaPlayerState.PLAYING
        assert kodi.methods().count("Player.GetActivePlayers") == polls + 1

    async def test_on_play_polls(self, kodi, integration, event_clients):
        await integration.connect()
        serve_playing_channel(kodi)

        await event_clients[0].push("Player.OnPlay")

        assert integration.session.snapshot.title == "News at Ten"

    async def test_socket_close_marks_event_socket_offline(self, integration, event_clients):
        """Losing the socket keeps Kodi online and polling."""
        await integration.connect()

        await event_clients[0].on_closed()

        assert integration.session.status(Backend.EVENT_SOCKET) is ConnectionStatus.OFFLINE
        assert integration.session.is_online(Backend.KODI)
        assert integration.lifecycle.event_client is None
        assert event_clients[0].closed
