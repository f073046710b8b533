"""
Command Dispatcher

Translates remote-control commands into Kodi JSON-RPC calls and browse views.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone, tzinfo
from typing import Any

from pydantic import BaseModel

from kodi_integration.services import kodi_rpc
from kodi_integration.services.browse_service import (
    render_channel,
    render_channel_list,
    render_grid,
    render_programme,
)
from kodi_integration.services.channel_reconciler import ChannelReconciler
from kodi_integration.services.entity_service import EntityAttr, EntitySink
from kodi_integration.services.epg_service import EPGAggregator
from kodi_integration.services.errors import InvalidCommandParam, NotConnectedError
from kodi_integration.services.player_poller import PlayerPoller
from kodi_integration.services.session_types import (
    Backend,
    ChannelGroup,
    ChannelRecord,
    Command,
    SessionState,
)
from kodi_integration.services.transport_service import RequestKind, Transport, TransportResult


logger = logging.getLogger(__name__)

NAVIGATION_METHODS = {
    Command.UP: kodi_rpc.INPUT_UP,
    Command.DOWN: kodi_rpc.INPUT_DOWN,
    Command.LEFT: kodi_rpc.INPUT_LEFT,
    Command.RIGHT: kodi_rpc.INPUT_RIGHT,
    Command.OK: kodi_rpc.INPUT_SELECT,
    Command.BACK: kodi_rpc.INPUT_BACK,
    Command.MENU: kodi_rpc.INPUT_CONTEXT_MENU,
}

CHANNEL_ACTIONS = {
    Command.NEXT: kodi_rpc.ACTION_CHANNEL_UP,
    Command.CHANNEL_UP: kodi_rpc.ACTION_CHANNEL_UP,
    Command.PREVIOUS: kodi_rpc.ACTION_CHANNEL_DOWN,
    Command.CHANNEL_DOWN: kodi_rpc.ACTION_CHANNEL_DOWN,
}

CHANNEL_MEDIA_TYPE = "channel"
EPG_ALL = "all"


class CommandDispatcher:
    """Executes remote-control commands against the session."""

    def __init__(
        self,
        session: SessionState,
        transport: Transport,
        sink: EntitySink,
        poller: PlayerPoller,
        reconcilers: dict[ChannelGroup, ChannelReconciler],
        epg: EPGAggregator,
        *,
        display_timezone: tzinfo = timezone.utc,
    ) -> None:
        self.session = session
        self.transport = transport
        self.sink = sink
        self.poller = poller
        self.reconcilers = reconcilers
        self.epg = epg
        self.tz = display_timezone

    async def send(self, command: Command, param: Any = None) -> bool:
        """
        Execute a command.

        Returns:
            True when Kodi accepted it (or the view was rendered)

        Raises:
            NotConnectedError: If Kodi is not online
            InvalidCommandParam: If the parameter does not fit the command
        """
        if not self.session.is_online(Backend.KODI):
            raise NotConnectedError(f"Cannot send {command.value}: Kodi is not connected")

        logger.debug(f"Command {command.value} param={param!r}")

        if command is Command.PLAY_ITEM:
            return await self._play_item(param)
        if command in NAVIGATION_METHODS:
            return (await self._call(NAVIGATION_METHODS[command])).ok
        if command in CHANNEL_ACTIONS:
            return await self._switch_channel(CHANNEL_ACTIONS[command])
        if command is Command.MUTE:
            return (await self._call(kodi_rpc.SET_MUTE, {"mute": "toggle"})).ok
        if command is Command.VOLUME_SET:
            return await self._set_volume(param)
        if command is Command.STOP:
            return await self._stop()
        if command is Command.PAUSE:
            result = await self._call(kodi_rpc.PLAYER_PLAY_PAUSE, {"playerid": self.session.snapshot.player_id})
            return result.ok
        if command is Command.GET_TV_CHANNEL_LIST:
            return self._show_channel_list(param)
        if command is Command.GET_EPG_VIEW:
            return self._show_epg(param)
        return False

    async def _call(self, method: str, params: dict[str, Any] | None = None) -> TransportResult:
        return await self.transport.call(self.session.kodi, RequestKind.COMMAND, method, params)

    async def _play_item(self, param: Any) -> bool:
        channel_id = _int_param(param.get("id") if isinstance(param, dict) else param, "PLAY_ITEM")
        result = await self._call(kodi_rpc.PLAYER_OPEN, {"item": {"channelid": channel_id}})
        if not (result.ok and result.data == kodi_rpc.OK):
            return False
        self.poller.mark_playing()
        await self.poller.poll_cycle()
        return True

    async def _switch_channel(self, action: str) -> bool:
        if self.session.snapshot.media_type != CHANNEL_MEDIA_TYPE:
            logger.debug("Not watching a channel, ignoring channel switch")
            return False
        result = await self._call(kodi_rpc.EXECUTE_ACTION, {"action": action})
        if not (result.ok and result.data == kodi_rpc.OK):
            return False
        self.poller.stop_progress()
        await self.poller.poll_cycle()
        return True

    async def _set_volume(self, param: Any) -> bool:
        volume = _int_param(param, "VOLUME_SET")
        if not 0 <= volume <= 100:
            raise InvalidCommandParam(f"Volume must be between 0 and 100, got {volume}")
        result = await self._call(kodi_rpc.SET_VOLUME, {"volume": volume})
        if not result.ok:
            return False
        new_volume = result.data if isinstance(result.data, int) else volume
        self.sink.update_attr(self.session.entity_id, EntityAttr.VOLUME, new_volume)
        return True

    async def _stop(self) -> bool:
        result = await self._call(kodi_rpc.PLAYER_STOP, {"playerid": self.session.snapshot.player_id})
        if not (result.ok and result.data == kodi_rpc.OK):
            return False
        self.poller.mark_stopped()
        return True

    def _show_channel_list(self, param: Any) -> bool:
        key = str(param) if param is not None else "TV"
        if key in ("TV", "All"):
            model = self.channel_list(ChannelGroup.TV)
        elif key == "Radio":
            model = self.channel_list(ChannelGroup.RADIO)
        else:
            model = self.channel_programme(_int_param(param, "GET_TV_CHANNEL_LIST"))
        self._publish(model)
        return True

    def _show_epg(self, param: Any) -> bool:
        if param is None or str(param) == EPG_ALL:
            model = self.epg_grid()
        else:
            model = self.epg_channel(_int_param(param, "GET_EPG_VIEW"))
        self._publish(model)
        return True

    def _publish(self, model: BaseModel) -> None:
        self.sink.set_browse_model(self.session.entity_id, model)

    # Views, also served directly by the HTTP API

    def channel_list(self, group: ChannelGroup):
        return render_channel_list(self.reconcilers[group].channels, self.session.tvheadend.host)

    def find_channel(self, channel_id: int) -> ChannelRecord | None:
        for reconciler in self.reconcilers.values():
            channel = reconciler.channel_by_id(channel_id)
            if channel is not None:
                return channel
        return None

    def channel_programme(self, channel_id: int):
        channel = self.find_channel(channel_id)
        if channel is None:
            raise InvalidCommandParam(f"Unknown Kodi channel id {channel_id}")
        entries: list = []
        if channel in self.reconcilers[self.epg.group].channels:
            entries = self.epg.entries_for_number(channel.kodi_channel_number)
        return render_programme(channel, entries, self.session.tvheadend.host, self.tz)

    def epg_grid(self, now: datetime | None = None):
        return render_grid(
            self.epg.entries,
            self.epg.mapping,
            self.reconcilers[self.epg.group].channels,
            self.epg.pass_channels(),
            now or _now(),
            self.tz,
            self.session.tvheadend.host,
        )

    def epg_channel(self, number: int, now: datetime | None = None):
        return render_channel(
            number,
            self.epg.entries,
            self.epg.mapping,
            self.reconcilers[self.epg.group].channels,
            now or _now(),
            self.tz,
            self.session.tvheadend.host,
        )


def _now() -> datetime:
    return datetime.fromtimestamp(time.time(), tz=timezone.utc)


def _int_param(value: Any, command: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidCommandParam(f"{command} expects an integer parameter, got {value!r}")

