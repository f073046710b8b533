"""
Unit tests for the command dispatcher.

Tests CommandDispatcher functionality including:
- Rejecting commands while Kodi is offline
- Playback, navigation, volume and channel-switch commands
- Channel list, programme and EPG browse views
"""
from datetime import datetime, timezone

import pytest

from conftest import serve_playing_channel
from kodi_integration.schemas import BrowseChannelModel, BrowseEPGModel
from kodi_integration.services.entity_service import EntityAttr, MediaPlayerState
from kodi_integration.services.errors import InvalidCommandParam, NotConnectedError
from kodi_integration.services.session_types import (
    ChannelGroup,
    ChannelMapping,
    Command,
    EPGEntry,
    PlayerSnapshot,
    PollState,
)


NOON = int(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc).timestamp())

TV_CHANNELS = {"channels": [{"channelid": 7, "channelnumber": 3, "label": "BBC One"}]}
RADIO_CHANNELS = {"channels": [{"channelid": 50, "channelnumber": 701, "label": "Radio 4"}]}


@pytest.fixture
async def connected(kodi, integration):
    """An integration with Kodi online and one TV and one radio channel."""
    kodi.results["PVR.GetChannels"] = lambda params: (
        TV_CHANNELS if params["channelgroupid"] == "alltv" else RADIO_CHANNELS
    )
    await integration.connect()
    kodi.calls.clear()
    return integration


def browse_model(integration):
    return integration.entities.browse_model(integration.entity_id)


# =============================================================================
# Playback Commands
# =============================================================================

class TestPlaybackCommands:
    """Tests for commands forwarded to Kodi."""

    async def test_commands_need_kodi_online(self, integration):
        """Commands are refused before connect()."""
        with pytest.raises(NotConnectedError):
            await integration.send_command(Command.PAUSE)

    async def test_play_item_opens_channel_and_polls(self, kodi, connected):
        """PLAY_ITEM opens the channel and polls immediately."""
        serve_playing_channel(kodi)

        assert await connected.send_command(Command.PLAY_ITEM, {"id": "7"})

        assert kodi.params_of("Player.Open") == [{"item": {"channelid": 7}}]
        assert "Player.GetActivePlayers" in kodi.methods()
        assert connected.session.snapshot.title == "News at Ten"

    async def test_play_item_accepts_plain_id(self, kodi, connected):
        assert await connected.send_command(Command.PLAY_ITEM, 7)

        assert kodi.params_of("Player.Open") == [{"item": {"channelid": 7}}]

    async def test_play_item_rejected_by_kodi(self, kodi, connected):
        """A non-OK answer is reported as not accepted."""
        kodi.results["Player.Open"] = "Failed"

        assert not await connected.send_command(Command.PLAY_ITEM, 7)
        assert "Player.GetActivePlayers" not in kodi.methods()

    async def test_play_item_needs_integer_id(self, connected):
        with pytest.raises(InvalidCommandParam):
            await connected.send_command(Command.PLAY_ITEM, {"id": "abc"})

    @pytest.mark.parametrize(
        ("command", "method"),
        [
            (Command.UP, "Input.Up"),
            (Command.DOWN, "Input.Down"),
            (Command.LEFT, "Input.Left"),
            (Command.RIGHT, "Input.Right"),
            (Command.OK, "Input.Select"),
            (Command.BACK, "Input.Back"),
            (Command.MENU, "Input.ContextMenu"),
        ],
    )
    async def test_navigation_keys(self, kodi, connected, command, method):
        assert await connected.send_command(command)

        assert kodi.methods() == [method]

    async def test_pause_toggles_current_player(self, kodi, connected):
        connected.session.snapshot = PlayerSnapshot(player_id=1)

        assert await connected.send_command(Command.PAUSE)

        assert kodi.params_of("Player.PlayPause") == [{"playerid": 1}]

    async def test_stop_clears_entity(self, kodi, connected):
        """An accepted Stop forgets the player."""
        connected.session.snapshot = PlayerSnapshot(player_id=1, title="News", is_playing=True)

        assert await connected.send_command(Command.STOP)

        assert kodi.params_of("Player.Stop") == [{"playerid": 1}]
        assert connected.session.poll_state is PollState.STOPPED
        assert connected.entities.attribute(connected.entity_id, EntityAttr.STATE) is MediaPlayerState.IDLE

    async def test_mute_toggles(self, kodi, connected):
        assert await connected.send_command(Command.MUTE)

        assert kodi.params_of("Application.SetMute") == [{"mute": "toggle"}]

    async def test_volume_set_updates_attribute(self, kodi, connected):
        kodi.results["Application.SetVolume"] = 30

        assert await connected.send_command(Command.VOLUME_SET, "30")

        assert kodi.params_of("Application.SetVolume") == [{"volume": 30}]
        assert connected.entities.attribute(connected.entity_id, EntityAttr.VOLUME) == 30

    @pytest.mark.parametrize("volume", [-1, 101, "loud", None])
    async def test_volume_set_rejects_invalid_values(self, kodi, connected, volume):
        with pytest.raises(InvalidCommandParam):
            await connected.send_command(Command.VOLUME_SET, volume)
        assert kodi.calls == []

    @pytest.mark.parametrize(
        ("command", "action"),
        [
            (Command.NEXT, "channelup"),
            (Command.CHANNEL_UP, "channelup"),
            (Command.PREVIOUS, "channeldown"),
            (Command.CHANNEL_DOWN, "channeldown"),
        ],
    )
    async def test_channel_switch_while_watching_tv(self, kodi, connected, command, action):
        """Channel up/down is sent as an input action and followed by a poll."""
        connected.session.snapshot = PlayerSnapshot(player_id=1, media_type="channel")

        assert await connected.send_command(command)

        assert kodi.params_of("Input.ExecuteAction") == [{"action": action}]
        assert "Player.GetActivePlayers" in kodi.methods()

    async def test_channel_switch_ignored_without_channel(self, kodi, connected):
        """Next/previous only make sense while a channel plays."""
        assert not await connected.send_command(Command.NEXT)

        assert kodi.calls == []


# =============================================================================
# Browse Views
# =============================================================================

class TestBrowseViews:
    """Tests for channel list and EPG views."""

    async def test_tv_channel_list(self, connected):
        assert await connected.send_command(Command.GET_TV_CHANNEL_LIST, "TV")

        model = browse_model(connected)
        assert isinstance(model, BrowseChannelModel)
        assert [item.title for item in model.items] == ["BBC One"]

    async def test_default_channel_list_is_tv(self, connected):
        await connected.send_command(Command.GET_TV_CHANNEL_LIST)

        assert [item.id for item in browse_model(connected).items] == ["7"]

    async def test_radio_channel_list(self, connected):
        await connected.send_command(Command.GET_TV_CHANNEL_LIST, "Radio")

        assert [item.title for item in browse_model(connected).items] == ["Radio 4"]

    async def test_channel_id_shows_programme(self, connected):
        """A channel id parameter renders that channel's programme."""
        connected.session.mappings[ChannelGroup.TV] = ChannelMapping.from_pairs([(3, "uuid-123")])
        connected.epg.entries["uuid-123"] = [EPGEntry(channel_uuid="uuid-123", start=NOON, stop=NOON + 1800,
                                                      title="News")]

        await connected.send_command(Command.GET_TV_CHANNEL_LIST, 7)

        model = browse_model(connected)
        assert model.id == "7"
        assert [item.title for item in model.items] == ["News"]

    async def test_radio_programme_has_no_epg(self, connected):
        """Radio channels are outside the EPG group."""
        await connected.send_command(Command.GET_TV_CHANNEL_LIST, 50)

        assert [item.title for item in browse_model(connected).items] == ["No programm available"]

    async def test_unknown_channel_id(self, connected):
        with pytest.raises(InvalidCommandParam):
            await connected.send_command(Command.GET_TV_CHANNEL_LIST, 999)

    async def test_epg_view_all(self, connected):
        connected.session.mappings[ChannelGroup.TV] = ChannelMapping.from_pairs([(3, "uuid-123")])

        assert await connected.send_command(Command.GET_EPG_VIEW, "all")

        model = browse_model(connected)
        assert isinstance(model, BrowseEPGModel)
        assert any(item.key == "channel-3" for item in model.items)

    async def test_epg_view_single_channel(self, connected):
        connected.session.mappings[ChannelGroup.TV] = ChannelMapping.from_pairs([(3, "uuid-123"), (4, "uuid-4")])

        await connected.send_command(Command.GET_EPG_VIEW, 3)

        model = browse_model(connected)
        assert model.id == "3"
        assert [item.column for item in model.items if item.key.startswith("channel-")] == [3]

    async def test_epg_grid_geometry_at_fixed_time(self, connected):
        """Programme at noon, viewed at 12:30: grid starts 11:00, cell at x=530."""
        connected.session.mappings[ChannelGroup.TV] = ChannelMapping.from_pairs([(3, "uuid-123")])
        connected.epg.entries["uuid-123"] = [EPGEntry(channel_uuid="uuid-123", start=NOON, stop=NOON + 1800,
                                                      title="News")]

        model = connected.commands.epg_channel(3, now=datetime(2026, 1, 1, 12, 30, tzinfo=timezone.utc))

        [cell] = [item for item in model.items if item.title == "News"]
        assert (cell.x, cell.column, cell.width) == (530, 3, 180)
