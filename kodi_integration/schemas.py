from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kodi_integration.services.session_types import ChannelGroup, Command


# ---------------------------------------------------------------------------
# Kodi JSON-RPC results
# ---------------------------------------------------------------------------

class ActivePlayer(BaseModel):
    """Entry of Player.GetActivePlayers"""
    playerid: int
    type: str = ""


class PlayerItem(BaseModel):
    """The `item` object of Player.GetItem"""
    type: str | None = None
    id: int | None = None
    title: str = ""
    label: str = ""
    thumbnail: str = ""


class PlayerItemResult(BaseModel):
    item: PlayerItem


class PrepareDownloadDetails(BaseModel):
    path: str = ""


class PrepareDownloadResult(BaseModel):
    """Result of Files.PrepareDownload"""
    protocol: str = ""
    mode: str = ""
    details: PrepareDownloadDetails = Field(default_factory=PrepareDownloadDetails)


class KodiTime(BaseModel):
    """Kodi's Global.Time object"""
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    milliseconds: int = 0

    @property
    def total_seconds(self) -> int:
        total_ms = (
            self.hours * 3_600_000
            + self.minutes * 60_000
            + self.seconds * 1000
            + self.milliseconds
        )
        return total_ms // 1000


class PlayerProperties(BaseModel):
    """Result of Player.GetProperties for totaltime/time/speed"""
    totaltime: KodiTime | None = None
    time: KodiTime | None = None
    speed: int | None = None


class ApplicationProperties(BaseModel):
    """Result of Application.GetProperties"""
    volume: int = 0
    muted: bool = False


class PVRChannel(BaseModel):
    """Entry of PVR.GetChannels"""
    channelid: int
    channelnumber: int = 0
    label: str = ""
    thumbnail: str = ""


class PVRChannelsResult(BaseModel):
    channels: list[PVRChannel] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# TVHeadend REST results
# ---------------------------------------------------------------------------

class TVHServerInfo(BaseModel):
    """Response of /api/serverinfo; only the presence of `name` matters"""
    name: str


class TVHChannelEntry(BaseModel):
    """Entry of /api/channel/list: key is the channel UUID, val its name"""
    key: str
    val: str


class TVHChannelList(BaseModel):
    entries: list[TVHChannelEntry] = Field(default_factory=list)


class TVHEPGEvent(BaseModel):
    """Entry of /api/epg/events/grid"""
    model_config = ConfigDict(populate_by_name=True)

    channel_uuid: str = Field(..., alias="channelUuid")
    start: int
    stop: int
    title: str = ""
    subtitle: str | None = None
    description: str | None = None
    channel_icon: str | None = Field(None, alias="channelIcon")


class TVHEPGGrid(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entries: list[TVHEPGEvent] = Field(default_factory=list)
    total_count: int = Field(0, alias="totalCount")


# ---------------------------------------------------------------------------
# Browse models handed to the entity (setBrowseModel contract)
# ---------------------------------------------------------------------------

class ChannelItem(BaseModel):
    """Single row of a channel list or channel programme"""
    id: str = Field(..., description="Kodi channel id")
    time: str = Field("", description="Start time (hh:mm) for programme rows")
    title: str
    subtitle: str = ""
    type: str = "tvchannellist"
    image_url: str = ""
    commands: list[str] = Field(default_factory=list)


class BrowseChannelModel(BaseModel):
    """Channel list / single channel programme model"""
    id: str = ""
    time: str = ""
    title: str = ""
    subtitle: str = ""
    type: str = "tvchannellist"
    image_url: str = ""
    commands: list[str] = Field(default_factory=list)
    items: list[ChannelItem] = Field(default_factory=list)


class EPGItem(BaseModel):
    """Positioned cell of the EPG timeline"""
    key: str
    x: int = Field(..., description="Pixel offset from the left edge of the grid")
    column: int = Field(..., description="Row of the grid; the Kodi channel number for programmes")
    width: int
    height: int = 40
    type: str = "epg"
    background_color: str
    foreground_color: str = "#FFFFFF"
    title: str
    subtitle: str = ""
    description: str = ""
    start_time: str = ""
    end_time: str = ""
    image_url: str = ""
    commands: list[str] = Field(default_factory=list)


class BrowseEPGModel(BaseModel):
    """EPG grid model"""
    id: str = ""
    type: str = "epg"
    grid_start: str = Field("", description="ISO8601 start of the timeline")
    items: list[EPGItem] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------

class CommandRequest(BaseModel):
    """Remote-control command"""
    command: Command
    param: Any = Field(None, description="Command parameter, e.g. {'id': 7} for PLAY_ITEM or a volume")


class CommandResponse(BaseModel):
    command: Command
    accepted: bool


class PlayerResponse(BaseModel):
    """Current player snapshot and entity attributes"""
    entity_id: str
    poll_state: str
    player_id: int
    player_type: str
    media_type: str
    title: str
    artist: str
    image: str
    duration: int
    position: int
    is_playing: bool
    attributes: dict[str, Any]


class StatusResponse(BaseModel):
    """Backend connection statuses"""
    kodi: str
    tvheadend: str
    event_socket: str
    jobs: list[str] = Field(default_factory=list)
    mapped_channels: dict[ChannelGroup, int] = Field(default_factory=dict)


class NotificationResponse(BaseModel):
    id: str
    error: bool
    text: str
    action_label: str | None
    created_at: str
