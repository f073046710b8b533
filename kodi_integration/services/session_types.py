"""
Shared dataclasses and enums describing one integration session.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator


class Backend(str, Enum):
    KODI = "kodi"
    TVHEADEND = "tvheadend"
    EVENT_SOCKET = "event_socket"


class ConnectionStatus(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONNECTING = "connecting"
    ONLINE = "online"
    OFFLINE = "offline"


class PollState(str, Enum):
    GET_ACTIVE_PLAYERS = "get_active_players"
    GET_ITEM = "get_item"
    PREPARE_DOWNLOAD = "prepare_download"
    GET_PROPERTIES = "get_properties"
    STOPPED = "stopped"


class PlayerType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    UNSET = "unset"

    @classmethod
    def parse(cls, value: str | None) -> PlayerType:
        try:
            return cls(value)
        except ValueError:
            return cls.UNSET


class ChannelGroup(str, Enum):
    """Kodi PVR channel groups; the value is Kodi's channelgroupid."""
    TV = "alltv"
    RADIO = "allradio"


class Command(str, Enum):
    """Remote-control commands accepted by the media player entity."""
    PLAY_ITEM = "PLAY_ITEM"
    PAUSE = "PAUSE"
    STOP = "STOP"
    NEXT = "NEXT"
    PREVIOUS = "PREVIOUS"
    CHANNEL_UP = "CHANNEL_UP"
    CHANNEL_DOWN = "CHANNEL_DOWN"
    UP = "UP"
    DOWN = "DOWN"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    OK = "OK"
    BACK = "BACK"
    MENU = "MENU"
    MUTE = "MUTE"
    VOLUME_SET = "VOLUME_SET"
    GET_TV_CHANNEL_LIST = "GET_TV_CHANNEL_LIST"
    GET_EPG_VIEW = "GET_EPG_VIEW"


@dataclass(frozen=True, slots=True)
class Endpoint:
    """Network location of one backend. No host means the backend is not configured."""
    scheme: str = "http"
    host: str = ""
    port: int = 0
    path: str = ""
    username: str | None = None
    password: str | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}"

    @property
    def credentials(self) -> tuple[str, str] | None:
        if self.username and self.password:
            return self.username, self.password
        return None


@dataclass(frozen=True, slots=True)
class PlayerSnapshot:
    """What Kodi is currently playing, as last observed by the poller."""
    player_id: int = -1
    player_type: PlayerType = PlayerType.UNSET
    media_type: str = ""
    title: str = ""
    artist: str = ""
    image: str = ""
    duration: int = 0
    position: int = 0
    is_playing: bool = False


@dataclass(frozen=True, slots=True)
class ChannelRecord:
    """One entry of Kodi's PVR channel list."""
    kodi_channel_id: int
    kodi_channel_number: int
    label: str
    thumbnail: str = ""


@dataclass(frozen=True, slots=True)
class EPGEntry:
    """One TVHeadend EPG event."""
    channel_uuid: str
    start: int
    stop: int
    title: str
    subtitle: str | None = None
    description: str | None = None
    channel_icon: str | None = None

    @property
    def duration_minutes(self) -> int:
        return max(0, (self.stop - self.start) // 60)


class ChannelMapping:
    """
    Bijective Kodi channel number <-> TVHeadend channel UUID mapping.

    Both directions are kept as plain dicts; `add` refuses any pair whose number
    or UUID is already mapped, so the two dicts always mirror each other.
    """

    __slots__ = ("number_to_uuid", "uuid_to_number")

    def __init__(self) -> None:
        self.number_to_uuid: dict[int, str] = {}
        self.uuid_to_number: dict[str, int] = {}

    @classmethod
    def from_pairs(cls, pairs) -> ChannelMapping:
        mapping = cls()
        for number, uuid in pairs:
            mapping.add(number, uuid)
        return mapping

    def add(self, number: int, uuid: str) -> bool:
        if number in self.number_to_uuid or uuid in self.uuid_to_number:
            return False
        self.number_to_uuid[number] = uuid
        self.uuid_to_number[uuid] = number
        return True

    def uuid_for(self, number: int) -> str | None:
        return self.number_to_uuid.get(number)

    def number_for(self, uuid: str) -> int | None:
        return self.uuid_to_number.get(uuid)

    def pairs(self) -> Iterator[tuple[int, str]]:
        return iter(sorted(self.number_to_uuid.items()))

    def is_bijective(self) -> bool:
        if len(self.number_to_uuid) != len(self.uuid_to_number):
            return False
        return all(self.uuid_to_number.get(uuid) == number for number, uuid in self.number_to_uuid.items())

    def __len__(self) -> int:
        return len(self.number_to_uuid)

    def __bool__(self) -> bool:
        return bool(self.number_to_uuid)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChannelMapping):
            return NotImplemented
        return self.number_to_uuid == other.number_to_uuid and self.uuid_to_number == other.uuid_to_number

    def __repr__(self) -> str:
        return f"ChannelMapping({self.number_to_uuid!r})"


def _initial_statuses() -> dict[Backend, ConnectionStatus]:
    return {backend: ConnectionStatus.UNCONFIGURED for backend in Backend}


@dataclass(slots=True)
class SessionState:
    """
    All mutable state of one integration instance.

    Components receive this object explicitly. Statuses are only written by the
    connection lifecycle; the snapshot and poll state only by the player poller.
    `epoch` is bumped on every connect/disconnect so late responses can be told apart.
    """
    kodi: Endpoint
    event_server: Endpoint
    tvheadend: Endpoint
    entity_id: str = "media_player.kodi"
    statuses: dict[Backend, ConnectionStatus] = field(default_factory=_initial_statuses)
    snapshot: PlayerSnapshot = field(default_factory=PlayerSnapshot)
    poll_state: PollState = PollState.GET_ACTIVE_PLAYERS
    first_run: bool = True
    pending_thumbnail: str = ""
    network_tries: int = 0
    poll_ticks: int = 0
    epoch: int = 0
    channels: dict[ChannelGroup, list[ChannelRecord]] = field(
        default_factory=lambda: {group: [] for group in ChannelGroup}
    )
    mappings: dict[ChannelGroup, ChannelMapping] = field(
        default_factory=lambda: {group: ChannelMapping() for group in ChannelGroup}
    )

    def status(self, backend: Backend) -> ConnectionStatus:
        return self.statuses[backend]

    def is_online(self, backend: Backend) -> bool:
        return self.statuses[backend] is ConnectionStatus.ONLINE


__all__ = [
    "Backend",
    "ChannelGroup",
    "ChannelMapping",
    "ChannelRecord",
    "Command",
    "ConnectionStatus",
    "Endpoint",
    "EPGEntry",
    "PlayerSnapshot",
    "PlayerType",
    "PollState",
    "SessionState",
]
