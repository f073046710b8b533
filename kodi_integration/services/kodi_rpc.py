"""
Kodi JSON-RPC vocabulary

Method names, property lists and payload helpers used by the poller, the
channel reconciler and the command dispatcher.
"""
from __future__ import annotations

from typing import Any


JSONRPC_VERSION = "2.0"

PING = "JSONRPC.Ping"
GET_ACTIVE_PLAYERS = "Player.GetActivePlayers"
GET_ITEM = "Player.GetItem"
PREPARE_DOWNLOAD = "Files.PrepareDownload"
GET_PROPERTIES = "Player.GetProperties"
APPLICATION_GET_PROPERTIES = "Application.GetProperties"
PVR_GET_CHANNELS = "PVR.GetChannels"
PLAYER_OPEN = "Player.Open"
PLAYER_STOP = "Player.Stop"
PLAYER_PLAY_PAUSE = "Player.PlayPause"
EXECUTE_ACTION = "Input.ExecuteAction"
SET_MUTE = "Application.SetMute"
SET_VOLUME = "Application.SetVolume"
INPUT_UP = "Input.Up"
INPUT_DOWN = "Input.Down"
INPUT_LEFT = "Input.Left"
INPUT_RIGHT = "Input.Right"
INPUT_SELECT = "Input.Select"
INPUT_BACK = "Input.Back"
INPUT_CONTEXT_MENU = "Input.ContextMenu"

ACTION_CHANNEL_UP = "channelup"
ACTION_CHANNEL_DOWN = "channeldown"

ITEM_PROPERTIES = [
    "title", "album", "artist", "season", "episode", "duration",
    "showtitle", "tvshowid", "thumbnail", "file", "fanart", "streamdetails",
]
PLAYER_TIME_PROPERTIES = ["totaltime", "time", "speed"]
CHANNEL_PROPERTIES = ["thumbnail", "uniqueid", "channelnumber"]
APPLICATION_PROPERTIES = ["volume", "muted"]

PONG = "pong"
OK = "OK"


def build_payload(method: str, params: dict[str, Any] | None, request_id: int) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 request body."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "method": method,
        "params": params or {},
        "id": request_id,
    }

