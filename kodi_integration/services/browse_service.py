"""
Browse models

Pure projections of the channel lists, the mapping and the EPG buffer into the
models handed to the entity: channel lists, single-channel programmes and the
EPG timeline. Timeline geometry: 6 px per minute, a 170 px wide channel column
on the left, 40 px rows.
"""
from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Iterable, Mapping

from kodi_integration.schemas import BrowseChannelModel, BrowseEPGModel, ChannelItem, EPGItem
from kodi_integration.services.session_types import ChannelMapping, ChannelRecord, EPGEntry
from kodi_integration.utils.timezone import format_clock, grid_start, minutes_between
from kodi_integration.utils.urls import fix_image_url


PX_PER_MINUTE = 6
CHANNEL_COLUMN_WIDTH = 170
HOUR_WIDTH = 60 * PX_PER_MINUTE
ROW_HEIGHT = 40
GRID_HOURS = 80
MAX_OFFSET_MINUTES = 15000

HEADER_COLOR = "#FF0000"
CHANNEL_COLOR = "#0000FF"
PROGRAMME_COLOR = "#FFFF00"
TEXT_COLOR = "#FFFFFF"

CHANNEL_LIST_TYPE = "tvchannellist"
CHANNEL_ITEM_TYPE = "tvchannel"
NO_PROGRAMME = "No programm available"
PLAY_COMMANDS = ["PLAY"]


def render_channel_list(channels: Iterable[ChannelRecord], tvheadend_host: str) -> BrowseChannelModel:
    """Every channel of a group as a playable list."""
    return BrowseChannelModel(
        type=CHANNEL_LIST_TYPE,
        items=[
            ChannelItem(
                id=str(channel.kodi_channel_id),
                title=channel.label,
                type=CHANNEL_LIST_TYPE,
                image_url=fix_image_url(channel.thumbnail, tvheadend_host),
                commands=PLAY_COMMANDS,
            )
            for channel in channels
        ],
    )


def render_programme(
    channel: ChannelRecord,
    entries: Iterable[EPGEntry],
    tvheadend_host: str,
    tz: tzinfo,
) -> BrowseChannelModel:
    """Programme of one channel as `hh:mm` + title rows."""
    channel_id = str(channel.kodi_channel_id)
    items = [
        ChannelItem(id=channel_id, time=format_clock(entry.start, tz), title=entry.title, type=CHANNEL_ITEM_TYPE,
                    commands=PLAY_COMMANDS)
        for entry in sorted(entries, key=lambda e: e.start)
    ]
    if not items:
        items = [ChannelItem(id=channel_id, title=NO_PROGRAMME, type=CHANNEL_ITEM_TYPE, commands=PLAY_COMMANDS)]

    return BrowseChannelModel(
        id=channel_id,
        title=channel.label,
        type=CHANNEL_LIST_TYPE,
        image_url=fix_image_url(channel.thumbnail, tvheadend_host),
        commands=PLAY_COMMANDS,
        items=items,
    )


def _header_items(start: datetime) -> list[EPGItem]:
    items = []
    for hour in range(GRID_HOURS):
        at = start + timedelta(hours=hour)
        items.append(EPGItem(
            key=f"hour-{hour}",
            x=CHANNEL_COLUMN_WIDTH + hour * HOUR_WIDTH,
            column=0,
            width=HOUR_WIDTH,
            height=ROW_HEIGHT,
            background_color=HEADER_COLOR,
            foreground_color=TEXT_COLOR,
            title=at.strftime("%H:00  %d.%m.%Y"),
            start_time=at.isoformat(),
        ))
    return items


def _programme_item(entry: EPGEntry, column: int, start: datetime, tz: tzinfo, tvheadend_host: str) -> EPGItem | None:
    offset = minutes_between(start, entry.start)
    if offset > MAX_OFFSET_MINUTES or entry.stop < start.timestamp():
        return None
    return EPGItem(
        key=f"{column}-{entry.start}",
        x=CHANNEL_COLUMN_WIDTH + offset * PX_PER_MINUTE,
        column=column,
        width=entry.duration_minutes * PX_PER_MINUTE,
        height=ROW_HEIGHT,
        background_color=PROGRAMME_COLOR,
        foreground_color=TEXT_COLOR,
        title=entry.title,
        subtitle=entry.subtitle or "",
        description=entry.description or "",
        start_time=format_clock(entry.start, tz),
        end_time=format_clock(entry.stop, tz),
        image_url=fix_image_url(entry.channel_icon or "", tvheadend_host),
    )


def render_grid(
    entries: Mapping[str, list[EPGEntry]],
    mapping: ChannelMapping,
    channels: Iterable[ChannelRecord],
    numbers: Iterable[int],
    now: datetime,
    tz: tzinfo,
    tvheadend_host: str = "",
) -> BrowseEPGModel:
    """
    EPG timeline over the given Kodi channel numbers.

    Args:
        entries: EPG buffer keyed by TVHeadend channel UUID
        mapping: Number <-> UUID mapping of the channel group
        channels: Kodi channel list, used for the row labels
        numbers: Kodi channel numbers to show, one row each
        now: Current time, the grid starts at the previous full hour minus one
        tz: Display timezone
        tvheadend_host: Replaces the loopback host in image URLs

    Returns:
        Header, channel label and programme cells
    """
    start = grid_start(now, tz)
    by_number = {channel.kodi_channel_number: channel for channel in channels}
    items = _header_items(start)

    for number in numbers:
        uuid = mapping.uuid_for(number)
        if uuid is None:
            continue
        channel = by_number.get(number)
        items.append(EPGItem(
            key=f"channel-{number}",
            x=0,
            column=number,
            width=CHANNEL_COLUMN_WIDTH,
            height=ROW_HEIGHT,
            background_color=CHANNEL_COLOR,
            foreground_color=TEXT_COLOR,
            title=channel.label if channel else str(number),
            image_url=fix_image_url(channel.thumbnail, tvheadend_host) if channel else "",
        ))
        for entry in sorted(entries.get(uuid, []), key=lambda e: e.start):
            item = _programme_item(entry, number, start, tz, tvheadend_host)
            if item is not None:
                items.append(item)

    return BrowseEPGModel(grid_start=start.isoformat(), items=items)


def render_channel(
    number: int,
    entries: Mapping[str, list[EPGEntry]],
    mapping: ChannelMapping,
    channels: Iterable[ChannelRecord],
    now: datetime,
    tz: tzinfo,
    tvheadend_host: str = "",
) -> BrowseEPGModel:
    """The EPG timeline restricted to one Kodi channel number."""
    model = render_grid(entries, mapping, channels, [number], now, tz, tvheadend_host)
    model.id = str(number)
    return model
