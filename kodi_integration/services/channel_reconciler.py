"""
Channel Reconciler

Joins Kodi's PVR channel list with TVHeadend's channel directory by label and
keeps the resulting number <-> UUID mapping per channel group.
"""
from __future__ import annotations

import logging
from typing import Iterable

from pydantic import ValidationError

from kodi_integration.schemas import PVRChannelsResult, TVHChannelEntry, TVHChannelList
from kodi_integration.services import kodi_rpc
from kodi_integration.services.mapping_store import MappingStore
from kodi_integration.services.session_types import (
    Backend,
    ChannelGroup,
    ChannelMapping,
    ChannelRecord,
    SessionState,
)
from kodi_integration.services.transport_service import RequestKind, Transport
from kodi_integration.utils.logging_helpers import log_mapping_summary


logger = logging.getLogger(__name__)

CHANNEL_LIST_PATH = "/api/channel/list"


def join_channels(
    kodi_channels: Iterable[ChannelRecord],
    tvheadend_entries: Iterable[TVHChannelEntry],
) -> ChannelMapping:
    """
    Build a bijective mapping by case-sensitive label equality.

    A label shared by several Kodi channels resolves to the first of them in
    Kodi list order. Pairs whose number or UUID is already mapped are skipped.
    """
    by_label: dict[str, ChannelRecord] = {}
    for channel in kodi_channels:
        if channel.label in by_label:
            logger.warning(
                "Kodi channels %s and %s share the label '%s'; using %s",
                by_label[channel.label].kodi_channel_number,
                channel.kodi_channel_number,
                channel.label,
                by_label[channel.label].kodi_channel_number,
            )
            continue
        by_label[channel.label] = channel

    mapping = ChannelMapping()
    for entry in tvheadend_entries:
        channel = by_label.get(entry.val)
        if channel is None:
            continue
        if not mapping.add(channel.kodi_channel_number, entry.key):
            logger.debug(f"Skipping '{entry.val}' ({entry.key}): number or UUID already mapped")
    return mapping


class ChannelReconciler:
    """Fetches and reconciles the channels of one Kodi channel group."""

    def __init__(
        self,
        session: SessionState,
        transport: Transport,
        store: MappingStore,
        group: ChannelGroup,
    ) -> None:
        self.session = session
        self.transport = transport
        self.store = store
        self.group = group

    @property
    def channels(self) -> list[ChannelRecord]:
        return self.session.channels[self.group]

    @property
    def mapping(self) -> ChannelMapping:
        return self.session.mappings[self.group]

    async def fetch_kodi_channels(self) -> list[ChannelRecord]:
        """Replace the group's channel list and reconcile when no mapping exists yet."""
        session = self.session
        if not session.is_online(Backend.KODI):
            return self.channels

        epoch = session.epoch
        result = await self.transport.call(
            session.kodi,
            RequestKind.PVR_CHANNELS,
            kodi_rpc.PVR_GET_CHANNELS,
            {"channelgroupid": self.group.value, "properties": kodi_rpc.CHANNEL_PROPERTIES},
        )
        if session.epoch != epoch or not result.ok:
            return self.channels

        try:
            parsed = PVRChannelsResult.model_validate(result.data or {})
        except ValidationError as e:
            logger.warning(f"Unexpected PVR.GetChannels payload for {self.group.value}: {e.error_count()} error(s)")
            return self.channels

        session.channels[self.group] = [
            ChannelRecord(
                kodi_channel_id=channel.channelid,
                kodi_channel_number=channel.channelnumber,
                label=channel.label,
                thumbnail=channel.thumbnail,
            )
            for channel in parsed.channels
        ]
        logger.info(f"Fetched {len(self.channels)} Kodi {self.group.value} channels")

        if not session.is_online(Backend.TVHEADEND):
            logger.debug("TVHeadend not online, skipping reconciliation")
        elif self.mapping:
            logger.debug(f"{self.group.value} mapping already loaded, skipping reconciliation")
        else:
            await self.reconcile()
        return self.channels

    async def reconcile(self) -> ChannelMapping:
        """
        Build the mapping of this group.

        A persisted mapping wins over the network join; otherwise the TVHeadend
        channel directory is fetched, joined and persisted.
        """
        session = self.session
        epoch = session.epoch

        cached = await self.store.load(self.group)
        if cached is not None:
            if session.epoch == epoch:
                session.mappings[self.group] = cached
            return cached

        if not self.channels:
            logger.debug(f"No Kodi {self.group.value} channels, nothing to reconcile")
            return self.mapping

        result = await self.transport.get(session.tvheadend, RequestKind.TVH_CHANNELS, CHANNEL_LIST_PATH)
        if session.epoch != epoch or not result.ok:
            return self.mapping

        try:
            directory = TVHChannelList.model_validate(result.data or {})
        except ValidationError as e:
            logger.warning(f"Unexpected TVHeadend channel list payload: {e.error_count()} error(s)")
            return self.mapping

        mapping = join_channels(self.channels, directory.entries)
        session.mappings[self.group] = mapping
        log_mapping_summary(logger, self.group.value, len(mapping), len(self.channels), len(directory.entries))

        if mapping:
            await self.store.save(self.group, mapping)
        return mapping

    def channel_by_id(self, channel_id: int) -> ChannelRecord | None:
        return next((c for c in self.channels if c.kodi_channel_id == channel_id), None)

    def channel_by_number(self, number: int) -> ChannelRecord | None:
        return next((c for c in self.channels if c.kodi_channel_number == number), None)
