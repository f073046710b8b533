"""
EPG Aggregator

Loads TVHeadend guide data one channel per timer tick. After a full pass over
the selected channels the buffer is considered fresh until `expiration`; steps
taken before then send no request at all.
"""
from __future__ import annotations

import logging
import time

from pydantic import ValidationError

from kodi_integration.schemas import TVHEPGGrid
from kodi_integration.services.operation_gate import OperationGate
from kodi_integration.services.session_types import (
    Backend,
    ChannelGroup,
    ChannelMapping,
    EPGEntry,
    SessionState,
)
from kodi_integration.services.transport_service import RequestKind, Transport


logger = logging.getLogger(__name__)

EPG_GRID_PATH = "/api/epg/events/grid"


class EPGAggregator:
    """Round-robin EPG loader and in-memory guide buffer."""

    def __init__(
        self,
        session: SessionState,
        transport: Transport,
        *,
        ttl_hours: int = 2,
        grid_limit: int = 1000,
        channel_filter: list[int] | None = None,
        group: ChannelGroup = ChannelGroup.TV,
    ) -> None:
        self.session = session
        self.transport = transport
        self.ttl_seconds = ttl_hours * 3600
        self.grid_limit = grid_limit
        self.channel_filter = list(channel_filter or [])
        self.group = group

        self.entries: dict[str, list[EPGEntry]] = {}
        self.expiration: float = 0.0
        self.cursor: int = 0
        self._pass_channels: list[int] = []
        self._gate = OperationGate("EPG load")

    @property
    def mapping(self) -> ChannelMapping:
        return self.session.mappings[self.group]

    def pass_channels(self) -> list[int]:
        """Kodi channel numbers covered by a pass, in display order."""
        mapping = self.mapping
        if self.channel_filter:
            return [number for number in self.channel_filter if mapping.uuid_for(number) is not None]
        return [number for number, _ in mapping.pairs()]

    def is_fresh(self, now: float | None = None) -> bool:
        return (time.time() if now is None else now) < self.expiration

    async def refresh_step(self, now: float | None = None) -> bool:
        """
        Fetch the next channel of the current pass.

        Returns:
            True if a request was sent
        """
        result = await self._gate.run(lambda: self._step(time.time() if now is None else now))
        return bool(result)

    async def _step(self, now: float) -> bool:
        if now < self.expiration:
            return False
        if not self.mapping or not self.session.is_online(Backend.TVHEADEND):
            return False

        if self.cursor == 0 or not self._pass_channels:
            self._pass_channels = self.pass_channels()
            self.cursor = 0
            if not self._pass_channels:
                logger.debug("No mapped EPG channels, nothing to load")
                return False

        number = self._pass_channels[self.cursor]
        uuid = self.mapping.uuid_for(number)
        epoch = self.session.epoch

        result = await self.transport.get(
            self.session.tvheadend,
            RequestKind.TVH_EPG,
            EPG_GRID_PATH,
            {"limit": self.grid_limit, "channel": uuid},
        )
        if result.cancelled or self.session.epoch != epoch:
            return True

        if result.ok:
            self._store(number, uuid, result.data)

        self.cursor += 1
        if self.cursor >= len(self._pass_channels):
            self._finish_pass(now)
        return True

    def _store(self, number: int, uuid: str, data) -> None:
        try:
            grid = TVHEPGGrid.model_validate(data or {})
        except ValidationError as e:
            logger.warning(f"Unexpected EPG payload for channel {number}: {e.error_count()} error(s)")
            return

        # Only events of the requested channel are kept
        self.entries[uuid] = [
            EPGEntry(
                channel_uuid=event.channel_uuid,
                start=event.start,
                stop=event.stop,
                title=event.title,
                subtitle=event.subtitle,
                description=event.description,
                channel_icon=event.channel_icon,
            )
            for event in grid.entries[: self.grid_limit]
            if event.channel_uuid == uuid
        ]
        logger.debug(f"Loaded {len(self.entries[uuid])} EPG entries for channel {number}")

    def _finish_pass(self, now: float) -> None:
        self.expiration = now + self.ttl_seconds
        self.cursor = 0
        mapped = {self.mapping.uuid_for(number) for number in self._pass_channels}
        for uuid in list(self.entries):
            if uuid not in mapped:
                del self.entries[uuid]
        logger.info(
            f"EPG pass complete: {len(self.entries)} channels, "
            f"{sum(len(e) for e in self.entries.values())} entries, fresh for {self.ttl_seconds // 3600}h"
        )

    def entries_for_number(self, number: int) -> list[EPGEntry]:
        uuid = self.mapping.uuid_for(number)
        if uuid is None:
            return []
        return sorted(self.entries.get(uuid, []), key=lambda e: e.start)

    def reset(self) -> None:
        """Drop the pass position; loaded entries stay until the next pass."""
        self.cursor = 0
        self._pass_channels = []

    def invalidate(self) -> None:
        self.expiration = 0.0
        self.reset()
