"""
Mapping Store

Persists channel mappings in SQLite, one set of (kodi number, uuid) pairs per
channel group plus a format version row. A missing or foreign format version
means "no cached mapping".
"""
from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from kodi_integration.database import is_initialized, session_scope
from kodi_integration.models import ChannelMappingRow, StorageMeta
from kodi_integration.services.session_types import ChannelGroup, ChannelMapping


logger = logging.getLogger(__name__)

FORMAT_VERSION_KEY = "channel_mapping_format"
FORMAT_VERSION = "2"


class MappingStore:
    """Load and save ChannelMapping objects through the shared session factory."""

    async def load(self, group: ChannelGroup) -> ChannelMapping | None:
        """
        Load the persisted mapping of a group.

        Returns:
            The mapping, or None when nothing usable is stored
        """
        if not is_initialized():
            logger.debug("Database not initialized, no cached mapping")
            return None

        try:
            async with session_scope(begin=False) as db:
                meta = await db.get(StorageMeta, FORMAT_VERSION_KEY)
                if meta is None or meta.value != FORMAT_VERSION:
                    if meta is not None:
                        logger.info(
                            "Ignoring stored mappings with format version %s (expected %s)",
                            meta.value,
                            FORMAT_VERSION,
                        )
                    return None

                result = await db.execute(
                    select(ChannelMappingRow.kodi_number, ChannelMappingRow.tvheadend_uuid)
                    .where(ChannelMappingRow.channel_group == group.value)
                    .order_by(ChannelMappingRow.kodi_number)
                )
                rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load {group.value} mapping: {e}", exc_info=True)
            return None

        if not rows:
            return None

        mapping = ChannelMapping.from_pairs((number, uuid) for number, uuid in rows)
        if len(mapping) != len(rows):
            logger.warning(f"Stored {group.value} mapping is not a bijection, ignoring it")
            return None

        logger.info(f"Loaded {len(mapping)} {group.value} channel mappings from cache")
        return mapping

    async def save(self, group: ChannelGroup, mapping: ChannelMapping) -> bool:
        """Replace the stored pairs of a group; returns False on failure."""
        if not is_initialized():
            logger.warning(f"Database not initialized, {group.value} mapping kept in memory only")
            return False

        try:
            async with session_scope() as db:
                await db.merge(StorageMeta(key=FORMAT_VERSION_KEY, value=FORMAT_VERSION))
                await db.execute(
                    delete(ChannelMappingRow).where(ChannelMappingRow.channel_group == group.value)
                )
                db.add_all(
                    ChannelMappingRow(channel_group=group.value, kodi_number=number, tvheadend_uuid=uuid)
                    for number, uuid in mapping.pairs()
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist {group.value} mapping: {e}", exc_info=True)
            return False

        logger.info(f"Persisted {len(mapping)} {group.value} channel mappings")
        return True
