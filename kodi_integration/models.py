"""
SQLAlchemy ORM Models for the Kodi integration

This module defines the tables backing the persisted channel mappings.
"""
from datetime import datetime, timezone
from sqlalchemy import Integer, String, DateTime, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class ChannelMappingRow(Base):
    """One Kodi channel number <-> TVHeadend channel UUID pair of a channel group"""
    __tablename__ = "channel_mappings"

    channel_group: Mapped[str] = mapped_column(String, primary_key=True)
    kodi_number: Mapped[int] = mapped_column(Integer, primary_key=True)
    tvheadend_uuid: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("channel_group", "tvheadend_uuid", name="uq_mapping_group_uuid"),
    )

    def __repr__(self) -> str:
        return (
            f"<ChannelMappingRow(group={self.channel_group}, number={self.kodi_number}, "
            f"uuid={self.tvheadend_uuid})>"
        )


class StorageMeta(Base):
    """Key/value metadata, e.g. the serialization format version of the mappings"""
    __tablename__ = "storage_meta"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(String, nullable=False)

    def __repr__(self) -> str:
        return f"<StorageMeta(key={self.key}, value={self.value})>"
