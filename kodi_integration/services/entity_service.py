"""
Media player entity

The entity-update contract consumed by the remote: attribute updates and the
browse model. `MediaPlayerEntityStore` keeps the latest values in memory so the
HTTP API can serve them.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel


logger = logging.getLogger(__name__)


class EntityAttr(str, Enum):
    STATE = "STATE"
    MEDIATYPE = "MEDIATYPE"
    MEDIATITLE = "MEDIATITLE"
    MEDIAARTIST = "MEDIAARTIST"
    MEDIAIMAGE = "MEDIAIMAGE"
    MEDIADURATION = "MEDIADURATION"
    MEDIAPROGRESS = "MEDIAPROGRESS"
    VOLUME = "VOLUME"


class MediaPlayerState(str, Enum):
    IDLE = "IDLE"
    PLAYING = "PLAYING"


class EntitySink(Protocol):
    def update_attr(self, entity_id: str, attr: EntityAttr, value: Any) -> None: ...

    def set_browse_model(self, entity_id: str, model: BaseModel) -> None: ...


def cleared_attributes() -> dict[EntityAttr, Any]:
    """Attribute values of an entity with nothing playing."""
    return {
        EntityAttr.STATE: MediaPlayerState.IDLE,
        EntityAttr.MEDIATYPE: "",
        EntityAttr.MEDIATITLE: "",
        EntityAttr.MEDIAARTIST: "",
        EntityAttr.MEDIAIMAGE: "",
        EntityAttr.MEDIADURATION: 0,
        EntityAttr.MEDIAPROGRESS: 0,
    }


class MediaPlayerEntityStore:
    """In-memory EntitySink keeping the latest attributes per entity."""

    def __init__(self) -> None:
        self._attributes: dict[str, dict[EntityAttr, Any]] = {}
        self._browse_models: dict[str, BaseModel] = {}

    def update_attr(self, entity_id: str, attr: EntityAttr, value: Any) -> None:
        logger.debug(f"{entity_id}: {attr.value} = {value!r}")
        self._attributes.setdefault(entity_id, {})[attr] = value

    def set_browse_model(self, entity_id: str, model: BaseModel) -> None:
        logger.debug(f"{entity_id}: browse model {type(model).__name__}")
        self._browse_models[entity_id] = model

    def attributes(self, entity_id: str) -> dict[str, Any]:
        values = self._attributes.get(entity_id, {})
        return {
            attr.value: value.value if isinstance(value, Enum) else value
            for attr, value in values.items()
        }

    def attribute(self, entity_id: str, attr: EntityAttr, default: Any = None) -> Any:
        return self._attributes.get(entity_id, {}).get(attr, default)

    def browse_model(self, entity_id: str) -> BaseModel | None:
        return self._browse_models.get(entity_id)


def emit(sink: EntitySink, entity_id: str, updates: dict[EntityAttr, Any]) -> None:
    """Forward a batch of attribute updates to the sink."""
    for attr, value in updates.items():
        sink.update_attr(entity_id, attr, value)
