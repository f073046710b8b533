"""
Player Poller

Determines what Kodi is currently playing by chaining dependent JSON-RPC calls.

`PlayerStateMachine` is the pure part: `next_request()` says what to ask Kodi in
the current state and `advance(result)` consumes the answer, updates the
`PlayerSnapshot` in one assignment and returns the entity updates to emit.
`PlayerPoller` drives it from the poll timer, applies the outcomes to the entity
and owns the one-second progress ticker.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from pydantic import TypeAdapter, ValidationError

from kodi_integration.schemas import (
    ActivePlayer,
    PlayerItemResult,
    PlayerProperties,
    PrepareDownloadResult,
)
from kodi_integration.services import kodi_rpc
from kodi_integration.services.entity_service import (
    EntityAttr,
    EntitySink,
    MediaPlayerState,
    cleared_attributes,
    emit,
)
from kodi_integration.services.operation_gate import OperationGate
from kodi_integration.services.scheduler_service import PROGRESS_JOB, IntegrationScheduler
from kodi_integration.services.session_types import (
    Backend,
    PlayerSnapshot,
    PlayerType,
    PollState,
    SessionState,
)
from kodi_integration.services.transport_service import RequestKind, Transport, TransportResult


logger = logging.getLogger(__name__)

PLAYABLE_MEDIA_TYPES = frozenset({"channel"})
MAX_STEPS_PER_CYCLE = 4

_active_players = TypeAdapter(list[ActivePlayer])


class ProgressAction(Enum):
    NONE = "none"
    START = "start"
    STOP = "stop"


@dataclass(frozen=True, slots=True)
class PollRequest:
    kind: RequestKind
    method: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PollOutcome:
    """Entity updates and progress-ticker action produced by one transition."""
    updates: dict[EntityAttr, Any] = field(default_factory=dict)
    progress: ProgressAction = ProgressAction.NONE


_EXPECTED_KIND = {
    PollState.GET_ACTIVE_PLAYERS: RequestKind.ACTIVE_PLAYERS,
    PollState.GET_ITEM: RequestKind.PLAYER_ITEM,
    PollState.PREPARE_DOWNLOAD: RequestKind.PREPARE_DOWNLOAD,
    PollState.GET_PROPERTIES: RequestKind.PLAYER_PROPERTIES,
}

# Where each state goes when its request fails or the answer is unusable
_FAILURE_TRANSITION = {
    PollState.GET_ACTIVE_PLAYERS: PollState.GET_ACTIVE_PLAYERS,
    PollState.GET_ITEM: PollState.GET_ACTIVE_PLAYERS,
    PollState.PREPARE_DOWNLOAD: PollState.GET_PROPERTIES,
    PollState.GET_PROPERTIES: PollState.GET_ACTIVE_PLAYERS,
}


class PlayerStateMachine:
    """Enum-driven poll state machine over a SessionState."""

    def __init__(self, session: SessionState) -> None:
        self.session = session

    @property
    def state(self) -> PollState:
        return self.session.poll_state

    def reset(self) -> None:
        self.session.poll_state = PollState.GET_ACTIVE_PLAYERS

    def next_request(self) -> PollRequest | None:
        """Request to send in the current state, None when Stopped."""
        session = self.session
        state = session.poll_state
        if state is PollState.GET_ACTIVE_PLAYERS:
            return PollRequest(RequestKind.ACTIVE_PLAYERS, kodi_rpc.GET_ACTIVE_PLAYERS)
        if state is PollState.GET_ITEM:
            return PollRequest(
                RequestKind.PLAYER_ITEM,
                kodi_rpc.GET_ITEM,
                {"properties": kodi_rpc.ITEM_PROPERTIES, "playerid": session.snapshot.player_id},
            )
        if state is PollState.PREPARE_DOWNLOAD:
            return PollRequest(
                RequestKind.PREPARE_DOWNLOAD,
                kodi_rpc.PREPARE_DOWNLOAD,
                {"path": session.pending_thumbnail},
            )
        if state is PollState.GET_PROPERTIES:
            return PollRequest(
                RequestKind.PLAYER_PROPERTIES,
                kodi_rpc.GET_PROPERTIES,
                {"playerid": session.snapshot.player_id, "properties": kodi_rpc.PLAYER_TIME_PROPERTIES},
            )
        return None

    def advance(self, result: TransportResult) -> PollOutcome:
        """Feed one transport result into the machine."""
        state = self.session.poll_state
        expected = _EXPECTED_KIND.get(state)
        if expected is None or result.kind is not expected:
            logger.debug(f"Ignoring {result.kind.value} result in state {state.value}")
            return PollOutcome()

        if not result.ok:
            logger.debug(f"Poll step {state.value} failed: {result.error}")
            self.session.poll_state = _FAILURE_TRANSITION[state]
            return PollOutcome()

        try:
            if state is PollState.GET_ACTIVE_PLAYERS:
                return self._on_active_players(result.data)
            if state is PollState.GET_ITEM:
                return self._on_item(result.data)
            if state is PollState.PREPARE_DOWNLOAD:
                return self._on_prepare_download(result.data)
            return self._on_properties(result.data)
        except ValidationError as e:
            logger.warning(f"Unexpected {result.kind.value} payload: {e.error_count()} validation error(s)")
            self.session.poll_state = _FAILURE_TRANSITION[state]
            return PollOutcome()

    def _on_active_players(self, data: Any) -> PollOutcome:
        players = _active_players.validate_python(data or [])
        if not players:
            return PollOutcome()

        player = players[0]
        session = self.session
        session.snapshot = replace(
            session.snapshot,
            player_id=player.playerid,
            player_type=PlayerType.parse(player.type),
        )
        if player.playerid > 0:
            session.poll_state = PollState.GET_ITEM
        return PollOutcome()

    def _on_item(self, data: Any) -> PollOutcome:
        item = PlayerItemResult.model_validate(data).item
        session = self.session

        if item.title == session.snapshot.title and not session.first_run:
            session.poll_state = PollState.GET_ACTIVE_PLAYERS
            return PollOutcome()

        if item.type not in PLAYABLE_MEDIA_TYPES:
            session.poll_state = PollState.GET_ACTIVE_PLAYERS
            return PollOutcome()

        session.snapshot = replace(
            session.snapshot,
            media_type=item.type,
            title=item.title,
            artist=item.label,
        )
        session.pending_thumbnail = item.thumbnail
        session.poll_state = PollState.PREPARE_DOWNLOAD if item.thumbnail else PollState.GET_PROPERTIES
        return PollOutcome(updates={
            EntityAttr.MEDIATYPE: item.type,
            EntityAttr.MEDIATITLE: item.title,
            EntityAttr.MEDIAARTIST: item.label,
        })

    def _on_prepare_download(self, data: Any) -> PollOutcome:
        download = PrepareDownloadResult.model_validate(data)
        session = self.session
        session.poll_state = PollState.GET_PROPERTIES
        if download.protocol != "http" or download.mode != "redirect":
            return PollOutcome()

        kodi = session.kodi
        image = f"{kodi.scheme}://{kodi.host}:{kodi.port}/{download.details.path}"
        session.snapshot = replace(session.snapshot, image=image)
        return PollOutcome(updates={EntityAttr.MEDIAIMAGE: image})

    def _on_properties(self, data: Any) -> PollOutcome:
        properties = PlayerProperties.model_validate(data)
        session = self.session
        session.poll_state = PollState.GET_ACTIVE_PLAYERS
        session.first_run = False

        snapshot = session.snapshot
        updates: dict[EntityAttr, Any] = {}
        if properties.totaltime is not None:
            snapshot = replace(snapshot, duration=properties.totaltime.total_seconds)
            updates[EntityAttr.MEDIADURATION] = snapshot.duration
        if properties.time is not None:
            snapshot = replace(snapshot, position=properties.time.total_seconds)
            updates[EntityAttr.MEDIAPROGRESS] = snapshot.position

        if properties.speed is None:
            session.snapshot = snapshot
            return PollOutcome(updates=updates)

        if properties.speed > 0:
            session.snapshot = replace(snapshot, is_playing=True)
            updates[EntityAttr.STATE] = MediaPlayerState.PLAYING
            return PollOutcome(updates=updates, progress=ProgressAction.START)

        session.snapshot = PlayerSnapshot(player_id=snapshot.player_id, player_type=snapshot.player_type)
        return PollOutcome(updates=cleared_attributes(), progress=ProgressAction.STOP)


class PlayerPoller:
    """Runs poll cycles against Kodi and keeps the entity in sync."""

    def __init__(
        self,
        session: SessionState,
        transport: Transport,
        sink: EntitySink,
        scheduler: IntegrationScheduler,
        *,
        progress_interval_sec: float = 1.0,
    ) -> None:
        self.session = session
        self.transport = transport
        self.sink = sink
        self.scheduler = scheduler
        self.machine = PlayerStateMachine(session)
        self._progress_interval = progress_interval_sec
        self._gate = OperationGate("Poll cycle")

    async def poll_cycle(self) -> None:
        """Run one cycle unless a previous one is still in flight."""
        await self._gate.run(self._cycle)

    def is_polling(self) -> bool:
        return self._gate.is_running()

    async def _cycle(self) -> None:
        session = self.session
        if not session.is_online(Backend.KODI):
            return

        epoch = session.epoch
        if session.poll_state is PollState.STOPPED:
            self.machine.reset()

        for _ in range(MAX_STEPS_PER_CYCLE):
            request = self.machine.next_request()
            if request is None:
                return
            state_before = session.poll_state

            result = await self.transport.call(session.kodi, request.kind, request.method, request.params)
            if result.cancelled or session.epoch != epoch:
                logger.debug(f"Discarding late {result.kind.value} response (request {result.correlation_id})")
                return

            self.apply(self.machine.advance(result))
            if session.poll_state is PollState.GET_ACTIVE_PLAYERS or session.poll_state is state_before:
                return

    def apply(self, outcome: PollOutcome) -> None:
        emit(self.sink, self.session.entity_id, outcome.updates)
        if outcome.progress is ProgressAction.START:
            self.start_progress()
        elif outcome.progress is ProgressAction.STOP:
            self.stop_progress()

    def start_progress(self) -> None:
        """(Re)start the progress ticker."""
        self.scheduler.add_interval_job(PROGRESS_JOB, self.progress_tick, self._progress_interval)

    def stop_progress(self) -> None:
        self.scheduler.remove_job(PROGRESS_JOB)

    async def progress_tick(self) -> None:
        snapshot = self.session.snapshot
        if not snapshot.is_playing:
            return
        self.session.snapshot = replace(snapshot, position=snapshot.position + 1)
        self.sink.update_attr(self.session.entity_id, EntityAttr.MEDIAPROGRESS, self.session.snapshot.position)

    def mark_playing(self) -> None:
        """Force the machine back to GetActivePlayers and show the entity as playing."""
        self.machine.reset()
        self.session.snapshot = replace(self.session.snapshot, is_playing=True)
        self.sink.update_attr(self.session.entity_id, EntityAttr.STATE, MediaPlayerState.PLAYING)

    def mark_stopped(self) -> None:
        """Explicit Stop: forget the player and clear the entity."""
        self.stop_progress()
        self.session.poll_state = PollState.STOPPED
        self.clear()

    def clear(self) -> None:
        self.session.snapshot = PlayerSnapshot()
        emit(self.sink, self.session.entity_id, cleared_attributes())
