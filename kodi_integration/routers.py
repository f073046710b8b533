from typing import Annotated, Literal
from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from kodi_integration.dependencies import get_integration
from kodi_integration.schemas import (
    BrowseChannelModel,
    BrowseEPGModel,
    CommandRequest,
    CommandResponse,
    NotificationResponse,
    PlayerResponse,
    StatusResponse,
)
from kodi_integration.services.errors import InvalidCommandParam, NotConfiguredError, NotConnectedError
from kodi_integration.services.integration_service import KodiIntegration
from kodi_integration.services.scheduler_service import EPG_JOB, POLL_JOB
from kodi_integration.services.session_types import ChannelGroup


logger = logging.getLogger(__name__)

main_router = APIRouter()

Integration = Annotated[KodiIntegration, Depends(get_integration)]

GROUPS = {"tv": ChannelGroup.TV, "radio": ChannelGroup.RADIO}


@main_router.get("/")
async def root(integration: Integration) -> dict:
    """Root endpoint with service information"""
    next_poll = integration.scheduler.get_next_run_time(POLL_JOB)
    next_epg = integration.scheduler.get_next_run_time(EPG_JOB)

    return {
        "service": "Kodi Integration",
        "version": "0.1.0",
        "entity_id": integration.entity_id,
        "next_poll": next_poll.isoformat() if next_poll else None,
        "next_epg_load": next_epg.isoformat() if next_epg else None,
        "endpoints": {
            "player": "/player - Current player state",
            "commands": "/commands - Send a remote-control command (POST)",
            "channels": "/channels - Channel list",
            "epg": "/epg - EPG grid",
            "health": "/health - Backend statuses"
        }
    }


@main_router.get("/health", response_model=StatusResponse)
async def health_check(integration: Integration) -> StatusResponse:
    """Backend statuses and active timers"""
    return StatusResponse(**integration.status())


@main_router.get("/player", response_model=PlayerResponse)
async def get_player(integration: Integration) -> PlayerResponse:
    """Current player snapshot and entity attributes"""
    session = integration.session
    snapshot = session.snapshot
    return PlayerResponse(
        entity_id=session.entity_id,
        poll_state=session.poll_state.value,
        player_id=snapshot.player_id,
        player_type=snapshot.player_type.value,
        media_type=snapshot.media_type,
        title=snapshot.title,
        artist=snapshot.artist,
        image=snapshot.image,
        duration=snapshot.duration,
        position=snapshot.position,
        is_playing=snapshot.is_playing,
        attributes=integration.entities.attributes(session.entity_id),
    )


@main_router.post("/connect", response_model=StatusResponse)
async def connect(integration: Integration) -> StatusResponse:
    """Connect to the configured backends"""
    logger.info("Connect requested via API")
    try:
        await integration.connect()
    except NotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return StatusResponse(**integration.status())


@main_router.post("/disconnect", response_model=StatusResponse)
async def disconnect(integration: Integration) -> StatusResponse:
    """Disconnect from every backend"""
    logger.info("Disconnect requested via API")
    await integration.disconnect()
    return StatusResponse(**integration.status())


@main_router.post("/standby/enter", response_model=StatusResponse)
async def enter_standby(integration: Integration) -> StatusResponse:
    await integration.enter_standby()
    return StatusResponse(**integration.status())


@main_router.post("/standby/leave", response_model=StatusResponse)
async def leave_standby(integration: Integration) -> StatusResponse:
    try:
        await integration.leave_standby()
    except NotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return StatusResponse(**integration.status())


@main_router.post("/commands", response_model=CommandResponse)
async def send_command(request: CommandRequest, integration: Integration) -> CommandResponse:
    """
    Send a remote-control command

    Args:
        request: Command and its optional parameter

    Returns:
        Whether Kodi accepted the command
    """
    try:
        accepted = await integration.send_command(request.command, request.param)
    except NotConnectedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidCommandParam as e:
        raise HTTPException(status_code=422, detail=str(e))
    return CommandResponse(command=request.command, accepted=accepted)


@main_router.get("/browse")
async def get_browse_model(integration: Integration) -> dict:
    """The browse model last set on the entity"""
    model = integration.entities.browse_model(integration.entity_id)
    if model is None:
        raise HTTPException(status_code=404, detail="No browse model set")
    return model.model_dump()


@main_router.get("/channels", response_model=BrowseChannelModel)
async def get_channels(
    integration: Integration,
    group: Annotated[Literal["tv", "radio"], Query()] = "tv",
) -> BrowseChannelModel:
    """Channel list of a Kodi channel group"""
    return integration.commands.channel_list(GROUPS[group])


@main_router.get("/channels/{channel_id}/programme", response_model=BrowseChannelModel)
async def get_channel_programme(channel_id: int, integration: Integration) -> BrowseChannelModel:
    """Programme of a single Kodi channel"""
    try:
        return integration.commands.channel_programme(channel_id)
    except InvalidCommandParam as e:
        raise HTTPException(status_code=404, detail=str(e))


@main_router.get("/epg", response_model=BrowseEPGModel)
async def get_epg(integration: Integration) -> BrowseEPGModel:
    """EPG grid over the selected channels"""
    return integration.commands.epg_grid()


@main_router.get("/epg/{channel_number}", response_model=BrowseEPGModel)
async def get_channel_epg(channel_number: int, integration: Integration) -> BrowseEPGModel:
    """EPG grid restricted to one Kodi channel number"""
    return integration.commands.epg_channel(channel_number)


@main_router.get("/notifications", response_model=list[NotificationResponse])
async def list_notifications(integration: Integration) -> list[NotificationResponse]:
    return [NotificationResponse(**n.to_dict()) for n in integration.notifications.list()]


@main_router.post("/notifications/{notification_id}/action")
async def trigger_notification(notification_id: str, integration: Integration) -> dict:
    """Run the action of a notification, e.g. Reconnect"""
    if integration.notifications.get(notification_id) is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    try:
        triggered = await integration.notifications.trigger(notification_id)
    except NotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not triggered:
        raise HTTPException(status_code=400, detail="Notification has no action")
    return {"status": "ok", **integration.status()}


@main_router.delete("/notifications/{notification_id}")
async def dismiss_notification(notification_id: str, integration: Integration) -> dict:
    if not integration.notifications.dismiss(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"status": "dismissed"}
