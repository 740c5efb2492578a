"""Room chat API router: messages, typing signals and the live event stream."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import StreamingResponse

from studychat.core.config import settings
from studychat.core.rate_limit import limiter
from studychat.dependencies import (
    CurrentUser,
    get_change_feed,
    get_current_user,
    get_message_store,
    get_presence,
    get_profile_directory,
    get_room_service,
    require_role,
)
from studychat.realtime.change_feed import ChangeFeed
from studychat.realtime.presence import PresenceBroadcaster
from studychat.schemas.message_schema import (
    EditMessageRequest,
    MessageResponse,
    RoomMessagesResponse,
    SendMessageRequest,
)
from studychat.schemas.realtime_schema import TypingRequest
from studychat.schemas.response_schema import ApiResponse, success_response
from studychat.schemas.room_schema import RoomListResponse
from studychat.services.message_store import MessageStore
from studychat.services.profile_service import ProfileDirectory
from studychat.services.room_service import RoomService
from studychat.services.room_stream import RoomEventStream

router = APIRouter(
    prefix="/api/v1/rooms",
    tags=["rooms"],
    dependencies=[Depends(require_role("user", "admin"))],
)

RoomServiceDep = Annotated[RoomService, Depends(get_room_service)]
MessageStoreDep = Annotated[MessageStore, Depends(get_message_store)]
CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]


@router.get("", response_model=ApiResponse[RoomListResponse])
async def list_rooms(service: RoomServiceDep) -> dict:
    """List the rooms the current user created or joined."""
    return success_response(await service.list_rooms())


@router.get("/{room_id}/messages", response_model=ApiResponse[RoomMessagesResponse])
async def list_messages(
    room_id: int,
    service: RoomServiceDep,
    store: MessageStoreDep,
) -> dict:
    """Return the room's messages ordered by creation time."""
    await service.ensure_member(room_id)
    records = await store.list_messages(room_id)
    return success_response(
        RoomMessagesResponse(
            room_id=room_id,
            messages=[MessageResponse.from_record(record) for record in records],
        )
    )


@router.post(
    "/{room_id}/messages",
    response_model=ApiResponse[MessageResponse],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.chat.send_rate_limit)
async def send_message(
    request: Request,
    room_id: int,
    body: SendMessageRequest,
    service: RoomServiceDep,
    store: MessageStoreDep,
    current_user: CurrentUserDep,
) -> dict:
    """Post a message into the room."""
    await service.ensure_member(room_id)
    record = await store.append(
        room_id=room_id,
        sender_id=current_user.id,
        body=body.body,
        attachments=body.attachments,
    )
    return success_response(MessageResponse.from_record(record), status=201)


@router.patch(
    "/{room_id}/messages/{message_id}",
    response_model=ApiResponse[MessageResponse],
)
async def edit_message(
    room_id: int,
    message_id: str,
    body: EditMessageRequest,
    service: RoomServiceDep,
    store: MessageStoreDep,
    current_user: CurrentUserDep,
) -> dict:
    """Replace the body of one of the caller's messages."""
    await service.ensure_member(room_id)
    record = await store.edit(
        message_id, current_user.id, body.body, room_id=room_id
    )
    return success_response(MessageResponse.from_record(record))


@router.delete(
    "/{room_id}/messages/{message_id}",
    response_model=ApiResponse[None],
)
async def delete_message(
    room_id: int,
    message_id: str,
    service: RoomServiceDep,
    store: MessageStoreDep,
    current_user: CurrentUserDep,
) -> dict:
    """Delete one of the caller's messages."""
    await service.ensure_member(room_id)
    await store.remove(message_id, current_user.id, room_id)
    return success_response(None, message="Message deleted")


@router.post("/{room_id}/typing", response_model=ApiResponse[dict])
async def announce_typing(
    room_id: int,
    body: TypingRequest,
    service: RoomServiceDep,
    current_user: CurrentUserDep,
    presence: Annotated[PresenceBroadcaster, Depends(get_presence)],
    profiles: Annotated[ProfileDirectory, Depends(get_profile_directory)],
) -> dict:
    """Broadcast a typing start/stop signal to the other room members."""
    await service.ensure_member(room_id)
    profile = await profiles.lookup(current_user.id)
    if body.kind == "start":
        delivered = await presence.announce_typing(
            room_id, current_user.id, profile.full_name
        )
    else:
        delivered = await presence.announce_stop_typing(
            room_id, current_user.id, profile.full_name
        )
    return success_response({"delivered": delivered})


@router.get("/{room_id}/events")
async def stream_room_events(
    request: Request,
    room_id: int,
    service: RoomServiceDep,
    current_user: CurrentUserDep,
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    presence: Annotated[PresenceBroadcaster, Depends(get_presence)],
) -> StreamingResponse:
    """Stream message changes and other members' typing as Server-Sent Events."""
    await service.ensure_member(room_id)
    stream = RoomEventStream(room_id, current_user.id, feed, presence)
    await stream.open()
    return StreamingResponse(
        stream.events(request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
