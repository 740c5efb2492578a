"""Global dependencies for the application."""

from collections.abc import Callable

from fastapi import Depends, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studychat.core.database import async_session_factory, get_async_session
from studychat.core.exceptions import AuthenticationError, AuthorizationError
from studychat.core.redis import get_redis
from studychat.realtime.change_feed import ChangeFeed
from studychat.realtime.presence import PresenceBroadcaster
from studychat.realtime.transport import PubSubTransport, RedisPubSubTransport
from studychat.repositories.chat_repo import ChatRepository
from studychat.services.message_store import MessageStore
from studychat.services.profile_service import ProfileDirectory
from studychat.services.room_service import RoomService

# --- Auth dependencies ---


class CurrentUser(BaseModel):
    """Authenticated user extracted from request state."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str


def get_current_user(request: Request) -> CurrentUser:
    """Extract the authenticated user from middleware-populated state."""
    state = getattr(request, "state", None)
    user_id = getattr(state, "user_id", None) if state else None
    if user_id is None:
        raise AuthenticationError(message="Not authenticated")
    return CurrentUser(
        id=state.user_id,
        email=state.email,
        role=state.role,
    )


def require_role(*allowed_roles: str) -> Callable[..., CurrentUser]:
    """Dependency factory that enforces role-based access control."""

    def _check(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                message=f"Role '{current_user.role}' is not permitted"
            )
        return current_user

    return _check


# --- Persistence ---


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for services that open their own transactions."""
    return async_session_factory


def get_chat_repository(
    session: AsyncSession = Depends(get_async_session),
) -> ChatRepository:
    """Get ChatRepository bound to the current session."""
    return ChatRepository(session)


# --- Realtime ---


def get_transport() -> PubSubTransport:
    """Pub/sub transport backed by the active Redis client."""
    return RedisPubSubTransport(get_redis())


def get_change_feed(
    transport: PubSubTransport = Depends(get_transport),
) -> ChangeFeed:
    """Get the message change feed."""
    return ChangeFeed(transport)


def get_presence(
    transport: PubSubTransport = Depends(get_transport),
) -> PresenceBroadcaster:
    """Get the typing signal broadcaster."""
    return PresenceBroadcaster(transport)


# --- Services ---


def get_room_service(
    chat_repo: ChatRepository = Depends(get_chat_repository),
    current_user: CurrentUser = Depends(get_current_user),
) -> RoomService:
    """Get RoomService for the authenticated user."""
    return RoomService(chat_repo=chat_repo, user_id=current_user.id)


def get_message_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    feed: ChangeFeed = Depends(get_change_feed),
) -> MessageStore:
    """Get MessageStore publishing to the change feed."""
    return MessageStore(session_factory, feed)


def get_profile_directory(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ProfileDirectory:
    """Get a ProfileDirectory for sender lookups."""
    return ProfileDirectory(session_factory)
