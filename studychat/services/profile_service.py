"""Sender display metadata lookups."""

from collections.abc import Iterable

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studychat.repositories.user_repo import UserRepository
from studychat.schemas.message_schema import SenderProfile

logger = structlog.get_logger()


class ProfileDirectory:
    """Resolves user ids to display profiles, with a per-instance cache.

    Lookups never fail: an unknown user or an unreachable store yields
    the fallback profile so a message can still be rendered.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._cache: dict[int, SenderProfile] = {}

    async def lookup(self, user_id: int) -> SenderProfile:
        """Return the display profile for one user."""
        cached = self._cache.get(user_id)
        if cached is not None:
            return cached
        profiles = await self.lookup_many([user_id])
        return profiles[user_id]

    async def lookup_many(self, user_ids: Iterable[int]) -> dict[int, SenderProfile]:
        """Return display profiles for several users, keyed by id."""
        wanted = set(user_ids)
        missing = wanted - self._cache.keys()
        if missing:
            try:
                async with self._session_factory() as session:
                    users = await UserRepository(session).find_by_ids(missing)
            except SQLAlchemyError:
                logger.warning("Sender lookup failed", user_ids=sorted(missing))
                return {
                    user_id: self._cache.get(user_id, SenderProfile(user_id=user_id))
                    for user_id in wanted
                }
            for user_id in missing:
                user = users.get(user_id)
                if user is None:
                    self._cache[user_id] = SenderProfile(user_id=user_id)
                else:
                    self._cache[user_id] = SenderProfile(
                        user_id=user.id,
                        full_name=user.full_name,
                        avatar_url=user.avatar_url,
                    )
        return {user_id: self._cache[user_id] for user_id in wanted}
