from typing import List, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from audioshelf.core.errors import NotFoundError
from audioshelf.models.catalog import AudioTrack
from audioshelf.models.sharing import UserTrackAccess
from audioshelf.models.user import User

logger = structlog.get_logger()


class TrackAccessService:
    """Admin-managed standing grants of one private track to one user."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int, track_id: int) -> Optional[UserTrackAccess]:
        result = await self.db.execute(
            select(UserTrackAccess).where(
                UserTrackAccess.user_id == user_id,
                UserTrackAccess.audio_track_id == track_id,
            )
        )
        return result.scalar_one_or_none()

    async def has_access(self, user_id: int, track_id: int) -> bool:
        return await self.get(user_id, track_id) is not None

    async def grant(
        self, user_id: int, track_id: int, granted_by_id: Optional[int] = None
    ) -> UserTrackAccess:
        if await self.db.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        if await self.db.get(AudioTrack, track_id) is None:
            raise NotFoundError(f"Track {track_id} not found")

        existing = await self.get(user_id, track_id)
        if existing is not None:
            return existing

        access = UserTrackAccess(
            user_id=user_id, audio_track_id=track_id, granted_by_id=granted_by_id
        )
        self.db.add(access)
        try:
            await self.db.commit()
        except IntegrityError:  # Handles race conditions
            await self.db.rollback()
            existing = await self.get(user_id, track_id)
            if existing is None:
                raise
            return existing

        logger.info(
            "Track access granted",
            user_id=user_id,
            track_id=track_id,
            granted_by_id=granted_by_id,
        )
        return access

    async def revoke(self, user_id: int, track_id: int) -> bool:
        result = await self.db.execute(
            delete(UserTrackAccess)
            .where(
                UserTrackAccess.user_id == user_id,
                UserTrackAccess.audio_track_id == track_id,
            )
            .returning(UserTrackAccess.id)
        )
        deleted_id = result.scalars().first()
        await self.db.commit()
        if deleted_id is not None:
            logger.info("Track access revoked", user_id=user_id, track_id=track_id)
        return deleted_id is not None

    async def users_with_access(self, track_id: int) -> List[User]:
        result = await self.db.execute(
            select(User)
            .join(UserTrackAccess, UserTrackAccess.user_id == User.id)
            .where(UserTrackAccess.audio_track_id == track_id)
            .order_by(User.username)
        )
        return list(result.scalars().all())
