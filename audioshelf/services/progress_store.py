from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from audioshelf.core.errors import NotFoundError, ValidationError
from audioshelf.models.catalog import AudioTrack
from audioshelf.models.progress import UserProgress
from audioshelf.utils.timeutils import utcnow

logger = structlog.get_logger()

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class ProgressStore:
    """
    Per-(user, track) playback positions.

    Saving is an upsert on the (user_id, audio_track_id) unique key, so a
    repeated save overwrites the existing row in place and keeps its id.
    Rows are never deleted.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(
        self,
        user_id: int,
        audio_track_id: int,
        progress: int,
        completed: Optional[bool] = None,
    ) -> UserProgress:
        if isinstance(progress, bool) or not isinstance(progress, int):
            raise ValidationError("Progress must be a whole number of seconds")
        if progress < 0:
            raise ValidationError("Progress cannot be negative")

        track = await self.db.get(AudioTrack, audio_track_id)
        if track is None:
            raise NotFoundError(f"Track {audio_track_id} not found")

        # Duration wins over the client's completed flag
        progress = min(progress, track.duration)
        completed = progress >= track.duration

        values = {
            "user_id": user_id,
            "audio_track_id": audio_track_id,
            "progress": progress,
            "completed": completed,
            "updated_at": utcnow(),
        }
        insert = _UPSERT_DIALECTS[self.db.get_bind().dialect.name]
        stmt = (
            insert(UserProgress)
            .values(**values)
            .on_conflict_do_update(
                index_elements=[UserProgress.user_id, UserProgress.audio_track_id],
                set_={
                    "progress": values["progress"],
                    "completed": values["completed"],
                    "updated_at": values["updated_at"],
                },
            )
            .returning(UserProgress)
            .execution_options(populate_existing=True)
        )
        saved = (await self.db.execute(stmt)).scalar_one()
        await self.db.commit()
        logger.debug(
            "Progress saved",
            user_id=user_id,
            track_id=audio_track_id,
            progress=progress,
            completed=completed,
        )
        return saved

    async def get(self, user_id: int, audio_track_id: int) -> Optional[UserProgress]:
        result = await self.db.execute(
            select(UserProgress).where(
                UserProgress.user_id == user_id,
                UserProgress.audio_track_id == audio_track_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: int) -> List[UserProgress]:
        result = await self.db.execute(
            select(UserProgress)
            .where(UserProgress.user_id == user_id)
            .order_by(UserProgress.updated_at.desc(), UserProgress.id.desc())
        )
        return list(result.scalars().all())
