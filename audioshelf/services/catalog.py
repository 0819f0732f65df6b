import uuid
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import aiofiles
import structlog
from fastapi import UploadFile
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from audioshelf.core.config import settings
from audioshelf.core.errors import ConflictError, NotFoundError, ValidationError
from audioshelf.models.catalog import AudioTrack, Category, Tag, audio_track_tags
from audioshelf.models.progress import UserProgress
from audioshelf.models.sharing import ShareableLink, UserTrackAccess
from audioshelf.schemas.progress import Progress
from audioshelf.schemas.track import TrackDetail
from audioshelf.services.access_policy import AccessPolicy, Principal

logger = structlog.get_logger()

CHUNK_SIZE = 1024 * 1024


class CatalogService:
    """Track, category and tag reads plus their admin-side mutations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.policy = AccessPolicy(db)

    async def get_track(self, track_id: int) -> AudioTrack:
        track = await self.db.get(AudioTrack, track_id)
        if track is None:
            raise NotFoundError(f"Track {track_id} not found")
        return track

    async def list_tracks(
        self,
        principal: Principal,
        category_id: Optional[int] = None,
        query: Optional[str] = None,
    ) -> List[AudioTrack]:
        stmt = select(AudioTrack).where(self.policy.visible_filter(principal))
        if category_id is not None:
            stmt = stmt.where(AudioTrack.category_id == category_id)
        if query:
            pattern = f"%{query.strip()}%"
            stmt = stmt.where(
                or_(AudioTrack.title.ilike(pattern), AudioTrack.description.ilike(pattern))
            )
        result = await self.db.execute(stmt.order_by(AudioTrack.id))
        return list(result.scalars().all())

    async def with_details(
        self, tracks: Sequence[AudioTrack], user_id: Optional[int] = None
    ) -> List[TrackDetail]:
        """Attach the caller's saved progress to each track, if any."""
        progress_by_track: Dict[int, UserProgress] = {}
        if user_id is not None and tracks:
            result = await self.db.execute(
                select(UserProgress).where(
                    UserProgress.user_id == user_id,
                    UserProgress.audio_track_id.in_([t.id for t in tracks]),
                )
            )
            progress_by_track = {p.audio_track_id: p for p in result.scalars().all()}

        details = []
        for track in tracks:
            detail = TrackDetail.model_validate(track)
            saved = progress_by_track.get(track.id)
            if saved is not None:
                detail.progress = Progress.model_validate(saved)
            details.append(detail)
        return details

    async def list_categories(self) -> List[Category]:
        result = await self.db.execute(select(Category).order_by(Category.name))
        return list(result.scalars().all())

    async def get_category(self, category_id: int) -> Category:
        category = await self.db.get(Category, category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        return category

    async def list_tags(self) -> List[Tag]:
        result = await self.db.execute(select(Tag).order_by(Tag.name))
        return list(result.scalars().all())

    async def get_tag(self, tag_id: int) -> Tag:
        tag = await self.db.get(Tag, tag_id)
        if tag is None:
            raise NotFoundError(f"Tag {tag_id} not found")
        return tag

    async def create_category(self, name: str, description: str = "") -> Category:
        await self._ensure_unique_name(Category, name)
        category = Category(name=name, description=description, count=0)
        self.db.add(category)
        await self._commit_named(Category, name)
        logger.info("Category created", category_id=category.id, name=name)
        return category

    async def update_category(
        self,
        category_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Category:
        category = await self.get_category(category_id)
        if name is not None and name != category.name:
            await self._ensure_unique_name(Category, name)
            category.name = name
        if description is not None:
            category.description = description
        await self._commit_named(Category, category.name)
        logger.info("Category updated", category_id=category_id)
        return category

    async def delete_category(self, category_id: int) -> None:
        """Delete an empty category; categories still holding tracks are kept."""
        category = await self.get_category(category_id)
        result = await self.db.execute(
            select(AudioTrack.id).where(AudioTrack.category_id == category_id).limit(1)
        )
        if result.first() is not None:
            raise ValidationError("Category still has tracks; move or delete them first")
        await self.db.delete(category)
        await self.db.commit()
        logger.info("Category deleted", category_id=category_id)

    async def create_tag(self, name: str) -> Tag:
        await self._ensure_unique_name(Tag, name)
        tag = Tag(name=name)
        self.db.add(tag)
        await self._commit_named(Tag, name)
        logger.info("Tag created", tag_id=tag.id, name=name)
        return tag

    async def rename_tag(self, tag_id: int, name: str) -> Tag:
        tag = await self.get_tag(tag_id)
        if name != tag.name:
            await self._ensure_unique_name(Tag, name)
            tag.name = name
            await self._commit_named(Tag, name)
            logger.info("Tag renamed", tag_id=tag_id, name=name)
        return tag

    async def delete_tag(self, tag_id: int) -> None:
        """Delete a tag and detach it from every track."""
        tag = await self.get_tag(tag_id)
        await self.db.execute(
            delete(audio_track_tags).where(audio_track_tags.c.tag_id == tag_id)
        )
        await self.db.delete(tag)
        await self.db.commit()
        logger.info("Tag deleted", tag_id=tag_id)

    async def _ensure_unique_name(self, model, name: str) -> None:
        result = await self.db.execute(select(model.id).where(model.name == name))
        if result.first() is not None:
            raise ConflictError(f"{model.__name__} '{name}' already exists")

    async def _commit_named(self, model, name: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError:  # Handles race conditions
            await self.db.rollback()
            raise ConflictError(f"{model.__name__} '{name}' already exists")

    async def set_visibility(self, track_id: int, is_public: bool) -> AudioTrack:
        track = await self.get_track(track_id)
        track.is_public = is_public
        await self.db.commit()
        logger.info("Track visibility changed", track_id=track_id, is_public=is_public)
        return track

    async def create_track(
        self,
        title: str,
        description: str,
        category_id: int,
        audio_url: str,
        image_url: Optional[str] = None,
        duration: int = 0,
        is_public: bool = True,
        tag_ids: Sequence[int] = (),
    ) -> AudioTrack:
        if duration < 0:
            raise ValidationError("Duration cannot be negative")
        category = await self.get_category(category_id)
        tags = []
        if tag_ids:
            result = await self.db.execute(select(Tag).where(Tag.id.in_(tag_ids)))
            tags = list(result.scalars().all())

        track = AudioTrack(
            title=title,
            description=description,
            category_id=category.id,
            audio_url=audio_url,
            image_url=image_url or settings.default_image_url,
            duration=duration,
            is_public=is_public,
            tags=tags,
        )
        self.db.add(track)
        category.count = category.count + 1
        await self.db.commit()
        await self.db.refresh(track, attribute_names=["category", "tags"])
        logger.info("Track created", track_id=track.id, category_id=category.id)
        return track

    async def delete_track(self, track_id: int) -> None:
        track = await self.get_track(track_id)
        category = await self.db.get(Category, track.category_id)
        for stmt in (
            delete(UserProgress).where(UserProgress.audio_track_id == track_id),
            delete(ShareableLink).where(ShareableLink.audio_track_id == track_id),
            delete(UserTrackAccess).where(UserTrackAccess.audio_track_id == track_id),
        ):
            await self.db.execute(stmt)
        await self.db.delete(track)
        if category is not None:
            category.count = max(category.count - 1, 0)
        await self.db.commit()
        logger.info("Track deleted", track_id=track_id)

    async def store_upload(self, file: UploadFile) -> str:
        """Stream an uploaded audio file to the upload dir; returns its URL path."""
        if file.content_type not in settings.allowed_audio_types:
            raise ValidationError("Invalid file type. Only audio files are allowed.")

        upload_dir = Path(settings.upload_dir)
        upload_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{uuid.uuid4().hex}{Path(file.filename or '').suffix.lower()}"
        target = upload_dir / filename

        written = 0
        try:
            async with aiofiles.open(target, "wb") as f:
                while content := await file.read(CHUNK_SIZE):
                    written += len(content)
                    if written > settings.max_file_size:
                        raise ValidationError(
                            f"File size is too large. Maximum allowed size is "
                            f"{settings.max_file_size / (1024 * 1024):.1f}MB."
                        )
                    await f.write(content)
        except ValidationError:
            target.unlink(missing_ok=True)
            raise

        logger.info("Audio file stored", file=str(target), size=written)
        return f"/uploads/audio/{filename}"

    @staticmethod
    def local_media_path(track: AudioTrack) -> Optional[Path]:
        """Filesystem path for an uploaded track, None for external URLs."""
        if not track.audio_url.startswith("/uploads/audio/"):
            return None
        path = Path(settings.upload_dir) / Path(track.audio_url).name
        return path if path.exists() else None
