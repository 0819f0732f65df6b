from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from audioshelf.core.errors import NotFoundError, ValidationError
from audioshelf.models.catalog import AudioTrack
from audioshelf.models.sharing import ShareableLink, new_link_id
from audioshelf.utils.timeutils import as_utc, utcnow

logger = structlog.get_logger()


class ShareableLinkIssuer:
    """
    Mints and manages shareable links.

    Link ids are UUID4 strings (122 random bits). ``resolve`` returns a
    stored row even when it has expired so admin listings can show it;
    callers authorizing a request must check ``ShareableLink.is_usable``.
    Expired rows are never rewritten; they simply read as expired.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def issue(
        self,
        track_id: int,
        created_by_id: int,
        expires_at: Optional[datetime] = None,
    ) -> ShareableLink:
        if await self.db.get(AudioTrack, track_id) is None:
            raise NotFoundError(f"Track {track_id} not found")
        expires_at = as_utc(expires_at)
        if expires_at is not None and expires_at <= utcnow():
            raise ValidationError("Expiry must be in the future")

        link = ShareableLink(
            link_id=new_link_id(),
            audio_track_id=track_id,
            created_by_id=created_by_id,
            expires_at=expires_at,
            is_active=True,
        )
        self.db.add(link)
        await self.db.commit()
        logger.info(
            "Shareable link issued",
            link_id=link.link_id,
            track_id=track_id,
            created_by_id=created_by_id,
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return link

    async def resolve(self, link_id: str) -> Optional[ShareableLink]:
        result = await self.db.execute(
            select(ShareableLink).where(ShareableLink.link_id == link_id)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, id: int) -> Optional[ShareableLink]:
        return await self.db.get(ShareableLink, id)

    async def set_active(self, link_id: str, is_active: bool) -> ShareableLink:
        link = await self.resolve(link_id)
        if link is None:
            raise NotFoundError("Shareable link not found")
        if link.is_active != is_active:
            link.is_active = is_active
            await self.db.commit()
            logger.info("Shareable link toggled", link_id=link_id, is_active=is_active)
        return link

    async def revoke(self, link_id: str) -> Optional[ShareableLink]:
        """Deactivate a link. Revoking an unknown or inactive link is a no-op."""
        link = await self.resolve(link_id)
        if link is None:
            return None
        return await self.set_active(link_id, False)

    async def delete(self, link_id: str) -> bool:
        """Remove the row for good; returns whether anything was deleted."""
        result = await self.db.execute(
            delete(ShareableLink)
            .where(ShareableLink.link_id == link_id)
            .returning(ShareableLink.id)
        )
        deleted_id = result.scalars().first()
        await self.db.commit()
        if deleted_id is not None:
            logger.info("Shareable link deleted", link_id=link_id)
        return deleted_id is not None

    async def list_all(self) -> List[ShareableLink]:
        result = await self.db.execute(
            select(ShareableLink).order_by(ShareableLink.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_creator(self, user_id: int) -> List[ShareableLink]:
        result = await self.db.execute(
            select(ShareableLink)
            .where(ShareableLink.created_by_id == user_id)
            .order_by(ShareableLink.created_at.desc())
        )
        return list(result.scalars().all())
