"""
Access Policy: decides whether a requester may see a track.

Evaluation order, first match wins:

1. a presented link id must resolve to an active, unexpired link for this
   exact track, otherwise the request is denied outright; a valid link grants
   access regardless of the track's visibility
2. public tracks are open to everyone, anonymous included
3. admins see everything
4. users holding a UserTrackAccess row for the track
5. everyone else is denied as "private"

Decisions are made per request and never cached; grants and links can change
between two requests.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import and_, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from audioshelf.core.errors import AuthenticationError, AuthorizationError, NotFoundError
from audioshelf.models.catalog import AudioTrack
from audioshelf.models.sharing import ShareableLink, UserTrackAccess
from audioshelf.models.user import ROLE_ADMIN
from audioshelf.utils.timeutils import utcnow

logger = structlog.get_logger()

REASON_LINK_NOT_FOUND = "link_not_found"
REASON_LINK_INACTIVE = "link_inactive"
REASON_LINK_EXPIRED = "link_expired"
REASON_LINK_TRACK_MISMATCH = "link_track_mismatch"
REASON_PRIVATE = "private"

LINK_REASONS = (
    REASON_LINK_NOT_FOUND,
    REASON_LINK_INACTIVE,
    REASON_LINK_EXPIRED,
    REASON_LINK_TRACK_MISMATCH,
)


@dataclass(frozen=True)
class Principal:
    user_id: Optional[int] = None
    role: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls()

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.role == ROLE_ADMIN


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    reason: Optional[str] = None

    @classmethod
    def grant(cls) -> "AccessDecision":
        return cls(granted=True)

    @classmethod
    def deny(cls, reason: str) -> "AccessDecision":
        return cls(granted=False, reason=reason)

    def __bool__(self) -> bool:
        return self.granted


class AccessPolicy:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def evaluate(
        self,
        principal: Principal,
        track: AudioTrack,
        link_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AccessDecision:
        if link_id is not None:
            return await self._evaluate_link(link_id, track, now or utcnow())

        if track.is_public:
            return AccessDecision.grant()

        if principal.is_admin:
            return AccessDecision.grant()

        if principal.is_authenticated and await self._has_grant(
            principal.user_id, track.id
        ):
            return AccessDecision.grant()

        return AccessDecision.deny(REASON_PRIVATE)

    async def ensure(
        self,
        principal: Principal,
        track: AudioTrack,
        link_id: Optional[str] = None,
    ) -> None:
        """Raise the error matching a denial; returns quietly when granted."""
        decision = await self.evaluate(principal, track, link_id=link_id)
        if decision.granted:
            return
        logger.info(
            "Track access denied",
            track_id=track.id,
            user_id=principal.user_id,
            reason=decision.reason,
        )
        if decision.reason in LINK_REASONS:
            # Same answer for every link failure so probing can't tell them apart
            raise NotFoundError("Shared link not found")
        if not principal.is_authenticated:
            raise AuthenticationError("Log in to access this track")
        raise AuthorizationError("You do not have access to this track")

    def visible_filter(self, principal: Principal):
        """SQL criterion for listings; links never widen a listing."""
        if principal.is_admin:
            return true()
        if not principal.is_authenticated:
            return AudioTrack.is_public.is_(True)
        granted = select(UserTrackAccess.audio_track_id).where(
            UserTrackAccess.user_id == principal.user_id
        )
        return or_(AudioTrack.is_public.is_(True), AudioTrack.id.in_(granted))

    async def _evaluate_link(
        self, link_id: str, track: AudioTrack, now: datetime
    ) -> AccessDecision:
        link = (
            await self.db.execute(
                select(ShareableLink).where(ShareableLink.link_id == link_id)
            )
        ).scalar_one_or_none()
        if link is None:
            return AccessDecision.deny(REASON_LINK_NOT_FOUND)
        if not link.is_active:
            return AccessDecision.deny(REASON_LINK_INACTIVE)
        if link.is_expired(now):
            return AccessDecision.deny(REASON_LINK_EXPIRED)
        if link.audio_track_id != track.id:
            return AccessDecision.deny(REASON_LINK_TRACK_MISMATCH)
        return AccessDecision.grant()

    async def _has_grant(self, user_id: int, track_id: int) -> bool:
        result = await self.db.execute(
            select(UserTrackAccess.id).where(
                and_(
                    UserTrackAccess.user_id == user_id,
                    UserTrackAccess.audio_track_id == track_id,
                )
            )
        )
        return result.first() is not None
