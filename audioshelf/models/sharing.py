import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)

from audioshelf.db.database import Base
from audioshelf.utils.timeutils import as_utc, utcnow

LINK_ACTIVE = "active"
LINK_INACTIVE = "inactive"


def new_link_id() -> str:
    return str(uuid.uuid4())


class ShareableLink(Base):
    __tablename__ = "shareable_links"

    id = Column(Integer, primary_key=True, index=True)
    link_id = Column(
        String(36), unique=True, index=True, nullable=False, default=new_link_id
    )
    audio_track_id = Column(Integer, ForeignKey("audio_tracks.id"), nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def is_expired(self, now: datetime = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or utcnow()
        return as_utc(self.expires_at) <= now

    def is_usable(self, now: datetime = None) -> bool:
        return bool(self.is_active) and not self.is_expired(now)

    @property
    def expired(self) -> bool:
        return self.is_expired()

    @property
    def status(self) -> str:
        # Admin displays show an expired link as inactive, whatever the stored flag
        return LINK_ACTIVE if self.is_usable() else LINK_INACTIVE


class UserTrackAccess(Base):
    __tablename__ = "user_track_access"
    __table_args__ = (
        UniqueConstraint("user_id", "audio_track_id", name="uq_user_track_access"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    audio_track_id = Column(Integer, ForeignKey("audio_tracks.id"), nullable=False)
    granted_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    granted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
