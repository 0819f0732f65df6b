from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    UniqueConstraint,
)

from audioshelf.db.database import Base
from audioshelf.utils.timeutils import utcnow


class UserProgress(Base):
    __tablename__ = "user_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "audio_track_id", name="uq_user_progress_track"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    audio_track_id = Column(Integer, ForeignKey("audio_tracks.id"), nullable=False)
    progress = Column(Integer, nullable=False, default=0)  # seconds
    completed = Column(Boolean, nullable=False, default=False)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
