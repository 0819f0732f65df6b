from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from audioshelf.db.database import Base
from audioshelf.utils.timeutils import utcnow

audio_track_tags = Table(
    "audio_track_tags",
    Base.metadata,
    Column("id", Integer, primary_key=True),
    Column("audio_track_id", Integer, ForeignKey("audio_tracks.id"), nullable=False),
    Column("tag_id", Integer, ForeignKey("tags.id"), nullable=False),
    UniqueConstraint("audio_track_id", "tag_id", name="uq_audio_track_tag"),
)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=False, default="")
    count = Column(Integer, nullable=False, default=0)


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)


class AudioTrack(Base):
    __tablename__ = "audio_tracks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    audio_url = Column(String, nullable=False)
    image_url = Column(String, nullable=False)
    # Seconds; progress is never saved past it
    duration = Column(Integer, nullable=False, default=0)
    is_public = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    category = relationship("Category", lazy="selectin")
    tags = relationship("Tag", secondary=audio_track_tags, lazy="selectin")
