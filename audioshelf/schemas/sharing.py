from datetime import datetime
from typing import Optional

from audioshelf.schemas.base import CamelModel


class ShareableLinkCreate(CamelModel):
    audio_track_id: int
    expires_at: Optional[datetime] = None


class ShareableLinkUpdate(CamelModel):
    is_active: bool


class ShareableLink(CamelModel):
    id: int
    link_id: str
    audio_track_id: int
    created_by_id: int
    expires_at: Optional[datetime] = None
    is_active: bool
    # Derived: "active" or "inactive"; expired links read as inactive
    status: str
    expired: bool
    created_at: datetime


class TrackAccessCreate(CamelModel):
    user_id: int
    audio_track_id: int


class TrackAccess(CamelModel):
    id: int
    user_id: int
    audio_track_id: int
    granted_by_id: Optional[int] = None
    granted_at: datetime
