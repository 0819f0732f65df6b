from datetime import datetime
from typing import Optional

from audioshelf.schemas.base import CamelModel


class ProgressCreate(CamelModel):
    audio_track_id: int
    # Range is checked by the store so the caller gets a descriptive 400
    progress: int
    completed: Optional[bool] = None


class Progress(CamelModel):
    id: int
    user_id: int
    audio_track_id: int
    progress: int
    completed: bool
    updated_at: datetime
