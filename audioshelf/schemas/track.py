from datetime import datetime
from typing import List, Optional

from pydantic import Field

from audioshelf.schemas.base import CamelModel
from audioshelf.schemas.progress import Progress


class Category(CamelModel):
    id: int
    name: str
    description: str
    count: int


class Tag(CamelModel):
    id: int
    name: str


class Track(CamelModel):
    id: int
    title: str
    description: str
    category_id: int
    audio_url: str
    image_url: str
    duration: int
    is_public: bool
    created_at: datetime


class TrackDetail(Track):
    category: Optional[Category] = None
    tags: List[Tag] = []
    progress: Optional[Progress] = None


class TrackVisibilityUpdate(CamelModel):
    is_public: bool


class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None


class TagCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
