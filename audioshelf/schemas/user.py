from datetime import datetime
from typing import Literal

from pydantic import Field

from audioshelf.schemas.base import CamelModel


class UserCreate(CamelModel):
    username: str = Field(..., min_length=3, max_length=150)
    password: str = Field(..., min_length=4, max_length=128)


class User(CamelModel):
    id: int
    username: str
    role: str
    is_active: bool
    created_at: datetime


class UserRoleUpdate(CamelModel):
    role: Literal["user", "admin"]
