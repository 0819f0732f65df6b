from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from audioshelf.core import security
from audioshelf.db.database import get_db
from audioshelf.models.user import User
from audioshelf.schemas import progress as progress_schema
from audioshelf.services.access_policy import AccessPolicy, Principal
from audioshelf.services.catalog import CatalogService
from audioshelf.services.progress_store import ProgressStore

router = APIRouter(prefix="/progress", tags=["progress"])


@router.post("", response_model=progress_schema.Progress, status_code=201)
async def save_progress(
    progress_in: progress_schema.ProgressCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(security.get_current_user),
):
    """
    Checkpoint the caller's position in a track.

    Repeated saves overwrite the same row; ``completed`` is derived from the
    track's duration. Only tracks the caller may play can be checkpointed.
    """
    track = await CatalogService(db).get_track(progress_in.audio_track_id)
    principal = Principal(user_id=current_user.id, role=current_user.role)
    await AccessPolicy(db).ensure(principal, track)
    return await ProgressStore(db).save(
        user_id=current_user.id,
        audio_track_id=progress_in.audio_track_id,
        progress=progress_in.progress,
        completed=progress_in.completed,
    )


@router.get("", response_model=List[progress_schema.Progress])
async def list_progress(
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(security.get_current_user_id),
):
    return await ProgressStore(db).list_for_user(current_user_id)


@router.get("/{track_id}", response_model=progress_schema.Progress)
async def get_progress(
    track_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(security.get_current_user_id),
):
    progress = await ProgressStore(db).get(current_user_id, track_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="No saved progress for this track")
    return progress
