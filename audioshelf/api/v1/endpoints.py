from datetime import datetime, timezone
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse, RedirectResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from audioshelf.core import security
from audioshelf.core.config import settings
from audioshelf.db.database import get_db
from audioshelf.models.catalog import AudioTrack
from audioshelf.models.user import User
from audioshelf.schemas import token as token_schema
from audioshelf.schemas import track as track_schema
from audioshelf.schemas import user as user_schema
from audioshelf.schemas.health import HealthCheck
from audioshelf.services.access_policy import AccessPolicy, Principal
from audioshelf.services.catalog import CatalogService

logger = structlog.get_logger()
router = APIRouter()


def media_response(track: AudioTrack):
    """Serve an uploaded file directly, or send the client to an external URL."""
    path = CatalogService.local_media_path(track)
    if path is not None:
        return FileResponse(path, headers={"Cache-Control": "no-store, private"})
    if track.audio_url.startswith(("http://", "https://")):
        return RedirectResponse(track.audio_url)
    raise HTTPException(status_code=404, detail="Media file not found")


@router.get("/health", response_model=HealthCheck)
async def health_check():
    """Health check endpoint."""
    return HealthCheck(
        status="healthy",
        version=settings.version,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.post("/signup", response_model=user_schema.User, status_code=201)
async def signup(user_in: user_schema.UserCreate, db: AsyncSession = Depends(get_db)):
    """
    Create a new user.
    """
    existing = await db.execute(select(User).where(User.username == user_in.username))
    if existing.scalars().first():
        raise HTTPException(status_code=409, detail="Username already exists")

    db_user = User(
        username=user_in.username,
        hashed_password=security.get_password_hash(user_in.password),
    )
    db.add(db_user)
    try:
        await db.commit()
    except IntegrityError:  # Handles race conditions
        await db.rollback()
        raise HTTPException(status_code=409, detail="Username already exists")
    await db.refresh(db_user)
    logger.info("User registered", user_id=db_user.id)
    return db_user


@router.post("/login", response_model=token_schema.Token)
async def login(
    db: AsyncSession = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
):
    """
    OAuth2 compatible token login, get an access token for future requests.
    """
    user_result = await db.execute(select(User).where(User.username == form_data.username))
    user = user_result.scalars().first()
    if not user or not security.verify_password(
        form_data.password, user.hashed_password
    ):
        raise HTTPException(status_code=401, detail="Incorrect username or password")
    elif not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")

    access_token = security.create_access_token(subject=user.id)
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/users/me", response_model=user_schema.User)
async def read_users_me(current_user: User = Depends(security.get_current_user)):
    """
    Get the current logged in user.
    """
    return current_user


@router.get("/categories", response_model=List[track_schema.Category])
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await CatalogService(db).list_categories()


@router.get("/categories/{category_id}", response_model=track_schema.Category)
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)):
    return await CatalogService(db).get_category(category_id)


@router.get(
    "/categories/{category_id}/tracks", response_model=List[track_schema.TrackDetail]
)
async def list_category_tracks(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(security.get_principal),
):
    catalog = CatalogService(db)
    await catalog.get_category(category_id)
    tracks = await catalog.list_tracks(principal, category_id=category_id)
    return await catalog.with_details(tracks, principal.user_id)


@router.get("/tags", response_model=List[track_schema.Tag])
async def list_tags(db: AsyncSession = Depends(get_db)):
    return await CatalogService(db).list_tags()


@router.get("/tracks", response_model=List[track_schema.TrackDetail])
async def list_tracks(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(security.get_principal),
):
    """List every track the caller may see, with their saved progress."""
    catalog = CatalogService(db)
    tracks = await catalog.list_tracks(principal)
    return await catalog.with_details(tracks, principal.user_id)


@router.get("/search", response_model=List[track_schema.TrackDetail])
async def search_tracks(
    q: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(security.get_principal),
):
    catalog = CatalogService(db)
    tracks = await catalog.list_tracks(principal, query=q)
    return await catalog.with_details(tracks, principal.user_id)


@router.get("/tracks/{track_id}", response_model=track_schema.TrackDetail)
async def get_track(
    track_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(security.get_principal),
):
    catalog = CatalogService(db)
    track = await catalog.get_track(track_id)
    await AccessPolicy(db).ensure(principal, track)
    details = await catalog.with_details([track], principal.user_id)
    return details[0]


@router.get("/tracks/{track_id}/stream")
async def stream_track(
    track_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(security.get_principal),
):
    track = await CatalogService(db).get_track(track_id)
    await AccessPolicy(db).ensure(principal, track)
    return media_response(track)


@router.post(
    "/uploads/audio", response_model=track_schema.TrackDetail, status_code=201
)
async def upload_audio(
    title: str = Form(..., min_length=1),
    description: str = Form(..., min_length=1),
    category_id: int = Form(..., alias="categoryId"),
    duration: int = Form(..., ge=1),
    is_public: bool = Form(default=True, alias="isPublic"),
    image_url: Optional[str] = Form(default=None, alias="imageUrl"),
    tags: List[int] = Form(default=[]),
    audio_file: UploadFile = File(..., alias="audioFile"),
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(security.get_current_user_id),
):
    """
    Upload an audio file and create its track.

    The file is streamed to disk before the track row is written, so a
    rejected upload never leaves a track without media behind.
    """
    catalog = CatalogService(db)
    await catalog.get_category(category_id)
    audio_url = await catalog.store_upload(audio_file)
    track = await catalog.create_track(
        title=title,
        description=description,
        category_id=category_id,
        audio_url=audio_url,
        image_url=image_url,
        duration=duration,
        is_public=is_public,
        tag_ids=tags,
    )
    logger.info("Audio uploaded", track_id=track.id, user_id=current_user_id)
    details = await catalog.with_details([track])
    return details[0]
