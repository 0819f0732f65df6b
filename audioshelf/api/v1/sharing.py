from typing import List

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from audioshelf.api.v1.endpoints import media_response
from audioshelf.core import security
from audioshelf.core.errors import AuthorizationError, NotFoundError
from audioshelf.db.database import get_db
from audioshelf.models.sharing import ShareableLink
from audioshelf.models.user import User
from audioshelf.schemas import sharing as sharing_schema
from audioshelf.schemas import track as track_schema
from audioshelf.schemas import user as user_schema
from audioshelf.services.access_policy import AccessPolicy, Principal
from audioshelf.services.catalog import CatalogService
from audioshelf.services.link_issuer import ShareableLinkIssuer
from audioshelf.services.track_access import TrackAccessService

logger = structlog.get_logger()
router = APIRouter()


async def get_managed_link(
    id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(security.get_current_user),
) -> ShareableLink:
    """Load a link the caller may manage: its creator or an admin."""
    link = await ShareableLinkIssuer(db).get_by_id(id)
    if link is None:
        raise NotFoundError("Shareable link not found")
    if link.created_by_id != current_user.id and not current_user.is_admin:
        raise AuthorizationError("You cannot manage this link")
    return link


@router.post(
    "/shareable-links",
    response_model=sharing_schema.ShareableLink,
    status_code=201,
    tags=["sharing"],
)
async def create_shareable_link(
    link_in: sharing_schema.ShareableLinkCreate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(security.get_current_user_id),
):
    return await ShareableLinkIssuer(db).issue(
        track_id=link_in.audio_track_id,
        created_by_id=current_user_id,
        expires_at=link_in.expires_at,
    )


@router.get(
    "/shareable-links",
    response_model=List[sharing_schema.ShareableLink],
    tags=["sharing"],
)
async def list_shareable_links(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(security.get_current_user),
):
    """Admins see every link; everyone else sees the links they created."""
    issuer = ShareableLinkIssuer(db)
    if current_user.is_admin:
        return await issuer.list_all()
    return await issuer.list_for_creator(current_user.id)


@router.get(
    "/shareable-links/{id}",
    response_model=sharing_schema.ShareableLink,
    tags=["sharing"],
)
async def get_shareable_link(link: ShareableLink = Depends(get_managed_link)):
    return link


@router.api_route(
    "/shareable-links/{id}",
    methods=["PUT", "PATCH"],
    response_model=sharing_schema.ShareableLink,
    tags=["sharing"],
)
async def update_shareable_link(
    link_in: sharing_schema.ShareableLinkUpdate,
    link: ShareableLink = Depends(get_managed_link),
    db: AsyncSession = Depends(get_db),
):
    return await ShareableLinkIssuer(db).set_active(link.link_id, link_in.is_active)


@router.delete("/shareable-links/{id}", status_code=204, tags=["sharing"])
async def delete_shareable_link(
    id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(security.get_current_user),
):
    issuer = ShareableLinkIssuer(db)
    link = await issuer.get_by_id(id)
    # Deleting twice is not an error
    if link is not None:
        if link.created_by_id != current_user.id and not current_user.is_admin:
            raise AuthorizationError("You cannot manage this link")
        await issuer.delete(link.link_id)
    return Response(status_code=204)


async def _shared_track(link_id: str, db: AsyncSession):
    link = await ShareableLinkIssuer(db).resolve(link_id)
    if link is None:
        raise NotFoundError("Shared link not found")
    track = await CatalogService(db).get_track(link.audio_track_id)
    await AccessPolicy(db).ensure(Principal.anonymous(), track, link_id=link_id)
    return track


@router.get(
    "/shared/{link_id}", response_model=track_schema.TrackDetail, tags=["sharing"]
)
async def get_shared_track(link_id: str, db: AsyncSession = Depends(get_db)):
    """Track detail for a link holder; every kind of link failure reads as 404."""
    track = await _shared_track(link_id, db)
    details = await CatalogService(db).with_details([track])
    return details[0]


@router.get("/shared/{link_id}/stream", tags=["sharing"])
async def stream_shared_track(link_id: str, db: AsyncSession = Depends(get_db)):
    track = await _shared_track(link_id, db)
    return media_response(track)


@router.post(
    "/track-access",
    response_model=sharing_schema.TrackAccess,
    status_code=201,
    tags=["access"],
)
async def grant_track_access(
    access_in: sharing_schema.TrackAccessCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(security.get_current_admin),
):
    return await TrackAccessService(db).grant(
        user_id=access_in.user_id,
        track_id=access_in.audio_track_id,
        granted_by_id=admin.id,
    )


@router.delete(
    "/track-access/{user_id}/{audio_track_id}", status_code=204, tags=["access"]
)
async def revoke_track_access(
    user_id: int,
    audio_track_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(security.get_current_admin),
):
    await TrackAccessService(db).revoke(user_id, audio_track_id)
    return Response(status_code=204)


@router.get(
    "/track-access/{track_id}/users",
    response_model=List[user_schema.User],
    tags=["access"],
)
async def list_track_access_users(
    track_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(security.get_current_admin),
):
    await CatalogService(db).get_track(track_id)
    return await TrackAccessService(db).users_with_access(track_id)
