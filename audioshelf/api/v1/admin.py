from typing import List

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from audioshelf.core import security
from audioshelf.core.errors import NotFoundError, ValidationError
from audioshelf.db.database import get_db
from audioshelf.models.user import User
from audioshelf.schemas import track as track_schema
from audioshelf.schemas import user as user_schema
from audioshelf.services.catalog import CatalogService

logger = structlog.get_logger()
router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(security.get_current_admin)],
)


@router.get("/users", response_model=List[user_schema.User])
async def list_users(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).order_by(User.id))
    return result.scalars().all()


@router.put("/users/{user_id}", response_model=user_schema.User)
async def update_user_role(
    user_id: int,
    user_in: user_schema.UserRoleUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(security.get_current_admin),
):
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    if user.id == admin.id and user_in.role != admin.role:
        raise ValidationError("Admins cannot change their own role")
    user.role = user_in.role
    await db.commit()
    logger.info("User role updated", user_id=user_id, role=user_in.role, by=admin.id)
    return user


@router.patch("/tracks/{track_id}/visibility", response_model=track_schema.Track)
async def update_track_visibility(
    track_id: int,
    visibility: track_schema.TrackVisibilityUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await CatalogService(db).set_visibility(track_id, visibility.is_public)


@router.delete("/tracks/{track_id}", status_code=204)
async def delete_track(track_id: int, db: AsyncSession = Depends(get_db)):
    await CatalogService(db).delete_track(track_id)
    return Response(status_code=204)


@router.post("/categories", response_model=track_schema.Category, status_code=201)
async def create_category(
    category_in: track_schema.CategoryCreate, db: AsyncSession = Depends(get_db)
):
    return await CatalogService(db).create_category(
        name=category_in.name, description=category_in.description
    )


@router.api_route(
    "/categories/{category_id}",
    methods=["PUT", "PATCH"],
    response_model=track_schema.Category,
)
async def update_category(
    category_id: int,
    category_in: track_schema.CategoryUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await CatalogService(db).update_category(
        category_id, name=category_in.name, description=category_in.description
    )


@router.delete("/categories/{category_id}", status_code=204)
async def delete_category(category_id: int, db: AsyncSession = Depends(get_db)):
    await CatalogService(db).delete_category(category_id)
    return Response(status_code=204)


@router.post("/tags", response_model=track_schema.Tag, status_code=201)
async def create_tag(tag_in: track_schema.TagCreate, db: AsyncSession = Depends(get_db)):
    return await CatalogService(db).create_tag(tag_in.name)


@router.api_route(
    "/tags/{tag_id}", methods=["PUT", "PATCH"], response_model=track_schema.Tag
)
async def rename_tag(
    tag_id: int, tag_in: track_schema.TagCreate, db: AsyncSession = Depends(get_db)
):
    return await CatalogService(db).rename_tag(tag_id, tag_in.name)


@router.delete("/tags/{tag_id}", status_code=204)
async def delete_tag(tag_id: int, db: AsyncSession = Depends(get_db)):
    await CatalogService(db).delete_tag(tag_id)
    return Response(status_code=204)
