from fastapi import APIRouter

from audioshelf.api.v1 import admin, endpoints, progress, sharing

api_router = APIRouter()
api_router.include_router(endpoints.router)
api_router.include_router(progress.router)
api_router.include_router(sharing.router)
api_router.include_router(admin.router)
