import uvicorn
from fastapi import FastAPI

from audioshelf.api.v1.api import api_router
from audioshelf.core.config import settings
from audioshelf.core.errors import register_exception_handlers
from audioshelf.core.lifespan import lifespan


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("audioshelf.main:app", host="0.0.0.0", port=8000, reload=False)
