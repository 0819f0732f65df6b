"""
Domain errors shared by the services and the HTTP layer.

Services raise these; ``register_exception_handlers`` maps them onto
status codes so endpoints don't have to translate every failure by hand.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


class AudioshelfError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AudioshelfError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AudioshelfError):
    status_code = 401
    default_message = "Not authenticated"


class AuthorizationError(AudioshelfError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(AudioshelfError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AudioshelfError):
    status_code = 409
    default_message = "Already exists"


async def audioshelf_error_handler(request: Request, exc: AudioshelfError):
    logger.info(
        "Request failed",
        path=request.url.path,
        error=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
    )
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code, content={"detail": exc.message}, headers=headers
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AudioshelfError, audioshelf_error_handler)
