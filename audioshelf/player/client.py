import asyncio
import functools
from typing import Any, List, Optional

import requests
import structlog

from audioshelf.core.config import settings
from audioshelf.core.errors import (
    AudioshelfError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from audioshelf.player.session import Checkpoint, TrackInfo

logger = structlog.get_logger()

_STATUS_ERRORS = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
}


class LibraryClient:
    """
    Thin client for the Audioshelf API.

    ``requests`` is blocking, so every call runs in the loop's default
    executor and never stalls playback. ``save_progress`` matches the
    playback session's sink signature.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.client_timeout_seconds
        self.http = session or requests.Session()
        if token:
            self.set_token(token)

    def set_token(self, token: str) -> None:
        self.http.headers["Authorization"] = f"Bearer {token}"

    def media_url(self, track: TrackInfo, link_id: Optional[str] = None) -> str:
        if link_id:
            return f"{self.base_url}/shared/{link_id}/stream"
        return f"{self.base_url}/tracks/{track.id}/stream"

    async def login(self, username: str, password: str) -> str:
        body = await self._call(
            "POST", "/login", data={"username": username, "password": password}
        )
        token = body["access_token"]
        self.set_token(token)
        logger.info("Logged in", username=username)
        return token

    async def save_progress(self, checkpoint: Checkpoint) -> dict:
        return await self._call("POST", "/progress", json=checkpoint.to_payload())

    async def list_progress(self) -> List[dict]:
        return await self._call("GET", "/progress")

    async def list_tracks(self) -> List[TrackInfo]:
        return [TrackInfo.from_api(item) for item in await self._call("GET", "/tracks")]

    async def get_track(self, track_id: int) -> TrackInfo:
        return TrackInfo.from_api(await self._call("GET", f"/tracks/{track_id}"))

    async def get_shared_track(self, link_id: str) -> TrackInfo:
        return TrackInfo.from_api(await self._call("GET", f"/shared/{link_id}"))

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self._request, method, path, **kwargs)
        )

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self.http.request(
            method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs
        )
        if response.status_code >= 400:
            try:
                body = response.json()
                detail = body.get("detail") if isinstance(body, dict) else body
            except ValueError:
                detail = response.text
            error_class = _STATUS_ERRORS.get(response.status_code, AudioshelfError)
            logger.debug(
                "API request failed",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise error_class(str(detail) if detail else None)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()
