"""
Media elements the playback session drives.

A media element plays one source at a time and reports two events back to
its listener: metadata resolved (duration known) and natural end of media.
``ClockMediaElement`` is a headless element whose position advances with a
clock, which is all a checkpointing client or a test needs.
"""

import asyncio
import time
from typing import Callable, Optional, Protocol

import structlog

logger = structlog.get_logger()


class MediaListener(Protocol):
    def handle_metadata(self, duration: float) -> None: ...

    def handle_ended(self) -> None: ...


class MediaElement(Protocol):
    volume: float
    playback_rate: float

    @property
    def current_time(self) -> float: ...

    def attach(
        self, url: str, listener: MediaListener, duration_hint: Optional[float] = None
    ) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, seconds: float) -> None: ...

    def unload(self) -> None: ...


class ClockMediaElement:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.url: Optional[str] = None
        self.duration: Optional[float] = None
        self.volume = 1.0
        self._rate = 1.0
        self._listener: Optional[MediaListener] = None
        self._position = 0.0
        self._anchor: Optional[float] = None  # clock reading while playing
        self._end_handle: Optional[asyncio.TimerHandle] = None
        self._metadata_handle: Optional[asyncio.Handle] = None

    @property
    def playing(self) -> bool:
        return self._anchor is not None

    @property
    def current_time(self) -> float:
        position = self._position
        if self._anchor is not None:
            position += (self.clock() - self._anchor) * self._rate
        if self.duration is not None:
            position = min(position, self.duration)
        return position

    @property
    def playback_rate(self) -> float:
        return self._rate

    @playback_rate.setter
    def playback_rate(self, rate: float) -> None:
        self._fold()
        self._rate = rate
        self._schedule_end()

    def attach(
        self, url: str, listener: MediaListener, duration_hint: Optional[float] = None
    ) -> None:
        self.unload()
        self.url = url
        self._listener = listener
        self._position = 0.0
        if duration_hint:
            self._resolve_later(float(duration_hint))

    def resolve_metadata(self, duration: float) -> None:
        """Report the source's duration, e.g. once a decoder has probed it."""
        self.duration = float(duration)
        if self._listener is not None:
            self._listener.handle_metadata(self.duration)

    def play(self) -> None:
        if self.url is None or self.playing:
            return
        self._anchor = self.clock()
        self._schedule_end()

    def pause(self) -> None:
        self._fold()
        self._anchor = None
        self._cancel(self._end_handle)
        self._end_handle = None

    def seek(self, seconds: float) -> None:
        self._position = max(0.0, float(seconds))
        if self.duration is not None:
            self._position = min(self._position, self.duration)
        if self.playing:
            self._anchor = self.clock()
            self._schedule_end()

    def unload(self) -> None:
        self.pause()
        self._cancel(self._metadata_handle)
        self._metadata_handle = None
        self.url = None
        self.duration = None
        self._listener = None
        self._position = 0.0

    def _fold(self) -> None:
        if self._anchor is not None:
            self._position = self.current_time
            self._anchor = self.clock()

    def _resolve_later(self, duration: float) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.resolve_metadata(duration)
            return
        self._metadata_handle = loop.call_soon(self.resolve_metadata, duration)

    def _schedule_end(self) -> None:
        self._cancel(self._end_handle)
        self._end_handle = None
        if not self.playing or self.duration is None or self._rate <= 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        remaining = max(self.duration - self.current_time, 0.0) / self._rate
        self._end_handle = loop.call_later(remaining, self._finish)

    def _finish(self) -> None:
        self._end_handle = None
        self._position = self.duration or self._position
        self._anchor = None
        logger.debug("Media reached end", url=self.url)
        if self._listener is not None:
            self._listener.handle_ended()

    @staticmethod
    def _cancel(handle) -> None:
        if handle is not None:
            handle.cancel()
