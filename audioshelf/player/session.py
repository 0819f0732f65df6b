"""
Client-side playback session.

One session drives one media element for one track at a time:

    IDLE -> LOADING -> PAUSED <-> PLAYING -> ENDED

While PLAYING, a single checkpoint task posts the current position to the
progress sink every ``checkpoint_interval`` seconds. Pausing and reaching the
end post one more checkpoint. Flushes are fire-and-forget: a failed flush is
logged and the next tick simply sends fresher data. Loading another track
cancels the checkpoint task and bumps the session generation, so responses
that arrive late for the previous track are ignored.

All methods must be called from the running event loop.
"""

import asyncio
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Set

import structlog

from audioshelf.core.config import settings
from audioshelf.player.media import MediaElement

logger = structlog.get_logger()


class PlaybackState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PAUSED = "paused"
    PLAYING = "playing"
    ENDED = "ended"


@dataclass
class TrackInfo:
    id: int
    title: str
    audio_url: str
    duration: int = 0
    resume_at: Optional[int] = None

    @classmethod
    def from_api(cls, payload: dict) -> "TrackInfo":
        """Build from a track detail as returned by the API (camelCase)."""
        saved = payload.get("progress") or {}
        return cls(
            id=payload["id"],
            title=payload.get("title", ""),
            audio_url=payload["audioUrl"],
            duration=payload.get("duration") or 0,
            resume_at=saved.get("progress"),
        )


@dataclass(frozen=True)
class Checkpoint:
    audio_track_id: int
    progress: int
    completed: bool

    def to_payload(self) -> dict:
        return {
            "audioTrackId": self.audio_track_id,
            "progress": self.progress,
            "completed": self.completed,
        }


ProgressSink = Callable[[Checkpoint], Awaitable[Any]]
TrackEndedCallback = Callable[[TrackInfo], None]


class PlaybackSession:
    def __init__(
        self,
        media: MediaElement,
        sink: ProgressSink,
        checkpoint_interval: Optional[float] = None,
        on_ended: Optional[TrackEndedCallback] = None,
        loop_mode: bool = False,
    ):
        self.media = media
        self.sink = sink
        self.checkpoint_interval = (
            checkpoint_interval or settings.checkpoint_interval_seconds
        )
        self.on_ended = on_ended
        self.loop_mode = loop_mode

        self.state = PlaybackState.IDLE
        self.track: Optional[TrackInfo] = None
        self.duration: Optional[float] = None
        self.volume = 1.0
        self.playback_rate = 1.0
        self.last_checkpoint: Optional[Checkpoint] = None

        self._generation = 0
        self._resume_at: Optional[int] = None
        self._autoplay = False
        self._checkpoint_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def current_time(self) -> float:
        if self.track is None:
            return 0.0
        return self.media.current_time

    @property
    def has_checkpoint_timer(self) -> bool:
        return self._checkpoint_task is not None and not self._checkpoint_task.done()

    # Transitions

    def load_track(self, track: TrackInfo, autoplay: bool = False) -> None:
        self._teardown()
        self._generation += 1
        self.track = track
        self.duration = None
        self.last_checkpoint = None
        self._autoplay = autoplay
        self._resume_at = None
        if track.resume_at and (not track.duration or track.resume_at < track.duration):
            self._resume_at = track.resume_at
        self.state = PlaybackState.LOADING

        self.media.volume = self.volume
        self.media.playback_rate = self.playback_rate
        self.media.attach(track.audio_url, self, duration_hint=track.duration or None)
        logger.info("Track loaded", track_id=track.id, resume_at=self._resume_at)

    def handle_metadata(self, duration: float) -> None:
        if self.state is not PlaybackState.LOADING:
            logger.debug("Ignoring metadata outside of loading", state=self.state.value)
            return
        self.duration = float(duration)
        self.state = PlaybackState.PAUSED
        if self._resume_at is not None and self._resume_at < self.duration:
            self.media.seek(self._resume_at)
        self._resume_at = None
        if self._autoplay:
            self._autoplay = False
            self.play()

    def play(self) -> bool:
        if self.state not in (PlaybackState.PAUSED, PlaybackState.ENDED):
            if self.state is PlaybackState.LOADING:
                # Start as soon as the duration is known
                self._autoplay = True
            return False
        if self.state is PlaybackState.ENDED:
            self.media.seek(0)
        self.media.play()
        self.state = PlaybackState.PLAYING
        self._start_checkpoints()
        return True

    def pause(self) -> bool:
        if self.state is not PlaybackState.PLAYING:
            self._autoplay = False
            return False
        self.media.pause()
        self.state = PlaybackState.PAUSED
        self._stop_checkpoints()
        self.checkpoint()
        return True

    def seek(self, target: float) -> bool:
        if self.duration is None:
            return False
        target = min(max(float(target), 0.0), self.duration)
        self.media.seek(target)
        return True

    def handle_ended(self) -> None:
        if self.state is not PlaybackState.PLAYING:
            return
        if self.loop_mode:
            self.media.seek(0)
            self.media.play()
            return

        track = self.track
        self._stop_checkpoints()
        self.state = PlaybackState.ENDED
        self.checkpoint()
        logger.info("Track finished", track_id=track.id)
        if self.on_ended is not None:
            try:
                self.on_ended(track)
            except Exception as e:
                logger.error(
                    "Track finished callback failed", error=str(e), exc_info=True
                )

    def set_volume(self, volume: float) -> float:
        self.volume = min(max(float(volume), 0.0), 1.0)
        self.media.volume = self.volume
        return self.volume

    def set_playback_rate(self, rate: float) -> float:
        if rate <= 0:
            raise ValueError("Playback rate must be positive")
        self.playback_rate = float(rate)
        self.media.playback_rate = self.playback_rate
        return self.playback_rate

    def unload(self) -> None:
        """Drop the current track and return to IDLE."""
        self._teardown()
        self._generation += 1
        self.track = None
        self.duration = None
        self._autoplay = False
        self._resume_at = None
        self.state = PlaybackState.IDLE

    async def close(self) -> None:
        """Unload and wait for flushes still in flight."""
        self.unload()
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # Checkpoints

    def checkpoint(self) -> Optional[asyncio.Task]:
        """Fire one progress flush for the current position."""
        if self.track is None or self.duration is None:
            return None
        position = self.media.current_time
        checkpoint = Checkpoint(
            audio_track_id=self.track.id,
            progress=int(math.floor(position)),
            completed=position >= self.duration,
        )
        task = asyncio.get_running_loop().create_task(
            self._flush(checkpoint, self._generation),
            name=f"flush:{self.track.id}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _flush(self, checkpoint: Checkpoint, generation: int) -> None:
        try:
            await self.sink(checkpoint)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Progress checkpoint failed",
                track_id=checkpoint.audio_track_id,
                progress=checkpoint.progress,
                error=str(e),
            )
            return
        if generation != self._generation:
            logger.debug(
                "Ignoring checkpoint response for a previous track",
                track_id=checkpoint.audio_track_id,
            )
            return
        self.last_checkpoint = checkpoint

    async def _run_checkpoints(self) -> None:
        while True:
            await asyncio.sleep(self.checkpoint_interval)
            self.checkpoint()

    def _start_checkpoints(self) -> None:
        self._stop_checkpoints()
        self._checkpoint_task = asyncio.get_running_loop().create_task(
            self._run_checkpoints(), name=f"checkpoint:{self.track.id}"
        )

    def _stop_checkpoints(self) -> None:
        if self._checkpoint_task is not None:
            self._checkpoint_task.cancel()
            self._checkpoint_task = None

    def _teardown(self) -> None:
        self._stop_checkpoints()
        if self.track is not None:
            self.media.unload()
