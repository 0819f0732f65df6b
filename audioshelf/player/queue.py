"""
Queue and player controller.

``Player`` owns exactly one ``PlaybackSession``; playing another track reuses
that session, which tears down the previous source and its checkpoint task.
"""

import random
from collections import deque
from typing import Deque, List, Optional

import structlog

from audioshelf.player.media import MediaElement
from audioshelf.player.session import PlaybackSession, ProgressSink, TrackInfo

logger = structlog.get_logger()


class PlaybackQueue:
    """In-memory FIFO of upcoming tracks; cleared when the client exits."""

    def __init__(self, repeat_all: bool = False):
        self.repeat_all = repeat_all
        self._queue: Deque[TrackInfo] = deque()
        self._history: List[TrackInfo] = []

    def add(self, track: TrackInfo) -> None:
        self._queue.append(track)
        logger.debug("Added to queue", track_id=track.id, size=len(self._queue))

    def add_multiple(self, tracks: List[TrackInfo]) -> None:
        self._queue.extend(tracks)

    def get_next(self) -> Optional[TrackInfo]:
        """Pop the next track; with repeat-all an empty queue refills from history."""
        if not self._queue:
            if not (self.repeat_all and self._history):
                return None
            self._queue.extend(self._history)
            self._history.clear()
        track = self._queue.popleft()
        self._history.append(track)
        return track

    def peek(self) -> Optional[TrackInfo]:
        return self._queue[0] if self._queue else None

    def remove(self, track_id: int) -> bool:
        for track in list(self._queue):
            if track.id == track_id:
                self._queue.remove(track)
                return True
        return False

    def shuffle(self) -> None:
        items = list(self._queue)
        random.shuffle(items)
        self._queue = deque(items)

    def clear(self) -> None:
        self._queue.clear()

    def get_all(self) -> List[TrackInfo]:
        return list(self._queue)

    def is_empty(self) -> bool:
        return not self._queue

    def __len__(self) -> int:
        return len(self._queue)


class Player:
    def __init__(
        self,
        media: MediaElement,
        sink: ProgressSink,
        queue: Optional[PlaybackQueue] = None,
        checkpoint_interval: Optional[float] = None,
    ):
        self.queue = queue or PlaybackQueue()
        self.session = PlaybackSession(
            media,
            sink,
            checkpoint_interval=checkpoint_interval,
            on_ended=self._on_track_finished,
        )

    @property
    def current_track(self) -> Optional[TrackInfo]:
        return self.session.track

    def play_track(self, track: TrackInfo) -> None:
        self.session.load_track(track, autoplay=True)

    def enqueue(self, track: TrackInfo) -> None:
        self.queue.add(track)

    def toggle(self) -> bool:
        """Pause when playing, play otherwise; returns whether it is now playing."""
        if self.session.pause():
            return False
        return self.session.play()

    def next_track(self) -> Optional[TrackInfo]:
        track = self.queue.get_next()
        if track is None:
            logger.info("End of queue")
            self.session.unload()
            return None
        self.play_track(track)
        return track

    async def close(self) -> None:
        self.queue.clear()
        await self.session.close()

    def _on_track_finished(self, track: TrackInfo) -> None:
        self.next_track()
