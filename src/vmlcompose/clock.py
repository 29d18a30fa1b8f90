"""Playback clocks -- frame-driven timelines and the synchronization registry.

A Timeline is a clock that advances by wall-clock deltas, one tick per
frame callback:

  stopped --start()--> running --stop() / bounded end--> stopped

Frame callbacks come from a FrameSource, an animation-frame style
scheduler: request_frame(callback) arranges for callback(timestamp) to run
once on the next frame, where timestamp is monotonic seconds.

  - ManualFrameSource: frames fire only when the caller steps it. Used for
    headless runs and tests.
  - AsyncioFrameSource: frames fire at refresh_hz on an asyncio loop.

Players that should play in lockstep share a Timeline through a
ClockRegistry, keyed by synchronization group.
"""

import asyncio
import logging
import math
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

CLOCK_MODES = ("live", "bounded")

FrameCallback = Callable[[float], None]
Subscriber = Callable[[float], None]


# ── Frame sources ─────────────────────────────────────────────────


class FrameSource(Protocol):
    def request_frame(self, callback: FrameCallback) -> object:
        """Schedule callback(timestamp) for the next frame; return a handle."""

    def cancel_frame(self, handle: object) -> None:
        """Cancel a pending request. Unknown or fired handles are ignored."""


class ManualFrameSource:
    """Frame source that fires only when stepped.

    Each step() delivers one frame to every callback requested before the
    step. Callbacks requested while the frame is being delivered wait for
    the next step.
    """

    def __init__(self, now: float = 0.0):
        self.now = now
        self._pending: dict[int, FrameCallback] = {}
        self._next_handle = 0

    def request_frame(self, callback: FrameCallback) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._pending[handle] = callback
        return handle

    def cancel_frame(self, handle: int) -> None:
        self._pending.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def step(self, timestamp: float | None = None) -> int:
        """Deliver one frame at timestamp (default: current time).

        Returns:
            Number of callbacks fired.
        """
        if timestamp is not None:
            if timestamp < self.now:
                raise ValueError(
                    f"Frame timestamps must not go backwards: {timestamp} < {self.now}"
                )
            self.now = timestamp
        callbacks = list(self._pending.values())
        self._pending.clear()
        for callback in callbacks:
            callback(self.now)
        return len(callbacks)

    def advance(self, seconds: float) -> int:
        """Move the clock forward by seconds and deliver one frame."""
        return self.step(self.now + seconds)

    def run(self, seconds: float, refresh_hz: float = 60) -> int:
        """Deliver frames every 1/refresh_hz for the given span.

        Stops early once nothing is waiting for a frame. Returns the number
        of frames delivered.
        """
        if refresh_hz <= 0:
            raise ValueError(f"refresh_hz must be > 0, got {refresh_hz}")
        interval = 1.0 / refresh_hz
        frames = int(round(seconds * refresh_hz))
        delivered = 0
        # First frame is delivered at the current time.
        if self.step():
            delivered += 1
        for _ in range(frames):
            if not self._pending:
                break
            self.advance(interval)
            delivered += 1
        return delivered


class AsyncioFrameSource:
    """Frame source driven by an asyncio event loop at a fixed refresh rate.

    Args:
        loop: Loop to schedule on. Defaults to the running loop at the time
            of each request.
        refresh_hz: Frames per second of the simulated display.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None, refresh_hz: float = 60):
        if refresh_hz <= 0:
            raise ValueError(f"refresh_hz must be > 0, got {refresh_hz}")
        self._loop = loop
        self.interval = 1.0 / refresh_hz

    def request_frame(self, callback: FrameCallback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(self.interval, lambda: callback(loop.time()))

    def cancel_frame(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()


# ── Timeline ──────────────────────────────────────────────────────


class Timeline:
    """A single playback clock.

    Args:
        id: Synchronization group key.
        fps: Frame rate used to derive the frame number.
        frame_source: Scheduler delivering frame callbacks.
        clock_mode: "live" (unbounded) or "bounded" (capped at duration).
        loop: Bounded mode only: wrap at duration instead of stopping.
        duration: Total length in seconds for bounded mode. A bounded
            clock without a duration behaves like a live one.
    """

    def __init__(self, id: str, fps: float, frame_source: FrameSource,
                 clock_mode: str = "live", loop: bool = False,
                 duration: float | None = None):
        if clock_mode not in CLOCK_MODES:
            raise ValueError(
                f"clock_mode must be one of {CLOCK_MODES}, got '{clock_mode}'"
            )
        if fps <= 0:
            raise ValueError(f"fps must be > 0, got {fps}")
        self.id = id
        self.fps = fps
        self.clock_mode = clock_mode
        self.loop = loop
        self.duration = duration
        self._frame_source = frame_source
        self._subscribers: list[Subscriber] = []
        self._handle = None
        self._last_ts: float | None = None
        self._running = False
        self._time = 0.0
        self._frame = 0

    @property
    def time(self) -> float:
        return self._time

    @property
    def frame(self) -> int:
        return self._frame

    @property
    def running(self) -> bool:
        return self._running

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def start(self) -> None:
        """Start ticking. No-op when already running."""
        if self._running:
            return
        self._running = True
        self._last_ts = None
        self._handle = self._frame_source.request_frame(self._tick)
        logger.debug("Timeline %s started at %.3fs", self.id, self._time)

    def stop(self) -> None:
        """Stop ticking immediately. Safe to call repeatedly."""
        was_running = self._running
        self._running = False
        if self._handle is not None:
            self._frame_source.cancel_frame(self._handle)
        self._handle = None
        self._last_ts = None
        if was_running:
            logger.debug("Timeline %s stopped at %.3fs", self.id, self._time)

    def seek(self, time: float) -> None:
        """Jump to an absolute time. Takes effect on the next tick."""
        if time < 0:
            raise ValueError(f"Seek time must be >= 0, got {time}")
        self._time = time
        self._frame = math.floor(time * self.fps)

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        """Call fn(time) on every tick. Returns an unsubscribe function."""
        self._subscribers.append(fn)

        def unsubscribe():
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return unsubscribe

    def _tick(self, ts: float) -> None:
        self._handle = None
        if not self._running:
            return
        if self._last_ts is None:
            self._last_ts = ts
        delta = ts - self._last_ts
        self._last_ts = ts
        next_time = self._time + delta

        if self.clock_mode == "bounded" and self.duration is not None:
            if next_time >= self.duration:
                if self.loop:
                    next_time = next_time % self.duration if self.duration > 0 else 0.0
                else:
                    next_time = self.duration
                    self._running = False
                    self._last_ts = None
                    logger.debug("Timeline %s reached its end at %.3fs", self.id, next_time)

        self._time = next_time
        self._frame = math.floor(next_time * self.fps)
        try:
            for fn in list(self._subscribers):
                fn(next_time)
        finally:
            # A failing subscriber must not leave a running clock with no frame pending.
            if self._running and self._handle is None:
                self._handle = self._frame_source.request_frame(self._tick)


# ── Registry ──────────────────────────────────────────────────────


class ClockRegistry:
    """Synchronization groups for the lifetime of the hosting application.

    The first player to name a group creates its Timeline; later players
    naming the same group get the same Timeline. The first Timeline ever
    created becomes the default. Timelines are never removed.
    """

    def __init__(self, frame_source: FrameSource):
        self.frame_source = frame_source
        self._timelines: dict[str, Timeline] = {}
        self.default: Timeline | None = None

    def timeline(self, group: str, fps: float, clock_mode: str = "live",
                 loop: bool = False, duration: float | None = None) -> Timeline:
        """Get the Timeline for group, creating it on first reference.

        Clock settings apply only when the group is created; an existing
        group keeps the settings of whoever created it.
        """
        existing = self._timelines.get(group)
        if existing is not None:
            return existing
        timeline = Timeline(
            group, fps, self.frame_source,
            clock_mode=clock_mode, loop=loop, duration=duration,
        )
        self._timelines[group] = timeline
        if self.default is None:
            self.default = timeline
        logger.debug(
            "Created timeline %s (%s, fps=%g, duration=%s)",
            group, clock_mode, fps, duration,
        )
        return timeline

    def get(self, group: str) -> Timeline | None:
        return self._timelines.get(group)

    def groups(self) -> list[str]:
        return list(self._timelines)

    def stop_all(self) -> None:
        for timeline in self._timelines.values():
            timeline.stop()

    def __contains__(self, group: str) -> bool:
        return group in self._timelines

    def __len__(self) -> int:
        return len(self._timelines)
