"""Player -- per-mount activation tracking and lifecycle events.

A Player binds one resolved Composition to a Timeline from a
ClockRegistry. On every tick it works out what is active at the current
time and fires edge-triggered events:

  1. Scenes: a scene is active when start <= t < boundary, where boundary
     is its end, else the next scene's start, else unbounded. When scenes
     overlap, the last active one in document order wins.
  2. Visibility: timed components (those with an end) of the active scene
     are visible when start <= t < end. A visibility:change event fires
     only when a component flips.
  3. timeline:tick.
  4. Cues: same half-open rule, independent of scenes; cue:start/cue:end
     fire as cues enter and leave the active set.
  5. Scene change: scene:end for the previous scene, then scene:start for
     the new one. Nothing ends before the first start.
  6. on_time_update(time, duration).

Inline handlers (on:<event> attributes) and <script> bodies are never
executed here. They are passed to an optional handler_hook as
HandlerInvocation records; a failing hook is logged and playback goes on.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Callable

from .clock import ClockRegistry, Timeline
from .model import Composition

logger = logging.getLogger(__name__)

EVENTS = (
    "timeline:tick",
    "scene:start",
    "scene:end",
    "cue:start",
    "cue:end",
    "visibility:change",
)

Listener = Callable[[dict], None]


@dataclass(frozen=True)
class HandlerInvocation:
    """One inline handler or script to run, handed to the handler hook.

    event is the event name ("script" for <script> bodies), scope is
    "composition", "scene" or "cue", target_id names the element the
    handler was declared on.
    """
    event: str
    code: str
    scope: str
    target_id: str | None
    detail: dict = field(default_factory=dict)
    timeline: Timeline | None = None


@dataclass
class PlayerOptions:
    auto_play: bool = True
    clock_mode: str = "live"
    loop: bool = False
    sync_group: str | None = None
    on_time_update: Callable[[float, float], None] | None = None
    on_error: Callable[[str | None], None] | None = None
    handler_hook: Callable[[HandlerInvocation], None] | None = None


def handler_event_name(name: str) -> str:
    """Map an attribute event name to its event: 'scene-start' -> 'scene:start'."""
    if name in EVENTS:
        return name
    candidate = name.replace("-", ":", 1)
    return candidate if candidate in EVENTS else name


class Player:
    """Tracks activation for one composition on a shared or private clock.

    Args:
        composition: Resolved composition to play.
        registry: Registry that owns the synchronization groups.
        options: Playback options. A missing sync_group gets a private,
            randomly named group.
    """

    def __init__(self, composition: Composition, registry: ClockRegistry,
                 options: PlayerOptions | None = None):
        self.options = options or PlayerOptions()
        self.registry = registry
        self.group = self.options.sync_group or f"timeline-{uuid.uuid4().hex[:10]}"
        self.timeline: Timeline | None = None
        self.active_scene_id: str | None = None
        self.active_cues: set[str] = set()
        self._listeners: dict[str, list[Listener]] = {}
        self._visible: dict[tuple[str, int, str], bool] = {}
        self._owns_timeline = False
        self._unsubscribe = None
        self._bind(composition)

    # ── lifecycle ──

    def mount(self) -> "Player":
        """Attach to the group's timeline and start it if auto_play."""
        if self.timeline is not None:
            return self
        self._owns_timeline = self.group not in self.registry
        timeline = self.registry.timeline(
            self.group,
            fps=self.composition.fps,
            clock_mode=self.options.clock_mode,
            loop=self.options.loop,
            duration=self.duration,
        )
        self.timeline = timeline
        self._unsubscribe = timeline.subscribe(self.handle_tick)
        if self.options.on_error:
            self.options.on_error(None)
        self._run_scripts()
        if self.options.auto_play:
            timeline.start()
        logger.debug("Mounted %s on timeline %s", self.composition.id, self.group)
        return self

    def unmount(self) -> None:
        """Detach from the timeline.

        The timeline stays registered. It is stopped only when this player
        started it and nothing else is still subscribed.
        """
        if self.timeline is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        if self.options.auto_play and self.timeline.subscriber_count == 0:
            self.timeline.stop()
        logger.debug("Unmounted %s from timeline %s", self.composition.id, self.group)
        self.timeline = None

    def rebind(self, composition: Composition) -> None:
        """Swap in a re-resolved composition without remounting.

        Activation state for scenes, cues and components that still exist
        is kept so no spurious transitions fire on the next tick.
        """
        self._bind(composition)
        scene_ids = {scene.id for scene in composition.scenes}
        if self.active_scene_id not in scene_ids:
            self.active_scene_id = None
        cue_ids = {cue.id for cue in self._cues}
        self.active_cues &= cue_ids
        timed_keys = {key for key, _ in self._timed_items()}
        self._visible = {k: v for k, v in self._visible.items() if k in timed_keys}
        if self.timeline is not None:
            if self._owns_timeline:
                self.timeline.duration = self.duration
            self._run_scripts()

    def _bind(self, composition: Composition) -> None:
        self.composition = composition
        self.duration = composition.timeline_duration()
        self._scenes = list(composition.scenes)
        self._cues = [
            cue for scene in composition.scenes for cue in scene.cues
            if cue.start is not None
        ]
        self._timed = {
            scene.id: [c for c in scene.timed_components() if c.start is not None and c.end is not None]
            for scene in composition.scenes
        }

    def _timed_items(self):
        for scene_id, components in self._timed.items():
            for index, component in enumerate(components):
                yield (scene_id, index, component.id), component

    # ── events ──

    def add_listener(self, event: str, fn: Listener) -> Callable[[], None]:
        """Call fn(detail) whenever event fires. Returns a remover."""
        if event not in EVENTS:
            raise ValueError(f"Unknown event '{event}'. Expected one of {EVENTS}")
        listeners = self._listeners.setdefault(event, [])
        listeners.append(fn)

        def remove():
            if fn in listeners:
                listeners.remove(fn)

        return remove

    def _dispatch(self, event: str, detail: dict, scope=None, target_id=None) -> None:
        for fn in list(self._listeners.get(event, ())):
            fn(detail)
        if self.options.handler_hook is None:
            return
        self._invoke_handlers(event, detail, "composition", self.composition.id,
                              self.composition.handlers)
        if scope == "scene":
            handlers = self.composition.scene(target_id).handlers
        elif scope == "cue":
            handlers = self.composition.cue(target_id).handlers
        else:
            return
        self._invoke_handlers(event, detail, scope, target_id, handlers)

    def _invoke_handlers(self, event, detail, scope, target_id, handlers) -> None:
        for name, code in handlers.items():
            if handler_event_name(name) != event:
                continue
            self._call_hook(HandlerInvocation(
                event=event, code=code, scope=scope, target_id=target_id,
                detail=detail, timeline=self.timeline,
            ))

    def _run_scripts(self) -> None:
        if self.options.handler_hook is None:
            return
        for code in self.composition.scripts:
            self._call_hook(HandlerInvocation(
                event="script", code=code, scope="composition",
                target_id=self.composition.id, timeline=self.timeline,
            ))

    def _call_hook(self, invocation: HandlerInvocation) -> None:
        try:
            self.options.handler_hook(invocation)
        except Exception:
            logger.exception(
                "Handler error for on:%s on %s '%s'",
                invocation.event, invocation.scope, invocation.target_id,
            )

    # ── per-tick evaluation ──

    def handle_tick(self, time: float) -> None:
        """Evaluate activation at time and fire transition events."""
        fps = self.timeline.fps if self.timeline is not None else self.composition.fps
        frame = math.floor(time * fps)

        active_scene_id = None
        for i, scene in enumerate(self._scenes):
            boundary = scene.end
            if boundary is None and i + 1 < len(self._scenes):
                boundary = self._scenes[i + 1].start
            if time >= scene.start and (boundary is None or time < boundary):
                active_scene_id = scene.id

        if active_scene_id is not None:
            for index, component in enumerate(self._timed.get(active_scene_id, ())):
                key = (active_scene_id, index, component.id)
                visible = component.start <= time < component.end
                if visible != self._visible.get(key, False):
                    self._visible[key] = visible
                    self._dispatch("visibility:change", {
                        "scene_id": active_scene_id,
                        "component_id": component.id,
                        "visible": visible,
                        "time": time,
                        "frame": frame,
                    })

        self._dispatch("timeline:tick", {"frame": frame, "time": time, "fps": fps})

        for cue in self._cues:
            active = time >= cue.start and (cue.end is None or time < cue.end)
            was_active = cue.id in self.active_cues
            if active and not was_active:
                self.active_cues.add(cue.id)
                self._dispatch("cue:start", {"cue_id": cue.id, "time": time, "frame": frame},
                               scope="cue", target_id=cue.id)
            elif was_active and not active:
                self.active_cues.discard(cue.id)
                self._dispatch("cue:end", {"cue_id": cue.id, "time": time, "frame": frame},
                               scope="cue", target_id=cue.id)

        if active_scene_id != self.active_scene_id:
            previous = self.active_scene_id
            self.active_scene_id = active_scene_id
            if previous is not None:
                self._dispatch("scene:end", {"scene_id": previous, "time": time, "frame": frame},
                               scope="scene", target_id=previous)
            if active_scene_id is not None:
                self._dispatch("scene:start",
                               {"scene_id": active_scene_id, "time": time, "frame": frame},
                               scope="scene", target_id=active_scene_id)

        if self.options.on_time_update:
            self.options.on_time_update(time, self.duration or 0.0)

    def is_visible(self, scene_id: str, component_id: str) -> bool:
        """Current visibility of a timed component (False until first shown).

        With duplicate ids in one scene, True when any of them is shown.
        """
        return any(
            visible for (sid, _, cid), visible in self._visible.items()
            if sid == scene_id and cid == component_id
        )
