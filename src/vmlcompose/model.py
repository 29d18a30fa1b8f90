"""Resolved composition -- the immutable, time-absolute output of the resolver.

Every time here is absolute seconds from the start of the composition.
An end of None means open: the item lasts until something supersedes it
(the next scene, the end of playback).
"""

from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class FixedPause:
    seconds: float
    kind: str = "pause"
    mode: str = "fixed"


@dataclass(frozen=True)
class GaussianPause:
    mean: float
    std: float
    min: float | None = None
    max: float | None = None
    kind: str = "pause"
    mode: str = "gaussian"


Pause = FixedPause | GaussianPause


@dataclass(frozen=True)
class TextSegment:
    text: str
    trim_end: float | None = None
    kind: str = "text"


@dataclass(frozen=True)
class PauseSegment:
    pause: Pause
    kind: str = "pause"


@dataclass(frozen=True)
class Cue:
    id: str
    label: str
    segments: tuple[TextSegment | PauseSegment, ...] = ()
    bullets: tuple[str, ...] = ()
    provider: str | None = None
    start: float | None = None
    end: float | None = None
    handlers: dict[str, str] = field(default_factory=dict)
    kind: str = "cue"


@dataclass(frozen=True)
class Component:
    id: str
    type: str
    props: dict = field(default_factory=dict)
    start: float | None = None
    end: float | None = None
    visible: bool | None = None
    z: int | float | None = None
    styles: dict | None = None
    markup: dict | None = None
    text: str = ""
    handlers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Layer:
    id: str
    start: float | None = None
    end: float | None = None
    visible: bool | None = None
    z: int | float | None = None
    styles: dict | None = None
    markup: dict | None = None
    components: tuple[Component, ...] = ()


@dataclass(frozen=True)
class Scene:
    id: str
    title: str
    start: float
    end: float | None = None
    items: tuple[Cue | Pause, ...] = ()
    layers: tuple[Layer, ...] = ()
    components: tuple[Component, ...] = ()
    styles: dict | None = None
    markup: dict | None = None
    handlers: dict[str, str] = field(default_factory=dict)

    @property
    def cues(self) -> list[Cue]:
        return [item for item in self.items if isinstance(item, Cue)]

    def timed_components(self) -> list[Component]:
        """Top-level and layer components, in document order."""
        found = list(self.components)
        for layer in self.layers:
            found.extend(layer.components)
        return found


@dataclass(frozen=True)
class Voiceover:
    provider: str | None = None
    voice: str | None = None
    model: str | None = None
    format: str | None = None
    sample_rate_hz: int | float | None = None
    seed: int | float | None = None
    lead_in_seconds: float | None = None
    trim_end_seconds: float | None = None


@dataclass(frozen=True)
class Composition:
    id: str
    title: str | None
    fps: float
    width: int | float
    height: int | float
    scenes: tuple[Scene, ...]
    duration: float | None = None
    poster: float | None = None
    voiceover: Voiceover | None = None
    handlers: dict[str, str] = field(default_factory=dict)
    scripts: tuple[str, ...] = ()

    def scene(self, scene_id: str) -> Scene:
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        raise KeyError(scene_id)

    def cue(self, cue_id: str) -> Cue:
        for scene in self.scenes:
            for cue in scene.cues:
                if cue.id == cue_id:
                    return cue
        raise KeyError(cue_id)

    def timeline_duration(self) -> float | None:
        """Playback length: the fixed duration, else the latest scene end."""
        if self.duration is not None:
            return self.duration
        ends = [scene.end for scene in self.scenes if scene.end is not None]
        return max(ends) if ends else None


def composition_to_dict(composition: Composition) -> dict:
    """Plain nested dict of a composition, suitable for json.dump."""
    return asdict(composition)
