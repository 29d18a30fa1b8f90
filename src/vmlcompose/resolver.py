"""Composition time resolver -- markup tree to time-absolute Composition.

Scenes may reference each other's times in any direction, so scenes are
resolved by fixed-point iteration rather than in document order:

  1. Every top-level <scene> starts out pending.
  2. Each pass tries every pending scene with whatever scene starts/ends
     and cue starts are known so far.
  3. A scene whose expressions all evaluate is committed (its start, end
     and cue starts become visible to later attempts) and leaves pending.
     A scene that hits an UnresolvedReference stays pending.
  4. A pass that commits nothing fails with UnresolvedTimeError naming
     every pending scene; more than scene_count + 2 passes fails with
     ConvergenceError.

A scene attempt is all-or-nothing: nothing it computed is kept unless the
whole scene resolves.

Timing inside a scene:
  - Offsets are relative to the enclosing container start (the scene
    start at top level). Anchored expressions (scene(), cue(), prev,
    next, timeline) are absolute times instead.
  - <sequence> chains untimed children end-to-end, each defaulting to
    DEFAULT_SEQUENCE_CHILD_SECONDS; <stack> starts every child at the
    container start. Both nest.
  - Cue offsets and durations are scaled by the product of every
    ancestor's timeScale / time-scale.
  - A scene without end or duration ends at the latest end of anything
    timed inside it, or stays open.
"""

import logging
from collections import ChainMap

from .common import (
    coerce_attr_value,
    merge_cascaded,
    parse_json_map,
    parse_number,
    to_camel_case,
    to_pascal_case,
)
from .markup import ROOT_TAGS, Element, load_markup, parse_markup
from .model import (
    Component,
    Composition,
    Cue,
    FixedPause,
    GaussianPause,
    Layer,
    PauseSegment,
    Scene,
    TextSegment,
    Voiceover,
)
from .timeexpr import (
    ResolutionContext,
    UnresolvedReference,
    evaluate_time,
    is_anchored,
    parse_time_expression,
)

logger = logging.getLogger(__name__)


class CompositionError(ValueError):
    """Structural problem in the markup: ids, root tag, JSON, nesting."""


class UnresolvedTimeError(CompositionError):
    """Some scenes' time references can never be satisfied."""

    def __init__(self, scene_ids: list[str]):
        super().__init__(
            f"Unresolved time references for scenes: {', '.join(scene_ids)}"
        )
        self.scene_ids = scene_ids


class ConvergenceError(CompositionError):
    """Resolution exceeded its pass limit."""


# ── Vocabulary ────────────────────────────────────────────────────

DEFAULT_FPS = 30
DEFAULT_WIDTH = 1280
DEFAULT_HEIGHT = 720
DEFAULT_SEQUENCE_CHILD_SECONDS = 1.0

RESERVED_ATTRS = {
    "id", "visible", "z", "start", "end", "duration", "styles", "markup", "props",
}

CONTAINER_TAGS = {"sequence", "stack"}

# A <scene> inside a scene times its children like a <stack>.
NESTED_CONTAINER_TAGS = CONTAINER_TAGS | {"scene"}

# Tags with engine meaning; never turned into components.
STRUCTURAL_TAGS = {
    "scene", "cue", "layer", "pause", "voice", "bullet", "voiceover", "script",
}

HANDLER_PREFIX = "on:"


# ── Entry points ──────────────────────────────────────────────────


def load_composition(path) -> Composition:
    """Read a markup file and resolve it."""
    return resolve_composition(load_markup(path))


def resolve_markup(text: str) -> Composition:
    """Parse markup text and resolve it."""
    return resolve_composition(parse_markup(text))


def resolve_composition(root: Element) -> Composition:
    """Resolve a markup tree into a time-absolute Composition.

    Args:
        root: Parsed <vml>/<videoml>/<video-ml> element.

    Returns:
        Immutable Composition with absolute scene, cue and component times.

    Raises:
        CompositionError: Wrong root tag, missing/duplicate ids, bad JSON,
            no scenes, more than one voiceover, scene ending before it
            starts.
        UnresolvedTimeError: Scenes whose references never resolve.
        ConvergenceError: Pass limit exceeded.
        TimeExpressionError: Malformed or invalid time expression.
    """
    if root.tag not in ROOT_TAGS:
        raise CompositionError("XML root must be <vml>, <videoml>, or <video-ml>.")

    comp_id = root.get("id")
    if not comp_id:
        raise CompositionError("vml requires id.")

    fps = _positive_number(root, "fps", DEFAULT_FPS)
    width = _positive_number(root, "width", DEFAULT_WIDTH)
    height = _positive_number(root, "height", DEFAULT_HEIGHT)

    base_ctx = ResolutionContext(fps=fps)
    duration = _static_time(root, "duration", base_ctx)
    poster = _static_time(root, "poster", base_ctx)

    voiceovers = root.child_elements("voiceover")
    if len(voiceovers) > 1:
        raise CompositionError("vml allows at most one <voiceover>.")
    voiceover = _resolve_voiceover(voiceovers[0], base_ctx) if voiceovers else None

    scenes = _resolve_scenes(root, fps)

    return Composition(
        id=comp_id,
        title=root.get("title"),
        fps=fps,
        width=width,
        height=height,
        scenes=tuple(scenes),
        duration=duration,
        poster=poster,
        voiceover=voiceover,
        handlers=_handlers(root),
        scripts=tuple(
            el.text.strip() for el in root.iter()
            if el.tag == "script" and el.text.strip()
        ),
    )


# ── Fixed-point scene loop ────────────────────────────────────────


def _resolve_scenes(root: Element, fps: float) -> list[Scene]:
    scene_elements = root.child_elements("scene")
    if not scene_elements:
        raise CompositionError("vml requires at least one scene.")

    scene_ids = []
    for i, el in enumerate(scene_elements):
        scene_id = el.get("id")
        if not scene_id:
            raise CompositionError(f"Scene {i}: scene requires id.")
        if scene_id in scene_ids:
            raise CompositionError(f"Duplicate scene id: \"{scene_id}\".")
        scene_ids.append(scene_id)

    root_scale = _own_scale(root)
    count = len(scene_elements)
    resolved: list[Scene | None] = [None] * count
    scene_starts: dict[str, float] = {}
    scene_ends: dict[str, float] = {}
    cue_starts: dict[str, float] = {}
    cue_ids: set[str] = set()

    pending = list(range(count))
    passes = 0
    while pending:
        progressed = False
        for index in list(pending):
            prev = resolved[index - 1] if index > 0 else None
            next_id = scene_ids[index + 1] if index + 1 < count else None
            attempt = _SceneAttempt(
                fps=fps,
                scene_starts=scene_starts,
                scene_ends=scene_ends,
                cue_starts=cue_starts,
                cue_ids=cue_ids,
                prev=prev,
                next_start=scene_starts.get(next_id) if next_id else None,
                is_first=index == 0,
                scale=root_scale,
            )
            try:
                scene = attempt.resolve(scene_elements[index])
            except UnresolvedReference as exc:
                logger.debug(
                    "Scene %s waiting on %s (pass %d)",
                    scene_ids[index], exc.reference, passes + 1,
                )
                continue

            resolved[index] = scene
            scene_starts[scene.id] = scene.start
            if scene.end is not None:
                scene_ends[scene.id] = scene.end
            cue_starts.update(attempt.local_cue_starts)
            cue_ids.update(attempt.local_cue_ids)
            pending.remove(index)
            progressed = True

        passes += 1
        if not progressed:
            raise UnresolvedTimeError([scene_ids[i] for i in pending])
        if pending and passes > count + 2:
            raise ConvergenceError("Time resolution did not converge.")

    logger.debug("Resolved %d scenes in %d passes", count, passes)
    return resolved


class _SceneAttempt:
    """One attempt at resolving one scene against the committed indices.

    Everything the attempt learns (its own start/end, its cue starts) goes
    into local overlays; the caller commits them only on success.
    """

    def __init__(self, fps, scene_starts, scene_ends, cue_starts, cue_ids,
                 prev, next_start, is_first, scale):
        self.local_scene_starts = {}
        self.local_scene_ends = {}
        self.local_cue_starts = {}
        self.local_cue_ids = set()
        self.committed_cue_ids = cue_ids
        self.prev = prev
        self.is_first = is_first
        self.scale = scale
        self.ends: list[float] = []
        self.ctx = ResolutionContext(
            fps=fps,
            scene_starts=ChainMap(self.local_scene_starts, scene_starts),
            scene_ends=ChainMap(self.local_scene_ends, scene_ends),
            cue_starts=ChainMap(self.local_cue_starts, cue_starts),
            prev_start=prev.start if prev else None,
            prev_end=prev.end if prev else None,
            next_start=next_start,
        )

    # ── timing primitives ──

    def time(self, el: Element, name: str) -> float | None:
        raw = el.get(name)
        if raw is None:
            return None
        return evaluate_time(raw, self.ctx)

    def place(self, el: Element, name: str, base: float, scale: float = 1.0) -> float | None:
        """Absolute time of an offset attribute relative to base."""
        raw = el.get(name)
        if raw is None:
            return None
        value = evaluate_time(raw, self.ctx)
        if is_anchored(parse_time_expression(raw)):
            return value
        return base + value * scale

    def note_end(self, end: float | None) -> None:
        if end is not None:
            self.ends.append(end)

    # ── scene ──

    def resolve(self, el: Element) -> Scene:
        scene_id = el.get("id")
        where = f"Scene '{scene_id}'"

        if el.get("start") is not None:
            start = self.time(el, "start")
        elif self.is_first:
            start = 0.0
        elif self.prev is None:
            raise UnresolvedReference("prev.end")
        else:
            start = self.prev.end if self.prev.end is not None else self.prev.start
        self.local_scene_starts[scene_id] = start

        scale = self.scale * _own_scale(el)
        end = self.time(el, "end")
        if end is None and el.get("duration") is not None:
            end = start + self.time(el, "duration") * scale
        if end is not None:
            self.local_scene_ends[scene_id] = end

        items, layers, components = [], [], []
        counter = _Counter()
        for child in el.children:
            if child.tag == "cue":
                items.append(self.resolve_cue(child, start, scale, where))
            elif child.tag == "pause":
                items.append(self.resolve_pause(child, where))
            elif child.tag == "layer":
                layers.append(self.resolve_layer(child, start, counter, where))
            elif child.tag in NESTED_CONTAINER_TAGS:
                found, _ = self.resolve_container(
                    child, start, start, "stack", None, None, counter, where,
                )
                components.extend(found)
            elif child.tag not in STRUCTURAL_TAGS:
                component = self.resolve_component(
                    child, start, start, "stack", None, None, counter, where,
                )
                components.append(component)

        if end is None and self.ends:
            end = max(self.ends)
        if end is not None and end < start:
            raise CompositionError(
                f"{where}: end ({end:g}) is before start ({start:g})."
            )

        return Scene(
            id=scene_id,
            title=el.get("title", scene_id),
            start=start,
            end=end,
            items=tuple(items),
            layers=tuple(layers),
            components=tuple(components),
            styles=_json_attr(el, "styles", where),
            markup=_json_attr(el, "markup", where),
            handlers=_handlers(el),
        )

    # ── cues and pauses ──

    def resolve_cue(self, el: Element, scene_start: float, scale: float, where: str) -> Cue:
        cue_id = el.get("id")
        if not cue_id:
            raise CompositionError(f"{where}: cue requires id.")
        if cue_id in self.committed_cue_ids or cue_id in self.local_cue_ids:
            raise CompositionError(f"Duplicate cue id across scenes: \"{cue_id}\".")
        self.local_cue_ids.add(cue_id)

        start = end = None
        has_start = el.get("start") is not None
        if not has_start and (el.get("end") is not None or el.get("duration") is not None):
            raise CompositionError(
                f"cue \"{cue_id}\" timing requires start when end or duration is provided."
            )
        if has_start:
            start = self.place(el, "start", scene_start, scale)
            self.local_cue_starts[cue_id] = start
            end = self.place(el, "end", scene_start, scale)
            if end is None and el.get("duration") is not None:
                end = start + self.time(el, "duration") * scale
            self.note_end(end)

        segments, bullets = [], []
        for child in el.children:
            if child.tag == "voice":
                text = " ".join(child.text.split())
                if not text:
                    continue
                segments.append(TextSegment(text=text, trim_end=self.time(child, "trim-end")))
            elif child.tag == "pause":
                segments.append(PauseSegment(pause=self.resolve_pause(child, where)))
            elif child.tag == "bullet":
                bullet = " ".join(child.text.split())
                if bullet:
                    bullets.append(bullet)

        return Cue(
            id=cue_id,
            label=el.get("label", cue_id),
            segments=tuple(segments),
            bullets=tuple(bullets),
            provider=el.get("provider"),
            start=start,
            end=end,
            handlers=_handlers(el),
        )

    def resolve_pause(self, el: Element, where: str) -> FixedPause | GaussianPause:
        if el.get("seconds") is not None:
            return FixedPause(seconds=self.time(el, "seconds"))
        if el.get("mean") is not None and el.get("std") is not None:
            return GaussianPause(
                mean=self.time(el, "mean"),
                std=self.time(el, "std"),
                min=self.time(el, "min"),
                max=self.time(el, "max"),
            )
        raise CompositionError(f"{where}: pause requires seconds or mean+std.")

    # ── layers, containers, components ──

    def _window(self, el: Element, base: float) -> tuple[float, float | None]:
        """(start, explicit end) of an element placed at base.

        An explicit end wins over duration; no start means base.
        """
        start = self.place(el, "start", base)
        if start is None:
            start = base
        end = self.place(el, "end", base)
        if end is None and el.get("duration") is not None:
            end = start + self.time(el, "duration")
        return start, end

    def resolve_layer(self, el: Element, scene_start: float, counter, where: str) -> Layer:
        layer_id = el.get("id")
        if not layer_id:
            raise CompositionError(f"{where}: layer requires id.")
        layer_where = f"{where}, layer '{layer_id}'"

        start, end = self._window(el, scene_start)
        components = []
        implicit_end = None
        for child in el.children:
            if child.tag in NESTED_CONTAINER_TAGS:
                found, child_end = self.resolve_container(
                    child, start, start, "stack", None, None, counter, layer_where,
                )
                components.extend(found)
            elif child.tag not in STRUCTURAL_TAGS:
                component = self.resolve_component(
                    child, start, start, "stack", None, None, counter, layer_where,
                )
                components.append(component)
                child_end = component.end
            else:
                continue
            if child_end is not None:
                implicit_end = child_end if implicit_end is None else max(implicit_end, child_end)

        if end is None:
            end = implicit_end
        self.note_end(end)

        return Layer(
            id=layer_id,
            start=start,
            end=end,
            visible=_bool_attr(el, "visible"),
            z=parse_number(el.get("z")),
            styles=_json_attr(el, "styles", layer_where),
            markup=_json_attr(el, "markup", layer_where),
            components=tuple(components),
        )

    def resolve_container(self, el, base, cursor, flow, styles, markup, counter, where):
        """Resolve a <sequence>, <stack> or nested <scene> and everything inside it.

        Args:
            el: The container element.
            base: Start of the enclosing container.
            cursor: Current sequence cursor of the enclosing container.
            flow: Discipline of the enclosing container.
            styles, markup: Cascaded maps from enclosing containers.
            counter: Component index counter of the enclosing scope.
            where: Error message prefix.

        Returns:
            (components, end) where end is the container's resolved end or
            None when it has no timed content and no explicit timing.
        """
        own_base = cursor if flow == "sequence" else base
        start, explicit_end = self._window(el, own_base)

        cascaded_styles = merge_cascaded(styles, _json_attr(el, "styles", where))
        cascaded_markup = merge_cascaded(markup, _json_attr(el, "markup", where))
        child_flow = "sequence" if el.tag == "sequence" else "stack"
        default_child = self.time(el, "default-child-duration")
        if default_child is None:
            default_child = self.time(el, "defaultChildDuration")
        if default_child is None:
            default_child = DEFAULT_SEQUENCE_CHILD_SECONDS

        components = []
        child_cursor = start
        max_end = None
        for child in el.children:
            if child.tag in NESTED_CONTAINER_TAGS:
                found, child_end = self.resolve_container(
                    child, start, child_cursor, child_flow,
                    cascaded_styles, cascaded_markup, counter, where,
                )
                components.extend(found)
            elif child.tag not in STRUCTURAL_TAGS:
                component = self.resolve_component(
                    child, start, child_cursor, child_flow,
                    cascaded_styles, cascaded_markup, counter, where,
                    default_child=default_child,
                )
                components.append(component)
                child_end = component.end
            else:
                continue

            if child_end is None:
                continue
            if child_flow == "sequence":
                child_cursor = child_end
            max_end = child_end if max_end is None else max(max_end, child_end)

        if child_flow == "sequence" and max_end is not None:
            implicit_end = child_cursor
        else:
            implicit_end = max_end

        end = explicit_end if explicit_end is not None else implicit_end
        self.note_end(end)
        return components, end

    def resolve_component(self, el, base, cursor, flow, styles, markup, counter, where,
                          default_child=DEFAULT_SEQUENCE_CHILD_SECONDS) -> Component:
        own_base = cursor if flow == "sequence" else base
        start, end = self._window(el, own_base)
        if end is None and flow == "sequence":
            end = start + default_child
        self.note_end(end)

        index = counter.next()
        comp_id = el.get("id", f"{el.tag}-{index}")
        comp_where = f"{where}, {el.tag} '{comp_id}'"
        return Component(
            id=comp_id,
            type=to_pascal_case(el.tag),
            props=_props(el, comp_where),
            start=start,
            end=end,
            visible=_bool_attr(el, "visible"),
            z=parse_number(el.get("z")),
            styles=merge_cascaded(styles, _json_attr(el, "styles", comp_where)),
            markup=merge_cascaded(markup, _json_attr(el, "markup", comp_where)),
            text=" ".join(el.text.split()),
            handlers=_handlers(el),
        )


class _Counter:
    def __init__(self):
        self.value = 0

    def next(self) -> int:
        value = self.value
        self.value += 1
        return value


# ── Attribute helpers ─────────────────────────────────────────────


def _positive_number(el: Element, name: str, default):
    raw = el.get(name)
    if raw is None:
        return default
    value = parse_number(raw)
    if value is None or value <= 0:
        raise CompositionError(f"<{el.tag}> {name} must be a positive number, got '{raw}'.")
    return value


def _static_time(el: Element, name: str, ctx: ResolutionContext) -> float | None:
    """Evaluate a time attribute that may not reference scenes or cues."""
    raw = el.get(name)
    if raw is None:
        return None
    return _static_time_value(raw, f"<{el.tag}> {name}", ctx)


def _static_time_value(raw: str, label: str, ctx: ResolutionContext) -> float:
    try:
        return evaluate_time(raw, ctx)
    except UnresolvedReference as exc:
        raise CompositionError(
            f"{label} cannot reference {exc.reference}; "
            "only literal and timeline expressions are allowed."
        ) from None


def _own_scale(el: Element) -> float:
    raw = el.get("timeScale") or el.get("time-scale")
    if raw is None:
        return 1.0
    try:
        value = float(raw)
    except ValueError:
        return 1.0
    return value if value > 0 else 1.0


def _bool_attr(el: Element, name: str) -> bool | None:
    raw = el.get(name)
    if raw is None:
        return None
    return raw == "true"


def _json_attr(el: Element, name: str, where: str) -> dict | None:
    try:
        return parse_json_map(el.get(name), f"{where}: {name}")
    except ValueError as exc:
        raise CompositionError(str(exc)) from exc


def _handlers(el: Element) -> dict[str, str]:
    """on:<event> attributes as {event: handler code}."""
    return {
        name[len(HANDLER_PREFIX):]: code
        for name, code in el.attributes.items()
        if name.startswith(HANDLER_PREFIX) and len(name) > len(HANDLER_PREFIX) and code
    }


def _props(el: Element, where: str) -> dict:
    """Typed props: JSON props blob first, then non-reserved attributes."""
    props = dict(_json_attr(el, "props", where) or {})
    for name, value in el.attributes.items():
        if name in RESERVED_ATTRS or name.startswith(HANDLER_PREFIX):
            continue
        props[to_camel_case(name)] = coerce_attr_value(value)
    return props


def _first_attr(el: Element, *names: str) -> str | None:
    for name in names:
        value = el.get(name)
        if value is not None:
            return value
    return None


def _resolve_voiceover(el: Element, ctx: ResolutionContext) -> Voiceover:
    def _time_attr(*names):
        raw = _first_attr(el, *names)
        if raw is None:
            return None
        return _static_time_value(raw, f"<voiceover> {names[0]}", ctx)

    return Voiceover(
        provider=el.get("provider"),
        voice=el.get("voice"),
        model=el.get("model"),
        format=el.get("format"),
        sample_rate_hz=parse_number(_first_attr(el, "sampleRateHz", "sample-rate-hz")),
        seed=parse_number(_first_attr(el, "seed")),
        lead_in_seconds=_time_attr("leadInSeconds", "lead-in-seconds"),
        trim_end_seconds=_time_attr("trimEndSeconds", "trim-end-seconds"),
    )
