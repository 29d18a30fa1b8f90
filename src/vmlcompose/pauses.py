"""Pause sampling -- concrete durations for fixed and gaussian pauses.

A gaussian pause is drawn from N(mean, std) and clipped to [min, max]
when those are given, never below zero. Draws come from a numpy Generator
seeded with the voiceover seed, so a composition with a seed always
yields the same pause lengths.
"""

import numpy as np

from .model import Composition, Cue, FixedPause, GaussianPause, PauseSegment


def make_rng(seed: int | float | None = None) -> np.random.Generator:
    return np.random.default_rng(None if seed is None else int(seed))


def sample_pause_seconds(pause: FixedPause | GaussianPause, rng: np.random.Generator) -> float:
    """Concrete length of one pause in seconds."""
    if isinstance(pause, FixedPause):
        return float(pause.seconds)
    value = float(rng.normal(pause.mean, pause.std)) if pause.std > 0 else float(pause.mean)
    if pause.min is not None:
        value = max(value, pause.min)
    if pause.max is not None:
        value = min(value, pause.max)
    return max(value, 0.0)


def cue_pause_seconds(cue: Cue, rng: np.random.Generator) -> float:
    """Total sampled pause time inside a cue."""
    return sum(
        sample_pause_seconds(segment.pause, rng)
        for segment in cue.segments
        if isinstance(segment, PauseSegment)
    )


def sample_pauses(composition: Composition, seed: int | float | None = None) -> dict:
    """Sample every pause of a composition in document order.

    Scene-level pauses are keyed "<scene id>/pause-<n>", cue pauses by cue
    id (summed). The seed defaults to the voiceover seed.

    Returns:
        {key: seconds}
    """
    if seed is None and composition.voiceover is not None:
        seed = composition.voiceover.seed
    rng = make_rng(seed)
    sampled = {}
    for scene in composition.scenes:
        index = 0
        for item in scene.items:
            if isinstance(item, Cue):
                sampled[item.id] = cue_pause_seconds(item, rng)
            else:
                sampled[f"{scene.id}/pause-{index}"] = sample_pause_seconds(item, rng)
                index += 1
    return sampled
