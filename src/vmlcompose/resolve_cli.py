"""CLI for composition resolution.

Resolves a markup file and prints its timing table: scenes, cues, layers
and timed components with absolute start/end times, plus sampled pause
lengths.

Usage:
    vmlcompose resolve composition.vml
    vmlcompose resolve composition.vml --json > resolved.json
    vmlcompose resolve composition.vml --seed 7
"""

import argparse
import json
import logging

from .model import composition_to_dict
from .pauses import sample_pauses
from .resolver import load_composition


def _fmt(seconds):
    return "open" if seconds is None else f"{seconds:.3f}s"


def print_timing_table(composition, pauses: dict) -> None:
    width, height = composition.width, composition.height
    print(f"{composition.id}  {width}x{height} @ {composition.fps:g}fps  "
          f"duration {_fmt(composition.timeline_duration())}")
    for scene in composition.scenes:
        print(f"  scene {scene.id:<20} {_fmt(scene.start):>10} -> {_fmt(scene.end)}")
        for cue in scene.cues:
            extra = ""
            if pauses.get(cue.id):
                extra = f"  (+{pauses[cue.id]:.3f}s pauses)"
            print(f"    cue {cue.id:<19} {_fmt(cue.start):>10} -> {_fmt(cue.end)}{extra}")
        for layer in scene.layers:
            print(f"    layer {layer.id:<17} {_fmt(layer.start):>10} -> {_fmt(layer.end)}")
        for component in scene.timed_components():
            label = f"{component.type}#{component.id}"
            print(f"      {label:<23} {_fmt(component.start):>10} -> {_fmt(component.end)}")
    scene_pauses = {k: v for k, v in pauses.items() if "/pause-" in k}
    for key, seconds in scene_pauses.items():
        print(f"  pause {key:<20} {seconds:.3f}s")


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Resolve a VML composition and print its timing.",
    )
    parser.add_argument("source", help="Path to the .vml markup file")
    parser.add_argument(
        "--json", action="store_true",
        help="Print the resolved composition as JSON",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Seed for gaussian pause sampling (default: voiceover seed)",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log resolver passes",
    )
    parsed = parser.parse_args(args)

    if parsed.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    composition = load_composition(parsed.source)
    pauses = sample_pauses(composition, seed=parsed.seed)

    if parsed.json:
        data = composition_to_dict(composition)
        data["sampled_pauses"] = pauses
        print(json.dumps(data, indent=2))
    else:
        print_timing_table(composition, pauses)


if __name__ == "__main__":
    main()
