"""CLI for headless playback.

Mounts every player in a playback manifest, runs the clocks, and prints
lifecycle transitions (scene/cue start and end, component visibility) as
they fire. By default time is simulated frame by frame; --realtime runs
the clocks on an asyncio loop against the wall clock.

Usage:
    vmlcompose play --manifest playback.yaml
    vmlcompose play --manifest playback.yaml --seconds 4 --realtime
"""

import argparse
import asyncio
import logging

from .clock import AsyncioFrameSource, ClockRegistry, ManualFrameSource
from .loader import PlayerHost, on_error_printer
from .playback_manifest import load_playback_manifest
from .player import PlayerOptions

PRINTED_EVENTS = ("scene:start", "scene:end", "cue:start", "cue:end", "visibility:change")


def _describe(event: str, detail: dict) -> str:
    if event.startswith("scene:"):
        return f"{event:<18} {detail['scene_id']}"
    if event.startswith("cue:"):
        return f"{event:<18} {detail['cue_id']}"
    state = "shown" if detail["visible"] else "hidden"
    return f"{event:<18} {detail['scene_id']}/{detail['component_id']} {state}"


def _printer(label: str, event: str):
    def show(detail):
        print(f"[{label}] {detail['time']:8.3f}s  f{detail['frame']:<6} {_describe(event, detail)}")
    return show


async def mount_players(config: dict, registry: ClockRegistry) -> list:
    """Load and mount every manifest player. Failed loads are skipped."""
    hosts = []
    for i, entry in enumerate(config["players"]):
        label = f"p{i}"
        options = PlayerOptions(
            auto_play=entry["auto_play"],
            clock_mode=entry["clock_mode"],
            loop=entry["loop"],
            sync_group=entry["sync_group"],
            on_error=on_error_printer(f"[{label}] error"),
        )
        host = PlayerHost(registry, options)
        player = await host.load(entry["source"])
        if player is None:
            continue
        for event in PRINTED_EVENTS:
            player.add_listener(event, _printer(label, event))
        print(f"[{label}] mounted {player.composition.id} on {player.group} "
              f"({entry['clock_mode']}, duration {player.duration})")
        hosts.append(host)
    return hosts


def play_simulated(config: dict, seconds: float) -> list:
    frame_source = ManualFrameSource()
    registry = ClockRegistry(frame_source)
    hosts = asyncio.run(mount_players(config, registry))
    frames = frame_source.run(seconds, config["playback"]["refresh_hz"])
    print(f"Simulated {frames} frames")
    for host in hosts:
        host.close()
    return hosts


async def play_realtime(config: dict, seconds: float) -> list:
    frame_source = AsyncioFrameSource(refresh_hz=config["playback"]["refresh_hz"])
    registry = ClockRegistry(frame_source)
    hosts = await mount_players(config, registry)
    try:
        await asyncio.sleep(seconds)
    finally:
        for host in hosts:
            host.close()
        registry.stop_all()
    return hosts


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Play VML compositions headlessly and print transitions.",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to playback YAML manifest",
    )
    parser.add_argument(
        "--seconds", type=float, default=None,
        help="How long to play (default: manifest playback.seconds)",
    )
    parser.add_argument(
        "--realtime", action="store_true",
        help="Run clocks against the wall clock instead of simulating",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log clock and player lifecycle",
    )
    parsed = parser.parse_args(args)

    if parsed.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    config = load_playback_manifest(parsed.manifest)
    seconds = parsed.seconds if parsed.seconds is not None else config["playback"]["seconds"]
    if seconds <= 0:
        parser.error("--seconds must be > 0")

    print(f"Playing {len(config['players'])} player(s) for {seconds:g}s")
    if parsed.realtime:
        asyncio.run(play_realtime(config, seconds))
    else:
        play_simulated(config, seconds)


if __name__ == "__main__":
    main()
