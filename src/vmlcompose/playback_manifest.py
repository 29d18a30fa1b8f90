"""Playback manifest loader -- one or more players on shared clocks.

Follows the same ${var} path resolution as the other manifests.

Playback manifest schema:
  paths:
    compositions: "/data/vml"
  playback:
    refresh_hz: 60          # frames per second delivered to clocks
    seconds: 10             # how long `vmlcompose play` runs
  players:
    - source: "${compositions}/intro.vml"   # path, http(s) URL
      sync_group: main      # optional; players sharing it play in lockstep
      clock_mode: bounded   # live | bounded (default live)
      loop: false
      auto_play: true
"""

from pathlib import Path

import yaml

from .clock import CLOCK_MODES
from .common import resolve_path_vars
from .loader import is_url

DEFAULT_REFRESH_HZ = 60
DEFAULT_SECONDS = 10.0


def _positive(value, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be a number, got {value!r}") from None
    if number <= 0:
        raise ValueError(f"{label} must be > 0, got {number}")
    return number


def _bool(value, label: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{label} must be true or false, got {value!r}")
    return value


def load_playback_manifest(manifest_path: str | Path) -> dict:
    """Load, validate, and normalize a playback manifest.

    Relative player sources are resolved against the manifest's directory.

    Returns:
        {"playback": {"refresh_hz", "seconds"}, "players": [...]} with
        every player entry fully populated.

    Raises:
        ValueError: Missing/invalid fields.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError("Playback manifest: expected a mapping at the top level")
    if "players" not in raw:
        raise ValueError("Playback manifest: missing required 'players' field")
    if not isinstance(raw["players"], list) or not raw["players"]:
        raise ValueError("Playback manifest: 'players' must be a non-empty list")

    paths = raw.get("paths", {}) or {}
    base_dir = Path(manifest_path).parent

    playback_raw = raw.get("playback", {}) or {}
    playback = {
        "refresh_hz": _positive(
            playback_raw.get("refresh_hz", DEFAULT_REFRESH_HZ), "playback.refresh_hz",
        ),
        "seconds": _positive(playback_raw.get("seconds", DEFAULT_SECONDS), "playback.seconds"),
    }

    players = []
    for i, entry in enumerate(raw["players"]):
        if not isinstance(entry, dict):
            raise ValueError(f"Player {i}: expected a mapping, got {entry!r}")
        if "source" not in entry:
            raise ValueError(f"Player {i}: missing required field 'source'")

        source = resolve_path_vars(str(entry["source"]), paths)
        if not is_url(source) and not Path(source).is_absolute():
            source = str(base_dir / source)

        clock_mode = entry.get("clock_mode", "live")
        if clock_mode not in CLOCK_MODES:
            raise ValueError(
                f"Player {i}: clock_mode must be one of {CLOCK_MODES}, got '{clock_mode}'"
            )

        sync_group = entry.get("sync_group")
        players.append({
            "source": source,
            "sync_group": str(sync_group) if sync_group is not None else None,
            "clock_mode": clock_mode,
            "loop": _bool(entry.get("loop", False), f"Player {i}: loop"),
            "auto_play": _bool(entry.get("auto_play", True), f"Player {i}: auto_play"),
        })

    return {"playback": playback, "players": players}
