"""Patch manifest loader -- a batch of structural patches from YAML.

Patch manifest schema:
  enforce_sealed: true      # reject patches inside sealed scenes
  atomic: true              # all-or-nothing (default) or stop at first failure
  patches:
    - op: setAttr
      nodeId: title
      name: text
      value: "Hello"
    - op: appendNode
      parentId: intro
      nodeXml: '<text id="sub">Subtitle</text>'
      index: 0
    - op: sealScene
      sceneId: intro
"""

from pathlib import Path

import yaml

from .patches import PatchError, patch_from_dict


def load_patch_manifest(manifest_path: str | Path) -> dict:
    """Load and validate a patch manifest.

    Returns:
        {"enforce_sealed": bool, "atomic": bool, "patches": [Patch, ...]}

    Raises:
        ValueError: Missing/invalid fields, including malformed patches.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError("Patch manifest: expected a mapping at the top level")
    if "patches" not in raw:
        raise ValueError("Patch manifest: missing required 'patches' field")
    if not isinstance(raw["patches"], list):
        raise ValueError("Patch manifest: 'patches' must be a list")

    flags = {}
    for name, default in (("enforce_sealed", False), ("atomic", True)):
        value = raw.get(name, default)
        if not isinstance(value, bool):
            raise ValueError(f"Patch manifest: '{name}' must be true or false, got {value!r}")
        flags[name] = value

    patches = []
    for i, entry in enumerate(raw["patches"]):
        if not isinstance(entry, dict):
            raise ValueError(f"Patch {i}: expected a mapping, got {entry!r}")
        if "op" not in entry:
            raise ValueError(f"Patch {i}: missing required field 'op'")
        try:
            patches.append(patch_from_dict(entry))
        except PatchError as exc:
            raise ValueError(f"Patch {i}: {exc}") from exc

    return {**flags, "patches": patches}
