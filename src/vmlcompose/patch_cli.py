"""CLI for structural patching.

Applies a YAML batch of patches to a markup file and writes the result.
The patched markup must still resolve; it is checked before writing.

Usage:
    vmlcompose patch composition.vml --manifest patches.yaml --output patched.vml
    vmlcompose patch composition.vml --manifest patches.yaml --output patched.vml \
        --enforce-sealed
"""

import argparse
import logging
from pathlib import Path

from .document import LiveDocument
from .patch_manifest import load_patch_manifest
from .patches import apply_patches
from .resolver import resolve_markup


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Apply structural patches to a VML document.",
    )
    parser.add_argument("source", help="Path to the .vml markup file")
    parser.add_argument(
        "--manifest", required=True,
        help="Path to patch YAML manifest",
    )
    parser.add_argument(
        "--output", required=True,
        help="Where to write the patched markup",
    )
    parser.add_argument(
        "--enforce-sealed", action="store_true",
        help="Reject patches inside sealed scenes (overrides the manifest)",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log patch application",
    )
    parsed = parser.parse_args(args)

    if parsed.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    config = load_patch_manifest(parsed.manifest)
    document = LiveDocument.load(parsed.source)
    enforce_sealed = parsed.enforce_sealed or config["enforce_sealed"]

    print(f"Applying {len(config['patches'])} patch(es) to {parsed.source}")
    patched = apply_patches(
        document, config["patches"],
        enforce_sealed=enforce_sealed, atomic=config["atomic"],
    )
    composition = resolve_markup(patched)

    out = Path(parsed.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(patched, encoding="utf-8")
    print(f"Done: {out} ({len(composition.scenes)} scenes)")


if __name__ == "__main__":
    main()
