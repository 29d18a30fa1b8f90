"""Subcommand dispatcher for vmlcompose.

Usage:
    vmlcompose resolve  composition.vml [--json]
    vmlcompose play     --manifest playback.yaml [--seconds 5]
    vmlcompose patch    composition.vml --manifest patches.yaml --output out.vml
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="vmlcompose",
        description="Time resolution, headless playback, and patching of VML compositions.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("resolve", help="Resolve a composition and print its timing")
    subparsers.add_parser("play", help="Play compositions from a playback manifest")
    subparsers.add_parser("patch", help="Apply structural patches to a composition")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "resolve":
        from .resolve_cli import main as resolve_main
        resolve_main(remaining)
    elif parsed.command == "play":
        from .play_cli import main as play_main
        play_main(remaining)
    elif parsed.command == "patch":
        from .patch_cli import main as patch_main
        patch_main(remaining)


if __name__ == "__main__":
    main()
