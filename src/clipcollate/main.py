"""Subcommand dispatcher for clipcollate.

Usage:
    clipcollate analyze  clips/ --output items.json
    clipcollate probe    clip.mp4
    clipcollate compare  clips/ --view diff --hide "seed,/^internal_/i"
    clipcollate export   --manifest export.yaml --output final.mp4
    clipcollate export   a.mp4 b.mp4 --mode grid --output grid.mp4
"""

import argparse
import logging
import sys


COMMANDS = {"analyze", "probe", "compare", "export"}


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="clipcollate",
        description="Analyze, compare, and compose node-graph generated video clips.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log pipeline steps and ffmpeg commands",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("analyze", help="Probe clips and resolve embedded workflows")
    subparsers.add_parser("probe", help="Print width, height and fps of one clip")
    subparsers.add_parser("compare", help="Table or diff view of analyzed clips")
    subparsers.add_parser("export", help="Render clips end-to-end or as a grid")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None or parsed.command not in COMMANDS:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if parsed.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if parsed.command == "analyze":
        from .analyze_cli import main as analyze_main
        analyze_main(remaining)
    elif parsed.command == "probe":
        from .analyze_cli import probe_main
        probe_main(remaining)
    elif parsed.command == "compare":
        from .compare_cli import main as compare_main
        compare_main(remaining)
    elif parsed.command == "export":
        from .export_cli import main as export_main
        export_main(remaining)


if __name__ == "__main__":
    main()
