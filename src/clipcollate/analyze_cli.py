"""CLI for clip analysis and probing.

Usage:
    # Analyze files and directories (recursive), print JSON items
    clipcollate analyze clips/ extra.mp4

    # Write items to a file, showing every resolved field
    clipcollate analyze clips/ --output items.json --no-filter

    # Use a saved allow-list
    clipcollate analyze clips/ --filter-config node-types.yaml

    # Dimensions of one clip
    clipcollate probe clip.mp4
"""

import argparse
import json
import sys
from pathlib import Path

from .common import collect_media_files
from .config import load_filter_config
from .probe import analyze_files, probe_dimensions


def add_filter_args(parser: argparse.ArgumentParser) -> None:
    """Allow-list options shared by analyze and compare."""
    parser.add_argument(
        "--filter-config", default=None,
        help="YAML allow-list of node types (default: built-in list)",
    )
    parser.add_argument(
        "--no-filter", action="store_true",
        help="Show fields from every node type",
    )


def filter_config_from_args(parsed):
    return load_filter_config(
        parsed.filter_config,
        enabled=False if parsed.no_filter else None,
    )


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Probe clips and resolve their embedded workflow fields.",
    )
    parser.add_argument(
        "paths", nargs="+",
        help="Video files or directories (searched recursively)",
    )
    parser.add_argument(
        "--output", default=None,
        help="Write {items: [...]} JSON here instead of stdout",
    )
    add_filter_args(parser)
    parsed = parser.parse_args(args)

    files = collect_media_files(parsed.paths)
    if not files:
        parser.error("No video files found")

    clips = analyze_files(files, filter_config_from_args(parsed))
    payload = {"items": [c.to_item() for c in clips]}

    if parsed.output:
        Path(parsed.output).parent.mkdir(parents=True, exist_ok=True)
        with open(parsed.output, "w") as f:
            json.dump(payload, f, indent=2)
        found = sum(1 for c in clips if c.workflow is not None)
        print(f"Analyzed {len(clips)} clips ({found} with workflows)")
        print(f"Output: {parsed.output}")
    else:
        json.dump(payload, sys.stdout, indent=2)
        sys.stdout.write("\n")


def probe_main(args=None):
    parser = argparse.ArgumentParser(
        description="Print {width, height, fps} of a clip (zeros on failure).",
    )
    parser.add_argument("clip", help="Path to a video file")
    parsed = parser.parse_args(args)

    print(json.dumps(probe_dimensions(parsed.clip)))


if __name__ == "__main__":
    main()
