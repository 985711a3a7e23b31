"""CLI for comparing clips: table view, diff view, node type catalog.

Usage:
    # What changed between consecutive renders (newest first)
    clipcollate compare renders/

    # Compare an earlier analyze run, oldest first, only rows mentioning euler
    clipcollate compare --items items.json --sort ctime --asc --search euler

    # Full table, hiding seeds and anything matching a regex
    clipcollate compare renders/ --view table --hide "seed,/^internal_/i"

    # Node types present across the clips (for editing the allow-list)
    clipcollate compare renders/ --node-types
"""

import argparse
import json

from .analyze_cli import add_filter_args, filter_config_from_args
from .common import collect_media_files
from .graph import catalog_node_types, resolve_filtered
from .probe import analyze_files
from .table import (
    SORT_KEYS,
    build_headers,
    diff_rows,
    filter_rows,
    label_field_choices,
    parse_key_hide_spec,
    sort_rows,
    value_for,
    visible_headers,
)


DEFAULT_HIDE_SPEC = "seed,widgets_values[0],Set_SEED"


def _load_items(path: str, filter_config) -> list[dict]:
    """Rows from an analyze JSON file, re-filtered with the current allow-list."""
    with open(path) as f:
        items = json.load(f).get("items", [])
    for item in items:
        item["widgetValues"] = resolve_filtered(item.get("workflowNorm"), filter_config).values
    return items


def _print_table(rows: list[dict], headers: list[str]) -> None:
    for i, row in enumerate(rows):
        print(f"#{i + 1} {row.get('name', '')}")
        for h in headers:
            print(f"    {h}: {value_for(row, h)}")


def _print_diff(rows: list[dict], headers: list[str]) -> None:
    for i, (row, changed) in enumerate(diff_rows(rows, headers)):
        print(
            f"#{i + 1} {row.get('name', '')}  "
            f"{row.get('width', 0)}x{row.get('height', 0)} "
            f"{row.get('fps', 0)}fps {round(float(row.get('duration') or 0))}s"
        )
        if changed is None:
            print("    (baseline)")
        elif not changed:
            print("    (no changes vs previous)")
        else:
            prev = rows[i - 1]
            for h in changed:
                print(f"    {h}")
                print(f"      + {value_for(row, h)}")
                print(f"      - {value_for(prev, h)}")


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Compare analyzed clips as a table or a consecutive diff.",
    )
    parser.add_argument(
        "paths", nargs="*",
        help="Video files or directories (searched recursively)",
    )
    parser.add_argument(
        "--items", default=None,
        help="Read rows from an `analyze --output` JSON file instead of probing",
    )
    parser.add_argument(
        "--view", choices=["diff", "table"], default="diff",
        help="diff (default): changes vs previous row; table: every visible field",
    )
    parser.add_argument(
        "--hide", default=DEFAULT_HIDE_SPEC,
        help=f"Comma-separated substrings and /regex/flags to hide (default: {DEFAULT_HIDE_SPEC!r})",
    )
    parser.add_argument(
        "--show-paths", action="store_true",
        help="Show file_path and ctime columns",
    )
    parser.add_argument(
        "--search", default=None,
        help="Only rows whose visible values contain this text",
    )
    parser.add_argument(
        "--sort", choices=sorted(SORT_KEYS), default="ctime",
        help="Row order (default: ctime)",
    )
    parser.add_argument(
        "--asc", action="store_true",
        help="Ascending order (default: descending)",
    )
    parser.add_argument(
        "--node-types", action="store_true",
        help="List node types with file counts and outputs, then exit",
    )
    parser.add_argument(
        "--label-keys", action="store_true",
        help="List the field keys available for export labels, then exit",
    )
    add_filter_args(parser)
    parsed = parser.parse_args(args)

    if not parsed.paths and not parsed.items:
        parser.error("Give video paths or --items")

    filter_config = filter_config_from_args(parsed)
    if parsed.items:
        rows = _load_items(parsed.items, filter_config)
    else:
        files = collect_media_files(parsed.paths)
        if not files:
            parser.error("No video files found")
        rows = [c.to_item() for c in analyze_files(files, filter_config)]

    if parsed.node_types:
        for entry in catalog_node_types([r.get("workflowNorm") for r in rows]):
            outs = ", ".join(entry["outputs"][:4])
            if len(entry["outputs"]) > 4:
                outs += ", ..."
            mark = "x" if entry["type"] in filter_config.allowed_types else " "
            print(f"[{mark}] {entry['type']}  files={entry['files']}  {outs}")
        return

    spec = parse_key_hide_spec(parsed.hide)
    headers = visible_headers(build_headers(rows), spec, hide_paths=not parsed.show_paths)

    if parsed.label_keys:
        for key in label_field_choices(headers, rows):
            print(key)
        return

    rows = sort_rows(filter_rows(rows, headers, parsed.search), parsed.sort, descending=not parsed.asc)
    print(f"{len(rows)} clips, {len(headers)} visible fields\n")
    if parsed.view == "table":
        _print_table(rows, headers)
    else:
        _print_diff(rows, headers)


if __name__ == "__main__":
    main()
