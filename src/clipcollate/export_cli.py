"""CLI for exporting clips as one video.

Clips are either listed in a YAML export manifest or given directly.
Direct flags go through the same coercion as form fields, so junk
numbers fall back to defaults (2 columns, 30 fps, 1920x1080).

Usage:
    # From a manifest
    clipcollate export --manifest export.yaml --output final.mp4

    # Validate a manifest only
    clipcollate export --manifest export.yaml --validate

    # Sequential, cropped to fill
    clipcollate export a.mp4 b.mp4 --output seq.mp4

    # 2-column grid, letterboxed, each cell 960x540, labelled with fields
    clipcollate export renders/ --mode grid --grid-columns 2 \
        --resolution 960x540 --per-cell --black-bars \
        --labels --label-field "KSampler #3.widgets_values[0]" \
        --output grid.mp4
"""

import argparse
import time

from .analyze_cli import add_filter_args, filter_config_from_args
from .common import collect_media_files
from .compose import ExportJob, build_plan
from .config import (
    ExportConfig,
    load_export_manifest,
    load_workflow_values,
    validate_clip_paths,
)
from .errors import ClipCollateError, InvalidModeError
from .probe import analyze_files


def _config_from_flags(parsed) -> ExportConfig:
    return ExportConfig.from_fields({
        "mode": parsed.mode,
        "gridColumns": parsed.grid_columns,
        "resolution": parsed.resolution,
        "fps": parsed.fps,
        "showBlackBars": "true" if parsed.black_bars else "false",
        "showFilename": "true" if parsed.labels else "false",
        "labelFields": parsed.label_field,
    })


def _describe(composition) -> None:
    config = composition.config
    layout = composition.layout
    print(
        f"Mode: {config.mode}, {len(composition.clips)} clips, "
        f"{'letterbox' if config.letterbox else 'crop'}, {config.fps}fps"
    )
    print(f"Canvas: {layout.canvas_w}x{layout.canvas_h}")
    if config.mode == "grid":
        print(
            f"Grid: {layout.columns}x{layout.rows} cells of "
            f"{layout.cell_w}x{layout.cell_h} ({layout.empty_cells} empty)"
        )
    for clip, (x, y) in zip(composition.clips, layout.offsets):
        where = f" @ {x},{y}" if config.mode == "grid" else ""
        label = f"  [{len(clip.label.lines)} label lines]" if clip.label else ""
        print(f"  [{clip.index}] {clip.path}{where}{label}")


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Render clips end-to-end or tiled into a grid.",
    )
    parser.add_argument(
        "clips", nargs="*",
        help="Video files or directories, in timeline order",
    )
    parser.add_argument(
        "--manifest", default=None,
        help="YAML export manifest (replaces clip args and mode flags)",
    )
    parser.add_argument(
        "--output",
        help="Output mp4 path (required unless --validate)",
    )
    parser.add_argument(
        "--mode", default="sequential",
        help="sequential (default) or grid",
    )
    parser.add_argument("--grid-columns", default="2", help="Grid columns (default: 2)")
    parser.add_argument("--resolution", default="1920x1080", help="WxH (default: 1920x1080)")
    parser.add_argument(
        "--per-cell", action="store_true",
        help="In grid mode, --resolution is one cell; the canvas grows with the grid",
    )
    parser.add_argument("--fps", default="30", help="Output frame rate (default: 30)")
    parser.add_argument(
        "--black-bars", action="store_true",
        help="Letterbox to keep the full frame (default: crop to fill)",
    )
    parser.add_argument(
        "--labels", action="store_true",
        help="Burn a label into the bottom of each clip",
    )
    parser.add_argument(
        "--label-field", action="append", default=[],
        help="Field key to show in labels (repeatable; default: file name)",
    )
    parser.add_argument(
        "--workflows", nargs="*", default=None,
        help="Per-clip {widgetValues: {...}} JSON files, in clip order",
    )
    parser.add_argument(
        "--workers", type=int, default=None,
        help="Parallel ffmpeg processes for normalization (default: CPU count)",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Plan only: check paths and print the layout, don't render",
    )
    add_filter_args(parser)
    parsed = parser.parse_args(args)

    if parsed.manifest and parsed.clips:
        parser.error("Give either --manifest or clip paths, not both")

    if parsed.manifest:
        manifest = load_export_manifest(parsed.manifest)
        config = manifest.config
        clips = manifest.clips
        workflows = manifest.workflows
        per_cell = manifest.per_cell_resolution
        validate_clip_paths(clips)
    else:
        if not parsed.clips:
            parser.error("Give clip paths or --manifest")
        try:
            config = _config_from_flags(parsed)
        except InvalidModeError as e:
            parser.error(str(e))
        files = collect_media_files(parsed.clips)
        validate_clip_paths([str(f) for f in files])
        per_cell = parsed.per_cell
        if parsed.workflows is not None:
            clips = [str(f) for f in files]
            workflows = [load_workflow_values(p) for p in parsed.workflows]
        elif config.labels and config.label_fields:
            # Labels need field values: read them from the clips themselves.
            clips = analyze_files(files, filter_config_from_args(parsed))
            workflows = None
        else:
            clips = [str(f) for f in files]
            workflows = None

    composition = build_plan(clips, config, workflows=workflows, per_cell=per_cell)

    if parsed.validate:
        _describe(composition)
        print("All paths verified.")
        return

    if not parsed.output:
        parser.error("--output is required (unless using --validate)")

    _describe(composition)
    print(f"\nWriting to: {parsed.output}")
    job = ExportJob(composition, workers=parsed.workers)
    t0 = time.monotonic()
    try:
        job.run(parsed.output)
    except ClipCollateError as e:
        raise SystemExit(f"Export failed: {e}")
    print(f"\nDone: {parsed.output} ({time.monotonic() - t0:.1f}s)")


if __name__ == "__main__":
    main()
