"""ffmpeg transcoding engine: fit, label, concatenate, tile.

All pixel work happens inside ffmpeg subprocesses. This module builds
filter graphs and argument lists and runs them; the export job turns
failed runs into clipcollate errors.

Filter graphs:
  - letterbox:  scale=W:H:force_original_aspect_ratio=decrease,
                format=yuv444p,pad=W:H:(ow-iw)/2:(oh-ih)/2
  - crop:       scale=W:H:force_original_aspect_ratio=increase,
                format=yuv444p,crop=W:H
  - label:      [fitted][1:v]overlay=0:H-label_h:format=yuv444
  - grid:       xstack=inputs=N:layout=x0_y0|x1_y1|...:fill=black,
                pad=grid_w:grid_h:0:0,scale=canvas_w:canvas_h,<even pad>

Grid cells can have odd sizes (1000px over 3 columns is 333px), which
yuv420p cannot hold: pad and crop round odd chroma-subsampled sizes
down. Normalized cells are therefore encoded as yuv444p. Only the final
output is yuv420p, and it is padded on the right and bottom to even
dimensions first, so an odd canvas gains at most one background pixel
per axis.

Every final output is H.264/yuv420p with no audio, and every container
and stream metadata tag is cleared so source workflows don't leak into
exported files.
"""

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Protocol

import imageio_ffmpeg

from .common import ffmpeg_color
from .layout import GridLayout

logger = logging.getLogger(__name__)

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()
# imageio-ffmpeg does not bundle ffprobe; use the one on PATH.
_FFPROBE = shutil.which("ffprobe") or "ffprobe"

STRIPPED_TAGS = ("title", "comment", "description", "creation_time", "handler_name", "encoder")

# Per-cell temporaries keep full chroma so odd cell sizes survive.
CELL_PIX_FMT = "yuv444p"
OUTPUT_PIX_FMT = "yuv420p"

PROBE_TIMEOUT_S = 30


class TranscodingEngine(Protocol):
    def normalize(
        self, source: str, output: str, cell_w: int, cell_h: int, fps: int,
        letterbox: bool, label_png: str | None = None, label_h: int = 0,
        background: tuple[int, int, int] = (0, 0, 0),
    ) -> None:
        ...

    def concat(
        self, inputs: list[str], output: str, fps: int,
        background: tuple[int, int, int] = (0, 0, 0),
    ) -> None:
        ...

    def tile(
        self, inputs: list[str], output: str, layout: GridLayout, fps: int,
        background: tuple[int, int, int] = (0, 0, 0),
    ) -> None:
        ...


# ── Argument builders ─────────────────────────────────────────────


def encode_args(fps: int, pix_fmt: str = OUTPUT_PIX_FMT) -> list[str]:
    """Fixed H.264 encode settings shared by every output."""
    return [
        "-c:v", "libx264",
        "-r", str(fps),
        "-pix_fmt", pix_fmt,
        "-preset", "veryfast",
        "-crf", "20",
        "-an",
    ]


def strip_metadata_args() -> list[str]:
    """Drop global metadata and chapters, then blank the well-known tags."""
    args = ["-map_metadata", "-1", "-map_chapters", "-1"]
    for tag in STRIPPED_TAGS:
        args += ["-metadata", f"{tag}="]
    for tag in STRIPPED_TAGS:
        args += ["-metadata:s:v:0", f"{tag}="]
    return args


def fit_filter(
    cell_w: int, cell_h: int, letterbox: bool,
    background: tuple[int, int, int] = (0, 0, 0),
) -> str:
    """Scale into a W x H cell: pad to fit (letterbox) or crop to fill."""
    if letterbox:
        return (
            f"scale=w={cell_w}:h={cell_h}:force_original_aspect_ratio=decrease,"
            f"format={CELL_PIX_FMT},"
            f"pad={cell_w}:{cell_h}:(ow-iw)/2:(oh-ih)/2:color={ffmpeg_color(background)}"
        )
    return (
        f"scale=w={cell_w}:h={cell_h}:force_original_aspect_ratio=increase,"
        f"format={CELL_PIX_FMT},"
        f"crop={cell_w}:{cell_h}"
    )


def even_pad_filter(background: tuple[int, int, int] = (0, 0, 0)) -> str:
    """Grow odd frame sizes by one pixel so yuv420p can encode them."""
    return f"pad=ceil(iw/2)*2:ceil(ih/2)*2:0:0:color={ffmpeg_color(background)}"


def label_filter_graph(
    cell_w: int, cell_h: int, letterbox: bool, label_h: int,
    background: tuple[int, int, int] = (0, 0, 0),
) -> str:
    """Fit input 0 into the cell, then overlay input 1 along the bottom."""
    fit = fit_filter(cell_w, cell_h, letterbox, background)
    return (
        f"[0:v]{fit}[fitted];"
        f"[fitted][1:v]overlay=x=0:y={cell_h - label_h}:format=yuv444[outv]"
    )


def grid_filter_graph(
    layout: GridLayout, n_inputs: int,
    background: tuple[int, int, int] = (0, 0, 0),
) -> str:
    """Tile N cell-sized inputs, fill empty cells, scale to the canvas.

    xstack needs at least two inputs, so a single clip is padded onto
    the grid directly. The pad after xstack fills any cells of a short
    first row that xstack's bounding box would otherwise drop.
    """
    color = ffmpeg_color(background)
    pad = f"pad={layout.grid_w}:{layout.grid_h}:0:0:color={color}"
    scale = f"scale={layout.canvas_w}:{layout.canvas_h}"
    even = even_pad_filter(background)
    if n_inputs == 1:
        return f"[0:v]{pad},{scale},{even}[outv]"

    inputs = "".join(f"[{i}:v]" for i in range(n_inputs))
    positions = "|".join(f"{x}_{y}" for x, y in layout.offsets[:n_inputs])
    return (
        f"{inputs}xstack=inputs={n_inputs}:layout={positions}:fill={color},"
        f"{pad},{scale},{even}[outv]"
    )


def concat_list(inputs: list[str]) -> str:
    """Body of an ffmpeg concat-demuxer list file."""
    lines = []
    for p in inputs:
        escaped = str(Path(p).resolve()).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


# ── Running ffmpeg ────────────────────────────────────────────────


def stderr_tail(err: subprocess.CalledProcessError, lines: int = 12) -> str:
    """Last few lines of a failed ffmpeg run's stderr."""
    stderr = err.stderr
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    return "\n".join((stderr or "").strip().splitlines()[-lines:])


def run_ffmpeg(args: list[str]) -> None:
    """Run the bundled ffmpeg, overwriting outputs. Raises CalledProcessError."""
    cmd = [_FFMPEG, "-y", "-hide_banner", *args]
    logger.debug("ffmpeg %s", " ".join(args))
    subprocess.run(cmd, check=True, capture_output=True)


class FfmpegEngine:
    """Transcoding engine backed by the imageio-ffmpeg binary."""

    def normalize(
        self, source, output, cell_w, cell_h, fps, letterbox,
        label_png=None, label_h=0, background=(0, 0, 0),
    ):
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        if label_png:
            graph = label_filter_graph(cell_w, cell_h, letterbox, label_h, background)
            args = [
                "-i", str(source), "-i", str(label_png),
                "-filter_complex", graph, "-map", "[outv]",
            ]
        else:
            args = [
                "-i", str(source),
                "-vf", fit_filter(cell_w, cell_h, letterbox, background),
            ]
        run_ffmpeg([
            *args, *encode_args(fps, CELL_PIX_FMT), *strip_metadata_args(), str(output),
        ])

    def concat(self, inputs, output, fps, background=(0, 0, 0)):
        list_path = Path(output).with_suffix(".concat.txt")
        list_path.write_text(concat_list(inputs))
        try:
            run_ffmpeg([
                "-f", "concat", "-safe", "0", "-i", str(list_path),
                "-vf", even_pad_filter(background),
                *encode_args(fps), *strip_metadata_args(), str(output),
            ])
        finally:
            list_path.unlink(missing_ok=True)

    def tile(self, inputs, output, layout, fps, background=(0, 0, 0)):
        args = []
        for p in inputs:
            args += ["-i", str(p)]
        graph = grid_filter_graph(layout, len(inputs), background)
        run_ffmpeg([
            *args, "-filter_complex", graph, "-map", "[outv]",
            *encode_args(fps), *strip_metadata_args(), str(output),
        ])


# ── Probing ───────────────────────────────────────────────────────


def ffprobe_json(path: str | Path, timeout: float = PROBE_TIMEOUT_S) -> dict:
    """Return ffprobe's format + streams JSON for a media file.

    Raises:
        subprocess.CalledProcessError, subprocess.TimeoutExpired,
        OSError, ValueError: probing failed.
    """
    result = subprocess.run(
        [_FFPROBE, "-v", "quiet", "-print_format", "json",
         "-show_format", "-show_streams", str(path)],
        capture_output=True, text=True, check=True, timeout=timeout,
    )
    return json.loads(result.stdout)
