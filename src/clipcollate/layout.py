"""Geometry planner: cell sizes and placement offsets for an export.

Sequential exports use one cell the size of the canvas. Grid exports
split the canvas into `columns` x ceil(n / columns) equal cells, rounding
cell sizes down, and place clip i at row i // columns, column i % columns.

The planner only sees an absolute canvas size. Whether a configured
resolution means "per cell" is decided by the caller (see
config.expand_canvas) before planning.
"""

import math
from dataclasses import dataclass

from .errors import InvalidModeError


VALID_MODES = {"sequential", "grid"}


@dataclass(frozen=True)
class GridLayout:
    canvas_w: int
    canvas_h: int
    cell_w: int
    cell_h: int
    columns: int
    rows: int
    offsets: tuple[tuple[int, int], ...]

    @property
    def grid_w(self) -> int:
        """Width covered by the cells (<= canvas_w)."""
        return self.cell_w * self.columns

    @property
    def grid_h(self) -> int:
        """Height covered by the cells (<= canvas_h)."""
        return self.cell_h * self.rows

    @property
    def empty_cells(self) -> int:
        return self.columns * self.rows - len(self.offsets)


def cell_offset(index: int, columns: int, cell_w: int, cell_h: int) -> tuple[int, int]:
    """Top-left pixel offset of cell `index` in a row-major grid."""
    row, col = divmod(index, columns)
    return col * cell_w, row * cell_h


def plan(
    canvas_w: int,
    canvas_h: int,
    mode: str,
    clip_count: int,
    columns: int = 1,
) -> GridLayout:
    """Compute the cell geometry for an export.

    Args:
        canvas_w: Absolute output width in pixels.
        canvas_h: Absolute output height in pixels.
        mode: "sequential" or "grid".
        clip_count: Number of clips to place.
        columns: Grid column count; values below 1 are treated as 1.

    Returns:
        GridLayout. In sequential mode every clip shares offset (0, 0).

    Raises:
        InvalidModeError: Unknown mode.
        ValueError: Non-positive canvas size or clip count.
    """
    if mode not in VALID_MODES:
        raise InvalidModeError(mode)
    if canvas_w <= 0 or canvas_h <= 0:
        raise ValueError(f"Canvas must be positive, got {canvas_w}x{canvas_h}")
    if clip_count <= 0:
        raise ValueError(f"Need at least one clip, got {clip_count}")

    if mode == "sequential":
        return GridLayout(
            canvas_w=canvas_w, canvas_h=canvas_h,
            cell_w=canvas_w, cell_h=canvas_h,
            columns=1, rows=1,
            offsets=tuple((0, 0) for _ in range(clip_count)),
        )

    columns = max(1, columns)
    rows = math.ceil(clip_count / columns)
    cell_w = canvas_w // columns
    cell_h = canvas_h // rows
    if cell_w == 0 or cell_h == 0:
        raise ValueError(
            f"Canvas {canvas_w}x{canvas_h} is too small for a "
            f"{columns}x{rows} grid"
        )
    offsets = tuple(
        cell_offset(i, columns, cell_w, cell_h) for i in range(clip_count)
    )
    return GridLayout(
        canvas_w=canvas_w, canvas_h=canvas_h,
        cell_w=cell_w, cell_h=cell_h,
        columns=columns, rows=rows,
        offsets=offsets,
    )
