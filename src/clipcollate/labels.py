"""Burned-in clip labels.

A label is a block of text lines drawn on a translucent black band that
spans the full cell width and sits on the bottom edge of the normalized
clip:

  ┌──────────────────────────────┐
  │                              │
  │          video cell          │
  │                              │
  ├──────────────────────────────┤  ← y = cell_h - label_h
  │ KSampler #3.widgets_values…  │
  │ KSampler #3.inputs.model: …  │
  └──────────────────────────────┘

Geometry is fixed: 8px padding above and below, 22px per line, 18px text
at x=10. Label height = 2 * LABEL_PADDING + LABEL_LINE_HEIGHT * lines.
"""

import re
from dataclasses import dataclass

import numpy as np
from PIL import Image, ImageDraw

from .common import fit_text, load_font
from .graph import display_value


# ── Constants ────────────────────────────────────────────────────

LABEL_PADDING = 8
LABEL_LINE_HEIGHT = 22
LABEL_FONT_SIZE = 18
LABEL_TEXT_X = 10
LABEL_BG_ALPHA = 140             # ~55% opacity (0.55 * 255)
LABEL_TEXT_COLOR = (255, 255, 255, 255)

# C0 control characters other than tab/newline/CR, plus DEL and C1.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


@dataclass(frozen=True)
class LabelSpec:
    lines: tuple[str, ...]
    width: int

    @property
    def height(self) -> int:
        return label_height(len(self.lines))

    def position(self, cell_h: int) -> tuple[int, int]:
        """Top-left of the label when anchored to the bottom of a cell."""
        return 0, cell_h - self.height


def label_height(line_count: int) -> int:
    return 2 * LABEL_PADDING + LABEL_LINE_HEIGHT * line_count


def sanitize_line(text: str) -> str:
    """Replace control characters and line breaks with spaces."""
    text = _CONTROL_CHARS.sub(" ", str(text))
    return text.replace("\r", " ").replace("\n", " ").replace("\t", " ")


def build_label_lines(
    field_values: dict,
    selected_keys: list[str],
    fallback_name: str,
) -> list[str]:
    """Pick the selected fields that have a value, in the caller's order.

    Each present field becomes "<key>: <value>". When nothing is selected
    or none of the selected fields has a value, the label is the clip's
    display name, with ':' replaced so it never looks like a field line.
    """
    lines = []
    for key in selected_keys or []:
        value = field_values.get(key)
        text = display_value(value)
        if text != "":
            lines.append(sanitize_line(f"{key}: {text}"))
    if not lines:
        lines.append(sanitize_line(str(fallback_name).replace(":", "_")))
    return lines


def build_label(
    field_values: dict,
    selected_keys: list[str],
    fallback_name: str,
    cell_w: int,
) -> LabelSpec:
    """Build the label spec for one clip at the given cell width."""
    return LabelSpec(
        lines=tuple(build_label_lines(field_values, selected_keys, fallback_name)),
        width=cell_w,
    )


# ── Rendering ────────────────────────────────────────────────────


def render_label_patch(spec: LabelSpec) -> np.ndarray:
    """Render a label to an RGBA array of shape (height, width, 4).

    Lines wider than the band are truncated with an ellipsis.
    """
    img = Image.new("RGBA", (spec.width, spec.height), (0, 0, 0, LABEL_BG_ALPHA))
    draw = ImageDraw.Draw(img)
    font = load_font(LABEL_FONT_SIZE)
    max_w = max(1, spec.width - 2 * LABEL_TEXT_X)
    top_gap = (LABEL_LINE_HEIGHT - LABEL_FONT_SIZE) // 2

    for i, line in enumerate(spec.lines):
        y = LABEL_PADDING + i * LABEL_LINE_HEIGHT + top_gap
        draw.text(
            (LABEL_TEXT_X, y), fit_text(draw, line, font, max_w),
            fill=LABEL_TEXT_COLOR, font=font,
        )

    return np.array(img)


def write_label_png(spec: LabelSpec, path) -> str:
    """Render a label and save it as a PNG for ffmpeg to overlay."""
    Image.fromarray(render_label_patch(spec)).save(str(path))
    return str(path)
