"""clipcollate.common: shared utilities.

Contains: color parsing, path variable resolution, font loading,
text fitting, and media file discovery.
"""

import re
from pathlib import Path

from PIL import ImageDraw, ImageFont


# ── Font paths ─────────────────────────────────────────────────────
# Arial-like sans for labels. DejaVu Sans ships with most Linux images.

FONT_PATHS = [
    Path.home() / ".local/share/fonts/Inter.ttc",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/dejavu/DejaVuSans.ttf"),
    Path("/Library/Fonts/Arial.ttf"),
    Path("C:/Windows/Fonts/arial.ttf"),
]

MEDIA_EXTENSIONS = {".mp4", ".webm", ".mov", ".mkv"}


# ── Color utilities ────────────────────────────────────────────────

def parse_hex_color(hex_str: str) -> tuple[int, int, int]:
    """Convert '#RRGGBB' or 'RRGGBB' string to (R, G, B) tuple."""
    hex_str = hex_str.lstrip("#")
    if len(hex_str) != 6 or not all(c in "0123456789abcdefABCDEF" for c in hex_str):
        raise ValueError(f"Invalid hex color: '#{hex_str}'")
    return (int(hex_str[0:2], 16), int(hex_str[2:4], 16), int(hex_str[4:6], 16))


def ffmpeg_color(rgb: tuple[int, int, int]) -> str:
    """Format an RGB tuple the way ffmpeg color options expect (0xRRGGBB)."""
    return "0x{:02X}{:02X}{:02X}".format(*rgb)


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


def collect_media_files(paths: list[str | Path]) -> list[Path]:
    """Expand files and directories into an ordered list of video files.

    Directories are walked recursively and their videos sorted by path.
    Explicit file arguments are kept as given, whatever their extension.
    """
    found = []
    for p in paths:
        p = Path(p)
        if p.is_dir():
            found.extend(sorted(
                f for f in p.rglob("*")
                if f.is_file() and f.suffix.lower() in MEDIA_EXTENSIONS
            ))
        else:
            found.append(p)
    return found


# ── Font loading ───────────────────────────────────────────────────

def load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load the first available font from FONT_PATHS at the given size."""
    for font_path in FONT_PATHS:
        if font_path.exists():
            try:
                return ImageFont.truetype(str(font_path), size=size, index=0)
            except (OSError, IndexError):
                continue
    # Last resort: Pillow default font.
    return ImageFont.load_default()


# ── Text rendering ─────────────────────────────────────────────────

def fit_text(
    draw: ImageDraw.ImageDraw,
    text: str,
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
    max_width: int,
) -> str:
    """Truncate text with an ellipsis until it fits within max_width pixels."""
    bbox = draw.textbbox((0, 0), text, font=font)
    while (bbox[2] - bbox[0]) > max_width and len(text) > 5:
        text = text[:-4] + "..."
        bbox = draw.textbbox((0, 0), text, font=font)
    return text


