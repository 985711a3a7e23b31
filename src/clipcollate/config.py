"""Export configuration: raw field coercion and YAML manifests.

Two ways to describe an export:

  1. Raw string fields, as a form post or CLI flags would carry them:
       mode, gridColumns, showBlackBars, showFilename, resolution, fps,
       labelFields (JSON array). See ExportConfig.from_fields().

  2. A YAML export manifest:
       video:
         mode: grid                 # or "sequential"
         grid_columns: 2
         resolution: [1920, 1080]   # or "1920x1080"
         per_cell_resolution: false # true: resolution is one cell's size
         fps: 30
         letterbox: true            # false: crop to fill
         background: "#000000"
         labels: true
         label_fields: ["KSampler #3.widgets_values[0]"]
       paths:
         clips: "/data/renders"
       clips:
         - path: "${clips}/a.mp4"
           workflow: "${clips}/a.workflow.json"   # optional {widgetValues: {...}}

Unparseable numbers never fail a job: they fall back to the defaults
below with a warning. An unknown mode does fail, before any work starts.

A field-filter file is a separate small YAML document:
  enabled: true
  allowed_types: [KSampler, LoraLoaderModelOnly]
"""

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml

from .common import parse_hex_color, resolve_path_vars
from .errors import InvalidModeError
from .graph import DEFAULT_ALLOWED_NODE_TYPES, FieldFilterConfig
from .layout import VALID_MODES

logger = logging.getLogger(__name__)


DEFAULT_MODE = "sequential"
DEFAULT_GRID_COLUMNS = 2
DEFAULT_FPS = 30
DEFAULT_RESOLUTION = (1920, 1080)
DEFAULT_BACKGROUND = (0, 0, 0)


@dataclass(frozen=True)
class ExportConfig:
    mode: str = DEFAULT_MODE
    grid_columns: int = DEFAULT_GRID_COLUMNS
    resolution: tuple[int, int] = DEFAULT_RESOLUTION
    fps: int = DEFAULT_FPS
    letterbox: bool = True
    labels: bool = False
    label_fields: tuple[str, ...] = ()
    background: tuple[int, int, int] = DEFAULT_BACKGROUND

    def __post_init__(self):
        if self.mode not in VALID_MODES:
            raise InvalidModeError(self.mode)

    @property
    def columns(self) -> int:
        """Effective column count: 1 for sequential, >= 1 for grid."""
        return max(1, self.grid_columns) if self.mode == "grid" else 1

    @classmethod
    def from_fields(cls, fields: dict) -> "ExportConfig":
        """Build a config from raw string fields (form-post names).

        Missing or unparseable numbers fall back to defaults. Booleans
        are true only for the string "true" (or a real True).
        """
        mode = str(fields.get("mode") or DEFAULT_MODE)
        return cls(
            mode=mode,
            grid_columns=coerce_int(fields.get("gridColumns"), DEFAULT_GRID_COLUMNS, "gridColumns"),
            resolution=parse_resolution(fields.get("resolution")),
            fps=coerce_int(fields.get("fps"), DEFAULT_FPS, "fps"),
            letterbox=coerce_bool(fields.get("showBlackBars")),
            labels=coerce_bool(fields.get("showFilename")),
            label_fields=tuple(parse_label_fields(fields.get("labelFields"))),
        )


# ── Coercion helpers ──────────────────────────────────────────────


def coerce_int(value, default: int, name: str = "value") -> int:
    """Parse a positive int, or return default (with a warning if junk)."""
    if value is None or value == "":
        return default
    try:
        result = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        logger.warning("Unparseable %s %r, using %s", name, value, default)
        return default
    if result <= 0:
        logger.warning("Non-positive %s %r, using %s", name, value, default)
        return default
    return result


def coerce_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def parse_resolution(value) -> tuple[int, int]:
    """Parse "WxH" (or a [W, H] pair) into a tuple; default if malformed."""
    if value is None or value == "":
        return DEFAULT_RESOLUTION
    try:
        if isinstance(value, (list, tuple)):
            w, h = value
        else:
            w, h = str(value).lower().split("x")
        w, h = int(w), int(h)
    except (TypeError, ValueError, OverflowError):
        logger.warning("Unparseable resolution %r, using %dx%d", value, *DEFAULT_RESOLUTION)
        return DEFAULT_RESOLUTION
    if w <= 0 or h <= 0:
        logger.warning("Non-positive resolution %r, using %dx%d", value, *DEFAULT_RESOLUTION)
        return DEFAULT_RESOLUTION
    return w, h


def parse_label_fields(value) -> list[str]:
    """Parse a JSON array of field keys. Anything else yields []."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    try:
        parsed = json.loads(str(value))
    except ValueError:
        logger.warning("labelFields is not valid JSON, ignoring")
        return []
    if not isinstance(parsed, list):
        return []
    return [str(v) for v in parsed]


def expand_canvas(
    resolution: tuple[int, int], columns: int, clip_count: int,
) -> tuple[int, int]:
    """Scale a per-cell resolution up to the full grid canvas."""
    columns = max(1, columns)
    rows = max(1, -(-clip_count // columns))
    w, h = resolution
    return w * columns, h * rows


def effective_canvas(
    config: ExportConfig, clip_count: int, per_cell: bool = False,
) -> tuple[int, int]:
    """Absolute canvas for the planner, applying the per-cell policy."""
    if per_cell and config.mode == "grid":
        return expand_canvas(config.resolution, config.columns, clip_count)
    return config.resolution


# ── Workflow side files ───────────────────────────────────────────


def load_workflow_values(path: str | Path | None) -> dict:
    """Read a {widgetValues: {...}} JSON file; {} if missing or malformed."""
    if not path:
        return {}
    try:
        with open(path) as f:
            obj = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Could not read workflow file %s: %s", path, e)
        return {}
    values = obj.get("widgetValues") if isinstance(obj, dict) else None
    return values if isinstance(values, dict) else {}


def pad_workflows(workflows: list[dict], clip_count: int) -> list[dict]:
    """Pad the per-clip workflow list with {} up to clip_count."""
    padded = list(workflows[:clip_count])
    while len(padded) < clip_count:
        padded.append({})
    return padded


# ── Export manifest ───────────────────────────────────────────────


@dataclass
class ExportManifest:
    config: ExportConfig
    clips: list[str]
    workflows: list[dict] = field(default_factory=list)
    per_cell_resolution: bool = False


def load_export_manifest(manifest_path: str | Path) -> ExportManifest:
    """Load, validate, and normalize a YAML export manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Coerce video settings (numbers fall back to defaults).
      3. Resolve ${path} variables in clip and workflow paths.
      4. Read per-clip workflow files, padding missing ones with {}.

    Raises:
        ValueError: Missing clips, malformed clip entries, bad colors.
        InvalidModeError: Unknown mode.
        FileNotFoundError: Missing manifest file.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f) or {}

    video = raw.get("video") or {}
    if not isinstance(video, dict):
        raise ValueError("Export manifest: 'video' must be a mapping")

    background = video.get("background")
    config = ExportConfig(
        mode=str(video.get("mode") or DEFAULT_MODE),
        grid_columns=coerce_int(video.get("grid_columns"), DEFAULT_GRID_COLUMNS, "grid_columns"),
        resolution=parse_resolution(video.get("resolution")),
        fps=coerce_int(video.get("fps"), DEFAULT_FPS, "fps"),
        letterbox=coerce_bool(video.get("letterbox", True)),
        labels=coerce_bool(video.get("labels", False)),
        label_fields=tuple(parse_label_fields(video.get("label_fields"))),
        background=parse_hex_color(background) if background else DEFAULT_BACKGROUND,
    )

    paths = raw.get("paths", {})
    entries = raw.get("clips")
    if not isinstance(entries, list) or not entries:
        raise ValueError("Export manifest: 'clips' must be a non-empty list")

    clips = []
    workflows = []
    for i, entry in enumerate(entries):
        if isinstance(entry, str):
            entry = {"path": entry}
        if not isinstance(entry, dict) or "path" not in entry:
            raise ValueError(f"Export manifest: clip {i} missing required field 'path'")
        clips.append(resolve_path_vars(str(entry["path"]), paths))
        wf = entry.get("workflow")
        if isinstance(wf, dict):
            workflows.append(wf.get("widgetValues", wf))
        elif wf:
            workflows.append(load_workflow_values(resolve_path_vars(str(wf), paths)))
        else:
            workflows.append({})

    return ExportManifest(
        config=config,
        clips=clips,
        workflows=pad_workflows(workflows, len(clips)),
        per_cell_resolution=coerce_bool(video.get("per_cell_resolution", False)),
    )


def validate_clip_paths(clips: list[str]) -> None:
    """Check that all clip paths exist on disk.

    Raises:
        FileNotFoundError: Lists all missing files.
    """
    missing = [c for c in clips if not Path(c).exists()]
    if missing:
        msg = f"Missing {len(missing)} clip file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise FileNotFoundError(msg)


# ── Field filter config ───────────────────────────────────────────


def load_filter_config(path: str | Path | None = None, enabled: bool | None = None) -> FieldFilterConfig:
    """Load an allow-list YAML file, or the built-in defaults when path is None.

    `enabled` overrides whatever the file says.
    """
    config = FieldFilterConfig()
    if path is not None:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if isinstance(raw, list):
            raw = {"allowed_types": raw}
        if not isinstance(raw, dict):
            raise ValueError(f"Filter config {path}: expected a mapping or a list")
        types = raw.get("allowed_types", list(DEFAULT_ALLOWED_NODE_TYPES))
        if not isinstance(types, list):
            raise ValueError(f"Filter config {path}: 'allowed_types' must be a list")
        config = FieldFilterConfig(
            allowed_types=frozenset(str(t) for t in types),
            enabled=bool(raw.get("enabled", True)),
        )
    if enabled is not None:
        config = replace(config, enabled=enabled)
    return config


def save_filter_config(config: FieldFilterConfig, path: str | Path) -> None:
    """Persist an allow-list in the format load_filter_config() reads."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(
            {"enabled": config.enabled, "allowed_types": sorted(config.allowed_types)},
            f, sort_keys=False,
        )
