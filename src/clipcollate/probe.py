"""Clip analysis: probe dimensions and find the embedded workflow.

Generation tools write the workflow graph into container or stream tags
under a handful of names. Discovery order:

  1. Format-level tags, then each stream's tags, in order.
  2. Within one tag set (keys compared case-insensitively):
       - direct keys: comfyui_workflow, comfy_workflow, workflow,
         workflowjson, workflow_json. The value is the graph, or an
         object whose `workflow` member is the graph (often as a string).
       - hint keys: comment, description. The value is a JSON blob that
         is the graph or carries it under `workflow`.
  3. The first candidate with a `nodes` or `links` member wins. Sources
     are never merged.

Probing never raises: ffprobe failures leave dimensions at zero, and a
missing or malformed workflow leaves the field map empty.
"""

import json
import logging
import os
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .engine import PROBE_TIMEOUT_S, ffprobe_json
from .graph import FieldFilterConfig, FieldMap, load_graph_payload, resolve_filtered

logger = logging.getLogger(__name__)


DIRECT_WORKFLOW_KEYS = (
    "comfyui_workflow",
    "comfy_workflow",
    "workflow",
    "workflowjson",
    "workflow_json",
)

HINT_WORKFLOW_KEYS = ("comment", "description")


@dataclass
class ClipDescriptor:
    path: str
    name: str
    size: int = 0
    ctime: float = 0.0
    width: int = 0
    height: int = 0
    fps: float = 0.0
    duration: float = 0.0
    workflow: dict | None = None
    fields: FieldMap | None = None

    @property
    def ctime_iso(self) -> str:
        if not self.ctime:
            return ""
        return (
            datetime.fromtimestamp(self.ctime, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

    @property
    def field_values(self) -> dict:
        return dict(self.fields.values) if self.fields is not None else {}

    def refilter(self, config: FieldFilterConfig | None) -> None:
        """Recompute the field map, e.g. after the allow-list changed."""
        self.fields = resolve_filtered(self.workflow, config)

    def to_item(self) -> dict:
        """Row dict in the analyze output shape."""
        return {
            "file_path": self.path,
            "name": self.name,
            "size": self.size,
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
            "fps": round(self.fps) if self.fps else 0,
            "__file_ctime_epoch": round(self.ctime, 6),
            "__file_ctime_iso": self.ctime_iso,
            "workflowNorm": (
                json.dumps(self.workflow, separators=(",", ":"))
                if self.workflow is not None else None
            ),
            "widgetValues": self.field_values,
        }


@dataclass
class ProbeResult:
    width: int = 0
    height: int = 0
    fps: float = 0.0
    duration: float = 0.0
    tag_sources: list[dict] = field(default_factory=list)

    def dimensions(self) -> dict:
        return {"width": self.width, "height": self.height, "fps": self.fps}


# ── ffprobe parsing ───────────────────────────────────────────────


def parse_fps(stream: dict) -> float:
    """Frame rate from avg_frame_rate, else r_frame_rate ("30000/1001"), or 0."""
    for key in ("avg_frame_rate", "r_frame_rate"):
        rate = stream.get(key)
        if isinstance(rate, (int, float)) and rate > 0:
            return float(rate)
        if isinstance(rate, str) and "/" in rate:
            num, _, den = rate.partition("/")
            try:
                num, den = float(num), float(den)
            except ValueError:
                continue
            if num > 0 and den > 0:
                return num / den
    return 0.0


def _number(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def parse_probe(data: dict) -> ProbeResult:
    """Pull dimensions, rate, duration and tag sets out of ffprobe JSON."""
    streams = data.get("streams") or []
    fmt = data.get("format") or {}
    video = next((s for s in streams if s.get("codec_type") == "video"), {})

    tag_sources = []
    if isinstance(fmt.get("tags"), dict):
        tag_sources.append(fmt["tags"])
    for s in streams:
        if isinstance(s.get("tags"), dict):
            tag_sources.append(s["tags"])

    return ProbeResult(
        width=int(_number(video.get("width"))),
        height=int(_number(video.get("height"))),
        fps=parse_fps(video),
        duration=_number(fmt.get("duration")) or _number(video.get("duration")),
        tag_sources=tag_sources,
    )


def probe_media(path: str | Path, timeout: float = PROBE_TIMEOUT_S) -> ProbeResult:
    """Probe a file; all-zero result if ffprobe fails or times out."""
    try:
        return parse_probe(ffprobe_json(path, timeout=timeout))
    except (subprocess.SubprocessError, OSError, ValueError) as e:
        logger.warning("ffprobe failed for %s: %s", path, e)
        return ProbeResult()


def probe_dimensions(path: str | Path) -> dict:
    """{width, height, fps} of a clip, zeros on failure."""
    return probe_media(path).dimensions()


# ── Workflow discovery ────────────────────────────────────────────


def _is_graph(obj) -> bool:
    return isinstance(obj, dict) and ("nodes" in obj or "links" in obj)


def _unwrap(parsed):
    """The graph itself, or the graph nested under `workflow`."""
    if _is_graph(parsed):
        return parsed
    if isinstance(parsed, dict) and parsed.get("workflow"):
        nested = load_graph_payload(parsed["workflow"])
        if _is_graph(nested):
            return nested
    return None


def extract_workflow_from_tags(tags: dict) -> dict | None:
    """Find a workflow graph in one tag set, or None."""
    if not isinstance(tags, dict):
        return None
    lower = {str(k).lower(): v for k, v in tags.items()}

    for key in DIRECT_WORKFLOW_KEYS:
        if key in lower:
            graph = _unwrap(load_graph_payload(lower[key]))
            if graph is not None:
                return graph

    for key in HINT_WORKFLOW_KEYS:
        if isinstance(lower.get(key), str):
            graph = _unwrap(load_graph_payload(lower[key]))
            if graph is not None:
                return graph

    return None


def find_workflow(tag_sources: list[dict]) -> dict | None:
    """First workflow found across tag sources, in order."""
    for tags in tag_sources:
        graph = extract_workflow_from_tags(tags)
        if graph is not None:
            return graph
    return None


# ── Analysis ──────────────────────────────────────────────────────


def analyze_clip(
    path: str | Path,
    filter_config: FieldFilterConfig | None = None,
    name: str | None = None,
) -> ClipDescriptor:
    """Probe one clip and resolve its workflow fields."""
    path = Path(path)
    try:
        st = os.stat(path)
        size, ctime = st.st_size, st.st_ctime
    except OSError as e:
        logger.warning("Cannot stat %s: %s", path, e)
        size, ctime = 0, 0.0

    probed = probe_media(path)
    workflow = find_workflow(probed.tag_sources)
    if workflow is None:
        logger.debug("No workflow found in %s", path)

    clip = ClipDescriptor(
        path=str(path),
        name=name or path.name,
        size=size,
        ctime=ctime,
        width=probed.width,
        height=probed.height,
        fps=probed.fps,
        duration=probed.duration,
        workflow=workflow,
    )
    clip.refilter(filter_config)
    return clip


def analyze_files(
    paths: list[str | Path],
    filter_config: FieldFilterConfig | None = None,
) -> list[ClipDescriptor]:
    """Analyze several clips in order. Never raises on a bad clip."""
    return [analyze_clip(p, filter_config) for p in paths]
