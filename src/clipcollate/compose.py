"""Export pipeline: normalize clips, then concatenate or tile them.

An export job moves through these states:

  RECEIVED -> NORMALIZING(i) -> [OVERLAYING(i)] -> COMPOSING -> FINALIZED
                                                     any -> FAILED | CANCELLED

Per-clip normalization (fit or crop to the cell, force fps, drop audio,
strip metadata, optionally burn in the label) runs on a bounded thread
pool; each clip is one ffmpeg process. Composition waits for every clip
before it starts.

Everything intermediate (normalized clips, label PNGs, the concat list,
the composed file before it is moved into place) lives in one temporary
directory that is removed on success, failure and cancellation. Any
failed clip aborts the whole job and nothing is written to the output
path.
"""

import enum
import logging
import os
import shutil
import subprocess
import tempfile
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

from .config import ExportConfig, effective_canvas, pad_workflows
from .engine import FfmpegEngine, TranscodingEngine, stderr_tail
from .errors import CompositionError, ExportCancelled, NormalizationError
from .labels import LabelSpec, build_label, write_label_png
from .layout import GridLayout, plan

logger = logging.getLogger(__name__)


class JobState(enum.Enum):
    RECEIVED = "received"
    NORMALIZING = "normalizing"
    OVERLAYING = "overlaying"
    COMPOSING = "composing"
    FINALIZED = "finalized"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = {JobState.FINALIZED, JobState.FAILED, JobState.CANCELLED}


@dataclass(frozen=True)
class PlannedClip:
    index: int
    path: str
    name: str
    label: LabelSpec | None = None


@dataclass(frozen=True)
class CompositionPlan:
    config: ExportConfig
    layout: GridLayout
    clips: tuple[PlannedClip, ...]


def _clip_source(clip) -> tuple[str, str, dict]:
    """(path, display name, field values) for a path or ClipDescriptor."""
    if hasattr(clip, "field_values"):
        return str(clip.path), clip.name, clip.field_values
    return str(clip), Path(clip).name, {}


def build_plan(
    clips: list,
    config: ExportConfig,
    workflows: list[dict] | None = None,
    per_cell: bool = False,
) -> CompositionPlan:
    """Plan an export: geometry for every clip plus its label, if any.

    Args:
        clips: Ordered clip paths or ClipDescriptors.
        config: Export settings.
        workflows: Optional per-clip field maps used for labels. When
            given they take precedence over a descriptor's own fields;
            shorter lists are padded with {}.
        per_cell: Treat config.resolution as one cell's size in grid mode.

    Raises:
        ValueError: No clips.
        InvalidModeError: Unknown mode.
    """
    if not clips:
        raise ValueError("No clips to export")

    canvas_w, canvas_h = effective_canvas(config, len(clips), per_cell=per_cell)
    layout = plan(canvas_w, canvas_h, config.mode, len(clips), config.columns)
    overrides = pad_workflows(workflows or [], len(clips))

    planned = []
    for i, clip in enumerate(clips):
        path, name, values = _clip_source(clip)
        if workflows is not None:
            values = overrides[i]
        label = None
        if config.labels:
            label = build_label(values, list(config.label_fields), name, layout.cell_w)
        planned.append(PlannedClip(index=i, path=path, name=name, label=label))

    return CompositionPlan(config=config, layout=layout, clips=tuple(planned))


class ExportJob:
    """One export run. Not reusable: call run() once."""

    def __init__(
        self,
        plan: CompositionPlan,
        engine: TranscodingEngine | None = None,
        workers: int | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self.plan = plan
        self.engine = engine or FfmpegEngine()
        self.workers = max(1, min(workers or os.cpu_count() or 1, len(plan.clips)))
        self.cancel_event = cancel_event or threading.Event()
        self._stop = threading.Event()
        self.state = JobState.RECEIVED
        self.history: list[tuple[JobState, int | None]] = [(JobState.RECEIVED, None)]
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Stop issuing per-clip work. The running job raises ExportCancelled."""
        self._stop.set()

    def _transition(self, state: JobState, index: int | None = None) -> None:
        with self._lock:
            self.state = state
            self.history.append((state, index))
        if index is None:
            logger.info("export %s", state.value)
        else:
            logger.info("export %s clip %d", state.value, index)

    def _check_cancelled(self) -> None:
        if self._stop.is_set() or self.cancel_event.is_set():
            raise ExportCancelled("Export cancelled")

    # ── Per-clip work ────────────────────────────────────────────

    def _normalize_one(self, clip: PlannedClip, work_dir: Path) -> str:
        self._check_cancelled()
        config = self.plan.config
        layout = self.plan.layout
        out_path = work_dir / f"{clip.index:03d}.mp4"

        self._transition(JobState.NORMALIZING, clip.index)
        label_png = None
        label_h = 0
        try:
            if clip.label is not None:
                label_png = write_label_png(clip.label, work_dir / f"label-{clip.index:03d}.png")
                label_h = clip.label.height
                self._transition(JobState.OVERLAYING, clip.index)
            self.engine.normalize(
                clip.path, str(out_path),
                layout.cell_w, layout.cell_h, config.fps, config.letterbox,
                label_png=label_png, label_h=label_h,
                background=config.background,
            )
        except subprocess.CalledProcessError as e:
            raise NormalizationError(clip.index, clip.path, stderr_tail(e)) from e
        except OSError as e:
            raise NormalizationError(clip.index, clip.path, str(e)) from e
        return str(out_path)

    def _normalize_all(self, work_dir: Path) -> list[str]:
        clips = self.plan.clips
        outputs: list[str | None] = [None] * len(clips)

        if self.workers == 1:
            for clip in clips:
                outputs[clip.index] = self._normalize_one(clip, work_dir)
            return outputs

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = {
                pool.submit(self._normalize_one, clip, work_dir): clip.index
                for clip in clips
            }
            try:
                for future in as_completed(futures):
                    outputs[futures[future]] = future.result()
            except BaseException:
                # Stop queued clips; running ffmpeg processes finish before
                # the pool exits, so the temp dir is idle when it's removed.
                self._stop.set()
                for f in futures:
                    f.cancel()
                raise
        return outputs

    # ── Composition ──────────────────────────────────────────────

    def _compose(self, normalized: list[str], out_path: Path) -> None:
        config = self.plan.config
        try:
            if config.mode == "sequential":
                self.engine.concat(
                    normalized, str(out_path), config.fps, background=config.background,
                )
            else:
                self.engine.tile(
                    normalized, str(out_path), self.plan.layout, config.fps,
                    background=config.background,
                )
        except subprocess.CalledProcessError as e:
            raise CompositionError(
                f"Composing {len(normalized)} clips ({config.mode}) failed\n{stderr_tail(e)}"
            ) from e
        except OSError as e:
            raise CompositionError(f"Composing {len(normalized)} clips failed: {e}") from e

    def run(self, output_path: str | Path) -> Path:
        """Run the job and move the finished video to output_path.

        Raises:
            NormalizationError, CompositionError: ffmpeg failed.
            ExportCancelled: cancel() was called before composition.
        """
        if self.state is not JobState.RECEIVED:
            raise RuntimeError(f"Export job already {self.state.value}")

        output_path = Path(output_path)
        t0 = time.monotonic()
        try:
            with tempfile.TemporaryDirectory(prefix="clipcollate-") as tmp:
                work_dir = Path(tmp)
                normalized = self._normalize_all(work_dir)
                self._check_cancelled()

                self._transition(JobState.COMPOSING)
                composed = work_dir / "export.mp4"
                self._compose(normalized, composed)

                output_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(composed), str(output_path))
        except ExportCancelled:
            self._transition(JobState.CANCELLED)
            raise
        except BaseException:
            self._transition(JobState.FAILED)
            raise

        self._transition(JobState.FINALIZED)
        logger.info(
            "export wrote %s (%d clips, %.1fs)",
            output_path, len(self.plan.clips), time.monotonic() - t0,
        )
        return output_path


def export(
    clips: list,
    config: ExportConfig,
    output_path: str | Path,
    workflows: list[dict] | None = None,
    per_cell: bool = False,
    engine: TranscodingEngine | None = None,
    workers: int | None = None,
    cancel_event: threading.Event | None = None,
) -> Path:
    """Plan and run an export in one call. See build_plan and ExportJob."""
    composition = build_plan(clips, config, workflows=workflows, per_cell=per_cell)
    job = ExportJob(composition, engine=engine, workers=workers, cancel_event=cancel_event)
    return job.run(output_path)
