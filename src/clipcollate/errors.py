"""Exception types raised by the export pipeline.

Probe and graph-parse problems are not represented here: they degrade
to zeroed fields and empty maps instead of raising.
"""


class ClipCollateError(Exception):
    """Base class for all clipcollate errors."""


class InvalidModeError(ClipCollateError, ValueError):
    """Unknown tiling mode. Raised before any work starts."""

    def __init__(self, mode):
        self.mode = mode
        super().__init__(
            f"Invalid mode '{mode}'. Valid: ['grid', 'sequential']"
        )


class NormalizationError(ClipCollateError):
    """ffmpeg failed while fitting or labelling one clip."""

    def __init__(self, index: int, path: str, detail: str = ""):
        self.index = index
        self.path = path
        self.detail = detail
        msg = f"Clip {index} ({path}): normalization failed"
        if detail:
            msg += f"\n{detail}"
        super().__init__(msg)


class CompositionError(ClipCollateError):
    """ffmpeg failed while concatenating or tiling normalized clips."""


class ExportCancelled(ClipCollateError):
    """The export job was cancelled before it finished."""
