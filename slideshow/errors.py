"""Error taxonomy for the slideshow pipeline.

Nothing here is retried: every error propagates to the pipeline, which tears
down the workspace and re-raises a single terminal failure.
"""
from __future__ import annotations

from typing import Sequence


class SlideshowError(RuntimeError):
    """Base class for all pipeline failures."""


class InputValidationError(SlideshowError, ValueError):
    """Raised for malformed requests before any external call is made."""


class SynthesisError(SlideshowError):
    """Raised when the speech-synthesis service fails."""


class RenderError(SlideshowError):
    """Raised when a single image cannot be rendered into a frame."""


class EncodeError(SlideshowError):
    """Raised when ffmpeg/ffprobe exits non-zero or returns unusable output."""

    def __init__(self, message: str, diagnostics: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.diagnostics = list(diagnostics)

    def __str__(self) -> str:
        base = super().__str__()
        if not self.diagnostics:
            return base
        return base + "\n" + "\n".join(self.diagnostics)


class PipelineCancelled(SlideshowError):
    """Raised inside a stage when the enclosing request was aborted."""
