"""
Narrated slideshow generation package.

Turns still images and narration text into a single MP4: speech is
synthesized and retimed, images are ordered and letterboxed onto a fixed
canvas, and FFmpeg assembles both streams.
"""

from __future__ import annotations

__all__ = [
    "PipelineRequest",
    "SlideshowPipeline",
]

from .models import PipelineRequest
from .pipeline import SlideshowPipeline
