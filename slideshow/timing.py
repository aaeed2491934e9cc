"""Per-slide timing and the ordered (frame, duration) sequence for the encoder."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

from logging_utils import get_logger

from .errors import InputValidationError
from .models import ConcatDescriptor, ConcatEntry, RenderedFrame

logger = get_logger(__name__)

DEFAULT_MIN_SLIDE_SECONDS = 0.5


@dataclass(frozen=True)
class TimingPlan:
    audio_duration: float
    frame_count: int
    per_slide: float
    floor: float

    @property
    def nominal_total(self) -> float:
        return self.per_slide * self.frame_count

    @property
    def overflow(self) -> bool:
        """True when slides would outlast the audio and trailing ones get cut."""
        return self.nominal_total > self.audio_duration + 1e-9

    @property
    def visible_frames(self) -> int:
        """Number of slides that start before the audio ends."""
        if not self.overflow:
            return self.frame_count
        return min(self.frame_count, math.ceil(self.audio_duration / self.per_slide - 1e-9))


def allocate(
    audio_duration: float,
    frame_count: int,
    floor: float = DEFAULT_MIN_SLIDE_SECONDS,
) -> TimingPlan:
    """Return ``max(floor, audio_duration / frame_count)`` per slide."""
    if frame_count < 1:
        raise InputValidationError(f"frame count must be at least 1: {frame_count}")
    if not math.isfinite(audio_duration) or audio_duration <= 0:
        raise InputValidationError(f"audio duration must be positive: {audio_duration}")
    if floor < 0 or not math.isfinite(floor):
        raise InputValidationError(f"minimum slide duration must be non-negative: {floor}")

    per_slide = max(floor, audio_duration / frame_count)
    plan = TimingPlan(
        audio_duration=audio_duration,
        frame_count=frame_count,
        per_slide=per_slide,
        floor=floor,
    )
    if plan.overflow:
        logger.warning(
            "Slides need %.2fs but narration is %.2fs; only the first %d of %d slides will be shown",
            plan.nominal_total,
            audio_duration,
            plan.visible_frames,
            frame_count,
        )
    else:
        logger.info("Per-slide duration %.3fs for %d slides", per_slide, frame_count)
    return plan


def apply_plan(frames: Sequence[RenderedFrame], plan: TimingPlan) -> List[RenderedFrame]:
    return [frame.with_duration(plan.per_slide) for frame in frames]


def build_concat_descriptor(frames: Sequence[RenderedFrame], per_slide: float) -> ConcatDescriptor:
    """Pair each frame but the last with ``per_slide``; repeat the last frame.

    The trailing duplicate keeps the concat demuxer from dropping the final
    image. For N frames this yields N-1 durations and N+1 frame entries.
    """
    if not frames:
        raise InputValidationError("cannot build a sequence without frames")

    entries: List[ConcatEntry] = []
    last_index = len(frames) - 1
    for index, frame in enumerate(frames):
        duration = per_slide if index < last_index else None
        entries.append(ConcatEntry(frame_path=frame.path, duration=duration))
    entries.append(ConcatEntry(frame_path=frames[-1].path, duration=None))
    return ConcatDescriptor(entries=tuple(entries))

