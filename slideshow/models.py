from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .errors import InputValidationError

# Caller-assigned order prefix: >=2 digits followed by "-", "_" or a space ("0003-beach.jpg").
# A dot is not a separator so "2019.jpg" keeps its number as part of the name.
PREFIX_PATTERN = re.compile(r"^(\d{2,})[-_ ]")

SUPPORTED_VOICES: Tuple[str, ...] = (
    "alloy",
    "ash",
    "ballad",
    "coral",
    "echo",
    "fable",
    "nova",
    "onyx",
    "sage",
    "shimmer",
    "verse",
)


@dataclass(frozen=True)
class ImageReference:
    original_path: Path
    basename: str
    prefix_index: Optional[int] = None

    @classmethod
    def from_path(cls, path: Path | str) -> "ImageReference":
        original = Path(path)
        basename = original.name
        match = PREFIX_PATTERN.match(basename)
        prefix_index = int(match.group(1)) if match else None
        return cls(original_path=original, basename=basename, prefix_index=prefix_index)

    @property
    def name_without_prefix(self) -> str:
        match = PREFIX_PATTERN.match(self.basename)
        return self.basename[match.end():] if match else self.basename


@dataclass(frozen=True)
class AudioSegment:
    path: Path
    sample_rate: int
    channels: int
    duration_seconds: float


@dataclass(frozen=True)
class RenderedFrame:
    path: Path
    width: int
    height: int
    display_duration: Optional[float] = None

    def with_duration(self, seconds: float) -> "RenderedFrame":
        return replace(self, display_duration=seconds)


@dataclass(frozen=True)
class ConcatEntry:
    frame_path: Path
    duration: Optional[float] = None


@dataclass(frozen=True)
class ConcatDescriptor:
    entries: Tuple[ConcatEntry, ...] = field(default_factory=tuple)

    @property
    def frame_count(self) -> int:
        return len(self.entries)

    @property
    def duration_count(self) -> int:
        return sum(1 for entry in self.entries if entry.duration is not None)


@dataclass(frozen=True)
class PipelineRequest:
    """Validated, immutable description of one slideshow run."""

    narration_text: str
    images: Tuple[str, ...]
    output_target: Path
    voice: str = "shimmer"
    width: int = 1600
    height: int = 1200
    background_music: Optional[str] = None
    music_volume: float = 0.2
    speech_rate: float = 1.0
    locale: str = "en"
    model: Optional[str] = None

    @classmethod
    def create(
        cls,
        *,
        narration_text: str,
        images: Sequence[Path | str],
        output_target: Path | str,
        voice: str = "shimmer",
        width: int = 1600,
        height: int = 1200,
        background_music: Optional[Path | str] = None,
        music_volume: float = 0.2,
        speech_rate: float = 1.0,
        locale: str = "en",
        model: Optional[str] = None,
        max_images: Optional[int] = None,
    ) -> "PipelineRequest":
        text = (narration_text or "").strip()
        if not text:
            raise InputValidationError("narration text is required")

        sources = tuple(str(item) for item in images if str(item).strip())
        if not sources:
            raise InputValidationError("at least one image is required")
        if max_images is not None and len(sources) > max_images:
            raise InputValidationError(f"too many images: {len(sources)} > {max_images}")

        voice_name = str(voice).strip().lower()
        if voice_name not in SUPPORTED_VOICES:
            raise InputValidationError(
                f"unsupported voice '{voice}'; expected one of {', '.join(SUPPORTED_VOICES)}"
            )

        try:
            width_px, height_px = int(width), int(height)
        except (TypeError, ValueError) as exc:
            raise InputValidationError(f"canvas size must be integers: {width}x{height}") from exc
        if width_px <= 0 or height_px <= 0:
            raise InputValidationError(f"canvas size must be positive: {width_px}x{height_px}")
        # yuv420p needs even dimensions
        if width_px % 2 or height_px % 2:
            raise InputValidationError(f"canvas size must be even: {width_px}x{height_px}")

        volume = _as_float(music_volume, "music_volume")
        if not 0.0 <= volume <= 1.0:
            raise InputValidationError(f"music_volume must be within [0, 1]: {volume}")

        rate = _as_float(speech_rate, "speech_rate")
        if not math.isfinite(rate) or rate <= 0:
            raise InputValidationError(f"speech_rate must be a positive number: {speech_rate}")

        music = str(background_music).strip() if background_music else None

        return cls(
            narration_text=text,
            images=sources,
            output_target=Path(output_target).expanduser(),
            voice=voice_name,
            width=width_px,
            height=height_px,
            background_music=music or None,
            music_volume=volume,
            speech_rate=rate,
            locale=str(locale or "en"),
            model=model or None,
        )


def _as_float(value: object, name: str) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise InputValidationError(f"{name} must be a number: {value!r}") from exc
