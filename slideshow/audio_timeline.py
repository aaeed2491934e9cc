"""Narration track assembly: synthesize -> retime -> lead-in -> probe -> mix."""
from __future__ import annotations

import json
import math
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from logging_utils import get_logger

from .config import AudioSettings, FFmpegSettings
from .errors import EncodeError, InputValidationError, PipelineCancelled
from .ffmpeg.filters import (
    AFormat,
    AMix,
    ANullSrc,
    Atempo,
    Concat,
    GraphNode,
    Volume,
    channel_layout_for,
    render_chain,
    render_graph,
)
from .ffmpeg.runner import run_ffmpeg, run_ffprobe
from .models import AudioSegment
from .narration import NarrationSynthesizer
from .workspace import Workspace

logger = get_logger(__name__)

TEMPO_MIN = 0.5
TEMPO_MAX = 2.0
IDENTITY_TOLERANCE = 1e-3
# Seconds of overlap amix uses to fade out an input that ends early.
DROPOUT_TRANSITION_SEC = 3.0


def tempo_chain(speed: float) -> List[float]:
    """Split ``speed`` into atempo factors that each lie within [0.5, 2.0].

    An empty list means the speed is close enough to 1.0 to copy the input.
    """
    try:
        value = float(speed)
    except (TypeError, ValueError) as exc:
        raise InputValidationError(f"speech rate must be a number: {speed!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise InputValidationError(f"speech rate must be a positive number: {speed!r}")
    if abs(value - 1.0) < IDENTITY_TOLERANCE:
        return []

    factors: List[float] = []
    remaining = value
    while remaining < TEMPO_MIN:
        factors.append(TEMPO_MIN)
        remaining /= TEMPO_MIN
    while remaining > TEMPO_MAX:
        factors.append(TEMPO_MAX)
        remaining /= TEMPO_MAX
    factors.append(remaining)
    return factors


@dataclass(frozen=True)
class TimelineResult:
    raw: AudioSegment
    retimed: AudioSegment
    padded: AudioSegment
    final: AudioSegment
    mixed: Optional[AudioSegment] = None

    @property
    def duration(self) -> float:
        return self.final.duration_seconds


class AudioTimeline:
    """Run the audio transform chain for one request.

    Every stage writes a new file into the workspace and returns a freshly
    probed :class:`AudioSegment`; inputs are never modified in place.
    """

    def __init__(
        self,
        audio: AudioSettings,
        ffmpeg: FFmpegSettings,
        *,
        lead_in_ms: int = 500,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.audio = audio
        self.ffmpeg = ffmpeg
        self.lead_in_ms = lead_in_ms
        self.cancel_event = cancel_event

    # ------------------------------------------------------------------ #
    # Full chain
    # ------------------------------------------------------------------ #

    def build(
        self,
        *,
        synthesizer: NarrationSynthesizer,
        text: str,
        voice: str,
        speech_rate: float,
        workspace: Workspace,
        model: Optional[str] = None,
        background: Optional[Path] = None,
        music_volume: float = 0.2,
    ) -> TimelineResult:
        # Validate before the first external call.
        tempo_chain(speech_rate)
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelled("narration cancelled")

        raw_path = synthesizer.synthesize(text, workspace.audio("tts.wav"), voice=voice, model=model)
        raw = self.probe(raw_path)
        logger.info("Narration synthesized: %.2f sec", raw.duration_seconds)

        retimed = self.retime(raw, workspace.audio("tts_retimed.wav"), speech_rate)
        padded = self.add_lead_in(retimed, workspace.audio("tts_padded.wav"), self.lead_in_ms)
        trim_seconds = padded.duration_seconds

        if background is None:
            return TimelineResult(raw=raw, retimed=retimed, padded=padded, final=padded)

        mixed = self.mix(
            padded,
            background,
            workspace.audio("tts_mixed.wav"),
            music_volume=music_volume,
            trim_seconds=trim_seconds,
        )
        return TimelineResult(raw=raw, retimed=retimed, padded=padded, final=mixed, mixed=mixed)

    # ------------------------------------------------------------------ #
    # Stages
    # ------------------------------------------------------------------ #

    def retime(self, segment: AudioSegment, output_path: Path, speed: float) -> AudioSegment:
        """Change tempo while preserving pitch."""
        factors = tempo_chain(speed)
        if not factors:
            logger.info("Speech rate %.3f is identity; copying narration", speed)
            shutil.copyfile(segment.path, output_path)
            return self.probe(output_path)

        filters = [Atempo(f) for f in factors]
        logger.info("Retiming narration x%.3f via %d atempo stage(s)", speed, len(filters))
        args = ["-i", str(segment.path), "-af", render_chain(filters)]
        args += self._normalize_args()
        args += ["-y", str(output_path)]
        self._run(args, label="retime")
        return self.probe(output_path)

    def add_lead_in(self, segment: AudioSegment, output_path: Path, ms: int) -> AudioSegment:
        """Prepend ``ms`` milliseconds of generated silence as one continuous stream."""
        if ms <= 0:
            shutil.copyfile(segment.path, output_path)
            return self.probe(output_path)

        seconds = ms / 1000.0
        layout = channel_layout_for(self.audio.channels)
        fmt = AFormat(self.audio.sample_rate, layout)
        graph = render_graph(
            [
                GraphNode(("0:a",), (fmt,), "lead"),
                GraphNode(("1:a",), (fmt,), "narr"),
                GraphNode(("lead", "narr"), (Concat(segments=2, video=0, audio=1),), "aout"),
            ]
        )
        args = [
            "-f",
            "lavfi",
            "-t",
            f"{seconds:.3f}",
            "-i",
            ANullSrc(self.audio.sample_rate, layout).render(),
            "-i",
            str(segment.path),
            "-filter_complex",
            graph,
            "-map",
            "[aout]",
        ]
        args += self._normalize_args()
        args += ["-y", str(output_path)]
        logger.info("Prepending %d ms lead-in silence", ms)
        self._run(args, label="lead-in")

        padded = self.probe(output_path)
        if padded.duration_seconds + 1e-3 < seconds:
            raise EncodeError(
                f"padded narration is {padded.duration_seconds:.3f}s, shorter than the {seconds:.3f}s lead-in"
            )
        return padded

    def mix(
        self,
        narration: AudioSegment,
        background: Path,
        output_path: Path,
        *,
        music_volume: float,
        trim_seconds: float,
    ) -> AudioSegment:
        """Blend background music under the narration, forced to ``trim_seconds``."""
        if not 0.0 <= music_volume <= 1.0:
            raise InputValidationError(f"music volume must be within [0, 1]: {music_volume}")
        if not background.exists():
            raise InputValidationError(f"background music not found: {background}")

        layout = channel_layout_for(self.audio.channels)
        graph = render_graph(
            [
                GraphNode(("1:a",), (Volume(music_volume),), "bg"),
                GraphNode(
                    ("0:a", "bg"),
                    (
                        AMix(inputs=2, duration="first", dropout_transition=DROPOUT_TRANSITION_SEC),
                        AFormat(self.audio.sample_rate, layout),
                    ),
                    "aout",
                ),
            ]
        )
        args = [
            "-i",
            str(narration.path),
            "-i",
            str(background),
            "-filter_complex",
            graph,
            "-map",
            "[aout]",
            "-t",
            f"{trim_seconds:.6f}",
        ]
        args += self._normalize_args()
        args += ["-y", str(output_path)]
        logger.info("Mixing background music %s at volume %.2f", background.name, music_volume)
        self._run(args, label="mix")
        return self.probe(output_path)

    def probe(self, path: Path) -> AudioSegment:
        """Read the authoritative duration and format of an audio file."""
        output = run_ffprobe(
            [
                "-select_streams",
                "a:0",
                "-show_entries",
                "format=duration:stream=sample_rate,channels",
                "-of",
                "json",
                str(path),
            ],
            ffprobe_path=self.ffmpeg.ffprobe_path,
            cancel_event=self.cancel_event,
        )
        return parse_probe_output(path, output)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _normalize_args(self) -> List[str]:
        return [
            "-ar",
            str(self.audio.sample_rate),
            "-ac",
            str(self.audio.channels),
            "-c:a",
            "pcm_s16le",
        ]

    def _run(self, args: List[str], *, label: str) -> None:
        run_ffmpeg(
            args,
            ffmpeg_path=self.ffmpeg.ffmpeg_path,
            cancel_event=self.cancel_event,
            label=label,
        )


def parse_probe_output(path: Path, output: str) -> AudioSegment:
    try:
        data = json.loads(output or "{}")
    except json.JSONDecodeError as exc:
        raise EncodeError(f"ffprobe returned invalid JSON for {path}") from exc

    try:
        duration = float(data.get("format", {}).get("duration"))
    except (TypeError, ValueError) as exc:
        raise EncodeError(f"ffprobe reported no duration for {path}") from exc
    if not math.isfinite(duration) or duration < 0:
        raise EncodeError(f"ffprobe reported an invalid duration for {path}: {duration}")

    streams = data.get("streams") or []
    if not streams:
        raise EncodeError(f"no audio stream found in {path}")
    stream = streams[0]
    try:
        sample_rate = int(stream.get("sample_rate"))
        channels = int(stream.get("channels"))
    except (TypeError, ValueError) as exc:
        raise EncodeError(f"ffprobe reported an incomplete audio stream for {path}") from exc

    return AudioSegment(
        path=path,
        sample_rate=sample_rate,
        channels=channels,
        duration_seconds=duration,
    )
