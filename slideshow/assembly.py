from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, List, Optional

from logging_utils import get_logger

from .config import FFmpegSettings, VideoSettings
from .errors import EncodeError
from .ffmpeg.filters import Fps, TPad, render_chain
from .ffmpeg.runner import run_ffmpeg_stream
from .models import AudioSegment

logger = get_logger(__name__)


class AssemblyInvoker:
    """Encode the frame sequence and the final narration into one MP4."""

    def __init__(
        self,
        video: VideoSettings,
        ffmpeg: FFmpegSettings,
        *,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[float, float], None]] = None,
    ) -> None:
        self.video = video
        self.ffmpeg = ffmpeg
        self.cancel_event = cancel_event
        self.on_progress = on_progress

    def build_args(self, descriptor_path: Path, audio: AudioSegment, output_path: Path) -> List[str]:
        opts = self.video
        # Hold the final frame so -shortest always ends on the audio, not on
        # the last image's single frame.
        video_filters = render_chain([TPad(stop_mode="clone", stop=-1), Fps(opts.fps)])
        args: List[str] = [
            "-f",
            "concat",
            "-safe",
            "0",
            "-i",
            str(descriptor_path),
            "-i",
            str(audio.path),
            "-map",
            "0:v:0",
            "-map",
            "1:a:0",
            "-vf",
            video_filters,
            "-r",
            str(opts.fps),
            "-c:v",
            opts.codec,
            "-preset",
            opts.preset,
        ]
        if opts.crf is not None:
            args += ["-crf", str(opts.crf)]
        args += ["-pix_fmt", opts.pix_fmt, "-c:a", opts.audio_codec]
        if opts.audio_bitrate:
            args += ["-b:a", str(opts.audio_bitrate)]
        args += ["-shortest", "-movflags", "+faststart", "-y", str(output_path)]
        return args

    def assemble(self, descriptor_path: Path, audio: AudioSegment, output_path: Path) -> Path:
        if not descriptor_path.exists():
            raise EncodeError(f"concat descriptor not found: {descriptor_path}")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        args = self.build_args(descriptor_path, audio, output_path)
        run_ffmpeg_stream(
            args,
            expected_duration_sec=audio.duration_seconds,
            label="assemble",
            ffmpeg_path=self.ffmpeg.ffmpeg_path,
            on_progress=self.on_progress,
            cancel_event=self.cancel_event,
        )
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise EncodeError(f"encoder reported success but produced no output at {output_path}")
        return output_path
