"""Typed settings for the slideshow pipeline, built from the raw YAML mapping."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from logging_utils import get_logger

logger = get_logger(__name__)


def hex_to_rgb(value: str | None, fallback: Tuple[int, int, int] = (0, 0, 0)) -> Tuple[int, int, int]:
    if not value:
        return fallback
    text = value.strip().lstrip("#")
    if len(text) not in (3, 6, 8):
        return fallback
    if len(text) == 3:
        text = "".join(ch * 2 for ch in text)
    if len(text) == 8:
        text = text[:6]
    try:
        r = int(text[0:2], 16)
        g = int(text[2:4], 16)
        b = int(text[4:6], 16)
        return (r, g, b)
    except ValueError:
        return fallback


def _section(raw: Optional[Mapping[str, Any]], name: str) -> Dict[str, Any]:
    if not isinstance(raw, Mapping):
        return {}
    value = raw.get(name, {})
    return dict(value) if isinstance(value, Mapping) else {}


def _float(cfg: Mapping[str, Any], key: str, default: float) -> float:
    try:
        return float(cfg.get(key, default))
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r; falling back to %s", key, cfg.get(key), default)
        return default


def _int(cfg: Mapping[str, Any], key: str, default: int) -> int:
    try:
        return int(cfg.get(key, default))
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r; falling back to %s", key, cfg.get(key), default)
        return default


def _str(cfg: Mapping[str, Any], key: str, default: str) -> str:
    value = cfg.get(key)
    text = str(value).strip() if value is not None else ""
    return text or default


@dataclass(frozen=True)
class SlideshowSettings:
    width: int = 1600
    height: int = 1200
    voice: str = "shimmer"
    speech_rate: float = 1.0
    music_volume: float = 0.2
    lead_in_ms: int = 500
    min_slide_seconds: float = 0.5
    background_color: Tuple[int, int, int] = (0, 0, 0)
    max_images: int = 200
    locale: str = "en"

    @classmethod
    def from_config(cls, raw: Optional[Mapping[str, Any]]) -> "SlideshowSettings":
        cfg = _section(raw, "slideshow")
        return cls(
            width=_int(cfg, "width", 1600),
            height=_int(cfg, "height", 1200),
            voice=_str(cfg, "voice", "shimmer"),
            speech_rate=_float(cfg, "speech_rate", 1.0),
            music_volume=_float(cfg, "music_volume", 0.2),
            lead_in_ms=max(_int(cfg, "lead_in_ms", 500), 0),
            min_slide_seconds=max(_float(cfg, "min_slide_seconds", 0.5), 0.0),
            background_color=hex_to_rgb(_str(cfg, "background_color", "#000000")),
            max_images=max(_int(cfg, "max_images", 200), 1),
            locale=_str(cfg, "locale", "en"),
        )


@dataclass(frozen=True)
class AudioSettings:
    sample_rate: int = 24000
    channels: int = 1

    @classmethod
    def from_config(cls, raw: Optional[Mapping[str, Any]]) -> "AudioSettings":
        cfg = _section(raw, "audio")
        channels = _int(cfg, "channels", 1)
        if channels not in (1, 2):
            logger.warning("Unsupported audio.channels=%s; using mono", channels)
            channels = 1
        return cls(sample_rate=max(_int(cfg, "sample_rate", 24000), 8000), channels=channels)


@dataclass(frozen=True)
class VideoSettings:
    fps: int = 25
    codec: str = "libx264"
    pix_fmt: str = "yuv420p"
    preset: str = "medium"
    crf: Optional[int] = 20
    audio_codec: str = "aac"
    audio_bitrate: Optional[str] = "192k"

    @classmethod
    def from_config(cls, raw: Optional[Mapping[str, Any]]) -> "VideoSettings":
        cfg = _section(raw, "video")
        crf = cfg.get("crf", 20)
        bitrate = cfg.get("audio_bitrate", "192k")
        return cls(
            fps=max(_int(cfg, "fps", 25), 1),
            codec=_str(cfg, "codec", "libx264"),
            pix_fmt=_str(cfg, "pix_fmt", "yuv420p"),
            preset=_str(cfg, "preset", "medium"),
            crf=int(crf) if crf is not None and str(crf).strip() else None,
            audio_codec=_str(cfg, "audio_codec", "aac"),
            audio_bitrate=str(bitrate) if bitrate else None,
        )


@dataclass(frozen=True)
class FFmpegSettings:
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    @classmethod
    def from_config(cls, raw: Optional[Mapping[str, Any]]) -> "FFmpegSettings":
        cfg = _section(raw, "ffmpeg")
        return cls(
            ffmpeg_path=_str(cfg, "ffmpeg_path", "ffmpeg"),
            ffprobe_path=_str(cfg, "ffprobe_path", "ffprobe"),
        )


@dataclass(frozen=True)
class PipelineSettings:
    slideshow: SlideshowSettings
    audio: AudioSettings
    video: VideoSettings
    ffmpeg: FFmpegSettings

    @classmethod
    def from_config(cls, raw: Optional[Mapping[str, Any]]) -> "PipelineSettings":
        return cls(
            slideshow=SlideshowSettings.from_config(raw),
            audio=AudioSettings.from_config(raw),
            video=VideoSettings.from_config(raw),
            ffmpeg=FFmpegSettings.from_config(raw),
        )
