"""Typed FFmpeg filter descriptors.

Stages describe what they want as small frozen dataclasses; the FFmpeg
``-af``/``-vf``/``-filter_complex`` syntax is only produced by ``render()``
when an argument list is assembled.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple, Union


def _num(value: float) -> str:
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return text or "0"


@dataclass(frozen=True)
class Atempo:
    """Pitch-preserving tempo change; FFmpeg accepts 0.5..2.0 per instance."""

    factor: float

    def render(self) -> str:
        return f"atempo={_num(self.factor)}"


@dataclass(frozen=True)
class Volume:
    gain: float

    def render(self) -> str:
        return f"volume={_num(self.gain)}"


@dataclass(frozen=True)
class AFormat:
    sample_rate: int
    channel_layout: str
    sample_fmt: str = "s16"

    def render(self) -> str:
        return (
            f"aformat=sample_fmts={self.sample_fmt}:"
            f"sample_rates={self.sample_rate}:channel_layouts={self.channel_layout}"
        )


@dataclass(frozen=True)
class AMix:
    inputs: int = 2
    duration: str = "first"
    dropout_transition: float = 3.0

    def render(self) -> str:
        return (
            f"amix=inputs={self.inputs}:duration={self.duration}:"
            f"dropout_transition={_num(self.dropout_transition)}"
        )


@dataclass(frozen=True)
class Concat:
    segments: int
    video: int = 0
    audio: int = 1

    def render(self) -> str:
        return f"concat=n={self.segments}:v={self.video}:a={self.audio}"


@dataclass(frozen=True)
class TPad:
    """Extend a video stream; ``stop=-1`` with clone holds the last frame."""

    stop_mode: str = "clone"
    stop: int = -1

    def render(self) -> str:
        return f"tpad=stop_mode={self.stop_mode}:stop={self.stop}"


@dataclass(frozen=True)
class Fps:
    rate: int

    def render(self) -> str:
        return f"fps={self.rate}"


@dataclass(frozen=True)
class ANullSrc:
    """Synthetic silence source used with ``-f lavfi``."""

    sample_rate: int
    channel_layout: str

    def render(self) -> str:
        return f"anullsrc=r={self.sample_rate}:cl={self.channel_layout}"


Filter = Union[Atempo, Volume, AFormat, AMix, Concat, TPad, Fps]


def render_chain(filters: Sequence[Filter]) -> str:
    """Render a linear filter chain for ``-af``/``-vf``."""
    return ",".join(f.render() for f in filters)


@dataclass(frozen=True)
class GraphNode:
    """One ``[in][in]filter,filter[out]`` segment of a filter graph."""

    inputs: Tuple[str, ...]
    filters: Tuple[Filter, ...]
    output: str

    def render(self) -> str:
        labels = "".join(f"[{label}]" for label in self.inputs)
        return f"{labels}{render_chain(self.filters)}[{self.output}]"


def render_graph(nodes: Sequence[GraphNode]) -> str:
    """Render a ``-filter_complex`` graph."""
    return ";".join(node.render() for node in nodes)


def channel_layout_for(channels: int) -> str:
    if channels == 1:
        return "mono"
    if channels == 2:
        return "stereo"
    raise ValueError(f"Unsupported channel count: {channels}")
