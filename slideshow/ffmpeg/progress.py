"""Progress reporting for streamed ffmpeg runs (``-progress pipe:1``)."""
from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, TextIO


def format_clock(seconds: float) -> str:
    total = max(int(round(seconds)), 0)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours:d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


@dataclass
class ProgressBar:
    """Single-line console bar for an encode of known length."""

    total_seconds: float
    label: str = "Encode"
    width: int = 30
    stream: TextIO = field(default_factory=lambda: sys.stderr)
    min_interval: float = 0.1
    _started: float = field(init=False, default=0.0)
    _last_draw: float = field(init=False, default=0.0)

    def __post_init__(self) -> None:
        self._started = time.monotonic()
        self.update(0.0, force=True)

    def update(self, seconds: float, *, force: bool = False) -> None:
        now = time.monotonic()
        if not force and now - self._last_draw < self.min_interval:
            return
        self._last_draw = now
        self.stream.write("\r" + self.render(seconds, now - self._started))
        self.stream.flush()

    def finish(self) -> None:
        self.update(self.total_seconds, force=True)
        self.stream.write("\n")
        self.stream.flush()

    def render(self, seconds: float, elapsed: float) -> str:
        total = max(self.total_seconds, 1e-3)
        fraction = min(max(seconds / total, 0.0), 1.0)
        filled = int(round(fraction * self.width))
        bar = "#" * filled + "-" * (self.width - filled)
        remaining = elapsed * (1.0 - fraction) / fraction if fraction > 1e-4 else 0.0
        return (
            f"{self.label} [{bar}] {fraction * 100:5.1f}% "
            f"{format_clock(seconds)}/{format_clock(total)} eta {format_clock(remaining)}"
        )


class ProgressParser:
    """Collect ``key=value`` blocks from ``-progress`` output.

    ffmpeg closes every block with ``progress=continue`` (``end`` for the last
    one); the encoded position is reported once per block.
    """

    def __init__(
        self,
        on_time: Callable[[float], None],
        on_end: Optional[Callable[[], None]] = None,
    ) -> None:
        self.on_time = on_time
        self.on_end = on_end
        self.finished = False
        self._block: Dict[str, str] = {}

    def feed_line(self, line: str) -> None:
        key, sep, value = line.strip().partition("=")
        if not sep:
            return
        value = value.strip()
        if key != "progress":
            self._block[key] = value
            return

        seconds = _position_seconds(self._block)
        self._block = {}
        if seconds is not None:
            self.on_time(seconds)
        if value == "end":
            self.finished = True
            if self.on_end is not None:
                self.on_end()


def _position_seconds(block: Dict[str, str]) -> Optional[float]:
    # out_time_ms is in microseconds too, despite its name.
    for key in ("out_time_us", "out_time_ms"):
        raw = block.get(key)
        if raw is None:
            continue
        try:
            return int(raw) / 1e6
        except ValueError:
            continue
    return None
