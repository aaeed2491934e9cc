from __future__ import annotations

from pathlib import Path
from typing import List

from logging_utils import get_logger

from ..errors import EncodeError
from ..models import ConcatDescriptor

logger = get_logger(__name__)

FFCONCAT_HEADER = "ffconcat version 1.0"


def escape_concat_path(path: Path | str) -> str:
    """Quote a path for the concat demuxer: close the quote, escape, reopen."""
    text = Path(path).as_posix() if isinstance(path, Path) else str(path)
    return "'" + text.replace("'", "'\\''") + "'"


def render_concat_descriptor(descriptor: ConcatDescriptor) -> str:
    lines: List[str] = [FFCONCAT_HEADER]
    for entry in descriptor.entries:
        lines.append(f"file {escape_concat_path(entry.frame_path)}")
        if entry.duration is not None:
            lines.append(f"duration {entry.duration:.6f}")
    return "\n".join(lines) + "\n"


def write_concat_descriptor(descriptor: ConcatDescriptor, list_file: Path) -> Path:
    """Write the ffconcat list with absolute frame paths."""
    missing = [str(e.frame_path) for e in descriptor.entries if not Path(e.frame_path).exists()]
    if missing:
        for p in missing[:10]:
            logger.error("concat: missing frame %s", p)
        raise EncodeError(f"concat: {len(missing)} frame(s) missing", missing[:10])

    list_file.parent.mkdir(parents=True, exist_ok=True)
    list_file.write_text(render_concat_descriptor(descriptor), encoding="utf-8")
    logger.debug(
        "concat: list file => %s (%d entries, %d durations)",
        list_file,
        descriptor.frame_count,
        descriptor.duration_count,
    )
    return list_file
