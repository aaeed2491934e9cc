from __future__ import annotations

import io
import threading
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from logging_utils import get_logger

from .errors import PipelineCancelled, RenderError
from .models import ImageReference, RenderedFrame

logger = get_logger(__name__)

if hasattr(Image, "Resampling"):
    _RESAMPLE = Image.Resampling.LANCZOS  # type: ignore[attr-defined]
else:  # pragma: no cover - Pillow < 9.1 fallback
    _RESAMPLE = Image.LANCZOS  # type: ignore[attr-defined]

FRAME_NAME_TEMPLATE = "slide_{index:04d}.jpg"
JPEG_QUALITY = 92


def contain_image(
    source: bytes,
    target: Tuple[int, int],
    fill: Tuple[int, int, int] = (0, 0, 0),
) -> bytes:
    """Fit an encoded image inside ``target`` without cropping.

    The image keeps its aspect ratio, is centred, and the remaining area is
    painted with ``fill``. Returns JPEG bytes.
    """
    target_w, target_h = target
    if target_w <= 0 or target_h <= 0:
        raise ValueError("Target size must be positive")

    with Image.open(io.BytesIO(source)) as opened:
        image = ImageOps.exif_transpose(opened)
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA")

        src_w, src_h = image.size
        if src_w == 0 or src_h == 0:
            raise ValueError("Source image has no pixels")

        scale = min(target_w / src_w, target_h / src_h)
        new_size = (
            max(1, min(target_w, round(src_w * scale))),
            max(1, min(target_h, round(src_h * scale))),
        )
        resized = image.resize(new_size, _RESAMPLE)

    canvas = Image.new("RGB", (target_w, target_h), fill)
    offset = ((target_w - new_size[0]) // 2, (target_h - new_size[1]) // 2)
    if resized.mode == "RGBA":
        canvas.paste(resized, offset, mask=resized)
    else:
        canvas.paste(resized, offset)

    buffer = io.BytesIO()
    canvas.save(buffer, format="JPEG", quality=JPEG_QUALITY)
    return buffer.getvalue()


class FrameRenderer:
    """Render ordered images onto a uniform canvas, one JPEG per slide."""

    def __init__(
        self,
        width: int,
        height: int,
        *,
        fill: Tuple[int, int, int] = (0, 0, 0),
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.width = width
        self.height = height
        self.fill = fill
        self.cancel_event = cancel_event

    def render(self, references: Sequence[ImageReference], output_dir: Path) -> List[RenderedFrame]:
        output_dir.mkdir(parents=True, exist_ok=True)
        frames: List[RenderedFrame] = []
        for index, reference in enumerate(references):
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise PipelineCancelled("frame rendering cancelled")
            target = output_dir / FRAME_NAME_TEMPLATE.format(index=index)
            frames.append(self._render_one(reference, target))
        logger.info("Rendered %d frames at %dx%d", len(frames), self.width, self.height)
        return frames

    def _render_one(self, reference: ImageReference, target: Path) -> RenderedFrame:
        try:
            source = reference.original_path.read_bytes()
            encoded = contain_image(source, (self.width, self.height), self.fill)
            target.write_bytes(encoded)
        except (OSError, ValueError, UnidentifiedImageError, Image.DecompressionBombError) as exc:
            raise RenderError(f"failed to render {reference.basename}: {exc}") from exc
        logger.debug("Frame %s <- %s", target.name, reference.original_path)
        return RenderedFrame(path=target, width=self.width, height=self.height)
