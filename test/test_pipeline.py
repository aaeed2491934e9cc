from __future__ import annotations

import json
import shutil
import sys
import threading
import time
import wave
from pathlib import Path
from typing import Any, List, Optional

import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from slideshow.config import PipelineSettings  # noqa: E402
from slideshow.errors import (  # noqa: E402
    EncodeError,
    InputValidationError,
    PipelineCancelled,
    RenderError,
    SynthesisError,
)
from slideshow.ffmpeg.runner import run_ffprobe  # noqa: E402
from slideshow.ingest import InputStager  # noqa: E402
from slideshow.models import PipelineRequest  # noqa: E402
from slideshow.narration import NarrationSynthesizer  # noqa: E402
from slideshow.pipeline import SlideshowPipeline  # noqa: E402

HAVE_FFMPEG = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None
needs_ffmpeg = pytest.mark.skipif(not HAVE_FFMPEG, reason="ffmpeg/ffprobe not installed")

SETTINGS = PipelineSettings.from_config({"video": {"preset": "ultrafast"}})


class SilentEngine:
    """Writes a silent mono WAV of a fixed length instead of calling a service."""

    def __init__(self, seconds: float, delay: float = 0.0) -> None:
        self.seconds = seconds
        self.delay = delay
        self.calls = 0

    def synthesize(self, text: str, output_path: Path, *, voice: str, model: Optional[str] = None) -> Path:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        frames = int(self.seconds * 24000)
        with wave.open(str(output_path), "wb") as wf:
            wf.setnchannels(1)
            wf.setsampwidth(2)
            wf.setframerate(24000)
            wf.writeframes(b"\x00\x00" * frames)
        return output_path


class FailingEngine:
    def synthesize(self, *args: Any, **kwargs: Any) -> Path:
        raise SynthesisError("HTTP 500: upstream exploded")


class RecordingStager:
    def __init__(self) -> None:
        self.calls: List[str] = []

    def stage_images(self, sources: Any, target_dir: Path, **kwargs: Any) -> List[Path]:  # pragma: no cover - must not run
        self.calls.append("images")
        raise AssertionError("staging should not run")

    def stage_music(self, source: str, target_dir: Path, **kwargs: Any) -> Path:  # pragma: no cover - must not run
        self.calls.append("music")
        raise AssertionError("staging should not run")


def _images(directory: Path, count: int) -> List[str]:
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for index in range(count):
        path = directory / f"photo_{index + 1}.png"
        Image.new("RGB", (40 + index % 3 * 10, 30), (index * 5 % 255, 80, 160)).save(path)
        paths.append(str(path))
    return paths


def _request(images: List[str], output: Path, **overrides: Any) -> PipelineRequest:
    params: dict = dict(
        narration_text="A short narration.",
        images=images,
        output_target=output,
        voice="shimmer",
        width=64,
        height=48,
    )
    params.update(overrides)
    return PipelineRequest.create(**params)


def _duration(path: Path) -> float:
    output = run_ffprobe(["-show_entries", "format=duration", "-of", "json", str(path)])
    return float(json.loads(output)["format"]["duration"])


def test_invalid_rate_fails_before_any_external_call(tmp_path: Path) -> None:
    engine = SilentEngine(1.0)
    stager = RecordingStager()
    pipeline = SlideshowPipeline(
        settings=SETTINGS,
        synthesizer=NarrationSynthesizer(engine),
        workspace_base=tmp_path / "work",
        stager=stager,  # type: ignore[arg-type]
    )
    request = PipelineRequest(
        narration_text="Hello",
        images=("a.png",),
        output_target=tmp_path / "out.mp4",
        speech_rate=0.0,
    )

    with pytest.raises(InputValidationError):
        pipeline.run(request)

    assert engine.calls == 0
    assert stager.calls == []
    assert not (tmp_path / "work").exists()


def test_synthesis_failure_removes_workspace(tmp_path: Path) -> None:
    work = tmp_path / "work"
    pipeline = SlideshowPipeline(
        settings=SETTINGS,
        synthesizer=NarrationSynthesizer(FailingEngine()),
        workspace_base=work,
    )
    request = _request(_images(tmp_path / "src", 2), tmp_path / "out.mp4")

    with pytest.raises(SynthesisError, match="upstream exploded"):
        pipeline.run(request)

    assert list(work.iterdir()) == []
    assert not (tmp_path / "out.mp4").exists()


def test_render_failure_is_the_reported_error(tmp_path: Path) -> None:
    work = tmp_path / "work"
    images = _images(tmp_path / "src", 1)
    broken = tmp_path / "src" / "broken.jpg"
    broken.write_bytes(b"not an image")
    images.append(str(broken))

    pipeline = SlideshowPipeline(
        settings=SETTINGS,
        synthesizer=NarrationSynthesizer(SilentEngine(1.0, delay=0.5)),
        workspace_base=work,
    )

    with pytest.raises(RenderError, match="broken"):
        pipeline.run(_request(images, tmp_path / "out.mp4"))

    assert list(work.iterdir()) == []


def test_missing_image_is_a_validation_error(tmp_path: Path) -> None:
    work = tmp_path / "work"
    pipeline = SlideshowPipeline(
        settings=SETTINGS,
        synthesizer=NarrationSynthesizer(SilentEngine(1.0)),
        workspace_base=work,
    )
    with pytest.raises(InputValidationError):
        pipeline.run(_request([str(tmp_path / "nope.png")], tmp_path / "out.mp4"))
    assert list(work.iterdir()) == []


@needs_ffmpeg
def test_three_images_split_the_narration_evenly(tmp_path: Path) -> None:
    work = tmp_path / "work"
    output = tmp_path / "out" / "video.mp4"
    engine = SilentEngine(8.5)
    pipeline = SlideshowPipeline(
        settings=SETTINGS,
        synthesizer=NarrationSynthesizer(engine),
        workspace_base=work,
    )

    result = pipeline.run(_request(_images(tmp_path / "src", 3), output))

    assert result.video_path == output
    assert output.exists() and output.stat().st_size > 0
    assert result.audio_duration == pytest.approx(9.0, abs=0.05)
    assert result.per_slide == pytest.approx(3.0, abs=0.02)
    assert result.visible_frames == 3
    assert result.image_order == ["photo_1.png", "photo_2.png", "photo_3.png"]
    assert _duration(output) == pytest.approx(9.0, abs=0.25)
    assert list(work.iterdir()) == []


@needs_ffmpeg
def test_floor_truncates_trailing_slides(tmp_path: Path) -> None:
    output = tmp_path / "out"
    pipeline = SlideshowPipeline(
        settings=SETTINGS,
        synthesizer=NarrationSynthesizer(SilentEngine(1.5)),
        workspace_base=tmp_path / "work",
    )

    result = pipeline.run(_request(_images(tmp_path / "src", 50), output))

    assert result.video_path == output / "slideshow.mp4"
    assert result.per_slide == pytest.approx(0.5)
    assert result.frame_count == 50
    assert result.visible_frames == 4
    assert _duration(result.video_path) == pytest.approx(2.0, abs=0.25)


def test_cancelled_run_makes_no_external_calls(tmp_path: Path) -> None:
    work = tmp_path / "work"
    cancel = threading.Event()
    cancel.set()
    engine = SilentEngine(1.0)
    stager = RecordingStager()
    pipeline = SlideshowPipeline(
        settings=SETTINGS,
        synthesizer=NarrationSynthesizer(engine),
        workspace_base=work,
        stager=stager,  # type: ignore[arg-type]
    )

    with pytest.raises(PipelineCancelled):
        pipeline.run(_request(_images(tmp_path / "src", 2), tmp_path / "out.mp4"), cancel_event=cancel)

    assert engine.calls == 0
    assert stager.calls == []
    assert not (tmp_path / "out.mp4").exists()
    assert not work.exists()


def test_cancel_after_staging_skips_synthesis(tmp_path: Path) -> None:
    work = tmp_path / "work"
    cancel = threading.Event()
    engine = SilentEngine(1.0)

    class CancellingStager(InputStager):
        def stage_images(self, sources: Any, target_dir: Path, **kwargs: Any) -> List[Path]:
            staged = super().stage_images(sources, target_dir, **kwargs)
            cancel.set()
            return staged

    pipeline = SlideshowPipeline(
        settings=SETTINGS,
        synthesizer=NarrationSynthesizer(engine),
        workspace_base=work,
        stager=CancellingStager(),
    )

    with pytest.raises(PipelineCancelled):
        pipeline.run(_request(_images(tmp_path / "src", 2), tmp_path / "out.mp4"), cancel_event=cancel)

    assert engine.calls == 0
    assert not (tmp_path / "out.mp4").exists()
    assert list(work.iterdir()) == []


def test_publish_failure_is_an_encode_error(tmp_path: Path) -> None:
    rendered = tmp_path / "work" / "slideshow.mp4"
    rendered.parent.mkdir()
    rendered.write_bytes(b"mp4")
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(EncodeError, match="failed to publish"):
        SlideshowPipeline._publish(rendered, blocker / "video.mp4")

    assert rendered.exists()


def test_publish_names_directory_targets(tmp_path: Path) -> None:
    rendered = tmp_path / "slideshow-out.mp4"
    rendered.write_bytes(b"mp4")

    published = SlideshowPipeline._publish(rendered, tmp_path / "videos")

    assert published == tmp_path / "videos" / "slideshow.mp4"
    assert published.read_bytes() == b"mp4"
    assert not rendered.exists()
