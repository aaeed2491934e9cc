from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from slideshow.errors import EncodeError, InputValidationError  # noqa: E402
from slideshow.ffmpeg.concat import (  # noqa: E402
    escape_concat_path,
    render_concat_descriptor,
    write_concat_descriptor,
)
from slideshow.models import RenderedFrame  # noqa: E402
from slideshow.timing import allocate, apply_plan, build_concat_descriptor  # noqa: E402


def _frames(tmp_path: Path, count: int, *, create: bool = False) -> List[RenderedFrame]:
    frames = []
    for index in range(count):
        path = tmp_path / f"slide_{index:04d}.jpg"
        if create:
            path.write_bytes(b"\xff\xd8\xff")
        frames.append(RenderedFrame(path=path, width=64, height=48))
    return frames


def test_even_split_without_floor() -> None:
    plan = allocate(9.0, 3)
    assert plan.per_slide == pytest.approx(3.0)
    assert plan.nominal_total == pytest.approx(9.0)
    assert not plan.overflow
    assert plan.visible_frames == 3


def test_floor_applies_and_overflow_is_reported() -> None:
    plan = allocate(2.0, 50)
    assert plan.per_slide == pytest.approx(0.5)
    assert plan.overflow
    assert plan.visible_frames == 4


@pytest.mark.parametrize(
    ("audio", "count", "floor"),
    [(9.0, 3, 0.5), (2.0, 50, 0.5), (0.3, 1, 0.5), (123.4, 17, 0.0), (1.0, 7, 2.0)],
)
def test_allocation_properties(audio: float, count: int, floor: float) -> None:
    plan = allocate(audio, count, floor)
    assert plan.per_slide >= floor
    assert plan.per_slide >= audio / count - 1e-12
    if audio / count >= floor:
        assert plan.nominal_total == pytest.approx(audio)


@pytest.mark.parametrize(("audio", "count"), [(5.0, 0), (0.0, 3), (-1.0, 3), (float("nan"), 3), (float("inf"), 2)])
def test_allocate_rejects_invalid_input(audio: float, count: int) -> None:
    with pytest.raises(InputValidationError):
        allocate(audio, count)


def test_apply_plan_sets_every_duration(tmp_path: Path) -> None:
    plan = allocate(6.0, 4)
    frames = apply_plan(_frames(tmp_path, 4), plan)
    assert [f.display_duration for f in frames] == [pytest.approx(1.5)] * 4


@pytest.mark.parametrize("count", [2, 3, 10])
def test_descriptor_counts(tmp_path: Path, count: int) -> None:
    descriptor = build_concat_descriptor(_frames(tmp_path, count), 1.25)
    assert descriptor.duration_count == count - 1
    assert descriptor.frame_count == count + 1
    assert descriptor.entries[-1].frame_path == descriptor.entries[-2].frame_path
    assert descriptor.entries[-1].duration is None
    assert descriptor.entries[-2].duration is None


def test_single_frame_descriptor(tmp_path: Path) -> None:
    descriptor = build_concat_descriptor(_frames(tmp_path, 1), 9.0)
    assert descriptor.duration_count == 0
    assert descriptor.frame_count == 2


def test_descriptor_needs_frames() -> None:
    with pytest.raises(InputValidationError):
        build_concat_descriptor([], 1.0)


def test_descriptor_sums_to_audio_when_no_floor(tmp_path: Path) -> None:
    audio = 9.0
    plan = allocate(audio, 3)
    descriptor = build_concat_descriptor(_frames(tmp_path, 3), plan.per_slide)
    listed = sum(e.duration for e in descriptor.entries if e.duration is not None)
    # The held final frame covers the remainder.
    assert listed + plan.per_slide == pytest.approx(audio)


def test_render_concat_text(tmp_path: Path) -> None:
    descriptor = build_concat_descriptor(_frames(tmp_path, 2), 3.0)
    text = render_concat_descriptor(descriptor)
    first = (tmp_path / "slide_0000.jpg").as_posix()
    second = (tmp_path / "slide_0001.jpg").as_posix()
    assert text == (
        "ffconcat version 1.0\n"
        f"file '{first}'\n"
        "duration 3.000000\n"
        f"file '{second}'\n"
        f"file '{second}'\n"
    )


def test_single_quotes_are_escaped() -> None:
    assert escape_concat_path("/tmp/it's.jpg") == "'/tmp/it'\\''s.jpg'"


def test_write_requires_existing_frames(tmp_path: Path) -> None:
    descriptor = build_concat_descriptor(_frames(tmp_path, 2), 1.0)
    with pytest.raises(EncodeError, match=r"frame\(s\) missing") as excinfo:
        write_concat_descriptor(descriptor, tmp_path / "frames.ffconcat")
    assert str(tmp_path / "slide_0000.jpg") in excinfo.value.diagnostics
    assert not (tmp_path / "frames.ffconcat").exists()


def test_write_creates_list_file(tmp_path: Path) -> None:
    descriptor = build_concat_descriptor(_frames(tmp_path, 3, create=True), 1.0)
    target = write_concat_descriptor(descriptor, tmp_path / "lists" / "frames.ffconcat")
    lines = target.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "ffconcat version 1.0"
    assert sum(1 for line in lines if line.startswith("file ")) == 4
    assert sum(1 for line in lines if line.startswith("duration ")) == 2
