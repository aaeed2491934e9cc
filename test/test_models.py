from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from config_loader import build_config, load_config  # noqa: E402
from slideshow.config import PipelineSettings, hex_to_rgb  # noqa: E402
from slideshow.errors import InputValidationError  # noqa: E402
from slideshow.models import PipelineRequest  # noqa: E402


def _create(**overrides: Any) -> PipelineRequest:
    params: dict = dict(narration_text="Hello", images=["a.jpg"], output_target="out.mp4")
    params.update(overrides)
    return PipelineRequest.create(**params)


def test_create_normalises_fields() -> None:
    request = _create(
        narration_text="  Hello world  ",
        images=[Path("a.jpg"), "", "https://example.test/b.png"],
        voice="Nova",
        music_volume="0.5",
        background_music="  ",
    )
    assert request.narration_text == "Hello world"
    assert request.images == ("a.jpg", "https://example.test/b.png")
    assert request.voice == "nova"
    assert request.music_volume == 0.5
    assert request.background_music is None
    assert request.output_target == Path("out.mp4")


@pytest.mark.parametrize(
    "overrides",
    [
        {"narration_text": "   "},
        {"images": []},
        {"images": ["a.jpg", "b.jpg"], "max_images": 1},
        {"voice": "robot"},
        {"width": 0},
        {"width": 1601},
        {"height": "tall"},
        {"music_volume": 1.5},
        {"music_volume": -0.1},
        {"speech_rate": 0},
        {"speech_rate": float("inf")},
        {"speech_rate": "quick"},
    ],
)
def test_create_rejects_invalid_requests(overrides: dict) -> None:
    with pytest.raises(InputValidationError):
        _create(**overrides)


def test_validation_errors_are_value_errors() -> None:
    with pytest.raises(ValueError):
        _create(voice="robot")


def test_settings_defaults_from_empty_config() -> None:
    settings = PipelineSettings.from_config({})
    assert (settings.slideshow.width, settings.slideshow.height) == (1600, 1200)
    assert settings.slideshow.lead_in_ms == 500
    assert settings.slideshow.min_slide_seconds == 0.5
    assert settings.audio.sample_rate == 24000
    assert settings.audio.channels == 1
    assert settings.video.fps == 25
    assert settings.video.crf == 20
    assert settings.ffmpeg.ffmpeg_path == "ffmpeg"


def test_settings_tolerate_bad_values() -> None:
    settings = PipelineSettings.from_config(
        {
            "slideshow": {"width": "wide", "background_color": "#fff", "lead_in_ms": -20},
            "audio": {"channels": 6},
            "video": {"crf": None, "audio_bitrate": ""},
        }
    )
    assert settings.slideshow.width == 1600
    assert settings.slideshow.background_color == (255, 255, 255)
    assert settings.slideshow.lead_in_ms == 0
    assert settings.audio.channels == 1
    assert settings.video.crf is None
    assert settings.video.audio_bitrate is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [("#000000", (0, 0, 0)), ("ff8000", (255, 128, 0)), ("#abc", (170, 187, 204)), ("#12345678", (18, 52, 86)), ("nope", (0, 0, 0))],
)
def test_hex_to_rgb(value: str, expected: tuple) -> None:
    assert hex_to_rgb(value) == expected


def test_load_config_resolves_paths(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "logging:\n  level: debug\n  file: logs/run.log\nworkspace:\n  base_dir: work\n",
        encoding="utf-8",
    )
    config = load_config(config_file)
    assert config.logging_level == "DEBUG"
    assert config.log_file == (tmp_path / "logs" / "run.log").resolve()
    assert config.workspace_base == (tmp_path / "work").resolve()


def test_load_config_errors(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")
    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(bad)


def test_build_config_without_sections(tmp_path: Path) -> None:
    config = build_config({}, project_root=tmp_path)
    assert config.logging_level == "INFO"
    assert config.log_file is None
    assert config.workspace_base is None
