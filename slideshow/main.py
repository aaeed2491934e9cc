"""CLI entry for the narrated slideshow pipeline."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from config_loader import build_config, load_config
from logging_utils import configure_logging, get_logger

from .config import PipelineSettings
from .errors import InputValidationError, SlideshowError
from .ffmpeg.progress import ProgressBar
from .models import SUPPORTED_VOICES, PipelineRequest
from .narration import NarrationSynthesizer
from .pipeline import SlideshowPipeline

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Narrated slideshow video generator")
    parser.add_argument("images", nargs="+", help="Image files or http(s) URLs")
    text_group = parser.add_mutually_exclusive_group(required=True)
    text_group.add_argument("--text", help="Narration text")
    text_group.add_argument("--text-file", help="Read narration text from a UTF-8 file")
    parser.add_argument("--output", "-o", required=True, help="Output .mp4 path (or directory)")
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml (default: config.yaml)")
    parser.add_argument("--music", help="Background music file or URL")
    parser.add_argument("--music-volume", type=float, help="Background music gain in [0, 1]")
    parser.add_argument("--voice", choices=SUPPORTED_VOICES, help="Narration voice")
    parser.add_argument("--model", help="Speech model id (default from config / TTS_MODEL)")
    parser.add_argument("--speech-rate", type=float, help="Tempo multiplier, e.g. 0.9 for slower")
    parser.add_argument("--width", type=int)
    parser.add_argument("--height", type=int)
    parser.add_argument("--locale", help="Locale used to collate image names (e.g. sv-SE)")
    parser.add_argument("--progress", action="store_true", help="Show an encode progress bar")
    return parser


def _read_text(args: argparse.Namespace, parser: argparse.ArgumentParser) -> str:
    if args.text_file:
        try:
            return Path(args.text_file).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            parser.error(f"failed to read text file: {exc}")
    return args.text


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config_path = Path(args.config).expanduser()
    if config_path.exists():
        config = load_config(config_path, project_root=Path.cwd())
    elif args.config == parser.get_default("config"):
        config = build_config({}, project_root=Path.cwd())
    else:
        parser.error(f"config file not found: {config_path}")

    configure_logging(config.logging_level, config.log_file)
    logger.debug("Resolved config: %s", config.dumps())
    settings = PipelineSettings.from_config(config.raw)
    defaults = settings.slideshow

    try:
        request = PipelineRequest.create(
            narration_text=_read_text(args, parser),
            images=args.images,
            output_target=args.output,
            voice=args.voice or defaults.voice,
            width=args.width if args.width is not None else defaults.width,
            height=args.height if args.height is not None else defaults.height,
            background_music=args.music,
            music_volume=args.music_volume if args.music_volume is not None else defaults.music_volume,
            speech_rate=args.speech_rate if args.speech_rate is not None else defaults.speech_rate,
            locale=args.locale or defaults.locale,
            model=args.model,
            max_images=defaults.max_images,
        )
    except InputValidationError as exc:
        logger.error("Invalid request: %s", exc)
        return 2

    bars: list[ProgressBar] = []

    def _on_progress(seconds: float, total: float) -> None:
        # The total is only known once the narration has been probed.
        if not bars:
            bars.append(ProgressBar(total_seconds=total, label="Encode"))
        bars[0].update(seconds)

    pipeline = SlideshowPipeline(
        settings=settings,
        synthesizer=NarrationSynthesizer.from_config(config.raw),
        workspace_base=config.workspace_base,
        on_progress=_on_progress if args.progress else None,
    )

    try:
        result = pipeline.run(request)
    except InputValidationError as exc:
        logger.error("Invalid request: %s", exc)
        return 2
    except SlideshowError as exc:
        logger.error("Slideshow failed: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted; workspace removed")
        return 130
    finally:
        for bar in bars:
            bar.finish()

    logger.info("Slideshow completed: %s", result.video_path)
    if result.visible_frames < result.frame_count:
        logger.warning(
            "%d of %d slides fit within the narration",
            result.visible_frames,
            result.frame_count,
        )
    print(f"Done: {result.video_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
