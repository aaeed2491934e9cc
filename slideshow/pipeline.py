"""Orchestrator for one narrated slideshow run."""
from __future__ import annotations

import shutil
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from logging_utils import get_logger

from .assembly import AssemblyInvoker
from .audio_timeline import AudioTimeline, TimelineResult, tempo_chain
from .config import PipelineSettings
from .errors import EncodeError, PipelineCancelled
from .ffmpeg.concat import write_concat_descriptor
from .frame_renderer import FrameRenderer
from .ingest import InputStager
from .models import ImageReference, PipelineRequest, RenderedFrame
from .narration import NarrationSynthesizer
from .sequencer import ImageSequencer
from .timing import allocate, apply_plan, build_concat_descriptor
from .workspace import Workspace, WorkspaceManager

logger = get_logger(__name__)

DEFAULT_OUTPUT_NAME = "slideshow.mp4"


@dataclass
class PipelineResult:
    run_id: str
    video_path: Path
    audio_duration: float
    per_slide: float
    frame_count: int
    visible_frames: int
    image_order: List[str] = field(default_factory=list)


class SlideshowPipeline:
    def __init__(
        self,
        *,
        settings: PipelineSettings,
        synthesizer: NarrationSynthesizer,
        workspace_base: Optional[Path] = None,
        stager: Optional[InputStager] = None,
        on_progress: Optional[Callable[[float, float], None]] = None,
    ) -> None:
        self.settings = settings
        self.synthesizer = synthesizer
        self.workspace_base = workspace_base
        self.stager = stager or InputStager()
        self.on_progress = on_progress

    def run(
        self,
        request: PipelineRequest,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> PipelineResult:
        # Reject a bad rate before anything touches the network or disk.
        tempo_chain(request.speech_rate)
        cancel_event = cancel_event or threading.Event()
        if cancel_event.is_set():
            raise PipelineCancelled("run cancelled before start")

        with WorkspaceManager(self.workspace_base) as workspace:
            logger.info(
                "Slideshow run start: run_id=%s images=%d voice=%s rate=%.2f locale=%s",
                workspace.run_id,
                len(request.images),
                request.voice,
                request.speech_rate,
                request.locale,
            )
            image_paths = self.stager.stage_images(
                request.images, workspace.input_dir, cancel_event=cancel_event
            )
            music_path = (
                self.stager.stage_music(
                    request.background_music, workspace.input_dir, cancel_event=cancel_event
                )
                if request.background_music
                else None
            )

            timeline, frames, ordered = self._run_branches(
                request, workspace, image_paths, music_path, cancel_event
            )

            plan = allocate(
                timeline.duration,
                len(frames),
                self.settings.slideshow.min_slide_seconds,
            )
            frames = apply_plan(frames, plan)
            descriptor = build_concat_descriptor(frames, plan.per_slide)
            write_concat_descriptor(descriptor, workspace.concat_path)

            assembler = AssemblyInvoker(
                self.settings.video,
                self.settings.ffmpeg,
                cancel_event=cancel_event,
                on_progress=self.on_progress,
            )
            assembler.assemble(workspace.concat_path, timeline.final, workspace.output_path)
            video_path = self._publish(workspace.output_path, request.output_target)

            logger.info(
                "Slideshow run completed: %s (%.2fs audio, %.3fs per slide)",
                video_path,
                timeline.duration,
                plan.per_slide,
            )
            return PipelineResult(
                run_id=workspace.run_id,
                video_path=video_path,
                audio_duration=timeline.duration,
                per_slide=plan.per_slide,
                frame_count=plan.frame_count,
                visible_frames=plan.visible_frames,
                image_order=[ref.name_without_prefix for ref in ordered],
            )

    # ------------------------------------------------------------------ #
    # Branches
    # ------------------------------------------------------------------ #

    def _run_branches(
        self,
        request: PipelineRequest,
        workspace: Workspace,
        image_paths: Sequence[Path],
        music_path: Optional[Path],
        cancel_event: threading.Event,
    ) -> tuple[TimelineResult, List[RenderedFrame], List[ImageReference]]:
        """Run the audio chain and the image chain side by side.

        The branches share no data. The first failure cancels the other
        branch (killing any running ffmpeg) before it is re-raised.
        """
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix=workspace.run_id) as pool:
            audio_future = pool.submit(
                self._audio_branch, request, workspace, music_path, cancel_event
            )
            image_future = pool.submit(
                self._image_branch, request, workspace, image_paths, cancel_event
            )
            futures = [audio_future, image_future]
            try:
                done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            except BaseException:
                cancel_event.set()
                raise

            failed = [f.exception() for f in done if f.exception() is not None]
            if failed:
                cancel_event.set()
                wait(pending)
                failed += [f.exception() for f in pending if f.exception() is not None]
                primary = next((e for e in failed if not isinstance(e, PipelineCancelled)), failed[0])
                raise primary

            timeline = audio_future.result()
            frames, ordered = image_future.result()
        return timeline, frames, ordered

    def _audio_branch(
        self,
        request: PipelineRequest,
        workspace: Workspace,
        music_path: Optional[Path],
        cancel_event: threading.Event,
    ) -> TimelineResult:
        timeline = AudioTimeline(
            self.settings.audio,
            self.settings.ffmpeg,
            lead_in_ms=self.settings.slideshow.lead_in_ms,
            cancel_event=cancel_event,
        )
        return timeline.build(
            synthesizer=self.synthesizer,
            text=request.narration_text,
            voice=request.voice,
            speech_rate=request.speech_rate,
            workspace=workspace,
            model=request.model,
            background=music_path,
            music_volume=request.music_volume,
        )

    def _image_branch(
        self,
        request: PipelineRequest,
        workspace: Workspace,
        image_paths: Sequence[Path],
        cancel_event: threading.Event,
    ) -> tuple[List[RenderedFrame], List[ImageReference]]:
        references = [ImageReference.from_path(p) for p in image_paths]
        ordered = ImageSequencer(locale=request.locale).order(references)
        renderer = FrameRenderer(
            request.width,
            request.height,
            fill=self.settings.slideshow.background_color,
            cancel_event=cancel_event,
        )
        frames = renderer.render(ordered, workspace.frame_dir)
        return frames, ordered

    # ------------------------------------------------------------------ #
    # Output
    # ------------------------------------------------------------------ #

    @staticmethod
    def _publish(rendered: Path, target: Path) -> Path:
        """Move the finished video out of the workspace; nothing lands there on failure."""
        target = target.expanduser()
        try:
            if target.is_dir() or not target.suffix:
                target.mkdir(parents=True, exist_ok=True)
                target = target / DEFAULT_OUTPUT_NAME
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(rendered), str(target))
        except OSError as exc:
            raise EncodeError(f"failed to publish video to {target}: {exc}") from exc
        return target
