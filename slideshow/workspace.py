from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Optional, Type

from logging_utils import get_logger

logger = get_logger(__name__)

WORKSPACE_PREFIX = "slideshow-run-"


@dataclass(frozen=True)
class Workspace:
    """Per-request directory tree; every artifact of a run lives beneath ``root``."""

    root: Path
    input_dir: Path
    audio_dir: Path
    frame_dir: Path

    @classmethod
    def build(cls, root: Path) -> "Workspace":
        input_dir = root / "inputs"
        audio_dir = root / "audio"
        frame_dir = root / "frames"
        for path in (input_dir, audio_dir, frame_dir):
            path.mkdir(parents=True, exist_ok=True)
        return cls(root=root, input_dir=input_dir, audio_dir=audio_dir, frame_dir=frame_dir)

    @property
    def run_id(self) -> str:
        return self.root.name

    @property
    def concat_path(self) -> Path:
        return self.root / "frames.ffconcat"

    @property
    def output_path(self) -> Path:
        return self.root / "out.mp4"

    def audio(self, name: str) -> Path:
        return self.audio_dir / name


class WorkspaceManager:
    """Allocate a uniquely named workspace and remove it when the run ends.

    Usage::

        with WorkspaceManager(base_dir) as workspace:
            ...

    Removal is best-effort: failures are logged and never raised, so they
    cannot mask the run's own outcome.
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self.base_dir = base_dir
        self.workspace: Optional[Workspace] = None

    def allocate(self) -> Workspace:
        if self.base_dir is not None:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        root = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=str(self.base_dir) if self.base_dir else None))
        self.workspace = Workspace.build(root)
        logger.debug("Workspace allocated: %s", root)
        return self.workspace

    def cleanup(self) -> None:
        if self.workspace is None:
            return
        root = self.workspace.root
        self.workspace = None
        try:
            shutil.rmtree(root)
            logger.debug("Workspace removed: %s", root)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove workspace %s: %s", root, exc)

    def __enter__(self) -> Workspace:
        return self.allocate()

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.cleanup()
