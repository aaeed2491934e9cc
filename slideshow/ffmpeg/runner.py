from __future__ import annotations

import subprocess
import threading
from typing import Callable, List, Optional, Sequence

from logging_utils import get_logger

from ..errors import EncodeError, PipelineCancelled

logger = get_logger(__name__)

# How often a running process is checked for cancellation.
POLL_INTERVAL_SEC = 0.2
STDERR_TAIL_LINES = 50


def _pretty(cmd: Sequence[str]) -> str:
    return " ".join(a if " " not in a else f"'{a}'" for a in cmd)


def _stderr_tail(stderr: str) -> List[str]:
    return (stderr or "").splitlines()[-STDERR_TAIL_LINES:]


def _communicate(
    proc: subprocess.Popen,
    *,
    cancel_event: Optional[threading.Event],
    label: str,
) -> tuple[str, str]:
    """Wait for ``proc`` while honouring ``cancel_event``.

    Any interruption (cancel event, KeyboardInterrupt, other exceptions) kills
    the child process before propagating.
    """
    try:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise PipelineCancelled(f"{label} cancelled")
            try:
                stdout, stderr = proc.communicate(timeout=POLL_INTERVAL_SEC)
                return stdout or "", stderr or ""
            except subprocess.TimeoutExpired:
                continue
    except BaseException:
        proc.kill()
        proc.wait()
        logger.warning("%s: terminated in-flight process (pid=%s)", label, proc.pid)
        raise


def run_ffmpeg(
    args: Sequence[str],
    *,
    ffmpeg_path: str = "ffmpeg",
    cancel_event: Optional[threading.Event] = None,
    label: str = "ffmpeg",
) -> None:
    """Run ffmpeg with the given arguments, raising EncodeError on non-zero exit.

    Logs the full command for debuggability.
    """
    # Keep ffmpeg quiet: only errors; no stats; no banner
    cmd: List[str] = [ffmpeg_path, "-hide_banner", "-loglevel", "error", "-nostats"] + list(args)
    logger.debug("FFmpeg(%s): %s", label, _pretty(cmd))
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as exc:
        raise EncodeError(f"{label}: unable to start {ffmpeg_path}: {exc}") from exc

    _, stderr = _communicate(proc, cancel_event=cancel_event, label=label)
    if proc.returncode != 0:
        tail = _stderr_tail(stderr)
        for line in tail:
            logger.error("ffmpeg: %s", line)
        raise EncodeError(f"{label}: ffmpeg failed with exit code {proc.returncode}", tail)


def run_ffmpeg_stream(
    args: Sequence[str],
    *,
    expected_duration_sec: float,
    label: str,
    ffmpeg_path: str = "ffmpeg",
    on_progress: Optional[Callable[[float, float], None]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    """Run ffmpeg with `-progress pipe:1` and stream progress.

    Calls `on_progress(current_seconds, expected_duration_sec)` with the parsed `out_time_ms`
    converted to seconds, clamped to ``expected_duration_sec``.
    """
    from .progress import ProgressParser

    full_args: List[str] = [
        ffmpeg_path,
        "-hide_banner",
        "-loglevel",
        "error",
        "-nostats",
        "-progress",
        "pipe:1",
    ] + list(args)
    logger.info("FFmpeg(%s) start: %s", label, _pretty(full_args))

    def _report(seconds: float) -> None:
        if on_progress is not None:
            total = max(expected_duration_sec, 0.0)
            on_progress(min(max(seconds, 0.0), total), total)

    def _ended() -> None:
        logger.debug("FFmpeg(%s): progress stream reached end", label)

    parser = ProgressParser(on_time=_report, on_end=_ended)

    try:
        proc = subprocess.Popen(
            full_args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,
        )
    except OSError as exc:
        raise EncodeError(f"{label}: unable to start {ffmpeg_path}: {exc}") from exc

    # stderr is drained on a helper thread so a chatty encoder cannot block
    # the progress pipe.
    stderr_chunks: List[str] = []

    def _drain_stderr() -> None:
        assert proc.stderr is not None
        stderr_chunks.append(proc.stderr.read())

    drain = threading.Thread(target=_drain_stderr, name=f"{label}-stderr", daemon=True)
    drain.start()

    watcher_stop = threading.Event()

    def _watch_cancel() -> None:
        assert cancel_event is not None
        while not watcher_stop.wait(POLL_INTERVAL_SEC):
            if cancel_event.is_set():
                proc.kill()
                return

    watcher = None
    if cancel_event is not None:
        watcher = threading.Thread(target=_watch_cancel, name=f"{label}-cancel", daemon=True)
        watcher.start()

    assert proc.stdout is not None
    try:
        for line in proc.stdout:
            parser.feed_line(line)
    except BaseException:
        proc.kill()
        raise
    finally:
        proc.wait()
        watcher_stop.set()
        drain.join()
        if watcher is not None:
            watcher.join()

    if cancel_event is not None and cancel_event.is_set():
        logger.warning("%s: terminated in-flight process (pid=%s)", label, proc.pid)
        raise PipelineCancelled(f"{label} cancelled")
    if proc.returncode != 0:
        tail = _stderr_tail("".join(stderr_chunks))
        for line in tail:
            logger.error("ffmpeg: %s", line)
        logger.error("FFmpeg(%s) error: exit code %s", label, proc.returncode)
        raise EncodeError(f"{label}: ffmpeg failed with exit code {proc.returncode}", tail)
    if not parser.finished:
        logger.warning("FFmpeg(%s) exited without a final progress report", label)
    logger.info("FFmpeg(%s) completed", label)


def run_ffprobe(
    args: Sequence[str],
    *,
    ffprobe_path: str = "ffprobe",
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """Run ffprobe quietly and return its stdout."""
    cmd: List[str] = [ffprobe_path, "-v", "error"] + list(args)
    logger.debug("FFprobe: %s", _pretty(cmd))
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as exc:
        raise EncodeError(f"ffprobe: unable to start {ffprobe_path}: {exc}") from exc

    stdout, stderr = _communicate(proc, cancel_event=cancel_event, label="ffprobe")
    if proc.returncode != 0:
        tail = _stderr_tail(stderr)
        for line in tail:
            logger.error("ffprobe: %s", line)
        raise EncodeError(f"ffprobe failed with exit code {proc.returncode}", tail)
    return stdout
