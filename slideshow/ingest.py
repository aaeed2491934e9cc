"""Stage request inputs (local files or URLs) into the run workspace.

Images are written as ``{index:04d}-{name}{ext}`` so the caller's order
travels with the file as a numeric prefix.
"""
from __future__ import annotations

import re
import shutil
import threading
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import urlparse

import requests

from logging_utils import get_logger

from .errors import InputValidationError, PipelineCancelled

logger = get_logger(__name__)

DOWNLOAD_TIMEOUT = (10, 60)
CHUNK_SIZE = 64 * 1024

_CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "audio/aac": ".m4a",
    "audio/wav": ".wav",
    "audio/ogg": ".ogg",
}


def safe_base_name(name: str) -> str:
    """Keep only the final path component and replace unusual characters."""
    base = re.split(r"[\\/]", name)[-1]
    return re.sub(r"[^\w.-]", "_", base)


def ext_from_content_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    mime = content_type.split(";")[0].strip().lower()
    return _CONTENT_TYPE_EXTENSIONS.get(mime, "")


def is_url(source: str) -> bool:
    return urlparse(source).scheme in {"http", "https"}


def _split_name(name: str) -> tuple[str, str]:
    path = Path(name)
    return path.stem, path.suffix


def _check_cancelled(cancel_event: Optional[threading.Event], label: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise PipelineCancelled(f"{label} cancelled")


class InputStager:
    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self._session = session or requests.Session()

    def stage_images(
        self,
        sources: Sequence[str],
        target_dir: Path,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Path]:
        target_dir.mkdir(parents=True, exist_ok=True)
        staged: List[Path] = []
        for index, source in enumerate(sources):
            _check_cancelled(cancel_event, "image staging")
            fallback = f"image-{index}"
            if is_url(source):
                staged.append(self._download(source, target_dir, index=index, fallback=fallback))
            else:
                staged.append(self._copy_local(source, target_dir, index=index, fallback=fallback))
        logger.info("Staged %d image(s) into %s", len(staged), target_dir)
        return staged

    def stage_music(
        self,
        source: str,
        target_dir: Path,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        _check_cancelled(cancel_event, "music staging")
        target_dir.mkdir(parents=True, exist_ok=True)
        if is_url(source):
            response = self._get(source)
            ext = self._url_extension(source) or ext_from_content_type(response.headers.get("content-type"))
            return self._write_stream(response, target_dir / f"bgm{ext or '.mp3'}")

        path = Path(source).expanduser()
        if not path.is_file():
            raise InputValidationError(f"background music not found: {source}")
        target = target_dir / f"bgm{path.suffix or '.mp3'}"
        shutil.copyfile(path, target)
        return target

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _copy_local(self, source: str, target_dir: Path, *, index: int, fallback: str) -> Path:
        path = Path(source).expanduser()
        if not path.is_file():
            raise InputValidationError(f"image not found: {source}")
        stem, ext = _split_name(safe_base_name(path.name))
        target = target_dir / f"{index:04d}-{stem or fallback}{ext}"
        shutil.copyfile(path, target)
        return target

    def _download(self, url: str, target_dir: Path, *, index: int, fallback: str) -> Path:
        response = self._get(url)
        url_base = safe_base_name(Path(urlparse(url).path).name)
        stem, url_ext = _split_name(url_base) if url_base else ("", "")
        ext = url_ext or ext_from_content_type(response.headers.get("content-type"))
        target = target_dir / f"{index:04d}-{stem or fallback}{ext}"
        return self._write_stream(response, target)

    def _get(self, url: str) -> requests.Response:
        try:
            response = self._session.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT)
        except requests.RequestException as exc:
            raise InputValidationError(f"failed to download {url}: {exc}") from exc
        if not response.ok:
            response.close()
            raise InputValidationError(f"failed to download {url}: {response.status_code}")
        return response

    @staticmethod
    def _url_extension(url: str) -> str:
        return Path(urlparse(url).path).suffix

    @staticmethod
    def _write_stream(response: requests.Response, target: Path) -> Path:
        try:
            with target.open("wb") as fh:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
        except requests.RequestException as exc:
            raise InputValidationError(f"download interrupted for {target.name}: {exc}") from exc
        finally:
            response.close()
        logger.debug("Downloaded %s", target.name)
        return target
