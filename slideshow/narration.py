from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol

from logging_utils import get_logger
from openai_tts_client import OpenAITTSClient, TTSServiceError

from .errors import SynthesisError
from .models import SUPPORTED_VOICES

logger = get_logger(__name__)


class SpeechEngine(Protocol):
    def synthesize(
        self,
        text: str,
        output_path: Path,
        *,
        voice: str,
        model: Optional[str] = None,
    ) -> Path:
        ...


class NarrationSynthesizer:
    """Produce the raw narration artifact for a request."""

    def __init__(self, engine: SpeechEngine) -> None:
        self.engine = engine

    @classmethod
    def from_config(cls, config: dict) -> "NarrationSynthesizer":
        return cls(OpenAITTSClient(config))

    def synthesize(
        self,
        text: str,
        output_path: Path,
        *,
        voice: str,
        model: Optional[str] = None,
    ) -> Path:
        if voice not in SUPPORTED_VOICES:
            raise SynthesisError(f"voice '{voice}' is not offered by the speech service")
        logger.info("Synthesizing narration: %d chars, voice=%s", len(text), voice)
        try:
            path = self.engine.synthesize(text, output_path, voice=voice, model=model)
        except TTSServiceError as exc:
            raise SynthesisError(str(exc)) from exc
        if not path.exists() or path.stat().st_size == 0:
            raise SynthesisError(f"speech service produced no audio at {path}")
        return path
