"""Minimal OpenAI-compatible text-to-speech HTTP client."""
from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini-tts"


class TTSServiceError(RuntimeError):
    """Raised when the speech service is unreachable or rejects the request."""


class OpenAITTSClient:
    """Thin wrapper around the `/audio/speech` endpoint.

    Errors are surfaced with the service's own message and never retried.
    """

    def __init__(self, config: Dict[str, Any]) -> None:
        load_dotenv()
        apis_cfg = config.get("apis", {}) if isinstance(config, dict) else {}
        tts_cfg = apis_cfg.get("openai_tts", {}) if isinstance(apis_cfg, dict) else {}
        if not isinstance(tts_cfg, dict):
            tts_cfg = {}

        self.base_url = str(tts_cfg.get("base_url") or DEFAULT_BASE_URL).rstrip("/")
        key_cfg = str(tts_cfg.get("api_key") or "").strip()
        self.api_key = key_cfg or os.getenv("OPENAI_API_KEY", "").strip() or None
        self.model = (
            os.getenv("TTS_MODEL", "").strip()
            or str(tts_cfg.get("model") or "").strip()
            or DEFAULT_MODEL
        )
        self.response_format = str(tts_cfg.get("response_format") or "wav")
        self.timeout_connect = float(tts_cfg.get("timeout_connect", 10) or 10)
        self.timeout_read = float(tts_cfg.get("timeout_read", 120) or 120)
        self.max_input_chars = int(tts_cfg.get("max_input_chars", 4096) or 4096)

        if not self.api_key:
            logger.warning("OpenAI API key missing. Set OPENAI_API_KEY or apis.openai_tts.api_key.")

        logger.info(
            "TTS client initialised: base_url=%s model=%s format=%s",
            self.base_url,
            self.model,
            self.response_format,
        )

    def synthesize(
        self,
        text: str,
        output_path: Path,
        *,
        voice: str,
        model: Optional[str] = None,
    ) -> Path:
        """Write the synthesized audio for ``text`` to ``output_path``."""
        if len(text) > self.max_input_chars:
            raise TTSServiceError(
                f"input is {len(text)} characters; the service accepts at most {self.max_input_chars}"
            )

        payload = {
            "model": model or self.model,
            "voice": voice,
            "input": text,
            "response_format": self.response_format,
        }
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        url = f"{self.base_url}/audio/speech"
        start = time.monotonic()
        try:
            response = requests.post(
                url,
                json=payload,
                headers=headers,
                timeout=(self.timeout_connect, self.timeout_read),
            )
        except requests.RequestException as exc:
            raise TTSServiceError(f"speech service unreachable: {exc}") from exc

        elapsed = time.monotonic() - start
        logger.info("TTS response: status=%s elapsed=%.2fs", response.status_code, elapsed)
        if response.status_code >= 400:
            raise TTSServiceError(f"HTTP {response.status_code}: {self._error_message(response)}")
        if not response.content:
            raise TTSServiceError("speech service returned an empty body")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(response.content)
        return output_path

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text.strip() or response.reason or "unknown error"
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str):
                return error
        return str(data)
