"""Thin wrapper over google-genai with retries for transient provider errors."""
import logging
import threading
import time
from typing import Optional

from google import genai
from google.genai import types

from schedule_scrapers.config import GeminiSettings, settings as global_settings
from schedule_scrapers.errors import AIServiceUnavailable

logger = logging.getLogger(__name__)

RETRYABLE_TOKENS = (
    "503",
    "overloaded",
    "unavailable",
    "timeout",
    "timed out",
    "deadline exceeded",
    "429",
    "rate limit",
    "resource exhausted",
)


def is_retryable_error(error: Exception) -> bool:
    lowered = str(error).lower()
    return any(token in lowered for token in RETRYABLE_TOKENS)


class GeminiClient:
    def __init__(self, gemini_settings: Optional[GeminiSettings] = None, client: Optional[genai.Client] = None):
        self.settings = gemini_settings or global_settings.gemini
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def client(self) -> genai.Client:
        """Created on first use so the key is only required when the AI is actually called."""
        with self._client_lock:
            if self._client is None:
                if self.settings.api_key is None:
                    raise AIServiceUnavailable("Gemini API key not found. Set GEMINI_API_KEY or GOOGLE_API_KEY.")
                self._client = genai.Client(api_key=self.settings.api_key.get_secret_value())
            return self._client

    def generate(self, prompt: str, image_bytes: Optional[bytes] = None, mime_type: Optional[str] = None) -> str:
        """Send the prompt (and optional inline image) and return the response text."""
        if image_bytes is not None:
            contents = [types.Part.from_bytes(data=image_bytes, mime_type=mime_type or "image/jpeg"), prompt]
        else:
            contents = prompt

        attempts = self.settings.max_retries + 1
        for attempt in range(attempts):
            try:
                response = self.client.models.generate_content(
                    model=self.settings.model,
                    contents=contents,
                    config={"temperature": self.settings.temperature},
                )
                return response.text or ""
            except AIServiceUnavailable:
                raise
            except Exception as e:
                if is_retryable_error(e) and attempt < attempts - 1:
                    wait_time = min(
                        self.settings.initial_backoff_sec * (self.settings.backoff_multiplier ** attempt),
                        self.settings.max_backoff_sec,
                    )
                    logger.warning(f"Gemini transient error ({e}); retrying in {wait_time:.1f}s "
                                   f"(attempt {attempt + 1}/{attempts}).")
                    time.sleep(wait_time)
                    continue
                raise
        raise AIServiceUnavailable(f"Gemini call failed after {attempts} attempts")
