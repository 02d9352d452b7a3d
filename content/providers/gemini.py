"""content.providers.gemini

Gemini provider (google-genai).

- One request per call: no model cascade, no key rotation, no repair pass.
  A failed call raises GenerationError and the caller keeps its state.
- Structured output is requested via response_mime_type when the SDK accepts it.

Important: This provider is UI-agnostic (no Streamlit dependency).
Secrets/env loading is done by engine.config / the Streamlit app.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ..schemas import RAW_TEXT_TITLE, AbilityPayload, parse_ability_payload
from .base import GenerationError, ProviderStatus

log = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


@dataclass
class GeminiProvider:
    api_key: str
    model: str = DEFAULT_MODEL

    # runtime
    backend: str = "none"  # genai | none
    last_error: str = ""

    _client: Any = None

    def __post_init__(self) -> None:
        self.api_key = str(self.api_key or "").strip()
        self._init_backend()

    @staticmethod
    def from_api_key_string(raw: str, model: str = DEFAULT_MODEL) -> "GeminiProvider":
        """Accepts a single key or a comma-separated list (first key wins)."""
        keys = [x.strip() for x in str(raw or "").split(",") if x.strip()]
        return GeminiProvider(keys[0] if keys else "", model=model or DEFAULT_MODEL)

    def _init_backend(self) -> None:
        self._client = None
        self.backend = "none"

        if not self.api_key:
            self.last_error = "No Gemini API key configured (GEMINI_API_KEY)."
            return

        try:
            from google import genai

            self._client = genai.Client(api_key=self.api_key)
            self.backend = "genai"
            self.last_error = ""
        except Exception as e:
            self.last_error = f"google-genai unavailable: {type(e).__name__}: {e}"
            log.warning("Gemini client init failed: %s", self.last_error)

    def status(self) -> ProviderStatus:
        if self.backend == "none" or self._client is None:
            return ProviderStatus(False, "none", "", note="", error=str(self.last_error or ""))
        return ProviderStatus(True, self.backend, self.model, note="", error="")

    def _generate_text(self, system_prompt: str, prompt: str, temperature: float, max_output_tokens: int) -> str:
        if self._client is None:
            raise GenerationError(self.last_error or "Gemini is not configured.")

        cfg: Dict[str, Any] = {
            "system_instruction": system_prompt,
            "temperature": float(temperature),
            "max_output_tokens": int(max_output_tokens),
            "response_mime_type": "application/json",
        }
        try:
            resp = self._client.models.generate_content(model=self.model, contents=prompt, config=cfg)
        except Exception as e:
            self.last_error = f"{type(e).__name__}: {e}"
            log.error("Gemini request failed: %s", self.last_error)
            raise GenerationError(f"Gemini error: {self.last_error}") from e

        txt = (getattr(resp, "text", "") or "").strip()
        if not txt:
            self.last_error = "empty response"
            raise GenerationError("Gemini returned an empty response.")
        return txt

    def generate_abilities(
        self,
        *,
        system_prompt: str,
        prompt: str,
        temperature: float = 0.9,
        max_output_tokens: int = 4000,
        text_title: str = "",
    ) -> Tuple[AbilityPayload, str]:
        raw = self._generate_text(system_prompt, prompt, temperature=temperature, max_output_tokens=max_output_tokens)
        payload = parse_ability_payload(raw, text_title=text_title or RAW_TEXT_TITLE)
        if payload.error:
            log.info("Model output kept as raw text: %s", payload.error)
        return payload, raw
