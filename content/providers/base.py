"""content.providers.base

Provider interfaces.

A provider's job is to turn (system prompt, user prompt) into an
AbilityPayload. It never touches the entity store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Tuple

from ..schemas import AbilityPayload


class GenerationError(RuntimeError):
    """The remote model could not be reached or returned nothing usable."""


@dataclass(frozen=True)
class ProviderStatus:
    ok: bool
    backend: str
    model: str
    note: str = ""
    error: str = ""


class AbilityProvider(Protocol):
    def status(self) -> ProviderStatus: ...

    def generate_abilities(
        self,
        *,
        system_prompt: str,
        prompt: str,
        temperature: float = 0.9,
        max_output_tokens: int = 4000,
        text_title: str = "",
    ) -> Tuple[AbilityPayload, str]:
        """Return (payload, raw_text). Raises GenerationError on transport/service failure."""
        ...
