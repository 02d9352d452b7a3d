"""engine.sim_runner

Headless runner for quick sanity checks.

This keeps tests deterministic and CI-friendly by avoiding network calls.
It uses a tiny built-in fake ability provider.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from content.providers.base import GenerationError, ProviderStatus
from content.schemas import RAW_TEXT_TITLE, AbilityPayload, parse_ability_payload, request_from_mapping

from .config import AppConfig
from .pipeline import SoulFruitSession


def _fake_ability(name: str, assign_to: str = "general") -> Dict[str, str]:
    return {
        "name": name,
        "assignTo": assign_to,
        "actionType": "Action",
        "range": "60 ft",
        "target": "One creature",
        "saveOrDC": "WIS save vs. your Soul DC",
        "damageDice": "4d10 necrotic",
        "effect": "On a failed save the target is frightened until the end of its next turn.",
        "combo": "Stacks with Terror Shell.",
    }


@dataclass
class FakeAbilityProvider:
    """Deterministic provider for tests (no LLM).

    - raw: if set, returned verbatim (lets tests feed malformed output)
    - fail: if set, every call raises GenerationError with this message
    """

    raw: Optional[str] = None
    fail: str = ""
    configured: bool = True
    calls: List[Dict[str, Any]] = field(default_factory=list)

    def status(self) -> ProviderStatus:
        if not self.configured:
            return ProviderStatus(False, "none", "", error="not configured")
        return ProviderStatus(True, "fake", "fake-model")

    def make_raw(self, prompt: str) -> str:
        if "MODE: domain_lair" in prompt:
            return json.dumps({"lairActions": "1. The ground whispers.\n2. Shadows grasp.\n3. Fear spreads."})
        if "MODE: soul_bank" in prompt:
            return json.dumps({"abilities": [_fake_ability(f"Soul Technique {i}") for i in range(1, 9)]})
        return json.dumps(_fake_ability("Soul Strike"))

    def generate_abilities(
        self,
        *,
        system_prompt: str,
        prompt: str,
        temperature: float = 0.9,
        max_output_tokens: int = 4000,
        text_title: str = "",
    ) -> Tuple[AbilityPayload, str]:
        self.calls.append({"prompt": prompt, "temperature": temperature})
        if self.fail:
            raise GenerationError(self.fail)
        raw = self.raw if self.raw is not None else self.make_raw(prompt)
        return parse_ability_payload(raw, text_title=text_title or RAW_TEXT_TITLE), raw


def run_headless_session(config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Walk the main flows once (souls, boons, homies, domain, generation) and return a summary."""
    cfg = config or AppConfig()
    session = SoulFruitSession(cfg, provider=FakeAbilityProvider(), autosave=False)

    session.add_soul("Pirate Captain", 20, 10, 10, traits_text="Cruel\nGreedy")
    session.add_soul("Old Sailor", 10, 5, 5)
    bought = session.adjust_buffs("self", "temp25", 2)

    homie = session.generate_homie("Prometheus", "Sun", 10, "Fire")
    tiered = session.buy_homie("Zeus", "territory")
    domain = session.found_domain("Whole Cake Island", tier=2)
    if domain.ok and tiered.ok:
        session.bind_homie(domain.entity_id or "", tiered.entity_id or "")

    outcomes = [
        session.generate_abilities(request_from_mapping({"mode": "soul_bank"})),
        session.generate_abilities(request_from_mapping({"mode": "homie_attack", "homie_id": homie.id})),
        session.generate_abilities(request_from_mapping({"mode": "domain_lair", "domain_id": domain.entity_id})),
    ]

    return {
        "totals": session.totals(),
        "boon_purchase": bought,
        "homies": len(session.state.homies),
        "domains": len(session.state.domains),
        "abilities": len(session.state.abilities),
        "generation_ok": [o.ok for o in outcomes],
        "final": session.state,
    }
