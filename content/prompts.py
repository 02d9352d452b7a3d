"""content.prompts

Prompt builders for ability generation.

The model only writes flavor + mechanics text. SPU, soul levels and stat
blocks are computed by core and passed in as context; the model never decides
costs.

Snapshot shape (built by engine.pipeline.build_snapshot):
  {"souls": [...], "homies": [...], "domains": [...], "totals": {...}}
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

from core.modes import get_mode_spec

from .schemas import GenerationRequest

ABILITY_JSON_SHAPE = """{
  "name": "string",
  "assignTo": "general | <homie name> | Domain: <domain name>",
  "actionType": "Action | Bonus Action | Reaction | Lair Action",
  "range": "string",
  "target": "string",
  "saveOrDC": "e.g. WIS save vs. DC 18, or no save",
  "damageDice": "e.g. 6d10 necrotic + 4d8 thunder",
  "effect": "concise but complete mechanical effect",
  "combo": "synergies with homies / domains / souls"
}"""


def build_system_prompt() -> str:
    return """
You are a rules-savvy D&D 5e / One Piece hybrid designer.
You design powerful but usable homebrew abilities, homie attacks and domain lair actions
for a character who wields Big Mom's Soul-Soul Fruit (Soru Soru no Mi).

VERY IMPORTANT:
- Respond with a SINGLE JSON object. No markdown, no code fences, no commentary.
- Match the exact format requested in the user message.
- No trailing commas.
- Values are short but evocative, readable on a reference card.
""".strip()


def _lines(items: List[str]) -> str:
    return "\n".join(items) if items else "None"


def describe_souls(souls: List[Mapping[str, Any]]) -> str:
    return _lines([
        f"- {s.get('name', '?')}: SL {s.get('soul_level', '?')}, {s.get('spu', '?')} SPU"
        f"{'' if s.get('active', True) else ' (inactive)'}, traits: {(s.get('traits_text') or 'none').strip()}"
        for s in souls
    ])


def describe_homies(homies: List[Mapping[str, Any]]) -> str:
    out = []
    for h in homies:
        st = dict(h.get("stats") or {})
        kind = h.get("homie_type", "minor") if h.get("tiers") else "soul-powered"
        out.append(
            f"- {h.get('name', '?')} [{kind}]: {h.get('body', '?')}, "
            f"element {h.get('element', '?')}, AC {st.get('ac', '?')}, HP {st.get('hp', '?')}, "
            f"speed {st.get('speed', '?')} ft, SPU {h.get('total_spu_invested', 0)}, status {h.get('status', 'active')}"
        )
    return _lines(out)


def describe_domains(domains: List[Mapping[str, Any]]) -> str:
    return _lines([
        f"- {d.get('name', '?')}: Tier {d.get('tier', 1)}, range {d.get('control_range_ft', '?')} ft, "
        f"fear DC {d.get('passive_fear_dc', '?')}, size {d.get('size', '?')}, "
        f"personality: {(d.get('personality') or 'none').strip()}"
        for d in domains
    ])


def _find(items: List[Mapping[str, Any]], item_id: Optional[str]) -> Optional[Mapping[str, Any]]:
    if not item_id:
        return None
    return next((x for x in items if str(x.get("id")) == str(item_id)), None)


def build_soul_bank_prompt(req: GenerationRequest, snapshot: Mapping[str, Any]) -> str:
    souls = list(snapshot.get("souls") or [])
    homies = list(snapshot.get("homies") or [])
    domains = list(snapshot.get("domains") or [])
    totals = dict(snapshot.get("totals") or {})
    return f"""
MODE: soul_bank

Design soul- and homie-themed abilities from this material.

SOUL BANK (count: {len(souls)}; SPU total {totals.get('total', 0)}, available {totals.get('available', 0)})
{describe_souls(souls)}

HOMIES (count: {len(homies)})
{describe_homies(homies)}

DOMAINS (count: {len(domains)})
{describe_domains(domains)}

USER NOTES:
{req.notes or "(none)"}

Guidelines:
- Mix homie abilities, healing/support, territory/lair actions, signature homie powers
  and Soul-Fruit themed abilities (fear, HP drain, soul fragments).
- Some abilities must reference homie or domain names above; others are "general".
- At least 8 abilities, up to ~20 depending on how much material there is.

Return:
{{
  "abilities": [
{ABILITY_JSON_SHAPE}
  ]
}}
""".strip()


def build_homie_attack_prompt(req: GenerationRequest, snapshot: Mapping[str, Any]) -> str:
    homies = list(snapshot.get("homies") or [])
    homie = _find(homies, req.homie_id) or {}
    return f"""
MODE: homie_attack

Design one signature multi-step attack for this homie.

Homie:
{json.dumps(dict(homie), ensure_ascii=False, indent=2)}

Homie roster:
{describe_homies(homies)}

Domains:
{describe_domains(list(snapshot.get("domains") or []))}

Concept from user:
{req.concept or "None given."}

Effect types requested:
{", ".join(req.effect_types) or "None specified"}

Desired power level (1-10): {int(req.power_level)}

Return one object:
{ABILITY_JSON_SHAPE}
""".strip()


def build_domain_lair_prompt(req: GenerationRequest, snapshot: Mapping[str, Any]) -> str:
    domains = list(snapshot.get("domains") or [])
    domain = _find(domains, req.domain_id) or {}
    return f"""
MODE: domain_lair

Write 3-5 lair actions for this domain in the style of D&D 5e lair actions mixed with soul logic.

Domain:
{json.dumps(dict(domain), ensure_ascii=False, indent=2)}

All domains:
{describe_domains(domains)}

Homies:
{describe_homies(list(snapshot.get("homies") or []))}

Notes:
{req.notes or "(none)"}

Return:
{{
  "lairActions": "a short block of text with 3-5 numbered lair actions"
}}
""".strip()


def build_generic_ability_prompt(req: GenerationRequest, snapshot: Mapping[str, Any]) -> str:
    return f"""
MODE: generic_ability

Design one powerful, cinematic ability for the Soul-Soul Fruit toolkit.

Assign this ability to:
{req.assign_to or "general"}

Soul bank:
{describe_souls(list(snapshot.get("souls") or []))}

Homies:
{describe_homies(list(snapshot.get("homies") or []))}

Domains:
{describe_domains(list(snapshot.get("domains") or []))}

Requested effect types:
{", ".join(req.effect_types) or "None specified"}

Requested outcome / shape:
{", ".join(req.outcome_types) or "None specified"}

Extra notes / combo intent:
{req.notes or "None"}

Power level (1-10): {int(req.power_level)}
Optional soul cost (SPU): {int(req.soul_cost)}

Return one object:
{ABILITY_JSON_SHAPE}
""".strip()


_BUILDERS = {
    "soul_bank": build_soul_bank_prompt,
    "homie_attack": build_homie_attack_prompt,
    "domain_lair": build_domain_lair_prompt,
    "generic_ability": build_generic_ability_prompt,
}


def build_user_prompt(req: GenerationRequest, snapshot: Mapping[str, Any]) -> str:
    spec = get_mode_spec(req.mode)
    return _BUILDERS[spec.key](req, snapshot)


def build_prompts(req: GenerationRequest, snapshot: Mapping[str, Any]) -> Dict[str, str]:
    return {"system": build_system_prompt(), "user": build_user_prompt(req, snapshot)}
