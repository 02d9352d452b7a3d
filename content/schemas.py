"""content.schemas

Contracts for:
- GenerationRequest: what the UI asks the model for (mode + knobs).
- AbilityDraft: one structured ability returned by the model.
- AbilityPayload: the parsed answer, either a list of drafts or one text blob.

Schema strategy:
- {"abilities": [ {...}, ... ]} is the list shape (soul bank mode).
- a bare ability object is the single shape (homie attack / custom ability).
- {"lairActions": "..."} is the text shape (domain lair mode).
Field aliases seen in model output are accepted and folded into one name.
Anything that fails validation becomes a single raw-text payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from core.modes import is_known_mode

from .parsing import parse_json_object

MAX_ABILITIES = 30
RAW_TEXT_TITLE = "AI-Generated Soul Techniques"


def _text(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, (list, tuple)):
        return "\n".join(str(i).strip() for i in x if str(i).strip())
    return str(x).strip()


def _first(obj: Mapping[str, Any], *keys: str) -> str:
    for k in keys:
        v = _text(obj.get(k))
        if v:
            return v
    return ""


def normalize_str_list(items: Any) -> List[str]:
    if items is None:
        return []
    if isinstance(items, str):
        return [p.strip(" -•\t") for p in items.replace(",", "\n").splitlines() if p.strip(" -•\t")]
    if isinstance(items, (list, tuple)):
        return [str(x).strip() for x in items if str(x or "").strip()]
    return [str(items).strip()] if str(items).strip() else []


# =========================
# Request
# =========================


@dataclass(frozen=True)
class GenerationRequest:
    mode: str
    notes: str = ""
    concept: str = ""
    effect_types: List[str] = field(default_factory=list)
    outcome_types: List[str] = field(default_factory=list)
    power_level: int = 5
    soul_cost: int = 0
    assign_to: str = ""
    homie_id: Optional[str] = None
    domain_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "notes": self.notes,
            "concept": self.concept,
            "effect_types": list(self.effect_types),
            "outcome_types": list(self.outcome_types),
            "power_level": int(self.power_level),
            "soul_cost": int(self.soul_cost),
            "assign_to": self.assign_to,
            "homie_id": self.homie_id,
            "domain_id": self.domain_id,
        }


def request_from_mapping(d: Mapping[str, Any]) -> GenerationRequest:
    """Build a request from a JSON body. Raises ValueError on a missing/unknown mode."""
    mode = str(d.get("mode") or "").strip()
    if not mode:
        raise ValueError("Missing 'mode' in request body.")
    if not is_known_mode(mode):
        raise ValueError(f"Unknown mode: {mode}")
    try:
        power = int(d.get("power_level", d.get("powerLevel", 5)) or 5)
    except (TypeError, ValueError):
        power = 5
    try:
        cost = int(d.get("soul_cost", d.get("soulCost", 0)) or 0)
    except (TypeError, ValueError):
        cost = 0
    homie_id = d.get("homie_id")
    domain_id = d.get("domain_id")
    return GenerationRequest(
        mode=mode,
        notes=_text(d.get("notes")),
        concept=_text(d.get("concept")),
        effect_types=normalize_str_list(d.get("effect_types", d.get("effectTypes"))),
        outcome_types=normalize_str_list(d.get("outcome_types", d.get("outcomeTypes"))),
        power_level=max(1, min(10, power)),
        soul_cost=max(0, cost),
        assign_to=_text(d.get("assign_to", d.get("assignTo"))),
        homie_id=str(homie_id) if homie_id else None,
        domain_id=str(domain_id) if domain_id else None,
    )


# =========================
# Abilities (model output)
# =========================


@dataclass(frozen=True)
class AbilityDraft:
    name: str
    assign_to: str = ""
    action_type: str = ""
    range: str = ""
    target: str = ""
    save_dc: str = ""
    damage: str = ""
    effect: str = ""
    combo: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "assign_to": self.assign_to,
            "action_type": self.action_type,
            "range": self.range,
            "target": self.target,
            "save_dc": self.save_dc,
            "damage": self.damage,
            "effect": self.effect,
            "combo": self.combo,
            "description": self.description,
        }


def ability_from_llm(obj: Mapping[str, Any]) -> AbilityDraft:
    return AbilityDraft(
        name=_first(obj, "name", "abilityName", "title") or "Soul Ability",
        assign_to=_first(obj, "assignTo", "assign_to", "owner"),
        action_type=_first(obj, "actionType", "action_type", "action"),
        range=_first(obj, "range"),
        target=_first(obj, "target"),
        save_dc=_first(obj, "saveOrDC", "saveDC", "save_dc", "save", "dc"),
        damage=_first(obj, "damageDice", "damage"),
        effect=_first(obj, "effect", "mechanicalEffect", "mechanical"),
        combo=_first(obj, "combo", "comboNotes", "interactions"),
        description=_first(obj, "description"),
    )


def validate_ability(a: AbilityDraft) -> None:
    if len((a.name or "").strip()) < 2:
        raise ValueError("ability.name too short")
    if not any([a.effect, a.damage, a.description, a.action_type]):
        raise ValueError(f"ability {a.name!r}: no mechanical content")


@dataclass(frozen=True)
class AbilityPayload:
    abilities: List[AbilityDraft]
    text: str = ""
    structured: bool = True
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "abilities": [a.to_dict() for a in self.abilities],
            "text": self.text,
            "structured": bool(self.structured),
        }


def text_payload(text: str, *, title: str = RAW_TEXT_TITLE, error: str = "") -> AbilityPayload:
    """One card holding raw/opaque text."""
    return AbilityPayload(
        abilities=[AbilityDraft(name=title, description=(text or "").strip())],
        text=(text or "").strip(),
        structured=False,
        error=error,
    )


def abilities_from_llm(data: Mapping[str, Any]) -> List[AbilityDraft]:
    """Auto-detect list / single shapes. Raises ValueError if nothing usable is found."""
    raw_list = data.get("abilities")
    if raw_list is None:
        if any(k in data for k in ("name", "abilityName")):
            raw_list = [data]
        else:
            raise ValueError("no 'abilities' list and no ability object")
    if not isinstance(raw_list, list):
        raise ValueError("'abilities' must be a list")

    out: List[AbilityDraft] = []
    for obj in raw_list[:MAX_ABILITIES]:
        if not isinstance(obj, Mapping):
            raise ValueError("ability entries must be objects")
        a = ability_from_llm(obj)
        validate_ability(a)
        out.append(a)
    if not out:
        raise ValueError("empty abilities list")
    return out


def parse_ability_payload(raw: str, *, text_title: str = RAW_TEXT_TITLE) -> AbilityPayload:
    """The one place that turns model output into abilities.

    Structured parse first; on any parse or validation failure the whole raw
    output is kept as a single text card.
    """
    raw = (raw or "").strip()
    res = parse_json_object(raw)
    if not res.ok:
        return text_payload(raw, title=text_title, error=res.error)

    data = res.data or {}
    lair = _first(data, "lairActions", "lair_actions")
    if lair and "abilities" not in data:
        return AbilityPayload(
            abilities=[AbilityDraft(name=text_title, action_type="Lair Action", description=lair)],
            text=lair,
            structured=True,
        )

    try:
        abilities = abilities_from_llm(data)
    except ValueError as e:
        return text_payload(raw, title=text_title, error=str(e))
    return AbilityPayload(abilities=abilities, text=raw, structured=True)
