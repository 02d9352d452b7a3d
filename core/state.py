"""
core.state
Core domain data models (UI/LLM independent).

Everything the builder remembers lives in one SoulFruitState object that the
composition root (Streamlit app or headless session) owns and passes around.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def round_half_up(x: float) -> int:
    """Round .5 away from zero for positives (matches the sheet math players expect)."""
    return int(math.floor(float(x) + 0.5))


def _as_float(x: Any, default: float = 0.0) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return float(default)
    if not math.isfinite(v):
        return float(default)
    return v


def _as_int(x: Any, default: int = 0) -> int:
    return int(_as_float(x, default))


def _as_list(x: Any) -> List[Any]:
    return list(x) if isinstance(x, (list, tuple)) else []


def _as_dict(x: Any) -> Dict[Any, Any]:
    return dict(x) if isinstance(x, Mapping) else {}


ABILITY_KEYS = ("STR", "DEX", "CON", "INT", "WIS", "CHA")

HOMIE_TIER_KEYS = ("hp", "ac", "damage", "utility")
HOMIE_TIER_MAX = 5

BUFF_TARGET_TYPES = {"self", "ally", "homie"}
OWNER_KINDS = {"general", "homie", "domain"}

SELF_TARGET_ID = "self"


# =========================
# Souls
# =========================


@dataclass
class Soul:
    """A captured soul and the SPU it yields.

    soul_level / spu are derived once at creation (core.formulas) and stored.
    Only `active` and `traits_text` change afterwards.
    """

    id: str
    name: str
    power: float = 0.0        # 0..20
    fear: float = 0.0         # 0..10
    attachment: float = 0.0   # 0..10
    soul_level: int = 1       # 1..10
    spu: int = 1              # 1..1000
    active: bool = True
    traits_text: str = ""
    origin: str = "traits"    # traits | capture

    def trait_lines(self) -> List[str]:
        return [x.strip() for x in (self.traits_text or "").splitlines() if x.strip()]


# =========================
# Buffs
# =========================


@dataclass(frozen=True)
class BuffEffect:
    """Typed effect descriptor.

    type: temp_hp | speed | ac | save_bonus | adv_save | adv_check | tag
    """

    type: str
    amount: int = 0
    ability: str = ""
    tag: str = ""


@dataclass(frozen=True)
class BuffDefinition:
    id: str
    name: str
    category: str
    base_cost: int
    description: str
    effect: BuffEffect


@dataclass
class BuffTarget:
    id: str
    name: str
    type: str = "ally"  # self | ally | homie
    buffs: Dict[str, int] = field(default_factory=dict)
    notes: str = ""


# =========================
# Homies / Domains / Abilities
# =========================


@dataclass
class HomieStats:
    """Derived stat block (pure function of inputs, see core.formulas)."""

    ac: int = 10
    hp: int = 0
    speed: int = 30
    STR: int = 8
    DEX: int = 8
    CON: int = 10
    INT: int = 6
    WIS: int = 8
    CHA: int = 8
    sl_sum: int = 0
    spu_sum: int = 0
    attack_bonus: int = 4


@dataclass
class Homie:
    id: str
    name: str
    body: str = "Unknown Vessel"
    durability: int = 1
    element: str = "Soul Infused"
    soul_ids: List[str] = field(default_factory=list)
    stats: HomieStats = field(default_factory=HomieStats)
    inherited_traits: List[str] = field(default_factory=list)

    # tiered-purchase variant
    homie_type: str = "minor"  # minor | territory | buff | signature
    tiers: Dict[str, int] = field(default_factory=dict)  # empty for soul-powered homies
    total_spu_invested: int = 0
    status: str = "active"  # active | defeated
    domain_id: Optional[str] = None
    traits: str = ""


@dataclass
class Domain:
    id: str
    name: str
    tier: int = 1  # 1..10
    spu_invested: int = 0
    homie_ids: List[str] = field(default_factory=list)
    notes: str = ""
    personality: str = ""


@dataclass
class Ability:
    id: str
    name: str = ""
    owner_kind: str = "general"  # general | homie | domain
    owner_id: Optional[str] = None
    action_type: str = ""
    range: str = ""
    target: str = ""
    save_dc: str = ""
    damage: str = ""
    effect: str = ""
    combo: str = ""
    description: str = ""


# =========================
# UI sub-state + root
# =========================


def default_next_ids() -> Dict[str, int]:
    return {"soul": 1, "homie": 1, "ally": 1, "ability": 1, "domain": 1, "custom": 1}


@dataclass
class UIState:
    collapsed_panels: Dict[str, bool] = field(default_factory=lambda: {str(i): False for i in range(1, 7)})
    current_buff_target_id: str = SELF_TARGET_ID
    buff_tools_view: str = "hide"  # hide | custom | dc | both
    last_dc: Optional[int] = None
    next_ids: Dict[str, int] = field(default_factory=default_next_ids)


@dataclass
class SoulFruitState:
    """The whole state tree. Persisted as one JSON blob."""

    souls: List[Soul] = field(default_factory=list)
    buffs_catalog: Dict[str, BuffDefinition] = field(default_factory=dict)
    buff_targets: Dict[str, BuffTarget] = field(default_factory=dict)
    homies: List[Homie] = field(default_factory=list)
    domains: List[Domain] = field(default_factory=list)
    abilities: List[Ability] = field(default_factory=list)
    ui: UIState = field(default_factory=UIState)


# =========================
# Mapping bridges (persistence / API payloads)
# =========================


def soul_from_mapping(d: Mapping[str, Any]) -> Soul:
    return Soul(
        id=str(d.get("id", "")),
        name=str(d.get("name") or "Unnamed Soul"),
        power=_as_float(d.get("power", 0.0)),
        fear=_as_float(d.get("fear", 0.0)),
        attachment=_as_float(d.get("attachment", 0.0)),
        soul_level=_as_int(d.get("soul_level", d.get("soulLevel", 1)), 1),
        spu=_as_int(d.get("spu", 1), 1),
        active=bool(d.get("active", True)),
        traits_text=str(d.get("traits_text", d.get("traitsText", "")) or ""),
        origin=str(d.get("origin") or "traits"),
    )


def buff_effect_from_mapping(d: Mapping[str, Any]) -> BuffEffect:
    return BuffEffect(
        type=str(d.get("type") or "tag"),
        amount=_as_int(d.get("amount", d.get("amountPerStack", 0))),
        ability=str(d.get("ability") or ""),
        tag=str(d.get("tag") or ""),
    )


def buff_definition_from_mapping(d: Mapping[str, Any]) -> BuffDefinition:
    return BuffDefinition(
        id=str(d.get("id", "")),
        name=str(d.get("name", "")),
        category=str(d.get("category") or "custom"),
        base_cost=max(0, _as_int(d.get("base_cost", d.get("baseCost", 0)))),
        description=str(d.get("description") or ""),
        effect=buff_effect_from_mapping(_as_dict(d.get("effect"))),
    )


def buff_target_from_mapping(d: Mapping[str, Any]) -> BuffTarget:
    buffs: Dict[str, int] = {}
    for k, v in _as_dict(d.get("buffs")).items():
        n = _as_int(v)
        if n > 0:
            buffs[str(k)] = n
    t = str(d.get("type") or "ally")
    return BuffTarget(
        id=str(d.get("id", "")),
        name=str(d.get("name") or d.get("id") or ""),
        type=t if t in BUFF_TARGET_TYPES else "ally",
        buffs=buffs,
        notes=str(d.get("notes") or ""),
    )


def homie_stats_from_mapping(d: Mapping[str, Any]) -> HomieStats:
    base = HomieStats()
    kwargs = {k: _as_int(d.get(k, v), v) for k, v in asdict(base).items()}
    return HomieStats(**kwargs)


def homie_from_mapping(d: Mapping[str, Any]) -> Homie:
    raw_tiers = _as_dict(d.get("tiers"))
    tiers = {k: int(clamp(_as_int(raw_tiers.get(k, 0)), 0, HOMIE_TIER_MAX)) for k in HOMIE_TIER_KEYS} if raw_tiers else {}
    domain_id = d.get("domain_id")
    return Homie(
        id=str(d.get("id", "")),
        name=str(d.get("name") or "Unnamed Homie"),
        body=str(d.get("body") or "Unknown Vessel"),
        durability=_as_int(d.get("durability", 1), 1),
        element=str(d.get("element") or "Soul Infused"),
        soul_ids=[str(x) for x in _as_list(d.get("soul_ids") or d.get("soulIds"))],
        stats=homie_stats_from_mapping(_as_dict(d.get("stats"))),
        inherited_traits=[str(x) for x in _as_list(d.get("inherited_traits"))],
        homie_type=str(d.get("homie_type") or "minor"),
        tiers=tiers,
        total_spu_invested=max(0, _as_int(d.get("total_spu_invested", 0))),
        status=str(d.get("status") or "active"),
        domain_id=str(domain_id) if domain_id else None,
        traits=str(d.get("traits") or ""),
    )


def domain_from_mapping(d: Mapping[str, Any]) -> Domain:
    return Domain(
        id=str(d.get("id", "")),
        name=str(d.get("name") or "Unnamed Domain"),
        tier=int(clamp(_as_int(d.get("tier", 1), 1), 1, 10)),
        spu_invested=max(0, _as_int(d.get("spu_invested", 0))),
        homie_ids=[str(x) for x in _as_list(d.get("homie_ids"))],
        notes=str(d.get("notes") or ""),
        personality=str(d.get("personality") or ""),
    )


def ability_from_mapping(d: Mapping[str, Any]) -> Ability:
    kind = str(d.get("owner_kind") or "general")
    owner_id = d.get("owner_id")
    return Ability(
        id=str(d.get("id", "")),
        name=str(d.get("name") or ""),
        owner_kind=kind if kind in OWNER_KINDS else "general",
        owner_id=str(owner_id) if owner_id else None,
        action_type=str(d.get("action_type") or ""),
        range=str(d.get("range") or ""),
        target=str(d.get("target") or ""),
        save_dc=str(d.get("save_dc") or ""),
        damage=str(d.get("damage") or ""),
        effect=str(d.get("effect") or ""),
        combo=str(d.get("combo") or ""),
        description=str(d.get("description") or ""),
    )


def ui_from_mapping(d: Mapping[str, Any]) -> UIState:
    base = UIState()
    panels = dict(base.collapsed_panels)
    for k, v in _as_dict(d.get("collapsed_panels")).items():
        panels[str(k)] = bool(v)
    next_ids = dict(base.next_ids)
    for k, v in _as_dict(d.get("next_ids")).items():
        next_ids[str(k)] = max(1, _as_int(v, 1))
    last_dc = d.get("last_dc")
    return UIState(
        collapsed_panels=panels,
        current_buff_target_id=str(d.get("current_buff_target_id") or SELF_TARGET_ID),
        buff_tools_view=str(d.get("buff_tools_view") or "hide"),
        last_dc=None if last_dc is None else _as_int(last_dc),
        next_ids=next_ids,
    )


def state_to_dict(s: SoulFruitState) -> Dict[str, Any]:
    """Plain JSON-serializable tree."""
    return {
        "souls": [asdict(x) for x in s.souls],
        "buffs_catalog": {k: asdict(v) for k, v in s.buffs_catalog.items()},
        "buff_targets": {k: asdict(v) for k, v in s.buff_targets.items()},
        "homies": [asdict(x) for x in s.homies],
        "domains": [asdict(x) for x in s.domains],
        "abilities": [asdict(x) for x in s.abilities],
        "ui": asdict(s.ui),
    }


def state_from_mapping(d: Mapping[str, Any]) -> SoulFruitState:
    """Inverse of state_to_dict. Malformed entries are skipped, not fatal."""
    out = SoulFruitState()
    for raw in _as_list(d.get("souls")):
        if isinstance(raw, Mapping):
            out.souls.append(soul_from_mapping(raw))
    for k, raw in _as_dict(d.get("buffs_catalog")).items():
        if isinstance(raw, Mapping):
            out.buffs_catalog[str(k)] = buff_definition_from_mapping({"id": k, **dict(raw)})
    for k, raw in _as_dict(d.get("buff_targets")).items():
        if isinstance(raw, Mapping):
            out.buff_targets[str(k)] = buff_target_from_mapping({"id": k, **dict(raw)})
    for raw in _as_list(d.get("homies")):
        if isinstance(raw, Mapping):
            out.homies.append(homie_from_mapping(raw))
    for raw in _as_list(d.get("domains")):
        if isinstance(raw, Mapping):
            out.domains.append(domain_from_mapping(raw))
    for raw in _as_list(d.get("abilities")):
        if isinstance(raw, Mapping):
            out.abilities.append(ability_from_mapping(raw))
    out.ui = ui_from_mapping(_as_dict(d.get("ui")))
    return out


def default_state() -> SoulFruitState:
    """Empty baseline (catalog + self target are seeded by core.store.ensure_base_state)."""
    return SoulFruitState()
