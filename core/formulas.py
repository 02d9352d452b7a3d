"""
core.formulas
Derived-stat and cost-curve rules (pure functions, no state, no I/O).

- soul level / SPU from traits
- terror/capture yield
- exponential boon stack costs
- homie stat blocks (soul-powered and tiered)
- domain stats, soul DC

Every input is clamped to its domain before use; nothing here raises on bad numbers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Tuple

from .state import (
    ABILITY_KEYS,
    HOMIE_TIER_KEYS,
    HOMIE_TIER_MAX,
    BuffDefinition,
    BuffTarget,
    HomieStats,
    Soul,
    clamp,
    round_half_up,
)


def _num(x: object, default: float = 0.0) -> float:
    try:
        v = float(x)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return float(default)
    return v if math.isfinite(v) else float(default)


# -------------------------
# Souls
# -------------------------


@dataclass(frozen=True)
class SoulRating:
    soul_level: int
    spu: int
    p: float
    f: float
    a: float
    overall: float


def soul_trait_inputs(power: object, fear: object, attachment: object) -> Tuple[float, float, float]:
    """Clamped (power, fear, attachment); junk and NaN read as 0."""
    return (
        clamp(_num(power), 0.0, 20.0),
        clamp(_num(fear), 0.0, 10.0),
        clamp(_num(attachment), 0.0, 10.0),
    )


def compute_soul_level(power: float, fear: float, attachment: float) -> SoulRating:
    """Multiplicative soul rating.

    A weak score in any one trait drags the whole product down, and SPU scales
    with overall**2 so near-perfect souls are rare.
    """
    power, fear, attachment = soul_trait_inputs(power, fear, attachment)
    p_norm = power / 20.0
    f_norm = fear / 10.0
    a_norm = attachment / 10.0

    p = 0.4 + 0.7 * p_norm
    f = 0.4 + 0.6 * f_norm
    a = 0.4 + 0.6 * a_norm

    overall = p * f * a
    sl = int(clamp(round_half_up(overall * 10), 1, 10))
    spu = int(clamp(round_half_up(overall * overall * 1000), 1, 1000))
    return SoulRating(soul_level=sl, spu=spu, p=p, f=f, a=a, overall=overall)


@dataclass(frozen=True)
class CaptureResult:
    failure_margin: int
    terror_roll: int
    spu_gained: int
    max_hp_lost: int

    @property
    def captured(self) -> bool:
        return self.failure_margin > 0


def terror_capture(soul_dc: int, save_result: int, d20_roll: int, soul_level: int) -> CaptureResult:
    """Soul capture on a failed save. A made save yields nothing, whatever the d20 says."""
    dc = int(_num(soul_dc))
    save = int(_num(save_result))
    d20 = int(clamp(int(_num(d20_roll, 1)), 1, 20))
    sl = int(clamp(int(_num(soul_level, 1)), 1, 10))

    margin = max(0, dc - save)
    terror = d20 + margin
    if margin <= 0:
        return CaptureResult(failure_margin=0, terror_roll=terror, spu_gained=0, max_hp_lost=0)
    return CaptureResult(
        failure_margin=margin,
        terror_roll=terror,
        spu_gained=max(0, (terror * sl) // 4),
        max_hp_lost=terror // 2,
    )


def soul_dc(proficiency_bonus: int, ability_modifier: int, soul_level: int) -> int:
    sl = int(clamp(int(_num(soul_level)), 0, 10))
    return 8 + int(_num(proficiency_bonus)) + int(_num(ability_modifier)) + sl // 2


# -------------------------
# Boon stacks
# -------------------------


def stack_cost(base_cost: int, index: int) -> int:
    """Cost of the index-th stack (1-based). Integer half-up rounding, no float drift."""
    base = max(0, int(base_cost))
    if index <= 0:
        return 0
    if index == 1:
        return base
    k = index - 1
    # round(base * (1 + 0.5*k^2)) == round(base * (2 + k^2) / 2)
    return (base * (2 + k * k) + 1) // 2


def buff_stack_cost(base_cost: int, count: int) -> int:
    return sum(stack_cost(base_cost, i) for i in range(1, max(0, int(count)) + 1))


def next_buff_increment_cost(base_cost: int, count: int) -> int:
    return stack_cost(base_cost, max(0, int(count)) + 1)


def target_spend(target: BuffTarget, catalog: Mapping[str, BuffDefinition]) -> int:
    total = 0
    for buff_id, count in (target.buffs or {}).items():
        d = catalog.get(buff_id)
        if d is None:
            continue
        total += buff_stack_cost(d.base_cost, count)
    return total


@dataclass
class BuffTotals:
    temp_hp: int = 0
    speed: int = 0
    ac: int = 0
    saves: Dict[str, int] = field(default_factory=lambda: {k: 0 for k in ABILITY_KEYS})
    adv_saves: Dict[str, bool] = field(default_factory=dict)
    adv_checks: Dict[str, bool] = field(default_factory=dict)
    tags: Dict[str, int] = field(default_factory=dict)


def buff_totals_for_target(target: BuffTarget, catalog: Mapping[str, BuffDefinition]) -> BuffTotals:
    totals = BuffTotals()
    for buff_id, count in (target.buffs or {}).items():
        d = catalog.get(buff_id)
        if d is None or count <= 0:
            continue
        eff = d.effect
        if eff.type == "temp_hp":
            totals.temp_hp += eff.amount * count
        elif eff.type == "speed":
            totals.speed += eff.amount * count
        elif eff.type == "ac":
            totals.ac += eff.amount * count
        elif eff.type == "save_bonus" and eff.ability in totals.saves:
            totals.saves[eff.ability] += eff.amount * count
        elif eff.type == "adv_save":
            totals.adv_saves[eff.ability] = True
        elif eff.type == "adv_check":
            totals.adv_checks[eff.ability] = True
        elif eff.type == "tag" and eff.tag:
            totals.tags[eff.tag] = totals.tags.get(eff.tag, 0) + count
    return totals


def describe_buff_total(d: BuffDefinition, count: int) -> str:
    eff = d.effect
    if eff.type == "temp_hp":
        return f"Total: +{eff.amount * count} temp HP."
    if eff.type == "speed":
        return f"Total: +{eff.amount * count} ft speed."
    if eff.type == "ac":
        return f"Total: +{eff.amount * count} AC."
    if eff.type == "save_bonus":
        return f"Total: +{eff.amount * count} to {eff.ability} saves."
    return ""


# -------------------------
# Homies
# -------------------------


def homie_stats(durability: int, souls: Iterable[Soul]) -> HomieStats:
    """Soul-powered stat block from durability and the powering souls' totals."""
    dur = int(clamp(int(_num(durability, 1)), 0, 20))
    souls = list(souls)
    sl_sum = sum(int(s.soul_level) for s in souls)
    spu_sum = sum(int(s.spu) for s in souls)

    strength = 8 + dur + sl_sum // 4
    return HomieStats(
        ac=10 + dur // 2 + sl_sum // 3,
        hp=dur * 10 + round_half_up(spu_sum / 8),
        speed=30 + sl_sum // 2,
        STR=strength,
        DEX=8 + sl_sum // 3,
        CON=10 + dur + sl_sum // 5,
        INT=6 + sl_sum // 5,
        WIS=8 + sl_sum // 5,
        CHA=8 + sl_sum // 4,
        sl_sum=sl_sum,
        spu_sum=spu_sum,
        attack_bonus=(strength - 10) // 2 + 5,
    )


def gather_inherited_traits(souls: Iterable[Soul]) -> List[str]:
    seen: Dict[str, None] = {}
    for s in souls:
        for line in s.trait_lines():
            seen.setdefault(line, None)
    return list(seen)


@dataclass(frozen=True)
class HomieTypeSpec:
    key: str
    label: str
    base_cost: int
    base_hp: int
    base_ac: int
    hp_per_tier: int
    ac_per_tier: int
    cost_per_tier: int


HOMIE_TYPES: Dict[str, HomieTypeSpec] = {
    "minor": HomieTypeSpec("minor", "Minor Homie", base_cost=50, base_hp=20, base_ac=12, hp_per_tier=8, ac_per_tier=1, cost_per_tier=25),
    "territory": HomieTypeSpec("territory", "Territory Homie", base_cost=100, base_hp=45, base_ac=13, hp_per_tier=12, ac_per_tier=1, cost_per_tier=40),
    "buff": HomieTypeSpec("buff", "Buff Homie", base_cost=75, base_hp=25, base_ac=12, hp_per_tier=8, ac_per_tier=1, cost_per_tier=30),
    "signature": HomieTypeSpec("signature", "Signature Homie", base_cost=200, base_hp=70, base_ac=15, hp_per_tier=15, ac_per_tier=1, cost_per_tier=60),
}


def get_homie_type(key: str) -> HomieTypeSpec:
    return HOMIE_TYPES.get(key, HOMIE_TYPES["minor"])


def clamp_tiers(tiers: Mapping[str, int]) -> Dict[str, int]:
    return {k: int(clamp(int(_num(tiers.get(k, 0))), 0, HOMIE_TIER_MAX)) for k in HOMIE_TIER_KEYS}


@dataclass(frozen=True)
class TieredHomieStats:
    hp: int
    ac: int
    damage_tier: int
    utility_tier: int


def tiered_homie_stats(homie_type: str, tiers: Mapping[str, int]) -> TieredHomieStats:
    spec = get_homie_type(homie_type)
    t = clamp_tiers(tiers)
    return TieredHomieStats(
        hp=spec.base_hp + spec.hp_per_tier * t["hp"],
        ac=spec.base_ac + spec.ac_per_tier * t["ac"],
        damage_tier=t["damage"],
        utility_tier=t["utility"],
    )


# -------------------------
# Domains
# -------------------------

DOMAIN_MIN_TIER = 1
DOMAIN_MAX_TIER = 10
DOMAIN_COST_PER_TIER = 100


@dataclass(frozen=True)
class DomainStats:
    tier: int
    control_range_ft: int
    passive_fear_dc: int
    size: str
    lair_actions: str


_DOMAIN_BANDS = [
    (2, "Small (a building or grove)", "Once per round the walls whisper: one intruder makes a WIS save or is frightened until the end of its next turn."),
    (4, "Medium (a district)", "The ground or weather shifts at your command: difficult terrain or light obscurement in a 20-ft radius."),
    (6, "Large (a town)", "Homies in the domain may take a reaction attack; a living structure can restrain one creature (STR save)."),
    (8, "Huge (an island)", "Weather and terrain turn hostile: a 30-ft storm or quake zone forces saves or deals soul-tinged damage."),
    (10, "Colossal (a sea region)", "The land itself is a homie: drain lifespan, summon lesser homies, and cast fear across the whole territory."),
]


def clamp_domain_tier(tier: int) -> int:
    return int(clamp(int(_num(tier, DOMAIN_MIN_TIER)), DOMAIN_MIN_TIER, DOMAIN_MAX_TIER))


def domain_stats(tier: int) -> DomainStats:
    t = clamp_domain_tier(tier)
    size, lair = _DOMAIN_BANDS[-1][1], _DOMAIN_BANDS[-1][2]
    for top, band_size, band_lair in _DOMAIN_BANDS:
        if t <= top:
            size, lair = band_size, band_lair
            break
    return DomainStats(
        tier=t,
        control_range_ft=t * 100,
        passive_fear_dc=10 + t // 2 + 2,
        size=size,
        lair_actions=lair,
    )


def domain_tier_cost(from_tier: int, to_tier: int) -> int:
    """Marginal SPU to move a domain up. Going down costs (and refunds) nothing."""
    a = clamp_domain_tier(from_tier)
    b = clamp_domain_tier(to_tier)
    return max(0, b - a) * DOMAIN_COST_PER_TIER
