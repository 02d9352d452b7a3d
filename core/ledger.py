"""
core.ledger
SPU economy: totals, spend gate, refunds and the purchases that go through them.

Totals are always recomputed from the store (no cached running sums):

    available = max(0, active soul SPU - (boon stacks + homie invested + domain invested))

Purchases are check-then-commit inside one call. A False/None return means
"insufficient SPU" (or an unknown id); the caller must tell the user.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .formulas import (
    DOMAIN_COST_PER_TIER,
    clamp_domain_tier,
    domain_tier_cost,
    get_homie_type,
    next_buff_increment_cost,
    target_spend,
)
from .state import HOMIE_TIER_KEYS, HOMIE_TIER_MAX, Domain, Homie, SoulFruitState
from .store import EntityStore


@dataclass(frozen=True)
class SpuTotals:
    total: int
    spent: int
    available: int


def total_soul_spu(state: SoulFruitState) -> int:
    return sum(int(s.spu) for s in state.souls if s.active)


def total_spent(state: SoulFruitState) -> int:
    spent = sum(target_spend(t, state.buffs_catalog) for t in state.buff_targets.values())
    spent += sum(int(h.total_spu_invested) for h in state.homies)
    spent += sum(int(d.spu_invested) for d in state.domains)
    return spent


def compute_totals(state: SoulFruitState) -> SpuTotals:
    total = total_soul_spu(state)
    spent = total_spent(state)
    return SpuTotals(total=total, spent=spent, available=max(0, total - spent))


def can_spend(state: SoulFruitState, amount: int) -> bool:
    return max(0, int(amount)) <= compute_totals(state).available


def try_spend(state: SoulFruitState, entity: Any, field: str, amount: int) -> bool:
    """Add `amount` to entity.<field> if affordable. No mutation on False."""
    amount = max(0, int(amount))
    if not can_spend(state, amount):
        return False
    setattr(entity, field, int(getattr(entity, field, 0) or 0) + amount)
    return True


def refund_tiers(entity: Any, field: str, steps_down: int, cost_per_tier: int, floor: int) -> int:
    """Lower entity.<field> by steps_down * cost_per_tier, never below `floor`. Returns the refund."""
    current = int(getattr(entity, field, 0) or 0)
    target = max(int(floor), current - max(0, int(steps_down)) * max(0, int(cost_per_tier)))
    target = min(current, target)
    setattr(entity, field, target)
    return current - target


# -------------------------
# Boon stacks
# -------------------------


def adjust_buff_stacks(store: EntityStore, target_id: str, buff_id: str, delta: int) -> bool:
    """+n buys stacks one at a time (each gated); -n sells back for free (spend is recomputed)."""
    state = store.state
    target = state.buff_targets.get(target_id)
    buff = state.buffs_catalog.get(buff_id)
    if target is None or buff is None:
        return False

    current = int(target.buffs.get(buff_id, 0))
    if delta <= 0:
        store.set_stack_count(target_id, buff_id, max(0, current + int(delta)))
        return True

    wanted = current + int(delta)
    # price the whole step before touching anything
    cost = sum(next_buff_increment_cost(buff.base_cost, n) for n in range(current, wanted))
    if not can_spend(state, cost):
        return False
    store.set_stack_count(target_id, buff_id, wanted)
    return True


# -------------------------
# Tiered homies
# -------------------------


def create_tiered_homie(store: EntityStore, name: str, homie_type: str) -> Optional[Homie]:
    spec = get_homie_type(homie_type)
    if not can_spend(store.state, spec.base_cost):
        return None
    homie = store.create_tiered_homie(name, spec.key)
    try_spend(store.state, homie, "total_spu_invested", spec.base_cost)
    return homie


def raise_homie_tier(store: EntityStore, homie_id: str, tier_key: str) -> bool:
    homie = store.get_homie(homie_id)
    if homie is None or not homie.tiers or tier_key not in HOMIE_TIER_KEYS:
        return False
    level = int(homie.tiers.get(tier_key, 0))
    if level >= HOMIE_TIER_MAX:
        return False
    spec = get_homie_type(homie.homie_type)
    if not try_spend(store.state, homie, "total_spu_invested", spec.cost_per_tier):
        return False
    homie.tiers[tier_key] = level + 1
    return True


def lower_homie_tier(store: EntityStore, homie_id: str, tier_key: str) -> Optional[int]:
    """Drop one tier. Returns the SPU refunded, or None if nothing changed."""
    homie = store.get_homie(homie_id)
    if homie is None or tier_key not in HOMIE_TIER_KEYS:
        return None
    level = int(homie.tiers.get(tier_key, 0))
    if level <= 0:
        return None
    spec = get_homie_type(homie.homie_type)
    homie.tiers[tier_key] = level - 1
    return refund_tiers(homie, "total_spu_invested", 1, spec.cost_per_tier, floor=spec.base_cost)


# -------------------------
# Domains
# -------------------------


def create_domain(store: EntityStore, name: str, tier: int = 1, notes: str = "", personality: str = "") -> Optional[Domain]:
    t = clamp_domain_tier(tier)
    cost = t * DOMAIN_COST_PER_TIER
    if not can_spend(store.state, cost):
        return None
    domain = store.create_domain(name, t, notes=notes, personality=personality)
    try_spend(store.state, domain, "spu_invested", cost)
    return domain


def set_domain_tier(store: EntityStore, domain_id: str, new_tier: int) -> bool:
    """Raising pays the marginal difference; lowering is free and refunds nothing."""
    domain = store.get_domain(domain_id)
    if domain is None:
        return False
    t = clamp_domain_tier(new_tier)
    if t <= domain.tier:
        domain.tier = t
        return True
    if not try_spend(store.state, domain, "spu_invested", domain_tier_cost(domain.tier, t)):
        return False
    domain.tier = t
    return True
