"""
core.store
Entity lifecycle over one SoulFruitState.

Create and update are separate calls; nothing here upserts by name.
Deletes clean up every cross-reference:
- soul   -> removed from homie.soul_ids (stats re-derived)
- homie  -> removed from domain.homie_ids, its BuffTarget and ability owner refs dropped
- domain -> homie.domain_id cleared, ability owner refs dropped
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from .catalog import default_buffs, make_custom_buff
from .formulas import (
    clamp_domain_tier,
    compute_soul_level,
    gather_inherited_traits,
    get_homie_type,
    homie_stats,
    soul_trait_inputs,
)
from .state import (
    HOMIE_TIER_KEYS,
    SELF_TARGET_ID,
    Ability,
    BuffDefinition,
    BuffTarget,
    Domain,
    Homie,
    Soul,
    SoulFruitState,
    clamp,
    default_state,
)

ABILITY_FIELDS = ("name", "action_type", "range", "target", "save_dc", "damage", "effect", "combo", "description")


def ensure_base_state(state: SoulFruitState) -> SoulFruitState:
    """Seed catalog + self target, and repair a dangling current target id."""
    if not state.buffs_catalog:
        state.buffs_catalog = default_buffs()
    if SELF_TARGET_ID not in state.buff_targets:
        state.buff_targets[SELF_TARGET_ID] = BuffTarget(
            id=SELF_TARGET_ID,
            name="Soul Fruit User",
            type="self",
        )
    for h in state.homies:
        if h.id not in state.buff_targets:
            state.buff_targets[h.id] = BuffTarget(id=h.id, name=h.name, type="homie")
    if state.ui.current_buff_target_id not in state.buff_targets:
        state.ui.current_buff_target_id = SELF_TARGET_ID
    return state


class EntityStore:
    def __init__(self, state: Optional[SoulFruitState] = None) -> None:
        self.state = ensure_base_state(state if state is not None else default_state())

    # -------------------------
    # ids
    # -------------------------

    def next_id(self, kind: str) -> str:
        counters = self.state.ui.next_ids
        n = int(counters.get(kind, 1) or 1)
        counters[kind] = n + 1
        return f"{kind}-{n}"

    # -------------------------
    # souls
    # -------------------------

    def add_soul(self, name: str, power: float, fear: float, attachment: float, traits_text: str = "") -> Soul:
        power, fear, attachment = soul_trait_inputs(power, fear, attachment)
        rating = compute_soul_level(power, fear, attachment)
        soul = Soul(
            id=self.next_id("soul"),
            name=(name or "").strip() or "Unnamed Soul",
            power=power,
            fear=fear,
            attachment=attachment,
            soul_level=rating.soul_level,
            spu=rating.spu,
            traits_text=traits_text or "",
        )
        self.state.souls.append(soul)
        return soul

    def add_captured_soul(self, name: str, soul_level: int, spu: int, traits_text: str = "") -> Soul:
        soul = Soul(
            id=self.next_id("soul"),
            name=(name or "").strip() or "Captured Soul",
            soul_level=int(clamp(int(soul_level), 1, 10)),
            spu=int(max(1, int(spu))),
            traits_text=traits_text or "",
            origin="capture",
        )
        self.state.souls.append(soul)
        return soul

    def get_soul(self, soul_id: str) -> Optional[Soul]:
        return next((s for s in self.state.souls if s.id == soul_id), None)

    def set_soul_active(self, soul_id: str, active: bool) -> bool:
        soul = self.get_soul(soul_id)
        if soul is None:
            return False
        soul.active = bool(active)
        return True

    def set_soul_traits(self, soul_id: str, traits_text: str) -> bool:
        soul = self.get_soul(soul_id)
        if soul is None:
            return False
        soul.traits_text = traits_text or ""
        return True

    def delete_soul(self, soul_id: str) -> bool:
        before = len(self.state.souls)
        self.state.souls = [s for s in self.state.souls if s.id != soul_id]
        if len(self.state.souls) == before:
            return False
        for h in self.state.homies:
            if soul_id in h.soul_ids:
                h.soul_ids = [x for x in h.soul_ids if x != soul_id]
                self._rederive_homie(h)
        return True

    def souls_for_homie(self, mode: str, selected_ids: Iterable[str] = ()) -> List[Soul]:
        """mode: all | active | selected"""
        if mode == "all":
            return list(self.state.souls)
        if mode == "active":
            return [s for s in self.state.souls if s.active]
        if mode == "selected":
            wanted = set(selected_ids or [])
            return [s for s in self.state.souls if s.id in wanted]
        return []

    # -------------------------
    # boons / targets
    # -------------------------

    def add_custom_buff(self, name: str, base_cost: int, description: str = "") -> Optional[BuffDefinition]:
        buff = make_custom_buff(f"custom_{self.state.ui.next_ids.get('custom', 1)}", name, base_cost, description)
        if buff is None:
            return None
        self.next_id("custom")
        self.state.buffs_catalog[buff.id] = buff
        return buff

    def add_ally_target(self, name: str) -> Optional[BuffTarget]:
        name = (name or "").strip()
        if not name:
            return None
        target = BuffTarget(id=self.next_id("ally"), name=name, type="ally")
        self.state.buff_targets[target.id] = target
        return target

    def get_target(self, target_id: str) -> Optional[BuffTarget]:
        return self.state.buff_targets.get(target_id)

    def set_current_target(self, target_id: str) -> bool:
        if target_id not in self.state.buff_targets:
            return False
        self.state.ui.current_buff_target_id = target_id
        return True

    def set_stack_count(self, target_id: str, buff_id: str, count: int) -> None:
        """Raw write, no SPU check. Use core.ledger.adjust_buff_stacks for purchases."""
        target = self.state.buff_targets[target_id]
        n = max(0, int(count))
        if n == 0:
            target.buffs.pop(buff_id, None)
        else:
            target.buffs[buff_id] = n

    def delete_target(self, target_id: str) -> bool:
        target = self.state.buff_targets.get(target_id)
        if target is None or target.type != "ally":
            return False
        del self.state.buff_targets[target_id]
        if self.state.ui.current_buff_target_id == target_id:
            self.state.ui.current_buff_target_id = SELF_TARGET_ID
        return True

    # -------------------------
    # homies
    # -------------------------

    def get_homie(self, homie_id: str) -> Optional[Homie]:
        return next((h for h in self.state.homies if h.id == homie_id), None)

    def find_homie_by_name(self, name: str) -> Optional[Homie]:
        return next((h for h in self.state.homies if h.name == name), None)

    def create_homie(self, name: str, body: str, durability: int, element: str, souls: Iterable[Soul]) -> Homie:
        souls = list(souls)
        homie = Homie(
            id=self.next_id("homie"),
            name=(name or "").strip() or "Unnamed Homie",
            body=(body or "").strip() or "Unknown Vessel",
            durability=int(durability),
            element=(element or "").strip() or "Soul Infused",
            soul_ids=[s.id for s in souls],
        )
        self._rederive_homie(homie)
        self._register_homie(homie)
        return homie

    def create_tiered_homie(self, name: str, homie_type: str) -> Homie:
        spec = get_homie_type(homie_type)
        homie = Homie(
            id=self.next_id("homie"),
            name=(name or "").strip() or spec.label,
            homie_type=spec.key,
            tiers={k: 0 for k in HOMIE_TIER_KEYS},
        )
        self._register_homie(homie)
        return homie

    def update_homie(
        self,
        homie_id: str,
        *,
        body: Optional[str] = None,
        durability: Optional[int] = None,
        element: Optional[str] = None,
        souls: Optional[Iterable[Soul]] = None,
        status: Optional[str] = None,
        traits: Optional[str] = None,
    ) -> Optional[Homie]:
        homie = self.get_homie(homie_id)
        if homie is None:
            return None
        if body is not None:
            homie.body = body.strip() or "Unknown Vessel"
        if durability is not None:
            homie.durability = int(durability)
        if element is not None:
            homie.element = element.strip() or "Soul Infused"
        if souls is not None:
            homie.soul_ids = [s.id for s in souls]
        if status in {"active", "defeated"}:
            homie.status = str(status)
        if traits is not None:
            homie.traits = traits
        self._rederive_homie(homie)
        if homie.id not in self.state.buff_targets:
            self.state.buff_targets[homie.id] = BuffTarget(id=homie.id, name=homie.name, type="homie")
        return homie

    def delete_homie(self, homie_id: str) -> bool:
        before = len(self.state.homies)
        self.state.homies = [h for h in self.state.homies if h.id != homie_id]
        if len(self.state.homies) == before:
            return False
        for d in self.state.domains:
            if homie_id in d.homie_ids:
                d.homie_ids = [x for x in d.homie_ids if x != homie_id]
        self.state.buff_targets.pop(homie_id, None)
        if self.state.ui.current_buff_target_id == homie_id:
            self.state.ui.current_buff_target_id = SELF_TARGET_ID
        self._orphan_abilities("homie", homie_id)
        return True

    def powering_souls(self, homie: Homie) -> List[Soul]:
        ids = set(homie.soul_ids)
        return [s for s in self.state.souls if s.id in ids]

    def _register_homie(self, homie: Homie) -> None:
        self.state.homies.append(homie)
        self.state.buff_targets[homie.id] = BuffTarget(id=homie.id, name=homie.name, type="homie")

    def _rederive_homie(self, homie: Homie) -> None:
        souls = self.powering_souls(homie)
        homie.stats = homie_stats(homie.durability, souls)
        homie.inherited_traits = gather_inherited_traits(souls)

    # -------------------------
    # domains
    # -------------------------

    def get_domain(self, domain_id: str) -> Optional[Domain]:
        return next((d for d in self.state.domains if d.id == domain_id), None)

    def create_domain(self, name: str, tier: int = 1, notes: str = "", personality: str = "") -> Domain:
        domain = Domain(
            id=self.next_id("domain"),
            name=(name or "").strip() or "Unnamed Domain",
            tier=clamp_domain_tier(tier),
            notes=notes or "",
            personality=personality or "",
        )
        self.state.domains.append(domain)
        return domain

    def update_domain(self, domain_id: str, *, notes: Optional[str] = None, personality: Optional[str] = None) -> Optional[Domain]:
        domain = self.get_domain(domain_id)
        if domain is None:
            return None
        if notes is not None:
            domain.notes = notes
        if personality is not None:
            domain.personality = personality
        return domain

    def bind_homie(self, domain_id: str, homie_id: str) -> bool:
        domain = self.get_domain(domain_id)
        homie = self.get_homie(homie_id)
        if domain is None or homie is None:
            return False
        if homie.domain_id and homie.domain_id != domain_id:
            self.unbind_homie(homie.domain_id, homie_id)
        if homie_id not in domain.homie_ids:
            domain.homie_ids.append(homie_id)
        homie.domain_id = domain_id
        return True

    def unbind_homie(self, domain_id: str, homie_id: str) -> bool:
        domain = self.get_domain(domain_id)
        if domain is None or homie_id not in domain.homie_ids:
            return False
        domain.homie_ids = [x for x in domain.homie_ids if x != homie_id]
        homie = self.get_homie(homie_id)
        if homie is not None and homie.domain_id == domain_id:
            homie.domain_id = None
        return True

    def delete_domain(self, domain_id: str) -> bool:
        before = len(self.state.domains)
        self.state.domains = [d for d in self.state.domains if d.id != domain_id]
        if len(self.state.domains) == before:
            return False
        for h in self.state.homies:
            if h.domain_id == domain_id:
                h.domain_id = None
        self._orphan_abilities("domain", domain_id)
        return True

    # -------------------------
    # abilities
    # -------------------------

    def get_ability(self, ability_id: str) -> Optional[Ability]:
        return next((a for a in self.state.abilities if a.id == ability_id), None)

    def add_ability(self, owner_kind: str = "general", owner_id: Optional[str] = None, **fields: str) -> Ability:
        ability = Ability(id=self.next_id("ability"))
        self._set_owner(ability, owner_kind, owner_id)
        for k in ABILITY_FIELDS:
            if k in fields:
                setattr(ability, k, str(fields[k] or ""))
        self.state.abilities.append(ability)
        return ability

    def update_ability(self, ability_id: str, **fields: str) -> Optional[Ability]:
        ability = self.get_ability(ability_id)
        if ability is None:
            return None
        for k, v in fields.items():
            if k in ABILITY_FIELDS:
                setattr(ability, k, str(v or ""))
        if "owner_kind" in fields:
            self._set_owner(ability, fields["owner_kind"], fields.get("owner_id"))
        return ability

    def delete_ability(self, ability_id: str) -> bool:
        before = len(self.state.abilities)
        self.state.abilities = [a for a in self.state.abilities if a.id != ability_id]
        return len(self.state.abilities) != before

    def resolve_owner(self, label: str) -> Tuple[str, Optional[str]]:
        """Map an assign-to label ("Prometheus", "Domain: Candy Coast", "general") to an owner ref."""
        text = (label or "").strip()
        if not text:
            return "general", None
        low = text.lower()
        if low.startswith("domain:"):
            wanted = text.split(":", 1)[1].strip().lower()
            d = next((x for x in self.state.domains if x.name.lower() == wanted), None)
            return ("domain", d.id) if d else ("general", None)
        if low.startswith("homie:"):
            text = text.split(":", 1)[1].strip()
            low = text.lower()
        h = next((x for x in self.state.homies if x.name.lower() == low), None)
        if h is not None:
            return "homie", h.id
        d = next((x for x in self.state.domains if x.name.lower() == low), None)
        if d is not None:
            return "domain", d.id
        return "general", None

    def _set_owner(self, ability: Ability, owner_kind: str, owner_id: Optional[str]) -> None:
        if owner_kind == "homie" and owner_id and self.get_homie(owner_id):
            ability.owner_kind, ability.owner_id = "homie", owner_id
        elif owner_kind == "domain" and owner_id and self.get_domain(owner_id):
            ability.owner_kind, ability.owner_id = "domain", owner_id
        else:
            ability.owner_kind, ability.owner_id = "general", None

    def _orphan_abilities(self, kind: str, owner_id: str) -> None:
        for a in self.state.abilities:
            if a.owner_kind == kind and a.owner_id == owner_id:
                a.owner_kind, a.owner_id = "general", None
