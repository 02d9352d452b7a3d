"""engine.pipeline

Session flow (headless).

Responsibilities:
- own the EntityStore for one session (constructed at start, saved on every mutation)
- route user actions through core.formulas / core.store / core.ledger
- turn ledger rejections into user-facing PurchaseResult messages
- run ability generation out-of-band and append results only on success

This layer is UI-agnostic; app.py and the tests drive it the same way.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from content.prompts import build_system_prompt, build_user_prompt
from content.providers.base import AbilityProvider, GenerationError
from content.schemas import AbilityDraft, GenerationRequest
from core import ledger
from core.formulas import (
    CaptureResult,
    SoulRating,
    compute_soul_level,
    domain_stats,
    get_homie_type,
    soul_dc,
    terror_capture,
    tiered_homie_stats,
)
from core.modes import get_mode_spec
from core.rng import roll_d20
from core.state import HOMIE_TIER_MAX, Ability, BuffDefinition, BuffTarget, Domain, Homie, Soul, SoulFruitState
from core.store import EntityStore, ensure_base_state

from .config import AppConfig
from .persistence import clear_state, load_state, save_state

log = logging.getLogger(__name__)

INSUFFICIENT_SPU = "Insufficient SPU"


@dataclass(frozen=True)
class PurchaseResult:
    ok: bool
    message: str = ""
    amount: int = 0
    entity_id: Optional[str] = None


@dataclass
class GenerationOutcome:
    status: str  # success | error
    abilities: List[Ability] = field(default_factory=list)
    error: str = ""
    raw: str = ""
    structured: bool = True

    @property
    def ok(self) -> bool:
        return self.status == "success"


# -------------------------
# Snapshot for prompts / proxy body
# -------------------------


def build_snapshot(state: SoulFruitState) -> Dict[str, Any]:
    totals = ledger.compute_totals(state)
    domains: List[Dict[str, Any]] = []
    for d in state.domains:
        ds = domain_stats(d.tier)
        domains.append({
            **asdict(d),
            "control_range_ft": ds.control_range_ft,
            "passive_fear_dc": ds.passive_fear_dc,
            "size": ds.size,
        })
    return {
        "souls": [asdict(s) for s in state.souls],
        "homies": [asdict(h) for h in state.homies],
        "domains": domains,
        "totals": asdict(totals),
    }


def describe_capture(result: CaptureResult, soul: Optional[Soul], roll: int) -> Tuple[bool, str]:
    """(captured, message) for the capture form."""
    if not result.captured:
        return False, f"Save succeeded (terror roll {result.terror_roll}). No soul captured."
    if soul is None:
        return False, (
            f"Save failed (terror roll {result.terror_roll}) but the soul was too weak to bank: "
            f"0 SPU. Target loses {result.max_hp_lost} max HP."
        )
    return True, (
        f"Captured {soul.name}: d20 {roll}, terror roll {result.terror_roll}, "
        f"+{result.spu_gained} SPU, target loses {result.max_hp_lost} max HP."
    )


def find_or_create_homie_by_name(
    store: EntityStore,
    name: str,
    body: str,
    durability: int,
    element: str,
    souls: Iterable[Soul],
) -> Tuple[Homie, bool]:
    """Re-roll workflow: same name updates that homie in place. Returns (homie, created)."""
    souls = list(souls)
    name = (name or "").strip() or "Unnamed Homie"
    existing = store.find_homie_by_name(name)
    if existing is not None:
        store.update_homie(existing.id, body=body, durability=durability, element=element, souls=souls)
        return existing, False
    return store.create_homie(name, body, durability, element, souls), True


class SoulFruitSession:
    """Composition root for one user session."""

    def __init__(
        self,
        config: AppConfig,
        provider: Optional[AbilityProvider] = None,
        state: Optional[SoulFruitState] = None,
        autosave: bool = True,
    ) -> None:
        self.config = config
        self.provider = provider
        self.autosave = autosave
        loaded = state if state is not None else load_state(config.storage_path)
        self.store = EntityStore(loaded)
        self.last_generation: Optional[GenerationOutcome] = None

    @property
    def state(self) -> SoulFruitState:
        return self.store.state

    # -------------------------
    # persistence
    # -------------------------

    def save(self) -> bool:
        return save_state(self.state, self.config.storage_path)

    def _commit(self) -> None:
        if self.autosave:
            self.save()

    def reset(self) -> None:
        clear_state(self.config.storage_path)
        self.store = EntityStore(ensure_base_state(SoulFruitState()))
        self.last_generation = None

    def replace_state(self, state: SoulFruitState) -> None:
        self.store = EntityStore(state)
        self._commit()

    def totals(self) -> ledger.SpuTotals:
        return ledger.compute_totals(self.state)

    # -------------------------
    # souls
    # -------------------------

    @staticmethod
    def rate_soul(power: float, fear: float, attachment: float) -> SoulRating:
        return compute_soul_level(power, fear, attachment)

    def add_soul(self, name: str, power: float, fear: float, attachment: float, traits_text: str = "") -> Soul:
        soul = self.store.add_soul(name, power, fear, attachment, traits_text)
        self._commit()
        return soul

    def capture_soul(
        self,
        name: str,
        soul_dc_value: int,
        save_result: int,
        d20_roll: int,
        soul_level: int,
        traits_text: str = "",
    ) -> Tuple[CaptureResult, Optional[Soul]]:
        """Terror roll. A made save captures nothing and leaves the bank unchanged."""
        result = terror_capture(soul_dc_value, save_result, d20_roll, soul_level)
        if not result.captured or result.spu_gained <= 0:
            return result, None
        soul = self.store.add_captured_soul(name, soul_level, result.spu_gained, traits_text)
        self._commit()
        return result, soul

    def roll_capture_d20(self, name: str) -> int:
        # same name + same bank size -> same roll
        return roll_d20("capture", (name or "").strip(), len(self.state.souls), base_seed=self.config.base_seed)

    def set_soul_active(self, soul_id: str, active: bool) -> bool:
        ok = self.store.set_soul_active(soul_id, active)
        if ok:
            self._commit()
        return ok

    def set_soul_traits(self, soul_id: str, traits_text: str) -> bool:
        ok = self.store.set_soul_traits(soul_id, traits_text)
        if ok:
            self._commit()
        return ok

    def delete_soul(self, soul_id: str) -> bool:
        ok = self.store.delete_soul(soul_id)
        if ok:
            self._commit()
        return ok

    # -------------------------
    # boons
    # -------------------------

    def add_ally(self, name: str) -> Optional[BuffTarget]:
        target = self.store.add_ally_target(name)
        if target is not None:
            self._commit()
        return target

    def select_target(self, target_id: str) -> bool:
        ok = self.store.set_current_target(target_id)
        if ok:
            self._commit()
        return ok

    def adjust_buffs(self, target_id: str, buff_id: str, delta: int) -> PurchaseResult:
        before = ledger.compute_totals(self.state).spent
        if not ledger.adjust_buff_stacks(self.store, target_id, buff_id, delta):
            if target_id not in self.state.buff_targets or buff_id not in self.state.buffs_catalog:
                return PurchaseResult(False, "Unknown boon or target.")
            log.info("Boon purchase rejected: %s x%+d on %s", buff_id, delta, target_id)
            return PurchaseResult(False, f"{INSUFFICIENT_SPU} for another stack.", entity_id=target_id)
        self._commit()
        after = ledger.compute_totals(self.state).spent
        return PurchaseResult(True, "", amount=after - before, entity_id=target_id)

    def add_custom_buff(self, name: str, base_cost: int, description: str = "") -> Optional[BuffDefinition]:
        buff = self.store.add_custom_buff(name, base_cost, description)
        if buff is not None:
            self._commit()
        return buff

    def calc_dc(self, proficiency_bonus: int, ability_modifier: int, soul_level: int) -> int:
        dc = soul_dc(proficiency_bonus, ability_modifier, soul_level)
        self.state.ui.last_dc = dc
        self._commit()
        return dc

    # -------------------------
    # homies
    # -------------------------

    def generate_homie(
        self,
        name: str,
        body: str,
        durability: int,
        element: str,
        soul_mode: str = "active",
        selected_ids: Iterable[str] = (),
    ) -> Homie:
        souls = self.store.souls_for_homie(soul_mode, selected_ids)
        homie, _ = find_or_create_homie_by_name(self.store, name, body, durability, element, souls)
        self._commit()
        return homie

    def buy_homie(self, name: str, homie_type: str) -> PurchaseResult:
        spec = get_homie_type(homie_type)
        homie = ledger.create_tiered_homie(self.store, name, spec.key)
        if homie is None:
            return PurchaseResult(False, f"{INSUFFICIENT_SPU}: {spec.label} costs {spec.base_cost} SPU.")
        self._commit()
        return PurchaseResult(True, "", amount=spec.base_cost, entity_id=homie.id)

    def raise_homie_tier(self, homie_id: str, tier_key: str) -> PurchaseResult:
        homie = self.store.get_homie(homie_id)
        if homie is None:
            return PurchaseResult(False, "Unknown homie.")
        if not homie.tiers:
            return PurchaseResult(False, "Soul-powered homies have no tiers.", entity_id=homie_id)
        spec = get_homie_type(homie.homie_type)
        if not ledger.raise_homie_tier(self.store, homie_id, tier_key):
            if int(homie.tiers.get(tier_key, 0)) >= HOMIE_TIER_MAX:
                return PurchaseResult(False, f"{tier_key} is already at max tier.", entity_id=homie_id)
            return PurchaseResult(False, f"{INSUFFICIENT_SPU}: tier costs {spec.cost_per_tier} SPU.", entity_id=homie_id)
        self._commit()
        return PurchaseResult(True, "", amount=spec.cost_per_tier, entity_id=homie_id)

    def lower_homie_tier(self, homie_id: str, tier_key: str) -> PurchaseResult:
        refund = ledger.lower_homie_tier(self.store, homie_id, tier_key)
        if refund is None:
            return PurchaseResult(False, "Nothing to lower.", entity_id=homie_id)
        self._commit()
        return PurchaseResult(True, "", amount=-refund, entity_id=homie_id)

    def homie_tier_stats(self, homie_id: str):
        homie = self.store.get_homie(homie_id)
        if homie is None:
            return None
        return tiered_homie_stats(homie.homie_type, homie.tiers)

    def set_homie_status(self, homie_id: str, status: str) -> bool:
        ok = self.store.update_homie(homie_id, status=status) is not None
        if ok:
            self._commit()
        return ok

    def delete_homie(self, homie_id: str) -> bool:
        ok = self.store.delete_homie(homie_id)
        if ok:
            self._commit()
        return ok

    # -------------------------
    # domains
    # -------------------------

    def found_domain(self, name: str, tier: int = 1, notes: str = "", personality: str = "") -> PurchaseResult:
        domain = ledger.create_domain(self.store, name, tier, notes=notes, personality=personality)
        if domain is None:
            return PurchaseResult(False, f"{INSUFFICIENT_SPU} to found a tier {tier} domain.")
        self._commit()
        return PurchaseResult(True, "", amount=domain.spu_invested, entity_id=domain.id)

    def set_domain_tier(self, domain_id: str, tier: int) -> PurchaseResult:
        domain = self.store.get_domain(domain_id)
        if domain is None:
            return PurchaseResult(False, "Unknown domain.")
        before = domain.spu_invested
        if not ledger.set_domain_tier(self.store, domain_id, tier):
            return PurchaseResult(False, f"{INSUFFICIENT_SPU} for tier {tier}.", entity_id=domain_id)
        self._commit()
        return PurchaseResult(True, "", amount=domain.spu_invested - before, entity_id=domain_id)

    def bind_homie(self, domain_id: str, homie_id: str) -> bool:
        ok = self.store.bind_homie(domain_id, homie_id)
        if ok:
            self._commit()
        return ok

    def unbind_homie(self, domain_id: str, homie_id: str) -> bool:
        ok = self.store.unbind_homie(domain_id, homie_id)
        if ok:
            self._commit()
        return ok

    def update_domain(self, domain_id: str, **fields: str) -> Optional[Domain]:
        domain = self.store.update_domain(domain_id, **fields)
        if domain is not None:
            self._commit()
        return domain

    def delete_domain(self, domain_id: str) -> bool:
        ok = self.store.delete_domain(domain_id)
        if ok:
            self._commit()
        return ok

    # -------------------------
    # abilities
    # -------------------------

    def add_empty_ability(self, owner_kind: str = "general", owner_id: Optional[str] = None) -> Ability:
        ability = self.store.add_ability(owner_kind, owner_id)
        self._commit()
        return ability

    def update_ability(self, ability_id: str, **fields: str) -> Optional[Ability]:
        ability = self.store.update_ability(ability_id, **fields)
        if ability is not None:
            self._commit()
        return ability

    def delete_ability(self, ability_id: str) -> bool:
        ok = self.store.delete_ability(ability_id)
        if ok:
            self._commit()
        return ok

    def _owner_for(self, draft: AbilityDraft, req: GenerationRequest) -> Tuple[str, Optional[str]]:
        if draft.assign_to:
            kind, oid = self.store.resolve_owner(draft.assign_to)
            if kind != "general":
                return kind, oid
        if req.mode == "homie_attack" and req.homie_id:
            return "homie", req.homie_id
        if req.mode == "domain_lair" and req.domain_id:
            return "domain", req.domain_id
        return self.store.resolve_owner(req.assign_to)

    def generate_abilities(self, req: GenerationRequest) -> GenerationOutcome:
        """Single attempt. On any failure the store is left exactly as it was."""
        spec = get_mode_spec(req.mode)
        outcome: GenerationOutcome
        if self.provider is None:
            outcome = GenerationOutcome("error", error="No ability provider configured.")
        elif spec.needs_homie and not self.store.get_homie(req.homie_id or ""):
            outcome = GenerationOutcome("error", error="Pick a homie first.")
        elif spec.needs_domain and not self.store.get_domain(req.domain_id or ""):
            outcome = GenerationOutcome("error", error="Pick a domain first.")
        else:
            outcome = self._run_generation(req)
        self.last_generation = outcome
        return outcome

    def _run_generation(self, req: GenerationRequest) -> GenerationOutcome:
        spec = get_mode_spec(req.mode)
        snapshot = build_snapshot(self.state)
        title = ""
        if spec.output == "text":
            domain = self.store.get_domain(req.domain_id or "")
            title = f"Lair Actions: {domain.name}" if domain else ""
        try:
            payload, raw = self.provider.generate_abilities(  # type: ignore[union-attr]
                system_prompt=build_system_prompt(),
                prompt=build_user_prompt(req, snapshot),
                temperature=spec.temp,
                max_output_tokens=self.config.max_output_tokens,
                text_title=title,
            )
        except GenerationError as e:
            log.error("Ability generation failed: %s", e)
            return GenerationOutcome("error", error=str(e))

        added: List[Ability] = []
        for draft in payload.abilities:
            kind, oid = self._owner_for(draft, req)
            fields = draft.to_dict()
            fields.pop("assign_to", None)
            added.append(self.store.add_ability(kind, oid, **fields))
        self._commit()
        return GenerationOutcome("success", abilities=added, raw=raw, structured=payload.structured)
