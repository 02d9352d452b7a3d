from __future__ import annotations

import sys
from pathlib import Path

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from core.formulas import compute_soul_level, soul_trait_inputs
from core.state import SELF_TARGET_ID, SoulFruitState
from core.store import EntityStore, ensure_base_state


def _store() -> EntityStore:
    store = EntityStore()
    store.add_soul("Captain", 20, 10, 10, traits_text="Cruel")
    store.add_soul("Sailor", 8, 4, 6, traits_text="Loyal")
    return store


def test_ids_are_per_kind_counters() -> None:
    store = _store()
    assert [s.id for s in store.state.souls] == ["soul-1", "soul-2"]
    homie = store.create_homie("Prometheus", "Sun", 10, "Fire", store.state.souls)
    assert homie.id == "homie-1"
    assert store.add_ally_target("Marco").id == "ally-1"
    assert store.create_domain("Candy Coast").id == "domain-1"
    assert store.add_ability().id == "ability-1"


def test_add_soul_tolerates_junk_trait_input() -> None:
    store = EntityStore()
    soul = store.add_soul("X", "abc", 5, 5)
    assert soul.power == 0.0
    expected = compute_soul_level(0, 5, 5)
    assert (soul.soul_level, soul.spu) == (expected.soul_level, expected.spu)


def test_add_soul_stores_the_traits_it_was_rated_on() -> None:
    store = EntityStore()
    soul = store.add_soul("Y", float("nan"), 99, -3)
    assert (soul.power, soul.fear, soul.attachment) == (0.0, 10.0, 0.0)
    rerated = compute_soul_level(soul.power, soul.fear, soul.attachment)
    assert (soul.soul_level, soul.spu) == (rerated.soul_level, rerated.spu)
    assert soul_trait_inputs(None, "7", float("inf")) == (0.0, 7.0, 0.0)


def test_base_state_is_seeded_and_repaired() -> None:
    state = SoulFruitState()
    state.ui.current_buff_target_id = "ally-99"
    ensure_base_state(state)
    assert SELF_TARGET_ID in state.buff_targets
    assert state.ui.current_buff_target_id == SELF_TARGET_ID
    assert "temp25" in state.buffs_catalog


def test_creating_a_homie_adds_its_boon_target() -> None:
    store = _store()
    homie = store.create_homie("Prometheus", "Sun", 10, "Fire", store.state.souls)
    target = store.get_target(homie.id)
    assert target is not None
    assert target.type == "homie"
    assert homie.stats.sl_sum == sum(s.soul_level for s in store.state.souls)
    assert homie.inherited_traits == ["Cruel", "Loyal"]


def test_deleting_a_soul_updates_homies_but_keeps_them() -> None:
    store = _store()
    homie = store.create_homie("Prometheus", "Sun", 10, "Fire", store.state.souls)
    before_hp = homie.stats.hp
    assert store.delete_soul("soul-1")
    assert store.get_homie(homie.id) is homie
    assert homie.soul_ids == ["soul-2"]
    assert homie.stats.hp < before_hp
    assert homie.inherited_traits == ["Loyal"]
    assert not store.delete_soul("soul-1")


def test_deleting_a_homie_cleans_domain_target_and_abilities() -> None:
    store = _store()
    homie = store.create_homie("Prometheus", "Sun", 10, "Fire", [])
    domain = store.create_domain("Candy Coast")
    assert store.bind_homie(domain.id, homie.id)
    ability = store.add_ability("homie", homie.id, name="Solar Flare")
    store.set_current_target(homie.id)

    assert store.delete_homie(homie.id)
    assert store.get_domain(domain.id) is domain
    assert domain.homie_ids == []
    assert homie.id not in store.state.buff_targets
    assert store.state.ui.current_buff_target_id == SELF_TARGET_ID
    assert (ability.owner_kind, ability.owner_id) == ("general", None)


def test_deleting_a_domain_clears_homie_reference() -> None:
    store = _store()
    homie = store.create_homie("Zeus", "Cloud", 8, "Thunder", [])
    domain = store.create_domain("Whole Cake")
    store.bind_homie(domain.id, homie.id)
    ability = store.add_ability("domain", domain.id, name="Candy Rain")
    assert homie.domain_id == domain.id

    assert store.delete_domain(domain.id)
    assert homie.domain_id is None
    assert store.get_homie(homie.id) is homie
    assert ability.owner_kind == "general"


def test_binding_moves_homie_between_domains() -> None:
    store = _store()
    homie = store.create_homie("Zeus", "Cloud", 8, "Thunder", [])
    a = store.create_domain("A")
    b = store.create_domain("B")
    store.bind_homie(a.id, homie.id)
    store.bind_homie(b.id, homie.id)
    assert a.homie_ids == []
    assert b.homie_ids == [homie.id]
    assert homie.domain_id == b.id
    assert store.unbind_homie(b.id, homie.id)
    assert homie.domain_id is None


def test_self_target_cannot_be_deleted() -> None:
    store = _store()
    assert not store.delete_target(SELF_TARGET_ID)
    ally = store.add_ally_target("Marco")
    store.set_current_target(ally.id)
    assert store.delete_target(ally.id)
    assert store.state.ui.current_buff_target_id == SELF_TARGET_ID
    assert store.add_ally_target("   ") is None


def test_custom_buff_requires_name_and_positive_cost() -> None:
    store = _store()
    assert store.add_custom_buff("", 10) is None
    assert store.add_custom_buff("Pact", 0) is None
    first = store.add_custom_buff("Pact", 12, "A binding deal.")
    second = store.add_custom_buff("Oath", 5)
    assert (first.id, second.id) == ("custom_1", "custom_2")
    assert store.state.buffs_catalog["custom_1"].category == "custom"


def test_souls_for_homie_modes() -> None:
    store = _store()
    store.set_soul_active("soul-2", False)
    assert [s.id for s in store.souls_for_homie("active")] == ["soul-1"]
    assert len(store.souls_for_homie("all")) == 2
    assert [s.id for s in store.souls_for_homie("selected", ["soul-2"])] == ["soul-2"]
    assert store.souls_for_homie("bogus") == []


def test_resolve_owner_labels() -> None:
    store = _store()
    homie = store.create_homie("Prometheus", "Sun", 10, "Fire", [])
    domain = store.create_domain("Candy Coast")
    assert store.resolve_owner("Prometheus") == ("homie", homie.id)
    assert store.resolve_owner("homie: prometheus") == ("homie", homie.id)
    assert store.resolve_owner("Domain: Candy Coast") == ("domain", domain.id)
    assert store.resolve_owner("candy coast") == ("domain", domain.id)
    assert store.resolve_owner("Domain: Nowhere") == ("general", None)
    assert store.resolve_owner("general") == ("general", None)
    assert store.resolve_owner("") == ("general", None)


def test_update_ability_fields_and_owner() -> None:
    store = _store()
    domain = store.create_domain("Candy Coast")
    ability = store.add_ability(name="Old", bogus="ignored")
    store.update_ability(ability.id, name="New", damage="2d6", owner_kind="domain", owner_id=domain.id)
    assert ability.name == "New"
    assert ability.damage == "2d6"
    assert (ability.owner_kind, ability.owner_id) == ("domain", domain.id)
    assert store.update_ability("ability-404", name="x") is None
    assert store.delete_ability(ability.id)
    assert not store.delete_ability(ability.id)
