from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from content.schemas import RAW_TEXT_TITLE, request_from_mapping
from core.formulas import terror_capture
from core.state import SELF_TARGET_ID, Soul, state_to_dict
from engine.config import AppConfig
from engine.persistence import load_state
from engine.pipeline import SoulFruitSession, build_snapshot, describe_capture
from engine.sim_runner import FakeAbilityProvider, run_headless_session


@pytest.fixture
def cfg(tmp_path: Path) -> AppConfig:
    return AppConfig(data_root=tmp_path)


def _session(cfg: AppConfig, provider: FakeAbilityProvider | None = None) -> SoulFruitSession:
    return SoulFruitSession(cfg, provider=provider or FakeAbilityProvider())


def _give_spu(session: SoulFruitSession, *amounts: int) -> None:
    for i, spu in enumerate(amounts, start=1):
        session.state.souls.append(Soul(id=f"bank-{i}", name=f"Bank {i}", soul_level=5, spu=spu))


def test_every_mutation_is_persisted(cfg: AppConfig) -> None:
    session = _session(cfg)
    session.add_soul("Captain", 20, 10, 10)
    assert cfg.storage_path.exists()
    assert [s.name for s in load_state(cfg.storage_path).souls] == ["Captain"]

    reopened = _session(cfg)
    assert state_to_dict(reopened.state) == state_to_dict(session.state)


def test_autosave_off_writes_nothing(cfg: AppConfig) -> None:
    session = SoulFruitSession(cfg, autosave=False)
    session.add_soul("Captain", 20, 10, 10)
    assert not cfg.storage_path.exists()


def test_capture_only_adds_soul_on_failed_save(cfg: AppConfig) -> None:
    session = _session(cfg)
    result, soul = session.capture_soul("Guard", 16, 18, 20, 6)
    assert soul is None
    assert result.spu_gained == 0
    assert session.state.souls == []

    result, soul = session.capture_soul("Guard", 16, 10, 12, 6)
    assert soul is not None
    assert soul.origin == "capture"
    assert soul.spu == result.spu_gained == (18 * 6) // 4
    assert soul.soul_level == 6


def test_failed_save_worth_zero_spu_is_not_reported_as_made() -> None:
    made = terror_capture(12, 15, 20, 5)
    ok, message = describe_capture(made, None, 20)
    assert not ok
    assert message.startswith("Save succeeded")

    weak = terror_capture(11, 10, 1, 1)
    assert weak.captured and weak.spu_gained == 0
    ok, message = describe_capture(weak, None, 1)
    assert not ok
    assert message.startswith("Save failed")
    assert "1 max HP" in message


def test_zero_spu_capture_banks_nothing(cfg: AppConfig) -> None:
    session = _session(cfg)
    result, soul = session.capture_soul("Cabin Boy", 11, 10, 1, 1)
    assert result.captured
    assert soul is None
    assert session.state.souls == []
    ok, message = describe_capture(result, soul, 1)
    assert not ok and "Save succeeded" not in message

    result, soul = session.capture_soul("Guard", 16, 10, 12, 6)
    ok, message = describe_capture(result, soul, 12)
    assert ok
    assert message.startswith("Captured Guard")


def test_capture_roll_is_reproducible(cfg: AppConfig) -> None:
    a = _session(cfg).roll_capture_d20("Guard")
    b = _session(cfg).roll_capture_d20("Guard")
    assert a == b
    assert 1 <= a <= 20


def test_boon_purchase_messages(cfg: AppConfig) -> None:
    session = _session(cfg)
    _give_spu(session, 30)
    ok = session.adjust_buffs(SELF_TARGET_ID, "temp25", 2)
    assert ok.ok
    assert ok.amount == 25

    denied = session.adjust_buffs(SELF_TARGET_ID, "temp25", 1)
    assert not denied.ok
    assert "Insufficient SPU" in denied.message

    unknown = session.adjust_buffs("ghost", "temp25", 1)
    assert not unknown.ok
    assert "Insufficient" not in unknown.message


def test_calc_dc_is_remembered(cfg: AppConfig) -> None:
    session = _session(cfg)
    assert session.calc_dc(3, 4, 7) == 18
    assert load_state(cfg.storage_path).ui.last_dc == 18


def test_generate_homie_rerolls_by_name(cfg: AppConfig) -> None:
    session = _session(cfg)
    session.add_soul("Captain", 20, 10, 10)
    first = session.generate_homie("Prometheus", "Sun", 5, "Fire")
    again = session.generate_homie("Prometheus", "Big Sun", 15, "Fire")
    assert again is first
    assert len(session.state.homies) == 1
    assert first.body == "Big Sun"
    assert first.durability == 15
    assert first.stats.hp == 150 + 125


def test_purchases_follow_the_750_scenario(cfg: AppConfig) -> None:
    session = _session(cfg)
    _give_spu(session, 100, 250, 400)
    res = session.found_domain("Candy Coast", tier=3)
    assert res.ok
    assert res.amount == 300
    assert session.totals().available == 450

    denied = session.set_domain_tier(res.entity_id, 8)
    assert not denied.ok
    assert "Insufficient SPU" in denied.message
    assert session.totals().available == 450


def test_tiered_homie_flow(cfg: AppConfig) -> None:
    session = _session(cfg)
    _give_spu(session, 200)
    bought = session.buy_homie("Zeus", "territory")
    assert bought.ok
    assert bought.amount == 100
    assert session.raise_homie_tier(bought.entity_id, "hp").ok
    assert session.homie_tier_stats(bought.entity_id).hp == 45 + 12
    assert session.raise_homie_tier(bought.entity_id, "hp").ok
    # 20 SPU left, a tier costs 40
    denied = session.raise_homie_tier(bought.entity_id, "hp")
    assert not denied.ok
    assert "Insufficient SPU" in denied.message
    down = session.lower_homie_tier(bought.entity_id, "hp")
    assert down.ok
    assert down.amount == -40
    assert session.totals().available == 60


def test_soul_powered_homie_has_no_tiers(cfg: AppConfig) -> None:
    session = _session(cfg)
    _give_spu(session, 500)
    homie = session.generate_homie("Prometheus", "Sun", 5, "Fire")
    res = session.raise_homie_tier(homie.id, "hp")
    assert not res.ok
    assert homie.total_spu_invested == 0


def test_generation_appends_abilities_with_owners(cfg: AppConfig) -> None:
    provider = FakeAbilityProvider()
    session = _session(cfg, provider)
    homie = session.generate_homie("Prometheus", "Sun", 5, "Fire")

    out = session.generate_abilities(request_from_mapping({"mode": "soul_bank"}))
    assert out.ok
    assert len(out.abilities) == 8
    assert all(a.owner_kind == "general" for a in out.abilities)

    out = session.generate_abilities(request_from_mapping({"mode": "homie_attack", "homie_id": homie.id}))
    assert out.ok
    assert [(a.owner_kind, a.owner_id) for a in out.abilities] == [("homie", homie.id)]
    assert provider.calls[-1]["prompt"].startswith("MODE: homie_attack")
    assert len(load_state(cfg.storage_path).abilities) == 9


def test_generation_resolves_assign_to_labels(cfg: AppConfig) -> None:
    raw = json.dumps({"abilities": [
        {"name": "Candy Rain", "assignTo": "Domain: Whole Cake", "effect": "sticky"},
        {"name": "Solar Flare", "assignTo": "Prometheus", "effect": "burn"},
        {"name": "Soul Pocus", "assignTo": "general", "effect": "fear"},
    ]})
    session = _session(cfg, FakeAbilityProvider(raw=raw))
    _give_spu(session, 500)
    homie = session.generate_homie("Prometheus", "Sun", 5, "Fire")
    domain = session.found_domain("Whole Cake", 1)

    out = session.generate_abilities(request_from_mapping({"mode": "soul_bank"}))
    owners = [(a.owner_kind, a.owner_id) for a in out.abilities]
    assert owners == [("domain", domain.entity_id), ("homie", homie.id), ("general", None)]


def test_domain_lair_is_stored_as_one_card(cfg: AppConfig) -> None:
    session = _session(cfg)
    _give_spu(session, 500)
    domain = session.found_domain("Whole Cake", 2)
    out = session.generate_abilities(request_from_mapping({"mode": "domain_lair", "domain_id": domain.entity_id}))
    assert out.ok
    (card,) = out.abilities
    assert card.name == "Lair Actions: Whole Cake"
    assert card.action_type == "Lair Action"
    assert (card.owner_kind, card.owner_id) == ("domain", domain.entity_id)


def test_malformed_output_is_stored_as_raw_text(cfg: AppConfig) -> None:
    session = _session(cfg, FakeAbilityProvider(raw="Here is a cool ability: Soul Lance, 4d8."))
    out = session.generate_abilities(request_from_mapping({"mode": "generic_ability"}))
    assert out.ok
    assert not out.structured
    (card,) = out.abilities
    assert card.name == RAW_TEXT_TITLE
    assert "Soul Lance" in card.description


def test_failed_generation_leaves_state_untouched(cfg: AppConfig) -> None:
    session = _session(cfg, FakeAbilityProvider(fail="503 from model"))
    session.add_soul("Captain", 20, 10, 10)
    before = state_to_dict(session.state)
    saved = cfg.storage_path.read_text(encoding="utf-8")

    out = session.generate_abilities(request_from_mapping({"mode": "soul_bank"}))
    assert not out.ok
    assert out.error == "503 from model"
    assert state_to_dict(session.state) == before
    assert cfg.storage_path.read_text(encoding="utf-8") == saved
    assert session.last_generation is out


def test_generation_needs_its_target(cfg: AppConfig) -> None:
    provider = FakeAbilityProvider()
    session = _session(cfg, provider)
    out = session.generate_abilities(request_from_mapping({"mode": "homie_attack", "homie_id": "homie-9"}))
    assert not out.ok
    assert provider.calls == []

    no_provider = SoulFruitSession(cfg, provider=None)
    assert not no_provider.generate_abilities(request_from_mapping({"mode": "soul_bank"})).ok


def test_snapshot_includes_domain_stats_and_totals(cfg: AppConfig) -> None:
    session = _session(cfg)
    _give_spu(session, 500)
    session.found_domain("Whole Cake", 4)
    snap = build_snapshot(session.state)
    (domain,) = snap["domains"]
    assert domain["control_range_ft"] == 400
    assert domain["passive_fear_dc"] == 14
    assert snap["totals"] == {"total": 500, "spent": 400, "available": 100}


def test_reset_clears_storage(cfg: AppConfig) -> None:
    session = _session(cfg)
    session.add_soul("Captain", 20, 10, 10)
    session.reset()
    assert session.state.souls == []
    assert not cfg.storage_path.exists()
    assert SELF_TARGET_ID in session.state.buff_targets


def test_headless_session_runs(tmp_path: Path) -> None:
    summary = run_headless_session(AppConfig(data_root=tmp_path))
    assert summary["generation_ok"] == [True, True, True]
    assert summary["homies"] == 2
    assert summary["domains"] == 1
    assert summary["abilities"] == 8 + 1 + 1
    assert summary["boon_purchase"].ok
    totals = summary["totals"]
    assert totals.available == totals.total - totals.spent
