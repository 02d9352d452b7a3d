from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from content.providers.base import GenerationError
from content.providers.gemini import DEFAULT_MODEL, GeminiProvider
from core.catalog import default_buffs, make_custom_buff
from core.formulas import buff_totals_for_target, describe_buff_total
from core.modes import DEFAULT_MODES, get_mode_spec, is_known_mode
from core.rng import roll_d20, stable_int_seed
from core.state import ABILITY_KEYS, BuffTarget
from engine.config import STORAGE_KEY, AppConfig


def test_default_catalog_contents() -> None:
    buffs = default_buffs()
    assert len(buffs) == 28
    for ab in ABILITY_KEYS:
        low = ab.lower()
        assert buffs[f"plus2_{low}_save"].effect.amount == 2
        assert buffs[f"adv_{low}_save"].effect.type == "adv_save"
        assert buffs[f"adv_{low}_check"].effect.type == "adv_check"
    assert all(b.base_cost > 0 for b in buffs.values())
    assert all(b.id == k for k, b in buffs.items())


def test_make_custom_buff() -> None:
    assert make_custom_buff("custom_1", "  ", 10) is None
    assert make_custom_buff("custom_1", "Pact", -1) is None
    assert make_custom_buff("custom_1", "Pact", "lots") is None
    buff = make_custom_buff("custom_1", "Pact", "12")
    assert buff.base_cost == 12
    assert buff.description


def test_buff_totals_aggregate_effects() -> None:
    catalog = default_buffs()
    target = BuffTarget(
        id="self",
        name="Me",
        type="self",
        buffs={"temp25": 2, "soul_armor": 3, "plus2_wis_save": 1, "adv_dex_save": 1, "terror_shell": 2},
    )
    totals = buff_totals_for_target(target, catalog)
    assert totals.temp_hp == 50
    assert totals.ac == 3
    assert totals.saves["WIS"] == 2
    assert totals.adv_saves.get("DEX") is True
    assert totals.tags == {"mundane_resist": 2}
    assert describe_buff_total(catalog["temp25"], 2) == "Total: +50 temp HP."
    assert describe_buff_total(catalog["terror_shell"], 2) == ""


def test_modes() -> None:
    assert set(DEFAULT_MODES) == {"soul_bank", "homie_attack", "domain_lair", "generic_ability"}
    assert get_mode_spec("nope").key == "soul_bank"
    assert get_mode_spec("domain_lair").output == "text"
    assert get_mode_spec("homie_attack").needs_homie
    assert not is_known_mode("")


def test_rng_is_stable() -> None:
    assert stable_int_seed("a", 1) == stable_int_seed("a", 1)
    assert stable_int_seed("a", 1) != stable_int_seed("a", 2)
    rolls = {roll_d20("x", i, base_seed=42) for i in range(200)}
    assert rolls <= set(range(1, 21))
    assert len(rolls) > 10


def test_config_from_env() -> None:
    cfg = AppConfig.from_env({
        "GOOGLE_API_KEY": "k2",
        "SOUL_FRUIT_DATA_ROOT": "/tmp/sf",
        "SOUL_FRUIT_MODEL": "gemini-x",
        "SOUL_FRUIT_SEED": "not-a-number",
    })
    assert cfg.api_key == "k2"
    assert cfg.model == "gemini-x"
    assert cfg.storage_path == Path("/tmp/sf") / f"{STORAGE_KEY}.json"
    assert cfg.base_seed == 42
    assert AppConfig.from_env({"GEMINI_API_KEY": "k1", "GOOGLE_API_KEY": "k2"}).api_key == "k1"
    assert AppConfig.from_env({}).with_api_key("k3").api_key == "k3"


def test_provider_without_key_is_not_ready() -> None:
    provider = GeminiProvider.from_api_key_string("")
    status = provider.status()
    assert not status.ok
    assert "GEMINI_API_KEY" in status.error
    with pytest.raises(GenerationError):
        provider.generate_abilities(system_prompt="s", prompt="p")


class _FakeModels:
    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def generate_content(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def _provider_with(models: _FakeModels) -> GeminiProvider:
    provider = GeminiProvider.from_api_key_string("")
    provider._client = SimpleNamespace(models=models)
    provider.backend = "genai"
    return provider


def test_provider_sends_one_request_and_parses() -> None:
    models = _FakeModels(text='```json\n{"name": "Soul Lance", "effect": "pierce"}\n```')
    provider = _provider_with(models)
    assert provider.status().ok
    payload, raw = provider.generate_abilities(system_prompt="sys", prompt="user", temperature=0.5)
    assert [a.name for a in payload.abilities] == ["Soul Lance"]
    assert raw.startswith("```json")
    (call,) = models.calls
    assert call["model"] == DEFAULT_MODEL
    assert call["contents"] == "user"
    assert call["config"]["system_instruction"] == "sys"
    assert call["config"]["temperature"] == 0.5


def test_provider_errors_become_generation_errors() -> None:
    provider = _provider_with(_FakeModels(error=RuntimeError("429 quota")))
    with pytest.raises(GenerationError, match="429 quota"):
        provider.generate_abilities(system_prompt="s", prompt="p")

    provider = _provider_with(_FakeModels(text="   "))
    with pytest.raises(GenerationError, match="empty"):
        provider.generate_abilities(system_prompt="s", prompt="p")


def test_first_key_of_a_list_wins() -> None:
    provider = GeminiProvider.from_api_key_string(" , ,")
    assert provider.api_key == ""
