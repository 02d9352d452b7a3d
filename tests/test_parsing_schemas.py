from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from content.parsing import clean_model_json, parse_json_object
from content.schemas import (
    MAX_ABILITIES,
    RAW_TEXT_TITLE,
    parse_ability_payload,
    request_from_mapping,
)


def test_parse_handles_fences_prose_and_trailing_commas() -> None:
    raw = 'Sure! Here you go:\n```json\n{"name": "Soul Lance", "effect": "pierce",}\n```\nEnjoy.'
    res = parse_json_object(raw)
    assert res.ok
    assert res.data == {"name": "Soul Lance", "effect": "pierce"}


def test_parse_normalizes_smart_quotes_and_raw_newlines() -> None:
    raw = "{“name”: “Fear Wave”, “effect”: “line one\nline two”}"
    res = parse_json_object(raw)
    assert res.ok
    assert res.data["effect"] == "line one\nline two"


def test_parse_rejects_non_objects() -> None:
    assert not parse_json_object("").ok
    assert not parse_json_object("no json here").ok
    assert not parse_json_object("[1, 2, 3]").ok
    assert clean_model_json("  ") == ""


def test_ability_list_with_aliases() -> None:
    raw = json.dumps({
        "abilities": [
            {
                "abilityName": "Candy Storm",
                "assignTo": "Domain: Whole Cake",
                "actionType": "Action",
                "saveOrDC": "DEX 17",
                "damageDice": "8d6",
                "mechanicalEffect": "Sticky ground.",
                "interactions": "Zeus adds lightning.",
            },
            {"name": "Soul Pocus", "save": "WIS 18", "effect": "Frightened."},
        ]
    })
    payload = parse_ability_payload(raw)
    assert payload.structured
    assert payload.error == ""
    first, second = payload.abilities
    assert first.name == "Candy Storm"
    assert first.assign_to == "Domain: Whole Cake"
    assert first.save_dc == "DEX 17"
    assert first.damage == "8d6"
    assert first.effect == "Sticky ground."
    assert first.combo == "Zeus adds lightning."
    assert second.save_dc == "WIS 18"
    assert second.range == ""


def test_single_ability_object() -> None:
    payload = parse_ability_payload('{"name": "Solar Flare", "damageDice": "6d10 fire"}')
    assert payload.structured
    assert [a.name for a in payload.abilities] == ["Solar Flare"]


def test_lair_actions_become_one_card() -> None:
    payload = parse_ability_payload('{"lairActions": "1. Quake\\n2. Fog"}', text_title="Lair Actions: Coast")
    assert len(payload.abilities) == 1
    card = payload.abilities[0]
    assert card.name == "Lair Actions: Coast"
    assert card.action_type == "Lair Action"
    assert card.description == "1. Quake\n2. Fog"


def test_malformed_output_falls_back_to_raw_text() -> None:
    raw = "The ability is called Soul Lance and it does 4d8."
    payload = parse_ability_payload(raw)
    assert not payload.structured
    assert payload.error
    assert len(payload.abilities) == 1
    assert payload.abilities[0].name == RAW_TEXT_TITLE
    assert payload.abilities[0].description == raw


@pytest.mark.parametrize(
    "raw",
    [
        '{"abilities": "not a list"}',
        '{"abilities": []}',
        '{"abilities": [{"name": "X", "effect": "too short name"}]}',
        '{"abilities": [{"name": "Empty Shell"}]}',
        '{"abilities": [42]}',
        '{"something": "else"}',
    ],
)
def test_schema_failures_fall_back_to_raw_text(raw: str) -> None:
    payload = parse_ability_payload(raw)
    assert not payload.structured
    assert payload.text == raw
    assert payload.abilities[0].description == raw


def test_ability_list_is_capped() -> None:
    items = [{"name": f"Ability {i}", "effect": "x"} for i in range(MAX_ABILITIES + 5)]
    payload = parse_ability_payload(json.dumps({"abilities": items}))
    assert len(payload.abilities) == MAX_ABILITIES


def test_request_from_mapping() -> None:
    req = request_from_mapping({
        "mode": "generic_ability",
        "effectTypes": "fear, drain",
        "outcomeTypes": ["cone", ""],
        "powerLevel": 99,
        "soulCost": -4,
        "assignTo": "Prometheus",
    })
    assert req.effect_types == ["fear", "drain"]
    assert req.outcome_types == ["cone"]
    assert req.power_level == 10
    assert req.soul_cost == 0
    assert req.assign_to == "Prometheus"


@pytest.mark.parametrize("body", [{}, {"mode": ""}, {"mode": "nope"}])
def test_request_requires_known_mode(body: dict) -> None:
    with pytest.raises(ValueError):
        request_from_mapping(body)
