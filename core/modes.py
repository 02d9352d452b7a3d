"""
core.modes
Ability-generation mode specifications.

Kept in core so the request handler, prompts and UI agree on the same keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class ModeSpec:
    key: str
    label: str
    desc: str
    temp: float
    output: str  # list | single | text
    needs_homie: bool = False
    needs_domain: bool = False


DEFAULT_MODES: Dict[str, ModeSpec] = {
    "soul_bank": ModeSpec(
        key="soul_bank",
        label="Whole soul bank",
        desc="Design 8-20 abilities from every soul, homie and domain on file.",
        temp=0.9,
        output="list",
    ),
    "homie_attack": ModeSpec(
        key="homie_attack",
        label="Homie signature attack",
        desc="One multi-step signature attack for a single homie.",
        temp=0.9,
        output="single",
        needs_homie=True,
    ),
    "domain_lair": ModeSpec(
        key="domain_lair",
        label="Domain lair actions",
        desc="3-5 numbered lair actions for one domain, stored as a single card.",
        temp=0.85,
        output="text",
        needs_domain=True,
    ),
    "generic_ability": ModeSpec(
        key="generic_ability",
        label="Custom ability",
        desc="One cinematic ability shaped by requested effects, outcomes and power level.",
        temp=0.9,
        output="single",
    ),
}


def get_mode_spec(mode_key: str) -> ModeSpec:
    return DEFAULT_MODES.get(mode_key, DEFAULT_MODES["soul_bank"])


def is_known_mode(mode_key: str) -> bool:
    return str(mode_key or "") in DEFAULT_MODES
