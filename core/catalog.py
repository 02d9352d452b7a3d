"""
core.catalog
Built-in boon catalog and custom boon construction.
"""

from __future__ import annotations

from typing import Dict, Optional

from .state import ABILITY_KEYS, BuffDefinition, BuffEffect


def _add(buffs: Dict[str, BuffDefinition], buff: BuffDefinition) -> None:
    buffs[buff.id] = buff


def default_buffs() -> Dict[str, BuffDefinition]:
    buffs: Dict[str, BuffDefinition] = {}

    # defense
    _add(buffs, BuffDefinition(
        id="temp25",
        name="Soul Ward (+25 Temp HP)",
        category="defense",
        base_cost=10,
        description="A fragment of soul energy forms a warding shell, granting 25 temporary hit points.",
        effect=BuffEffect(type="temp_hp", amount=25),
    ))
    _add(buffs, BuffDefinition(
        id="temp60",
        name="Great Soul Ward (+60 Temp HP)",
        category="defense",
        base_cost=18,
        description="A massive barrier of collected souls grants 60 temporary hit points.",
        effect=BuffEffect(type="temp_hp", amount=60),
    ))
    _add(buffs, BuffDefinition(
        id="soul_armor",
        name="Soul Armor (+1 AC)",
        category="defense",
        base_cost=16,
        description="Orbiting soul fragments harden into armor, granting +1 AC per stack.",
        effect=BuffEffect(type="ac", amount=1),
    ))
    _add(buffs, BuffDefinition(
        id="terror_shell",
        name="Terror Shell (Resist mundane weapons)",
        category="defense",
        base_cost=22,
        description=(
            "Terrified spirits absorb mundane blows. Grants resistance to non-magical bludgeoning, "
            "piercing, and slashing damage. Stacks can add more uses or extend to allies."
        ),
        effect=BuffEffect(type="tag", tag="mundane_resist"),
    ))

    # mobility
    _add(buffs, BuffDefinition(
        id="soul_stride",
        name="Soul Stride (+10 ft Movement)",
        category="mobility",
        base_cost=10,
        description="Body is lightened by soul energy. Gain +10 ft walking speed per stack.",
        effect=BuffEffect(type="speed", amount=10),
    ))
    _add(buffs, BuffDefinition(
        id="soul_step30",
        name="Soul Step (30 ft)",
        category="mobility",
        base_cost=18,
        description="Step through the echo of your own soul, teleporting up to 30 ft. Stacks increase uses or distance.",
        effect=BuffEffect(type="tag", tag="soul_step30"),
    ))
    _add(buffs, BuffDefinition(
        id="soul_step60",
        name="Soul Step (60 ft)",
        category="mobility",
        base_cost=26,
        description="Greater soul-step up to 60 ft. Stacks increase uses or distance.",
        effect=BuffEffect(type="tag", tag="soul_step60"),
    ))

    # saves & checks
    for ab in ABILITY_KEYS:
        _add(buffs, BuffDefinition(
            id=f"plus2_{ab.lower()}_save",
            name=f"+2 {ab} Save Bonus",
            category="saves",
            base_cost=22,
            description=f"Guardian souls shield your {ab} saving throws. +2 per stack.",
            effect=BuffEffect(type="save_bonus", ability=ab, amount=2),
        ))
    for ab in ABILITY_KEYS:
        _add(buffs, BuffDefinition(
            id=f"adv_{ab.lower()}_save",
            name=f"Advantage on {ab} saves",
            category="saves",
            base_cost=26,
            description=f"Loyal souls warn you of danger, granting advantage on {ab} saves.",
            effect=BuffEffect(type="adv_save", ability=ab),
        ))
    for ab in ABILITY_KEYS:
        _add(buffs, BuffDefinition(
            id=f"adv_{ab.lower()}_check",
            name=f"Advantage on {ab} checks",
            category="checks",
            base_cost=20,
            description=f"Whispering spirits guide your {ab} checks, granting advantage.",
            effect=BuffEffect(type="adv_check", ability=ab),
        ))

    # offense / control
    _add(buffs, BuffDefinition(
        id="soul_blade",
        name="Soul-Forged Weapon",
        category="offense",
        base_cost=16,
        description=(
            "Create a weapon made of condensed souls. Counts as magical; stacks can add riders "
            "like extra necrotic damage."
        ),
        effect=BuffEffect(type="tag", tag="soul_blade"),
    ))
    _add(buffs, BuffDefinition(
        id="severed_lifespan",
        name="Severed Lifespan Strike",
        category="offense",
        base_cost=24,
        description=(
            "Attacks leech lifespan on hit, dealing bonus necrotic damage and healing you or "
            "adding SPU (DM adjudicates)."
        ),
        effect=BuffEffect(type="tag", tag="lifespan_strike"),
    ))
    _add(buffs, BuffDefinition(
        id="soul_bind",
        name="Soul Bind",
        category="control",
        base_cost=24,
        description=(
            "Chains of soul-light clamp down on a foe, restraining them on a failed save. "
            "Stacks can increase DC, range, or number of targets."
        ),
        effect=BuffEffect(type="tag", tag="soul_bind"),
    ))

    return buffs


def make_custom_buff(buff_id: str, name: str, base_cost: int, description: str = "") -> Optional[BuffDefinition]:
    """Return a custom boon, or None when the name is blank or the cost is not positive."""
    name = (name or "").strip()
    try:
        cost = int(base_cost)
    except (TypeError, ValueError):
        return None
    if not name or cost <= 0:
        return None
    return BuffDefinition(
        id=buff_id,
        name=name,
        category="custom",
        base_cost=cost,
        description=(description or "").strip() or "Custom soul boon / contract.",
        effect=BuffEffect(type="tag", tag="custom"),
    )
