"""
core.selfcheck
Minimal "it runs" proof for the SPU economy.

Run:
  python -m core.selfcheck
"""

from __future__ import annotations

from dataclasses import asdict

from .formulas import buff_stack_cost, compute_soul_level, soul_dc, terror_capture
from .ledger import adjust_buff_stacks, compute_totals, create_domain, create_tiered_homie, raise_homie_tier
from .state import SELF_TARGET_ID
from .store import EntityStore


def run_economy_smoke() -> None:
    store = EntityStore()

    # one strong soul, one weak soul
    store.add_soul("Pirate Captain", 20, 10, 10, traits_text="Cruel")
    store.add_soul("Deckhand", 5, 3, 2)
    totals = compute_totals(store.state)
    assert totals.spent == 0
    assert totals.available == totals.total

    # stacks: 25, 38, 75 ...
    assert buff_stack_cost(25, 3) == 25 + 38 + 75
    while adjust_buff_stacks(store, SELF_TARGET_ID, "temp25", 1):
        totals = compute_totals(store.state)
        assert totals.available >= 0
    adjust_buff_stacks(store, SELF_TARGET_ID, "temp25", -100)
    assert compute_totals(store.state).spent == 0

    homie = create_tiered_homie(store, "Zeus", "territory")
    assert homie is not None
    while raise_homie_tier(store, homie.id, "hp"):
        pass
    domain = create_domain(store, "Whole Cake Island", tier=1)

    rating = compute_soul_level(12, 7, 6)
    dc = soul_dc(4, 5, rating.soul_level)
    capture = terror_capture(dc, dc - 5, 15, rating.soul_level)
    assert capture.captured and capture.terror_roll == 20

    totals = compute_totals(store.state)
    assert totals.spent <= totals.total
    assert totals.available == totals.total - totals.spent

    print("OK: SPU economy smoke test passed.")
    print("Totals:", asdict(totals))
    print("Homie tiers:", homie.tiers, "domain:", domain.name if domain else None)
    print("Capture:", asdict(capture))


if __name__ == "__main__":
    run_economy_smoke()
