"""
core.rng
Deterministic dice helpers that do NOT rely on Python's built-in hash().

Same (base_seed + inputs) => same roll across platforms & runs, so a capture
rolled at the table can be reproduced from the saved sheet.
"""

from __future__ import annotations

import hashlib
import json
import random
from typing import Any


def stable_int_seed(*parts: Any, salt: str = "soul-fruit") -> int:
    """Return a stable 32-bit integer seed derived from arbitrary inputs.

    Uses SHA-256 over a canonical JSON representation of `parts`.
    `default=str` keeps non-JSON types serializable.
    """
    payload = json.dumps(parts, sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=str)
    h = hashlib.sha256((salt + "|" + payload).encode("utf-8")).digest()
    return int.from_bytes(h[:4], "big", signed=False)


def rng_from(*parts: Any, base_seed: int) -> random.Random:
    """Create a Random instance from (base_seed + parts)."""
    return random.Random(stable_int_seed(base_seed, *parts))


def roll_die(sides: int, *parts: Any, base_seed: int) -> int:
    return rng_from("die", int(sides), *parts, base_seed=base_seed).randint(1, max(1, int(sides)))


def roll_d20(*parts: Any, base_seed: int) -> int:
    return roll_die(20, *parts, base_seed=base_seed)
