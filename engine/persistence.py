"""engine.persistence

Whole-state persistence: one JSON blob under one versioned storage key.

- load: missing or corrupt blob -> default state; partial/older blobs are
  merged per top-level field against defaults, with `ui` merged key by key.
- save: full overwrite, atomic (temp file + os.replace).
- failures are logged, never raised; the session keeps its in-memory state.

The same blob shape is used for export/import in the app.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping

from core.state import SoulFruitState, default_state, state_from_mapping, state_to_dict
from core.store import ensure_base_state

log = logging.getLogger(__name__)

BLOB_VERSION = 1


def merge_with_defaults(saved: Mapping[str, Any]) -> Dict[str, Any]:
    merged = state_to_dict(default_state())
    ui = dict(merged["ui"])
    for key, value in dict(saved).items():
        if key == "ui" and isinstance(value, Mapping):
            ui.update(dict(value))
        elif key in merged and value is not None:
            merged[key] = value
    merged["ui"] = ui
    return merged


def state_from_blob(blob: Mapping[str, Any]) -> SoulFruitState:
    return ensure_base_state(state_from_mapping(merge_with_defaults(blob)))


def make_blob(state: SoulFruitState) -> Dict[str, Any]:
    return {"version": BLOB_VERSION, **state_to_dict(state)}


def export_state(state: SoulFruitState) -> str:
    return json.dumps(make_blob(state), ensure_ascii=False, indent=2, sort_keys=True)


def import_state(text: str) -> SoulFruitState:
    """Parse an exported blob. Raises ValueError when it is not a JSON object."""
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("saved state must be a JSON object")
    return state_from_blob(data)


def load_state(path: Path) -> SoulFruitState:
    path = Path(path)
    if not path.exists():
        return ensure_base_state(default_state())
    try:
        return import_state(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.error("Failed to load state from %s: %s", path, e)
        return ensure_base_state(default_state())


def save_state(state: SoulFruitState, path: Path) -> bool:
    path = Path(path)
    tmp_name = ""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(export_state(state))
        os.replace(tmp_name, path)
        return True
    except (OSError, TypeError, ValueError) as e:
        log.error("Failed to save state to %s: %s", path, e)
        if tmp_name and os.path.exists(tmp_name):
            try:
                os.unlink(tmp_name)
            except OSError:
                log.warning("Could not remove temp file %s", tmp_name)
        return False


def clear_state(path: Path) -> bool:
    path = Path(path)
    try:
        path.unlink(missing_ok=True)
        return True
    except OSError as e:
        log.error("Failed to clear state at %s: %s", path, e)
        return False
