"""engine.proxy

Framework-agnostic handler for the ability-generation endpoint.

The caller posts a JSON body (mode + knobs + a snapshot of souls, homies,
domains and totals) and gets back `(http_status, payload)`. The handler
never touches a store; the client decides what to do with the abilities.

No web server ships here. A host mounts it as one POST route, e.g. with any
WSGI/ASGI framework:

    provider = GeminiProvider.from_api_key_string(AppConfig.from_env().api_key)

    def generate(request):
        status, payload = handle_generate_request(request.json(), provider)
        return json_response(payload, status=status)

The Streamlit app calls SoulFruitSession.generate_abilities instead, which
shares the same prompts and parser.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from content.prompts import build_prompts
from content.providers.base import AbilityProvider, GenerationError
from content.schemas import request_from_mapping
from core.modes import get_mode_spec

log = logging.getLogger(__name__)

SNAPSHOT_KEYS = ("souls", "homies", "domains", "totals")


def _error(status: int, message: str) -> Tuple[int, Dict[str, Any]]:
    return status, {"success": False, "error": message}


def snapshot_from_body(body: Mapping[str, Any]) -> Dict[str, Any]:
    """Accepts the snapshot either nested under "snapshot" or at the top level."""
    src = body.get("snapshot")
    if not isinstance(src, Mapping):
        src = body
    snap: Dict[str, Any] = {}
    for key in SNAPSHOT_KEYS:
        value = src.get(key)
        if key == "totals":
            snap[key] = dict(value) if isinstance(value, Mapping) else {}
        else:
            snap[key] = [x for x in value if isinstance(x, Mapping)] if isinstance(value, list) else []
    return snap


def handle_generate_request(
    body: Any,
    provider: Optional[AbilityProvider],
    max_output_tokens: int = 4000,
) -> Tuple[int, Dict[str, Any]]:
    if not isinstance(body, Mapping):
        return _error(400, "Request body must be a JSON object.")
    try:
        req = request_from_mapping(body)
    except ValueError as e:
        return _error(400, str(e))

    if provider is None or not provider.status().ok:
        return _error(503, "Ability generation is not configured (missing API key).")

    spec = get_mode_spec(req.mode)
    prompts = build_prompts(req, snapshot_from_body(body))
    try:
        payload, raw = provider.generate_abilities(
            system_prompt=prompts["system"],
            prompt=prompts["user"],
            temperature=spec.temp,
            max_output_tokens=max_output_tokens,
        )
    except GenerationError as e:
        log.error("Generation request failed (%s): %s", req.mode, e)
        return _error(502, str(e))

    return 200, {
        "success": True,
        "abilities": [a.to_dict() for a in payload.abilities],
        "text": raw,
        "structured": payload.structured,
    }
