"""content.parsing

JSON extraction for model output.

Models wrap JSON in prose or code fences often enough that we clean it first:
- strip code fences
- cut the outermost {...} pair
- normalize smart quotes
- escape bare newlines inside quoted strings
- remove trailing commas

Then exactly one strict json.loads. No literal_eval, no guessing beyond that:
anything that still fails is reported and the caller keeps the raw text.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ParseResult:
    data: Optional[Dict[str, Any]]
    raw: str
    cleaned: str
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.data is not None


_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def strip_code_fences(s: str) -> str:
    s = (s or "").strip()
    m = _FENCE_RE.search(s)
    if m:
        return (m.group(1) or "").strip()
    return s


def extract_outer_object(s: str) -> str:
    """Slice from the first '{' to the last '}' (unchanged if there is no pair)."""
    s = (s or "").strip()
    i = s.find("{")
    j = s.rfind("}")
    if i < 0 or j <= i:
        return s
    return s[i : j + 1]


def normalize_smart_quotes(s: str) -> str:
    return (
        (s or "")
        .replace("\u201c", '"')
        .replace("\u201d", '"')
        .replace("\u2018", "'")
        .replace("\u2019", "'")
        .replace("\u00a0", " ")
    )


def remove_trailing_commas(s: str) -> str:
    return re.sub(r",\s*([}\]])", r"\1", s)


def escape_newlines_in_json_strings(s: str) -> str:
    """Escape raw CR/LF that appear inside double-quoted strings."""
    out = []
    in_str = False
    esc = False
    for ch in s or "":
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            elif ch == "\n":
                out.append("\\n")
                continue
            elif ch == "\r":
                out.append("\\r")
                continue
        elif ch == '"':
            in_str = True
        out.append(ch)
    return "".join(out)


def clean_model_json(raw: str) -> str:
    s = strip_code_fences(raw)
    s = extract_outer_object(s)
    s = normalize_smart_quotes(s)
    s = escape_newlines_in_json_strings(s)
    return remove_trailing_commas(s)


def parse_json_object(raw: str) -> ParseResult:
    raw = (raw or "").strip()
    s = clean_model_json(raw)
    if not s:
        return ParseResult(data=None, raw=raw, cleaned=s, error="empty output")
    try:
        obj = json.loads(s)
    except json.JSONDecodeError as e:
        return ParseResult(data=None, raw=raw, cleaned=s, error=f"json.loads: {e}")
    if not isinstance(obj, dict):
        return ParseResult(data=None, raw=raw, cleaned=s, error="JSON root is not an object")
    return ParseResult(data=obj, raw=raw, cleaned=s)
