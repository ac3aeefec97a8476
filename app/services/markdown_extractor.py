"""
Markdown Extractor
==================
Recovers a markdown outline from whatever the backend sent back: a JSON
envelope, a ```markdown fence (bare or inside a JSON "response" field),
an ad-hoc ``{"map": {...}}`` tree, or plain text.

Each strategy is a pure ``attempt(raw, parsed) -> Optional[str]`` that
returns None instead of raising. Strategies run in order, first hit wins,
and ``extract`` never fails: it falls back to ``FALLBACK_MARKDOWN``.
"""

import json
import re
import logging
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

FALLBACK_MARKDOWN = (
    "# Fallback Mindmap\n"
    "- Could not generate mindmap because the backend returned no usable content.\n"
    "- This is a placeholder mindmap.\n"
)

_FENCE_PATTERN = re.compile(r"```markdown\s*(.*?)```", re.IGNORECASE | re.DOTALL)

# Marks raw text that is not valid JSON (JSON ``null`` parses to None).
NOT_JSON = object()

Attempt = Callable[[str, Any], Optional[str]]


# ── Helpers ───────────────────────────────────────────────────────────────────

def parse_json(raw_text: str) -> Any:
    """Parsed JSON value, or NOT_JSON."""
    try:
        return json.loads(raw_text)
    except (json.JSONDecodeError, TypeError):
        return NOT_JSON


def _string_field(parsed: Any, key: str) -> Optional[str]:
    if isinstance(parsed, dict):
        value = parsed.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def find_markdown_fence(text: str) -> Optional[str]:
    """Trimmed interior of the first ```markdown fence in ``text``."""
    match = _FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    return None


def _format_leaf(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def map_to_markdown(tree: Any, indent: int = 0) -> str:
    """Render nested dicts (and lists) as a bullet list, two spaces per level."""
    prefix = "  " * indent + "- "
    items = tree.items() if isinstance(tree, dict) else enumerate(tree)
    lines = []
    for key, value in items:
        if isinstance(value, (dict, list)):
            lines.append(f"{prefix}**{key}**:\n")
            lines.append(map_to_markdown(value, indent + 1))
        else:
            lines.append(f"{prefix}**{key}**: {_format_leaf(value)}\n")
    return "".join(lines)


# ── Strategies (priority order) ──────────────────────────────────────────────

def _markdown_field(raw: str, parsed: Any) -> Optional[str]:
    return _string_field(parsed, "markdown")


def _fenced_block(raw: str, parsed: Any) -> Optional[str]:
    if parsed is NOT_JSON:
        return find_markdown_fence(raw)
    response = _string_field(parsed, "response")
    if response is not None:
        return find_markdown_fence(response)
    return None


def _response_field(raw: str, parsed: Any) -> Optional[str]:
    return _string_field(parsed, "response")


def _map_field(raw: str, parsed: Any) -> Optional[str]:
    if isinstance(parsed, dict) and isinstance(parsed.get("map"), dict):
        return map_to_markdown(parsed["map"]) or None
    return None


def _serialized_json(raw: str, parsed: Any) -> Optional[str]:
    if parsed is NOT_JSON:
        return None
    return json.dumps(parsed, indent=2, ensure_ascii=False)


def _raw_text(raw: str, parsed: Any) -> Optional[str]:
    if parsed is NOT_JSON and raw:
        return raw
    return None


STRATEGIES: List[Attempt] = [
    _markdown_field,
    _fenced_block,
    _response_field,
    _map_field,
    _serialized_json,
    _raw_text,
]


# ── Public API ────────────────────────────────────────────────────────────────

def try_extract(raw_text: Optional[str]) -> Optional[str]:
    """Best-effort markdown, or None when nothing usable was found."""
    if not raw_text:
        return None
    parsed = parse_json(raw_text)
    for attempt in STRATEGIES:
        result = attempt(raw_text, parsed)
        if result is not None:
            logger.debug(f"[EXTRACT] Matched strategy {attempt.__name__}")
            return result
    return None


def extract(raw_text: Optional[str]) -> str:
    """Always returns displayable markdown."""
    result = try_extract(raw_text)
    if result is None:
        logger.warning("[EXTRACT] No usable content, returning fallback mindmap")
        return FALLBACK_MARKDOWN
    return result
