"""
Mind map generation + editing.

Both operations are fail-soft: backend/transport failures never reach the
caller. ``generate_mindmap`` degrades to the fallback document and
``edit_mindmap`` hands back the unmodified document.
"""

import logging

import httpx

from app.services.markdown_extractor import FALLBACK_MARKDOWN, extract, parse_json, try_extract
from app.services.ollama_client import OllamaClient

logger = logging.getLogger(__name__)


# ── Prompts ───────────────────────────────────────────────────────────────────

STYLE_EXAMPLE = """\
# My title

## Resources

- <https://markmap.js.org/>
- [GitHub](https://github.com/markmap/markmap)

## Related

- [coc-markmap](https://github.com/markmap/coc-markmap)
- [gatsby-remark-markmap](https://github.com/markmap/gatsby-remark-markmap)

## Features

- links
- **inline** ~~text~~ *styles*
- multiline
  text

- Katex - $x = {-b \\pm \\sqrt{b^2-4ac} \\over 2a}$
- This is a very very very very very very very very very very very very very very very long line.
"""


def build_generate_prompt(topic: str) -> str:
    return (
        "Generate a mindmap in markdown format based on the following prompt: "
        f"{topic}. Make sure you use - for subnodes. Give only the mindmap, no notes\n"
        "Below is an example of a markdown file that can be used to generate a mindmap:\n\n"
        f"{STYLE_EXAMPLE}"
    )


def build_edit_prompt(current: str, instruction: str) -> str:
    return (
        "Take the existing mindmap in markdown format below:\n\n"
        f"{current}\n\n"
        "Now update it based on the following instructions:\n"
        f"{instruction}\n\n"
        "Return the updated mindmap in proper markdown format (use '-' for subnodes)."
    )


def unwrap_response(text: str) -> str:
    """Peel one ``{"response": ...}`` layer some backends add twice."""
    parsed = parse_json(text)
    if isinstance(parsed, dict):
        inner = parsed.get("response")
        if isinstance(inner, str) and inner:
            return inner
    return text


# ── Operations ────────────────────────────────────────────────────────────────

async def generate_mindmap(client: OllamaClient, topic: str) -> str:
    """Fresh outline for ``topic``; the fallback document on total failure."""
    logger.info("[GENERATE] Starting generation...")
    try:
        raw = await client.complete(client.build_request(build_generate_prompt(topic)))
    except httpx.HTTPError as e:
        logger.warning(f"[GENERATE] Backend call failed: {e!r}. Using fallback mindmap")
        return FALLBACK_MARKDOWN

    markdown = extract(raw)
    logger.info(f"[GENERATE] ✓ {len(markdown)} chars")
    return markdown


async def edit_mindmap(client: OllamaClient, current: str, instruction: str) -> str:
    """Updated outline, or ``current`` unchanged if nothing usable came back."""
    logger.info("[EDIT] Starting edit...")
    try:
        raw = await client.complete(
            client.build_request(build_edit_prompt(current, instruction))
        )
    except httpx.HTTPError as e:
        logger.warning(f"[EDIT] Backend call failed: {e!r}. Keeping current mindmap")
        return current

    extracted = try_extract(raw)
    if extracted is None:
        logger.warning("[EDIT] Empty backend output. Keeping current mindmap")
        return current

    updated = unwrap_response(extracted)
    logger.info(f"[EDIT] ✓ {len(updated)} chars")
    return updated
