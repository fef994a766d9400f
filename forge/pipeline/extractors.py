"""JSON extraction from provider output.

The provider is asked for bare JSON but sometimes wraps it in markdown
fences or surrounds it with prose. Extraction is a best-effort heuristic,
not a grammar: it picks the most plausible JSON-looking substring and parses
it strictly. Anything it cannot parse becomes a ParseFailure that keeps the
original text so the repair path can send it back to the provider.
"""

import json
import logging
import re
from typing import Any

from forge.errors import ParseFailure

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)

SHORT_EXCERPT_LIMIT = 250
SNIPPET_LENGTH = 120


def extract_candidate(text: str) -> str:
    """Return the substring most likely to be the JSON payload.

    1. A whole-string ``` / ```json fence is unwrapped.
    2. Otherwise the {…} span (first '{' to last '}') is the candidate, unless
       the […] span is longer, there is no object span, or the brackets
       strictly enclose the braces.
    Text with neither span is returned trimmed and unchanged.
    """
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match and match.group(1):
        return match.group(1).strip()

    first_brace = cleaned.find("{")
    last_brace = cleaned.rfind("}")
    first_bracket = cleaned.find("[")
    last_bracket = cleaned.rfind("]")

    candidate = ""
    if first_brace != -1 and last_brace > first_brace:
        candidate = cleaned[first_brace:last_brace + 1]

    if first_bracket != -1 and last_bracket > first_bracket:
        array_candidate = cleaned[first_bracket:last_bracket + 1]
        encloses = first_brace != -1 and first_bracket < first_brace and last_bracket > last_brace
        if (
            not candidate
            or len(array_candidate) > len(candidate)
            or encloses
            or first_brace == -1
        ):
            candidate = array_candidate

    return candidate or cleaned


def _excerpt(attempted: str) -> str:
    if len(attempted) < SHORT_EXCERPT_LIMIT:
        return f'Attempted content: "{attempted}"'
    return (
        "Attempted content snippet (start and end): "
        f'"{attempted[:SNIPPET_LENGTH]}...{attempted[-SNIPPET_LENGTH:]}"'
    )


def extract_json(raw_text: str, is_fix_attempt: bool = False) -> Any:
    """Parse the JSON payload out of raw provider text or raise ParseFailure."""
    attempted = extract_candidate(raw_text)
    try:
        return json.loads(attempted)
    except json.JSONDecodeError as e:
        logger.warning(
            "Provider output is not valid JSON: %s (raw_len=%d, attempted_len=%d)",
            e.msg, len(raw_text), len(attempted),
        )
        message = (
            "Failed to parse JSON from AI response. "
            "The AI may not have strictly adhered to the JSON format."
        )
        if is_fix_attempt:
            message = f"AI failed to correct the JSON format. {message}"
        message = f"{message} {_excerpt(attempted)} | Parser error: {e}"
        raise ParseFailure(message, raw_text=raw_text, parser_message=str(e)) from e
