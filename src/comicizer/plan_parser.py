"""Recovery parser for LLM-generated page plans.

The planning model is told to answer with a bare JSON array of page plans,
but its output regularly arrives with reasoning preambles, markdown code
fences, raw newlines inside strings, unescaped quotes, trailing commas or
several concatenated JSON values. ``PlanRecoveryParser`` runs an ordered
cascade of independent strategies; the first one that yields at least one
valid page wins.

Strategies:
    1. direct        - ``json.loads`` on the raw text
    2. clean         - full cleaning pipeline, then parse
    3. extract_array - greedy ``[...]`` span, then cleaning pipeline
    4. aggressive    - collapse all whitespace, extract span, clean
    5. fields        - regex over ``pageNumber``/``description``/``visualCue``

Usage:
    from comicizer.plan_parser import PlanRecoveryParser

    pages = PlanRecoveryParser().parse(llm_text)
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Sequence
from typing import Any

from loguru import logger
from pydantic import ValidationError

from comicizer.constants import DEFAULT_PREVIEW_CHARS
from comicizer.errors import PlanParseError
from comicizer.types import PagePlan

# Preamble markers removed from the start (or end, for fences) of the text.
# Applied in order; each one only once.
_PREFIX_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^<think>.*?</think>\s*", re.IGNORECASE | re.DOTALL),
    re.compile(r"^```(?:json)?\s*", re.IGNORECASE),
    re.compile(r"\s*```$"),
    re.compile(
        r"^(?:(?:Sure|Certainly|Of course),\s*)?here(?:'s| is) (?:the|a|your) JSON"
        r"(?: (?:response|array|output))?:\s*",
        re.IGNORECASE,
    ),
    re.compile(r"^The JSON (?:response|array) is:\s*", re.IGNORECASE),
    re.compile(r"^JSON (?:response|array):\s*", re.IGNORECASE),
    re.compile(r"^Response:\s*", re.IGNORECASE),
    re.compile(r"^Output:\s*", re.IGNORECASE),
    re.compile(r"^```json\s*", re.IGNORECASE),
    re.compile(r"\s*```$"),
)

_TAG_PATTERN = re.compile(r"<[^>]*>")
_ARRAY_SPAN_PATTERN = re.compile(r"\[[\s\S]*\]")
_LINE_BREAKS_PATTERN = re.compile(r"\r\n|[\r\n\t]")
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([\]}])")
_QUOTED_LITERAL_PATTERN = re.compile(r'":\s*"(true|false|null)"')
_WHITESPACE_PATTERN = re.compile(r"\s+")
_CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x1f\x7f-\x9f]")

# Quote terminators: a quote closes a string only when followed by one of these
_STRING_TERMINATORS = frozenset(",}]:")

# Field order is fixed: pageNumber, description, visualCue
_PAGE_FIELDS_PATTERN = re.compile(
    r'"pageNumber"\s*:\s*(\d+)\s*,\s*'
    r'"description"\s*:\s*"((?:[^"\\]|\\.)*)"\s*,\s*'
    r'"visualCue"\s*:\s*"((?:[^"\\]|\\.)*)"'
)

# Keys under which some models wrap the page array in an object
_WRAPPER_KEYS = ("pages", "plan", "comic", "items", "data")


# =============================================================================
# Cleaning pipeline
# =============================================================================


def clean_control_characters(text: str) -> str:
    """Remove ASCII and C1 control characters.

    Unlike the provider-side helper this also drops tab, newline and
    carriage return; by the time it runs they have been replaced already.
    """
    return _CONTROL_CHARS_PATTERN.sub("", text)


def strip_preamble(text: str) -> str:
    """Remove reasoning blocks, code fences and "Here is the JSON" phrasing."""
    cleaned = text.strip()
    for pattern in _PREFIX_PATTERNS:
        cleaned = pattern.sub("", cleaned, count=1)
    return cleaned


def fix_unescaped_quotes(text: str) -> str:
    """Escape quotes that sit inside a string value without a backslash.

    Single pass with two states, inside and outside a string. An unescaped
    quote opens a string when outside. Inside a string it is a terminator
    only if the next non-whitespace character is ``, } ] :`` or the end of
    input; otherwise it is emitted as ``\\"``.

    Example:
        >>> fix_unescaped_quotes('{"a": "say "hi" now"}')
        '{"a": "say \\\\"hi\\\\" now"}'
    """
    result: list[str] = []
    in_string = False
    length = len(text)
    i = 0
    while i < length:
        char = text[i]

        if in_string and char == "\\":
            # Copy escape pairs verbatim so \" never toggles state
            result.append(text[i : i + 2])
            i += 2
            continue

        if char != '"':
            result.append(char)
            i += 1
            continue

        if not in_string:
            in_string = True
            result.append(char)
        else:
            j = i + 1
            while j < length and text[j].isspace():
                j += 1
            if j >= length or text[j] in _STRING_TERMINATORS:
                in_string = False
                result.append(char)
            else:
                result.append('\\"')
        i += 1

    return "".join(result)


def _top_level_spans(text: str) -> list[str]:
    """Split text into its top-level ``{...}``/``[...]`` values, string-aware."""
    spans: list[str] = []
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = depth > 0
        elif char in "{[":
            if depth == 0:
                start = i
            depth += 1
        elif char in "}]" and depth > 0:
            depth -= 1
            if depth == 0:
                spans.append(text[start : i + 1])
    return spans


def merge_concatenated_values(text: str) -> str:
    """Join several top-level JSON values into one array.

    ``{...}{...}`` and ``[...] [...]`` both become a single ``[...]``.
    Text with fewer than two top-level values is returned unchanged.
    """
    spans = _top_level_spans(text)
    if len(spans) < 2:
        return text
    items: list[str] = []
    for span in spans:
        if span.startswith("["):
            inner = span[1:-1].strip()
            if inner:
                items.append(inner)
        else:
            items.append(span)
    return "[" + ",".join(items) + "]"


def clean_json_text(text: str) -> str:
    """Normalize near-JSON LLM output so ``json.loads`` can accept it."""
    cleaned = strip_preamble(text)
    cleaned = _TAG_PATTERN.sub("", cleaned)

    start = cleaned.find("[")
    end = cleaned.rfind("]")
    if start != -1 and end > start:
        cleaned = cleaned[start : end + 1]

    # Raw newlines inside string values are invalid JSON
    cleaned = _LINE_BREAKS_PATTERN.sub(" ", cleaned)
    cleaned = fix_unescaped_quotes(cleaned)
    cleaned = merge_concatenated_values(cleaned)
    cleaned = _TRAILING_COMMA_PATTERN.sub(r"\1", cleaned)
    cleaned = _QUOTED_LITERAL_PATTERN.sub(r'": \1', cleaned)
    cleaned = _WHITESPACE_PATTERN.sub(" ", cleaned)
    cleaned = clean_control_characters(cleaned)
    return cleaned.strip()


# =============================================================================
# Validation
# =============================================================================


def _coerce_page_number(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    return None


def _to_plan(entry: Any) -> PagePlan | None:
    """Build a PagePlan from a decoded entry, or None if it is not page-shaped."""
    if not isinstance(entry, dict):
        return None
    page_number = _coerce_page_number(entry.get("pageNumber", entry.get("page_number")))
    description = entry.get("description")
    visual_cue = entry.get("visualCue", entry.get("visual_cue"))
    if page_number is None or not isinstance(description, str):
        return None
    if not isinstance(visual_cue, str):
        visual_cue = ""
    try:
        return PagePlan(
            page_number=page_number,
            description=description.strip(),
            visual_cue=visual_cue.strip(),
        )
    except ValidationError:
        return None


def validate_plan(value: Any) -> list[PagePlan]:
    """Validate a decoded JSON value as a page plan.

    Returns:
        Valid pages sorted by page number, first occurrence wins on duplicates

    Raises:
        ValueError: If the value is not an array or has no valid page entries
    """
    if isinstance(value, dict):
        for key in _WRAPPER_KEYS:
            if isinstance(value.get(key), list):
                value = value[key]
                break
    if not isinstance(value, list):
        raise ValueError(f"expected a JSON array, got {type(value).__name__}")

    pages: dict[int, PagePlan] = {}
    for entry in value:
        plan = _to_plan(entry)
        if plan is None:
            logger.debug(f"[PlanParser] Dropping invalid entry: {str(entry)[:100]}")
            continue
        pages.setdefault(plan.page_number, plan)

    if not pages:
        raise ValueError("array contains no valid page entries")
    return [pages[number] for number in sorted(pages)]


# =============================================================================
# Strategies
# =============================================================================


def _direct(text: str) -> list[PagePlan]:
    return validate_plan(json.loads(text))


def _clean(text: str) -> list[PagePlan]:
    return validate_plan(json.loads(clean_json_text(text)))


def _extract_array(text: str) -> list[PagePlan]:
    match = _ARRAY_SPAN_PATTERN.search(text)
    if not match:
        raise ValueError("no JSON array found")
    return validate_plan(json.loads(clean_json_text(match.group(0))))


def _aggressive(text: str) -> list[PagePlan]:
    collapsed = _WHITESPACE_PATTERN.sub(" ", text)
    match = _ARRAY_SPAN_PATTERN.search(collapsed)
    if not match:
        raise ValueError("no JSON array found")
    return validate_plan(json.loads(clean_json_text(match.group(0))))


def _fields(text: str) -> list[PagePlan]:
    flattened = re.sub(r"[\r\n\t]+", " ", text)
    entries = [
        {
            "pageNumber": int(match.group(1)),
            "description": match.group(2).replace('\\"', '"'),
            "visualCue": match.group(3).replace('\\"', '"'),
        }
        for match in _PAGE_FIELDS_PATTERN.finditer(flattened)
    ]
    if not entries:
        raise ValueError("no page objects found")
    return validate_plan(entries)


Strategy = Callable[[str], "list[PagePlan]"]

DEFAULT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("direct", _direct),
    ("clean", _clean),
    ("extract_array", _extract_array),
    ("aggressive", _aggressive),
    ("fields", _fields),
)


class PlanRecoveryParser:
    """Parse LLM planning output into validated page plans.

    Args:
        strategies: Ordered ``(name, strategy)`` pairs; each takes the raw
            text and returns pages or raises
        preview_chars: Size of the raw-text preview kept on failure
    """

    def __init__(
        self,
        strategies: Sequence[tuple[str, Strategy]] = DEFAULT_STRATEGIES,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
    ) -> None:
        self.strategies = tuple(strategies)
        self.preview_chars = preview_chars

    def parse(self, raw_text: str) -> list[PagePlan]:
        """Run the strategy cascade over ``raw_text``.

        Raises:
            PlanParseError: If every strategy fails
        """
        text = raw_text or ""
        attempts: list[tuple[str, str]] = []
        logger.debug(f"[PlanParser] Parsing {len(text)} chars")

        for index, (name, strategy) in enumerate(self.strategies, start=1):
            try:
                pages = strategy(text)
            except Exception as e:
                reason = f"{type(e).__name__}: {e}"
                attempts.append((name, reason))
                logger.debug(f"[PlanParser] Strategy {index} ({name}) failed: {reason}")
                continue
            logger.info(
                f"[PlanParser] Strategy {index} ({name}) succeeded, {len(pages)} pages"
            )
            return pages

        logger.warning(
            f"[PlanParser] All {len(self.strategies)} strategies failed "
            f"(raw length {len(text)}): {text[: self.preview_chars]!r}"
        )
        raise PlanParseError(
            "Failed to parse the story plan after trying all strategies",
            raw_text=text,
            attempts=attempts,
            preview_chars=self.preview_chars,
        )


def parse_plan(raw_text: str) -> list[PagePlan]:
    """Parse ``raw_text`` with the default strategy cascade."""
    return PlanRecoveryParser().parse(raw_text)


__all__ = [
    "DEFAULT_STRATEGIES",
    "PlanRecoveryParser",
    "clean_control_characters",
    "clean_json_text",
    "fix_unescaped_quotes",
    "merge_concatenated_values",
    "parse_plan",
    "strip_preamble",
    "validate_plan",
]
