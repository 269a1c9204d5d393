"""
Common utility functions and helpers.
"""
from typing import Any, Iterable, List, Tuple
import json
import logging
import re

logger = logging.getLogger(__name__)


def parse_json_robust(response: str) -> Tuple[bool, Any]:
    """
    Parse JSON from potentially messy LLM output.

    Tries, in order: the raw text, the text with markdown code fences removed,
    the text with common mangling repaired (trailing commas, Python literals,
    // comments), and finally the first balanced ``{...}`` or ``[...]`` block
    found inside surrounding prose.

    Returns ``(success, parsed_value)``.
    """
    if not response or not response.strip():
        return False, None

    text = response.strip()
    candidates = [text]

    unfenced = strip_code_fences(text)
    if unfenced != text:
        candidates.append(unfenced)
        text = unfenced

    candidates.append(fix_json_issues(text))

    for open_b, close_b in (("{", "}"), ("[", "]")):
        block = extract_balanced_block(text, open_b, close_b)
        if block:
            candidates.append(block)
            candidates.append(fix_json_issues(block))

    for candidate in candidates:
        try:
            return True, json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue

    logger.warning("parse_json_robust: all strategies failed. Preview: %s", response[:300])
    return False, None


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` delimiters that LLMs often wrap output in."""
    text = re.sub(r"^```(?:json|javascript|text)?\s*\n?", "", text, flags=re.IGNORECASE)
    text = re.sub(r"\n?```\s*$", "", text)
    return text.strip()


def fix_json_issues(text: str) -> str:
    """Repair trailing commas, Python literals and inline comments."""
    text = re.sub(r",(\s*[}\]])", r"\1", text)
    text = re.sub(r"\bTrue\b", "true", text)
    text = re.sub(r"\bFalse\b", "false", text)
    text = re.sub(r"\bNone\b", "null", text)
    text = re.sub(r"(?m)^\s*//[^\n]*$", "", text)
    return text.strip()


def extract_balanced_block(text: str, open_b: str, close_b: str) -> str:
    """
    Return the first balanced open_b ... close_b block in *text*, ignoring
    brackets inside string literals.  Empty string if none is found.
    """
    start = text.find(open_b)
    if start == -1:
        return ""

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if escaped:
            escaped = False
        elif ch == "\\" and in_string:
            escaped = True
        elif ch == '"':
            in_string = not in_string
        elif not in_string:
            if ch == open_b:
                depth += 1
            elif ch == close_b:
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
    return ""


def dedupe_preserving_order(items: Iterable[str]) -> List[str]:
    """Drop blanks and case-insensitive duplicates, keeping first-seen order."""
    seen = set()
    result: List[str] = []
    for item in items:
        value = str(item).strip()
        key = value.casefold()
        if not value or key in seen:
            continue
        seen.add(key)
        result.append(value)
    return result


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, returning default if denominator is zero.
    """
    return numerator / denominator if denominator != 0 else default


def truncate_text(text: str, max_length: int = 200, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix
