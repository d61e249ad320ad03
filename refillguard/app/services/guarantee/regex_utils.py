"""Regex utilities for tenant-supplied patterns.

Custom guarantee patterns come from user configuration and are evaluated on
the shared message-handling path, so every pattern is screened for shapes
known to backtrack catastrophically and every subject string is bounded
before matching. A rejected pattern is indistinguishable from "no match".
"""

from __future__ import annotations

import re
from functools import lru_cache

from refillguard.app.core.config import settings
from refillguard.app.core.logging import get_logger
from refillguard.app.exceptions import PatternError

logger = get_logger(__name__)

MAX_PATTERN_LENGTH = settings.regex_max_pattern_length
MAX_INPUT_LENGTH = settings.regex_max_input_length

# Shapes that make Python's backtracking engine go exponential
DANGEROUS_SHAPES: tuple[re.Pattern, ...] = (
    # (x+)+ (x+y?)* (\w+\s?)+ (x+){2,}: quantified group with a quantifier anywhere inside
    re.compile(r"\((?:[^()\\]|\\.)*(?<!\\)[+*}](?:[^()\\]|\\.)*\)(?:[+*]|\{\d)"),
    # (a|aa)+ - quantified alternation
    re.compile(r"\((?:[^()\\]|\\.)*(?<!\\)\|(?:[^()\\]|\\.)*\)(?:[+*]|\{\d)"),
    # a+{2} - quantifier immediately followed by a repetition bound
    re.compile(r"(?<!\\)[+*]\{\d"),
    # a++ a** a*+ - doubled quantifier tokens
    re.compile(r"(?<!\\)[+*][+*]"),
    # .*.* .*a.*b - two greedy wildcard spans, adjacent or not
    re.compile(r"(?<!\\)\.[*+].*(?<!\\)\.[*+]"),
)


def is_pattern_safe(pattern: str) -> bool:
    """Return False for overlong patterns or known catastrophic shapes.

    This is a heuristic over the pattern text, not a proof that matching
    runs in linear time.
    """
    if not isinstance(pattern, str):
        return False
    if len(pattern) > MAX_PATTERN_LENGTH:
        return False
    return not any(shape.search(pattern) for shape in DANGEROUS_SHAPES)


@lru_cache(maxsize=settings.regex_cache_size)
def _compile_cached(pattern: str, flags: int) -> re.Pattern:
    return re.compile(pattern, flags)


def compile_pattern(pattern: str, flags: int = re.IGNORECASE) -> re.Pattern:
    """Compile a tenant pattern after screening it.

    Raises:
        PatternError: if the pattern is empty, unsafe or does not compile
    """
    if not pattern or not isinstance(pattern, str):
        raise PatternError(str(pattern), "Empty pattern")
    if not is_pattern_safe(pattern):
        raise PatternError(pattern, "Unsafe pattern")
    try:
        return _compile_cached(pattern, flags)
    except re.error as e:
        raise PatternError(pattern, f"Invalid pattern ({e})") from e


def safe_search(
    pattern: str, text: str | None, flags: int = re.IGNORECASE
) -> re.Match | None:
    """Search ``text`` with a tenant pattern without ever raising.

    Args:
        pattern: Raw pattern string from user configuration
        text: Subject string, truncated to MAX_INPUT_LENGTH characters
        flags: re compilation flags (case-insensitive by default)

    Returns:
        Match object, or None on no match, unsafe/invalid pattern or error
    """
    if not text:
        return None
    try:
        compiled = compile_pattern(pattern, flags)
    except PatternError as e:
        logger.warning(f"Skipping guarantee pattern: {e.message}")
        return None

    try:
        return compiled.search(text[:MAX_INPUT_LENGTH])
    except (re.error, RecursionError, MemoryError) as e:
        logger.error(f"Regex execution error for pattern {pattern[:80]!r}: {e}")
        return None


def safe_match(pattern: str, text: str | None, flags: int = re.IGNORECASE) -> bool:
    """Boolean form of :func:`safe_search`."""
    return safe_search(pattern, text, flags) is not None


def clear_pattern_cache() -> None:
    """Drop memoised compiled patterns (for testing)."""
    _compile_cached.cache_clear()
