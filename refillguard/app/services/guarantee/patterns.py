"""Guarantee duration extraction from service names.

Precedence, first hit wins:
1. the user's custom regex patterns, in configured order
2. the builtin pattern table
3. guarantee keywords (returns the configured default duration)
4. guarantee emojis (returns the configured default duration)
"""
import json
import re
from typing import Any, List, Optional, Sequence, Tuple

from refillguard.app.core.config import settings
from refillguard.app.core.constants import DEFAULT_EMOJIS, DEFAULT_KEYWORDS
from refillguard.app.core.logging import get_logger
from refillguard.app.services.guarantee.models import GuaranteeDuration
from refillguard.app.services.guarantee.regex_utils import (
    MAX_INPUT_LENGTH,
    safe_search,
)

logger = get_logger(__name__)

# Builtin annotations: (pattern, example)
DEFAULT_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), example)
    for pattern, example in (
        (r"(\d+)\s*Days?\s*♻️", "30 Days ♻️"),
        (r"(\d+)\s*Days?\s*Guarantee", "30 Days Guarantee"),
        (r"Guarantee\s*(\d+)\s*Days?", "Guarantee 30 Days"),
        (r"♻️\s*(\d+)\s*Days?", "♻️ 30 Days"),
        (r"(\d+)\s*D\s*♻️", "30D ♻️"),
        (r"(\d+)\s*D\s*Refill", "30D Refill"),
        (r"Refill\s*(\d+)\s*Days?", "Refill 30 Days"),
        (r"(\d+)\s*Days?\s*Refill", "30 Days Refill"),
        (r"🔄\s*(\d+)\s*Days?", "🔄 30 Days"),
        (r"(\d+)\s*Days?\s*🔄", "30 Days 🔄"),
        (r"(\d+)\s*Day\s*Warranty", "30 Day Warranty"),
        (r"\bR(\d+)\b", "R30"),
    )
)

# "No Refill", "Non-Refill", "Without Guarantee": the keyword is present but negated
NEGATED_GUARANTEE = re.compile(
    r"\b(?:no|non|not|without)[\s\-]*(?:refill|guarantee|warranty)",
    re.IGNORECASE,
)


def parse_custom_patterns(raw: Any) -> List[str]:
    """Parse the stored custom pattern list.

    Args:
        raw: JSON-encoded list string, an actual list, or None

    Returns:
        List of non-empty pattern strings; malformed data yields []
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else []
        except (json.JSONDecodeError, ValueError):
            logger.warning("Ignoring malformed custom guarantee patterns")
            return []
    if not isinstance(raw, (list, tuple)):
        return []
    return [p for p in raw if isinstance(p, str) and p]


def parse_csv(raw: Any, lowercase: bool = False) -> List[str]:
    """Split a comma separated keyword/emoji field into trimmed items."""
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(item).strip() for item in raw]
    else:
        items = [item.strip() for item in str(raw).split(",")]
    if lowercase:
        items = [item.lower() for item in items]
    return [item for item in items if item]


def _first_group_int(match: Optional[re.Match]) -> Optional[int]:
    if match is None or not match.groups():
        return None
    try:
        days = int(match.group(1))
    except (TypeError, ValueError):
        return None
    # "0 Days" carries no window
    return days if days > 0 else None


def _default_days(config: Any) -> int:
    days = getattr(config, "default_days", None) if config is not None else None
    return days or settings.guarantee_default_days


def match_custom_patterns(service_name: str, patterns: Sequence[str]) -> Optional[int]:
    for pattern in patterns:
        days = _first_group_int(safe_search(pattern, service_name))
        if days is not None:
            return days
    return None


def match_builtin_patterns(service_name: str) -> Optional[int]:
    text = service_name[:MAX_INPUT_LENGTH]
    for pattern, _ in DEFAULT_PATTERNS:
        days = _first_group_int(pattern.search(text))
        if days is not None:
            return days
    return None


def extract_guarantee_days(service_name: Optional[str], config: Any = None) -> Optional[int]:
    """Extract guarantee days from a service name.

    Args:
        service_name: Free-text service name from the provider
        config: User's GuaranteeConfig (or any object with the same fields)

    Returns:
        Guarantee days, or None if no guarantee annotation was found
    """
    if not service_name:
        return None

    if config is not None:
        days = match_custom_patterns(
            service_name, parse_custom_patterns(getattr(config, "patterns", None))
        )
        if days is not None:
            return days

    days = match_builtin_patterns(service_name)
    if days is not None:
        return days

    # A negated keyword ("No Refill") must not count as a guarantee hint
    if NEGATED_GUARANTEE.search(service_name[:MAX_INPUT_LENGTH]):
        return None

    keywords = (
        parse_csv(getattr(config, "keywords", None), lowercase=True)
        if config is not None
        else []
    ) or list(DEFAULT_KEYWORDS)
    lower_name = service_name.lower()
    for keyword in keywords:
        if keyword in lower_name:
            return _default_days(config)

    emojis = (
        parse_csv(getattr(config, "emojis", None)) if config is not None else []
    ) or list(DEFAULT_EMOJIS)
    for emoji in emojis:
        if emoji in service_name:
            return _default_days(config)

    return None


def extract_guarantee_duration(
    service_name: Optional[str], config: Any = None
) -> Optional[GuaranteeDuration]:
    """Like extract_guarantee_days, wrapped as a GuaranteeDuration."""
    days = extract_guarantee_days(service_name, config)
    if days is None:
        return None
    return GuaranteeDuration.of_days(days)
