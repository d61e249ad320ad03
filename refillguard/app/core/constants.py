"""Shared guarantee defaults (read-only)."""
from typing import Tuple

DEFAULT_KEYWORDS: Tuple[str, ...] = ("guarantee", "refill", "♻️", "🔄", "warranty", "lifetime")

DEFAULT_EMOJIS: Tuple[str, ...] = ("♻️", "🔄", "✅")

RULE_ACTION_NO_GUARANTEE = "no_guarantee"
RULE_ACTION_GUARANTEE = "guarantee"

DEFAULT_RULE_PRIORITY = 100
