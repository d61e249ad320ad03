"""Guarantee service package.

- models.py: Result and order models
- regex_utils.py: Safe evaluation of tenant regex patterns
- patterns.py: Guarantee duration extraction from service names
- rules.py: User keyword rules with pattern fallback
- expiry.py: Guarantee window arithmetic
- seeder.py: Starter rule set
- formatting.py: Chat reply rendering
- service.py: Decision chain and main service class
"""

from refillguard.app.services.guarantee.models import (
    CheckDetails,
    CheckReason,
    CheckResult,
    GuaranteeDuration,
    OrderSnapshot,
    RuleMatch,
)
from refillguard.app.services.guarantee.regex_utils import (
    MAX_INPUT_LENGTH,
    MAX_PATTERN_LENGTH,
    is_pattern_safe,
    safe_match,
    safe_search,
)
from refillguard.app.services.guarantee.patterns import (
    DEFAULT_PATTERNS,
    extract_guarantee_days,
    extract_guarantee_duration,
)
from refillguard.app.services.guarantee.expiry import ExpiryWindow, compute_expiry
from refillguard.app.services.guarantee.rules import (
    find_matching_rule,
    get_rules,
    match_rules,
    sort_rules,
)
from refillguard.app.services.guarantee.seeder import DEFAULT_RULES, seed_default_rules
from refillguard.app.services.guarantee.formatting import format_guarantee_message
from refillguard.app.services.guarantee.service import (
    CheckContext,
    GuaranteeService,
    check_guarantee,
    get_guarantee_service,
)

__all__ = [
    "CheckDetails",
    "CheckReason",
    "CheckResult",
    "GuaranteeDuration",
    "OrderSnapshot",
    "RuleMatch",
    "MAX_INPUT_LENGTH",
    "MAX_PATTERN_LENGTH",
    "is_pattern_safe",
    "safe_match",
    "safe_search",
    "DEFAULT_PATTERNS",
    "extract_guarantee_days",
    "extract_guarantee_duration",
    "ExpiryWindow",
    "compute_expiry",
    "find_matching_rule",
    "get_rules",
    "match_rules",
    "sort_rules",
    "DEFAULT_RULES",
    "seed_default_rules",
    "format_guarantee_message",
    "CheckContext",
    "GuaranteeService",
    "check_guarantee",
    "get_guarantee_service",
]
