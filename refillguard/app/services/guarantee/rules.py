"""Keyword rule evaluation with pattern fallback."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from refillguard.app.core.config import settings
from refillguard.app.core.constants import RULE_ACTION_NO_GUARANTEE
from refillguard.app.core.logging import get_logger
from refillguard.app.db.crud import get_config, list_rules
from refillguard.app.db.models import GuaranteeRule
from refillguard.app.services.guarantee.models import GuaranteeDuration, RuleMatch
from refillguard.app.services.guarantee.patterns import extract_guarantee_duration

logger = get_logger(__name__)


def _rule_sort_key(rule: GuaranteeRule) -> tuple:
    return (
        rule.priority if rule.priority is not None else 0,
        rule.created_at or datetime.min,
        rule.id or 0,
    )


def sort_rules(rules: Iterable[GuaranteeRule]) -> List[GuaranteeRule]:
    """Order rules by priority, then creation time, then id."""
    return sorted(rules, key=_rule_sort_key)


def find_matching_rule(
    service_name: Optional[str], rules: Iterable[GuaranteeRule]
) -> Optional[GuaranteeRule]:
    """Return the first active rule whose keyword occurs in the service name.

    Matching is a case-insensitive substring test; rules are evaluated in
    priority order regardless of the order they were passed in.
    """
    if not service_name:
        return None
    lower_name = service_name.lower()
    for rule in sort_rules(rules):
        if not rule.is_active or not rule.keyword:
            continue
        if rule.keyword.lower() in lower_name:
            return rule
    return None


def rule_to_match(rule: GuaranteeRule, config: Any = None) -> RuleMatch:
    """Translate a matched rule into a RuleMatch."""
    if rule.action == RULE_ACTION_NO_GUARANTEE:
        return RuleMatch(
            has_guarantee=False,
            source="rule",
            matched_rule=rule.keyword,
            rule_id=rule.id,
        )

    if rule.is_lifetime:
        duration = GuaranteeDuration.lifetime()
    else:
        days = rule.days or getattr(config, "default_days", None) or settings.guarantee_default_days
        duration = GuaranteeDuration.of_days(days)
    return RuleMatch(
        has_guarantee=True,
        duration=duration,
        source="rule",
        matched_rule=rule.keyword,
        rule_id=rule.id,
    )


async def get_rules(
    session: AsyncSession,
    user_id: str,
    panel_id: Optional[str] = None,
    active_only: bool = False,
) -> List[GuaranteeRule]:
    """Get the global and panel-scoped rules for a user, in evaluation order."""
    rules = await list_rules(session, user_id, panel_id, active_only=active_only)
    return sort_rules(rules)


async def match_rules(
    session: AsyncSession,
    service_name: Optional[str],
    user_id: str,
    panel_id: Optional[str] = None,
    config: Any = None,
) -> RuleMatch:
    """Classify a service name with the user's rules.

    Falls back to the pattern engine when no rule matches; the result's
    ``source`` tells the caller which one decided.

    Args:
        session: Database session
        service_name: Free-text service name
        user_id: Rule owner
        panel_id: Panel the order belongs to (None = global rules only)
        config: Already loaded GuaranteeConfig, read from the store if omitted
    """
    rules = await get_rules(session, user_id, panel_id, active_only=True)
    rule = find_matching_rule(service_name, rules)
    if rule is not None:
        logger.debug(f"Service matched guarantee rule {rule.id} ({rule.keyword!r})")
        return rule_to_match(rule, config)

    if config is None:
        config = await get_config(session, user_id)
    duration = extract_guarantee_duration(service_name, config)
    if duration is not None:
        return RuleMatch(has_guarantee=True, duration=duration, source="pattern")
    return RuleMatch(has_guarantee=False, source=None)
