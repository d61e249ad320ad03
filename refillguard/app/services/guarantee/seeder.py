"""Starter rule set for new users."""
from __future__ import annotations

from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from refillguard.app.core.constants import (
    RULE_ACTION_GUARANTEE,
    RULE_ACTION_NO_GUARANTEE,
)
from refillguard.app.core.logging import get_log_context, get_logger
from refillguard.app.db.crud import count_rules, get_config, require_user_id
from refillguard.app.db.models import GuaranteeRule

logger = get_logger(__name__)

EXCLUSION_PRIORITY = 10
INCLUSION_PRIORITY = 50

# (keyword, action, days, is_lifetime, priority)
DEFAULT_RULES: Tuple[Tuple[str, str, int | None, bool, int], ...] = (
    ("No Refill", RULE_ACTION_NO_GUARANTEE, None, False, EXCLUSION_PRIORITY),
    ("No Guarantee", RULE_ACTION_NO_GUARANTEE, None, False, EXCLUSION_PRIORITY),
    ("Non Refill", RULE_ACTION_NO_GUARANTEE, None, False, EXCLUSION_PRIORITY),
    ("Without Guarantee", RULE_ACTION_NO_GUARANTEE, None, False, EXCLUSION_PRIORITY),
    ("7 Days ♻️", RULE_ACTION_GUARANTEE, 7, False, INCLUSION_PRIORITY),
    ("15 Days ♻️", RULE_ACTION_GUARANTEE, 15, False, INCLUSION_PRIORITY),
    ("20 Days ♻️", RULE_ACTION_GUARANTEE, 20, False, INCLUSION_PRIORITY),
    ("30 Days ♻️", RULE_ACTION_GUARANTEE, 30, False, INCLUSION_PRIORITY),
    ("60 Days ♻️", RULE_ACTION_GUARANTEE, 60, False, INCLUSION_PRIORITY),
    ("90 Days ♻️", RULE_ACTION_GUARANTEE, 90, False, INCLUSION_PRIORITY),
    ("365 Days ♻️", RULE_ACTION_GUARANTEE, 365, False, INCLUSION_PRIORITY),
    ("Lifetime ♻️", RULE_ACTION_GUARANTEE, None, True, INCLUSION_PRIORITY),
)


async def seed_default_rules(session: AsyncSession, user_id: str) -> int:
    """Insert the starter rules if the user has none.

    The user's config row is locked before counting, so concurrent first
    calls for the same user serialise on it and only one of them inserts.

    Returns:
        Number of rules inserted (0 when the user already had rules)
    """
    user_id = require_user_id(user_id)
    await get_config(session, user_id, for_update=True)

    if await count_rules(session, user_id) > 0:
        await session.commit()
        return 0

    for keyword, action, days, is_lifetime, priority in DEFAULT_RULES:
        session.add(
            GuaranteeRule(
                user_id=user_id,
                panel_id=None,
                keyword=keyword,
                action=action,
                days=days,
                is_lifetime=is_lifetime,
                priority=priority,
                is_active=True,
            )
        )
    await session.commit()

    logger.info(
        f"Seeded {len(DEFAULT_RULES)} default guarantee rules",
        extra=get_log_context(user_id=user_id),
    )
    return len(DEFAULT_RULES)
