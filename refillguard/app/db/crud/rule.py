"""Guarantee rule CRUD operations.

Every mutation is scoped to the owning user. A rule owned by someone else is
reported exactly like a missing one.
"""
from typing import Any, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from refillguard.app.core.constants import RULE_ACTION_NO_GUARANTEE
from refillguard.app.core.logging import get_log_context, get_logger
from refillguard.app.db.crud.config import require_user_id
from refillguard.app.db.models import GuaranteeRule
from refillguard.app.db.schemas import (
    GuaranteeRuleCreate,
    GuaranteeRuleUpdate,
    parse_admin_input,
)
from refillguard.app.exceptions import OwnershipError, ValidationError

logger = get_logger(__name__)


async def list_rules(
    session: AsyncSession,
    user_id: str,
    panel_id: Optional[str] = None,
    active_only: bool = False,
) -> List[GuaranteeRule]:
    """Get a user's rules visible for a panel.

    Global rules (panel_id NULL) are always included; panel rules only when
    panel_id matches. Ordered by priority, then creation time.

    Args:
        session: Database session
        user_id: Rule owner
        panel_id: Panel scope, or None for global rules only
        active_only: If True, return only active rules

    Returns:
        List of rules
    """
    user_id = require_user_id(user_id)
    scope = GuaranteeRule.panel_id.is_(None)
    if panel_id is not None:
        scope = or_(scope, GuaranteeRule.panel_id == str(panel_id))

    query = select(GuaranteeRule).where(GuaranteeRule.user_id == user_id, scope)
    if active_only:
        query = query.where(GuaranteeRule.is_active.is_(True))
    query = query.order_by(
        GuaranteeRule.priority.asc(),
        GuaranteeRule.created_at.asc(),
        GuaranteeRule.id.asc(),
    )
    result = await session.execute(query)
    return list(result.scalars().all())


async def count_rules(session: AsyncSession, user_id: str) -> int:
    """Count all of a user's rules across every panel scope."""
    result = await session.execute(
        select(func.count(GuaranteeRule.id)).where(GuaranteeRule.user_id == user_id)
    )
    return int(result.scalar_one())


async def get_owned_rule(
    session: AsyncSession,
    user_id: str,
    rule_id: int,
) -> GuaranteeRule:
    """Get a rule by ID, verifying ownership.

    Raises:
        OwnershipError: if the rule does not exist or belongs to another user
    """
    user_id = require_user_id(user_id)
    result = await session.execute(
        select(GuaranteeRule).where(
            GuaranteeRule.id == rule_id,
            GuaranteeRule.user_id == user_id,
        )
    )
    rule = result.scalar_one_or_none()
    if rule is None:
        raise OwnershipError(rule_id)
    return rule


async def create_rule(
    session: AsyncSession,
    user_id: str,
    data: GuaranteeRuleCreate | dict[str, Any],
    auto_commit: bool = True,
) -> GuaranteeRule:
    """Create a new rule for a user.

    Args:
        session: Database session
        user_id: Rule owner
        data: Rule fields (keyword, action, days, is_lifetime, priority,
              is_active, panel_id)
        auto_commit: Whether to commit the transaction. Set to False
                     if you want to control transaction boundaries manually.

    Raises:
        ConfigurationError: if user_id is missing
        ValidationError: if the rule fields are malformed
    """
    user_id = require_user_id(user_id)
    fields = parse_admin_input(GuaranteeRuleCreate, data)
    rule = GuaranteeRule(user_id=user_id, **fields.model_dump())
    session.add(rule)
    if auto_commit:
        await session.commit()
        await session.refresh(rule)
    return rule


def _normalize_rule_fields(fields: dict[str, Any]) -> dict[str, Any]:
    if fields["action"] == RULE_ACTION_NO_GUARANTEE:
        fields["days"] = None
        fields["is_lifetime"] = False
    elif fields["is_lifetime"]:
        fields["days"] = None
    elif not fields["days"]:
        raise ValidationError(
            "days is required for a guarantee rule unless it is lifetime", field="days"
        )
    return fields


async def update_rule(
    session: AsyncSession,
    user_id: str,
    rule_id: int,
    auto_commit: bool = True,
    **kwargs,
) -> GuaranteeRule:
    """Update an owned rule.

    Args:
        session: Database session
        user_id: Caller; must own the rule
        rule_id: The rule ID to update
        auto_commit: Whether to commit the transaction
        **kwargs: Fields to update

    Raises:
        OwnershipError: if the rule is missing or not owned by user_id
        ValidationError: if the merged rule has days inconsistent with its action
    """
    changes = parse_admin_input(GuaranteeRuleUpdate, kwargs)
    rule = await get_owned_rule(session, user_id, rule_id)

    merged = {key: getattr(rule, key) for key in GuaranteeRuleUpdate.model_fields}
    for key, value in changes.model_dump(exclude_unset=True).items():
        if key == "panel_id":
            value = str(value) if value not in (None, "") else None
        elif value is None:
            continue
        merged[key] = value

    for key, value in _normalize_rule_fields(merged).items():
        setattr(rule, key, value)

    if auto_commit:
        await session.commit()
        await session.refresh(rule)
    return rule


async def delete_rule(
    session: AsyncSession,
    user_id: str,
    rule_id: int,
    auto_commit: bool = True,
) -> bool:
    """Delete an owned rule.

    Raises:
        OwnershipError: if the rule is missing or not owned by user_id
    """
    rule = await get_owned_rule(session, user_id, rule_id)
    await session.delete(rule)
    if auto_commit:
        await session.commit()
    logger.info(
        f"Deleted guarantee rule {rule_id}", extra=get_log_context(user_id=user_id)
    )
    return True


async def toggle_rule_active(
    session: AsyncSession,
    user_id: str,
    rule_id: int,
    auto_commit: bool = True,
) -> bool:
    """Flip an owned rule's active flag and return the new value."""
    rule = await get_owned_rule(session, user_id, rule_id)
    is_active = not rule.is_active
    rule.is_active = is_active
    if auto_commit:
        await session.commit()
    return is_active
