"""Guarantee config CRUD operations."""
import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from refillguard.app.core.config import settings
from refillguard.app.core.constants import DEFAULT_EMOJIS, DEFAULT_KEYWORDS
from refillguard.app.core.logging import get_log_context, get_logger
from refillguard.app.db.models import GuaranteeConfig
from refillguard.app.db.schemas import GuaranteeConfigUpdate, parse_admin_input
from refillguard.app.exceptions import ConfigurationError

logger = get_logger(__name__)


def require_user_id(user_id: Any) -> str:
    if user_id is None or not str(user_id).strip():
        raise ConfigurationError("User ID is required")
    return str(user_id)


def build_default_config(user_id: str) -> GuaranteeConfig:
    return GuaranteeConfig(
        user_id=user_id,
        patterns=json.dumps([]),
        keywords=",".join(DEFAULT_KEYWORDS),
        emojis=",".join(DEFAULT_EMOJIS),
        default_days=settings.guarantee_default_days,
        is_enabled=True,
        no_guarantee_action=settings.guarantee_default_action,
        detection_method=settings.guarantee_default_detection,
    )


async def _select_config(
    session: AsyncSession, user_id: str, for_update: bool = False
) -> GuaranteeConfig | None:
    query = select(GuaranteeConfig).where(GuaranteeConfig.user_id == user_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_config(
    session: AsyncSession,
    user_id: str,
    for_update: bool = False,
) -> GuaranteeConfig:
    """Get a user's guarantee config, creating the default row if absent.

    Two first reads racing each other both try to insert; the loser hits the
    unique constraint on user_id and re-reads the winner's row.

    Args:
        session: Database session
        user_id: Owner of the config
        for_update: Lock the row for the rest of the transaction

    Raises:
        ConfigurationError: if user_id is missing
    """
    user_id = require_user_id(user_id)

    config = await _select_config(session, user_id, for_update)
    if config is not None:
        return config

    config = build_default_config(user_id)
    session.add(config)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        config = await _select_config(session, user_id, for_update)
        if config is None:
            raise
        return config

    await session.refresh(config)
    logger.info("Created default guarantee config", extra=get_log_context(user_id=user_id))
    if for_update:
        config = await _select_config(session, user_id, for_update=True)
    return config


async def update_config(
    session: AsyncSession,
    user_id: str,
    updates: GuaranteeConfigUpdate | dict[str, Any],
    auto_commit: bool = True,
) -> GuaranteeConfig:
    """Apply a partial update to a user's guarantee config.

    Args:
        session: Database session
        user_id: Owner of the config
        updates: Fields to change; unknown or malformed fields are rejected
        auto_commit: Whether to commit the transaction

    Raises:
        ConfigurationError: if user_id is missing
        ValidationError: if any field is malformed
    """
    data = parse_admin_input(GuaranteeConfigUpdate, updates)
    config = await get_config(session, user_id)

    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        if key == "patterns":
            value = json.dumps(value, ensure_ascii=False)
        setattr(config, key, value)

    if auto_commit:
        await session.commit()
        await session.refresh(config)
    return config
