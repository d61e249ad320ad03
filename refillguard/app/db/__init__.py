"""Database package for refillguard.

This package provides:
- Database models (GuaranteeConfig, GuaranteeRule)
- Async session management
- CRUD operations (the configuration store)
"""

from refillguard.app.db.base import Base
from refillguard.app.db.models import GuaranteeConfig, GuaranteeRule
from refillguard.app.db.async_session import (
    close_async_engine,
    get_async_engine,
    get_async_session,
    get_async_session_maker,
    init_async_db,
)
from refillguard.app.db.crud import (
    count_rules,
    create_rule,
    delete_rule,
    get_config,
    get_owned_rule,
    list_rules,
    toggle_rule_active,
    update_config,
    update_rule,
)

__all__ = [
    "Base",
    "GuaranteeConfig",
    "GuaranteeRule",
    "close_async_engine",
    "get_async_engine",
    "get_async_session",
    "get_async_session_maker",
    "init_async_db",
    "count_rules",
    "create_rule",
    "delete_rule",
    "get_config",
    "get_owned_rule",
    "list_rules",
    "toggle_rule_active",
    "update_config",
    "update_rule",
]
