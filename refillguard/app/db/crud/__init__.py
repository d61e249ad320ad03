"""CRUD operations package.

- config.py: per-user guarantee configuration
- rule.py: ownership-checked guarantee rules
"""

from refillguard.app.db.crud.config import (
    build_default_config,
    get_config,
    require_user_id,
    update_config,
)
from refillguard.app.db.crud.rule import (
    count_rules,
    create_rule,
    delete_rule,
    get_owned_rule,
    list_rules,
    toggle_rule_active,
    update_rule,
)

__all__ = [
    # Config operations
    "build_default_config",
    "get_config",
    "require_user_id",
    "update_config",
    # Rule operations
    "count_rules",
    "create_rule",
    "delete_rule",
    "get_owned_rule",
    "list_rules",
    "toggle_rule_active",
    "update_rule",
]
