from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from refillguard.app.core.constants import DEFAULT_RULE_PRIORITY
from refillguard.app.db.base import Base


class GuaranteeConfig(Base):
    """Per-user guarantee detection settings.

    ``patterns`` holds a JSON-encoded list of regex strings; ``keywords`` and
    ``emojis`` are comma separated, the way the admin form submits them.
    """

    __tablename__ = "guarantee_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    patterns: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    keywords: Mapped[str] = mapped_column(Text, default="", nullable=False)
    emojis: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    default_days: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    no_guarantee_action: Mapped[str] = mapped_column(
        String(16), default="DENY", nullable=False
    )  # ALLOW | DENY | ASK
    detection_method: Mapped[str] = mapped_column(
        String(16), default="pattern", nullable=False
    )  # pattern | api | both
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now
    )

    def __repr__(self) -> str:
        return (
            f"<GuaranteeConfig(user_id={self.user_id}, enabled={self.is_enabled}, "
            f"action={self.no_guarantee_action}, detection={self.detection_method})>"
        )


class GuaranteeRule(Base):
    """Keyword rule classifying a service as guaranteed or not.

    ``panel_id`` of None makes the rule global for the user.
    """

    __tablename__ = "guarantee_rules"
    __table_args__ = (
        Index("idx_guarantee_rules_user_panel", "user_id", "panel_id"),
        Index("idx_guarantee_rules_order", "user_id", "priority", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    panel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    keyword: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(16), nullable=False)  # no_guarantee | guarantee
    days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_lifetime: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=DEFAULT_RULE_PRIORITY, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    def __repr__(self) -> str:
        return (
            f"<GuaranteeRule(id={self.id}, keyword={self.keyword!r}, "
            f"action={self.action}, priority={self.priority})>"
        )
