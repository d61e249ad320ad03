"""Guarantee service models."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional


class CheckReason(str, Enum):
    """Closed set of reasons a guarantee check can end with."""
    VALIDATION_DISABLED = "VALIDATION_DISABLED"
    NOT_COMPLETED = "NOT_COMPLETED"
    API_NO_REFILL = "API_NO_REFILL"
    API_REFILL_ALLOWED = "API_REFILL_ALLOWED"
    NO_GUARANTEE_ALLOW = "NO_GUARANTEE_ALLOW"
    NO_GUARANTEE_ASK = "NO_GUARANTEE_ASK"
    NO_GUARANTEE = "NO_GUARANTEE"
    NO_COMPLETION_DATE = "NO_COMPLETION_DATE"
    EXPIRED = "EXPIRED"
    VALID = "VALID"


MatchSource = Literal["rule", "pattern", "api"]


@dataclass(frozen=True)
class GuaranteeDuration:
    """Either a finite number of days or a lifetime guarantee."""
    days: Optional[int] = None
    is_lifetime: bool = False

    @classmethod
    def of_days(cls, days: int) -> GuaranteeDuration:
        return cls(days=int(days), is_lifetime=False)

    @classmethod
    def lifetime(cls) -> GuaranteeDuration:
        return cls(days=None, is_lifetime=True)

    def __str__(self) -> str:
        return "lifetime" if self.is_lifetime else f"{self.days} days"


@dataclass
class OrderSnapshot:
    """Read-only view of an order as supplied by the order source.

    ``can_refill`` is the provider's own refill flag: True, False, or None
    when the provider did not report one.
    """
    external_order_id: str
    service_name: Optional[str]
    status: str
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    can_refill: Optional[bool] = None
    panel_id: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return (self.status or "").upper() == "COMPLETED"

    @property
    def completion_time(self) -> Optional[datetime]:
        return self.completed_at or self.updated_at

    @classmethod
    def from_record(cls, record: Any) -> OrderSnapshot:
        """Build a snapshot from any object exposing the order attributes."""
        return cls(
            external_order_id=str(
                getattr(record, "external_order_id", None) or getattr(record, "id", "")
            ),
            service_name=getattr(record, "service_name", None),
            status=getattr(record, "status", "") or "",
            completed_at=getattr(record, "completed_at", None),
            updated_at=getattr(record, "updated_at", None),
            can_refill=getattr(record, "can_refill", None),
            panel_id=getattr(record, "panel_id", None),
        )


@dataclass
class RuleMatch:
    """Outcome of the rule engine lookup.

    ``source`` is "rule" when a user rule decided, "pattern" when the
    pattern engine found a duration, None when nothing matched.
    """
    has_guarantee: bool
    duration: Optional[GuaranteeDuration] = None
    source: Optional[MatchSource] = None
    matched_rule: Optional[str] = None
    rule_id: Optional[int] = None


@dataclass
class CheckDetails:
    message: str
    guarantee_days: Optional[int] = None
    is_lifetime: bool = False
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    days_remaining: Optional[int] = None
    days_overdue: Optional[int] = None
    source: Optional[MatchSource] = None
    matched_rule: Optional[str] = None
    requires_confirmation: bool = False
    status: Optional[str] = None


_DETAIL_KEYS = {
    "message": "message",
    "guarantee_days": "guaranteeDays",
    "is_lifetime": "isLifetime",
    "completed_at": "completedAt",
    "expires_at": "expiresAt",
    "expired_at": "expiredAt",
    "days_remaining": "daysRemaining",
    "days_overdue": "daysOverdue",
    "source": "source",
    "matched_rule": "matchedRule",
    "requires_confirmation": "requiresConfirmation",
    "status": "status",
}


@dataclass
class CheckResult:
    """Guarantee check result consumed by the message-formatting layer."""
    valid: bool
    reason: CheckReason
    details: CheckDetails = field(default_factory=lambda: CheckDetails(message=""))

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase detail keys, omitting unset fields."""
        details: dict[str, Any] = {}
        for attr, key in _DETAIL_KEYS.items():
            value = getattr(self.details, attr)
            if value is None or value is False:
                continue
            details[key] = value.isoformat() if isinstance(value, datetime) else value
        return {"valid": self.valid, "reason": self.reason.value, "details": details}
