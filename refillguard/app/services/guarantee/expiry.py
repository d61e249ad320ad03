"""Guarantee window arithmetic."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from refillguard.app.services.guarantee.models import GuaranteeDuration

ONE_DAY_SECONDS = 86400


@dataclass(frozen=True)
class ExpiryWindow:
    completed_at: datetime
    duration: GuaranteeDuration
    expires_at: Optional[datetime]
    days_remaining: Optional[int]
    is_expired: bool

    @property
    def days_overdue(self) -> Optional[int]:
        if not self.is_expired or self.days_remaining is None:
            return None
        return abs(self.days_remaining)


def _now_like(reference: datetime) -> datetime:
    """Current time on the same clock kind (naive local or aware) as reference."""
    if reference.tzinfo is None:
        return datetime.now()
    return datetime.now(reference.tzinfo)


def _align_now(now: datetime, reference: datetime) -> datetime:
    """Bring a caller-supplied clock onto the reference's kind.

    Naive values are local time, matching how naive completion times are stored.
    """
    if reference.tzinfo is None and now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    if reference.tzinfo is not None and now.tzinfo is None:
        return now.astimezone(reference.tzinfo)
    return now


def compute_expiry(
    completed_at: datetime,
    duration: GuaranteeDuration,
    now: Optional[datetime] = None,
) -> ExpiryWindow:
    """Compute the guarantee window for an order.

    ``expires_at = completed_at + days``; the boundary instant itself is still
    valid. ``days_remaining`` is ``ceil((expires_at - now) / 1 day)`` and goes
    negative once expired. Lifetime guarantees never expire.
    """
    if duration.is_lifetime:
        return ExpiryWindow(
            completed_at=completed_at,
            duration=duration,
            expires_at=None,
            days_remaining=None,
            is_expired=False,
        )

    now = _align_now(now, completed_at) if now is not None else _now_like(completed_at)
    expires_at = completed_at + timedelta(days=duration.days or 0)
    days_remaining = math.ceil((expires_at - now).total_seconds() / ONE_DAY_SECONDS)
    return ExpiryWindow(
        completed_at=completed_at,
        duration=duration,
        expires_at=expires_at,
        days_remaining=days_remaining,
        is_expired=now > expires_at,
    )
