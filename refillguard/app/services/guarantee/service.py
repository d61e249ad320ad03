"""GuaranteeService main class."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from refillguard.app.core.logging import get_log_context, get_logger
from refillguard.app.db.crud import get_config
from refillguard.app.db.models import GuaranteeConfig
from refillguard.app.services.guarantee.expiry import compute_expiry
from refillguard.app.services.guarantee.models import (
    CheckDetails,
    CheckReason,
    CheckResult,
    GuaranteeDuration,
    MatchSource,
    OrderSnapshot,
    RuleMatch,
)
from refillguard.app.services.guarantee.patterns import extract_guarantee_duration
from refillguard.app.services.guarantee.rules import match_rules

logger = get_logger(__name__)


@dataclass
class CheckContext:
    """Everything one guarantee check needs, loaded once per call."""
    session: Optional[AsyncSession]
    order: OrderSnapshot
    user_id: str
    config: GuaranteeConfig
    now: Optional[datetime] = None
    # Set by check_rules; carries the pattern fallback when no rule matched
    rule_match: Optional[RuleMatch] = None


Tier = Callable[[CheckContext], Awaitable[Optional[CheckResult]]]


def resolve_no_guarantee(
    ctx: CheckContext,
    source: Optional[MatchSource] = None,
    matched_rule: Optional[str] = None,
) -> CheckResult:
    """Apply the user's no-guarantee action (DENY when unset or unknown)."""
    action = (ctx.config.no_guarantee_action or "DENY").upper()

    if action == "ALLOW":
        return CheckResult(
            valid=True,
            reason=CheckReason.NO_GUARANTEE_ALLOW,
            details=CheckDetails(
                message="No guarantee found, but refill allowed",
                source=source,
                matched_rule=matched_rule,
            ),
        )
    if action == "ASK":
        return CheckResult(
            valid=False,
            reason=CheckReason.NO_GUARANTEE_ASK,
            details=CheckDetails(
                message="This service does not have a guarantee. Are you sure you want to request a refill?",
                source=source,
                matched_rule=matched_rule,
                requires_confirmation=True,
            ),
        )
    return CheckResult(
        valid=False,
        reason=CheckReason.NO_GUARANTEE,
        details=CheckDetails(
            message=f"❌ Refill not available. This service ({ctx.order.service_name}) does not include a guarantee.",
            source=source,
            matched_rule=matched_rule,
        ),
    )


def resolve_duration(
    ctx: CheckContext,
    duration: GuaranteeDuration,
    source: Optional[MatchSource] = None,
    matched_rule: Optional[str] = None,
) -> CheckResult:
    """Compare the guarantee window against the order's completion time."""
    completed_at = ctx.order.completion_time
    if completed_at is None:
        return CheckResult(
            valid=True,
            reason=CheckReason.NO_COMPLETION_DATE,
            details=CheckDetails(
                message="Completion date not recorded, refill allowed",
                guarantee_days=duration.days,
                is_lifetime=duration.is_lifetime,
                source=source,
                matched_rule=matched_rule,
            ),
        )

    window = compute_expiry(completed_at, duration, ctx.now)

    if duration.is_lifetime:
        return CheckResult(
            valid=True,
            reason=CheckReason.VALID,
            details=CheckDetails(
                message="✅ Lifetime guarantee",
                is_lifetime=True,
                completed_at=completed_at,
                source=source,
                matched_rule=matched_rule,
            ),
        )

    if window.is_expired:
        return CheckResult(
            valid=False,
            reason=CheckReason.EXPIRED,
            details=CheckDetails(
                message=(
                    f"❌ Guarantee expired. The {duration.days}-day guarantee period "
                    f"ended on {window.expires_at:%Y-%m-%d}."
                ),
                guarantee_days=duration.days,
                completed_at=completed_at,
                expired_at=window.expires_at,
                days_overdue=window.days_overdue,
                source=source,
                matched_rule=matched_rule,
            ),
        )

    return CheckResult(
        valid=True,
        reason=CheckReason.VALID,
        details=CheckDetails(
            message=f"✅ Guarantee valid ({window.days_remaining} days remaining)",
            guarantee_days=duration.days,
            completed_at=completed_at,
            expires_at=window.expires_at,
            days_remaining=window.days_remaining,
            source=source,
            matched_rule=matched_rule,
        ),
    )


async def check_enabled(ctx: CheckContext) -> Optional[CheckResult]:
    """Per-user opt-out overrides everything."""
    if ctx.config.is_enabled:
        return None
    return CheckResult(
        valid=True,
        reason=CheckReason.VALIDATION_DISABLED,
        details=CheckDetails(message="Guarantee validation is disabled"),
    )


async def check_status(ctx: CheckContext) -> Optional[CheckResult]:
    """Only completed orders are eligible for refill."""
    if ctx.order.is_completed:
        return None
    return CheckResult(
        valid=False,
        reason=CheckReason.NOT_COMPLETED,
        details=CheckDetails(
            message=f"Order is not completed (Status: {ctx.order.status})",
            status=ctx.order.status,
        ),
    )


async def check_provider_signal(ctx: CheckContext) -> Optional[CheckResult]:
    """Trust the provider's refill flag in api/both detection modes.

    A provider veto always wins. An explicit allowance only short-circuits in
    pure api mode; "both" goes on to corroborate with rules and patterns.
    """
    method = (ctx.config.detection_method or "pattern").lower()
    if method not in ("api", "both"):
        return None

    if ctx.order.can_refill is False:
        return CheckResult(
            valid=False,
            reason=CheckReason.API_NO_REFILL,
            details=CheckDetails(
                message="❌ Refill not available. The provider reports this order as not refillable.",
                source="api",
            ),
        )
    if method == "api" and ctx.order.can_refill is True:
        return CheckResult(
            valid=True,
            reason=CheckReason.API_REFILL_ALLOWED,
            details=CheckDetails(
                message="✅ Provider reports this order as refillable",
                source="api",
            ),
        )
    return None


async def check_rules(ctx: CheckContext) -> Optional[CheckResult]:
    """Decide from the user's keyword rules; lookup errors fall through."""
    if ctx.session is None:
        return None
    try:
        match = await match_rules(
            ctx.session,
            ctx.order.service_name,
            ctx.user_id,
            ctx.order.panel_id,
            config=ctx.config,
        )
    except Exception:
        logger.error(
            "Guarantee rule lookup failed, falling back to patterns",
            exc_info=True,
            extra=get_log_context(
                user_id=ctx.user_id,
                order_id=ctx.order.external_order_id,
                panel_id=ctx.order.panel_id,
            ),
        )
        try:
            # Rollback expires session state; the pattern tier still reads config
            if ctx.config in ctx.session:
                ctx.session.expunge(ctx.config)
            await ctx.session.rollback()
        except Exception:
            logger.warning(
                "Rollback after failed rule lookup also failed",
                exc_info=True,
                extra=get_log_context(user_id=ctx.user_id),
            )
        return None

    ctx.rule_match = match
    if match.source != "rule":
        return None
    if not match.has_guarantee:
        return resolve_no_guarantee(ctx, "rule", match.matched_rule)
    return resolve_duration(ctx, match.duration, "rule", match.matched_rule)


async def check_patterns(ctx: CheckContext) -> Optional[CheckResult]:
    """Last tier: decide from the service name's guarantee annotation.

    Reuses the pattern fallback already computed by check_rules; the pattern
    engine only runs here when the rule lookup was skipped or failed.
    """
    if ctx.rule_match is not None:
        duration = ctx.rule_match.duration if ctx.rule_match.has_guarantee else None
    else:
        duration = extract_guarantee_duration(ctx.order.service_name, ctx.config)
    if duration is None:
        return resolve_no_guarantee(ctx)
    return resolve_duration(ctx, duration, "pattern")


DEFAULT_TIERS: tuple[Tier, ...] = (
    check_enabled,
    check_status,
    check_provider_signal,
    check_rules,
    check_patterns,
)


class GuaranteeService:
    """Guarantee service - decides whether an order may be refilled."""

    def __init__(self, tiers: Sequence[Tier] = DEFAULT_TIERS):
        self.tiers = tuple(tiers)

    async def evaluate(self, ctx: CheckContext) -> CheckResult:
        """Run the tiers in order; the first one that decides wins."""
        for tier in self.tiers:
            result = await tier(ctx)
            if result is not None:
                return result
        # The builtin chain always ends in check_patterns; custom chains may not
        return resolve_no_guarantee(ctx)

    async def check_guarantee(
        self,
        session: AsyncSession,
        order: Any,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> CheckResult:
        """Check whether an order is still within its refill guarantee.

        Args:
            session: Database session used to read the user's config and rules
            order: OrderSnapshot, or any record exposing the order attributes
            user_id: Owner of the configuration to apply
            now: Evaluation time (defaults to the local clock)

        Returns:
            CheckResult; rule lookup failures and bad patterns never raise

        Raises:
            ConfigurationError: if user_id is missing
        """
        if not isinstance(order, OrderSnapshot):
            order = OrderSnapshot.from_record(order)
        config = await get_config(session, user_id)
        ctx = CheckContext(session=session, order=order, user_id=user_id, config=config, now=now)

        result = await self.evaluate(ctx)
        logger.debug(
            f"Guarantee check for order {order.external_order_id}: {result.reason.value}",
            extra=get_log_context(
                user_id=user_id,
                order_id=order.external_order_id,
                panel_id=order.panel_id,
                reason=result.reason.value,
                source=result.details.source,
            ),
        )
        return result

    async def test_service_name(
        self,
        session: AsyncSession,
        user_id: str,
        service_name: str,
        panel_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Dry-run the rule engine for a sample service name."""
        config = await get_config(session, user_id)
        match = await match_rules(session, service_name, user_id, panel_id, config=config)

        duration = match.duration
        if match.has_guarantee and duration is not None:
            message = (
                "✅ Lifetime guarantee"
                if duration.is_lifetime
                else f"✅ Found {duration.days} day guarantee"
            )
        elif match.source == "rule":
            message = f"❌ No guarantee (rule: {match.matched_rule})"
        else:
            message = "❌ No guarantee pattern matched"

        return {
            "serviceName": service_name,
            "guaranteeDays": duration.days if duration else None,
            "isLifetime": bool(duration and duration.is_lifetime),
            "hasGuarantee": match.has_guarantee,
            "source": match.source,
            "matchedRule": match.matched_rule,
            "message": message,
        }

    def get_guarantee_info(
        self,
        order: Any,
        config: Any = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Summarise an order's guarantee for status displays.

        Uses the pattern engine only, so it needs no database access.
        """
        if not isinstance(order, OrderSnapshot):
            order = OrderSnapshot.from_record(order)
        duration = extract_guarantee_duration(order.service_name, config)

        if duration is None:
            return {"hasGuarantee": False, "days": None, "status": "No guarantee", "icon": "❌"}

        completed_at = order.completion_time
        if completed_at is None or not order.is_completed:
            return {
                "hasGuarantee": True,
                "days": duration.days,
                "status": "Pending completion",
                "icon": "⏳",
            }

        window = compute_expiry(completed_at, duration, now)
        if window.is_expired:
            return {
                "hasGuarantee": True,
                "days": duration.days,
                "status": "Expired",
                "expiresAt": window.expires_at,
                "daysOverdue": window.days_overdue,
                "icon": "⛔",
            }
        return {
            "hasGuarantee": True,
            "days": duration.days,
            "status": "Active",
            "expiresAt": window.expires_at,
            "daysRemaining": window.days_remaining,
            "icon": "⚠️" if window.days_remaining <= 3 else "✅",
        }


# Global instance for convenience
_default_service: GuaranteeService | None = None


def get_guarantee_service() -> GuaranteeService:
    """Get the default GuaranteeService instance (singleton pattern)."""
    global _default_service
    if _default_service is None:
        _default_service = GuaranteeService()
    return _default_service


async def check_guarantee(
    session: AsyncSession,
    order: Any,
    user_id: str,
    now: Optional[datetime] = None,
) -> CheckResult:
    """Convenience function to check an order using the default service."""
    return await get_guarantee_service().check_guarantee(session, order, user_id, now=now)
