"""One-line chat replies for guarantee check results."""
from typing import Any

from refillguard.app.services.guarantee.models import CheckReason, CheckResult


def _order_label(order: Any) -> str:
    order_id = getattr(order, "external_order_id", None) or getattr(order, "id", None)
    return f"Order #{order_id}"


def format_guarantee_message(result: CheckResult, order: Any) -> str:
    """Render a check result as the reply sent back to the customer."""
    label = _order_label(order)
    details = result.details
    reason = result.reason

    if reason == CheckReason.VALID:
        if details.is_lifetime:
            return f"✅ {label} - Lifetime guarantee"
        return f"✅ {label} - Guarantee valid ({details.days_remaining} days remaining)"
    if reason == CheckReason.EXPIRED:
        return (
            f"❌ {label} - Guarantee expired on {details.expired_at:%Y-%m-%d}. "
            "Refill not available."
        )
    if reason == CheckReason.NO_GUARANTEE:
        return f"❌ {label} - This service does not include a refill guarantee."
    if reason == CheckReason.NO_GUARANTEE_ASK:
        return f'⚠️ {label} - No guarantee found. Reply "YES" to proceed with refill anyway.'
    if reason == CheckReason.NOT_COMPLETED:
        return f"❌ {label} - Cannot refill. Order status: {details.status}"
    if reason == CheckReason.API_NO_REFILL:
        return f"❌ {label} - The provider does not allow a refill for this order."
    if reason in (
        CheckReason.VALIDATION_DISABLED,
        CheckReason.NO_GUARANTEE_ALLOW,
        CheckReason.NO_COMPLETION_DATE,
        CheckReason.API_REFILL_ALLOWED,
    ):
        return f"✅ {label} - Refill request allowed"
    return f"❓ {label} - Unable to validate guarantee"
