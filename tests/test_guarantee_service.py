"""Tests for the guarantee decision chain."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from refillguard.app.db.crud import create_rule, get_config, update_config
from refillguard.app.exceptions import ConfigurationError
from refillguard.app.services.guarantee import (
    CheckContext,
    CheckDetails,
    CheckReason,
    CheckResult,
    GuaranteeService,
    check_guarantee,
    format_guarantee_message,
    seed_default_rules,
)
from refillguard.app.services.guarantee.regex_utils import safe_search
from refillguard.app.services.guarantee.service import (
    check_enabled,
    check_patterns,
    check_provider_signal,
    check_status,
)


def _ctx(config, order, now, session=None):
    return CheckContext(session=session, order=order, user_id="user-1", config=config, now=now)


class TestTiers:
    """Each tier decides on its own or passes with None."""

    @pytest.mark.asyncio
    async def test_enabled_tier(self, default_config, make_order, now):
        assert await check_enabled(_ctx(default_config, make_order(), now)) is None

        default_config.is_enabled = False
        result = await check_enabled(_ctx(default_config, make_order(), now))
        assert result.valid is True
        assert result.reason == CheckReason.VALIDATION_DISABLED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["PENDING", "IN_PROGRESS", "PARTIAL", "CANCELED", ""])
    async def test_status_tier(self, default_config, make_order, now, status):
        result = await check_status(_ctx(default_config, make_order(status=status), now))
        assert result.valid is False
        assert result.reason == CheckReason.NOT_COMPLETED
        assert result.details.status == status

    @pytest.mark.asyncio
    async def test_status_tier_accepts_lowercase_completed(self, default_config, make_order, now):
        assert await check_status(_ctx(default_config, make_order(status="completed"), now)) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["api", "both"])
    async def test_provider_veto(self, default_config, make_order, now, method):
        default_config.detection_method = method
        result = await check_provider_signal(_ctx(default_config, make_order(can_refill=False), now))
        assert result.valid is False
        assert result.reason == CheckReason.API_NO_REFILL

    @pytest.mark.asyncio
    async def test_provider_allowance_short_circuits_in_api_mode(self, default_config, make_order, now):
        default_config.detection_method = "api"
        result = await check_provider_signal(_ctx(default_config, make_order(can_refill=True), now))
        assert result.valid is True
        assert result.reason == CheckReason.API_REFILL_ALLOWED

    @pytest.mark.asyncio
    async def test_provider_allowance_continues_in_both_mode(self, default_config, make_order, now):
        default_config.detection_method = "both"
        assert await check_provider_signal(_ctx(default_config, make_order(can_refill=True), now)) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["api", "both"])
    async def test_unknown_provider_signal_passes(self, default_config, make_order, now, method):
        default_config.detection_method = method
        assert await check_provider_signal(_ctx(default_config, make_order(can_refill=None), now)) is None

    @pytest.mark.asyncio
    async def test_provider_signal_ignored_in_pattern_mode(self, default_config, make_order, now):
        assert await check_provider_signal(_ctx(default_config, make_order(can_refill=False), now)) is None

    @pytest.mark.asyncio
    async def test_pattern_tier_valid(self, default_config, make_order, now):
        order = make_order(completed_at=now - timedelta(days=10))
        result = await check_patterns(_ctx(default_config, order, now))
        assert result.reason == CheckReason.VALID
        assert result.details.source == "pattern"
        assert result.details.days_remaining == 20

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("action", "reason", "valid"),
        [
            ("ALLOW", CheckReason.NO_GUARANTEE_ALLOW, True),
            ("ASK", CheckReason.NO_GUARANTEE_ASK, False),
            ("DENY", CheckReason.NO_GUARANTEE, False),
            ("", CheckReason.NO_GUARANTEE, False),
        ],
    )
    async def test_no_guarantee_actions(self, default_config, make_order, now, action, reason, valid):
        default_config.no_guarantee_action = action
        order = make_order(service_name="Instagram Likes", completed_at=now)
        result = await check_patterns(_ctx(default_config, order, now))
        assert result.reason == reason
        assert result.valid is valid
        assert result.details.requires_confirmation is (reason == CheckReason.NO_GUARANTEE_ASK)

    @pytest.mark.asyncio
    async def test_updated_at_is_completion_fallback(self, default_config, make_order, now):
        order = make_order(updated_at=now - timedelta(days=40))
        result = await check_patterns(_ctx(default_config, order, now))
        assert result.reason == CheckReason.EXPIRED

    @pytest.mark.asyncio
    async def test_no_completion_date_allows(self, default_config, make_order, now):
        result = await check_patterns(_ctx(default_config, make_order(), now))
        assert result.valid is True
        assert result.reason == CheckReason.NO_COMPLETION_DATE
        assert result.details.guarantee_days == 30


class TestRuleLookupFailure:
    @pytest.mark.asyncio
    async def test_lookup_error_falls_back_to_patterns(self, default_config, make_order, now):
        order = make_order(completed_at=now - timedelta(days=10))
        session = MagicMock(spec=AsyncSession)
        ctx = _ctx(default_config, order, now, session=session)

        with patch(
            "refillguard.app.services.guarantee.service.match_rules",
            new_callable=AsyncMock,
            side_effect=RuntimeError("database is down"),
        ):
            result = await GuaranteeService().evaluate(ctx)

        assert result.reason == CheckReason.VALID
        assert result.details.source == "pattern"
        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_rollback_still_falls_back(self, default_config, make_order, now):
        order = make_order(completed_at=now - timedelta(days=10))
        session = MagicMock(spec=AsyncSession)
        session.rollback.side_effect = RuntimeError("connection closed")
        ctx = _ctx(default_config, order, now, session=session)

        with patch(
            "refillguard.app.services.guarantee.service.match_rules",
            new_callable=AsyncMock,
            side_effect=RuntimeError("database is down"),
        ):
            result = await GuaranteeService().evaluate(ctx)

        assert result.reason == CheckReason.VALID

    @pytest.mark.asyncio
    async def test_session_usable_after_lookup_error(self, session, make_order, now):
        order = make_order(completed_at=now - timedelta(days=10))

        with patch(
            "refillguard.app.services.guarantee.service.match_rules",
            new_callable=AsyncMock,
            side_effect=RuntimeError("database is down"),
        ):
            result = await check_guarantee(session, order, "user-1", now=now)
        assert result.reason == CheckReason.VALID

        # Next check on the same session goes through the rule store again
        await create_rule(session, "user-1", {"keyword": "Followers", "action": "no_guarantee"})
        result = await check_guarantee(session, order, "user-1", now=now)
        assert result.reason == CheckReason.NO_GUARANTEE


class TestPatternEngineRunsOnce:
    """The rule tier's pattern fallback is reused by the pattern tier."""

    @pytest.mark.asyncio
    async def test_custom_pattern_evaluated_once_per_check(self, session, make_order, now):
        await update_config(session, "user-1", {"patterns": [r"Garansi (\d+)"]})
        order = make_order(service_name="Plain Likes", completed_at=now)

        with patch(
            "refillguard.app.services.guarantee.patterns.safe_search",
            wraps=safe_search,
        ) as spy:
            result = await check_guarantee(session, order, "user-1", now=now)

        assert result.reason == CheckReason.NO_GUARANTEE
        assert spy.call_count == 1

    @pytest.mark.asyncio
    async def test_pattern_hit_reused(self, session, make_order, now):
        await update_config(session, "user-1", {"patterns": [r"Garansi (\d+)"]})
        order = make_order(service_name="Followers Garansi 7", completed_at=now - timedelta(days=2))

        with patch(
            "refillguard.app.services.guarantee.patterns.safe_search",
            wraps=safe_search,
        ) as spy:
            result = await check_guarantee(session, order, "user-1", now=now)

        assert result.reason == CheckReason.VALID
        assert result.details.guarantee_days == 7
        assert result.details.days_remaining == 5
        assert spy.call_count == 1

    @pytest.mark.asyncio
    async def test_pattern_tier_runs_engine_without_session(self, default_config, make_order, now):
        order = make_order(completed_at=now - timedelta(days=1))
        result = await GuaranteeService().evaluate(_ctx(default_config, order, now))
        assert result.reason == CheckReason.VALID
        assert result.details.source == "pattern"


class TestCheckGuarantee:
    """End-to-end checks against a real store."""

    @pytest.mark.asyncio
    async def test_scenario_a_within_window(self, session, make_order, now):
        order = make_order(completed_at=now - timedelta(days=10))
        result = await check_guarantee(session, order, "user-1", now=now)

        assert result.valid is True
        assert result.reason == CheckReason.VALID
        assert result.details.guarantee_days == 30
        assert result.details.days_remaining == 20
        assert result.details.expires_at == now + timedelta(days=20)

    @pytest.mark.asyncio
    async def test_scenario_b_expired(self, session, make_order, now):
        order = make_order(completed_at=now - timedelta(days=40))
        result = await check_guarantee(session, order, "user-1", now=now)

        assert result.valid is False
        assert result.reason == CheckReason.EXPIRED
        assert result.details.days_overdue == 10
        assert result.details.expired_at == now - timedelta(days=10)

    @pytest.mark.asyncio
    async def test_scenario_c_no_refill_denied(self, session, make_order, now):
        order = make_order(service_name="TikTok Views No Refill", completed_at=now)
        result = await check_guarantee(session, order, "user-1", now=now)

        assert result.valid is False
        assert result.reason == CheckReason.NO_GUARANTEE

    @pytest.mark.asyncio
    async def test_scenario_d_exclusion_rule_preempts_pattern(self, session, make_order, now):
        await create_rule(
            session, "user-1", {"keyword": "No Refill", "action": "no_guarantee", "priority": 10}
        )
        order = make_order(
            service_name="Instagram Followers No Refill 30 Days ♻️",
            completed_at=now - timedelta(days=1),
        )
        result = await check_guarantee(session, order, "user-1", now=now)

        assert result.valid is False
        assert result.reason == CheckReason.NO_GUARANTEE
        assert result.details.source == "rule"
        assert result.details.matched_rule == "No Refill"

    @pytest.mark.asyncio
    async def test_seeded_rules_decide(self, session, make_order, now):
        await seed_default_rules(session, "user-1")
        order = make_order(
            service_name="Instagram Followers No Refill 30 Days ♻️",
            completed_at=now - timedelta(days=1),
        )
        result = await check_guarantee(session, order, "user-1", now=now)
        assert result.reason == CheckReason.NO_GUARANTEE
        assert result.details.source == "rule"

    @pytest.mark.asyncio
    async def test_disabled_wins_regardless_of_status(self, session, make_order, now):
        await update_config(session, "user-1", {"is_enabled": False})
        result = await check_guarantee(session, make_order(status="PENDING"), "user-1", now=now)
        assert result.valid is True
        assert result.reason == CheckReason.VALIDATION_DISABLED

    @pytest.mark.asyncio
    async def test_not_completed_even_with_matching_rule(self, session, make_order, now):
        await create_rule(
            session, "user-1", {"keyword": "Followers", "action": "guarantee", "days": 30}
        )
        result = await check_guarantee(
            session, make_order(status="IN_PROGRESS", completed_at=now), "user-1", now=now
        )
        assert result.reason == CheckReason.NOT_COMPLETED

    @pytest.mark.asyncio
    async def test_rule_guarantee_overrides_pattern_days(self, session, make_order, now):
        await create_rule(
            session, "user-1", {"keyword": "Followers", "action": "guarantee", "days": 7}
        )
        order = make_order(completed_at=now - timedelta(days=10))
        result = await check_guarantee(session, order, "user-1", now=now)

        assert result.reason == CheckReason.EXPIRED
        assert result.details.source == "rule"
        assert result.details.days_overdue == 3

    @pytest.mark.asyncio
    async def test_lifetime_rule_is_always_valid(self, session, make_order, now):
        await create_rule(
            session,
            "user-1",
            {"keyword": "Lifetime", "action": "guarantee", "is_lifetime": True},
        )
        order = make_order(
            service_name="Followers Lifetime ♻️", completed_at=now - timedelta(days=5000)
        )
        result = await check_guarantee(session, order, "user-1", now=now)

        assert result.valid is True
        assert result.reason == CheckReason.VALID
        assert result.details.is_lifetime is True
        assert result.details.expires_at is None

    @pytest.mark.asyncio
    async def test_both_mode_corroborates_with_rules(self, session, make_order, now):
        await update_config(session, "user-1", {"detection_method": "both"})
        order = make_order(
            service_name="TikTok Views No Refill", can_refill=True, completed_at=now
        )
        result = await check_guarantee(session, order, "user-1", now=now)
        assert result.reason == CheckReason.NO_GUARANTEE

    @pytest.mark.asyncio
    async def test_api_mode_trusts_provider(self, session, make_order, now):
        await update_config(session, "user-1", {"detection_method": "api"})
        order = make_order(
            service_name="TikTok Views No Refill", can_refill=True, completed_at=now
        )
        result = await check_guarantee(session, order, "user-1", now=now)
        assert result.reason == CheckReason.API_REFILL_ALLOWED

    @pytest.mark.asyncio
    async def test_ask_action_from_rule(self, session, make_order, now):
        await update_config(session, "user-1", {"no_guarantee_action": "ASK"})
        await create_rule(session, "user-1", {"keyword": "No Refill", "action": "no_guarantee"})
        order = make_order(service_name="Views No Refill", completed_at=now)

        result = await check_guarantee(session, order, "user-1", now=now)
        assert result.reason == CheckReason.NO_GUARANTEE_ASK
        assert result.details.requires_confirmation is True

    @pytest.mark.asyncio
    async def test_bad_custom_pattern_does_not_break_check(self, session, make_order, now):
        await update_config(session, "user-1", {"patterns": [r"Garansi (\d+)"]})
        # Row written before validation existed
        config = await get_config(session, "user-1")
        config.patterns = '["(a+)+", "[broken", 42'
        await session.commit()

        order = make_order(completed_at=now - timedelta(days=1))
        result = await check_guarantee(session, order, "user-1", now=now)
        assert result.reason == CheckReason.VALID

    @pytest.mark.asyncio
    async def test_accepts_plain_order_records(self, session, now):
        record = MagicMock(
            external_order_id="77",
            service_name="Followers 30 Days ♻️",
            status="COMPLETED",
            completed_at=now - timedelta(days=2),
            updated_at=None,
            can_refill=None,
            panel_id=None,
        )
        result = await check_guarantee(session, record, "user-1", now=now)
        assert result.reason == CheckReason.VALID
        assert result.details.days_remaining == 28

    @pytest.mark.asyncio
    async def test_aware_completion_with_naive_clock(self, session, make_order, now):
        completed_at = datetime.now(timezone.utc) - timedelta(days=10)
        order = make_order(completed_at=completed_at)

        result = await check_guarantee(session, order, "user-1", now=datetime.now())
        assert result.reason == CheckReason.VALID
        assert result.details.days_remaining == 20

    @pytest.mark.asyncio
    async def test_missing_user_id_raises(self, session, make_order, now):
        with pytest.raises(ConfigurationError):
            await check_guarantee(session, make_order(), "", now=now)


class TestTestServiceName:
    @pytest.mark.asyncio
    async def test_reports_rule_source(self, session):
        await seed_default_rules(session, "user-1")
        service = GuaranteeService()

        result = await service.test_service_name(session, "user-1", "Followers 60 Days ♻️")
        assert result["hasGuarantee"] is True
        assert result["guaranteeDays"] == 60
        assert result["source"] == "rule"
        assert result["matchedRule"] == "60 Days ♻️"

        result = await service.test_service_name(session, "user-1", "Followers Non Refill")
        assert result["hasGuarantee"] is False
        assert result["source"] == "rule"

    @pytest.mark.asyncio
    async def test_reports_pattern_and_nothing(self, session):
        service = GuaranteeService()

        result = await service.test_service_name(session, "user-1", "Followers R45")
        assert result["source"] == "pattern"
        assert result["guaranteeDays"] == 45

        result = await service.test_service_name(session, "user-1", "Plain Likes")
        assert result["source"] is None
        assert result["message"] == "❌ No guarantee pattern matched"


class TestGuaranteeInfo:
    def test_no_guarantee(self, make_order, now):
        info = GuaranteeService().get_guarantee_info(make_order(service_name="Likes"), now=now)
        assert info["hasGuarantee"] is False
        assert info["status"] == "No guarantee"

    def test_pending_completion(self, make_order, now):
        info = GuaranteeService().get_guarantee_info(make_order(status="PENDING"), now=now)
        assert info["status"] == "Pending completion"
        assert info["days"] == 30

    def test_active_and_nearly_expired(self, make_order, now):
        service = GuaranteeService()
        info = service.get_guarantee_info(make_order(completed_at=now - timedelta(days=10)), now=now)
        assert info["status"] == "Active"
        assert info["icon"] == "✅"

        info = service.get_guarantee_info(make_order(completed_at=now - timedelta(days=28)), now=now)
        assert info["daysRemaining"] == 2
        assert info["icon"] == "⚠️"

    def test_expired(self, make_order, now):
        info = GuaranteeService().get_guarantee_info(
            make_order(completed_at=now - timedelta(days=31)), now=now
        )
        assert info["status"] == "Expired"
        assert info["daysOverdue"] == 1


class TestFormatting:
    @pytest.mark.asyncio
    async def test_messages_per_reason(self, default_config, make_order, now):
        order = make_order(completed_at=now - timedelta(days=10))
        valid = await check_patterns(_ctx(default_config, order, now))
        assert format_guarantee_message(valid, order) == (
            "✅ Order #1001 - Guarantee valid (20 days remaining)"
        )

        expired_order = make_order(completed_at=now - timedelta(days=40))
        expired = await check_patterns(_ctx(default_config, expired_order, now))
        assert format_guarantee_message(expired, expired_order) == (
            "❌ Order #1001 - Guarantee expired on 2026-02-19. Refill not available."
        )

        pending = make_order(status="PENDING")
        not_completed = await check_status(_ctx(default_config, pending, now))
        assert format_guarantee_message(not_completed, pending).endswith("Order status: PENDING")

    def test_to_dict_uses_camel_case(self):
        result = CheckResult(
            valid=False,
            reason=CheckReason.NO_GUARANTEE_ASK,
            details=CheckDetails(message="confirm?", requires_confirmation=True),
        )
        assert result.to_dict() == {
            "valid": False,
            "reason": "NO_GUARANTEE_ASK",
            "details": {"message": "confirm?", "requiresConfirmation": True},
        }
