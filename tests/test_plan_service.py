# =============================================================================
# TripFlow - Usage Engine Tests
# =============================================================================
#
# PlanService is database-free: these tests need no app fixture.
# =============================================================================

import pytest
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

from tripflow.services.errors import InvalidUserProfile, PlanNotFound
from tripflow.services.plan_service import (
    DEFAULT_PERIOD_DAYS,
    PlanService,
    UsageStats,
    UserSubscription,
)
from tripflow.services.plans import UNLIMITED, Plan, PlanType, SubscriptionStatus

NOW = datetime(2026, 1, 31, 12, 0, 0)


def make_subscription(plan_id=PlanType.FREE, trips_used=0, status=SubscriptionStatus.ACTIVE):
    return UserSubscription(
        plan_id=plan_id,
        status=status,
        current_period_start=NOW,
        current_period_end=NOW + timedelta(days=DEFAULT_PERIOD_DAYS),
        trips_used=trips_used,
    )


# =============================================================================
# Usage Gate
# =============================================================================

class TestCanCreateTrip:
    """Tests for the trip creation gate."""

    @pytest.mark.parametrize('trips_used', range(0, 10))
    def test_free_plan_below_limit_passes(self, trips_used):
        """tripsUsed in [0, 9] passes on the free plan."""
        assert PlanService.can_create_trip(make_subscription(trips_used=trips_used)) is True

    @pytest.mark.parametrize('trips_used', [10, 11, 50])
    def test_free_plan_at_or_above_limit_blocks(self, trips_used):
        """The comparison is strict: 10/10 is blocked."""
        assert PlanService.can_create_trip(make_subscription(trips_used=trips_used)) is False

    @pytest.mark.parametrize('trips_used', [0, 1, 10, 10_000])
    def test_unlimited_plan_always_passes(self, trips_used):
        sub = make_subscription(PlanType.PRO_INDIVIDUAL, trips_used)
        assert PlanService.can_create_trip(sub) is True

    @pytest.mark.parametrize('status', list(SubscriptionStatus))
    def test_unlimited_plan_ignores_status(self, status):
        """A canceled or past_due unlimited plan still passes."""
        sub = make_subscription(PlanType.PRO_ENTERPRISE, 5, status)
        assert PlanService.can_create_trip(sub) is True

    def test_unknown_plan_fails_closed(self):
        sub = make_subscription()
        sub.plan_id = 'gold'
        assert PlanService.can_create_trip(sub) is False
        assert PlanService.get_remaining_trips(sub) == 0

    def test_custom_catalog_limit(self):
        """Gate monotonicity holds for any limit N."""
        catalog = {PlanType.FREE: Plan(id=PlanType.FREE, name='Mini', price=0, max_trips=3, max_users=1)}
        results = [PlanService.can_create_trip(make_subscription(trips_used=n), catalog) for n in range(6)]
        assert results == [True, True, True, False, False, False]

    def test_zero_limit_never_passes(self):
        catalog = {PlanType.FREE: Plan(id=PlanType.FREE, name='Zero', price=0, max_trips=0, max_users=1)}
        assert PlanService.can_create_trip(make_subscription(), catalog) is False


class TestGetRemainingTrips:
    """Tests for remaining trips computation."""

    def test_remaining_on_free_plan(self):
        assert PlanService.get_remaining_trips(make_subscription(trips_used=3)) == 7

    def test_remaining_never_negative(self):
        """Counter above the limit (e.g. after a downgrade) floors at 0."""
        assert PlanService.get_remaining_trips(make_subscription(trips_used=47)) == 0

    def test_unlimited_returns_sentinel(self):
        sub = make_subscription(PlanType.PRO_INDIVIDUAL, 12)
        assert PlanService.get_remaining_trips(sub) == UNLIMITED


# =============================================================================
# Usage Stats & migration on read
# =============================================================================

class TestUsageStats:
    """Tests for get_user_usage_stats."""

    def test_stats_for_free_user(self):
        profile = {'uid': 'u1', 'subscription': make_subscription(trips_used=4)}
        stats = PlanService.get_user_usage_stats(profile)
        assert stats == UsageStats(
            user_id='u1',
            plan_type=PlanType.FREE,
            current_trips_count=4,
            max_trips_allowed=10,
            remaining_trips=6,
            is_limit_reached=False,
        )

    def test_stats_for_unlimited_user(self):
        profile = {'uid': 'u2', 'subscription': make_subscription(PlanType.PRO_INDIVIDUAL, 120)}
        stats = PlanService.get_user_usage_stats(profile)
        assert stats.max_trips_allowed == UNLIMITED
        assert stats.remaining_trips == UNLIMITED
        assert stats.is_limit_reached is False

    def test_missing_subscription_uses_default(self):
        """A legacy profile without subscription reads as free, 0 used."""
        profile = {'uid': 'legacy'}
        stats = PlanService.get_user_usage_stats(profile, now=NOW)
        assert stats.plan_type == PlanType.FREE
        assert stats.current_trips_count == 0
        assert stats.max_trips_allowed == 10
        assert stats.remaining_trips == 10
        assert stats.is_limit_reached is False

    def test_migration_on_read_is_idempotent(self):
        """Two reads of a legacy profile give the same stats and write nothing."""
        profile = {'uid': 'legacy', 'createdAt': '2024-01-01T00:00:00Z'}
        first = PlanService.get_user_usage_stats(profile)
        second = PlanService.get_user_usage_stats(profile)
        assert first == second
        assert 'subscription' not in profile

    def test_malformed_subscription_uses_default(self):
        profile = {'uid': 'u3', 'subscription': {'planId': 'free', 'tripsUsed': -2}}
        stats = PlanService.get_user_usage_stats(profile)
        assert stats.current_trips_count == 0
        assert stats.plan_type == PlanType.FREE

    def test_camel_case_document(self):
        """Stored documents with camelCase keys are read as-is."""
        profile = {
            'uid': 'u4',
            'subscription': {
                'planId': 'free',
                'status': 'active',
                'tripsUsed': 9,
                'currentPeriodStart': '2026-01-01T00:00:00.000Z',
                'currentPeriodEnd': '2027-01-01T00:00:00.000Z',
                'mollieCustomerId': 'cst_1',
            },
        }
        subscription = PlanService.resolve_subscription(profile['subscription'])
        assert subscription.trips_used == 9
        assert subscription.provider_customer_id == 'cst_1'
        assert subscription.current_period_start == datetime(2026, 1, 1)
        assert PlanService.get_user_usage_stats(profile).remaining_trips == 1

    def test_boolean_trips_used_is_malformed(self):
        subscription = PlanService.resolve_subscription({'planId': 'free', 'tripsUsed': True}, now=NOW)
        assert subscription.trips_used == 0
        assert subscription.current_period_start == NOW

    def test_profile_without_uid_raises(self):
        with pytest.raises(InvalidUserProfile):
            PlanService.get_user_usage_stats({'subscription': make_subscription()})

    def test_stats_to_dict(self):
        stats = PlanService.get_user_usage_stats({'uid': 'u5', 'subscription': make_subscription()})
        assert stats.to_dict()['plan_type'] == 'free'


# =============================================================================
# Trial eligibility
# =============================================================================

class TestTrialEligibility:
    """Tests for is_eligible_for_trial."""

    def test_six_days_23_hours_is_eligible(self):
        profile = {
            'uid': 'u1',
            'created_at': NOW - timedelta(days=6, hours=23),
            'subscription': make_subscription(),
        }
        assert PlanService.is_eligible_for_trial(profile, now=NOW) is True

    def test_seven_days_one_hour_is_not_eligible(self):
        profile = {
            'uid': 'u1',
            'created_at': NOW - timedelta(days=7, hours=1),
            'subscription': make_subscription(),
        }
        assert PlanService.is_eligible_for_trial(profile, now=NOW) is False

    def test_exactly_seven_days_is_not_eligible(self):
        profile = {'uid': 'u1', 'created_at': NOW - timedelta(days=7), 'subscription': make_subscription()}
        assert PlanService.is_eligible_for_trial(profile, now=NOW) is False

    def test_pro_user_never_eligible(self):
        profile = {
            'uid': 'u1',
            'created_at': NOW - timedelta(hours=1),
            'subscription': make_subscription(PlanType.PRO_INDIVIDUAL),
        }
        assert PlanService.is_eligible_for_trial(profile, now=NOW) is False

    def test_iso_created_at_string(self):
        profile = {'uid': 'u1', 'createdAt': '2026-01-30T12:00:00.000Z'}
        assert PlanService.is_eligible_for_trial(profile, now=NOW) is True

    def test_downgraded_user_regains_eligibility(self):
        """No persisted trial flag: back on free within 7 days means eligible again."""
        trial = PlanService.create_trial_subscription('pro_individual', now=NOW)
        downgraded = PlanService.create_free_subscription(trial, now=NOW)
        profile = {'uid': 'u1', 'created_at': NOW - timedelta(days=2), 'subscription': downgraded}
        assert PlanService.is_eligible_for_trial(profile, now=NOW) is True

    def test_missing_created_at_raises(self):
        with pytest.raises(InvalidUserProfile):
            PlanService.is_eligible_for_trial({'uid': 'u1'}, now=NOW)

    def test_invalid_created_at_raises(self):
        with pytest.raises(InvalidUserProfile):
            PlanService.is_eligible_for_trial({'uid': 'u1', 'createdAt': 'yesterday'}, now=NOW)


# =============================================================================
# Transition factory
# =============================================================================

class TestTransitionFactory:
    """Tests for subscription constructors."""

    def test_default_subscription(self):
        sub = PlanService.create_default_subscription(now=NOW)
        assert sub.plan_id == PlanType.FREE
        assert sub.status == SubscriptionStatus.ACTIVE
        assert sub.trips_used == 0
        assert sub.current_period_start == NOW
        assert sub.current_period_end == NOW + timedelta(days=365)
        assert sub.provider_customer_id is None
        assert sub.provider_subscription_id is None

    def test_trial_subscription(self):
        sub = PlanService.create_trial_subscription('pro_individual', now=NOW)
        assert sub.plan_id == PlanType.PRO_INDIVIDUAL
        assert sub.status == SubscriptionStatus.TRIALING
        assert sub.current_period_end == NOW + timedelta(days=14)
        assert sub.trips_used == 0

    def test_trial_unknown_plan_raises(self):
        with pytest.raises(PlanNotFound):
            PlanService.create_trial_subscription('gold', now=NOW)

    def test_paid_subscription_one_calendar_month(self):
        """January 31 + 1 month is clamped to February 28."""
        sub = PlanService.create_paid_subscription('pro_enterprise', 'cst_x', 'sub_y', now=NOW)
        assert sub.status == SubscriptionStatus.ACTIVE
        assert sub.current_period_end == datetime(2026, 2, 28, 12, 0, 0)
        assert sub.provider_customer_id == 'cst_x'
        assert sub.provider_subscription_id == 'sub_y'

    def test_paid_unknown_plan_raises(self):
        with pytest.raises(PlanNotFound):
            PlanService.create_paid_subscription('gold', 'cst_x', 'sub_y')

    def test_free_from_nothing_is_default(self):
        sub = PlanService.create_free_subscription(now=NOW)
        assert sub == PlanService.create_default_subscription(now=NOW)

    def test_subscription_to_dict(self):
        data = PlanService.create_default_subscription(now=NOW).to_dict()
        assert data['plan_id'] == 'free'
        assert data['current_period_start'] == NOW.isoformat()


class TestEndToEndScenarios:
    """Plan lifecycle scenarios."""

    def test_free_user_at_boundary(self):
        """9/10 passes with 1 left; after one more trip the user is blocked."""
        sub = make_subscription(trips_used=9)
        assert PlanService.can_create_trip(sub) is True
        assert PlanService.get_remaining_trips(sub) == 1

        sub = replace(sub, trips_used=sub.trips_used + 1)
        stats = PlanService.get_user_usage_stats({'uid': 'u1', 'subscription': sub})
        assert PlanService.can_create_trip(sub) is False
        assert stats.remaining_trips == 0
        assert stats.is_limit_reached is True

    def test_upgrade_resets_gate_and_counter(self):
        blocked = make_subscription(trips_used=10)
        assert PlanService.can_create_trip(blocked) is False

        paid = PlanService.create_paid_subscription('pro_individual', 'cst_x', 'sub_y')
        assert paid.trips_used == 0
        assert paid.plan_id == PlanType.PRO_INDIVIDUAL
        assert PlanService.can_create_trip(paid) is True

    def test_downgrade_preserves_counter(self):
        """47 trips on pro, downgraded to free: blocked at once."""
        pro = make_subscription(PlanType.PRO_INDIVIDUAL, 47)
        free = PlanService.create_free_subscription(pro, now=NOW)
        assert free.trips_used == 47
        assert free.plan_id == PlanType.FREE
        assert free.status == SubscriptionStatus.ACTIVE
        assert free.current_period_start == pro.current_period_start
        assert PlanService.can_create_trip(free) is False


# =============================================================================
# Presentation helpers
# =============================================================================

class TestPresentationHelpers:
    """Tests for messages and price formatting."""

    def test_no_limitation_message_when_allowed(self):
        profile = {'uid': 'u1', 'subscription': make_subscription(trips_used=2)}
        assert PlanService.get_limitation_message(profile) is None

    def test_limitation_message_when_blocked(self):
        profile = {'uid': 'u1', 'subscription': make_subscription(trips_used=10)}
        message = PlanService.get_limitation_message(profile)
        assert '10 déplacements maximum' in message
        assert 'Gratuit' in message

    def test_upgrade_message_for_free(self):
        profile = {'uid': 'u1', 'subscription': make_subscription()}
        assert 'Pro Individuel' in PlanService.get_upgrade_message(profile)

    def test_upgrade_message_for_pro(self):
        profile = {'uid': 'u1', 'subscription': make_subscription(PlanType.PRO_INDIVIDUAL)}
        assert PlanService.get_upgrade_message(profile).startswith('Découvrez')

    def test_is_premium_plan(self):
        assert PlanService.is_premium_plan('pro_individual') is True
        assert PlanService.is_premium_plan('free') is False
        assert PlanService.is_premium_plan('gold') is False

    def test_annual_savings(self):
        """10% of 12 months at 9.99."""
        assert PlanService.calculate_annual_savings(9.99) == Decimal('11.99')
        assert PlanService.calculate_annual_savings(0) == Decimal('0.00')

    @pytest.mark.parametrize('price, expected', [
        (9.99, '9,99\xa0€'),
        (0, '0,00\xa0€'),
        (1234.5, '1\u202f234,50\xa0€'),
        (Decimal('29.99'), '29,99\xa0€'),
    ])
    def test_format_price(self, price, expected):
        assert PlanService.format_price(price) == expected

    def test_format_price_other_currency(self):
        assert PlanService.format_price(5, 'USD') == '5,00\xa0$'
