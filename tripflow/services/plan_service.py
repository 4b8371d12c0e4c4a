"""
Subscription and usage engine for TripFlow Pro.

Pure decisions over subscription values: trip-creation gating, usage
statistics, trial eligibility and the constructors used for plan
transitions. Nothing here touches the database; callers load the profile,
pass it in and persist whatever comes back (see SubscriptionService).
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from tripflow.services.errors import InvalidUserProfile, PlanNotFound
from tripflow.services.plans import (
    AVAILABLE_PLANS,
    UNLIMITED,
    Plan,
    PlanType,
    SubscriptionStatus,
    get_plan_by_id,
)
from tripflow.utils.timezone import add_months, parse_datetime, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 365
TRIAL_PERIOD_DAYS = 14
TRIAL_ELIGIBILITY_DAYS = 7
ANNUAL_DISCOUNT = Decimal('0.10')

CURRENCY_SYMBOLS = {'EUR': '€', 'USD': '$', 'GBP': '£', 'CHF': 'CHF'}

SUBSCRIPTION_FIELDS = (
    'plan_id', 'status', 'current_period_start', 'current_period_end', 'trips_used',
    'provider_customer_id', 'provider_subscription_id', 'created_at', 'updated_at',
)


@dataclass
class UserSubscription:
    """Subscription value handled by the engine."""
    plan_id: PlanType
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    trips_used: int = 0
    provider_customer_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'plan_id': self.plan_id.value,
            'status': self.status.value,
            'current_period_start': _iso(self.current_period_start),
            'current_period_end': _iso(self.current_period_end),
            'trips_used': self.trips_used,
            'provider_customer_id': self.provider_customer_id,
            'provider_subscription_id': self.provider_subscription_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


@dataclass(frozen=True)
class UsageStats:
    """Read-only usage view. Computed on demand, never persisted."""
    user_id: str
    plan_type: PlanType
    current_trips_count: int
    max_trips_allowed: int
    remaining_trips: int
    is_limit_reached: bool

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'plan_type': self.plan_type.value,
            'current_trips_count': self.current_trips_count,
            'max_trips_allowed': self.max_trips_allowed,
            'remaining_trips': self.remaining_trips,
            'is_limit_reached': self.is_limit_reached,
        }


def _iso(value):
    return value.isoformat() if value else None


def _profile_field(profile, name, alias=None):
    """Read a field from a profile given as a mapping or an object."""
    if isinstance(profile, dict):
        if name in profile:
            return profile[name]
        return profile.get(alias) if alias else None
    value = getattr(profile, name, None)
    if value is None and alias:
        value = getattr(profile, alias, None)
    return value


def _pick(data, *keys):
    for key in keys:
        if key in data:
            return data[key]
    return None


def _subscription_from_dict(data, now):
    """Build a UserSubscription from a stored document (camelCase or snake_case).

    Raises:
        ValueError, TypeError: If required fields are missing or invalid
    """
    plan_id = PlanType(_pick(data, 'planId', 'plan_id'))

    trips_used = _pick(data, 'tripsUsed', 'trips_used')
    if isinstance(trips_used, bool) or not isinstance(trips_used, int) or trips_used < 0:
        raise ValueError(f'Invalid tripsUsed: {trips_used!r}')

    status = _pick(data, 'status')
    status = SubscriptionStatus(status) if status is not None else SubscriptionStatus.ACTIVE

    period_start = parse_datetime(_pick(data, 'currentPeriodStart', 'current_period_start')) or now
    period_end = (parse_datetime(_pick(data, 'currentPeriodEnd', 'current_period_end'))
                  or period_start + timedelta(days=DEFAULT_PERIOD_DAYS))

    return UserSubscription(
        plan_id=plan_id,
        status=status,
        current_period_start=period_start,
        current_period_end=period_end,
        trips_used=trips_used,
        provider_customer_id=_pick(data, 'mollieCustomerId', 'providerCustomerId', 'provider_customer_id'),
        provider_subscription_id=_pick(
            data, 'mollieSubscriptionId', 'providerSubscriptionId', 'provider_subscription_id'
        ),
        created_at=parse_datetime(_pick(data, 'createdAt', 'created_at')) or now,
        updated_at=parse_datetime(_pick(data, 'updatedAt', 'updated_at')) or now,
    )


class PlanService:
    """Plan limits, usage statistics and subscription transitions."""

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    @staticmethod
    def get_plan(plan_id, catalog: Optional[Dict[PlanType, Plan]] = None) -> Optional[Plan]:
        """Get a plan by id (None when unknown)."""
        return get_plan_by_id(plan_id, catalog)

    @staticmethod
    def get_available_plans() -> List[Plan]:
        """All plans in display order."""
        return list(AVAILABLE_PLANS)

    @staticmethod
    def is_premium_plan(plan_id) -> bool:
        """Check if a plan is one of the paid tiers."""
        plan = get_plan_by_id(plan_id)
        return plan is not None and plan.id != PlanType.FREE

    # ------------------------------------------------------------------
    # Usage gate
    # ------------------------------------------------------------------

    @staticmethod
    def can_create_trip(subscription, catalog: Optional[Dict[PlanType, Plan]] = None) -> bool:
        """Decide whether another trip may be created.

        Unknown plans fail closed. Unlimited plans pass whatever the
        subscription status (a canceled or past_due unlimited plan still
        passes). Limited plans require trips_used < max_trips.

        Args:
            subscription: Object exposing plan_id and trips_used
            catalog: Plan mapping to resolve plan_id against

        Returns:
            bool: True if a trip may be created
        """
        plan = get_plan_by_id(subscription.plan_id, catalog)
        if plan is None:
            return False
        if plan.max_trips == UNLIMITED:
            return True
        return subscription.trips_used < plan.max_trips

    @staticmethod
    def get_remaining_trips(subscription, catalog: Optional[Dict[PlanType, Plan]] = None) -> int:
        """Trips left on the current plan: -1 when unlimited, never negative otherwise."""
        plan = get_plan_by_id(subscription.plan_id, catalog)
        if plan is None:
            return 0
        if plan.max_trips == UNLIMITED:
            return UNLIMITED
        return max(0, plan.max_trips - subscription.trips_used)

    @staticmethod
    def can_user_create_trip(profile, catalog: Optional[Dict[PlanType, Plan]] = None) -> bool:
        """Gate check for a whole profile (migrates a missing subscription on read)."""
        subscription = PlanService.resolve_subscription(_profile_field(profile, 'subscription'))
        return PlanService.can_create_trip(subscription, catalog)

    # ------------------------------------------------------------------
    # Usage statistics
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_subscription(raw, now: Optional[datetime] = None) -> UserSubscription:
        """Turn whatever a profile holds into a UserSubscription.

        Legacy profiles may have no subscription at all, or a partial
        document. Those get a default free subscription instead of an
        error so that display code keeps working. Nothing is persisted.
        """
        if isinstance(raw, UserSubscription):
            return raw

        to_value = getattr(raw, 'to_value', None)
        if callable(to_value):
            return to_value()

        now = now or utcnow()
        if raw is None:
            logger.warning('Profile without subscription, using default free plan')
            return PlanService.create_default_subscription(now)

        if not isinstance(raw, dict) and hasattr(raw, 'plan_id') and hasattr(raw, 'trips_used'):
            raw = {name: getattr(raw, name, None) for name in SUBSCRIPTION_FIELDS}

        if isinstance(raw, dict):
            try:
                return _subscription_from_dict(raw, now)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f'Malformed subscription, using default free plan: {e}')
                return PlanService.create_default_subscription(now)

        logger.warning(f'Unsupported subscription type {type(raw).__name__}, using default free plan')
        return PlanService.create_default_subscription(now)

    @staticmethod
    def get_user_usage_stats(profile, catalog: Optional[Dict[PlanType, Plan]] = None,
                             now: Optional[datetime] = None) -> UsageStats:
        """Assemble the usage view for a profile.

        Args:
            profile: UserProfile model or mapping with 'uid' and 'subscription'
            catalog: Plan mapping (defaults to PLANS)
            now: Reference time for a synthesized default subscription

        Returns:
            UsageStats

        Raises:
            InvalidUserProfile: If the profile has no uid
        """
        user_id = _profile_field(profile, 'uid')
        if not user_id:
            raise InvalidUserProfile('Profil utilisateur sans identifiant (uid)')

        subscription = PlanService.resolve_subscription(_profile_field(profile, 'subscription'), now)
        plan = get_plan_by_id(subscription.plan_id, catalog)

        return UsageStats(
            user_id=str(user_id),
            plan_type=subscription.plan_id,
            current_trips_count=subscription.trips_used,
            max_trips_allowed=plan.max_trips if plan else 0,
            remaining_trips=PlanService.get_remaining_trips(subscription, catalog),
            is_limit_reached=not PlanService.can_create_trip(subscription, catalog),
        )

    # ------------------------------------------------------------------
    # Trial eligibility
    # ------------------------------------------------------------------

    @staticmethod
    def is_eligible_for_trial(profile, now: Optional[datetime] = None) -> bool:
        """Eligible when the account is less than 7 days old and on the free plan.

        There is no persisted "trial already used" flag.

        Raises:
            InvalidUserProfile: If the profile has no usable creation date
        """
        try:
            created_at = parse_datetime(_profile_field(profile, 'created_at', alias='createdAt'))
        except ValueError as e:
            raise InvalidUserProfile(f'Date de création invalide : {e}')
        if created_at is None:
            raise InvalidUserProfile('Profil utilisateur sans date de création')

        now = now or utcnow()
        subscription = PlanService.resolve_subscription(_profile_field(profile, 'subscription'), now)

        is_new_account = (now - created_at) < timedelta(days=TRIAL_ELIGIBILITY_DAYS)
        return is_new_account and subscription.plan_id == PlanType.FREE

    # ------------------------------------------------------------------
    # Transition factory
    # ------------------------------------------------------------------

    @staticmethod
    def create_default_subscription(now: Optional[datetime] = None) -> UserSubscription:
        """Free plan, active, no trips used, one-year period."""
        now = now or utcnow()
        return UserSubscription(
            plan_id=PlanType.FREE,
            status=SubscriptionStatus.ACTIVE,
            current_period_start=now,
            current_period_end=now + timedelta(days=DEFAULT_PERIOD_DAYS),
            trips_used=0,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def create_trial_subscription(plan_id, now: Optional[datetime] = None) -> UserSubscription:
        """14-day trial on a plan. Eligibility is the caller's job."""
        plan = get_plan_by_id(plan_id)
        if plan is None:
            raise PlanNotFound(plan_id)

        now = now or utcnow()
        return UserSubscription(
            plan_id=plan.id,
            status=SubscriptionStatus.TRIALING,
            current_period_start=now,
            current_period_end=now + timedelta(days=TRIAL_PERIOD_DAYS),
            trips_used=0,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def create_paid_subscription(plan_id, provider_customer_id: str, provider_subscription_id: str,
                                 now: Optional[datetime] = None) -> UserSubscription:
        """Active paid subscription for one calendar month, counter reset to 0."""
        plan = get_plan_by_id(plan_id)
        if plan is None:
            raise PlanNotFound(plan_id)

        now = now or utcnow()
        return UserSubscription(
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE,
            current_period_start=now,
            current_period_end=add_months(now, 1),
            trips_used=0,
            provider_customer_id=provider_customer_id,
            provider_subscription_id=provider_subscription_id,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def create_free_subscription(current: Optional[UserSubscription] = None,
                                 now: Optional[datetime] = None) -> UserSubscription:
        """Downgrade to the free plan.

        Only plan_id and status change: the cumulative trips_used counter
        is kept, so a downgraded user over the free quota is blocked at once.
        """
        now = now or utcnow()
        if current is None:
            return PlanService.create_default_subscription(now)
        return replace(
            current,
            plan_id=PlanType.FREE,
            status=SubscriptionStatus.ACTIVE,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Presentation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def get_limitation_message(profile) -> Optional[str]:
        """Message shown when the user cannot create a trip (None otherwise)."""
        subscription = PlanService.resolve_subscription(_profile_field(profile, 'subscription'))
        if PlanService.can_create_trip(subscription):
            return None

        plan = get_plan_by_id(subscription.plan_id)
        if plan is None:
            return 'Plan non reconnu'
        if plan.max_trips > 0:
            return f'Limite atteinte: {plan.max_trips} déplacements maximum pour le plan {plan.name}'
        return 'Limite atteinte pour votre plan actuel'

    @staticmethod
    def get_upgrade_message(profile) -> str:
        subscription = PlanService.resolve_subscription(_profile_field(profile, 'subscription'))
        if subscription.plan_id == PlanType.FREE:
            return 'Passez au plan Pro Individuel pour des déplacements illimités !'
        return 'Découvrez nos plans Pro pour plus de fonctionnalités !'

    @staticmethod
    def calculate_annual_savings(monthly_price) -> Decimal:
        """Yearly saving with the 10% annual discount, rounded to cents."""
        yearly = Decimal(str(monthly_price)) * 12
        savings = yearly - yearly * (1 - ANNUAL_DISCOUNT)
        return savings.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    @staticmethod
    def format_price(price, currency: str = 'EUR') -> str:
        """Format a price the French way, e.g. 1 234,50 €."""
        amount = Decimal(str(price)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        integer_part, decimal_part = f'{abs(amount):,.2f}'.split('.')
        integer_part = integer_part.replace(',', '\u202f')
        sign = '-' if amount < 0 else ''
        symbol = CURRENCY_SYMBOLS.get(currency, currency)
        return f'{sign}{integer_part},{decimal_part}\xa0{symbol}'
