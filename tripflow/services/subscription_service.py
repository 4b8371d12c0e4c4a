"""
Subscription service for TripFlow Pro billing.
Persists plan transitions built by PlanService and handles Stripe checkout.
"""
from decimal import Decimal
from typing import Optional

import stripe
from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from tripflow.extensions import db
from tripflow.models.subscription import Subscription
from tripflow.models.user import UserProfile
from tripflow.services.errors import (
    PlanNotFound,
    ResourceNotFound,
    TrialNotAllowed,
    UserAlreadyExists,
)
from tripflow.services.plan_service import PlanService
from tripflow.services.plans import PlanType, get_plan_by_id
from tripflow.utils.timezone import utcnow


class SubscriptionService:
    """Service for managing user subscriptions and Stripe billing."""

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @staticmethod
    def create_user(uid: str, email: str, first_name: str, last_name: str,
                    contract_number: Optional[str] = None,
                    display_name: Optional[str] = None) -> UserProfile:
        """Register a profile with the default free subscription.

        Raises:
            UserAlreadyExists: If the uid or email is taken
        """
        existing = UserProfile.query.filter(
            (UserProfile.uid == uid) | (UserProfile.email == email)
        ).first()
        if existing:
            raise UserAlreadyExists(f'Utilisateur déjà enregistré : {email}')

        user = UserProfile(
            uid=uid,
            email=email,
            first_name=first_name,
            last_name=last_name,
            contract_number=contract_number,
            display_name=display_name or f'{first_name} {last_name}'.strip(),
        )
        subscription = Subscription(user_id=uid)
        subscription.apply(PlanService.create_default_subscription())
        user.subscription = subscription

        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.warning(f'Concurrent signup for {uid} <{email}>')
            raise UserAlreadyExists(f'Utilisateur déjà enregistré : {email}')
        current_app.logger.info(f'User {uid} registered on free plan')
        return user

    @staticmethod
    def get_user(uid: str) -> UserProfile:
        """Load a profile or raise ResourceNotFound."""
        user = db.session.get(UserProfile, uid)
        if user is None:
            raise ResourceNotFound('Utilisateur', uid)
        return user

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def ensure_subscription_exists(user: UserProfile) -> Subscription:
        """Ensure user has a Subscription record. Creates FREE if none exists.

        This is the write side of the migrate-on-read behavior: legacy
        profiles get the same default the engine synthesizes.

        Args:
            user: Profile to check

        Returns:
            Existing or newly created Subscription
        """
        if user.subscription:
            return user.subscription

        subscription = Subscription(user_id=user.uid)
        subscription.apply(PlanService.create_default_subscription())
        user.subscription = subscription
        db.session.add(subscription)
        db.session.commit()
        current_app.logger.info(f'Default subscription created for user {user.uid}')
        return subscription

    @staticmethod
    def apply_subscription(user: UserProfile, value) -> Subscription:
        """Persist an engine UserSubscription on the user's record."""
        subscription = SubscriptionService.ensure_subscription_exists(user)
        subscription.apply(value)
        db.session.commit()
        return subscription

    @staticmethod
    def record_trip_created(user: UserProfile) -> int:
        """Increment the cumulative trip counter.

        Issued as a single UPDATE so concurrent increments are not lost.

        Returns:
            The new trips_used value
        """
        subscription = SubscriptionService.ensure_subscription_exists(user)
        db.session.execute(
            update(Subscription)
            .where(Subscription.id == subscription.id)
            .values(trips_used=Subscription.trips_used + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return subscription.trips_used

    @staticmethod
    def start_trial(user: UserProfile, plan_id, now=None) -> Subscription:
        """Start a 14-day trial on a paid plan.

        Raises:
            PlanNotFound: If plan_id is unknown
            TrialNotAllowed: If the plan is free or the user is not eligible
        """
        plan = get_plan_by_id(plan_id)
        if plan is None:
            raise PlanNotFound(plan_id)
        if plan.id == PlanType.FREE:
            raise TrialNotAllowed("L'essai gratuit ne concerne que les plans Pro")
        if not PlanService.is_eligible_for_trial(user, now):
            raise TrialNotAllowed("Ce compte n'est plus éligible à l'essai gratuit")

        subscription = SubscriptionService.apply_subscription(
            user, PlanService.create_trial_subscription(plan.id, now)
        )
        current_app.logger.info(f'Trial started for user {user.uid} on {plan.id.value}')
        return subscription

    @staticmethod
    def activate_paid(user: UserProfile, plan_id, customer_id: str,
                      subscription_id: Optional[str]) -> Subscription:
        """Activate a paid plan after a confirmed payment."""
        value = PlanService.create_paid_subscription(plan_id, customer_id, subscription_id)
        subscription = SubscriptionService.apply_subscription(user, value)
        current_app.logger.info(f'{value.plan_id.value} activated for user {user.uid}')
        return subscription

    @staticmethod
    def downgrade_to_free(user: UserProfile) -> Subscription:
        """Revert to the free plan, keeping the cumulative counter."""
        subscription = SubscriptionService.ensure_subscription_exists(user)
        value = PlanService.create_free_subscription(subscription.to_value())
        subscription.apply(value)
        db.session.commit()
        current_app.logger.info(f'User {user.uid} downgraded to free plan')
        return subscription

    # ------------------------------------------------------------------
    # Stripe checkout
    # ------------------------------------------------------------------

    @staticmethod
    def create_checkout(plan_id, user_email: str, user_id: str,
                        return_url: Optional[str] = None,
                        webhook_url: Optional[str] = None) -> dict:
        """Create a Stripe Checkout Session for a paid plan.

        Args:
            plan_id: Paid plan to subscribe to
            user_email: Customer email
            user_id: Profile uid, carried in metadata for the webhook
            return_url: Where the customer lands after paying
            webhook_url: Informational; Stripe endpoints are configured on the account

        Returns:
            Dict with checkoutUrl, paymentId and status

        Raises:
            PlanNotFound: If plan_id is unknown or free
        """
        plan = get_plan_by_id(plan_id)
        if plan is None or plan.price <= 0:
            raise PlanNotFound(plan_id)

        app_url = current_app.config['APP_URL']
        metadata = {
            'planId': plan.id.value,
            'userId': user_id,
            'userEmail': user_email,
            'subscriptionSetup': 'true',
        }
        if webhook_url:
            current_app.logger.debug(f'Checkout webhook requested at {webhook_url}')

        session = stripe.checkout.Session.create(
            mode='subscription',
            customer_email=user_email,
            line_items=[{
                'price_data': {
                    'currency': current_app.config['PAYMENT_CURRENCY'],
                    'unit_amount': int(Decimal(str(plan.price)) * 100),
                    'recurring': {'interval': 'month'},
                    'product_data': {'name': f'{plan.name} - Abonnement mensuel'},
                },
                'quantity': 1,
            }],
            success_url=return_url or f'{app_url}/payment/success',
            cancel_url=f'{app_url}/plans',
            metadata=metadata,
            subscription_data={'metadata': metadata},
        )

        current_app.logger.info(f'Checkout session {session.id} created for user {user_id}')
        return {
            'success': True,
            'checkoutUrl': session.url,
            'paymentId': session.id,
            'status': session.status,
        }

    @staticmethod
    def handle_payment_webhook(payment_id: str) -> dict:
        """Fetch a checkout session and apply its outcome.

        Args:
            payment_id: Checkout Session id sent to the webhook

        Returns:
            Dict with payment_id, status and whether the event was handled
        """
        session = stripe.checkout.Session.retrieve(payment_id)
        status = SubscriptionService._payment_status(session)
        result = {'payment_id': payment_id, 'status': status, 'handled': False}

        if status == 'paid':
            result['handled'] = SubscriptionService._handle_payment_success(session)
        elif status in ('failed', 'canceled', 'expired'):
            SubscriptionService._handle_payment_failure(session, status)
            result['handled'] = True
        else:
            current_app.logger.info(f'Payment {payment_id} still {status}')

        return result

    @staticmethod
    def _payment_status(session) -> str:
        if session.get('payment_status') == 'paid':
            return 'paid'
        if session.get('status') == 'expired':
            return 'expired'
        return session.get('status') or 'open'

    @staticmethod
    def _handle_payment_success(session) -> bool:
        """Apply a paid checkout to the user named in its metadata."""
        metadata = session.get('metadata') or {}
        user_id = metadata.get('userId')
        plan_id = metadata.get('planId')
        if not user_id or not plan_id:
            current_app.logger.warning(f'Paid checkout {session.get("id")} without user/plan metadata')
            return False

        user = db.session.get(UserProfile, user_id)
        if not user:
            current_app.logger.warning(f'Paid checkout for unknown user_id={user_id}')
            return False

        subscription_id = session.get('subscription')
        if (user.subscription
                and subscription_id
                and user.subscription.provider_subscription_id == subscription_id):
            current_app.logger.info(f'Checkout {session.get("id")} already applied')
            return True

        customer_id = session.get('customer')
        if not customer_id:
            customer = stripe.Customer.create(
                email=metadata.get('userEmail'),
                name=f'TripFlow User {user_id}',
                metadata={'userId': user_id, 'platform': 'tripflow-pro'},
            )
            customer_id = customer.id

        SubscriptionService.activate_paid(user, plan_id, customer_id, subscription_id)
        return True

    @staticmethod
    def _handle_payment_failure(session, status: str) -> None:
        metadata = session.get('metadata') or {}
        current_app.logger.warning(
            f'Payment {session.get("id")} {status} for user {metadata.get("userId")}'
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @staticmethod
    def backfill_missing_subscriptions(dry_run: bool = False) -> int:
        """Give every profile without a subscription the default free plan.

        Returns:
            Number of profiles fixed (or that would be fixed on a dry run)
        """
        users = UserProfile.query.filter(~UserProfile.subscription.has()).all()
        if dry_run:
            return len(users)
        for user in users:
            subscription = Subscription(user_id=user.uid)
            subscription.apply(PlanService.create_default_subscription())
            db.session.add(subscription)
        db.session.commit()
        return len(users)
