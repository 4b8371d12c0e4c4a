"""
Subscription model for TripFlow billing.
Persists the per-user plan, billing period and cumulative trip counter.
"""
from tripflow.extensions import db
from tripflow.services.plan_service import UserSubscription
from tripflow.services.plans import PlanType, SubscriptionStatus, get_plan_by_id
from tripflow.utils.timezone import utcnow


class Subscription(db.Model):
    """User subscription record (one per user)."""

    __tablename__ = 'subscriptions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(128),
        db.ForeignKey('users.uid', ondelete='CASCADE'),
        unique=True,
        nullable=False,
        index=True,
    )

    plan_id = db.Column(
        db.Enum(PlanType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PlanType.FREE,
    )
    status = db.Column(
        db.Enum(SubscriptionStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
    )

    # Cumulative, never decremented when trips are deleted
    trips_used = db.Column(db.Integer, nullable=False, default=0)

    # Payment provider references
    provider_customer_id = db.Column(db.String(255), nullable=True, index=True)
    provider_subscription_id = db.Column(db.String(255), nullable=True, index=True)

    # Billing / trial period
    current_period_start = db.Column(db.DateTime, nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, default=utcnow, onupdate=utcnow)

    # Relationships
    user = db.relationship('UserProfile', back_populates='subscription')

    __table_args__ = (
        db.CheckConstraint('trips_used >= 0', name='ck_subscriptions_trips_used_non_negative'),
    )

    def __repr__(self):
        return f'<Subscription user={self.user_id} plan={self.plan_id.value}>'

    @property
    def plan(self):
        """Catalog entry for this subscription (None if unknown)."""
        return get_plan_by_id(self.plan_id)

    @property
    def is_active(self):
        """Active, trialing and past due (grace period) count as active."""
        return self.status in (
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.TRIALING,
            SubscriptionStatus.PAST_DUE,
        )

    @property
    def days_remaining(self):
        """Days remaining in current period. None for free plan."""
        if self.plan_id == PlanType.FREE or not self.current_period_end:
            return None
        delta = self.current_period_end.date() - utcnow().date()
        return max(0, delta.days)

    @property
    def plan_label(self):
        """French label for plan."""
        plan = self.plan
        return plan.name if plan else str(self.plan_id.value)

    @property
    def status_label(self):
        """French label for status."""
        labels = {
            SubscriptionStatus.ACTIVE: 'Actif',
            SubscriptionStatus.TRIALING: 'Essai',
            SubscriptionStatus.PAST_DUE: 'Paiement en retard',
            SubscriptionStatus.CANCELED: 'Annulé',
        }
        return labels.get(self.status, str(self.status.value))

    def to_value(self):
        """Snapshot as an engine UserSubscription."""
        return UserSubscription(
            plan_id=self.plan_id,
            status=self.status,
            current_period_start=self.current_period_start,
            current_period_end=self.current_period_end,
            trips_used=self.trips_used or 0,
            provider_customer_id=self.provider_customer_id,
            provider_subscription_id=self.provider_subscription_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def apply(self, value):
        """Copy an engine UserSubscription onto this record (caller commits)."""
        self.plan_id = value.plan_id
        self.status = value.status
        self.current_period_start = value.current_period_start
        self.current_period_end = value.current_period_end
        self.trips_used = value.trips_used
        self.provider_customer_id = value.provider_customer_id
        self.provider_subscription_id = value.provider_subscription_id
        self.updated_at = value.updated_at or utcnow()
        return self

    def to_dict(self):
        """Serialize subscription to dict."""
        return {
            'plan_id': self.plan_id.value,
            'plan_label': self.plan_label,
            'status': self.status.value,
            'status_label': self.status_label,
            'is_active': self.is_active,
            'trips_used': self.trips_used,
            'current_period_start': self.current_period_start.isoformat() if self.current_period_start else None,
            'current_period_end': self.current_period_end.isoformat() if self.current_period_end else None,
            'days_remaining': self.days_remaining,
            'provider_customer_id': self.provider_customer_id,
            'provider_subscription_id': self.provider_subscription_id,
        }
