"""
User profile model.
Identity comes from the external auth provider (uid); this table keeps the
profile fields used on trips and the one-to-one subscription.
"""
from tripflow.extensions import db
from tripflow.services.plans import PlanType
from tripflow.utils.timezone import utcnow


class UserProfile(db.Model):
    """Collaborator profile."""

    __tablename__ = 'users'

    uid = db.Column(db.String(128), primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(200))
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    contract_number = db.Column(db.String(100))

    # Timestamps
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Legacy rows may have no subscription
    subscription = db.relationship(
        'Subscription',
        back_populates='user',
        uselist=False,
        cascade='all, delete-orphan',
    )
    trips = db.relationship(
        'Trip',
        back_populates='user',
        cascade='all, delete-orphan',
    )

    def __repr__(self):
        return f'<UserProfile {self.email}>'

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'.strip()

    @property
    def current_plan(self):
        """Current plan id ('free' when no subscription exists yet)."""
        if self.subscription:
            return self.subscription.plan_id.value
        return PlanType.FREE.value

    def to_dict(self):
        return {
            'uid': self.uid,
            'email': self.email,
            'display_name': self.display_name or self.full_name,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'contract_number': self.contract_number,
            'current_plan': self.current_plan,
            'subscription': self.subscription.to_dict() if self.subscription else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
