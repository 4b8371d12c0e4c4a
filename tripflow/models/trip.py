"""
Trip model with state machine for status transitions.
A trip groups a collaborator's travel dates, destination and expense notes.
"""
import enum

from tripflow.extensions import db
from tripflow.utils.timezone import utcnow


class TripStatus(enum.Enum):
    """Trip status enumeration."""
    DRAFT = 'draft'
    SUBMITTED = 'submitted'
    PAID = 'paid'


# Valid status transitions (state machine)
TRIP_STATUS_TRANSITIONS = {
    TripStatus.DRAFT: [TripStatus.SUBMITTED, TripStatus.PAID],
    TripStatus.SUBMITTED: [TripStatus.PAID, TripStatus.DRAFT],
    TripStatus.PAID: [],  # Terminal state
}


class Trip(db.Model):
    """Business trip (déplacement)."""

    __tablename__ = 'trips'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(128),
        db.ForeignKey('users.uid', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    destination = db.Column(db.String(200), nullable=False)
    purpose = db.Column(db.String(200), nullable=False)
    departure_date = db.Column(db.Date, nullable=False)
    return_date = db.Column(db.Date, nullable=False)

    # Copied from the profile at creation time
    contract_number = db.Column(db.String(100))
    collaborator_first_name = db.Column(db.String(100))
    collaborator_last_name = db.Column(db.String(100))

    remarks = db.Column(db.Text)
    status = db.Column(
        db.Enum(TripStatus),
        default=TripStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # Timestamps
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = db.relationship('UserProfile', back_populates='trips')
    notes = db.relationship(
        'ExpenseNote',
        back_populates='trip',
        cascade='all, delete-orphan',
        order_by='ExpenseNote.created_at',
    )

    def __repr__(self):
        return f'<Trip {self.name}>'

    @property
    def collaborator_name(self):
        return f'{self.collaborator_first_name or ""} {self.collaborator_last_name or ""}'.strip()

    def can_transition_to(self, new_status):
        """Check whether the state machine allows moving to new_status."""
        return new_status in TRIP_STATUS_TRANSITIONS.get(self.status, [])
