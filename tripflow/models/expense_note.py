"""
Expense note model (note de frais), attached to a trip.
"""
import enum

from tripflow.extensions import db
from tripflow.utils.timezone import utcnow


class ExpenseCategory(enum.Enum):
    """Expense categories."""
    TRANSPORT_LONG = 'transport_long'
    TRANSPORT_SHORT = 'transport_short'
    ACCOMMODATION = 'accommodation'
    MEALS = 'meals'
    OTHER = 'other'


CATEGORY_LABELS = {
    ExpenseCategory.TRANSPORT_LONG: 'Transport longue distance',
    ExpenseCategory.TRANSPORT_SHORT: 'Transport courte distance',
    ExpenseCategory.ACCOMMODATION: 'Hébergement',
    ExpenseCategory.MEALS: 'Repas',
    ExpenseCategory.OTHER: 'Autre',
}


class ExpenseNote(db.Model):
    """Single justified cost item."""

    __tablename__ = 'expense_notes'

    id = db.Column(db.Integer, primary_key=True)
    trip_id = db.Column(
        db.Integer,
        db.ForeignKey('trips.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    user_id = db.Column(db.String(128), db.ForeignKey('users.uid'), nullable=False, index=True)

    category = db.Column(db.Enum(ExpenseCategory), nullable=False)
    subcategory = db.Column(db.String(100), default='')
    description = db.Column(db.String(500), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    date = db.Column(db.Date, nullable=False)

    # Optional receipt
    receipt_url = db.Column(db.String(1000))
    receipt_name = db.Column(db.String(255))

    # Paid through the Véloce card / personal expense flags
    is_veloce = db.Column(db.Boolean, nullable=False, default=False)
    is_personal = db.Column(db.Boolean, nullable=False, default=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    trip = db.relationship('Trip', back_populates='notes')

    def __repr__(self):
        return f'<ExpenseNote {self.description} {self.amount}>'

    @property
    def category_label(self):
        return CATEGORY_LABELS.get(self.category, self.category.value)

    @property
    def has_receipt(self):
        return bool(self.receipt_url)
