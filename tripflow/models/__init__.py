"""
SQLAlchemy models for TripFlow.
All models are imported here for easy access.
"""
from tripflow.models.user import UserProfile
from tripflow.models.subscription import Subscription
from tripflow.models.trip import Trip, TripStatus, TRIP_STATUS_TRANSITIONS
from tripflow.models.expense_note import ExpenseNote, ExpenseCategory, CATEGORY_LABELS

__all__ = [
    'UserProfile',
    'Subscription',
    'Trip',
    'TripStatus',
    'TRIP_STATUS_TRANSITIONS',
    'ExpenseNote',
    'ExpenseCategory',
    'CATEGORY_LABELS',
]
