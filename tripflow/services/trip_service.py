"""
Trip service for TripFlow.
Trip and expense note CRUD, with the plan gate applied on creation.
"""
from decimal import Decimal
from typing import List

from flask import current_app

from tripflow.extensions import db
from tripflow.models.expense_note import ExpenseNote
from tripflow.models.trip import Trip, TripStatus
from tripflow.models.user import UserProfile
from tripflow.services.errors import (
    InvalidStatusTransition,
    InvalidTripDates,
    PlanLimitExceeded,
    ResourceNotFound,
)
from tripflow.services.plan_service import PlanService
from tripflow.services.subscription_service import SubscriptionService

TRIP_UPDATABLE_FIELDS = ('name', 'destination', 'purpose', 'departure_date', 'return_date', 'remarks')
NOTE_UPDATABLE_FIELDS = (
    'category', 'subcategory', 'description', 'amount', 'date',
    'receipt_url', 'receipt_name', 'is_veloce', 'is_personal',
)


def _note_value(note, name):
    if isinstance(note, dict):
        return note.get(name)
    return getattr(note, name, None)


def compute_totals(notes) -> dict:
    """Sum amounts over notes (models or mappings).

    Returns:
        Dict with total_amount, total_veloce, total_personal and notes_count
    """
    total = veloce = personal = Decimal('0')
    count = 0
    for note in notes:
        amount = Decimal(str(_note_value(note, 'amount') or 0))
        total += amount
        if _note_value(note, 'is_veloce'):
            veloce += amount
        if _note_value(note, 'is_personal'):
            personal += amount
        count += 1
    return {
        'total_amount': total,
        'total_veloce': veloce,
        'total_personal': personal,
        'notes_count': count,
    }


class TripService:
    """Service for trips and their expense notes."""

    @staticmethod
    def create_trip(user: UserProfile, data: dict) -> Trip:
        """Create a draft trip if the user's plan allows it.

        The counter is incremented only once the trip is stored.

        Args:
            user: Owner profile
            data: Validated trip fields

        Returns:
            The new Trip

        Raises:
            PlanLimitExceeded: If the plan quota is used up
        """
        subscription = SubscriptionService.ensure_subscription_exists(user)
        if not PlanService.can_create_trip(subscription):
            plan = subscription.plan
            raise PlanLimitExceeded(
                current=subscription.trips_used,
                maximum=plan.max_trips if plan else 0,
                remaining=PlanService.get_remaining_trips(subscription),
            )

        trip = Trip(
            user_id=user.uid,
            name=data['name'],
            destination=data['destination'],
            purpose=data['purpose'],
            departure_date=data['departure_date'],
            return_date=data['return_date'],
            remarks=data.get('remarks'),
            contract_number=user.contract_number,
            collaborator_first_name=user.first_name,
            collaborator_last_name=user.last_name,
            status=TripStatus.DRAFT,
        )
        db.session.add(trip)
        db.session.commit()

        trips_used = SubscriptionService.record_trip_created(user)
        current_app.logger.info(f'Trip {trip.id} created for user {user.uid} ({trips_used} used)')
        return trip

    @staticmethod
    def get_trip(trip_id: int) -> Trip:
        trip = db.session.get(Trip, trip_id)
        if trip is None:
            raise ResourceNotFound('Déplacement', trip_id)
        return trip

    @staticmethod
    def get_user_trips(user: UserProfile) -> List[Trip]:
        """User's trips, most recently updated first."""
        return (
            Trip.query.filter_by(user_id=user.uid)
            .order_by(Trip.updated_at.desc(), Trip.id.desc())
            .all()
        )

    @staticmethod
    def update_trip(trip: Trip, updates: dict) -> Trip:
        departure = updates.get('departure_date', trip.departure_date)
        return_date = updates.get('return_date', trip.return_date)
        if return_date < departure:
            raise InvalidTripDates(departure, return_date)
        for field_name in TRIP_UPDATABLE_FIELDS:
            if field_name in updates:
                setattr(trip, field_name, updates[field_name])
        db.session.commit()
        return trip

    @staticmethod
    def _transition(trip: Trip, new_status: TripStatus) -> Trip:
        if not trip.can_transition_to(new_status):
            raise InvalidStatusTransition(trip.status, new_status)
        trip.status = new_status
        db.session.commit()
        current_app.logger.info(f'Trip {trip.id} moved to {new_status.value}')
        return trip

    @staticmethod
    def submit_trip(trip: Trip) -> Trip:
        return TripService._transition(trip, TripStatus.SUBMITTED)

    @staticmethod
    def mark_as_paid(trip: Trip) -> Trip:
        return TripService._transition(trip, TripStatus.PAID)

    @staticmethod
    def delete_trip(trip: Trip) -> None:
        """Delete a trip and its notes. The usage counter is not decremented."""
        trip_id = trip.id
        db.session.delete(trip)
        db.session.commit()
        current_app.logger.info(f'Trip {trip_id} deleted')

    @staticmethod
    def get_trip_summary(trip: Trip) -> dict:
        """Trip with its notes and totals."""
        summary = {'trip': trip, 'notes': list(trip.notes)}
        summary.update(compute_totals(trip.notes))
        return summary

    # ------------------------------------------------------------------
    # Expense notes
    # ------------------------------------------------------------------

    @staticmethod
    def get_note(note_id: int) -> ExpenseNote:
        note = db.session.get(ExpenseNote, note_id)
        if note is None:
            raise ResourceNotFound('Note de frais', note_id)
        return note

    @staticmethod
    def get_trip_notes(trip: Trip) -> List[ExpenseNote]:
        return (
            ExpenseNote.query.filter_by(trip_id=trip.id)
            .order_by(ExpenseNote.created_at, ExpenseNote.id)
            .all()
        )

    @staticmethod
    def add_expense_note(trip: Trip, data: dict) -> ExpenseNote:
        note = ExpenseNote(
            trip_id=trip.id,
            user_id=trip.user_id,
            category=data['category'],
            subcategory=data.get('subcategory') or '',
            description=data['description'],
            amount=data['amount'],
            date=data['date'],
            receipt_url=data.get('receipt_url'),
            receipt_name=data.get('receipt_name'),
            is_veloce=data.get('is_veloce', False),
            is_personal=data.get('is_personal', False),
        )
        db.session.add(note)
        db.session.commit()
        return note

    @staticmethod
    def update_expense_note(note: ExpenseNote, updates: dict) -> ExpenseNote:
        for field_name in NOTE_UPDATABLE_FIELDS:
            if field_name in updates:
                setattr(note, field_name, updates[field_name])
        db.session.commit()
        return note

    @staticmethod
    def delete_expense_note(note: ExpenseNote) -> None:
        db.session.delete(note)
        db.session.commit()

    @staticmethod
    def build_report_payload(trip: Trip) -> dict:
        """Shape a stored trip like the send-email request body."""
        return {
            'trip': {
                'name': trip.name,
                'destination': trip.destination,
                'purpose': trip.purpose,
                'departure_date': trip.departure_date.isoformat(),
                'return_date': trip.return_date.isoformat(),
                'contract_number': trip.contract_number,
                'collaborator': {
                    'first_name': trip.collaborator_first_name or '',
                    'last_name': trip.collaborator_last_name or '',
                },
            },
            'notes': [
                {
                    'description': note.description,
                    'category': note.category.value,
                    'amount': note.amount,
                    'date': note.date.isoformat(),
                    'receipt_url': note.receipt_url,
                    'is_veloce': note.is_veloce,
                    'is_personal': note.is_personal,
                }
                for note in trip.notes
            ],
        }
