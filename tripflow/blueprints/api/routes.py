"""
API v1 Routes: plans, users and usage, trips, expense notes, email reports.
"""
from flask import current_app, request

from tripflow.blueprints.api import api_bp
from tripflow.blueprints.api.helpers import api_error, api_success
from tripflow.blueprints.api.schemas import (
    ExpenseNoteCreateSchema, ExpenseNoteSchema, PlanSchema, RecipientSchema,
    SendEmailSchema, SubscriptionSchema, TrialRequestSchema, TripCreateSchema,
    TripSchema, TripSummarySchema, UsageStatsSchema, UserCreateSchema, UserSchema,
)
from tripflow.extensions import limiter
from tripflow.services.errors import EmailDeliveryError
from tripflow.services.plan_service import PlanService
from tripflow.services.subscription_service import SubscriptionService
from tripflow.services.trip_service import TripService
from tripflow.utils.email import send_trip_report


def _json_body():
    return request.get_json(silent=True) or {}


# ── Plans ───────────────────────────────────────────────────

@api_bp.route('/plans', methods=['GET'])
def api_list_plans():
    """Plan catalog in display order."""
    return api_success(PlanSchema(many=True).dump(PlanService.get_available_plans()))


# ── Users & usage ───────────────────────────────────────────

@api_bp.route('/users', methods=['POST'])
@limiter.limit('20 per hour')
def api_create_user():
    """Register a profile on the free plan."""
    data = UserCreateSchema().load(_json_body())
    user = SubscriptionService.create_user(**data)
    return api_success(UserSchema().dump(user), 201)


@api_bp.route('/users/<uid>', methods=['GET'])
def api_get_user(uid):
    user = SubscriptionService.get_user(uid)
    return api_success(UserSchema().dump(user))


@api_bp.route('/users/<uid>/usage', methods=['GET'])
def api_get_usage(uid):
    """Usage statistics plus the messages shown next to them.

    A profile without subscription is reported on the default free plan;
    nothing is written.
    """
    user = SubscriptionService.get_user(uid)
    stats = PlanService.get_user_usage_stats(user)

    data = UsageStatsSchema().dump(stats)
    data['limitation_message'] = PlanService.get_limitation_message(user)
    data['upgrade_message'] = PlanService.get_upgrade_message(user)
    data['is_eligible_for_trial'] = PlanService.is_eligible_for_trial(user)
    return api_success(data)


@api_bp.route('/users/<uid>/trial', methods=['POST'])
def api_start_trial(uid):
    """Start a 14-day trial. 409 when the account is not eligible."""
    user = SubscriptionService.get_user(uid)
    data = TrialRequestSchema().load(_json_body())
    subscription = SubscriptionService.start_trial(user, data['plan_id'])
    return api_success(SubscriptionSchema().dump(subscription))


@api_bp.route('/users/<uid>/downgrade', methods=['POST'])
def api_downgrade(uid):
    user = SubscriptionService.get_user(uid)
    subscription = SubscriptionService.downgrade_to_free(user)
    return api_success(SubscriptionSchema().dump(subscription))


# ── Trips ───────────────────────────────────────────────────

@api_bp.route('/users/<uid>/trips', methods=['GET'])
def api_list_trips(uid):
    """User's trips, most recently updated first."""
    user = SubscriptionService.get_user(uid)
    trips = TripService.get_user_trips(user)
    return api_success(TripSchema(many=True).dump(trips))


@api_bp.route('/users/<uid>/trips', methods=['POST'])
def api_create_trip(uid):
    """Create a trip. 403 plan_limit_exceeded when the quota is used up."""
    user = SubscriptionService.get_user(uid)
    data = TripCreateSchema().load(_json_body())
    trip = TripService.create_trip(user, data)
    return api_success(TripSchema().dump(trip), 201)


@api_bp.route('/trips/<int:trip_id>', methods=['GET'])
def api_get_trip(trip_id):
    """Trip with notes and totals."""
    trip = TripService.get_trip(trip_id)
    return api_success(TripSummarySchema().dump(TripService.get_trip_summary(trip)))


@api_bp.route('/trips/<int:trip_id>', methods=['PATCH'])
def api_update_trip(trip_id):
    trip = TripService.get_trip(trip_id)
    updates = TripCreateSchema(partial=True).load(_json_body())
    trip = TripService.update_trip(trip, updates)
    return api_success(TripSchema().dump(trip))


@api_bp.route('/trips/<int:trip_id>', methods=['DELETE'])
def api_delete_trip(trip_id):
    """Delete a trip. Usage is cumulative, so trips_used does not go down."""
    trip = TripService.get_trip(trip_id)
    TripService.delete_trip(trip)
    return api_success({'deleted': trip_id})


@api_bp.route('/trips/<int:trip_id>/submit', methods=['POST'])
def api_submit_trip(trip_id):
    trip = TripService.submit_trip(TripService.get_trip(trip_id))
    return api_success(TripSchema().dump(trip))


@api_bp.route('/trips/<int:trip_id>/paid', methods=['POST'])
def api_mark_trip_paid(trip_id):
    trip = TripService.mark_as_paid(TripService.get_trip(trip_id))
    return api_success(TripSchema().dump(trip))


@api_bp.route('/trips/<int:trip_id>/email', methods=['POST'])
@limiter.limit('20 per hour')
def api_email_trip(trip_id):
    """Email the report of a stored trip."""
    trip = TripService.get_trip(trip_id)
    data = RecipientSchema().load(_json_body())
    payload = TripService.build_report_payload(trip)
    result = send_trip_report(payload['trip'], payload['notes'], data['recipient_email'])
    return api_success(result)


# ── Expense notes ───────────────────────────────────────────

@api_bp.route('/trips/<int:trip_id>/notes', methods=['GET'])
def api_list_notes(trip_id):
    trip = TripService.get_trip(trip_id)
    return api_success(ExpenseNoteSchema(many=True).dump(TripService.get_trip_notes(trip)))


@api_bp.route('/trips/<int:trip_id>/notes', methods=['POST'])
def api_create_note(trip_id):
    trip = TripService.get_trip(trip_id)
    data = ExpenseNoteCreateSchema().load(_json_body())
    note = TripService.add_expense_note(trip, data)
    return api_success(ExpenseNoteSchema().dump(note), 201)


@api_bp.route('/notes/<int:note_id>', methods=['PATCH'])
def api_update_note(note_id):
    note = TripService.get_note(note_id)
    updates = ExpenseNoteCreateSchema(partial=True).load(_json_body())
    note = TripService.update_expense_note(note, updates)
    return api_success(ExpenseNoteSchema().dump(note))


@api_bp.route('/notes/<int:note_id>', methods=['DELETE'])
def api_delete_note(note_id):
    note = TripService.get_note(note_id)
    TripService.delete_expense_note(note)
    return api_success({'deleted': note_id})


# ── Email report ────────────────────────────────────────────

@api_bp.route('/send-email', methods=['POST'])
@limiter.limit('20 per hour')
def api_send_email():
    """Send an expense report built by the client.

    Returns the legacy flat body: {success, emailId, receiptsCount} or
    {success: false, error, details} with a 500.
    """
    data = SendEmailSchema().load(_json_body())
    trip = data['trip_data']['trip']
    try:
        result = send_trip_report(trip, data['expense_notes'], data['recipient_email'])
    except EmailDeliveryError as e:
        current_app.logger.error(f'Report email failed for {trip["name"]}: {e}')
        return {
            'success': False,
            'error': "Erreur lors de l'envoi de l'email",
            'details': str(e),
        }, 500
    except Exception as e:
        current_app.logger.error(f'Report email crashed for {trip["name"]}: {e}', exc_info=True)
        return {
            'success': False,
            'error': 'Erreur interne du serveur',
            'details': str(e),
        }, 500
    return result, 200
