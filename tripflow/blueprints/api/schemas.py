"""
Marshmallow schemas for the API.
Dump schemas convert models to JSON-safe dictionaries; load schemas
validate request bodies at the boundary.
"""
from marshmallow import (
    EXCLUDE, Schema, ValidationError, fields, post_load, validate, validates_schema,
)

from tripflow.models.expense_note import ExpenseCategory
from tripflow.services.plans import PlanType


# ── Shared helpers ──────────────────────────────────────────

class BaseSchema(Schema):
    """Base schema with common config."""
    class Meta:
        ordered = True
        unknown = EXCLUDE


def _enum_value(value):
    return value.value if value is not None else None


# ── Plans & usage ───────────────────────────────────────────

class PlanSchema(BaseSchema):
    """Catalog entry."""
    id = fields.Method('get_id')
    name = fields.Str()
    price = fields.Float()
    max_trips = fields.Int()
    max_users = fields.Int()
    features = fields.List(fields.Str())
    is_unlimited = fields.Bool()

    def get_id(self, obj):
        return _enum_value(obj.id)


class SubscriptionSchema(BaseSchema):
    """Subscription representation."""
    plan_id = fields.Method('get_plan_id')
    plan_label = fields.Str()
    status = fields.Method('get_status')
    status_label = fields.Str()
    is_active = fields.Bool()
    trips_used = fields.Int()
    current_period_start = fields.DateTime(format='iso')
    current_period_end = fields.DateTime(format='iso')
    days_remaining = fields.Int(allow_none=True)
    provider_customer_id = fields.Str(allow_none=True)
    provider_subscription_id = fields.Str(allow_none=True)

    def get_plan_id(self, obj):
        return _enum_value(obj.plan_id)

    def get_status(self, obj):
        return _enum_value(obj.status)


class UsageStatsSchema(BaseSchema):
    """Usage view returned by PlanService.get_user_usage_stats."""
    user_id = fields.Str()
    plan_type = fields.Method('get_plan_type')
    current_trips_count = fields.Int()
    max_trips_allowed = fields.Int()
    remaining_trips = fields.Int()
    is_limit_reached = fields.Bool()

    def get_plan_type(self, obj):
        return _enum_value(obj.plan_type)


# ── Users ───────────────────────────────────────────────────

class UserSchema(BaseSchema):
    """Profile with its subscription."""
    uid = fields.Str()
    email = fields.Email()
    display_name = fields.Str()
    first_name = fields.Str()
    last_name = fields.Str()
    full_name = fields.Str(dump_only=True)
    contract_number = fields.Str(allow_none=True)
    current_plan = fields.Str(dump_only=True)
    subscription = fields.Nested(SubscriptionSchema, allow_none=True)
    created_at = fields.DateTime(format='iso')


class UserCreateSchema(BaseSchema):
    """Signup body."""
    uid = fields.Str(required=True, validate=validate.Length(min=1, max=128))
    email = fields.Email(required=True)
    first_name = fields.Str(required=True, data_key='firstName', validate=validate.Length(min=1, max=100))
    last_name = fields.Str(required=True, data_key='lastName', validate=validate.Length(min=1, max=100))
    contract_number = fields.Str(load_default=None, allow_none=True, data_key='contractNumber')
    display_name = fields.Str(load_default=None, allow_none=True, data_key='displayName')


class TrialRequestSchema(BaseSchema):
    plan_id = fields.Str(
        required=True,
        data_key='planId',
        validate=validate.OneOf([p.value for p in PlanType]),
    )


# ── Trips ───────────────────────────────────────────────────

class TripCreateSchema(BaseSchema):
    """Trip creation / update body."""
    name = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    destination = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    purpose = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    departure_date = fields.Date(required=True, data_key='departureDate')
    return_date = fields.Date(required=True, data_key='returnDate')
    remarks = fields.Str(allow_none=True)

    @validates_schema
    def validate_dates(self, data, **kwargs):
        departure = data.get('departure_date')
        return_date = data.get('return_date')
        if departure and return_date and return_date < departure:
            raise ValidationError(
                'La date de retour doit être postérieure au départ.', 'returnDate'
            )


class CollaboratorSchema(BaseSchema):
    first_name = fields.Str(data_key='firstName', load_default='')
    last_name = fields.Str(data_key='lastName', load_default='')


class TripSchema(BaseSchema):
    """Trip representation."""
    id = fields.Int(dump_only=True)
    user_id = fields.Str()
    name = fields.Str()
    destination = fields.Str()
    purpose = fields.Str()
    departure_date = fields.Date()
    return_date = fields.Date()
    contract_number = fields.Str(allow_none=True)
    collaborator = fields.Method('get_collaborator')
    remarks = fields.Str(allow_none=True)
    status = fields.Method('get_status')
    created_at = fields.DateTime(format='iso')
    updated_at = fields.DateTime(format='iso')

    def get_collaborator(self, obj):
        return {
            'first_name': obj.collaborator_first_name,
            'last_name': obj.collaborator_last_name,
        }

    def get_status(self, obj):
        return _enum_value(obj.status)


# ── Expense notes ───────────────────────────────────────────

class ExpenseNoteCreateSchema(BaseSchema):
    """Expense note creation / update body."""
    category = fields.Str(
        required=True,
        validate=validate.OneOf([c.value for c in ExpenseCategory]),
    )
    subcategory = fields.Str(load_default='')
    description = fields.Str(required=True, validate=validate.Length(min=1, max=500))
    amount = fields.Decimal(required=True, places=2, validate=validate.Range(min=0))
    date = fields.Date(required=True)
    receipt_url = fields.Url(allow_none=True, data_key='receiptUrl')
    receipt_name = fields.Str(allow_none=True, data_key='receiptName')
    is_veloce = fields.Bool(data_key='isVeloce')
    is_personal = fields.Bool(data_key='isPersonal')

    @post_load
    def to_category(self, data, **kwargs):
        if 'category' in data:
            data['category'] = ExpenseCategory(data['category'])
        return data


class ExpenseNoteSchema(BaseSchema):
    """Expense note representation."""
    id = fields.Int(dump_only=True)
    trip_id = fields.Int()
    category = fields.Method('get_category')
    category_label = fields.Str()
    subcategory = fields.Str()
    description = fields.Str()
    amount = fields.Float()
    date = fields.Date()
    receipt_url = fields.Str(allow_none=True)
    receipt_name = fields.Str(allow_none=True)
    is_veloce = fields.Bool()
    is_personal = fields.Bool()
    created_at = fields.DateTime(format='iso')

    def get_category(self, obj):
        return _enum_value(obj.category)


class TripSummarySchema(BaseSchema):
    """Trip with notes and totals."""
    trip = fields.Nested(TripSchema)
    notes = fields.List(fields.Nested(ExpenseNoteSchema))
    total_amount = fields.Float()
    total_veloce = fields.Float()
    total_personal = fields.Float()
    notes_count = fields.Int()


# ── Email report ────────────────────────────────────────────

class ReportTripSchema(BaseSchema):
    name = fields.Str(required=True)
    destination = fields.Str(required=True)
    purpose = fields.Str(load_default='')
    departure_date = fields.Str(required=True, data_key='departureDate')
    return_date = fields.Str(required=True, data_key='returnDate')
    contract_number = fields.Str(allow_none=True, load_default=None, data_key='contractNumber')
    collaborator = fields.Nested(CollaboratorSchema, load_default=dict)


class ReportTripDataSchema(BaseSchema):
    trip = fields.Nested(ReportTripSchema, required=True)


class ReportNoteSchema(BaseSchema):
    description = fields.Str(required=True)
    category = fields.Str(load_default='')
    amount = fields.Decimal(required=True)
    date = fields.Str(load_default=None, allow_none=True)
    receipt_url = fields.Str(allow_none=True, load_default=None, data_key='receiptUrl')
    is_veloce = fields.Bool(load_default=False, data_key='isVeloce')
    is_personal = fields.Bool(load_default=False, data_key='isPersonal')


class SendEmailSchema(BaseSchema):
    """Body of POST /send-email."""
    trip_data = fields.Nested(ReportTripDataSchema, required=True, data_key='tripData')
    expense_notes = fields.List(fields.Nested(ReportNoteSchema), load_default=list, data_key='expenseNotes')
    recipient_email = fields.Email(required=True, data_key='recipientEmail')


class RecipientSchema(BaseSchema):
    recipient_email = fields.Email(required=True, data_key='recipientEmail')


# ── Payment ─────────────────────────────────────────────────

class CheckoutRequestSchema(BaseSchema):
    """action=create-checkout"""
    action = fields.Str(validate=validate.Equal('create-checkout'))
    plan_id = fields.Str(required=True, data_key='planId')
    user_email = fields.Email(required=True, data_key='userEmail')
    user_id = fields.Str(required=True, data_key='userId')
    return_url = fields.Url(load_default=None, allow_none=True, require_tld=False, data_key='returnUrl')
    webhook_url = fields.Url(load_default=None, allow_none=True, require_tld=False, data_key='webhookUrl')


class PaymentWebhookSchema(BaseSchema):
    """action=webhook"""
    action = fields.Str(validate=validate.Equal('webhook'))
    id = fields.Str(required=True, validate=validate.Length(min=1))


PAYMENT_ACTIONS = {
    'create-checkout': CheckoutRequestSchema,
    'webhook': PaymentWebhookSchema,
}
