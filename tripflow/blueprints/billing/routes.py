"""
Billing routes - Stripe checkout creation and payment webhook.
One endpoint, dispatched on the request's action.
"""
import stripe
from flask import current_app, jsonify, request
from marshmallow import ValidationError

from tripflow.blueprints.api.helpers import api_error
from tripflow.blueprints.api.schemas import PAYMENT_ACTIONS
from tripflow.blueprints.billing import billing_bp
from tripflow.extensions import db, limiter
from tripflow.services.subscription_service import SubscriptionService


def _payment_payload():
    """JSON object body, or a form-encoded body as sent by payment callbacks."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = request.form.to_dict()
    if not payload.get('action') and request.args.get('webhook'):
        payload = dict(payload, action='webhook')
    return payload


@billing_bp.route('/payment', methods=['GET'])
def payment_probe():
    """Readiness probe used when registering the webhook URL."""
    if request.args.get('webhook'):
        return jsonify({'status': 'webhook endpoint ready'}), 200
    return api_error('unsupported_action', 'Action non supportée', 400)


@billing_bp.route('/payment', methods=['POST'])
@limiter.limit('100 per minute')
def payment():
    """Dispatch create-checkout and webhook actions."""
    try:
        payload = _payment_payload()
    except Exception as e:
        if not request.args.get('webhook'):
            raise
        current_app.logger.warning(f'Unreadable webhook body: {e}')
        return jsonify({'received': False, 'error': 'Payment ID manquant'}), 200
    action = payload.get('action')
    schema_class = PAYMENT_ACTIONS.get(action)
    if schema_class is None:
        return api_error('unsupported_action', 'Action non supportée', 400)

    if action == 'webhook':
        return _webhook(schema_class, payload)
    return _create_checkout(schema_class, payload)


def _create_checkout(schema_class, payload):
    data = schema_class().load(payload)
    try:
        result = SubscriptionService.create_checkout(
            plan_id=data['plan_id'],
            user_email=data['user_email'],
            user_id=data['user_id'],
            return_url=data['return_url'],
            webhook_url=data['webhook_url'],
        )
    except stripe.StripeError as e:
        current_app.logger.error(f'Checkout session creation failed: {e}')
        return api_error(
            'payment_provider_error',
            'Erreur lors de la création du paiement',
            502,
            details=str(e),
        )
    return jsonify(result), 200


def _webhook(schema_class, payload):
    """Handle a payment notification.

    Always answers 200 so the provider does not retry on our errors.
    """
    try:
        data = schema_class().load(payload)
    except ValidationError as e:
        current_app.logger.warning(f'Webhook without payment id: {e.messages}')
        return jsonify({'received': False, 'error': 'Payment ID manquant'}), 200

    try:
        result = SubscriptionService.handle_payment_webhook(data['id'])
        current_app.logger.info(
            f'Webhook processed: {result["payment_id"]} {result["status"]} (handled={result["handled"]})'
        )
        return jsonify({'received': True, 'status': result['status']}), 200
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Webhook processing error for {data["id"]}: {e}')
        return jsonify({'received': True, 'error': str(e)}), 200
