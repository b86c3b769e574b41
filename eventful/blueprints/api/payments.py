"""
API v1 payment endpoints: purchase initialization, confirmation and the gateway webhook.
"""
from flask import request, jsonify, current_app

from eventful.blueprints.api import api_bp
from eventful.blueprints.api.decorators import jwt_required, requires_role
from eventful.blueprints.api.helpers import api_success, load_json, paginate_query, pagination_args
from eventful.blueprints.api.schemas import (
    PaymentSchema, CreatorPaymentSchema, TicketSchema, InitializePaymentSchema,
)
from eventful.extensions import limiter
from eventful.models.user import UserRole
from eventful.services.payment_service import PaymentService
from eventful.utils import cache as read_cache

SIGNATURE_HEADER = 'x-paystack-signature'


def _result_payload(result):
    return {
        'outcome': result.outcome,
        'payment': PaymentSchema().dump(result.payment) if result.payment else None,
        'ticket': TicketSchema().dump(result.ticket) if result.ticket else None,
    }


@api_bp.route('/payments/initialize', methods=['POST'])
@limiter.limit('30 per minute')
@requires_role(UserRole.EVENTEE)
def api_initialize_payment():
    """Open a purchase.

    Request body:
        {"event_id": "...", "ticket_type_id": "..."?, "promo_code": "..."?}

    Returns 201 with the gateway authorization URL, or with the ticket
    directly when the final price is zero.
    """
    data = load_json(InitializePaymentSchema())
    initialized = PaymentService.initialize(
        request.api_user,
        data['event_id'],
        ticket_tier_id=data.get('ticket_type_id'),
        promo_code=data.get('promo_code'),
    )
    return api_success({
        'reference': initialized.payment.reference,
        'authorization_url': initialized.authorization_url,
        'access_code': initialized.access_code,
        'payment': PaymentSchema().dump(initialized.payment),
        'ticket': TicketSchema().dump(initialized.ticket) if initialized.ticket else None,
    }, 201)


@api_bp.route('/payments/verify/<reference>', methods=['GET'])
@jwt_required
def api_verify_payment(reference):
    """Poll the gateway for a payment and finalize it."""
    result = PaymentService.verify(reference, request.api_user)
    return api_success(_result_payload(result))


@api_bp.route('/payments/webhook', methods=['POST'])
@limiter.exempt
def api_payment_webhook():
    """Gateway webhook. Authenticated by HMAC signature, not JWT.

    Unknown references and repeat deliveries are acknowledged with 200.
    """
    payload = request.get_data()
    signature = request.headers.get(SIGNATURE_HEADER)

    result = PaymentService.handle_webhook(payload, signature)
    current_app.logger.info(
        f"Webhook processed: outcome={result.outcome} "
        f"reference={result.payment.reference if result.payment else None}"
    )
    return api_success({'received': True, 'outcome': result.outcome})


@api_bp.route('/payments/creator', methods=['GET'])
@requires_role(UserRole.CREATOR)
def api_creator_payments():
    """Payments for the caller's events (cached per page)."""
    user = request.api_user
    page, per_page = pagination_args()
    prefix = read_cache.creator_payments_prefix(user.id)
    key = f'{page}:{per_page}'

    cached = read_cache.get(prefix, key)
    if cached is not None:
        return jsonify(cached), 200

    body = paginate_query(PaymentService.list_for_creator(user), CreatorPaymentSchema())
    read_cache.set(prefix, key, body)
    return jsonify(body), 200


@api_bp.route('/payments/<reference>', methods=['GET'])
@jwt_required
def api_get_payment(reference):
    """A single payment, visible to its buyer and the event organizer."""
    payment = PaymentService.get_visible(reference, request.api_user)
    data = PaymentSchema().dump(payment)
    data['ticket'] = TicketSchema().dump(payment.ticket) if payment.ticket else None
    return api_success(data)
