"""
API v1 promo code endpoints: creator-side management and buyer-side preview.
"""
from flask import request, jsonify

from eventful.blueprints.api import api_bp
from eventful.blueprints.api.decorators import jwt_required, requires_role
from eventful.blueprints.api.helpers import api_success, load_json, paginate_query
from eventful.blueprints.api.schemas import (
    PromoCodeSchema, PromoCodeCreateSchema, PromoCodeUpdateSchema, PromoValidateSchema,
)
from eventful.errors import NotFound, BadRequest
from eventful.extensions import db, limiter
from eventful.models.event import Event
from eventful.models.ticket_tier import TicketTier
from eventful.models.user import UserRole
from eventful.services.promo_service import PromoService


@api_bp.route('/promo-codes', methods=['POST'])
@requires_role(UserRole.CREATOR)
def api_create_promo_code():
    """Create a promo code.

    Request body:
        {"code": "EARLYBIRD", "discount_type": "PERCENTAGE", "discount_value": 20,
         "max_uses": 100?, "expires_at": "..."?, "event_id": "..."?}
    """
    data = load_json(PromoCodeCreateSchema())
    promo = PromoService.create(request.api_user, **data)
    return api_success(PromoCodeSchema().dump(promo), 201)


@api_bp.route('/promo-codes', methods=['GET'])
@requires_role(UserRole.CREATOR)
def api_list_promo_codes():
    query = PromoService.list_for_creator(request.api_user)
    return jsonify(paginate_query(query, PromoCodeSchema())), 200


@api_bp.route('/promo-codes/<promo_id>', methods=['PATCH'])
@requires_role(UserRole.CREATOR)
def api_update_promo_code(promo_id):
    data = load_json(PromoCodeUpdateSchema())
    promo = PromoService.update(promo_id, request.api_user, **data)
    return api_success(PromoCodeSchema().dump(promo))


@api_bp.route('/promo-codes/<promo_id>', methods=['DELETE'])
@requires_role(UserRole.CREATOR)
def api_delete_promo_code(promo_id):
    PromoService.delete(promo_id, request.api_user)
    return api_success({'deleted': True})


@api_bp.route('/promo-codes/validate', methods=['POST'])
@limiter.limit('30 per minute')
@jwt_required
def api_validate_promo_code():
    """Preview the price a code gives for an event (or tier).

    Request body:
        {"code": "...", "event_id": "...", "ticket_type_id": "..."?}
    """
    data = load_json(PromoValidateSchema())

    event = db.session.get(Event, data['event_id'])
    if event is None:
        raise NotFound('Event not found')

    tier = None
    if data.get('ticket_type_id'):
        tier = db.session.get(TicketTier, data['ticket_type_id'])
        if tier is None or tier.event_id != event.id:
            raise NotFound('Ticket type not found for this event')
    elif event.has_tiers:
        raise BadRequest('Please select a ticket type for this event')

    intent = PromoService.price(event, data['code'], tier)
    return api_success(intent.to_dict())
