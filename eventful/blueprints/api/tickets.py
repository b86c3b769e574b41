"""
API v1 ticket endpoints: listing, check-in scans and cancellation.
"""
from flask import request, jsonify

from eventful.blueprints.api import api_bp
from eventful.blueprints.api.decorators import jwt_required, requires_role
from eventful.blueprints.api.helpers import api_success, load_json, paginate_query, pagination_args
from eventful.blueprints.api.schemas import TicketSchema, ScannedTicketSchema, VerifyTicketSchema
from eventful.extensions import limiter
from eventful.models.user import UserRole
from eventful.services.ticket_service import TicketService
from eventful.utils import cache as read_cache


@api_bp.route('/tickets', methods=['GET'])
@jwt_required
def api_list_tickets():
    """The caller's tickets, newest first (cached per page)."""
    user = request.api_user
    page, per_page = pagination_args()
    prefix = read_cache.user_tickets_prefix(user.id)
    key = f'{page}:{per_page}'

    cached = read_cache.get(prefix, key)
    if cached is not None:
        return jsonify(cached), 200

    body = paginate_query(TicketService.list_for_user(user.id), TicketSchema())
    read_cache.set(prefix, key, body)
    return jsonify(body), 200


@api_bp.route('/tickets/verify', methods=['POST'])
@limiter.limit('120 per minute')
@requires_role(UserRole.CREATOR)
def api_verify_ticket():
    """Check a ticket in by its scan credential.

    Request body:
        {"credential": "<token from the QR code>"}
    """
    data = load_json(VerifyTicketSchema())
    ticket = TicketService.verify_scan(data['credential'], request.api_user)
    return api_success(ScannedTicketSchema().dump(ticket))


@api_bp.route('/tickets/<ticket_id>', methods=['GET'])
@jwt_required
def api_get_ticket(ticket_id):
    ticket = TicketService.get_visible(ticket_id, request.api_user)
    return api_success(TicketSchema().dump(ticket))


@api_bp.route('/tickets/<ticket_id>/cancel', methods=['PUT'])
@jwt_required
def api_cancel_ticket(ticket_id):
    """Cancel one of the caller's ACTIVE tickets."""
    ticket = TicketService.cancel(ticket_id, request.api_user)
    return api_success(TicketSchema().dump(ticket))
