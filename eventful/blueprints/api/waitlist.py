"""
API v1 waitlist endpoints.
"""
from flask import request, jsonify

from eventful.blueprints.api import api_bp
from eventful.blueprints.api.decorators import jwt_required
from eventful.blueprints.api.helpers import api_success, paginate_query
from eventful.blueprints.api.schemas import WaitlistEntrySchema
from eventful.services.waitlist_service import WaitlistService


@api_bp.route('/events/<event_id>/waitlist', methods=['POST'])
@jwt_required
def api_join_waitlist(event_id):
    """Join the waitlist of a sold-out event."""
    entry = WaitlistService.join(request.api_user, event_id)
    return api_success(WaitlistEntrySchema().dump(entry), 201)


@api_bp.route('/events/<event_id>/waitlist', methods=['DELETE'])
@jwt_required
def api_leave_waitlist(event_id):
    WaitlistService.leave(request.api_user, event_id)
    return api_success({'left': True})


@api_bp.route('/events/<event_id>/waitlist', methods=['GET'])
@jwt_required
def api_waitlist_position(event_id):
    """The caller's current position for an event."""
    entry = WaitlistService.get_entry(request.api_user, event_id)
    return api_success(WaitlistEntrySchema().dump(entry))


@api_bp.route('/waitlists', methods=['GET'])
@jwt_required
def api_my_waitlists():
    query = WaitlistService.list_for_user(request.api_user)
    return jsonify(paginate_query(query, WaitlistEntrySchema())), 200
