"""
Ticket issuance, check-in scans and cancellation.
"""
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from eventful.errors import BadRequest, Forbidden, NotFound
from eventful.extensions import db
from eventful.models.ticket import Ticket, TicketStatus
from eventful.services.capacity import CapacityGuard
from eventful.utils import cache as read_cache

logger = logging.getLogger(__name__)

CREDENTIAL_TYPE = 'ticket'


class TicketService:
    """Everything that creates or changes a Ticket."""

    # ------------------------------------------------------------------
    # Scan credentials
    # ------------------------------------------------------------------

    @staticmethod
    def _credential_secret():
        return (current_app.config.get('TICKET_TOKEN_SECRET')
                or current_app.config.get('JWT_SECRET_KEY')
                or current_app.config['SECRET_KEY'])

    @staticmethod
    def build_credential(ticket_id, event_id, user_id, code) -> str:
        """Signed token embedded in the ticket's QR code."""
        now = datetime.now(timezone.utc)
        ttl_days = current_app.config.get('TICKET_TOKEN_TTL_DAYS', 365)
        payload = {
            'ticket_id': ticket_id,
            'event_id': event_id,
            'user_id': user_id,
            'code': code,
            'typ': CREDENTIAL_TYPE,
            'iat': now,
            'exp': now + timedelta(days=ttl_days),
        }
        return jwt.encode(payload, TicketService._credential_secret(), algorithm='HS256')

    @staticmethod
    def decode_credential(token) -> dict:
        """Decode and check a scan credential. Raises BadRequest when unusable."""
        if not token or not isinstance(token, str):
            raise BadRequest('Invalid QR code')
        try:
            payload = jwt.decode(token, TicketService._credential_secret(), algorithms=['HS256'])
        except jwt.ExpiredSignatureError:
            raise BadRequest('This ticket has expired')
        except jwt.InvalidTokenError:
            raise BadRequest('Invalid QR code')

        if payload.get('typ') != CREDENTIAL_TYPE or not payload.get('ticket_id') or not payload.get('code'):
            raise BadRequest('Invalid QR code')
        return payload

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    @staticmethod
    def has_active_ticket(user_id, event_id) -> bool:
        """True when the buyer holds a non-cancelled ticket for the event."""
        return Ticket.query.filter(
            Ticket.user_id == user_id,
            Ticket.event_id == event_id,
            Ticket.status != TicketStatus.CANCELLED
        ).first() is not None

    @staticmethod
    def issue(user_id, event, payment, tier=None) -> Ticket:
        """
        Create the ticket for a successful payment.

        The id and scan code are generated up front so the credential can be
        signed before the single insert. Flushes but does not commit: the
        caller commits the ticket together with the payment status.
        """
        ticket_id = str(uuid.uuid4())
        scan_code = secrets.token_hex(6).upper()

        ticket = Ticket(
            id=ticket_id,
            user_id=user_id,
            event_id=event.id,
            ticket_tier_id=tier.id if tier is not None else None,
            payment_id=payment.id,
            scan_code=scan_code,
            credential=TicketService.build_credential(ticket_id, event.id, user_id, scan_code),
            status=TicketStatus.ACTIVE,
        )
        db.session.add(ticket)
        db.session.flush()
        return ticket

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def list_for_user(user_id):
        return Ticket.query.filter_by(user_id=user_id).order_by(Ticket.created_at.desc())

    @staticmethod
    def get_visible(ticket_id, user) -> Ticket:
        """Ticket readable by its buyer or the event organizer."""
        ticket = db.session.get(Ticket, ticket_id)
        if ticket is None:
            raise NotFound('Ticket not found')
        if ticket.user_id != user.id and not user.is_organizer_of(ticket.event):
            raise Forbidden('You do not have access to this ticket')
        return ticket

    # ------------------------------------------------------------------
    # Check-in
    # ------------------------------------------------------------------

    @staticmethod
    def verify_scan(credential, verifier) -> Ticket:
        """
        Check a ticket in at the door.

        Only the event organizer may scan. A ticket goes ACTIVE -> USED
        exactly once; a concurrent second scan sees zero rows updated.
        """
        payload = TicketService.decode_credential(credential)

        ticket = db.session.get(Ticket, payload['ticket_id'])
        if ticket is None:
            raise NotFound('Ticket not found')
        if ticket.event_id != payload.get('event_id') or ticket.scan_code != payload.get('code'):
            raise BadRequest('Invalid QR code')
        if not verifier.is_organizer_of(ticket.event):
            raise Forbidden('You can only verify tickets for your own events')
        TicketService._ensure_scannable(ticket.status)

        now = datetime.utcnow()
        rows = Ticket.query.filter_by(id=ticket.id, status=TicketStatus.ACTIVE).update({
            'status': TicketStatus.USED,
            'scanned_at': now,
            'scanned_by_id': verifier.id,
        }, synchronize_session=False)

        if rows == 0:
            db.session.rollback()
            db.session.refresh(ticket)
            TicketService._ensure_scannable(ticket.status)
            raise BadRequest('This ticket has already been used')

        db.session.commit()
        read_cache.invalidate_prefix(read_cache.user_tickets_prefix(ticket.user_id))
        logger.info(f"Ticket {ticket.id} checked in by user {verifier.id}")
        return ticket

    @staticmethod
    def _ensure_scannable(status):
        if status == TicketStatus.USED:
            raise BadRequest('This ticket has already been used')
        if status == TicketStatus.CANCELLED:
            raise BadRequest('This ticket has been cancelled')

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    @staticmethod
    def cancel(ticket_id, user) -> Ticket:
        """
        Buyer-initiated cancellation of an ACTIVE ticket.

        The status change and the capacity release commit together; the
        next waitlisted buyer is promoted afterwards.
        """
        from eventful.services.waitlist_service import WaitlistService

        ticket = db.session.get(Ticket, ticket_id)
        if ticket is None:
            raise NotFound('Ticket not found')
        if ticket.user_id != user.id:
            raise Forbidden('You can only cancel your own tickets')
        if ticket.status != TicketStatus.ACTIVE:
            raise BadRequest(f'Cannot cancel a ticket that is {ticket.status.value.lower()}')

        event = ticket.event
        tier = ticket.ticket_tier

        rows = Ticket.query.filter_by(id=ticket.id, status=TicketStatus.ACTIVE).update({
            'status': TicketStatus.CANCELLED,
            'cancelled_at': datetime.utcnow(),
        }, synchronize_session=False)
        if rows == 0:
            db.session.rollback()
            db.session.refresh(ticket)
            raise BadRequest(f'Cannot cancel a ticket that is {ticket.status.value.lower()}')

        if not CapacityGuard.release(event, tier):
            logger.warning(f"Ticket {ticket.id} cancelled but sold counter was already zero")

        db.session.commit()
        logger.info(f"Ticket {ticket.id} cancelled by user {user.id}")

        read_cache.invalidate_prefix(
            read_cache.user_tickets_prefix(user.id),
            read_cache.creator_payments_prefix(event.creator_id),
        )

        WaitlistService.promote_next(event)
        return ticket
