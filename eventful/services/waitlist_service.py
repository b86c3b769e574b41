"""
Waitlist for sold-out events.

Join and leave run under a row lock on the event so positions stay
contiguous from 1. Promotion only notifies; it never reserves a seat.
"""
import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from eventful.errors import BadRequest, Conflict, NotFound
from eventful.extensions import db
from eventful.models.event import Event
from eventful.models.waitlist import WaitlistEntry
from eventful.services.capacity import CapacityGuard
from eventful.utils.email import send_waitlist_spot_email
from eventful.utils.notifications import notify_waitlist_spot

logger = logging.getLogger(__name__)


class WaitlistService:

    @staticmethod
    def _lock_event(event_id) -> Event:
        event = db.session.query(Event).filter_by(id=event_id).with_for_update().first()
        if event is None:
            raise NotFound('Event not found')
        return event

    @staticmethod
    def join(user, event_id) -> WaitlistEntry:
        """Queue the user for a sold-out event."""
        event = WaitlistService._lock_event(event_id)

        if CapacityGuard.check_admission(event).allowed:
            db.session.rollback()
            raise BadRequest('Tickets are still available for this event')

        if WaitlistEntry.query.filter_by(user_id=user.id, event_id=event.id).first():
            db.session.rollback()
            raise Conflict('You are already on the waitlist for this event')

        last_position = db.session.query(func.max(WaitlistEntry.position)).filter(
            WaitlistEntry.event_id == event.id
        ).scalar() or 0

        entry = WaitlistEntry(user_id=user.id, event_id=event.id, position=last_position + 1)
        db.session.add(entry)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict('You are already on the waitlist for this event')

        logger.info(f"User {user.id} joined waitlist for event {event.id} at #{entry.position}")
        return entry

    @staticmethod
    def leave(user, event_id):
        """Remove the user's entry and close the gap behind it."""
        event = WaitlistService._lock_event(event_id)

        entry = WaitlistEntry.query.filter_by(user_id=user.id, event_id=event.id).first()
        if entry is None:
            db.session.rollback()
            raise NotFound('You are not on the waitlist for this event')

        db.session.delete(entry)
        db.session.flush()
        WaitlistService._renumber(event.id)
        db.session.commit()
        logger.info(f"User {user.id} left waitlist for event {event.id}")

    @staticmethod
    def _renumber(event_id):
        """Rewrite positions as 1..N in FIFO order. Caller holds the event lock."""
        entries = WaitlistEntry.query.filter_by(event_id=event_id).order_by(
            WaitlistEntry.position, WaitlistEntry.created_at
        ).all()
        for index, entry in enumerate(entries, start=1):
            if entry.position != index:
                entry.position = index

    @staticmethod
    def get_entry(user, event_id) -> WaitlistEntry:
        if db.session.get(Event, event_id) is None:
            raise NotFound('Event not found')
        entry = WaitlistEntry.query.filter_by(user_id=user.id, event_id=event_id).first()
        if entry is None:
            raise NotFound('You are not on the waitlist for this event')
        return entry

    @staticmethod
    def list_for_user(user):
        return WaitlistEntry.query.filter_by(user_id=user.id).order_by(WaitlistEntry.created_at.desc())

    @staticmethod
    def promote_next(event):
        """
        Notify the first not-yet-notified entrant that a seat opened up.

        The notified flag flips through a conditional update, so two
        cancellations running at once promote two different people.
        Returns the promoted entry, or None if nobody was waiting.
        """
        candidates = WaitlistEntry.query.filter_by(event_id=event.id, notified=False).order_by(
            WaitlistEntry.position
        ).all()

        for candidate in candidates:
            rows = WaitlistEntry.query.filter_by(id=candidate.id, notified=False).update({
                'notified': True,
                'notified_at': datetime.utcnow(),
            }, synchronize_session=False)
            if rows == 1:
                db.session.commit()
                db.session.refresh(candidate)
                logger.info(f"Waitlist #{candidate.position} (user {candidate.user_id}) promoted for event {event.id}")
                WaitlistService._notify(candidate)
                return candidate

        db.session.rollback()
        return None

    @staticmethod
    def _notify(entry):
        try:
            send_waitlist_spot_email(entry)
        except Exception as e:
            logger.error(f"Waitlist email failed for entry {entry.id}: {e}")

        try:
            notify_waitlist_spot(entry)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Waitlist notification failed for entry {entry.id}: {e}")
