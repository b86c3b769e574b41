"""
Event model.

Event content management lives outside this service; the columns kept here
are the ones the purchase flow reads: price, capacity, the sold counter and
the default reminder offset.
"""
import enum
import uuid
from datetime import datetime, timedelta

from eventful.extensions import db


class ReminderUnit(str, enum.Enum):
    """Units for reminder offsets before an event starts."""
    MINUTES = 'MINUTES'
    HOURS = 'HOURS'
    DAYS = 'DAYS'
    WEEKS = 'WEEKS'


REMINDER_DELTAS = {
    ReminderUnit.MINUTES: lambda value: timedelta(minutes=value),
    ReminderUnit.HOURS: lambda value: timedelta(hours=value),
    ReminderUnit.DAYS: lambda value: timedelta(days=value),
    ReminderUnit.WEEKS: lambda value: timedelta(weeks=value),
}


def new_uuid():
    return str(uuid.uuid4())


class Event(db.Model):
    """A ticketed event owned by a creator."""

    __tablename__ = 'events'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    creator_id = db.Column(
        db.Integer,
        db.ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    title = db.Column(db.String(200), nullable=False)
    date = db.Column(db.DateTime, nullable=False, index=True)
    location = db.Column(db.String(255))

    # Legacy single-price sale (bypassed when the event defines tiers)
    price = db.Column(db.Integer, nullable=False, default=0)
    capacity = db.Column(db.Integer, nullable=False)
    # Maintained only through CapacityGuard.reserve/release
    tickets_sold = db.Column(db.Integer, nullable=False, default=0)

    # Default reminder created for every buyer
    default_reminder_value = db.Column(db.Integer, nullable=True)
    default_reminder_unit = db.Column(
        db.Enum(ReminderUnit, values_callable=lambda x: [e.value for e in x]),
        nullable=True,
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint('tickets_sold >= 0', name='ck_events_tickets_sold_non_negative'),
    )

    # Relationships
    creator = db.relationship('User', backref=db.backref('events', lazy='dynamic'))
    ticket_tiers = db.relationship(
        'TicketTier',
        back_populates='event',
        order_by='TicketTier.sort_order',
        cascade='all, delete-orphan',
    )

    def __repr__(self):
        return f'<Event {self.title}>'

    @property
    def has_tiers(self):
        """Tiered events sell per tier and ignore event-level price/capacity."""
        return len(self.ticket_tiers) > 0

    @property
    def remaining(self):
        return max(0, self.capacity - (self.tickets_sold or 0))
