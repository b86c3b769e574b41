"""
Event reminders.
One row per (user, event, offset); the send-reminders job delivers due rows
and flips `sent` so nothing is delivered twice.
"""
from datetime import datetime

from eventful.extensions import db
from eventful.models.event import ReminderUnit, new_uuid


class Reminder(db.Model):
    """A scheduled reminder for one attendee."""

    __tablename__ = 'reminders'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    event_id = db.Column(
        db.String(36),
        db.ForeignKey('events.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    value = db.Column(db.Integer, nullable=False)
    unit = db.Column(
        db.Enum(ReminderUnit, values_callable=lambda x: [e.value for e in x]),
        nullable=False
    )
    remind_at = db.Column(db.DateTime, nullable=False, index=True)
    message = db.Column(db.String(500), nullable=False)
    sent = db.Column(db.Boolean, nullable=False, default=False)
    sent_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint(
            'user_id', 'event_id', 'value', 'unit',
            name='uq_reminder_once'
        ),
    )

    # Relationships
    user = db.relationship(
        'User',
        backref=db.backref('reminders', lazy='dynamic', cascade='all, delete-orphan')
    )
    event = db.relationship(
        'Event',
        backref=db.backref('reminders', lazy='dynamic', cascade='all, delete-orphan')
    )

    @classmethod
    def exists_for(cls, user_id, event_id, value, unit):
        """Check if this reminder has already been scheduled."""
        return cls.query.filter_by(
            user_id=user_id,
            event_id=event_id,
            value=value,
            unit=unit
        ).first() is not None

    @classmethod
    def due(cls, now=None):
        """Unsent reminders whose time has come."""
        now = now or datetime.utcnow()
        return cls.query.filter(
            cls.sent.is_(False),
            cls.remind_at <= now
        ).order_by(cls.remind_at).all()

    def mark_sent(self):
        self.sent = True
        self.sent_at = datetime.utcnow()

    def __repr__(self):
        return f'<Reminder {self.value} {self.unit.value if self.unit else None} user={self.user_id} event={self.event_id}>'
