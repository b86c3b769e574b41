"""
Waitlist entries for sold-out events.
Positions are 1-based and kept contiguous per event.
"""
from datetime import datetime

from eventful.extensions import db
from eventful.models.event import new_uuid


class WaitlistEntry(db.Model):
    """A buyer queued for a sold-out event."""

    __tablename__ = 'waitlist_entries'

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
    position = db.Column(db.Integer, nullable=False)
    notified = db.Column(db.Boolean, nullable=False, default=False)
    notified_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'event_id', name='uq_waitlist_user_event'),
    )

    # Relationships
    user = db.relationship('User', backref=db.backref('waitlist_entries', lazy='dynamic'))
    event = db.relationship('Event', backref=db.backref('waitlist_entries', lazy='dynamic'))

    def __repr__(self):
        return f'<WaitlistEntry event={self.event_id} user={self.user_id} #{self.position}>'
