"""
Ticket model.
One ticket per successful payment; the scan credential is what the QR code encodes.
"""
import enum
from datetime import datetime

from eventful.extensions import db
from eventful.models.event import new_uuid


class TicketStatus(str, enum.Enum):
    """Ticket lifecycle: ACTIVE -> USED on scan, ACTIVE -> CANCELLED by the buyer."""
    ACTIVE = "ACTIVE"
    USED = "USED"
    CANCELLED = "CANCELLED"


class Ticket(db.Model):
    """An admission ticket."""

    __tablename__ = 'tickets'

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
    ticket_tier_id = db.Column(
        db.String(36),
        db.ForeignKey('ticket_tiers.id', ondelete='SET NULL'),
        nullable=True
    )
    # Unique: one ticket per payment
    payment_id = db.Column(
        db.String(36),
        db.ForeignKey('payments.id', ondelete='CASCADE'),
        nullable=False,
        unique=True
    )

    scan_code = db.Column(db.String(32), unique=True, nullable=False)
    credential = db.Column(db.Text, nullable=False)

    status = db.Column(
        db.Enum(TicketStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=TicketStatus.ACTIVE,
        index=True
    )

    scanned_at = db.Column(db.DateTime, nullable=True)
    scanned_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = db.relationship('User', foreign_keys=[user_id],
                           backref=db.backref('tickets', lazy='dynamic'))
    scanned_by = db.relationship('User', foreign_keys=[scanned_by_id])
    event = db.relationship('Event', backref=db.backref('tickets', lazy='dynamic'))
    ticket_tier = db.relationship('TicketTier')
    payment = db.relationship('Payment', back_populates='ticket')

    def __repr__(self):
        return f'<Ticket {self.scan_code} {self.status.value if self.status else None}>'

    @property
    def is_active(self):
        return self.status == TicketStatus.ACTIVE
