"""
Payment ledger.

A Payment row is opened PENDING by the purchase flow and finalized exactly
once to SUCCESS or FAILED by the reconciler. The external reference is what
the gateway knows the transaction by.
"""
import enum
from datetime import datetime

from eventful.extensions import db
from eventful.models.event import new_uuid


class PaymentStatus(str, enum.Enum):
    """Payment lifecycle. SUCCESS and FAILED are terminal."""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class FailureReason:
    """Why a payment ended FAILED."""
    DECLINED = 'declined'
    GATEWAY_ERROR = 'gateway_error'
    SOLD_OUT = 'sold_out'
    ALREADY_TICKETED = 'already_ticketed'


class Payment(db.Model):
    """A single purchase attempt for one ticket."""

    __tablename__ = 'payments'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    reference = db.Column(db.String(64), unique=True, nullable=False, index=True)

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
    promo_code_id = db.Column(
        db.String(36),
        db.ForeignKey('promo_codes.id', ondelete='SET NULL'),
        nullable=True
    )

    # Amounts in the currency major unit
    amount = db.Column(db.Integer, nullable=False)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(
        db.Enum(PaymentStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True
    )
    failure_reason = db.Column(db.String(50), nullable=True)

    # Gateway session
    access_code = db.Column(db.String(100))
    authorization_url = db.Column(db.String(500))

    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = db.relationship('User', backref=db.backref('payments', lazy='dynamic'))
    event = db.relationship('Event', backref=db.backref('payments', lazy='dynamic'))
    ticket_tier = db.relationship('TicketTier')
    promo_code = db.relationship('PromoCode')
    ticket = db.relationship('Ticket', back_populates='payment', uselist=False)

    def __repr__(self):
        return f'<Payment {self.reference} {self.status.value if self.status else None}>'

    @property
    def is_pending(self):
        return self.status == PaymentStatus.PENDING

    @property
    def is_successful(self):
        return self.status == PaymentStatus.SUCCESS

    @property
    def is_failed(self):
        return self.status == PaymentStatus.FAILED
