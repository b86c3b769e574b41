"""
Promo codes owned by event creators.
Codes are stored uppercase and are unique per creator.
"""
import enum
from datetime import datetime

from eventful.extensions import db
from eventful.models.event import new_uuid


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class PromoCode(db.Model):
    """A discount code, optionally scoped to one event."""

    __tablename__ = 'promo_codes'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    code = db.Column(db.String(20), nullable=False)

    discount_type = db.Column(
        db.Enum(DiscountType, values_callable=lambda x: [e.value for e in x]),
        nullable=False
    )
    discount_value = db.Column(db.Numeric(10, 2), nullable=False)

    max_uses = db.Column(db.Integer, nullable=True)  # None = unlimited
    used_count = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    creator_id = db.Column(
        db.Integer,
        db.ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    event_id = db.Column(
        db.String(36),
        db.ForeignKey('events.id', ondelete='CASCADE'),
        nullable=True,
        index=True
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('code', 'creator_id', name='uq_promo_code_per_creator'),
    )

    # Relationships
    creator = db.relationship('User', backref=db.backref('promo_codes', lazy='dynamic'))
    event = db.relationship('Event')

    def __repr__(self):
        return f'<PromoCode {self.code}>'

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at < datetime.utcnow()

    @property
    def is_exhausted(self):
        return self.max_uses is not None and (self.used_count or 0) >= self.max_uses

    @classmethod
    def find_for_creator(cls, code, creator_id):
        """Look up a code in a creator's namespace (case-insensitive input)."""
        return cls.query.filter_by(code=code.strip().upper(), creator_id=creator_id).first()
