"""
TicketTier model for multi-tier ticket pricing.
Allows multiple price categories per event (Regular, VIP, Table, etc.).
"""
from datetime import datetime

from eventful.extensions import db
from eventful.models.event import new_uuid


class TicketTier(db.Model):
    """A ticket pricing tier for an event."""

    __tablename__ = 'ticket_tiers'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)

    # Event reference
    event_id = db.Column(
        db.String(36),
        db.ForeignKey('events.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    # Tier definition
    name = db.Column(db.String(80), nullable=False)
    description = db.Column(db.String(255))
    price = db.Column(db.Integer, nullable=False, default=0)
    capacity = db.Column(db.Integer, nullable=False)
    sold = db.Column(db.Integer, nullable=False, default=0)

    # Display order (0 = first)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow, nullable=True)

    __table_args__ = (
        db.CheckConstraint('sold >= 0', name='ck_ticket_tiers_sold_non_negative'),
    )

    # Relationships
    event = db.relationship('Event', back_populates='ticket_tiers')

    def __repr__(self):
        return f'<TicketTier {self.name} @ {self.price}>'

    @property
    def is_sold_out(self):
        """Check if this tier is sold out."""
        return (self.sold or 0) >= self.capacity

    @property
    def remaining(self):
        """Remaining tickets for this tier."""
        return max(0, self.capacity - (self.sold or 0))
