"""
Capacity guard.

`check_admission` is the cheap, read-only pre-check used when a purchase is
opened. The authoritative check is `reserve`, a conditional increment that
runs in the same transaction as the ticket insert, so two buyers racing for
the last seat cannot both get it.
"""
from dataclasses import dataclass

from eventful.extensions import db
from eventful.models.event import Event
from eventful.models.ticket_tier import TicketTier


@dataclass
class Admission:
    allowed: bool
    remaining: int

    @property
    def sold_out(self):
        return not self.allowed


class CapacityGuard:
    """Sold counters for events and tiers."""

    @staticmethod
    def check_admission(event, tier=None) -> Admission:
        """
        Read-only admission check.

        With a tier, the tier's counter is compared to the tier capacity.
        A tiered event checked without a tier is open while any tier is.
        Otherwise the event-level counter and capacity apply.
        """
        if tier is not None:
            return Admission(allowed=not tier.is_sold_out, remaining=tier.remaining)
        if event.has_tiers:
            remaining = sum(t.remaining for t in event.ticket_tiers)
            return Admission(allowed=remaining > 0, remaining=remaining)
        return Admission(allowed=event.remaining > 0, remaining=event.remaining)

    @staticmethod
    def reserve(event, tier=None) -> bool:
        """
        Atomically take one seat. Returns False when none is left.

        Does not commit: the caller's transaction owns the increment.
        """
        if tier is not None:
            rows = TicketTier.query.filter(
                TicketTier.id == tier.id,
                TicketTier.sold < TicketTier.capacity
            ).update({TicketTier.sold: TicketTier.sold + 1}, synchronize_session=False)
            db.session.expire(tier, ['sold'])
        else:
            rows = Event.query.filter(
                Event.id == event.id,
                Event.tickets_sold < Event.capacity
            ).update({Event.tickets_sold: Event.tickets_sold + 1}, synchronize_session=False)
            db.session.expire(event, ['tickets_sold'])
        return rows == 1

    @staticmethod
    def release(event, tier=None) -> bool:
        """Give one seat back. Never drives a counter below zero."""
        if tier is not None:
            rows = TicketTier.query.filter(
                TicketTier.id == tier.id,
                TicketTier.sold > 0
            ).update({TicketTier.sold: TicketTier.sold - 1}, synchronize_session=False)
            db.session.expire(tier, ['sold'])
        else:
            rows = Event.query.filter(
                Event.id == event.id,
                Event.tickets_sold > 0
            ).update({Event.tickets_sold: Event.tickets_sold - 1}, synchronize_session=False)
            db.session.expire(event, ['tickets_sold'])
        return rows == 1
