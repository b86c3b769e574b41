"""
Interleavings of the two confirmation paths and of buyers racing for the same resource.

The webhook is delivered from inside the fake gateway's verify call, so it
commits while the buyer's verify request is still between reading the
payment and writing it.
"""
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from eventful.errors import BadRequest
from eventful.extensions import db
from eventful.models import Event, Payment, PaymentStatus, FailureReason, Ticket, PromoCode
from eventful.services.payment_service import PaymentService, Outcome
from eventful.services.ticket_service import TicketService
from tests.conftest import charge_success_body, sign


def deliver_webhook(reference):
    body = charge_success_body(reference)
    return PaymentService.handle_webhook(body, sign(body))


class TestVerifyAndWebhookInterleaved:

    def test_webhook_lands_during_verify(self, buyer, event, pending_payment, gateway):
        webhook_results = []
        gateway.on_verify = lambda reference: webhook_results.append(deliver_webhook(reference))

        result = PaymentService.verify(pending_payment.reference, buyer)

        assert webhook_results[0].outcome == Outcome.CONFIRMED
        assert result.outcome == Outcome.ALREADY_CONFIRMED
        assert result.ticket.id == webhook_results[0].ticket.id
        assert Ticket.query.count() == 1
        assert db.session.get(Event, event.id).tickets_sold == 1

    def test_stale_decline_never_downgrades_success(self, buyer, pending_payment, gateway):
        gateway.statuses[pending_payment.reference] = 'failed'
        gateway.on_verify = deliver_webhook

        result = PaymentService.verify(pending_payment.reference, buyer)

        assert result.outcome == Outcome.ALREADY_CONFIRMED
        assert db.session.get(Payment, pending_payment.id).status == PaymentStatus.SUCCESS
        assert Ticket.query.count() == 1

    def test_lost_ticket_insert_race_leaves_no_half_state(self, buyer, event, pending_payment):
        duplicate = IntegrityError('INSERT INTO tickets', {}, Exception('UNIQUE constraint failed: tickets.payment_id'))

        with patch.object(TicketService, 'issue', side_effect=duplicate):
            result = PaymentService.verify(pending_payment.reference, buyer)

        # Everything written by the losing attempt is rolled back
        assert result.outcome == Outcome.PENDING
        assert db.session.get(Payment, pending_payment.id).status == PaymentStatus.PENDING
        assert Ticket.query.count() == 0
        assert db.session.get(Event, event.id).tickets_sold == 0

    def test_success_without_ticket_is_repaired(self, buyer, event, pending_payment, gateway):
        pending_payment.status = PaymentStatus.SUCCESS
        db.session.commit()

        result = PaymentService.verify(pending_payment.reference, buyer)

        assert result.outcome == Outcome.ALREADY_CONFIRMED
        assert result.ticket is not None
        assert result.ticket.payment_id == pending_payment.id
        assert gateway.verify_calls == []
        assert db.session.get(Event, event.id).tickets_sold == 1


class TestBuyersRacing:

    def test_last_seat_goes_to_the_first_confirmation(self, buyer, other_buyer, make_event):
        event = make_event(capacity=1)
        first = PaymentService.initialize(buyer, event.id).payment
        second = PaymentService.initialize(other_buyer, event.id).payment

        assert PaymentService.verify(first.reference, buyer).outcome == Outcome.CONFIRMED
        with pytest.raises(BadRequest, match='sold out'):
            PaymentService.verify(second.reference, other_buyer)

        loser = db.session.get(Payment, second.id)
        assert loser.status == PaymentStatus.FAILED
        assert loser.failure_reason == FailureReason.SOLD_OUT
        assert Ticket.query.count() == 1
        assert db.session.get(Event, event.id).tickets_sold == 1

    def test_same_buyer_two_payments_one_ticket(self, buyer, event):
        first = PaymentService.initialize(buyer, event.id).payment
        second = PaymentService.initialize(buyer, event.id).payment

        PaymentService.verify(first.reference, buyer)
        with pytest.raises(BadRequest, match='already have a ticket'):
            PaymentService.verify(second.reference, buyer)

        assert db.session.get(Payment, second.id).failure_reason == FailureReason.ALREADY_TICKETED
        assert Ticket.query.filter_by(user_id=buyer.id).count() == 1

    def test_promo_last_use_counted_once(self, buyer, other_buyer, event, make_promo):
        promo = make_promo(max_uses=1)
        first = PaymentService.initialize(buyer, event.id, promo_code='SAVE20').payment
        second = PaymentService.initialize(other_buyer, event.id, promo_code='SAVE20').payment

        PaymentService.verify(first.reference, buyer)
        PaymentService.verify(second.reference, other_buyer)

        assert db.session.get(PromoCode, promo.id).used_count == 1
        assert Ticket.query.count() == 2
