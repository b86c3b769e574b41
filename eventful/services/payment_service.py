"""
Payment service for Eventful.

Opens purchases, and finalizes them from either confirmation path: the
buyer polling `verify` or the gateway calling the webhook. Both funnel into
`reconcile`, which moves a payment PENDING -> SUCCESS (with its ticket) or
PENDING -> FAILED exactly once no matter how many times, or in what order,
it is called.
"""
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from eventful.errors import BadRequest, Forbidden, NotFound, Unauthorized, GatewayError
from eventful.extensions import db
from eventful.models.event import Event
from eventful.models.payment import Payment, PaymentStatus, FailureReason
from eventful.models.ticket import Ticket
from eventful.models.ticket_tier import TicketTier
from eventful.services.capacity import CapacityGuard
from eventful.services.gateway import get_gateway
from eventful.services.promo_service import PromoService
from eventful.services.ticket_service import TicketService
from eventful.utils import cache as read_cache

logger = logging.getLogger(__name__)

SUCCESS_EVENT = 'charge.success'


class Outcome:
    """How a reconciliation attempt ended."""
    CONFIRMED = 'confirmed'                  # this call moved the payment to SUCCESS
    ALREADY_CONFIRMED = 'already_confirmed'  # someone else did, result returned unchanged
    FAILED = 'failed'
    PENDING = 'pending'                      # gateway says the customer is not done yet
    IGNORED = 'ignored'                      # webhook with nothing to do


@dataclass
class ReconcileResult:
    payment: Optional[Payment]
    ticket: Optional[Ticket]
    outcome: str

    @property
    def succeeded(self):
        return self.outcome in (Outcome.CONFIRMED, Outcome.ALREADY_CONFIRMED)


@dataclass
class InitializedPayment:
    payment: Payment
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None
    ticket: Optional[Ticket] = None


FAILURE_MESSAGES = {
    FailureReason.SOLD_OUT: 'Tickets sold out before your payment was confirmed; it will be refunded',
    FailureReason.ALREADY_TICKETED: 'You already have a ticket for this event; this payment will be refunded',
}


class PaymentService:
    """Purchase flow and payment reconciliation."""

    @staticmethod
    def generate_reference() -> str:
        """
        Generate a unique payment reference.

        Format: PREFIX-<epoch millis>-<8 hex chars> (e.g. EVT-1718000000000-9f3a1c2b)
        """
        prefix = current_app.config.get('PAYMENT_REFERENCE_PREFIX', 'EVT')
        return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"

    @staticmethod
    def get_by_reference(reference) -> Payment:
        payment = Payment.query.filter_by(reference=reference).first()
        if payment is None:
            raise NotFound('Payment not found')
        return payment

    @staticmethod
    def get_visible(reference, user) -> Payment:
        """Payment readable by its buyer or the event organizer."""
        payment = PaymentService.get_by_reference(reference)
        if payment.user_id != user.id and not user.is_organizer_of(payment.event):
            raise Forbidden('You do not have access to this payment')
        return payment

    @staticmethod
    def list_for_creator(creator):
        """Payments for every event the creator organizes, newest first."""
        return Payment.query.join(Event, Payment.event_id == Event.id).filter(
            Event.creator_id == creator.id
        ).order_by(Payment.created_at.desc())

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    @staticmethod
    def initialize(buyer, event_id, ticket_tier_id=None, promo_code=None) -> InitializedPayment:
        """
        Open a purchase for one ticket.

        Free purchases (zero final price) are confirmed on the spot without
        contacting the gateway. Paid purchases get a PENDING ledger row,
        committed before the gateway session is opened.
        """
        event = db.session.get(Event, event_id)
        if event is None:
            raise NotFound('Event not found')

        tier = None
        if ticket_tier_id:
            tier = db.session.get(TicketTier, ticket_tier_id)
            if tier is None or tier.event_id != event.id:
                raise NotFound('Ticket type not found for this event')
        elif event.has_tiers:
            raise BadRequest('Please select a ticket type for this event')

        if not CapacityGuard.check_admission(event, tier).allowed:
            raise BadRequest('This ticket type is sold out' if tier else 'This event is sold out')

        if tier is None and TicketService.has_active_ticket(buyer.id, event.id):
            raise BadRequest('You already have a ticket for this event')

        intent = PromoService.price(event, promo_code, tier)

        payment = Payment(
            reference=PaymentService.generate_reference(),
            user_id=buyer.id,
            event_id=event.id,
            ticket_tier_id=tier.id if tier else None,
            promo_code_id=intent.promo_code.id if intent.promo_code else None,
            amount=intent.final_price,
            discount_amount=intent.discount_amount,
            status=PaymentStatus.PENDING,
        )

        if intent.is_free:
            return PaymentService._confirm_free(payment, event, tier)

        db.session.add(payment)
        db.session.commit()
        read_cache.invalidate_prefix(read_cache.creator_payments_prefix(event.creator_id))
        logger.info(f"Payment {payment.reference} opened for user {buyer.id}, event {event.id}, amount {payment.amount}")

        callback_url = f"{current_app.config.get('CLIENT_URL', '')}/payment/callback?reference={payment.reference}"
        try:
            session = get_gateway().initialize_transaction(
                email=buyer.email,
                amount=payment.amount,
                reference=payment.reference,
                callback_url=callback_url,
                metadata={
                    'payment_id': payment.id,
                    'event_id': event.id,
                    'ticket_tier_id': payment.ticket_tier_id,
                    'user_id': buyer.id,
                },
            )
        except GatewayError:
            PaymentService._mark_failed(payment.id, FailureReason.GATEWAY_ERROR)
            logger.error(f"Payment {payment.reference} failed: gateway initialization error")
            raise

        payment.access_code = session.access_code
        payment.authorization_url = session.authorization_url
        db.session.commit()

        return InitializedPayment(
            payment=payment,
            authorization_url=session.authorization_url,
            access_code=session.access_code,
        )

    @staticmethod
    def _confirm_free(payment, event, tier) -> InitializedPayment:
        """Zero-cost purchase: SUCCESS payment and ticket in one transaction."""
        payment.status = PaymentStatus.SUCCESS
        payment.paid_at = datetime.utcnow()
        db.session.add(payment)
        db.session.flush()

        ticket, failure = PaymentService._issue_within_transaction(payment)
        if failure is not None:
            db.session.rollback()
            raise BadRequest(
                'You already have a ticket for this event' if failure == FailureReason.ALREADY_TICKETED
                else 'This event is sold out'
            )

        if payment.promo_code_id and not PromoService.record_use(payment.promo_code_id):
            logger.warning(f"Promo code {payment.promo_code_id} hit its usage limit during free checkout {payment.reference}")

        db.session.commit()
        logger.info(f"Free payment {payment.reference} confirmed with ticket {ticket.id}")

        PaymentService._after_confirmation(ReconcileResult(payment, ticket, Outcome.CONFIRMED))
        return InitializedPayment(payment=payment, ticket=ticket)

    # ------------------------------------------------------------------
    # Confirmation entry points
    # ------------------------------------------------------------------

    @staticmethod
    def verify(reference, user) -> ReconcileResult:
        """
        Buyer-initiated confirmation poll.

        Raises:
            NotFound: unknown reference
            Forbidden: not the buyer's payment
            BadRequest: the payment has failed
            GatewayError: the gateway could not be reached (no state change)
        """
        payment = PaymentService.get_by_reference(reference)
        if payment.user_id != user.id:
            raise Forbidden('You can only verify your own payments')

        if payment.status == PaymentStatus.SUCCESS:
            return PaymentService._existing_result(payment)
        if payment.status == PaymentStatus.FAILED:
            raise BadRequest(PaymentService._failure_message(payment))

        transaction = get_gateway().verify_transaction(reference)
        result = PaymentService.reconcile(payment, transaction)

        if result.outcome == Outcome.FAILED:
            raise BadRequest(PaymentService._failure_message(result.payment))
        return result

    @staticmethod
    def handle_webhook(raw_body, signature) -> ReconcileResult:
        """
        Gateway-initiated confirmation. Deliveries may repeat or arrive in any order.

        Raises:
            Unauthorized: signature mismatch (nothing is read or changed)
            BadRequest: malformed body
        """
        gateway = get_gateway()
        if not gateway.verify_webhook_signature(raw_body, signature):
            logger.warning("Webhook rejected: invalid signature")
            raise Unauthorized('Invalid webhook signature')

        webhook = gateway.parse_webhook(raw_body)
        if webhook.event != SUCCESS_EVENT or webhook.transaction is None:
            logger.info(f"Webhook event '{webhook.event}' ignored")
            return ReconcileResult(None, None, Outcome.IGNORED)

        reference = webhook.transaction.reference
        payment = Payment.query.filter_by(reference=reference).first()
        if payment is None:
            logger.info(f"Webhook for unknown reference {reference} ignored")
            return ReconcileResult(None, None, Outcome.IGNORED)

        if payment.status == PaymentStatus.SUCCESS:
            return PaymentService._existing_result(payment)
        if payment.status == PaymentStatus.FAILED:
            logger.error(
                f"Webhook {SUCCESS_EVENT} for FAILED payment {reference} "
                f"(reason: {payment.failure_reason}); refund required"
            )
            return ReconcileResult(payment, None, Outcome.IGNORED)

        return PaymentService.reconcile(payment, webhook.transaction)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    @staticmethod
    def reconcile(payment, transaction) -> ReconcileResult:
        """Apply the gateway's view of a transaction to a payment."""
        if transaction.is_success:
            return PaymentService._confirm(payment, transaction.paid_at or datetime.utcnow())

        if transaction.is_in_progress:
            logger.info(f"Payment {payment.reference} still {transaction.status} at the gateway")
            return ReconcileResult(payment, None, Outcome.PENDING)

        if PaymentService._mark_failed(payment.id, FailureReason.DECLINED):
            logger.info(f"Payment {payment.reference} FAILED (gateway status '{transaction.status}')")
            return ReconcileResult(payment, None, Outcome.FAILED)

        # Another path finalized it first
        db.session.refresh(payment)
        if payment.status == PaymentStatus.SUCCESS:
            return PaymentService._existing_result(payment)
        return ReconcileResult(payment, None, Outcome.FAILED)

    @staticmethod
    def _confirm(payment, paid_at) -> ReconcileResult:
        """
        PENDING -> SUCCESS plus ticket, committed together.

        The status flip is conditional on PENDING: if it matches no row the
        other confirmation path got there first and its result is returned.
        """
        rows = Payment.query.filter_by(id=payment.id, status=PaymentStatus.PENDING).update({
            'status': PaymentStatus.SUCCESS,
            'paid_at': paid_at,
            'failure_reason': None,
            'updated_at': datetime.utcnow(),
        }, synchronize_session=False)

        if rows == 0:
            db.session.rollback()
            logger.info(f"Payment {payment.reference} already finalized by another path")
            return PaymentService._existing_result(payment)

        try:
            ticket, failure = PaymentService._issue_within_transaction(payment)
            if failure is not None:
                db.session.rollback()
                PaymentService._mark_failed(payment.id, failure)
                logger.error(
                    f"Payment {payment.reference} captured but no ticket could be issued "
                    f"({failure}); marked FAILED, refund required"
                )
                return ReconcileResult(payment, None, Outcome.FAILED)

            if payment.promo_code_id and not PromoService.record_use(payment.promo_code_id):
                logger.warning(f"Promo code {payment.promo_code_id} hit its usage limit before payment {payment.reference} was confirmed")

            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.info(f"Ticket for payment {payment.reference} already issued by another path")
            return PaymentService._existing_result(payment)

        logger.info(f"Payment {payment.reference} SUCCESS, ticket {ticket.id} issued")
        result = ReconcileResult(payment, ticket, Outcome.CONFIRMED)
        PaymentService._after_confirmation(result)
        return result

    @staticmethod
    def _issue_within_transaction(payment):
        """
        Reserve a seat and create the ticket for `payment`, without committing.

        Returns (ticket, None) on success, or (None, failure_reason) when the
        seat is gone or the buyer already holds a ticket for a non-tiered event.
        """
        existing = Ticket.query.filter_by(payment_id=payment.id).first()
        if existing is not None:
            return existing, None

        event = db.session.get(Event, payment.event_id)
        tier = db.session.get(TicketTier, payment.ticket_tier_id) if payment.ticket_tier_id else None

        if tier is None and TicketService.has_active_ticket(payment.user_id, event.id):
            return None, FailureReason.ALREADY_TICKETED
        if not CapacityGuard.reserve(event, tier):
            return None, FailureReason.SOLD_OUT

        ticket = TicketService.issue(payment.user_id, event, payment, tier)
        return ticket, None

    @staticmethod
    def _existing_result(payment) -> ReconcileResult:
        """Re-read a payment finalized elsewhere and return it as-is."""
        db.session.refresh(payment)

        if payment.status == PaymentStatus.FAILED:
            return ReconcileResult(payment, None, Outcome.FAILED)
        if payment.status == PaymentStatus.PENDING:
            return ReconcileResult(payment, None, Outcome.PENDING)

        ticket = Ticket.query.filter_by(payment_id=payment.id).first()
        if ticket is None:
            ticket = PaymentService._repair_missing_ticket(payment)
        return ReconcileResult(payment, ticket, Outcome.ALREADY_CONFIRMED)

    @staticmethod
    def _repair_missing_ticket(payment):
        """Issue the ticket for a SUCCESS payment that has none."""
        logger.warning(f"Payment {payment.reference} is SUCCESS without a ticket; issuing now")
        try:
            ticket, failure = PaymentService._issue_within_transaction(payment)
            if failure is not None:
                db.session.rollback()
                logger.error(f"Payment {payment.reference} is SUCCESS but no ticket can be issued ({failure}); refund required")
                return None
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return Ticket.query.filter_by(payment_id=payment.id).first()

        PaymentService._after_confirmation(ReconcileResult(payment, ticket, Outcome.CONFIRMED))
        return ticket

    @staticmethod
    def _mark_failed(payment_id, reason) -> bool:
        """PENDING -> FAILED. Returns False if the payment was no longer PENDING."""
        rows = Payment.query.filter_by(id=payment_id, status=PaymentStatus.PENDING).update({
            'status': PaymentStatus.FAILED,
            'failure_reason': reason,
            'updated_at': datetime.utcnow(),
        }, synchronize_session=False)
        db.session.commit()

        if rows:
            creator_id = db.session.query(Event.creator_id).join(
                Payment, Payment.event_id == Event.id
            ).filter(Payment.id == payment_id).scalar()
            if creator_id is not None:
                read_cache.invalidate_prefix(read_cache.creator_payments_prefix(creator_id))
        return rows == 1

    @staticmethod
    def _failure_message(payment):
        return FAILURE_MESSAGES.get(payment.failure_reason, 'Payment verification failed')

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    @staticmethod
    def _after_confirmation(result):
        """Reminder, email and in-app notice for a new ticket. Failures never propagate."""
        from eventful.services.reminders import schedule_default_reminder
        from eventful.utils.email import send_ticket_confirmation_email
        from eventful.utils.notifications import notify_ticket_issued

        ticket = result.ticket
        event = db.session.get(Event, ticket.event_id)

        read_cache.invalidate_prefix(
            read_cache.user_tickets_prefix(ticket.user_id),
            read_cache.creator_payments_prefix(event.creator_id),
        )

        try:
            schedule_default_reminder(ticket)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Default reminder scheduling failed for ticket {ticket.id}: {e}")

        try:
            send_ticket_confirmation_email(ticket)
        except Exception as e:
            logger.error(f"Ticket confirmation email failed for ticket {ticket.id}: {e}")

        try:
            notify_ticket_issued(ticket)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Ticket notification failed for ticket {ticket.id}: {e}")
