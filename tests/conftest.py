# =============================================================================
# Eventful - Pytest Fixtures Configuration
# =============================================================================

import hashlib
import hmac
import json
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

from eventful import create_app
from eventful.blueprints.api.decorators import create_access_token
from eventful.errors import GatewayError
from eventful.extensions import db
from eventful.models import (
    User, UserRole, Event, TicketTier, PromoCode, DiscountType,
    Payment, PaymentStatus,
)
from eventful.services.capacity import CapacityGuard
from eventful.services.gateway import PaystackGateway, GatewaySession, GatewayTransaction
from eventful.services.ticket_service import TicketService

WEBHOOK_SECRET = 'sk_test_fake_key_for_testing'


# =============================================================================
# Fake payment gateway
# =============================================================================

class FakeGateway(PaystackGateway):
    """Paystack adapter with the network calls replaced.

    Webhook signatures are checked by the real HMAC code.
    """

    def __init__(self):
        super().__init__(secret_key=WEBHOOK_SECRET, base_url='https://api.paystack.test')
        self.initialized = []
        self.verify_calls = []
        self.statuses = {}
        self.paid_at = {}
        self.fail_initialize = False
        self.fail_verify = False
        self.on_verify = None

    def initialize_transaction(self, email, amount, reference, callback_url, metadata=None):
        if self.fail_initialize:
            raise GatewayError('Payment gateway request failed')
        self.initialized.append({
            'email': email,
            'amount': amount,
            'reference': reference,
            'callback_url': callback_url,
            'metadata': metadata,
        })
        return GatewaySession(
            reference=reference,
            authorization_url=f'https://checkout.paystack.test/{reference}',
            access_code=f'AC_{reference[-8:]}',
        )

    def verify_transaction(self, reference):
        self.verify_calls.append(reference)
        if self.fail_verify:
            raise GatewayError('Payment gateway request failed')
        if self.on_verify is not None:
            self.on_verify(reference)
        return GatewayTransaction(
            reference=reference,
            status=self.statuses.get(reference, 'success'),
            paid_at=self.paid_at.get(reference),
        )


def sign(body):
    """Signature header value for a raw webhook body."""
    return hmac.new(WEBHOOK_SECRET.encode('utf-8'), body, hashlib.sha512).hexdigest()


def charge_success_body(reference, paid_at='2026-10-19T10:15:00.000Z', event='charge.success'):
    return json.dumps({
        'event': event,
        'data': {
            'reference': reference,
            'status': 'success',
            'paid_at': paid_at,
            'amount': 500000,
        },
    }).encode('utf-8')


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture(scope='function')
def app():
    """Create and configure test application with SQLite in-memory database."""
    application = create_app('testing')
    application.extensions['payment_gateway'] = FakeGateway()

    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Test client for HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """CLI test runner."""
    return app.test_cli_runner()


@pytest.fixture
def gateway(app):
    return app.extensions['payment_gateway']


@pytest.fixture(autouse=True)
def sent_emails(app):
    """Capture outgoing emails instead of handing them to a mail backend."""
    outbox = []

    def _capture(msg, email_id, recipient):
        outbox.append(msg)
        return True

    with patch('eventful.utils.email._send_with_retry', side_effect=_capture):
        yield outbox


# =============================================================================
# User Fixtures
# =============================================================================

def _create_user(email, first_name, role):
    user = User(email=email, first_name=first_name, last_name='Test', role=role)
    user.set_password('Password123!')
    db.session.add(user)
    db.session.commit()
    user_id = user.id
    db.session.expire_all()
    return db.session.get(User, user_id)


@pytest.fixture
def organizer(app):
    """Event creator."""
    return _create_user('organizer@test.com', 'Ada', UserRole.CREATOR)


@pytest.fixture
def other_organizer(app):
    return _create_user('other.organizer@test.com', 'Bola', UserRole.CREATOR)


@pytest.fixture
def buyer(app):
    """Attendee buying tickets."""
    return _create_user('buyer@test.com', 'Tunde', UserRole.EVENTEE)


@pytest.fixture
def other_buyer(app):
    return _create_user('other.buyer@test.com', 'Kemi', UserRole.EVENTEE)


@pytest.fixture
def third_buyer(app):
    return _create_user('third.buyer@test.com', 'Femi', UserRole.EVENTEE)


def auth_headers(user):
    """Authorization header for an API call as `user`."""
    return {'Authorization': f'Bearer {create_access_token(user.id)}'}


# =============================================================================
# Event Fixtures
# =============================================================================

def _create_event(organizer, **kwargs):
    values = {
        'title': 'Lagos Tech Meetup',
        'date': datetime.utcnow() + timedelta(days=30),
        'location': 'Yaba, Lagos',
        'price': 5000,
        'capacity': 10,
    }
    values.update(kwargs)
    event = Event(creator_id=organizer.id, **values)
    db.session.add(event)
    db.session.commit()
    event_id = event.id
    db.session.expire_all()
    return db.session.get(Event, event_id)


@pytest.fixture
def event(organizer):
    """Non-tiered paid event with 10 seats."""
    return _create_event(organizer)


@pytest.fixture
def free_event(organizer):
    return _create_event(organizer, title='Open Mic Night', price=0, capacity=5)


@pytest.fixture
def sold_out_event(organizer):
    return _create_event(organizer, title='Sold Out Show', capacity=2, tickets_sold=2)


@pytest.fixture
def tiered_event(organizer):
    """Event selling Regular and VIP tiers."""
    event = _create_event(organizer, title='Afrobeats Live', price=0, capacity=0)
    db.session.add_all([
        TicketTier(event_id=event.id, name='Regular', price=10000, capacity=5, sort_order=0),
        TicketTier(event_id=event.id, name='VIP', price=50000, capacity=1, sort_order=1),
    ])
    db.session.commit()
    db.session.expire_all()
    return db.session.get(Event, event.id)


@pytest.fixture
def make_event(organizer):
    """Factory for events with custom attributes."""
    def _make(**kwargs):
        return _create_event(organizer, **kwargs)
    return _make


# =============================================================================
# Promo Code Fixtures
# =============================================================================

@pytest.fixture
def make_promo(organizer):
    """Factory for promo codes owned by `organizer`."""
    def _make(code='SAVE20', discount_type=DiscountType.PERCENTAGE, discount_value=20, **kwargs):
        promo = PromoCode(
            code=code,
            discount_type=discount_type,
            discount_value=discount_value,
            creator_id=kwargs.pop('creator_id', organizer.id),
            **kwargs
        )
        db.session.add(promo)
        db.session.commit()
        promo_id = promo.id
        db.session.expire_all()
        return db.session.get(PromoCode, promo_id)
    return _make


# =============================================================================
# Ticket Fixtures
# =============================================================================

@pytest.fixture
def make_ticket():
    """Factory issuing a ticket through a SUCCESS payment, seat reserved."""
    def _make(user, event, tier=None):
        payment = Payment(
            reference=f'EVT-TEST-{user.id}-{Payment.query.count() + 1}',
            user_id=user.id,
            event_id=event.id,
            ticket_tier_id=tier.id if tier else None,
            amount=tier.price if tier else event.price,
            discount_amount=0,
            status=PaymentStatus.SUCCESS,
            paid_at=datetime.utcnow(),
        )
        db.session.add(payment)
        db.session.flush()
        assert CapacityGuard.reserve(event, tier)
        ticket = TicketService.issue(user.id, event, payment, tier)
        db.session.commit()
        return ticket
    return _make


@pytest.fixture
def pending_payment(buyer, event):
    """A PENDING payment as left by /payments/initialize."""
    payment = Payment(
        reference='EVT-1760000000000-abcd1234',
        user_id=buyer.id,
        event_id=event.id,
        amount=event.price,
        discount_amount=0,
        status=PaymentStatus.PENDING,
    )
    db.session.add(payment)
    db.session.commit()
    payment_id = payment.id
    db.session.expire_all()
    return db.session.get(Payment, payment_id)
