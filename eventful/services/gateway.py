"""
Payment gateway adapter.

`PaymentGateway` is the narrow surface the purchase flow needs from a card
processor. `PaystackGateway` implements it over the Paystack REST API; the
instance used by a given app lives in `app.extensions['payment_gateway']`
so tests can swap in a fake.
"""
import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import requests
from flask import current_app

from eventful.errors import GatewayError, BadRequest

logger = logging.getLogger(__name__)

# Gateway statuses meaning "the customer has not finished paying yet"
IN_PROGRESS_STATUSES = frozenset({'ongoing', 'pending', 'processing', 'queued'})


@dataclass
class GatewaySession:
    """A checkout session opened with the gateway."""
    reference: str
    authorization_url: str
    access_code: str


@dataclass
class GatewayTransaction:
    """The gateway's view of one transaction."""
    reference: str
    status: str
    paid_at: Optional[datetime] = None
    amount: Optional[int] = None
    raw: dict = field(default_factory=dict)

    @property
    def is_success(self):
        return self.status == 'success'

    @property
    def is_in_progress(self):
        return self.status in IN_PROGRESS_STATUSES


@dataclass
class WebhookEvent:
    """A parsed webhook delivery."""
    event: str
    transaction: Optional[GatewayTransaction]


def parse_paid_at(value) -> Optional[datetime]:
    """Parse a gateway ISO-8601 timestamp into a naive UTC datetime.

    Returns None when the value is missing or unparseable.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logger.warning(f"Unparseable gateway timestamp: {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _transaction_from_data(data: dict, default_status: str = '') -> Optional[GatewayTransaction]:
    reference = data.get('reference')
    if not reference:
        return None
    return GatewayTransaction(
        reference=reference,
        status=(data.get('status') or default_status).lower(),
        paid_at=parse_paid_at(data.get('paid_at') or data.get('paidAt')),
        amount=data.get('amount'),
        raw=data,
    )


class PaymentGateway(ABC):
    """Interface of a card payment processor."""

    @abstractmethod
    def initialize_transaction(self, email: str, amount: int, reference: str,
                               callback_url: str, metadata: Optional[dict] = None) -> GatewaySession:
        """Open a checkout session. `amount` is in the currency major unit."""

    @abstractmethod
    def verify_transaction(self, reference: str) -> GatewayTransaction:
        """Ask the gateway for the current status of a transaction."""

    @abstractmethod
    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Check that a webhook body was signed by the gateway."""

    def parse_webhook(self, raw_body: bytes) -> WebhookEvent:
        """Decode a webhook body. Raises BadRequest on malformed JSON."""
        try:
            payload = json.loads(raw_body or b'{}')
        except (ValueError, UnicodeDecodeError):
            raise BadRequest('Malformed webhook payload')
        if not isinstance(payload, dict):
            raise BadRequest('Malformed webhook payload')

        event = payload.get('event') or ''
        data = payload.get('data') or {}
        default_status = 'success' if event == 'charge.success' else ''
        transaction = _transaction_from_data(data, default_status) if isinstance(data, dict) else None
        return WebhookEvent(event=event, transaction=transaction)


class PaystackGateway(PaymentGateway):
    """Paystack REST client."""

    def __init__(self, secret_key, base_url='https://api.paystack.co', timeout=15):
        self.secret_key = secret_key or ''
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    @property
    def _headers(self):
        return {
            'Authorization': f'Bearer {self.secret_key}',
            'Content-Type': 'application/json',
        }

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, headers=self._headers, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            logger.error(f"Paystack {method} {path} failed: {e}")
            raise GatewayError('Payment gateway request failed')
        except ValueError as e:
            logger.error(f"Paystack {method} {path} returned invalid JSON: {e}")
            raise GatewayError('Payment gateway returned an invalid response')

        if not body.get('status'):
            logger.error(f"Paystack {method} {path} rejected: {body.get('message')}")
            raise GatewayError(body.get('message') or 'Payment gateway rejected the request')
        return body.get('data') or {}

    def initialize_transaction(self, email, amount, reference, callback_url, metadata=None):
        data = self._request('POST', '/transaction/initialize', json={
            'email': email,
            'amount': int(amount) * 100,  # kobo
            'reference': reference,
            'callback_url': callback_url,
            'metadata': metadata or {},
        })
        try:
            return GatewaySession(
                reference=data.get('reference') or reference,
                authorization_url=data['authorization_url'],
                access_code=data['access_code'],
            )
        except KeyError as e:
            logger.error(f"Paystack initialize response missing {e}")
            raise GatewayError('Payment gateway returned an invalid response')

    def verify_transaction(self, reference):
        data = self._request('GET', f'/transaction/verify/{reference}')
        transaction = _transaction_from_data({'reference': reference, **data})
        return transaction

    def verify_webhook_signature(self, raw_body, signature):
        if not signature or not self.secret_key:
            return False
        expected = hmac.new(
            self.secret_key.encode('utf-8'),
            raw_body or b'',
            hashlib.sha512
        ).hexdigest()
        return hmac.compare_digest(expected, signature.strip())


def init_gateway(app):
    """Install the configured gateway on the app."""
    app.extensions['payment_gateway'] = PaystackGateway(
        secret_key=app.config.get('PAYSTACK_SECRET_KEY'),
        base_url=app.config.get('PAYSTACK_BASE_URL', 'https://api.paystack.co'),
        timeout=app.config.get('PAYSTACK_TIMEOUT', 15),
    )


def get_gateway() -> PaymentGateway:
    return current_app.extensions['payment_gateway']
