"""
Tests for the Paystack adapter (HTTP calls mocked) and webhook parsing.
"""
import hashlib
import hmac
import json
from datetime import datetime
from unittest.mock import patch, MagicMock

import pytest
import requests

from eventful.errors import BadRequest, GatewayError
from eventful.services.gateway import PaystackGateway, parse_paid_at

SECRET = 'sk_test_secret'


def paystack_response(body, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f'{status_code} Error')
    return response


@pytest.fixture
def paystack():
    return PaystackGateway(secret_key=SECRET, base_url='https://api.paystack.test/', timeout=5)


# =============================================================================
# Initialize
# =============================================================================

class TestInitializeTransaction:

    @patch('eventful.services.gateway.requests.request')
    def test_amount_sent_in_minor_unit(self, mock_request, paystack):
        mock_request.return_value = paystack_response({
            'status': True,
            'data': {
                'reference': 'EVT-1-abc',
                'authorization_url': 'https://checkout.paystack.com/xyz',
                'access_code': 'xyz',
            },
        })

        session = paystack.initialize_transaction(
            email='buyer@test.com', amount=5000, reference='EVT-1-abc',
            callback_url='http://localhost/payment/callback?reference=EVT-1-abc',
            metadata={'event_id': 'e1'},
        )

        assert session.authorization_url == 'https://checkout.paystack.com/xyz'
        assert session.access_code == 'xyz'

        args, kwargs = mock_request.call_args
        assert args == ('POST', 'https://api.paystack.test/transaction/initialize')
        assert kwargs['json']['amount'] == 500000
        assert kwargs['json']['metadata'] == {'event_id': 'e1'}
        assert kwargs['headers']['Authorization'] == f'Bearer {SECRET}'
        assert kwargs['timeout'] == 5

    @patch('eventful.services.gateway.requests.request')
    def test_network_error(self, mock_request, paystack):
        mock_request.side_effect = requests.ConnectionError('unreachable')
        with pytest.raises(GatewayError):
            paystack.initialize_transaction('buyer@test.com', 5000, 'EVT-1-abc', 'http://localhost')

    @patch('eventful.services.gateway.requests.request')
    def test_http_error(self, mock_request, paystack):
        mock_request.return_value = paystack_response({'status': False}, status_code=401)
        with pytest.raises(GatewayError):
            paystack.initialize_transaction('buyer@test.com', 5000, 'EVT-1-abc', 'http://localhost')

    @patch('eventful.services.gateway.requests.request')
    def test_rejected_by_gateway(self, mock_request, paystack):
        mock_request.return_value = paystack_response({'status': False, 'message': 'Duplicate Transaction Reference'})
        with pytest.raises(GatewayError, match='Duplicate Transaction Reference'):
            paystack.initialize_transaction('buyer@test.com', 5000, 'EVT-1-abc', 'http://localhost')

    @patch('eventful.services.gateway.requests.request')
    def test_incomplete_response(self, mock_request, paystack):
        mock_request.return_value = paystack_response({'status': True, 'data': {'reference': 'EVT-1-abc'}})
        with pytest.raises(GatewayError):
            paystack.initialize_transaction('buyer@test.com', 5000, 'EVT-1-abc', 'http://localhost')


# =============================================================================
# Verify
# =============================================================================

class TestVerifyTransaction:

    @patch('eventful.services.gateway.requests.request')
    def test_success(self, mock_request, paystack):
        mock_request.return_value = paystack_response({
            'status': True,
            'data': {'status': 'success', 'paid_at': '2026-10-19T10:15:00.000Z', 'amount': 500000},
        })

        transaction = paystack.verify_transaction('EVT-1-abc')

        assert mock_request.call_args[0] == ('GET', 'https://api.paystack.test/transaction/verify/EVT-1-abc')
        assert transaction.reference == 'EVT-1-abc'
        assert transaction.is_success
        assert transaction.paid_at == datetime(2026, 10, 19, 10, 15)

    @patch('eventful.services.gateway.requests.request')
    def test_in_progress(self, mock_request, paystack):
        mock_request.return_value = paystack_response({'status': True, 'data': {'status': 'ongoing'}})
        transaction = paystack.verify_transaction('EVT-1-abc')
        assert transaction.is_in_progress
        assert not transaction.is_success

    @patch('eventful.services.gateway.requests.request')
    def test_invalid_json(self, mock_request, paystack):
        response = paystack_response({})
        response.json.side_effect = ValueError('no json')
        mock_request.return_value = response
        with pytest.raises(GatewayError):
            paystack.verify_transaction('EVT-1-abc')


# =============================================================================
# Webhooks
# =============================================================================

class TestWebhookSignature:

    def test_valid(self, paystack):
        body = b'{"event":"charge.success"}'
        signature = hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()
        assert paystack.verify_webhook_signature(body, signature)

    def test_invalid(self, paystack):
        assert not paystack.verify_webhook_signature(b'{}', 'f' * 128)

    def test_missing(self, paystack):
        assert not paystack.verify_webhook_signature(b'{}', None)

    def test_no_secret_configured(self):
        gateway = PaystackGateway(secret_key=None)
        body = b'{}'
        signature = hmac.new(b'', body, hashlib.sha512).hexdigest()
        assert not gateway.verify_webhook_signature(body, signature)


class TestParseWebhook:

    def test_charge_success(self, paystack):
        body = json.dumps({
            'event': 'charge.success',
            'data': {'reference': 'EVT-1-abc', 'paid_at': '2026-10-19T10:15:00Z'},
        }).encode()

        webhook = paystack.parse_webhook(body)

        assert webhook.event == 'charge.success'
        assert webhook.transaction.reference == 'EVT-1-abc'
        assert webhook.transaction.is_success

    def test_without_reference(self, paystack):
        webhook = paystack.parse_webhook(b'{"event": "charge.success", "data": {}}')
        assert webhook.transaction is None

    def test_not_json(self, paystack):
        with pytest.raises(BadRequest):
            paystack.parse_webhook(b'<xml/>')

    def test_not_an_object(self, paystack):
        with pytest.raises(BadRequest):
            paystack.parse_webhook(b'[1, 2]')


class TestParsePaidAt:

    def test_offset_converted_to_utc(self):
        assert parse_paid_at('2026-10-19T11:15:00+01:00') == datetime(2026, 10, 19, 10, 15)

    def test_missing_or_garbage(self):
        assert parse_paid_at(None) is None
        assert parse_paid_at('yesterday') is None
