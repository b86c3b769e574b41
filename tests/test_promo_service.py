"""
Tests for promo code pricing, validation and creator-side management.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from eventful.errors import BadRequest, Conflict, Forbidden, NotFound
from eventful.extensions import db
from eventful.models import PromoCode, DiscountType
from eventful.services.promo_service import PromoService
from tests.conftest import auth_headers


# =============================================================================
# Discount computation
# =============================================================================

class TestComputeDiscount:
    """Arithmetic only, no database needed."""

    def test_percentage(self):
        promo = PromoCode(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal('20'))
        assert PromoService.compute_discount(promo, 5000) == 1000

    def test_percentage_rounds_half_up(self):
        promo = PromoCode(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal('12.5'))
        assert PromoService.compute_discount(promo, 100) == 13

    def test_full_percentage_makes_ticket_free(self):
        promo = PromoCode(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal('100'))
        assert PromoService.compute_discount(promo, 5000) == 5000

    def test_fixed_amount(self):
        promo = PromoCode(discount_type=DiscountType.FIXED, discount_value=Decimal('1500'))
        assert PromoService.compute_discount(promo, 5000) == 1500

    def test_fixed_amount_capped_at_base_price(self):
        promo = PromoCode(discount_type=DiscountType.FIXED, discount_value=Decimal('7000'))
        assert PromoService.compute_discount(promo, 5000) == 5000


# =============================================================================
# Validation
# =============================================================================

class TestValidateCode:

    def test_valid_code(self, event, make_promo):
        promo = make_promo()
        assert PromoService.validate_code('SAVE20', event).id == promo.id

    def test_lookup_is_case_insensitive(self, event, make_promo):
        make_promo()
        assert PromoService.validate_code(' save20 ', event).code == 'SAVE20'

    def test_unknown_code(self, event):
        with pytest.raises(NotFound, match='Promo code not found'):
            PromoService.validate_code('NOPE', event)

    def test_code_of_another_creator_is_not_found(self, event, make_promo, other_organizer):
        make_promo(creator_id=other_organizer.id)
        with pytest.raises(NotFound):
            PromoService.validate_code('SAVE20', event)

    def test_inactive(self, event, make_promo):
        make_promo(is_active=False)
        with pytest.raises(BadRequest, match='no longer active'):
            PromoService.validate_code('SAVE20', event)

    def test_expired(self, event, make_promo):
        make_promo(expires_at=datetime.utcnow() - timedelta(days=1))
        with pytest.raises(BadRequest, match='expired'):
            PromoService.validate_code('SAVE20', event)

    def test_usage_limit_reached(self, event, make_promo):
        make_promo(max_uses=3, used_count=3)
        with pytest.raises(BadRequest, match='usage limit'):
            PromoService.validate_code('SAVE20', event)

    def test_scoped_to_another_event(self, event, make_event, make_promo):
        other = make_event(title='Other Event')
        make_promo(event_id=other.id)
        with pytest.raises(BadRequest, match='not valid for this event'):
            PromoService.validate_code('SAVE20', event)

    def test_scoped_to_this_event(self, event, make_promo):
        make_promo(event_id=event.id)
        assert PromoService.validate_code('SAVE20', event).event_id == event.id


# =============================================================================
# Pricing
# =============================================================================

class TestPrice:

    def test_without_code(self, event):
        intent = PromoService.price(event)
        assert intent.base_price == 5000
        assert intent.final_price == 5000
        assert intent.discount_amount == 0
        assert intent.promo_code is None
        assert not intent.is_free

    def test_with_code(self, event, make_promo):
        make_promo()
        intent = PromoService.price(event, 'SAVE20')
        assert intent.final_price == 4000
        assert intent.discount_amount == 1000
        assert intent.to_dict()['promo_code'] == 'SAVE20'

    def test_tier_price_is_the_base(self, tiered_event, make_promo):
        make_promo(discount_type=DiscountType.FIXED, discount_value=2500)
        vip = tiered_event.ticket_tiers[1]
        intent = PromoService.price(tiered_event, 'SAVE20', vip)
        assert intent.base_price == 50000
        assert intent.final_price == 47500

    def test_discount_down_to_free(self, event, make_promo):
        make_promo(code='FREEPASS', discount_value=100)
        intent = PromoService.price(event, 'FREEPASS')
        assert intent.final_price == 0
        assert intent.is_free


# =============================================================================
# Usage counting
# =============================================================================

class TestRecordUse:

    def test_increments_used_count(self, make_promo):
        promo = make_promo()
        assert PromoService.record_use(promo.id) is True
        db.session.commit()
        db.session.refresh(promo)
        assert promo.used_count == 1

    def test_refuses_beyond_max_uses(self, make_promo):
        promo = make_promo(max_uses=1)
        assert PromoService.record_use(promo.id) is True
        assert PromoService.record_use(promo.id) is False
        db.session.commit()
        db.session.refresh(promo)
        assert promo.used_count == 1

    def test_unlimited_code(self, make_promo):
        promo = make_promo(max_uses=None, used_count=500)
        assert PromoService.record_use(promo.id) is True


# =============================================================================
# Creator-side management
# =============================================================================

class TestPromoManagement:

    def test_create_stores_uppercase(self, organizer):
        promo = PromoService.create(organizer, 'earlybird', 'PERCENTAGE', Decimal('15'))
        assert promo.code == 'EARLYBIRD'
        assert promo.discount_type == DiscountType.PERCENTAGE
        assert promo.used_count == 0

    def test_duplicate_code_for_same_creator(self, organizer, make_promo):
        make_promo()
        with pytest.raises(Conflict):
            PromoService.create(organizer, 'save20', 'FIXED', Decimal('500'))

    def test_same_code_for_different_creators(self, organizer, other_organizer, make_promo):
        make_promo()
        promo = PromoService.create(other_organizer, 'SAVE20', 'FIXED', Decimal('500'))
        assert promo.creator_id == other_organizer.id

    def test_cannot_scope_to_foreign_event(self, event, other_organizer):
        with pytest.raises(Forbidden):
            PromoService.create(other_organizer, 'MINE', 'FIXED', Decimal('500'), event_id=event.id)

    def test_unknown_event(self, organizer):
        with pytest.raises(NotFound, match='Event not found'):
            PromoService.create(organizer, 'MINE', 'FIXED', Decimal('500'), event_id='missing')

    def test_update_deactivates(self, organizer, make_promo):
        promo = make_promo()
        updated = PromoService.update(promo.id, organizer, is_active=False)
        assert updated.is_active is False

    def test_update_rejects_max_uses_below_used_count(self, organizer, make_promo):
        promo = make_promo(used_count=5)
        with pytest.raises(BadRequest):
            PromoService.update(promo.id, organizer, max_uses=2)

    def test_other_creator_cannot_manage(self, other_organizer, make_promo):
        promo = make_promo()
        with pytest.raises(Forbidden):
            PromoService.delete(promo.id, other_organizer)

    def test_delete(self, organizer, make_promo):
        promo = make_promo()
        promo_id = promo.id
        PromoService.delete(promo_id, organizer)
        assert db.session.get(PromoCode, promo_id) is None


# =============================================================================
# API
# =============================================================================

class TestPromoCodeAPI:

    def test_create(self, client, organizer):
        response = client.post('/api/v1/promo-codes', headers=auth_headers(organizer), json={
            'code': 'launch-10',
            'discount_type': 'percentage',
            'discount_value': 10,
            'max_uses': 50,
        })
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['code'] == 'LAUNCH-10'
        assert data['discount_type'] == 'PERCENTAGE'
        assert data['max_uses'] == 50

    def test_percentage_above_100_rejected(self, client, organizer):
        response = client.post('/api/v1/promo-codes', headers=auth_headers(organizer), json={
            'code': 'TOOMUCH',
            'discount_type': 'PERCENTAGE',
            'discount_value': 150,
        })
        assert response.status_code == 422
        assert 'discount_value' in response.get_json()['error']['details']

    def test_invalid_characters_rejected(self, client, organizer):
        response = client.post('/api/v1/promo-codes', headers=auth_headers(organizer), json={
            'code': 'NO SPACES',
            'discount_type': 'FIXED',
            'discount_value': 100,
        })
        assert response.status_code == 422

    def test_eventee_cannot_create(self, client, buyer):
        response = client.post('/api/v1/promo-codes', headers=auth_headers(buyer), json={
            'code': 'HACK',
            'discount_type': 'FIXED',
            'discount_value': 100,
        })
        assert response.status_code == 403

    def test_list_is_paginated(self, client, organizer, make_promo):
        make_promo(code='ONE')
        make_promo(code='TWO')
        response = client.get('/api/v1/promo-codes', headers=auth_headers(organizer))
        assert response.status_code == 200
        body = response.get_json()
        assert body['meta']['total'] == 2
        assert {p['code'] for p in body['data']} == {'ONE', 'TWO'}

    def test_validate_previews_price(self, client, buyer, event, make_promo):
        make_promo()
        response = client.post('/api/v1/promo-codes/validate', headers=auth_headers(buyer), json={
            'code': 'save20',
            'event_id': event.id,
        })
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data == {'base_price': 5000, 'final_price': 4000, 'discount_amount': 1000, 'promo_code': 'SAVE20'}

    def test_validate_expired_code(self, client, buyer, event, make_promo):
        make_promo(expires_at=datetime.utcnow() - timedelta(hours=1))
        response = client.post('/api/v1/promo-codes/validate', headers=auth_headers(buyer), json={
            'code': 'SAVE20',
            'event_id': event.id,
        })
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'bad_request'
