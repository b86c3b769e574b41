"""
Promo engine.
Prices a purchase against an optional discount code, and lets creators
manage their codes.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from eventful.errors import BadRequest, Conflict, Forbidden, NotFound
from eventful.extensions import db
from eventful.models.event import Event
from eventful.models.promo_code import PromoCode, DiscountType

logger = logging.getLogger(__name__)


@dataclass
class PricedIntent:
    """The price a buyer will be charged for one ticket."""
    base_price: int
    final_price: int
    discount_amount: int
    promo_code: Optional[PromoCode] = None

    @property
    def is_free(self):
        return self.final_price == 0

    def to_dict(self):
        return {
            'base_price': self.base_price,
            'final_price': self.final_price,
            'discount_amount': self.discount_amount,
            'promo_code': self.promo_code.code if self.promo_code else None,
        }


class PromoService:
    """Discount codes: validation, pricing and creator-side management."""

    @staticmethod
    def compute_discount(promo: PromoCode, base_price: int) -> int:
        """
        Discount in the major unit for a given base price.

        Percentages round half up; fixed amounts never exceed the base price.
        """
        value = Decimal(str(promo.discount_value))
        base = Decimal(base_price)
        if promo.discount_type == DiscountType.PERCENTAGE:
            discount = (base * value / Decimal(100)).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
        else:
            discount = min(value, base).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
        return int(min(discount, base))

    @staticmethod
    def validate_code(code: str, event: Event) -> PromoCode:
        """Find a usable code for the event or raise."""
        promo = PromoCode.find_for_creator(code, event.creator_id)
        if promo is None:
            raise NotFound('Promo code not found')
        if not promo.is_active:
            raise BadRequest('This promo code is no longer active')
        if promo.is_expired:
            raise BadRequest('This promo code has expired')
        if promo.is_exhausted:
            raise BadRequest('This promo code has reached its usage limit')
        if promo.event_id is not None and promo.event_id != event.id:
            raise BadRequest('This promo code is not valid for this event')
        return promo

    @staticmethod
    def price(event: Event, code: Optional[str] = None, tier=None) -> PricedIntent:
        """Base price from the tier (or event), discounted by the code if given."""
        base_price = tier.price if tier is not None else event.price
        base_price = int(base_price or 0)

        if not code:
            return PricedIntent(base_price=base_price, final_price=base_price, discount_amount=0)

        promo = PromoService.validate_code(code, event)
        discount = PromoService.compute_discount(promo, base_price)
        return PricedIntent(
            base_price=base_price,
            final_price=max(0, base_price - discount),
            discount_amount=discount,
            promo_code=promo,
        )

    @staticmethod
    def record_use(promo_code_id) -> bool:
        """
        Count one use of a code. Conditional on the usage limit.

        Runs inside the caller's transaction; returns False when the limit
        was reached in the meantime.
        """
        query = PromoCode.query.filter(PromoCode.id == promo_code_id)
        query = query.filter(or_(
            PromoCode.max_uses.is_(None),
            PromoCode.used_count < PromoCode.max_uses
        ))
        rows = query.update({PromoCode.used_count: PromoCode.used_count + 1}, synchronize_session=False)
        return rows == 1

    # ------------------------------------------------------------------
    # Creator-side management
    # ------------------------------------------------------------------

    @staticmethod
    def create(creator, code, discount_type, discount_value, max_uses=None,
               expires_at=None, event_id=None) -> PromoCode:
        if event_id:
            event = db.session.get(Event, event_id)
            if event is None:
                raise NotFound('Event not found')
            if event.creator_id != creator.id:
                raise Forbidden('You can only create promo codes for your own events')

        code = code.strip().upper()
        if PromoCode.query.filter_by(code=code, creator_id=creator.id).first():
            raise Conflict('You already have a promo code with this code')

        promo = PromoCode(
            code=code,
            discount_type=DiscountType(discount_type),
            discount_value=discount_value,
            max_uses=max_uses,
            expires_at=expires_at,
            event_id=event_id,
            creator_id=creator.id,
        )
        db.session.add(promo)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict('You already have a promo code with this code')

        logger.info(f"Promo code {promo.code} created by user {creator.id}")
        return promo

    @staticmethod
    def get_owned(promo_id, creator) -> PromoCode:
        promo = db.session.get(PromoCode, promo_id)
        if promo is None:
            raise NotFound('Promo code not found')
        if promo.creator_id != creator.id:
            raise Forbidden('You can only manage your own promo codes')
        return promo

    @staticmethod
    def list_for_creator(creator):
        return PromoCode.query.filter_by(creator_id=creator.id).order_by(PromoCode.created_at.desc())

    @staticmethod
    def update(promo_id, creator, **changes) -> PromoCode:
        promo = PromoService.get_owned(promo_id, creator)

        if 'max_uses' in changes and changes['max_uses'] is not None \
                and changes['max_uses'] < (promo.used_count or 0):
            raise BadRequest('max_uses cannot be lower than the number of times the code was used')

        for field in ('is_active', 'max_uses', 'expires_at'):
            if field in changes:
                setattr(promo, field, changes[field])
        promo.updated_at = datetime.utcnow()
        db.session.commit()
        return promo

    @staticmethod
    def delete(promo_id, creator):
        promo = PromoService.get_owned(promo_id, creator)
        db.session.delete(promo)
        db.session.commit()
        logger.info(f"Promo code {promo_id} deleted by user {creator.id}")
