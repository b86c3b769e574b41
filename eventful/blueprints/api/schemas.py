"""
Marshmallow schemas for API serialization and request validation.
"""
from datetime import timezone

from marshmallow import Schema, fields, validate, validates_schema, pre_load, post_load, ValidationError

from eventful.models.promo_code import DiscountType


# ── Shared helpers ──────────────────────────────────────────

class BaseSchema(Schema):
    """Base schema with common config."""
    class Meta:
        ordered = True


def _enum_value(value):
    return value.value if value is not None else None


def _naive_utc(value):
    """Stored datetimes are naive UTC."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ── User ────────────────────────────────────────────────────

class UserMinimalSchema(BaseSchema):
    """Minimal user representation (for nested references)."""
    id = fields.Int(dump_only=True)
    first_name = fields.Str()
    last_name = fields.Str()
    full_name = fields.Str(dump_only=True)


class UserSchema(BaseSchema):
    """Full user representation (for /me endpoint)."""
    id = fields.Int(dump_only=True)
    email = fields.Email()
    first_name = fields.Str()
    last_name = fields.Str()
    full_name = fields.Str(dump_only=True)
    role = fields.Method('get_role')
    role_label = fields.Str(dump_only=True)
    is_active = fields.Bool()
    created_at = fields.DateTime(format='iso')

    def get_role(self, obj):
        return _enum_value(obj.role)


# ── Event / Tier ────────────────────────────────────────────

class EventMinimalSchema(BaseSchema):
    id = fields.Str(dump_only=True)
    title = fields.Str()
    date = fields.DateTime(format='iso')
    location = fields.Str()


class TicketTierMinimalSchema(BaseSchema):
    id = fields.Str(dump_only=True)
    name = fields.Str()
    price = fields.Int()


# ── Payments ────────────────────────────────────────────────

class PaymentSchema(BaseSchema):
    """Payment ledger row."""
    id = fields.Str(dump_only=True)
    reference = fields.Str()
    amount = fields.Int()
    discount_amount = fields.Int()
    status = fields.Method('get_status')
    failure_reason = fields.Str(allow_none=True)
    event_id = fields.Str()
    ticket_tier_id = fields.Str(allow_none=True)
    authorization_url = fields.Str(allow_none=True)
    paid_at = fields.DateTime(format='iso', allow_none=True)
    created_at = fields.DateTime(format='iso')

    def get_status(self, obj):
        return _enum_value(obj.status)


class CreatorPaymentSchema(PaymentSchema):
    """Payment as seen by the event organizer."""
    buyer = fields.Nested(UserMinimalSchema, attribute='user', dump_only=True)
    event = fields.Nested(EventMinimalSchema, dump_only=True)


class InitializePaymentSchema(BaseSchema):
    event_id = fields.Str(required=True, validate=validate.Length(min=1))
    ticket_type_id = fields.Str(load_default=None, allow_none=True)
    promo_code = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=20))


# ── Tickets ─────────────────────────────────────────────────

class TicketSchema(BaseSchema):
    """Ticket with its scan code and signed credential."""
    id = fields.Str(dump_only=True)
    scan_code = fields.Str()
    credential = fields.Str()
    status = fields.Method('get_status')
    event = fields.Nested(EventMinimalSchema, dump_only=True)
    ticket_tier = fields.Nested(TicketTierMinimalSchema, dump_only=True, allow_none=True)
    payment_reference = fields.Method('get_payment_reference')
    scanned_at = fields.DateTime(format='iso', allow_none=True)
    cancelled_at = fields.DateTime(format='iso', allow_none=True)
    created_at = fields.DateTime(format='iso')

    def get_status(self, obj):
        return _enum_value(obj.status)

    def get_payment_reference(self, obj):
        return obj.payment.reference if obj.payment else None


class ScannedTicketSchema(BaseSchema):
    """Check-in result for the door staff."""
    id = fields.Str(dump_only=True)
    scan_code = fields.Str()
    status = fields.Method('get_status')
    holder = fields.Nested(UserMinimalSchema, attribute='user', dump_only=True)
    event = fields.Nested(EventMinimalSchema, dump_only=True)
    ticket_tier = fields.Nested(TicketTierMinimalSchema, dump_only=True, allow_none=True)
    scanned_at = fields.DateTime(format='iso', allow_none=True)

    def get_status(self, obj):
        return _enum_value(obj.status)


class VerifyTicketSchema(BaseSchema):
    credential = fields.Str(required=True, validate=validate.Length(min=1))


# ── Waitlist ────────────────────────────────────────────────

class WaitlistEntrySchema(BaseSchema):
    id = fields.Str(dump_only=True)
    event_id = fields.Str()
    position = fields.Int()
    notified = fields.Bool()
    created_at = fields.DateTime(format='iso')


# ── Notifications ───────────────────────────────────────────

class NotificationSchema(BaseSchema):
    id = fields.Int(dump_only=True)
    type = fields.Str()
    category = fields.Str()
    title = fields.Str()
    message = fields.Str(allow_none=True)
    link = fields.Str(allow_none=True)
    is_read = fields.Bool()
    created_at = fields.DateTime(format='iso')
    read_at = fields.DateTime(format='iso', allow_none=True)


# ── Promo codes ─────────────────────────────────────────────

class PromoCodeSchema(BaseSchema):
    id = fields.Str(dump_only=True)
    code = fields.Str()
    discount_type = fields.Method('get_discount_type')
    discount_value = fields.Decimal(as_string=True)
    max_uses = fields.Int(allow_none=True)
    used_count = fields.Int()
    expires_at = fields.DateTime(format='iso', allow_none=True)
    is_active = fields.Bool()
    event_id = fields.Str(allow_none=True)
    created_at = fields.DateTime(format='iso')

    def get_discount_type(self, obj):
        return _enum_value(obj.discount_type)


class PromoCodeCreateSchema(BaseSchema):
    code = fields.Str(required=True, validate=[
        validate.Length(min=3, max=20),
        validate.Regexp(r'^[A-Z0-9_-]+$', error='Code may only contain letters, digits, "_" and "-".'),
    ])
    discount_type = fields.Str(required=True, validate=validate.OneOf([t.value for t in DiscountType]))
    discount_value = fields.Decimal(required=True, places=2, validate=validate.Range(min=0, min_inclusive=False))
    max_uses = fields.Int(load_default=None, allow_none=True, validate=validate.Range(min=1))
    expires_at = fields.DateTime(load_default=None, allow_none=True)
    event_id = fields.Str(load_default=None, allow_none=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            if isinstance(data.get('code'), str):
                data['code'] = data['code'].strip().upper()
            if isinstance(data.get('discount_type'), str):
                data['discount_type'] = data['discount_type'].strip().upper()
        return data

    @validates_schema
    def validate_percentage(self, data, **kwargs):
        if data.get('discount_type') == DiscountType.PERCENTAGE.value \
                and data.get('discount_value') is not None and data['discount_value'] > 100:
            raise ValidationError('Percentage discount cannot exceed 100.', field_name='discount_value')

    @post_load
    def to_naive_utc(self, data, **kwargs):
        data['expires_at'] = _naive_utc(data.get('expires_at'))
        return data


class PromoCodeUpdateSchema(BaseSchema):
    is_active = fields.Bool()
    max_uses = fields.Int(allow_none=True, validate=validate.Range(min=1))
    expires_at = fields.DateTime(allow_none=True)

    @post_load
    def to_naive_utc(self, data, **kwargs):
        if 'expires_at' in data:
            data['expires_at'] = _naive_utc(data['expires_at'])
        return data


class PromoValidateSchema(BaseSchema):
    code = fields.Str(required=True, validate=validate.Length(min=1, max=20))
    event_id = fields.Str(required=True, validate=validate.Length(min=1))
    ticket_type_id = fields.Str(load_default=None, allow_none=True)


# ── Auth ────────────────────────────────────────────────────

class LoginSchema(BaseSchema):
    email = fields.Email(required=True)
    password = fields.Str(required=True, validate=validate.Length(min=1))


class RefreshSchema(BaseSchema):
    refresh_token = fields.Str(required=True, validate=validate.Length(min=1))
