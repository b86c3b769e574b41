"""
Database models.
"""
from eventful.models.user import User, UserRole
from eventful.models.event import Event, ReminderUnit
from eventful.models.ticket_tier import TicketTier
from eventful.models.promo_code import PromoCode, DiscountType
from eventful.models.payment import Payment, PaymentStatus, FailureReason
from eventful.models.ticket import Ticket, TicketStatus
from eventful.models.waitlist import WaitlistEntry
from eventful.models.notification import Notification, NotificationType, NotificationCategory
from eventful.models.reminder import Reminder

__all__ = [
    'User', 'UserRole',
    'Event', 'ReminderUnit',
    'TicketTier',
    'PromoCode', 'DiscountType',
    'Payment', 'PaymentStatus', 'FailureReason',
    'Ticket', 'TicketStatus',
    'WaitlistEntry',
    'Notification', 'NotificationType', 'NotificationCategory',
    'Reminder',
]
