"""
Helper functions for creating in-app notifications.
"""
from eventful.extensions import db
from eventful.models.notification import Notification, NotificationType, NotificationCategory


def create_notification(user_id, title, message=None, type=NotificationType.INFO,
                        category=NotificationCategory.SYSTEM, link=None):
    """
    Create a notification for a user and commit it.

    Args:
        user_id: Recipient user ID
        title: Notification title
        message: Detailed message (optional)
        type: info, success, warning or error
        category: payment, ticket, waitlist, reminder or system
        link: Redirect URL (optional)

    Returns:
        The created Notification
    """
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        category=category,
        link=link
    )
    db.session.add(notification)
    db.session.commit()
    return notification


def notify_user(user, title, message=None, type=NotificationType.INFO,
                category=NotificationCategory.SYSTEM, link=None):
    """Shortcut taking a User object."""
    return create_notification(
        user_id=user.id,
        title=title,
        message=message,
        type=type,
        category=category,
        link=link
    )


def notify_ticket_issued(ticket):
    return notify_user(
        ticket.user,
        title=f'Ticket confirmed: {ticket.event.title}',
        message=f'Your ticket code is {ticket.scan_code}.',
        type=NotificationType.SUCCESS,
        category=NotificationCategory.TICKET,
        link=f'/tickets/{ticket.id}'
    )


def notify_waitlist_spot(entry):
    return notify_user(
        entry.user,
        title=f'Spot Available: {entry.event.title}',
        message='A ticket has been released for an event you are waitlisted for. Book it before it is gone.',
        type=NotificationType.INFO,
        category=NotificationCategory.WAITLIST,
        link=f'/events/{entry.event_id}'
    )


def notify_reminder(reminder):
    return notify_user(
        reminder.user,
        title=f'Reminder: {reminder.event.title}',
        message=reminder.message,
        type=NotificationType.INFO,
        category=NotificationCategory.REMINDER,
        link=f'/events/{reminder.event_id}'
    )
