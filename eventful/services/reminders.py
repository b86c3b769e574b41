"""
Service for event reminders.
Schedules reminders for ticket holders and finds the ones that are due.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from eventful.errors import BadRequest, Conflict
from eventful.extensions import db
from eventful.models.event import ReminderUnit, REMINDER_DELTAS
from eventful.models.reminder import Reminder

logger = logging.getLogger(__name__)


def calculate_reminder_time(event_date, value, unit):
    """
    Datetime at which to remind, `value` `unit`s before the event.

    Args:
        event_date: Event start datetime
        value: Positive offset
        unit: ReminderUnit or its string value

    Returns:
        datetime
    """
    return event_date - REMINDER_DELTAS[ReminderUnit(unit)](value)


def build_reminder_message(event_title, value, unit):
    unit = ReminderUnit(unit)
    return f'Reminder: "{event_title}" is happening in {value} {unit.value.lower()}!'


def schedule_reminder(user_id, event, value, unit):
    """
    Create a reminder for one attendee.

    Raises:
        BadRequest: the reminder time is already in the past
        Conflict: the same reminder already exists
    """
    unit = ReminderUnit(unit)
    remind_at = calculate_reminder_time(event.date, value, unit)
    if remind_at <= datetime.utcnow():
        raise BadRequest('Reminder time must be in the future')

    if Reminder.exists_for(user_id, event.id, value, unit):
        raise Conflict('This reminder already exists')

    reminder = Reminder(
        user_id=user_id,
        event_id=event.id,
        value=value,
        unit=unit,
        remind_at=remind_at,
        message=build_reminder_message(event.title, value, unit),
    )
    db.session.add(reminder)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict('This reminder already exists')
    return reminder


def schedule_default_reminder(ticket):
    """
    Schedule the event's default reminder for a new ticket holder.

    Returns the Reminder, or None when the event has no default, the
    time has already passed, or the holder already has it.
    """
    event = ticket.event
    if not event.default_reminder_value or not event.default_reminder_unit:
        return None
    try:
        return schedule_reminder(ticket.user_id, event, event.default_reminder_value, event.default_reminder_unit)
    except (BadRequest, Conflict) as e:
        logger.info(f"Default reminder skipped for ticket {ticket.id}: {e.message}")
        return None


def get_due_reminders(now=None):
    """
    Unsent reminders whose time has come.

    Returns:
        list: Reminder objects
    """
    return Reminder.due(now)


def deliver_reminder(reminder):
    """
    Email and notify the attendee, then flag the reminder as sent.

    Returns:
        bool: True if the email went out and the reminder was marked sent
    """
    from eventful.utils.email import send_event_reminder_email
    from eventful.utils.notifications import notify_reminder

    if not send_event_reminder_email(reminder):
        return False

    try:
        notify_reminder(reminder)
    except Exception as e:
        db.session.rollback()
        logger.error(f"In-app reminder failed for reminder {reminder.id}: {e}")

    reminder.mark_sent()
    db.session.commit()
    return True
