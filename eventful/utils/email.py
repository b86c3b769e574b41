"""
Email utility module for Eventful.
Handles the transactional emails using Flask-Mailman.
Supports async sending via threading and retry with exponential backoff.
"""
import re
import time
import uuid
import logging
import threading
from flask import render_template, current_app
from flask_mailman import EmailMultiAlternatives

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds (2, 4, 8 with exponential backoff)

SUBJECT_PREFIX = '[Eventful]'


def _recipient_opted_out(recipient):
    from eventful.models.user import User
    user = User.query.filter_by(email=recipient).first()
    return user is not None and not user.receive_emails


def _build_message(subject, recipient, template, **kwargs):
    html_body = render_template(f'email/{template}.html', **kwargs)
    text_body = (render_template(f'email/{template}.txt', **kwargs)
                 if _template_exists(f'email/{template}.txt')
                 else _html_to_text(html_body))

    msg = EmailMultiAlternatives(
        subject=f"{SUBJECT_PREFIX} {subject}",
        body=text_body,
        from_email=current_app.config.get('MAIL_DEFAULT_SENDER', 'noreply@eventful-platform.com'),
        to=[recipient],
    )
    msg.attach_alternative(html_body, 'text/html')
    return msg


def send_email(subject, recipient, template, **kwargs):
    """
    Send an email synchronously with retry logic.

    Args:
        subject: Email subject (will be prefixed with [Eventful])
        recipient: Email address of the recipient
        template: Template name (without .html extension) in templates/email/
        **kwargs: Context variables for the template

    Returns:
        bool: True if email sent successfully, False otherwise
    """
    if _recipient_opted_out(recipient):
        logger.info(f"[EMAIL] Skipped - {recipient} has emails disabled")
        return True

    email_id = str(uuid.uuid4())[:8]
    logger.info(f"[EMAIL:{email_id}] Sending to {recipient} - {subject} (template: {template})")

    try:
        msg = _build_message(subject, recipient, template, **kwargs)
    except Exception as e:
        logger.error(f"[EMAIL:{email_id}] Failed to build message for {recipient}: {e}")
        return False

    return _send_with_retry(msg, email_id, recipient)


def _send_with_retry(msg, email_id, recipient):
    """
    Send a prepared message with exponential backoff retry.

    Returns:
        bool: True if sent successfully after retries
    """
    last_error = None
    for attempt in range(1, MAX_RETRIES + 1):
        try:
            msg.send()
            logger.info(f"[EMAIL:{email_id}] Sent to {recipient}"
                        + (f" (attempt {attempt})" if attempt > 1 else ""))
            return True
        except Exception as e:
            last_error = e
            if attempt < MAX_RETRIES:
                delay = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                logger.warning(
                    f"[EMAIL:{email_id}] Attempt {attempt}/{MAX_RETRIES} failed "
                    f"for {recipient}: {e}, retrying in {delay}s"
                )
                time.sleep(delay)
            else:
                logger.error(
                    f"[EMAIL:{email_id}] Giving up after {MAX_RETRIES} attempts "
                    f"for {recipient}: {last_error}"
                )
    return False


def send_async_email(subject, recipient, template, **kwargs):
    """
    Send email in a background thread (fire-and-forget).

    Templates are rendered in the caller's context before dispatching, so
    model attributes are read while the session is still usable. With
    MAIL_ASYNC disabled (tests) the send happens inline.

    Returns:
        bool: True once dispatched, False if the message could not be built
    """
    if _recipient_opted_out(recipient):
        logger.info(f"[EMAIL] Skipped (async) - {recipient} has emails disabled")
        return True

    email_id = str(uuid.uuid4())[:8]

    try:
        msg = _build_message(subject, recipient, template, **kwargs)
    except Exception as e:
        logger.error(f"[EMAIL:{email_id}] Failed to render template (async) for {recipient}: {e}")
        return False

    if not current_app.config.get('MAIL_ASYNC', True):
        return _send_with_retry(msg, email_id, recipient)

    app = current_app._get_current_object()

    def _send_in_thread():
        with app.app_context():
            _send_with_retry(msg, email_id, recipient)

    thread = threading.Thread(target=_send_in_thread, daemon=True)
    thread.start()
    logger.info(f"[EMAIL:{email_id}] Dispatched async for {recipient} - {subject}")
    return True


def send_ticket_confirmation_email(ticket):
    """Ticket confirmation with the scan code and credential."""
    event = ticket.event
    payment = ticket.payment
    return send_async_email(
        subject=f'Your ticket for {event.title}',
        recipient=ticket.user.email,
        template='ticket_confirmation',
        user=ticket.user,
        event=event,
        ticket=ticket,
        tier=ticket.ticket_tier,
        payment=payment,
        ticket_url=f"{current_app.config.get('CLIENT_URL', '')}/tickets/{ticket.id}",
    )


def send_waitlist_spot_email(entry):
    """Tell a waitlisted buyer that a spot has opened up."""
    event = entry.event
    return send_async_email(
        subject=f'Spot Available: {event.title}',
        recipient=entry.user.email,
        template='waitlist_spot',
        user=entry.user,
        event=event,
        entry=entry,
        event_url=f"{current_app.config.get('CLIENT_URL', '')}/events/{event.id}",
    )


def send_event_reminder_email(reminder):
    """Deliver a scheduled event reminder."""
    event = reminder.event
    return send_email(
        subject=f'Reminder: {event.title}',
        recipient=reminder.user.email,
        template='event_reminder',
        user=reminder.user,
        event=event,
        reminder=reminder,
    )


def _template_exists(template_name):
    """Check if a template file exists."""
    try:
        current_app.jinja_env.get_template(template_name)
        return True
    except Exception:
        return False


def _html_to_text(html_content):
    """
    Basic HTML to plain text conversion.
    Strips HTML tags for plain text email version.
    """
    text = re.sub(r'<[^>]+>', '', html_content)
    text = re.sub(r'\s+', ' ', text).strip()
    return text
