"""Utility functions for the application."""

from flask import current_app, render_template
from flask_mail import Message

from .extensions import mail


class EmailError(Exception):
    """Raised when an email could not be sent."""

    pass


def send_email(to, subject, template, **kwargs):
    """Render ``template`` with ``kwargs`` and mail it to one recipient.

    Raises:
        EmailError: If the mail server rejects or never receives the message.
    """
    msg = Message(
        subject,
        recipients=[to],
        html=render_template(template, **kwargs),
        sender=current_app.config["MAIL_DEFAULT_SENDER"],
    )
    try:
        mail.send(msg)
    except Exception as e:
        raise EmailError(f"Failed to send email to {to}: {e}") from e
