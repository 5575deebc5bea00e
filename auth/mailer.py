"""
auth/mailer.py -- Password reset email rendering and delivery.

The body is a Jinja2 template (auth/templates/password_reset.txt). Delivery
goes through the Resend API when Settings.resend_api_key is set. Without
it (local dev, tests) the message is not sent and only the recipient is
logged; the link itself is logged only in DEBUG mode.

Failures propagate. POST /auth/forgot-password catches them so the response
never reveals whether an email was attempted.

Layer rule: no imports from api/, practice/, or client/.
"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urlencode

import resend
from jinja2 import Environment, FileSystemLoader, StrictUndefined

from auth.models import User
from core.config import get_settings

logger = logging.getLogger("kairo.auth.mailer")

_templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
    undefined=StrictUndefined,
    autoescape=False,  # plain-text mail
    keep_trailing_newline=True,
)


def build_reset_url(raw_token: str) -> str:
    base = get_settings().public_base_url.rstrip("/")
    return f"{base}/reset-password?{urlencode({'token': raw_token})}"


def render_reset_email(user: User, raw_token: str) -> str:
    """Render the plain-text reset email for user."""
    settings = get_settings()
    return _templates.get_template("password_reset.txt").render(
        first_name=user.first_name,
        email=user.email,
        reset_url=build_reset_url(raw_token),
        expire_minutes=settings.password_reset_expire_seconds // 60,
    )


def send_reset_email(user: User, raw_token: str) -> None:
    """Render and deliver the reset email. Raises on Resend API failure."""
    settings = get_settings()
    body = render_reset_email(user, raw_token)

    if not settings.resend_api_key:
        logger.info("Resend not configured; reset email for user %s not sent", user.id)
        if settings.debug:
            logger.info("Reset link (debug only): %s", build_reset_url(raw_token))
        return

    resend.api_key = settings.resend_api_key
    sent = resend.Emails.send(
        {
            "from": settings.mail_sender,
            "to": [user.email],
            "subject": "Reset your Kairo password",
            "text": body,
        }
    )
    logger.info("Reset email sent to user %s (id=%s)", user.id, sent.get("id"))
