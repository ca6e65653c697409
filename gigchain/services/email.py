# services/email.py
# Notification email. Falls back to logging when SMTP_* env vars are missing.
# Sending is best-effort: failures are logged and never reach the caller.

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional

from .. import config

log = logging.getLogger("gigchain.email")


def send_email(to: Optional[str], subject: str, body: str) -> bool:
    """Returns True when the message was handed to the SMTP server (or logged in dev mode)."""
    if not to:
        log.info("[EMAIL] skip: no recipient for %r", subject)
        return False

    host = config.smtp_host()
    if not host:
        # DEV fallback: just log it.
        log.info("[EMAIL-DEV] to=%s subject=%s body=%s", to, subject, body)
        return True

    msg = EmailMessage()
    msg["From"] = config.smtp_from()
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        ctx = ssl.create_default_context()
        with smtplib.SMTP_SSL(host, config.smtp_port(), context=ctx, timeout=15) as smtp:
            if config.smtp_user():
                smtp.login(config.smtp_user(), config.smtp_password())
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        log.warning("[EMAIL] send to %s failed: %s", to, e)
        return False
    log.info("[EMAIL] sent %r to %s", subject, to)
    return True


# ------------------------------ notifications ------------------------------

def application_received(to: Optional[str], *, client_name: str, freelancer_name: str, gig_title: str, gig_ref_id: str) -> bool:
    return send_email(
        to,
        f'New Application for "{gig_title}"',
        f"Hi {client_name},\n\n{freelancer_name} applied to your gig \"{gig_title}\".\n"
        f"Review it at {config.frontend_url()}/gigs/{gig_ref_id}\n",
    )


def application_accepted(to: Optional[str], *, freelancer_name: str, gig_title: str, gig_ref_id: str) -> bool:
    return send_email(
        to,
        f'Your application for "{gig_title}" was accepted!',
        f"Hi {freelancer_name},\n\nYour application was accepted.\n"
        f"{config.frontend_url()}/gigs/{gig_ref_id}\n",
    )


def invitation_received(to: Optional[str], *, freelancer_name: str, client_name: str, gig_title: str, gig_ref_id: str) -> bool:
    return send_email(
        to,
        f"You've been invited to work on \"{gig_title}\"",
        f"Hi {freelancer_name},\n\n{client_name} invited you to \"{gig_title}\".\n"
        f"{config.frontend_url()}/gigs/{gig_ref_id}\n",
    )


def invitation_accepted(to: Optional[str], *, client_name: str, freelancer_name: str, gig_title: str, gig_ref_id: str) -> bool:
    return send_email(
        to,
        f'{freelancer_name} accepted your invitation for "{gig_title}"',
        f"Hi {client_name},\n\n{freelancer_name} accepted your invitation.\n"
        f"{config.frontend_url()}/gigs/{gig_ref_id}\n",
    )


def escrow_released(to: Optional[str], *, freelancer_name: str, gig_title: str, xp_awarded: int) -> bool:
    return send_email(
        to,
        f'Payment released for "{gig_title}"',
        f"Hi {freelancer_name},\n\nThe escrow for \"{gig_title}\" was released to you. "
        f"You earned {xp_awarded} XP.\n",
    )
