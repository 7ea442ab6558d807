import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from fastapi import BackgroundTasks
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail

from ..config import settings

logger = logging.getLogger(__name__)

MAX_LOG_RECIPIENTS = 3
MAX_SUBJECT_PREVIEW = 12


@dataclass
class SendResult:
    backend: str
    status_code: Optional[int]
    request_id: Optional[str]
    error: Optional[str]


def _mask_email(value: str) -> str:
    if "@" not in value:
        return "***"
    name, domain = value.split("@", 1)
    if not name:
        masked = "***"
    elif len(name) <= 2:
        masked = f"{name[0]}***"
    else:
        masked = f"{name[0]}***{name[-1]}"
    return f"{masked}@{domain}"


def _mask_subject(subject: str) -> str:
    if not subject:
        return ""
    preview = subject[:MAX_SUBJECT_PREVIEW]
    return f"{preview}... (len={len(subject)})"


def _backend_name() -> str:
    return (settings.email_backend or "local").strip().strip("'\"").lower()


def _normalize_recipients(recipients: Iterable[str]) -> List[str]:
    normalized: List[str] = []
    seen = set()
    for email in recipients:
        if not email:
            continue
        cleaned = email.strip()
        if not cleaned:
            continue
        lowered = cleaned.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        normalized.append(cleaned)
    return normalized


def _resolve_sender() -> Tuple[str, str]:
    from_address = settings.email_from_address or "no-reply@assocportal.local"
    display_name = settings.email_from_name or "Association Portal"
    return from_address, display_name


def _write_local_email(subject: str, body: str, recipients: List[str]) -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    safe_subject = "".join(ch for ch in subject if ch.isalnum() or ch in (" ", "_", "-")).strip() or "email"
    filename = f"{timestamp}_{safe_subject.replace(' ', '_')}.txt"
    output_dir = Path(settings.email_output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / filename
    contents = "\n".join(
        [
            f"Subject: {subject}",
            f"Recipients: {', '.join(recipients)}",
            "",
            body,
        ]
    )
    path.write_text(contents)
    logger.info("[LOCAL EMAIL] %s", path)
    return str(path)


def _send_via_sendgrid(subject: str, body: str, recipients: List[str]) -> SendResult:
    from_address, display_name = _resolve_sender()
    if not settings.sendgrid_api_key:
        raise RuntimeError("SendGrid backend requires SENDGRID_API_KEY.")

    message = Mail(
        from_email=Email(email=from_address, name=display_name),
        to_emails=recipients,
        subject=subject,
        plain_text_content=body,
    )
    reply_to = settings.email_reply_to or from_address
    if reply_to:
        message.reply_to = Email(email=reply_to)
    client = SendGridAPIClient(settings.sendgrid_api_key)
    response = client.send(message)

    request_id = None
    if isinstance(response.headers, dict):
        request_id = response.headers.get("X-Message-Id") or response.headers.get("X-Request-Id")
    logger.info(
        "Sent email via SendGrid to %d recipients (status=%s request_id=%s).",
        len(recipients),
        response.status_code,
        request_id,
    )
    return SendResult(backend="sendgrid", status_code=response.status_code, request_id=request_id, error=None)


def _send_via_smtp(subject: str, body: str, recipients: List[str]) -> SendResult:
    if not settings.email_host:
        raise RuntimeError("SMTP backend requires EMAIL_HOST.")
    from_address, display_name = _resolve_sender()

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = formataddr((display_name, from_address))
    message["To"] = ", ".join(recipients)
    reply_to = settings.email_reply_to or from_address
    if reply_to:
        message["Reply-To"] = reply_to
    message.set_content(body)

    context = ssl.create_default_context()
    with smtplib.SMTP(settings.email_host, settings.email_port or 587) as connection:
        connection.ehlo()
        if settings.email_use_tls:
            connection.starttls(context=context)
            connection.ehlo()
        if settings.email_host_user and settings.email_host_password:
            connection.login(settings.email_host_user, settings.email_host_password)
        connection.send_message(message)
    logger.info("Sent email via SMTP to %d recipients.", len(recipients))
    return SendResult(backend="smtp", status_code=250, request_id=None, error=None)


def _log_send_attempt(backend: str, subject: str, recipients: List[str]) -> None:
    masked_recipients = [_mask_email(addr) for addr in recipients[:MAX_LOG_RECIPIENTS]]
    if len(recipients) > MAX_LOG_RECIPIENTS:
        masked_recipients.append(f"+{len(recipients) - MAX_LOG_RECIPIENTS} more")
    logger.info(
        "Dispatching email backend=%s to=%s subject=%s",
        backend,
        masked_recipients,
        _mask_subject(subject),
    )


def send_email(subject: str, body: str, recipients: Iterable[str]) -> SendResult:
    """Dispatch one message through the configured backend. Raises on failure."""
    recipient_list = _normalize_recipients(recipients)
    backend = _backend_name()
    if not recipient_list:
        logger.info("Email dispatch skipped: no recipients (subject=%s).", _mask_subject(subject))
        return SendResult(backend=backend, status_code=None, request_id=None, error="No recipients provided.")

    _log_send_attempt(backend, subject, recipient_list)
    if backend == "sendgrid":
        return _send_via_sendgrid(subject, body, recipient_list)
    if backend == "smtp":
        return _send_via_smtp(subject, body, recipient_list)
    if backend != "local":
        logger.warning("Unknown EMAIL_BACKEND '%s'. Defaulting to local stub.", backend)
    _write_local_email(subject, body, recipient_list)
    return SendResult(backend="local", status_code=200, request_id=None, error=None)


def deliver_best_effort(subject: str, body: str, recipients: List[str]) -> Optional[SendResult]:
    """Background task body: failures are logged and dropped, never retried."""
    try:
        return send_email(subject, body, recipients)
    except Exception:
        logger.exception("Email dispatch failed for backend=%s subject=%s.", _backend_name(), _mask_subject(subject))
        return None


def queue_email(background: Optional[BackgroundTasks], subject: str, body: str, recipients: Iterable[str]) -> bool:
    """Enqueue a message after the response is sent. Lost messages are accepted."""
    recipient_list = _normalize_recipients(recipients)
    if not recipient_list:
        return False
    try:
        if background is None:
            deliver_best_effort(subject, body, recipient_list)
        else:
            background.add_task(deliver_best_effort, subject, body, recipient_list)
    except Exception:
        logger.exception("Failed to enqueue email subject=%s.", _mask_subject(subject))
        return False
    return True


def _portal_link(path: str = "") -> str:
    return f"{settings.frontend_url.rstrip('/')}/{path.lstrip('/')}"


def invitation_email(association_name: str, member_name: str, inviter_name: str) -> Tuple[str, str]:
    subject = f"You're invited to join {association_name}"
    body = (
        f"Hello {member_name},\n\n"
        f"{inviter_name} has invited you to join {association_name} on the association portal.\n"
        f"Sign in with this email address to accept: {_portal_link()}\n"
    )
    return subject, body


def meeting_scheduled_email(association_name: str, title: str, when: datetime, location: str) -> Tuple[str, str]:
    subject = f"{association_name}: {title} scheduled"
    body = (
        f"A meeting has been scheduled for {association_name}.\n\n"
        f"Meeting: {title}\n"
        f"When: {when.strftime('%A %d %B %Y %H:%M %Z').strip()}\n"
        f"Where: {location or 'To be confirmed'}\n\n"
        f"Please let us know whether you can attend: {_portal_link('meetings')}\n"
    )
    return subject, body


def meeting_reminder_email(association_name: str, title: str, when: datetime, location: str) -> Tuple[str, str]:
    subject = f"Reminder: {title}"
    body = (
        f"This is a reminder about the upcoming {association_name} meeting.\n\n"
        f"Meeting: {title}\n"
        f"When: {when.strftime('%A %d %B %Y %H:%M %Z').strip()}\n"
        f"Where: {location or 'To be confirmed'}\n\n"
        f"Details and RSVP: {_portal_link('meetings')}\n"
    )
    return subject, body
