import os
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr

from .errors import CrmError, QuotaExceeded, RateLimited, UpstreamUnavailable

logger = logging.getLogger(__name__)

SMTP_HOST = os.getenv("EMAIL_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("EMAIL_PORT", "587"))
SMTP_USER = os.getenv("EMAIL_USER")
SMTP_PASSWORD = os.getenv("EMAIL_PASSWORD")
DEFAULT_SENDER = os.getenv("EMAIL_SENDER", SMTP_USER or "noreply@example.com")
DEFAULT_SENDER_NAME = os.getenv("EMAIL_SENDER_NAME", "RoboCRM")

def format_sender_name(person_name: str | None = None) -> str:
    base_label = (DEFAULT_SENDER_NAME or "RoboCRM").strip() or "RoboCRM"
    if person_name:
        plain = person_name.strip()
        if plain:
            return f"{plain} via {base_label}"
    return base_label

def classify_smtp_error(exc: Exception, to: str) -> CrmError:
    """Map a transport failure onto the error taxonomy.

    Providers signal throttling with 421 or an enhanced 4.7.x status, and an
    exhausted sending allowance with 5.4.5 / 4.5.3 or a "quota" reply. Those
    surface as RateLimited / QuotaExceeded so schedulers do not retry them;
    everything else is UpstreamUnavailable.
    """
    if isinstance(exc, smtplib.SMTPResponseException):
        reply = exc.smtp_error
        if isinstance(reply, bytes):
            reply = reply.decode("utf-8", "replace")
        reply = str(reply)
        lowered = reply.lower()
        if "quota" in lowered or reply.startswith(("5.4.5", "4.5.3")):
            return QuotaExceeded(f"sending quota exceeded for {to}: {exc.smtp_code} {reply}")
        if exc.smtp_code == 421 or reply.startswith("4.7.") or "rate limit" in lowered:
            return RateLimited(f"mail transport throttled sending to {to}: {exc.smtp_code} {reply}")
    return UpstreamUnavailable(f"failed to send email to {to}: {exc}")

def send_email(
    to: str,
    subject: str,
    body: str,
    html_body: str | None = None,
    attachments: list | None = None,
    sender_name: str | None = None,
    reply_to: str | None = None,
):
    attachments = attachments or []
    display_name = (sender_name or DEFAULT_SENDER_NAME).strip()
    from_value = formataddr((display_name, DEFAULT_SENDER)) if display_name else DEFAULT_SENDER
    if not (SMTP_USER and SMTP_PASSWORD):
        logger.info(
            "email stub (SMTP not configured): from=%s to=%s subject=%r attachments=%d",
            from_value, to, subject, len(attachments),
        )
        return
    msg = EmailMessage()
    msg["From"] = from_value
    if reply_to:
        msg["Reply-To"] = reply_to
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body or "")
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    for attachment in attachments:
        if not attachment:
            continue
        filename = attachment.get("filename") or "attachment"
        content = attachment.get("content")
        maintype = attachment.get("maintype", "application")
        subtype = attachment.get("subtype", "octet-stream")
        if content is None:
            continue
        msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)
    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as smtp:
            smtp.starttls()
            smtp.login(SMTP_USER, SMTP_PASSWORD)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("failed to send %r to %s: %s", subject, to, exc)
        raise classify_smtp_error(exc, to) from exc
    logger.info("email sent to %s: %s", to, subject)
