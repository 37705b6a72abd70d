import logging

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def send_plain_email(subject: str, body: str, to: list[str] | tuple[str, ...] | str):
    if isinstance(to, str):
        to = [to]
    to = [addr for addr in to if addr]
    if not to:
        return 0
    return send_mail(
        subject=subject,
        message=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=to,
        fail_silently=False,
    )


def send_plain_email_safely(subject: str, body: str, to) -> int:
    """Notification helper for on_commit callbacks: failures are logged, not raised."""
    try:
        return send_plain_email(subject, body, to)
    except Exception:
        logger.exception("Failed to send email %r to %s", subject, to)
        return 0


def frontend_url(path: str) -> str:
    base = getattr(settings, "FRONTEND_URL", "").rstrip("/")
    return f"{base}/{path.lstrip('/')}"
