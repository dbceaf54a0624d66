"""Delivery of password reset links.

Deployments that send mail provide their own notifier through the
``get_reset_notifier`` dependency. The default only records that a link was
issued; the link carries a live token and is never written to the log.
"""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class ResetNotifier(Protocol):
    def send_password_reset(self, email: str, full_name: str, reset_url: str) -> None: ...


def redact_email(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class LoggingResetNotifier:
    def send_password_reset(self, email: str, full_name: str, reset_url: str) -> None:
        logger.warning("No mail delivery configured; password reset link for %s was not sent", redact_email(email))
