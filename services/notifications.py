from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, List, Optional, Protocol

from config import ADMIN_EMAIL, GMAIL_PASS, GMAIL_USER, SMTP_HOST, SMTP_PORT

logger = logging.getLogger(__name__)

ISSUE_NOTE_PREFIX = "Order not processed due to inventory issue: "


class Notifier(Protocol):
    def send(self, subject: str, body: str) -> bool:
        ...


class EmailNotifier:
    """Best-effort admin mail over SMTP (SSL). Never raises."""

    def __init__(self, host: str, port: int, user: str, password: str, recipient: str):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.recipient = recipient

    def send(self, subject: str, body: str) -> bool:
        msg = EmailMessage()
        msg["From"] = self.user
        msg["To"] = self.recipient
        msg["Subject"] = subject
        msg.set_content(body)
        try:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=30) as smtp:
                smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("[Notify] Error sending email '%s': %s", subject, exc)
            return False
        logger.info("[Notify] Email sent to %s: %s", self.recipient, subject)
        return True


class LogNotifier:
    """Used when mail is not configured: the message only reaches the log."""

    def send(self, subject: str, body: str) -> bool:
        logger.warning("[Notify] Mail not configured; %s | %s", subject, body)
        return False


def build_notifier() -> Notifier:
    if GMAIL_USER and GMAIL_PASS and ADMIN_EMAIL:
        return EmailNotifier(SMTP_HOST, SMTP_PORT, GMAIL_USER, GMAIL_PASS, ADMIN_EMAIL)
    return LogNotifier()


class OrderIssueReporter:
    """
    Routes order-level business issues to the order note and the admin mailbox.

    Notes accumulate per order within one run, so several issues on the same
    order all end up in the note. An issue line the note already carries, from
    this run or an earlier one, is neither written again nor mailed again.
    """

    def __init__(self, storefront: Any, notifier: Notifier):
        self.storefront = storefront
        self.notifier = notifier
        self._notes: Dict[str, Optional[str]] = {}
        self.reported: List[Dict[str, str]] = []

    def report(self, order: Any, issue: str) -> None:
        po_number = str(order.id)
        self.reported.append({"po": po_number, "issue": issue})
        current = self._notes.get(po_number, order.note)
        line = f"{ISSUE_NOTE_PREFIX}{issue}"
        if current and line in current.splitlines():
            logger.info("[OrderIssues] Order %s already noted: %s", po_number, line)
            return
        note = f"{current}\n{line}" if current else line
        try:
            self.storefront.update_order_note(order.id, note)
            self._notes[po_number] = note
            logger.info("[OrderIssues] Added note to order %s: %s", po_number, line)
        except Exception as exc:
            logger.error("[OrderIssues] Error adding note to order %s: %s", po_number, exc)

        self.notifier.send(
            f"Inventory Issue with Order {po_number}",
            f"There was an issue processing order {po_number}. Reason: {issue}",
        )
