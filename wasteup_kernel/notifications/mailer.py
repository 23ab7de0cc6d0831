"""
Email delivery for pickup notifications.

Subscribes to the Notification Dispatcher and mails the lifecycle notices to
the recipient's directory address. Without an SMTP host it runs in log-only
mode: the message is built and logged, nothing leaves the process.

Delivery failures are logged and swallowed; the notification record already
exists in the store whether or not the mail goes out.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Callable, Dict, Optional

from wasteup_kernel.directory.service import DirectoryService
from wasteup_kernel.models.notification import NotificationKind, NotificationRecord

logger = logging.getLogger(__name__)

# Subject line suffix per mailed kind; reminders go out by SMS only
MAIL_SUBJECTS: Dict[NotificationKind, str] = {
    NotificationKind.PICKUP_CONFIRMATION: "Pending (Received)",
    NotificationKind.NEW_JOB_ALERT: "New Job Assigned",
    NotificationKind.STATUS_UPDATE: "Status Changed",
    NotificationKind.DRIVER_EN_ROUTE: "On The Way",
    NotificationKind.PICKUP_COMPLETED: "Completed",
}

SIGN_OFF = "Thank you for helping us keep Ibadan clean and flood-free!"


class PickupMailer:
    """Dispatcher subscriber that emails notification records."""

    def __init__(
        self,
        directory: DirectoryService,
        host: Optional[str] = None,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        sender: str = "Waste Up Ibadan <no-reply@wasteup.ng>",
        timeout_seconds: float = 10.0,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self.directory = directory
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout_seconds = timeout_seconds
        self.smtp_factory = smtp_factory

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def __call__(self, record: NotificationRecord) -> None:
        self.deliver(record)

    def build_message(self, record: NotificationRecord, name: str, address: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = address
        message["Subject"] = f"Waste Pickup Update: {MAIL_SUBJECTS[record.type]}"
        message.set_content(f"Hello {name},\n\n{record.message}\n\n{SIGN_OFF}\n")
        return message

    def deliver(self, record: NotificationRecord) -> bool:
        """Mail one record. Returns True only if the SMTP server accepted it."""
        if record.type not in MAIL_SUBJECTS:
            return False
        recipient = self.directory.find_user(record.user_id)
        if recipient is None or not recipient.email:
            return False

        message = self.build_message(record, recipient.name, recipient.email)
        if not self.configured:
            logger.info(
                "Mail not configured; would send %r to %s",
                message["Subject"], recipient.email,
            )
            return False

        try:
            with self.smtp_factory(self.host, self.port, timeout=self.timeout_seconds) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Mail to %s failed: %s", recipient.email, e)
            return False

        logger.info("Mailed %s to %s", record.type.value, recipient.email)
        return True
