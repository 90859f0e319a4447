"""
EntomoGuide Backend: Notification Dispatcher
=============================================

What:  Sends the two transactional e-mails of the approval workflow.
How:   `NotificationDispatcher` is the abstract contract; `notify()` wraps the
       concrete `_deliver()` and converts every failure into a
       `NotificationResult`, so callers never see an exception from here.
       `SMTPNotificationDispatcher` delivers through the standard library's
       smtplib in a worker thread.
Who:   AccountWorkflow. The registration path logs and ignores a failed
       result; the approval path reports it to the client as partial success.

Kinds:
    ADMIN_NEW_REGISTRATION: payload {name, email}       → administrator
    USER_APPROVED:          payload {name, email}       → the account holder

No retry and no queue: one delivery attempt per call.
"""

import asyncio
import enum
import html
import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Dict, Mapping, Optional

from entomoguide.config import Settings

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    ADMIN_NEW_REGISTRATION = "admin_new_registration"
    USER_APPROVED = "user_approved"


@dataclass(frozen=True)
class NotificationResult:
    succeeded: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.succeeded


class NotificationDispatcher(ABC):
    """
    Contract for notification back-ends.

    Implementations only provide `_deliver()`; it may raise anything.
    `notify()` is the public entry point and never raises.
    """

    async def notify(self, kind: NotificationKind, payload: Mapping[str, Any]) -> NotificationResult:
        try:
            await self._deliver(kind, payload)
        except Exception as e:
            logger.warning("Notification %s failed: %s", kind.value, e)
            return NotificationResult(succeeded=False, reason=str(e) or type(e).__name__)
        logger.info("Notification %s sent", kind.value)
        return NotificationResult(succeeded=True)

    @abstractmethod
    async def _deliver(self, kind: NotificationKind, payload: Mapping[str, Any]) -> None:
        """Performs one delivery attempt. Raises on failure."""
        ...

    async def health_check(self) -> bool:
        return True


class NotConfiguredError(RuntimeError):
    pass


# ── Templates ─────────────────────────────────────────────────────────────

def _render(kind: NotificationKind, payload: Mapping[str, Any], approval_page_url: str) -> Dict[str, str]:
    name = html.escape(str(payload.get("name", "")))
    email = html.escape(str(payload.get("email", "")))

    if kind is NotificationKind.ADMIN_NEW_REGISTRATION:
        link = html.escape(approval_page_url, quote=True)
        return {
            "subject": "EntomoGuide: new registration request",
            "text": (
                f"{payload.get('name', '')} ({payload.get('email', '')}) asked for access "
                f"to EntomoGuide.\nReview pending requests at {approval_page_url}\n"
            ),
            "html": (
                f"<p><strong>{name}</strong> ({email}) asked for access to EntomoGuide.</p>"
                f'<p><a href="{link}">Review pending requests</a></p>'
            ),
        }

    return {
        "subject": "EntomoGuide: your access was approved",
        "text": (
            f"Hello {payload.get('name', '')},\n\nYour EntomoGuide account has been "
            "approved. You can now log in with your e-mail and password.\n"
        ),
        "html": (
            f"<p>Hello {name},</p><p>Your EntomoGuide account has been approved. "
            "You can now log in with your e-mail and password.</p>"
        ),
    }


class SMTPNotificationDispatcher(NotificationDispatcher):
    """
    Delivers e-mail through an SMTP relay.

    Credentials and addresses come from Settings (SMTP_HOST, SMTP_USER,
    SMTP_PASSWORD, MAIL_FROM, ADMIN_NOTIFICATION_EMAIL). With no SMTP_HOST,
    every notification fails with reason "smtp not configured".
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: int = 10,
        mail_from: str = "",
        admin_email: str = "",
        approval_page_url: str = "",
    ):
        self.host = host
        self.port = port
        self.user = user
        self._password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.mail_from = mail_from
        self.admin_email = admin_email
        self.approval_page_url = approval_page_url

    @classmethod
    def from_settings(cls, settings: Settings) -> "SMTPNotificationDispatcher":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout,
            mail_from=settings.mail_from,
            admin_email=settings.admin_notification_email,
            approval_page_url=settings.approval_page_url,
        )

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def _recipient(self, kind: NotificationKind, payload: Mapping[str, Any]) -> str:
        if kind is NotificationKind.ADMIN_NEW_REGISTRATION:
            if not self.admin_email:
                raise NotConfiguredError("admin notification address not configured")
            return self.admin_email
        recipient = payload.get("email")
        if not recipient:
            raise ValueError("payload has no recipient e-mail")
        return str(recipient)

    def build_message(self, kind: NotificationKind, payload: Mapping[str, Any]) -> EmailMessage:
        content = _render(kind, payload, self.approval_page_url)
        msg = EmailMessage()
        msg["Subject"] = content["subject"]
        msg["From"] = self.mail_from
        msg["To"] = self._recipient(kind, payload)
        msg.set_content(content["text"])
        msg.add_alternative(content["html"], subtype="html")
        return msg

    def _send(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.user:
                server.login(self.user, self._password)
            server.send_message(msg)

    async def _deliver(self, kind: NotificationKind, payload: Mapping[str, Any]) -> None:
        if not self.configured:
            raise NotConfiguredError("smtp not configured")
        msg = self.build_message(kind, payload)
        await asyncio.to_thread(self._send, msg)

    async def health_check(self) -> bool:
        return self.configured
