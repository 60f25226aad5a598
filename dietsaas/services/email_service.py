"""
Email service - outbound mail for account lifecycle events.

Two implementations: MockEmailService (development and tests, keeps what
it "sent") and SMTPEmailService. Sends are scheduled with
send_in_background so a slow mail server never holds up a request.
"""
import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Awaitable, List, Optional, Set, Tuple
from abc import ABC, abstractmethod
from urllib.parse import urlparse

from dietsaas.config import settings
from dietsaas.core.validators import mask_email

logger = logging.getLogger(__name__)

SIGNATURE = "Best regards,\nDietSaaS Team"

BUTTON_COLORS = {
    "verify": "#4CAF50",
    "reset": "#2196F3",
    "login": "#FF9800",
}


def render_email(
    greeting: str,
    paragraphs: List[str],
    action: Optional[Tuple[str, str, str]] = None,
    footnote: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Build the plain-text and HTML bodies of a transactional email.

    `action` is (label, link, color key); the link is repeated in both bodies
    so clients that strip buttons still show it.
    """
    text_parts = [greeting, *paragraphs]
    html_parts = [f"<h2>{greeting}</h2>", *(f"<p>{p}</p>" for p in paragraphs)]

    if action:
        label, link, color = action
        text_parts.append(link)
        html_parts.append(
            f'<p><a href="{link}" style="background-color: {BUTTON_COLORS[color]}; color: white; '
            f'padding: 12px 24px; text-decoration: none; border-radius: 4px;">{label}</a></p>'
        )
        html_parts.append(f"<p>Or copy this link: {link}</p>")

    if footnote:
        text_parts.append(footnote)
        html_parts.append(f"<p><small>{footnote}</small></p>")

    text_parts.append(SIGNATURE)
    text = "\n\n".join(text_parts)
    html = "<html><body>" + "".join(html_parts) + "</body></html>"
    return text, html


class EmailService(ABC):
    """Base email service interface."""

    @abstractmethod
    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> bool:
        """Send an email."""
        pass

    async def send_welcome_email(self, to: str, name: str, subdomain: str) -> bool:
        """Greeting sent right after a clinic registers."""
        host = urlparse(settings.FRONTEND_URL).hostname or "localhost"
        body, html = render_email(
            f"Hello {name},",
            ["Welcome to DietSaaS! Your clinic account has been created."],
            action=("Sign in", f"https://{subdomain}.{host}/login", "login"),
            footnote=f"Your free trial is valid for {settings.TRIAL_DAYS} days.",
        )
        return await self.send_email(to, "Welcome to DietSaaS!", body, html)

    async def send_verification_email(self, to: str, name: str, token: str) -> bool:
        body, html = render_email(
            f"Hello {name},",
            ["Please confirm your email address."],
            action=("Verify Email", f"{settings.FRONTEND_URL}/auth/verify-email?token={token}", "verify"),
            footnote=f"This link expires in {settings.EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS} hours.",
        )
        return await self.send_email(to, "Verify your DietSaaS email address", body, html)

    async def send_password_reset_email(self, to: str, name: str, token: str) -> bool:
        body, html = render_email(
            f"Hello {name},",
            [
                "We received a request to reset your password.",
                f"The link expires in {settings.PASSWORD_RESET_TOKEN_EXPIRE_HOURS} hour(s).",
            ],
            action=("Reset Password", f"{settings.FRONTEND_URL}/auth/reset-password?token={token}", "reset"),
            footnote="If you didn't request this, you can ignore this email.",
        )
        return await self.send_email(to, "Password reset request", body, html)

    async def send_invitation_email(
        self,
        to: str,
        first_name: str,
        inviter_name: str,
        organization_name: str,
        role: str,
        temporary_password: str
    ) -> bool:
        """Invitation carrying the temporary password of a newly added user."""
        body, html = render_email(
            f"Hello {first_name},",
            [
                f"{inviter_name} invited you to {organization_name} as {role}.",
                f"Temporary password: {temporary_password}",
            ],
            action=("Sign in", f"{settings.FRONTEND_URL}/login", "login"),
            footnote="Please change your password after signing in.",
        )
        return await self.send_email(to, f"{organization_name} - Invitation", body, html)


class MockEmailService(EmailService):
    """
    Mock email service for development.
    Logs emails instead of sending and keeps them for inspection.
    """

    def __init__(self):
        self.sent_emails: list = []

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> bool:
        self.sent_emails.append({
            "to": to,
            "subject": subject,
            "body": body
        })
        logger.info(f"Mock email to {mask_email(to)}: {subject}")
        return True

    def get_last_email(self) -> Optional[dict]:
        """Get the last sent email (for testing)."""
        return self.sent_emails[-1] if self.sent_emails else None


class SMTPEmailService(EmailService):
    """
    SMTP email service for production.
    Configure with environment variables:
    - SMTP_HOST
    - SMTP_PORT
    - SMTP_USER
    - SMTP_PASSWORD
    - EMAIL_FROM
    """

    def __init__(self):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.user = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.from_email = settings.EMAIL_FROM

    def _deliver(self, to: str, subject: str, body: str, html: Optional[str]) -> None:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.from_email
        msg['To'] = to

        msg.attach(MIMEText(body, 'plain'))
        if html:
            msg.attach(MIMEText(html, 'html'))

        with smtplib.SMTP(self.host, self.port) as server:
            server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.from_email, to, msg.as_string())

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> bool:
        """Send email via SMTP without blocking the event loop."""
        try:
            await asyncio.to_thread(self._deliver, to, subject, body, html)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {mask_email(to)}: {e}")
            return False

        logger.info(f"Email sent to {mask_email(to)}: {subject}")
        return True


# =============================================================================
# BACKGROUND DELIVERY
# =============================================================================

_background_tasks: Set[asyncio.Task] = set()


async def _run_logged(send: Awaitable[bool], description: str) -> None:
    try:
        delivered = await send
    except Exception:
        logger.exception(f"Error sending {description}")
        return
    if not delivered:
        logger.error(f"Could not deliver {description}")


def send_in_background(send: Awaitable[bool], description: str = "email") -> asyncio.Task:
    """
    Fire-and-forget an email send. Failures are logged, never raised to
    the request that triggered them.
    """
    task = asyncio.create_task(_run_logged(send, description))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def wait_for_background_emails() -> None:
    """Block until every scheduled send has finished (used on shutdown and in tests)."""
    if _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


# =============================================================================
# EMAIL SERVICE SINGLETON
# =============================================================================

_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get the email service instance."""
    global _email_service

    if _email_service is None:
        if settings.SMTP_HOST:
            logger.info("Using SMTP email service")
            _email_service = SMTPEmailService()
        else:
            logger.info("Using mock email service (emails are logged, not sent)")
            _email_service = MockEmailService()

    return _email_service


def set_email_service(service: EmailService) -> None:
    """Set custom email service (for testing)."""
    global _email_service
    _email_service = service
