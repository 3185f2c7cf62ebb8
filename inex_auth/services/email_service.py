"""
Email service - handles sending templated emails.
Currently supports: Mock (development) and SMTP (production ready).
"""
import asyncio
import html as html_lib
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from pathlib import Path
from typing import Dict, Optional, Tuple
from abc import ABC, abstractmethod

from inex_auth.config import settings
from inex_auth.core.exceptions import EmailSendError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

TEMPLATE_SUBJECTS = {
    "verify-account": "Verify Your Account - Income & Expense Manager",
    "reset-password": "Reset Your Password - Income & Expense Manager",
}


class TemplateLoader:
    """Loads ``<id>.html`` / ``<id>.txt`` pairs once and caches them."""

    def __init__(self, template_dir: Path = TEMPLATE_DIR):
        self.template_dir = template_dir
        self._cache: Dict[str, Tuple[str, str]] = {}

    def load(self, template_id: str) -> Tuple[str, str]:
        if template_id not in TEMPLATE_SUBJECTS:
            raise EmailSendError(f'Template with ID "{template_id}" not found')
        if template_id not in self._cache:
            try:
                html = (self.template_dir / f"{template_id}.html").read_text(encoding="utf-8")
            except OSError as e:
                logger.error(f"Error loading template {template_id}.html: {e}")
                raise EmailSendError(f"Failed to load template: {template_id}.html")
            text_path = self.template_dir / f"{template_id}.txt"
            text = text_path.read_text(encoding="utf-8") if text_path.exists() else ""
            self._cache[template_id] = (html, text)
        return self._cache[template_id]

    def render(self, template_id: str, substitutions: Dict[str, str]) -> Tuple[str, str, str]:
        """
        Return (subject, html, text) with ``{{key}}`` placeholders filled in.
        Values are HTML-escaped in the html body only.
        """
        html, text = self.load(template_id)
        for key, value in substitutions.items():
            placeholder = "{{" + key + "}}"
            html = html.replace(placeholder, html_lib.escape(str(value)))
            text = text.replace(placeholder, str(value))
        return TEMPLATE_SUBJECTS[template_id], html, text


class EmailService(ABC):
    """Base email service interface."""

    def __init__(self, loader: Optional[TemplateLoader] = None):
        self.loader = loader or TemplateLoader()

    @abstractmethod
    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> None:
        """Send an email. Raises EmailSendError on failure."""
        pass

    async def send_templated(
        self,
        template_id: str,
        to: str,
        substitutions: Dict[str, str]
    ) -> None:
        """Render a template and send it."""
        subject, html, text = self.loader.render(template_id, substitutions)
        await self.send_email(to, subject, text, html)


class MockEmailService(EmailService):
    """
    Mock email service for development.
    Logs emails instead of sending and keeps them for inspection.
    """

    def __init__(self, loader: Optional[TemplateLoader] = None):
        super().__init__(loader)
        self.sent_emails: list = []

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> None:
        """Mock send - logs and stores for debugging."""
        self.sent_emails.append({
            "to": to,
            "subject": subject,
            "body": body,
            "html": html
        })
        logger.info(f"Mock email to {to}: {subject}")

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

    def __init__(self, loader: Optional[TemplateLoader] = None):
        super().__init__(loader)
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.user = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.from_email = settings.EMAIL_FROM

    def _send_sync(self, to: str, subject: str, body: str, html: Optional[str]) -> None:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.from_email
        msg['To'] = to

        msg.attach(MIMEText(body, 'plain'))
        if html:
            msg.attach(MIMEText(html, 'html'))

        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
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
    ) -> None:
        """Send email via SMTP in a worker thread."""
        try:
            await asyncio.to_thread(self._send_sync, to, subject, body, html)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            raise EmailSendError() from e
        logger.info(f"Email sent to {to}: {subject}")


# =============================================================================
# EMAIL SERVICE SINGLETON
# =============================================================================

_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get the email service instance."""
    global _email_service

    if _email_service is None:
        if settings.SMTP_HOST:
            logger.info("Using SMTP Email Service")
            _email_service = SMTPEmailService()
        else:
            logger.info("Using Mock Email Service (emails logged only)")
            _email_service = MockEmailService()

    return _email_service
