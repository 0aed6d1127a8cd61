"""
Email service with provider abstraction.

Supports SMTP (default), Resend API and AWS SES; the provider is selected
via configuration. Sending never raises: callers get True/False and decide
whether a failed delivery must be rolled back.
"""

from __future__ import annotations

import hashlib
import ssl
from abc import ABC, abstractmethod
from collections.abc import Callable
from email.message import EmailMessage
from typing import TYPE_CHECKING, Any

import structlog

from ednova.config import get_settings
from ednova.email import templates

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger()

TemplateFunc = Callable[..., tuple[str, str, str]]

_TEMPLATE_REGISTRY: dict[str, TemplateFunc] = {
    "welcome": templates.welcome,
    "verify_email": templates.verify_email,
    "password_reset": templates.password_reset,
    "password_changed": templates.password_changed,
    "course_purchase": templates.course_purchase,
}


class BaseEmailProvider(ABC):
    """Abstract base class for email delivery providers."""

    name = "base"

    @abstractmethod
    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        """Deliver one message. Raises on failure."""
        ...


class SMTPProvider(BaseEmailProvider):
    """Send emails via SMTP using aiosmtplib."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        use_tls: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls

    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        import aiosmtplib

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")

        await aiosmtplib.send(
            message,
            hostname=self.host,
            port=self.port,
            username=self.username or None,
            password=self.password or None,
            start_tls=self.use_tls,
            tls_context=ssl.create_default_context() if self.use_tls else None,
        )


class ResendProvider(BaseEmailProvider):
    """Send emails via the Resend HTTP API."""

    name = "resend"

    def __init__(self, api_key: str, sender: str) -> None:
        self.api_key = api_key
        self.sender = sender

    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        import httpx

        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                "https://api.resend.com/emails",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": [to_email],
                    "subject": subject,
                    "html": html_body,
                    "text": text_body,
                },
            )
            response.raise_for_status()


class SESProvider(BaseEmailProvider):
    """Send emails via AWS SES."""

    name = "ses"

    def __init__(self, region: str, sender: str) -> None:
        self.region = region
        self.sender = sender

    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        import aioboto3

        session = aioboto3.Session()
        async with session.client("ses", region_name=self.region) as ses:
            await ses.send_email(
                Source=self.sender,
                Destination={"ToAddresses": [to_email]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {
                        "Text": {"Data": text_body, "Charset": "UTF-8"},
                        "Html": {"Data": html_body, "Charset": "UTF-8"},
                    },
                },
            )


def _create_provider() -> BaseEmailProvider:
    """Create email provider based on configuration."""
    settings = get_settings()
    provider_name = settings.email_provider.lower()
    sender = f"{settings.email_from_name} <{settings.email_from_address}>"

    if provider_name == "smtp":
        return SMTPProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=sender,
            use_tls=settings.smtp_use_tls,
        )
    if provider_name == "resend":
        return ResendProvider(api_key=settings.resend_api_key, sender=sender)
    if provider_name == "ses":
        return SESProvider(region=settings.ses_region, sender=sender)
    msg = f"Unsupported email provider: {provider_name}"
    raise ValueError(msg)


def render_template(template_name: str, context: dict[str, Any]) -> tuple[str, str, str]:
    """
    Render a registered template.

    Raises:
        ValueError: If the template is unknown or the context does not fit it.
    """
    template_func = _TEMPLATE_REGISTRY.get(template_name)
    if template_func is None:
        msg = f"Unknown template: {template_name}"
        raise ValueError(msg)
    try:
        return template_func(**context)
    except TypeError as e:
        msg = f"Invalid context for template {template_name}: {e}"
        raise ValueError(msg) from e


class EmailService:
    """High-level email service: per-recipient throttling and template rendering."""

    def __init__(
        self,
        provider: BaseEmailProvider | None = None,
        redis: Redis | None = None,
        max_per_hour: int | None = None,
    ) -> None:
        self.provider = provider or _create_provider()
        self._redis = redis
        self.max_per_hour = max_per_hour if max_per_hour is not None else get_settings().email_rate_limit_per_hour

    async def _within_rate_limit(self, email: str) -> bool:
        if self._redis is None:
            return True
        key = f"email_rate:{hashlib.sha256(email.lower().encode()).hexdigest()}"
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, 3600)
        return count <= self.max_per_hour

    async def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        """Send one message. Returns False if throttled or the provider failed."""
        if not await self._within_rate_limit(to):
            logger.warning("email_rate_limited", to=to, subject=subject)
            return False
        try:
            await self.provider.send(to, subject, html_body, text_body)
        except Exception:
            logger.exception("email_send_failed", to=to, subject=subject, provider=self.provider.name)
            return False
        logger.info("email_sent", to=to, subject=subject, provider=self.provider.name)
        return True

    async def send_template(self, to: str, template_name: str, context: dict[str, Any]) -> bool:
        """Render ``template_name`` with ``context`` and send it."""
        subject, html_body, text_body = render_template(template_name, context)
        return await self.send_email(to, subject, html_body, text_body)


# Module-level singleton
_email_service: EmailService | None = None


def get_email_service(redis: Redis | None = None) -> EmailService:
    """Get or create the email service singleton."""
    global _email_service  # noqa: PLW0603
    if _email_service is None:
        _email_service = EmailService(redis=redis)
    return _email_service


def reset_email_service() -> None:
    """Reset the email service singleton (for testing)."""
    global _email_service  # noqa: PLW0603
    _email_service = None
